"""
Metadata repository for campaigns and file records.

Scoped CRUD only: ownership across relations and delete ordering live in the
CampaignRegistry. Database failures are rolled back and raised as
StoreUnavailableError; nothing is swallowed.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from sqlalchemy import asc, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import NotFoundError, StoreUnavailableError, ValidationError
from .audit_models import AuditLogModel
from .audit_service import AuditService
from .models import CampaignModel, FileRecordModel, generate_id

logger = logging.getLogger(__name__)


def _require_name(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise ValidationError("Campaign name cannot be empty", step="validate")
    return name.strip()


class MetadataRepository:
    """Relational access to the ``campaigns`` and ``file_records`` tables."""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    @contextmanager
    def _translate(self, step: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Metadata store failure during %s: %s", step, e)
            raise StoreUnavailableError(
                f"Metadata store failure during {step}: {e}", step=step
            ) from e

    # Campaigns

    def get_campaign(self, campaign_id: str) -> Optional[CampaignModel]:
        """Get a campaign by ID."""
        with self._translate("get_campaign"):
            return (
                self.db.query(CampaignModel)
                .filter(CampaignModel.id == campaign_id)
                .first()
            )

    def list_campaigns(self, owner: str) -> List[CampaignModel]:
        """List an owner's campaigns by name, ascending."""
        with self._translate("list_campaigns"):
            return (
                self.db.query(CampaignModel)
                .filter(CampaignModel.owner == owner)
                .order_by(asc(CampaignModel.name), asc(CampaignModel.created_at))
                .all()
            )

    def create_campaign(self, owner: str, name: str) -> CampaignModel:
        """Create a campaign. Names are not unique."""
        name = _require_name(name)
        if not owner:
            raise ValidationError("Campaign owner cannot be empty", step="validate")

        with self._translate("create_campaign"):
            campaign = CampaignModel(
                id=generate_id(),
                owner=owner,
                name=name,
                created_at=datetime.now(timezone.utc),
            )
            self.db.add(campaign)
            self.db.flush()
            self.audit.log_create(
                "Campaign",
                campaign.id,
                campaign.to_dict(),
                actor_id=owner,
                campaign_id=campaign.id,
                commit=False,
            )
            self.db.commit()
            self.db.refresh(campaign)

        logger.info("Created campaign %s for %s", campaign.id, owner)
        return campaign

    def rename_campaign(self, campaign_id: str, new_name: str, owner: str) -> CampaignModel:
        """Rename a campaign owned by ``owner``.

        Raises NotFoundError if the campaign does not exist or belongs to
        someone else; the two cases are not distinguished.
        """
        new_name = _require_name(new_name)

        with self._translate("rename_campaign"):
            campaign = (
                self.db.query(CampaignModel)
                .filter(CampaignModel.id == campaign_id, CampaignModel.owner == owner)
                .first()
            )
            if campaign is None:
                raise NotFoundError(f"Campaign {campaign_id} not found", step="rename_campaign")

            before = campaign.to_dict()
            campaign.name = new_name
            campaign.updated_at = datetime.now(timezone.utc)
            self.db.flush()
            self.audit.log_update(
                "Campaign",
                campaign.id,
                before,
                campaign.to_dict(),
                actor_id=owner,
                campaign_id=campaign.id,
                commit=False,
            )
            self.db.commit()
            self.db.refresh(campaign)

        return campaign

    def delete_campaign(self, campaign_id: str) -> None:
        """Delete a campaign row. Dependent file records must already be gone."""
        with self._translate("delete_campaign"):
            campaign = self.get_campaign(campaign_id)
            if campaign is None:
                raise NotFoundError(f"Campaign {campaign_id} not found", step="delete_campaign")

            self.audit.log_delete(
                "Campaign",
                campaign.id,
                campaign.to_dict(),
                actor_id=campaign.owner,
                campaign_id=campaign.id,
                commit=False,
            )
            self.db.delete(campaign)
            self.db.commit()

        logger.info("Deleted campaign %s", campaign_id)

    # File records

    def get_file_record(self, record_id: str) -> Optional[FileRecordModel]:
        """Get a file record by ID."""
        with self._translate("get_file_record"):
            return (
                self.db.query(FileRecordModel)
                .filter(FileRecordModel.id == record_id)
                .first()
            )

    def list_file_records(self, campaign_id: str) -> List[FileRecordModel]:
        """List a campaign's file records, newest first."""
        with self._translate("list_file_records"):
            return (
                self.db.query(FileRecordModel)
                .filter(FileRecordModel.campaign_id == campaign_id)
                .order_by(desc(FileRecordModel.created_at))
                .all()
            )

    def create_file_record(
        self,
        owner: str,
        campaign_id: str,
        file_name: str,
        content_type: Optional[str],
        storage_key: str,
    ) -> FileRecordModel:
        """Insert the metadata row for an uploaded input blob."""
        with self._translate("create_file_record"):
            record = FileRecordModel(
                id=generate_id(),
                owner=owner,
                campaign_id=campaign_id,
                file_name=file_name,
                content_type=content_type,
                storage_key=storage_key,
                created_at=datetime.now(timezone.utc),
            )
            self.db.add(record)
            self.db.flush()
            self.audit.log_create(
                "FileRecord",
                record.id,
                record.to_dict(),
                actor_id=owner,
                campaign_id=campaign_id,
                commit=False,
            )
            self.db.commit()
            self.db.refresh(record)

        return record

    def delete_file_records(self, campaign_id: str) -> int:
        """Delete every file record of a campaign; zero rows is success."""
        with self._translate("delete_file_records"):
            records = (
                self.db.query(FileRecordModel)
                .filter(FileRecordModel.campaign_id == campaign_id)
                .all()
            )
            for record in records:
                self.audit.log_delete(
                    "FileRecord",
                    record.id,
                    record.to_dict(),
                    actor_id=record.owner,
                    campaign_id=campaign_id,
                    commit=False,
                )
                self.db.delete(record)
            self.db.commit()

        logger.info("Deleted %d file records of campaign %s", len(records), campaign_id)
        return len(records)

    def get_file_record_by_key(self, storage_key: str) -> Optional[FileRecordModel]:
        """Get the file record for an input storage key, if one was saved."""
        with self._translate("get_file_record"):
            return (
                self.db.query(FileRecordModel)
                .filter(FileRecordModel.storage_key == storage_key)
                .first()
            )

    def record_generation(
        self,
        owner: str,
        source_key: str,
        destination_key: str,
        public_url: str,
        campaign_id: Optional[str] = None,
    ) -> None:
        """Append a ``generated`` entry to the audit log."""
        with self._translate("record_generation"):
            self.audit.log_generated(
                destination_key,
                source_key,
                public_url,
                actor_id=owner,
                campaign_id=campaign_id,
            )

    def campaign_history(self, campaign_id: str, limit: int = 100) -> List[AuditLogModel]:
        """Audit entries for a campaign and its files, newest first."""
        with self._translate("campaign_history"):
            return self.audit.query_by_campaign(campaign_id, limit=limit)
