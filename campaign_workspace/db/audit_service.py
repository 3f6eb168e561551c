"""
Audit Log Service.

Records who changed which campaign, file record or output artifact, and when.

Usage:
    audit = AuditService(db_session)
    audit.log_create("Campaign", campaign.id, campaign.to_dict(), actor_id=owner)
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from .audit_models import AuditLogModel


class AuditService:
    """Service for managing audit log entries.

    With ``commit=False`` the entry joins the caller's transaction, so the
    change and its audit record land together.
    """

    def __init__(self, db: Session):
        self.db = db

    def _record(
        self,
        action: str,
        entity_kind: str,
        entity_id: str,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]],
        actor_id: str,
        actor_kind: str,
        campaign_id: Optional[str],
        note: Optional[str],
        commit: bool,
    ) -> AuditLogModel:
        entry = AuditLogModel(
            id=str(uuid.uuid4()),
            ts=datetime.now(timezone.utc),
            actor_kind=actor_kind,
            actor_id=actor_id,
            action=action,
            entity_kind=entity_kind,
            entity_id=entity_id,
            campaign_id=campaign_id,
            before=before,
            after=after,
            note=note,
        )

        self.db.add(entry)
        if commit:
            self.db.commit()
            self.db.refresh(entry)
        return entry

    def log_create(
        self,
        entity_kind: str,
        entity_id: str,
        after: Dict[str, Any],
        actor_id: str,
        actor_kind: str = "human",
        campaign_id: Optional[str] = None,
        note: Optional[str] = None,
        commit: bool = True,
    ) -> AuditLogModel:
        """Log the creation of an entity."""
        return self._record(
            "created", entity_kind, entity_id, None, after,
            actor_id, actor_kind, campaign_id, note, commit,
        )

    def log_update(
        self,
        entity_kind: str,
        entity_id: str,
        before: Dict[str, Any],
        after: Dict[str, Any],
        actor_id: str,
        actor_kind: str = "human",
        campaign_id: Optional[str] = None,
        note: Optional[str] = None,
        commit: bool = True,
    ) -> AuditLogModel:
        """Log an update to an entity."""
        return self._record(
            "updated", entity_kind, entity_id, before, after,
            actor_id, actor_kind, campaign_id, note, commit,
        )

    def log_delete(
        self,
        entity_kind: str,
        entity_id: str,
        before: Dict[str, Any],
        actor_id: str,
        actor_kind: str = "human",
        campaign_id: Optional[str] = None,
        note: Optional[str] = None,
        commit: bool = True,
    ) -> AuditLogModel:
        """Log the deletion of an entity."""
        return self._record(
            "deleted", entity_kind, entity_id, before, None,
            actor_id, actor_kind, campaign_id, note, commit,
        )

    def log_generated(
        self,
        destination_key: str,
        source_key: str,
        public_url: str,
        actor_id: str,
        campaign_id: Optional[str] = None,
        commit: bool = True,
    ) -> AuditLogModel:
        """Log the creation of an output artifact."""
        return self._record(
            "generated",
            "OutputArtifact",
            destination_key,
            None,
            {"source_key": source_key, "public_url": public_url},
            actor_id,
            "human",
            campaign_id,
            f"Generated from {source_key}",
            commit,
        )

    # Query methods

    def query_by_entity(
        self,
        entity_kind: str,
        entity_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLogModel]:
        """Get audit history for a specific entity, newest first."""
        return (
            self.db.query(AuditLogModel)
            .filter(
                AuditLogModel.entity_kind == entity_kind,
                AuditLogModel.entity_id == entity_id,
            )
            .order_by(desc(AuditLogModel.ts))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def query_by_campaign(
        self,
        campaign_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLogModel]:
        """Get everything recorded against a campaign and its files, newest first."""
        return (
            self.db.query(AuditLogModel)
            .filter(AuditLogModel.campaign_id == campaign_id)
            .order_by(desc(AuditLogModel.ts))
            .offset(offset)
            .limit(limit)
            .all()
        )
