"""
Workspace facade: the single entry point for the API and the CLI.

Sequences the object store, the metadata repository, the campaign registry
and the artifact pipeline into the upload, listing and generation workflows.
The stores are independent systems and nothing here spans them with a
transaction; each workflow either completes or reports which step did.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .db.models import CampaignModel, FileRecordModel
from .db.repository import MetadataRepository
from .errors import (
    NotFoundError,
    PartialSuccessError,
    StoreUnavailableError,
    UnauthorizedError,
    ValidationError,
    WorkspaceError,
)
from .pipeline import ArtifactPipeline, GenerationResult, derive_destination_key
from .registry import CampaignRegistry
from .retry import NO_RETRY, RetryPolicy, call_with_retry
from .storage import CONFIRM_STEP, Bucket, ObjectStore, validate_key

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def file_extension(file_name: str) -> str:
    """Extension of ``file_name`` without the dot, or "" if it has none."""
    base = posixpath.basename(file_name.replace("\\", "/"))
    stem, dot, ext = base.rpartition(".")
    if not dot or not stem:
        return ""
    return ext


def build_storage_key(owner: str, file_name: str, now: Optional[datetime] = None) -> str:
    """Input key ``{owner}/{epoch_millis}[.{ext}]``.

    Keys are unique per owner and millisecond without a central counter; a
    same-millisecond collision surfaces as a ConflictError from the store.
    """
    millis = int((now or utc_now()).timestamp() * 1000)
    ext = file_extension(file_name)
    return f"{owner}/{millis}.{ext}" if ext else f"{owner}/{millis}"


@dataclass(frozen=True)
class UploadResult:
    record: FileRecordModel
    input_url: str

    def to_dict(self) -> Dict[str, Any]:
        return {**self.record.to_dict(), "input_url": self.input_url}


@dataclass(frozen=True)
class FileListing:
    """A file record with its resolved links.

    ``output_url`` is None until the output artifact has been generated.
    """

    record: FileRecordModel
    input_url: str
    output_url: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.record.to_dict(),
            "input_url": self.input_url,
            "output_url": self.output_url,
        }


class Workspace:
    """Facade over campaigns, file uploads and artifact generation."""

    def __init__(
        self,
        repository: MetadataRepository,
        store: ObjectStore,
        pipeline: ArtifactPipeline,
        registry: Optional[CampaignRegistry] = None,
        retry_policy: RetryPolicy = NO_RETRY,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.store = store
        self.pipeline = pipeline
        self.registry = registry or CampaignRegistry(repository)
        self.retry_policy = retry_policy
        self.clock = clock

    # Campaigns

    def list_campaigns(self, owner: str) -> List[CampaignModel]:
        return self.registry.list_campaigns(owner)

    def create_campaign(self, owner: str, name: str) -> CampaignModel:
        return self.registry.create_campaign(owner, name)

    def rename_campaign(self, owner: str, campaign_id: str, new_name: str) -> CampaignModel:
        return self.registry.rename_campaign(campaign_id, new_name, owner)

    def delete_campaign(self, owner: str, campaign_id: str) -> int:
        return self.registry.delete_campaign_cascade(campaign_id, owner)

    # Upload workflow

    def upload(
        self,
        owner: str,
        campaign_id: Optional[str],
        file_name: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """Store an input file and save its metadata row.

        Raises:
            ValidationError: no campaign selected or no file given
            NotFoundError, UnauthorizedError: campaign missing or not owned
            ConflictError, StoreUnavailableError: the blob upload failed
            PartialSuccessError: the blob was written but is not confirmed
                readable, or it is stored but the row is not; carries the key
        """
        if not campaign_id:
            raise ValidationError("No campaign selected", step="validate")
        if not file_name or data is None:
            raise ValidationError("Please select a file first", step="validate")

        self.registry.get_owned(campaign_id, owner)

        storage_key = build_storage_key(owner, file_name, self.clock())
        try:
            self.store.put_then_confirm(
                Bucket.INPUTS,
                storage_key,
                data,
                content_type=content_type,
                allow_overwrite=False,
            )
        except StoreUnavailableError as e:
            if e.step != CONFIRM_STEP:
                raise
            raise PartialSuccessError(
                "Upload was accepted but is not readable yet",
                completed_step="put",
                failed_step=CONFIRM_STEP,
                storage_key=storage_key,
                cause=e,
            ) from e

        try:
            record = self.repository.create_file_record(
                owner=owner,
                campaign_id=campaign_id,
                file_name=file_name,
                content_type=content_type,
                storage_key=storage_key,
            )
        except WorkspaceError as e:
            logger.error("Upload of %s succeeded but metadata was not saved: %s", storage_key, e)
            raise PartialSuccessError(
                "Upload succeeded, but failed to save metadata",
                completed_step="upload",
                failed_step="create_file_record",
                storage_key=storage_key,
                cause=e,
            ) from e

        input_url = self.store.resolve_url(Bucket.INPUTS, storage_key)
        logger.info("Uploaded %s to campaign %s as %s", file_name, campaign_id, storage_key)
        return UploadResult(record=record, input_url=input_url)

    def upload_blob(
        self,
        owner: str,
        file_name: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """Store a file under ``{owner}/{file_name}`` without a metadata row.

        Returns the storage key.
        """
        if not file_name:
            raise ValidationError("No file uploaded", step="validate")
        base_name = posixpath.basename(file_name.replace("\\", "/"))
        storage_key = validate_key(f"{owner}/{base_name}")
        self.store.put_then_confirm(
            Bucket.INPUTS, storage_key, data, content_type=content_type, allow_overwrite=False
        )
        return storage_key

    # Listing workflow

    def list_files(self, owner: str, campaign_id: str) -> List[FileListing]:
        """List a campaign's files, newest first, with input and output links."""
        self.registry.get_owned(campaign_id, owner)

        listings = []
        for record in self.repository.list_file_records(campaign_id):
            listings.append(
                FileListing(
                    record=record,
                    input_url=self.store.resolve_url(Bucket.INPUTS, record.storage_key),
                    output_url=self._output_url(record),
                )
            )
        return listings

    def _output_url(self, record: FileRecordModel) -> Optional[str]:
        # Absent output means "not generated yet", never a listing failure
        try:
            destination_key = derive_destination_key(record.storage_key, record.owner)
            exists = call_with_retry(
                lambda: self.store.exists(Bucket.OUTPUTS, destination_key),
                self.retry_policy,
            )
            if not exists:
                return None
            return self.store.resolve_url(Bucket.OUTPUTS, destination_key)
        except WorkspaceError as e:
            logger.warning(
                "Output link for %s unavailable (%s): %s", record.storage_key, e.code, e.message
            )
            return None

    # Generation workflow

    def generate(
        self,
        owner: str,
        campaign_id: str,
        record_id: str,
        if_absent: bool = False,
    ) -> GenerationResult:
        """Generate the output artifact for a campaign's file record."""
        self.registry.get_owned(campaign_id, owner)

        record = self.repository.get_file_record(record_id)
        if record is None or record.campaign_id != campaign_id:
            raise NotFoundError(f"File {record_id} not found", step="lookup_file")
        if record.owner != owner:
            raise UnauthorizedError(f"File {record_id} is not owned by {owner}", step="lookup_file")

        return self._generate(owner, record.storage_key, campaign_id, if_absent)

    def generate_for_key(self, owner: str, input_key: str, if_absent: bool = False) -> GenerationResult:
        """Generate the output artifact for an input key."""
        if not input_key:
            raise ValidationError("filePath is required", step="validate")
        record = self.repository.get_file_record_by_key(input_key)
        campaign_id = record.campaign_id if record is not None else None
        return self._generate(owner, input_key, campaign_id, if_absent)

    def _generate(
        self,
        owner: str,
        input_key: str,
        campaign_id: Optional[str],
        if_absent: bool,
    ) -> GenerationResult:
        if if_absent:
            result = self.pipeline.generate_if_absent(input_key, owner)
        else:
            result = self.pipeline.generate(input_key, owner)

        if result.already_existed:
            return result

        try:
            self.repository.record_generation(
                owner=owner,
                source_key=result.source_key,
                destination_key=result.destination_key,
                public_url=result.public_url,
                campaign_id=campaign_id,
            )
        except WorkspaceError as e:
            # Output is stored and addressable; the audit entry is best-effort
            logger.error(
                "Generated %s but failed to record it (%s): %s",
                result.destination_key,
                e.code,
                e.message,
            )
        return result

    def history(self, owner: str, campaign_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """Audit entries for a campaign and its files, newest first."""
        self.registry.get_owned(campaign_id, owner)
        return [e.to_dict() for e in self.repository.campaign_history(campaign_id, limit=limit)]
