"""
Campaign Workspace API Routes.

Every request builds its own store, HTTP client, repository and facade; no
client object is shared between requests.
"""

from typing import Any, Dict, Generator, List, Optional

import httpx
import structlog
from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .auth import get_current_user
from .config import Settings, get_settings
from .db.base import get_db
from .db.repository import MetadataRepository
from .errors import UnauthorizedError, ValidationError, WorkspaceError
from .pipeline import ArtifactPipeline, GenerationResult
from .retry import RetryPolicy
from .schemas import (
    CampaignCreate,
    CampaignRename,
    GenerateOutputRequest,
    GenerateOutputResponse,
    GenerationResponse,
)
from .storage import (
    PUBLIC_OBJECT_PATH,
    FileObjectStore,
    ObjectStore,
    create_http_client,
    create_object_store,
)
from .workspace import Workspace

logger = structlog.get_logger()

router = APIRouter()

GENERATE_CORS_HEADERS = {
    "access-control-allow-origin": "*",
    "access-control-allow-methods": "POST, OPTIONS",
    "access-control-allow-headers": "Authorization, Content-Type",
}

# Served with an open CORS policy; see api.RouteCORSMiddleware
FUNCTION_PATHS = ("/generate-output", "/upload")


# =============================================================================
# Dependencies
# =============================================================================


def get_object_store(
    settings: Settings = Depends(get_settings),
) -> Generator[ObjectStore, None, None]:
    """Object store for one request."""
    store = create_object_store(settings)
    try:
        yield store
    finally:
        close = getattr(store, "close", None)
        if close is not None:
            close()


def get_http_client(
    store: ObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_settings),
) -> Generator[httpx.Client, None, None]:
    """HTTP client used to dereference resolved object URLs."""
    with create_http_client(store, settings.fetch_timeout_seconds) as client:
        yield client


def get_workspace(
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    http_client: httpx.Client = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> Workspace:
    """Workspace facade wired for one request."""
    retry_policy = RetryPolicy.from_settings(settings)
    repository = MetadataRepository(db)
    pipeline = ArtifactPipeline(store, http_client, retry_policy=retry_policy)
    return Workspace(repository, store, pipeline, retry_policy=retry_policy)


def _generation_dict(result: GenerationResult) -> Dict[str, Any]:
    return GenerationResponse(
        source_key=result.source_key,
        destination_key=result.destination_key,
        public_url=result.public_url,
        size_bytes=result.size_bytes,
        content_type=result.content_type,
        already_existed=result.already_existed,
    ).model_dump()


# =============================================================================
# Campaign Endpoints
# =============================================================================


@router.get("/campaigns", tags=["campaigns"])
def list_campaigns(
    user_id: str = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
) -> List[Dict[str, Any]]:
    """List the caller's campaigns by name."""
    return [c.to_dict() for c in workspace.list_campaigns(user_id)]


@router.post("/campaigns", status_code=201, tags=["campaigns"])
def create_campaign(
    body: CampaignCreate,
    user_id: str = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
) -> Dict[str, Any]:
    """Create a campaign."""
    campaign = workspace.create_campaign(user_id, body.name)
    logger.info("campaign_created", owner=user_id, campaign_id=campaign.id)
    return {"status": "success", "campaign": campaign.to_dict()}


@router.patch("/campaigns/{campaign_id}", tags=["campaigns"])
def rename_campaign(
    campaign_id: str,
    body: CampaignRename,
    user_id: str = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
) -> Dict[str, Any]:
    """Rename a campaign."""
    campaign = workspace.rename_campaign(user_id, campaign_id, body.name)
    return {"status": "success", "campaign": campaign.to_dict()}


@router.delete("/campaigns/{campaign_id}", tags=["campaigns"])
def delete_campaign(
    campaign_id: str,
    user_id: str = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
) -> Dict[str, Any]:
    """Delete a campaign and its file records.

    Output artifacts are left in the output bucket.
    """
    deleted = workspace.delete_campaign(user_id, campaign_id)
    logger.info(
        "campaign_deleted", owner=user_id, campaign_id=campaign_id, file_records=deleted
    )
    return {"status": "success", "deleted_file_records": deleted}


@router.get("/campaigns/{campaign_id}/history", tags=["campaigns"])
def campaign_history(
    campaign_id: str,
    limit: int = Query(100, ge=1, le=1000),
    user_id: str = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
) -> List[Dict[str, Any]]:
    """Audit trail of a campaign and its files, newest first."""
    return workspace.history(user_id, campaign_id, limit=limit)


# =============================================================================
# File Endpoints
# =============================================================================


@router.post("/campaigns/{campaign_id}/files", status_code=201, tags=["files"])
def upload_file(
    campaign_id: str,
    file: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
) -> Dict[str, Any]:
    """Upload a file into a campaign."""
    if file is None or not file.filename:
        raise ValidationError("Please select a file first.", step="validate")

    result = workspace.upload(
        owner=user_id,
        campaign_id=campaign_id,
        file_name=file.filename,
        data=file.file.read(),
        content_type=file.content_type,
    )
    logger.info(
        "file_uploaded",
        owner=user_id,
        campaign_id=campaign_id,
        storage_key=result.record.storage_key,
    )
    return result.to_dict()


@router.get("/campaigns/{campaign_id}/files", tags=["files"])
def list_files(
    campaign_id: str,
    user_id: str = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
) -> List[Dict[str, Any]]:
    """List a campaign's files, newest first, with input and output links."""
    return [listing.to_dict() for listing in workspace.list_files(user_id, campaign_id)]


@router.post("/campaigns/{campaign_id}/files/{file_id}/generate", tags=["files"])
def generate_file_output(
    campaign_id: str,
    file_id: str,
    if_absent: bool = Query(False, description="Return the existing output instead of 409"),
    user_id: str = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
) -> Dict[str, Any]:
    """Generate the output artifact for a file."""
    result = workspace.generate(user_id, campaign_id, file_id, if_absent=if_absent)
    logger.info(
        "output_generated",
        owner=user_id,
        campaign_id=campaign_id,
        storage_key=result.destination_key,
        already_existed=result.already_existed,
    )
    return _generation_dict(result)


# =============================================================================
# Function-style Endpoints
# =============================================================================


@router.options("/generate-output", tags=["functions"])
def generate_output_preflight() -> Response:
    """CORS preflight for the generation endpoint."""
    return Response(status_code=204, headers=GENERATE_CORS_HEADERS)


@router.post("/generate-output", tags=["functions"])
def generate_output(
    body: GenerateOutputRequest,
    user_id: str = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
) -> JSONResponse:
    """Generate the output artifact for ``filePath``; returns ``{publicUrl}``."""
    if body.user_id != user_id:
        raise UnauthorizedError("userId does not match the authenticated user", step="authorize")

    result = workspace.generate_for_key(user_id, body.file_path, if_absent=body.if_absent)
    payload = GenerateOutputResponse(public_url=result.public_url).model_dump(by_alias=True)
    return JSONResponse(payload, headers=GENERATE_CORS_HEADERS)


@router.post("/upload", tags=["functions"])
def upload_blob(
    file: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user),
    workspace: Workspace = Depends(get_workspace),
) -> JSONResponse:
    """Store a single ``file`` form field under the caller's prefix.

    No file record is created. Unaddressable file names are reported as
    400 and store failures as 500.
    """
    if file is None or not file.filename:
        return JSONResponse({"error": "No file uploaded", "code": "validation_error"}, status_code=400)

    try:
        storage_key = workspace.upload_blob(
            user_id, file.filename, file.file.read(), content_type=file.content_type
        )
    except ValidationError as e:
        return JSONResponse({"error": e.message, "code": e.code}, status_code=400)
    except WorkspaceError as e:
        logger.error("upload_failed", owner=user_id, code=e.code, error=e.message)
        return JSONResponse({"error": "Upload failed", "code": e.code}, status_code=500)

    return JSONResponse({"message": "Upload successful!", "path": storage_key})


# =============================================================================
# Public objects (filesystem backend)
# =============================================================================


@router.get(PUBLIC_OBJECT_PATH + "/{bucket}/{key:path}", tags=["storage"])
def get_public_object(
    bucket: str,
    key: str,
    store: ObjectStore = Depends(get_object_store),
) -> Response:
    """Serve an object from the local filesystem store by its public URL."""
    logical = store.bucket_for_name(bucket) if isinstance(store, FileObjectStore) else None
    if logical is None:
        return JSONResponse({"error": "Object not found", "code": "not_found"}, status_code=404)

    data = store.get_bytes(logical, key)
    content_type = store.get_content_type(logical, key) or "application/octet-stream"
    return Response(content=data, media_type=content_type)
