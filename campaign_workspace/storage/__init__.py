"""
Object storage for campaign inputs and derived outputs.
"""
from __future__ import annotations

from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from ..config import Settings
from .base import CONFIRM_STEP, Bucket, ObjectStore, StoredObject, validate_key
from .local import PUBLIC_OBJECT_PATH, FileObjectStore, LocalObjectTransport
from .supabase import SupabaseObjectStore


def create_object_store(settings: Settings) -> ObjectStore:
    """Factory function to create the ObjectStore named by ``settings.storage_url``.

    Raises:
        ValueError: If the URI scheme is not supported
    """
    uri = settings.storage_url
    parsed = urlparse(uri)
    common = dict(
        input_bucket=settings.input_bucket,
        output_bucket=settings.output_bucket,
        confirm_attempts=settings.confirm_attempts,
        confirm_interval_seconds=settings.confirm_interval_seconds,
    )

    if parsed.scheme == "file":
        # file:///var/lib/campaigns -> /var/lib/campaigns, file://./storage -> ./storage
        root = Path(unquote(parsed.netloc + parsed.path))
        return FileObjectStore(root, public_base_url=settings.public_base_url, **common)

    elif parsed.scheme in ("http", "https"):
        return SupabaseObjectStore(
            uri,
            service_key=settings.storage_service_key,
            timeout=settings.storage_timeout_seconds,
            cache_control=settings.storage_cache_control,
            **common,
        )

    else:
        raise ValueError(
            f"Unsupported storage scheme: {parsed.scheme}. "
            f"Supported: file://, http://, https://"
        )


def create_http_client(store: ObjectStore, timeout: float) -> httpx.Client:
    """HTTP client able to dereference the URLs ``store`` resolves."""
    if isinstance(store, FileObjectStore):
        return httpx.Client(transport=LocalObjectTransport(store), timeout=timeout)
    return httpx.Client(timeout=timeout, follow_redirects=True)


__all__ = [
    "Bucket",
    "CONFIRM_STEP",
    "FileObjectStore",
    "LocalObjectTransport",
    "ObjectStore",
    "PUBLIC_OBJECT_PATH",
    "StoredObject",
    "SupabaseObjectStore",
    "create_http_client",
    "create_object_store",
    "validate_key",
]
