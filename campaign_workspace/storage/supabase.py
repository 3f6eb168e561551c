"""
Storage REST API backend (http:// and https:// URIs).

Speaks the Supabase storage protocol:

    POST {base}/storage/v1/object/{bucket}/{key}          upload (x-upsert)
    GET  {base}/storage/v1/object/{bucket}/{key}          authenticated download
    HEAD {base}/storage/v1/object/{bucket}/{key}          existence check
         {base}/storage/v1/object/public/{bucket}/{key}   public URL
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..errors import ConflictError, NotFoundError, StoreUnavailableError
from .base import Bucket, ObjectStore, StoredObject, validate_key

logger = logging.getLogger(__name__)


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _is_duplicate(response: httpx.Response) -> bool:
    if response.status_code == 409:
        return True
    if response.status_code == 400:
        body = _error_body(response)
        return str(body.get("statusCode")) == "409" or body.get("error") == "Duplicate"
    return False


def _is_missing(response: httpx.Response) -> bool:
    if response.status_code == 404:
        return True
    if response.status_code == 400:
        body = _error_body(response)
        return str(body.get("statusCode")) == "404" or body.get("error") in (
            "not_found",
            "Not Found",
        )
    return False


class SupabaseObjectStore(ObjectStore):
    """Object store client for a Supabase-compatible storage REST API."""

    def __init__(
        self,
        base_url: str,
        service_key: Optional[str] = None,
        timeout: float = 30.0,
        cache_control: str = "3600",
        client: Optional[httpx.Client] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.cache_control = cache_control
        self.auth_headers: Dict[str, str] = {}
        if service_key:
            self.auth_headers = {"Authorization": f"Bearer {service_key}", "apikey": service_key}
        self.client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def _object_url(self, bucket: Bucket, key: str) -> str:
        return (
            f"{self.base_url}/storage/v1/object/"
            f"{quote(self.bucket_name(bucket))}/{quote(validate_key(key))}"
        )

    def put(
        self,
        bucket: Bucket,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        allow_overwrite: bool = False,
    ) -> StoredObject:
        url = self._object_url(bucket, key)
        headers = {
            **self.auth_headers,
            "x-upsert": "true" if allow_overwrite else "false",
            "cache-control": f"max-age={self.cache_control}",
            "content-type": content_type or "application/octet-stream",
        }
        try:
            response = self.client.post(url, content=data, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Upload of %s failed: %s", key, e)
            raise StoreUnavailableError(f"Upload of {key} failed: {e}", step="put") from e

        if _is_duplicate(response):
            raise ConflictError(
                f"Object {key} already exists in {self.bucket_name(bucket)}",
                step="put",
            )
        if response.is_error:
            body = _error_body(response)
            message = body.get("message") or response.text or response.reason_phrase
            logger.error("Upload of %s rejected (%s): %s", key, response.status_code, message)
            raise StoreUnavailableError(
                f"Upload of {key} rejected ({response.status_code}): {message}",
                step="put",
            )

        return StoredObject(
            bucket=Bucket(bucket),
            key=key,
            size_bytes=len(data),
            content_type=content_type,
        )

    def _get(self, bucket: Bucket, key: str) -> httpx.Response:
        try:
            response = self.client.get(self._object_url(bucket, key), headers=self.auth_headers)
        except httpx.HTTPError as e:
            raise StoreUnavailableError(f"Download of {key} failed: {e}", step="get") from e
        if _is_missing(response):
            raise NotFoundError(
                f"Object {key} not found in {self.bucket_name(bucket)}", step="get"
            )
        if response.is_error:
            raise StoreUnavailableError(
                f"Download of {key} failed with status {response.status_code}",
                step="get",
            )
        return response

    def get_bytes(self, bucket: Bucket, key: str) -> bytes:
        return self._get(bucket, key).content

    def get_content_type(self, bucket: Bucket, key: str) -> Optional[str]:
        return self._get(bucket, key).headers.get("content-type")

    def exists(self, bucket: Bucket, key: str) -> bool:
        try:
            response = self.client.head(self._object_url(bucket, key), headers=self.auth_headers)
        except httpx.HTTPError as e:
            raise StoreUnavailableError(
                f"Existence check for {key} failed: {e}", step="exists"
            ) from e
        if response.is_success:
            return True
        if _is_missing(response):
            return False
        raise StoreUnavailableError(
            f"Existence check for {key} failed with status {response.status_code}",
            step="exists",
        )

    def resolve_url(self, bucket: Bucket, key: str) -> str:
        return (
            f"{self.base_url}/storage/v1/object/public/"
            f"{quote(self.bucket_name(bucket))}/{quote(validate_key(key))}"
        )
