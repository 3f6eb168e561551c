"""
Local filesystem object store (file:// URIs).

Structure:
    {root}/
    ├── campaign-files/         # input bucket
    │   └── {owner}/{key}
    ├── campaign-outputs/       # output bucket
    │   └── {owner}/{key}
    └── .meta/{bucket}/{key}.json   # content type per object

Public URLs point at the API's ``/storage/v1/object/public`` route, which
serves objects from this tree.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import httpx

from ..errors import ConflictError, InvalidKeyError, NotFoundError, StoreUnavailableError
from .base import Bucket, ObjectStore, StoredObject, validate_key

logger = logging.getLogger(__name__)

PUBLIC_OBJECT_PATH = "/storage/v1/object/public"


class FileObjectStore(ObjectStore):
    """Object store backed by a local directory."""

    def __init__(self, root: Path, public_base_url: str, **kwargs):
        super().__init__(**kwargs)
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        for bucket in Bucket:
            self._bucket_root(bucket).mkdir(parents=True, exist_ok=True)

    def _bucket_root(self, bucket: Bucket) -> Path:
        return self.root / self.bucket_name(bucket)

    def _object_path(self, bucket: Bucket, key: str) -> Path:
        return self._bucket_root(bucket) / validate_key(key)

    def _meta_path(self, bucket: Bucket, key: str) -> Path:
        return self.root / ".meta" / self.bucket_name(bucket) / f"{validate_key(key)}.json"

    def put(
        self,
        bucket: Bucket,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        allow_overwrite: bool = False,
    ) -> StoredObject:
        path = self._object_path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                if allow_overwrite:
                    os.replace(tmp_name, path)
                else:
                    # link() refuses an existing target, so exactly one writer wins
                    os.link(tmp_name, path)
            finally:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
        except FileExistsError as e:
            raise ConflictError(
                f"Object {key} already exists in {self.bucket_name(bucket)}",
                step="put",
            ) from e
        except OSError as e:
            logger.error("Failed to write %s/%s: %s", self.bucket_name(bucket), key, e)
            raise StoreUnavailableError(f"Failed to write {key}: {e}", step="put") from e

        meta_path = self._meta_path(bucket, key)
        try:
            meta_path.parent.mkdir(parents=True, exist_ok=True)
            meta_path.write_text(
                json.dumps({"content_type": content_type, "size_bytes": len(data)}),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error("Failed to write metadata for %s: %s", key, e)
            # A failed put leaves nothing behind, so a retry can claim the key
            try:
                path.unlink(missing_ok=True)
            except OSError as unlink_error:
                logger.error("Failed to remove %s after metadata failure: %s", key, unlink_error)
            raise StoreUnavailableError(
                f"Stored {key} but failed to record its metadata: {e}", step="put"
            ) from e

        return StoredObject(
            bucket=Bucket(bucket),
            key=key,
            size_bytes=len(data),
            content_type=content_type,
        )

    def get_bytes(self, bucket: Bucket, key: str) -> bytes:
        path = self._object_path(bucket, key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(
                f"Object {key} not found in {self.bucket_name(bucket)}", step="get"
            ) from e
        except OSError as e:
            raise StoreUnavailableError(f"Failed to read {key}: {e}", step="get") from e

    def get_content_type(self, bucket: Bucket, key: str) -> Optional[str]:
        meta_path = self._meta_path(bucket, key)
        try:
            return json.loads(meta_path.read_text(encoding="utf-8")).get("content_type")
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise StoreUnavailableError(
                f"Failed to read metadata for {key}: {e}", step="get"
            ) from e

    def exists(self, bucket: Bucket, key: str) -> bool:
        return self._object_path(bucket, key).is_file()

    def resolve_url(self, bucket: Bucket, key: str) -> str:
        validate_key(key)
        return (
            f"{self.public_base_url}{PUBLIC_OBJECT_PATH}/"
            f"{quote(self.bucket_name(bucket))}/{quote(key)}"
        )


class LocalObjectTransport(httpx.BaseTransport):
    """httpx transport that answers public object URLs straight from disk.

    Lets the filesystem backend's URLs be dereferenced without a running API
    server. Anything that is not a GET on a public object path is a 404.
    """

    def __init__(self, store: FileObjectStore):
        self.store = store

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        prefix = PUBLIC_OBJECT_PATH + "/"
        path = request.url.path
        if request.method != "GET" or not path.startswith(prefix):
            return httpx.Response(404, json={"error": "Not found"})

        bucket_name, _, key = path[len(prefix):].partition("/")
        bucket = self.store.bucket_for_name(bucket_name)
        if bucket is None:
            return httpx.Response(404, json={"error": "Bucket not found"})

        try:
            data = self.store.get_bytes(bucket, key)
            content_type = self.store.get_content_type(bucket, key)
        except NotFoundError:
            return httpx.Response(404, json={"error": "Object not found"})
        except InvalidKeyError as e:
            return httpx.Response(400, json={"error": e.message})

        return httpx.Response(
            200,
            content=data,
            headers={"content-type": content_type or "application/octet-stream"},
        )
