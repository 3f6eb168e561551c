"""
Object store abstraction for campaign artifacts.

Two logical buckets are addressed through one interface: ``inputs`` holds
uploaded files, ``outputs`` holds derived artifacts. Backends map the logical
bucket to a configured physical bucket name.

Design principle: treat storage as a URI, not a boolean.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..errors import InvalidKeyError, StoreUnavailableError

logger = logging.getLogger(__name__)

CONFIRM_STEP = "confirm_upload"


class Bucket(str, Enum):
    """Logical buckets known to the workspace."""

    INPUTS = "inputs"
    OUTPUTS = "outputs"


@dataclass(frozen=True)
class StoredObject:
    """Result of a successful put."""

    bucket: Bucket
    key: str
    size_bytes: int
    content_type: Optional[str] = None
    confirmed: bool = False


def validate_key(key: str) -> str:
    """Return ``key`` if it can be addressed in a bucket, else raise InvalidKeyError."""
    if not key or not key.strip():
        raise InvalidKeyError("Object key must not be empty")
    if key.startswith("/"):
        raise InvalidKeyError(f"Object key must be relative: {key!r}")
    if "\\" in key:
        raise InvalidKeyError(f"Object key must not contain backslashes: {key!r}")
    for segment in key.split("/"):
        if segment in ("", ".", ".."):
            raise InvalidKeyError(f"Object key has an empty or relative segment: {key!r}")
    return key


class ObjectStore(ABC):
    """Abstract base class for blob storage backends.

    No retries happen at this layer; callers own the retry policy.
    """

    def __init__(
        self,
        input_bucket: str,
        output_bucket: str,
        confirm_attempts: int = 5,
        confirm_interval_seconds: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.bucket_names = {Bucket.INPUTS: input_bucket, Bucket.OUTPUTS: output_bucket}
        self.confirm_attempts = confirm_attempts
        self.confirm_interval_seconds = confirm_interval_seconds
        self._sleep = sleep

    def bucket_name(self, bucket: Bucket) -> str:
        """Physical bucket name for a logical bucket."""
        return self.bucket_names[Bucket(bucket)]

    def bucket_for_name(self, name: str) -> Optional[Bucket]:
        """Logical bucket for a physical bucket name, if it is one of ours."""
        for bucket, bucket_name in self.bucket_names.items():
            if bucket_name == name:
                return bucket
        return None

    @abstractmethod
    def put(
        self,
        bucket: Bucket,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        allow_overwrite: bool = False,
    ) -> StoredObject:
        """Store bytes at key.

        Raises:
            ConflictError: key exists and ``allow_overwrite`` is false
            StoreUnavailableError: transport error or timeout
        """
        pass

    @abstractmethod
    def get_bytes(self, bucket: Bucket, key: str) -> bytes:
        """Return the object's bytes.

        Raises:
            NotFoundError: no object at key
            StoreUnavailableError: transport error or timeout
        """
        pass

    @abstractmethod
    def get_content_type(self, bucket: Bucket, key: str) -> Optional[str]:
        """Return the content type recorded for an object, if any."""
        pass

    @abstractmethod
    def exists(self, bucket: Bucket, key: str) -> bool:
        """Return True if an object is readable at key."""
        pass

    @abstractmethod
    def resolve_url(self, bucket: Bucket, key: str) -> str:
        """Return a plain-HTTP URL for key.

        Existence is not checked; dereferencing the URL can still 404.
        """
        pass

    def put_then_confirm(
        self,
        bucket: Bucket,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        allow_overwrite: bool = False,
    ) -> StoredObject:
        """Put an object and return only once it is readable.

        Raises StoreUnavailableError if the object does not become visible
        within ``confirm_attempts`` checks.
        """
        stored = self.put(bucket, key, data, content_type, allow_overwrite)
        for attempt in range(1, self.confirm_attempts + 1):
            if self.exists(bucket, key):
                return StoredObject(
                    bucket=stored.bucket,
                    key=stored.key,
                    size_bytes=stored.size_bytes,
                    content_type=stored.content_type,
                    confirmed=True,
                )
            logger.debug(
                "Object %s/%s not visible yet (check %d/%d)",
                self.bucket_name(bucket),
                key,
                attempt,
                self.confirm_attempts,
            )
            if attempt < self.confirm_attempts:
                self._sleep(self.confirm_interval_seconds)

        raise StoreUnavailableError(
            f"Upload of {key} was accepted but never became readable",
            step=CONFIRM_STEP,
        )
