"""
Artifact pipeline: derive an output artifact from an uploaded input.

The derivation is a byte-for-byte copy. The source is read back through its
public URL, exactly as any other consumer would read it, and written to the
output bucket under a key derived from the input key.

Idempotency is enforced by the output bucket's no-overwrite put, not by a
lock: of two concurrent generations for one input exactly one put succeeds,
the other sees AlreadyGeneratedError. That holds across processes, which an
in-process lock would not.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .errors import (
    AlreadyGeneratedError,
    ConflictError,
    DestinationUnresolvableError,
    SourceNotFoundError,
    SourceUnreachableError,
    SourceUnresolvableError,
    StoreUnavailableError,
    UnauthorizedError,
    WorkspaceError,
)
from .retry import NO_RETRY, RetryPolicy, call_with_retry
from .storage import Bucket, ObjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedObject:
    """Bytes read from a resolved URL."""

    url: str
    data: bytes
    content_type: Optional[str] = None


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of a successful generation."""

    source_key: str
    destination_key: str
    public_url: str
    size_bytes: int
    content_type: Optional[str] = None
    already_existed: bool = False


def key_owner(key: str) -> str:
    """First path segment of an owner-prefixed key."""
    return key.split("/", 1)[0]


def derive_destination_key(input_key: str, owner: str) -> str:
    """Output key for an input key: ``{owner}/{basename(input_key)}``.

    Any intermediate path segments of the input key are dropped.
    """
    basename = input_key.rsplit("/", 1)[-1]
    if not basename or not owner:
        raise SourceUnresolvableError(
            f"Cannot derive an output key from {input_key!r}",
            step="derive_destination",
        )
    return f"{owner}/{basename}"


class ArtifactPipeline:
    """Produces the output artifact for one input key."""

    def __init__(
        self,
        store: ObjectStore,
        http_client: httpx.Client,
        retry_policy: RetryPolicy = NO_RETRY,
    ):
        self.store = store
        self.http_client = http_client
        self.retry_policy = retry_policy

    def fetch_source(self, url: str) -> FetchedObject:
        """Dereference a source URL.

        Raises:
            SourceUnreachableError: transport error, timeout or 5xx (retryable)
            SourceNotFoundError: any other non-success status
        """
        try:
            response = self.http_client.get(url)
        except httpx.HTTPError as e:
            logger.error("Network error fetching source %s: %s", url, e)
            raise SourceUnreachableError(
                f"Failed to download source file: {e}", step="fetch_source"
            ) from e

        if response.status_code >= 500:
            logger.error("Source download returned status %s", response.status_code)
            raise SourceUnreachableError(
                f"Source download returned status {response.status_code}",
                step="fetch_source",
            )
        if response.is_error:
            logger.error("Source download returned status %s", response.status_code)
            raise SourceNotFoundError(
                f"Source file not found (status {response.status_code})",
                step="fetch_source",
            )

        return FetchedObject(
            url=url,
            data=response.content,
            content_type=response.headers.get("content-type"),
        )

    def generate(self, input_key: str, owner: str) -> GenerationResult:
        """Copy the input object into the output bucket.

        The destination key is always derived from ``input_key`` and
        ``owner``; callers cannot supply one.

        Raises:
            UnauthorizedError: input key is not under ``owner``'s prefix
            SourceUnresolvableError, SourceUnreachableError, SourceNotFoundError
            AlreadyGeneratedError: output key already exists
            StoreUnavailableError: output put failed in transport
            DestinationUnresolvableError: stored, but no URL could be built
        """
        if not owner or key_owner(input_key) != owner:
            raise UnauthorizedError(
                f"Input {input_key!r} does not belong to {owner!r}", step="authorize"
            )

        # 1) Public URL for the source
        try:
            source_url = self.store.resolve_url(Bucket.INPUTS, input_key)
        except WorkspaceError as e:
            logger.error("Error getting URL for source %s: %s", input_key, e)
            raise SourceUnresolvableError(
                f"Could not get source URL: {e.message}", step="resolve_source"
            ) from e

        # 2) Source bytes
        fetched = call_with_retry(lambda: self.fetch_source(source_url), self.retry_policy)

        # 3) Destination key
        destination_key = derive_destination_key(input_key, owner)

        # 4) Upload without overwrite
        try:
            stored = self.store.put(
                Bucket.OUTPUTS,
                destination_key,
                fetched.data,
                content_type=fetched.content_type,
                allow_overwrite=False,
            )
        except ConflictError as e:
            raise AlreadyGeneratedError(
                f"Output {destination_key} has already been generated",
                destination_key=destination_key,
                step="store_output",
            ) from e
        except StoreUnavailableError as e:
            logger.error("Error uploading output %s: %s", destination_key, e)
            raise StoreUnavailableError(e.message, step="store_output") from e

        # 5) Public URL for the output
        public_url = self._resolve_destination(destination_key)

        logger.info("Generated %s from %s (%d bytes)", destination_key, input_key, stored.size_bytes)
        return GenerationResult(
            source_key=input_key,
            destination_key=destination_key,
            public_url=public_url,
            size_bytes=stored.size_bytes,
            content_type=stored.content_type,
        )

    def generate_if_absent(self, input_key: str, owner: str) -> GenerationResult:
        """Like ``generate`` but returns the existing output on conflict.

        A conflict means this or another caller already produced the output,
        which satisfies the request either way.
        """
        try:
            return self.generate(input_key, owner)
        except AlreadyGeneratedError as e:
            logger.info("Output %s already exists, returning it", e.destination_key)
            return GenerationResult(
                source_key=input_key,
                destination_key=e.destination_key,
                public_url=self._resolve_destination(e.destination_key),
                size_bytes=0,
                already_existed=True,
            )

    def resolve_output_url(self, destination_key: str) -> str:
        """Resolve the public URL of an output; safe to retry on its own."""
        return self._resolve_destination(destination_key)

    def _resolve_destination(self, destination_key: str) -> str:
        try:
            return self.store.resolve_url(Bucket.OUTPUTS, destination_key)
        except WorkspaceError as e:
            logger.error("Error getting URL for destination %s: %s", destination_key, e)
            raise DestinationUnresolvableError(
                f"Could not get final URL: {e.message}",
                destination_key=destination_key,
                step="resolve_destination",
            ) from e
