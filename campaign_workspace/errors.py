"""
Error taxonomy for Campaign Workspace.

Every failure raised by the store, repository, pipeline and workspace layers is
a ``WorkspaceError`` subclass. The HTTP boundary and the CLI translate them to
status codes and messages; nothing below them does.
"""

from typing import Any, Dict, Optional


class WorkspaceError(Exception):
    """Base class for all workspace failures."""

    code = "workspace_error"
    retryable = False

    def __init__(self, message: str, step: Optional[str] = None):
        self.message = message
        self.step = step
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.step:
            payload["step"] = self.step
        return payload


class ValidationError(WorkspaceError):
    """A required field is empty or malformed."""

    code = "validation_error"


class InvalidKeyError(ValidationError):
    """An object key cannot be addressed in a bucket."""

    code = "invalid_key"


class UnauthorizedError(WorkspaceError):
    """The caller does not own the object it is acting on."""

    code = "unauthorized"


class NotFoundError(WorkspaceError):
    code = "not_found"


class ConflictError(WorkspaceError):
    """The object key is already taken and overwrite was not allowed."""

    code = "conflict"


class AlreadyGeneratedError(ConflictError):
    """The output artifact for this input already exists.

    On a retried request this is ambiguous: the earlier attempt may have
    succeeded without the caller seeing it.
    """

    code = "already_generated"

    def __init__(self, message: str, destination_key: str, step: Optional[str] = None):
        self.destination_key = destination_key
        super().__init__(message, step=step)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["destination_key"] = self.destination_key
        return payload


class StoreUnavailableError(WorkspaceError):
    """Transport failure or timeout talking to a blob or metadata store."""

    code = "store_unavailable"
    retryable = True


class SourceUnresolvableError(WorkspaceError):
    """No URL could be built for the source object."""

    code = "source_unresolvable"


class SourceUnreachableError(WorkspaceError):
    """The source URL could not be fetched (network error or 5xx)."""

    code = "source_unreachable"
    retryable = True


class SourceNotFoundError(WorkspaceError):
    code = "source_not_found"


class DestinationUnresolvableError(WorkspaceError):
    """The output was stored but no URL could be built for it.

    The bytes are not rolled back; resolving the URL again is enough.
    """

    code = "destination_unresolvable"

    def __init__(self, message: str, destination_key: str, step: Optional[str] = None):
        self.destination_key = destination_key
        super().__init__(message, step=step)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["destination_key"] = self.destination_key
        return payload


class PartialSuccessError(WorkspaceError):
    """One step of a multi-step workflow completed and the next did not."""

    code = "partial_success"

    def __init__(
        self,
        message: str,
        completed_step: str,
        failed_step: str,
        storage_key: Optional[str] = None,
        cause: Optional[WorkspaceError] = None,
    ):
        self.completed_step = completed_step
        self.failed_step = failed_step
        self.storage_key = storage_key
        self.cause = cause
        super().__init__(message, step=failed_step)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update(
            {
                "completed_step": self.completed_step,
                "failed_step": self.failed_step,
                "storage_key": self.storage_key,
            }
        )
        if self.cause is not None:
            payload["cause"] = self.cause.code
        return payload


class AuthenticationError(WorkspaceError):
    """Missing or invalid bearer token."""

    code = "unauthenticated"


class AuthUnavailableError(WorkspaceError):
    """The external auth service could not be reached."""

    code = "auth_unavailable"
    retryable = True
