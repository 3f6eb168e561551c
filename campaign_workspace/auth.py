"""
Bearer-token authentication against the external auth service.

The auth service issues tokens and owns user identity; this module only asks
it who a token belongs to (``GET {auth_url}/user``).

In development with no AUTH_URL configured, the bearer token itself is taken
as the user id so the API can be exercised locally.
"""

import logging
from typing import Optional

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings, get_settings
from .errors import AuthenticationError, AuthUnavailableError, WorkspaceError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


class AuthClient:
    """Client for the auth service's user endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def get_user_id(self, token: str) -> str:
        """Return the id of the user a token was issued to.

        Raises:
            AuthenticationError: token rejected
            AuthUnavailableError: auth service unreachable or failing
        """
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            response = self.client.get(f"{self.base_url}/user", headers=headers)
        except httpx.HTTPError as e:
            logger.error("Auth service request failed: %s", e)
            raise AuthUnavailableError(f"Auth service unavailable: {e}", step="authenticate") from e

        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid or expired token", step="authenticate")
        if response.is_error:
            raise AuthUnavailableError(
                f"Auth service returned status {response.status_code}", step="authenticate"
            )

        try:
            user_id = response.json().get("id")
        except (ValueError, AttributeError):
            user_id = None
        if not user_id:
            raise AuthenticationError("Token did not resolve to a user", step="authenticate")
        return str(user_id)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """Resolve the caller's user id from the Authorization header."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(
            "Missing authorization. Include header: Authorization: Bearer <token>",
            step="authenticate",
        )
    token = credentials.credentials

    if not settings.auth_url:
        if settings.is_production:
            raise WorkspaceError(
                "Server misconfiguration: AUTH_URL must be set in production.",
                step="authenticate",
            )
        return token

    client = AuthClient(
        settings.auth_url,
        api_key=settings.auth_api_key,
        timeout=settings.auth_timeout_seconds,
    )
    try:
        return client.get_user_id(token)
    finally:
        client.close()
