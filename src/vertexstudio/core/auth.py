"""Access token providers for the Vertex AI REST API.

The remote API expects an OAuth2 bearer token.  Production uses
:class:`ServiceAccountTokenProvider`, which delegates entirely to
``google-auth`` and the credential file resolved at startup.  Tests and
callers that already hold a token use :class:`StaticTokenProvider`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path

import google.auth
import google.auth.exceptions
from google.auth.transport.requests import Request

from .errors import AuthenticationError

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class StaticTokenProvider:
    """Token provider that always returns the same token."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def get_token(self) -> str:
        return self._token


class ServiceAccountTokenProvider:
    """Token provider backed by a Google credential file.

    Credentials are loaded lazily on first use and refreshed only when the
    cached token is missing or expired.  ``google-auth`` refreshes
    synchronously over ``requests``, so the refresh runs in a worker thread
    to keep the event loop free.

    Args:
        credentials_file: Service account (or authorized user) JSON file.
        scopes: OAuth2 scopes to request.
    """

    def __init__(self, credentials_file: Path | str, scopes: list[str] | None = None) -> None:
        self.credentials_file = Path(credentials_file)
        self.scopes = scopes or [CLOUD_PLATFORM_SCOPE]
        self._credentials = None
        self._lock = threading.Lock()

    def _refresh_token(self) -> str | None:
        with self._lock:
            if self._credentials is None:
                self._credentials, _ = google.auth.load_credentials_from_file(
                    str(self.credentials_file), scopes=self.scopes
                )
                logger.info(f"Loaded credentials from {self.credentials_file}")
            if not self._credentials.valid:
                self._credentials.refresh(Request())
            return self._credentials.token

    async def get_token(self) -> str:
        """Return a valid bearer token.

        Raises:
            AuthenticationError: If the credentials cannot produce a token.
        """
        try:
            token = await asyncio.to_thread(self._refresh_token)
        except google.auth.exceptions.GoogleAuthError as e:
            raise AuthenticationError(f"Failed to obtain access token: {e}") from e

        if not token:
            raise AuthenticationError("Failed to obtain access token")
        return token
