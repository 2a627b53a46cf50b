"""Identity and session provider backed by Supabase Auth.

The sync engine only consumes the three queries of
``SessionProviderProtocol``; ``require_identity`` is the pass-level check it
runs before touching the remote store.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any

from .core.async_utils import run_sync
from .core.client import SupabaseClient
from .errors import IdentityError, RemoteStoreError
from .store.protocols import SessionProviderProtocol
from .sync.models import Identity, Session

logger = logging.getLogger(__name__)


def _jwt_expiry(token: str) -> float | None:
    """Return the ``exp`` claim of a JWT, or ``None`` if it cannot be read."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (ValueError, TypeError):
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    return float(exp) if isinstance(exp, (int, float)) else None


def _identity_from_user(user: dict[str, Any] | None) -> Identity | None:
    if not user or not user.get("id"):
        return None
    return Identity(id=str(user["id"]), email=user.get("email"))


class SessionProvider:
    """Session holder for one signed-in user.

    Args:
        client: HTTP client used for auth calls.  Its bearer token is kept
            in step with the current session.
        access_token: Initial access token, if a session already exists.
        refresh_token: Initial refresh token.
    """

    def __init__(
        self,
        client: SupabaseClient,
        access_token: str | None = None,
        refresh_token: str | None = None,
    ) -> None:
        self._client = client
        self._identity: Identity | None = None
        self._session: Session | None = None
        if access_token:
            self._session = Session(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=_jwt_expiry(access_token),
            )
            client.set_access_token(access_token)

    async def get_current_identity(self) -> Identity | None:
        if self._identity is not None:
            return self._identity
        if self._session is None:
            return None
        user = await run_sync(self._client.get_user)
        self._identity = _identity_from_user(user)
        return self._identity

    async def get_current_session(self) -> Session | None:
        return self._session

    async def refresh_session(self) -> Session:
        """Exchange the refresh token for a new session.

        Raises:
            IdentityError: If there is no refresh token or the auth service
                rejects it.
        """
        refresh_token = self._session.refresh_token if self._session else None
        if not refresh_token:
            raise IdentityError("No refresh token available. Please log in again.")
        try:
            data = await run_sync(self._client.refresh_session, refresh_token)
        except RemoteStoreError as exc:
            raise IdentityError(
                "Session expired and could not be refreshed. Please log in again."
            ) from exc

        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = time.time() + float(data["expires_in"])
        identity = _identity_from_user(data.get("user"))
        self._session = Session(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_at=expires_at,
            user=identity,
        )
        if identity is not None:
            self._identity = identity
        logger.info("Session refreshed successfully")
        return self._session

    def sign_out(self) -> None:
        self._session = None
        self._identity = None
        self._client.set_access_token(None)


async def require_identity(provider: SessionProviderProtocol) -> Identity:
    """Return the current identity, refreshing an expired session first.

    Raises:
        IdentityError: If no session or identity exists, or the session is
            expired and cannot be refreshed.
    """
    session = await provider.get_current_session()
    if session is None:
        raise IdentityError("No valid session found. Please log in again.")
    if session.is_expired():
        logger.info("Session expired, attempting to refresh...")
        try:
            await provider.refresh_session()
        except IdentityError:
            raise
        except Exception as exc:
            raise IdentityError(
                "Session expired and could not be refreshed. Please log in again."
            ) from exc

    identity = await provider.get_current_identity()
    if identity is None:
        raise IdentityError("No user logged in")
    return identity
