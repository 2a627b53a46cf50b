import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..errors import RemoteStoreError

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Blocking client for the Supabase REST (PostgREST) and Auth APIs.

    All methods block; async callers go through ``run_sync``.  Each worker
    thread gets its own ``requests.Session``.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self._access_token: str | None = config.access_token
        self.rest_url = f"{config.supabase_url.rstrip('/')}/rest/v1"
        self.auth_url = f"{config.supabase_url.rstrip('/')}/auth/v1"

    @property
    def session(self) -> requests.Session:
        """Current thread's HTTP session."""
        return self._get_session()

    def set_access_token(self, access_token: str | None) -> None:
        """Use *access_token* as the bearer for subsequent requests."""
        self._access_token = access_token

    def _get_session(self) -> requests.Session:
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "apikey": self.config.supabase_key,
                "Content-Type": "application/json",
            }
        )
        return session

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        token = self._access_token or self.config.supabase_key
        headers = {"Authorization": f"Bearer {token}"}
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body (``None`` if empty).
        """
        try:
            response = self._get_session().request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(prefer),
                timeout=(10, self.config.request_timeout),
            )
        except requests.RequestException as exc:
            raise RemoteStoreError(f"{method} {url} failed: {exc}") from exc

        if response.status_code >= 400:
            raise RemoteStoreError(
                f"{method} {url} returned {response.status_code}: "
                f"{_error_message(response)}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def get_user(self) -> dict[str, Any] | None:
        """
        Return the user owning the current access token, or None if the
        token is missing or rejected.
        """
        if not self._access_token:
            return None
        try:
            return self._request("GET", f"{self.auth_url}/user")
        except RemoteStoreError as exc:
            if exc.status_code in (401, 403):
                logger.info("Access token rejected by auth service")
                return None
            raise

    def refresh_session(self, refresh_token: str) -> dict[str, Any]:
        """
        Exchange *refresh_token* for a new session payload.
        """
        data = self._request(
            "POST",
            f"{self.auth_url}/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        if not data or "access_token" not in data:
            raise RemoteStoreError("Token refresh returned no session")
        self.set_access_token(data["access_token"])
        return data

    # ------------------------------------------------------------------
    # PostgREST
    # ------------------------------------------------------------------

    def select(
        self, table: str, params: dict[str, str] | None = None
    ) -> list[dict[str, Any]]:
        """
        Read rows from *table*.  *params* are PostgREST query parameters
        (``select``, ``user_id=eq.<id>``...).
        """
        return self._request("GET", f"{self.rest_url}/{table}", params=params) or []

    def insert(
        self, table: str, rows: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """
        Insert *rows* and return the created rows.
        """
        return (
            self._request(
                "POST",
                f"{self.rest_url}/{table}",
                json=rows,
                prefer="return=representation",
            )
            or []
        )

    def update(
        self, table: str, filters: dict[str, str], data: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """
        Patch rows matching *filters* and return the updated rows.
        """
        return (
            self._request(
                "PATCH",
                f"{self.rest_url}/{table}",
                params=filters,
                json=data,
                prefer="return=representation",
            )
            or []
        )

    def delete(self, table: str, filters: dict[str, str]) -> None:
        """
        Delete rows matching *filters*.
        """
        if not filters:
            raise ValueError("Refusing to delete without filters")
        self._request("DELETE", f"{self.rest_url}/{table}", params=filters)


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("msg") or body)
    return str(body)
