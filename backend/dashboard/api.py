"""
HTTP client for the Hive admin API.

- Bearer token on every request
- 401: clear the local session, call the re-authentication hook, raise SessionExpired
- 419 (stale CSRF): refresh credentials and retry once, silently
- Other errors are mapped to dashboard exceptions from status + "code"

Nothing else is retried.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from .config import DashboardConfig
from .envelope import decode_json
from .exceptions import (
    DashboardError,
    RequestFailed,
    SearchUnavailable,
    SessionExpired,
    ValidationError,
    WorkspaceNotFound,
)

logger = logging.getLogger(__name__)

CSRF_STALE_STATUS = 419


@dataclass
class Session:
    access: Optional[str] = None
    refresh: Optional[str] = None
    user: Optional[dict] = None

    @property
    def authenticated(self) -> bool:
        return self.access is not None

    def clear(self) -> None:
        self.access = None
        self.refresh = None
        self.user = None


def _error_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def error_from_response(response: httpx.Response) -> DashboardError:
    """Map a failed response onto the matching dashboard exception."""
    body = _error_body(response)
    detail = body.get("detail") or body.get("message") or response.reason_phrase or "Request failed"
    code = body.get("code")
    status = response.status_code

    if status == 400:
        if not isinstance(detail, str):
            detail = "Invalid request."
        return ValidationError(detail, field=body.get("field"), status=status)
    if status == 503 or code == "search_unavailable":
        return SearchUnavailable(detail, status=status)
    if status == 404 and code == "workspace_not_found":
        return WorkspaceNotFound(detail, status=status)
    return RequestFailed(str(detail), status=status)


class ApiClient:
    """Thin async wrapper around httpx.AsyncClient for the dashboard."""

    def __init__(
        self,
        config: DashboardConfig,
        session: Optional[Session] = None,
        on_session_expired: Optional[Callable[[], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.session = session or Session()
        self.on_session_expired = on_session_expired
        self.client = httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.table_timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    # -- core ----------------------------------------------------------------

    def _headers(self, authenticate: bool) -> dict:
        if authenticate and self.session.access:
            return {"Authorization": f"Bearer {self.session.access}"}
        return {}

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        timeout: Optional[float] = None,
        authenticate: bool = True,
        retry_stale_csrf: bool = True,
    ) -> httpx.Response:
        try:
            response = await self.client.request(
                method,
                path,
                params=params,
                json=json,
                headers=self._headers(authenticate),
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.TimeoutException as exc:
            logger.warning(f"Request timed out: {method} {path}")
            raise RequestFailed("The server took too long to respond. Please try again.") from exc
        except httpx.HTTPError as exc:
            logger.warning(f"Request failed: {method} {path}: {exc}")
            raise RequestFailed("Could not reach the server.") from exc

        if response.status_code == 401:
            self.expire_session()
            raise SessionExpired("Your session has expired. Please sign in again.", status=401)

        if response.status_code == CSRF_STALE_STATUS and retry_stale_csrf:
            logger.info(f"Stale credentials on {method} {path}; refreshing and retrying once")
            await self.refresh_credentials()
            return await self.request(
                method, path, params=params, json=json, timeout=timeout,
                authenticate=authenticate, retry_stale_csrf=False,
            )

        if response.status_code >= 400:
            raise error_from_response(response)
        return response

    def expire_session(self) -> None:
        self.session.clear()
        if self.on_session_expired is not None:
            self.on_session_expired()

    # -- auth ----------------------------------------------------------------

    async def login(self, email: str, password: str) -> dict:
        response = await self.request(
            "POST", "login/", json={"email": email, "password": password}, authenticate=False
        )
        body = decode_json(response)
        self.session.access = body["access"]
        self.session.refresh = body["refresh"]
        self.session.user = body.get("user")
        return body

    async def logout(self) -> None:
        if self.session.refresh:
            try:
                await self.request("POST", "logout/", json={"refresh": self.session.refresh})
            finally:
                self.session.clear()
        else:
            self.session.clear()

    async def refresh_credentials(self) -> None:
        if not self.session.refresh:
            self.expire_session()
            raise SessionExpired("Your session has expired. Please sign in again.", status=401)
        response = await self.request(
            "POST",
            "auth/refresh/",
            json={"refresh": self.session.refresh},
            authenticate=False,
            retry_stale_csrf=False,
        )
        body = decode_json(response)
        self.session.access = body["access"]
        # Rotation hands out a new refresh token as well.
        self.session.refresh = body.get("refresh", self.session.refresh)

    async def check_workspace(self) -> dict:
        response = await self.request("GET", "check/", authenticate=False)
        return decode_json(response)

    # -- tables & exports ----------------------------------------------------

    async def get_json(self, path: str, params: Optional[dict] = None, timeout: Optional[float] = None) -> dict:
        response = await self.request("GET", path, params=params, timeout=timeout)
        return decode_json(response)

    async def get_table(self, path: str, params: dict) -> dict:
        return await self.get_json(path, params, timeout=self.config.table_timeout)

    async def get_export(self, path: str, params: dict) -> httpx.Response:
        return await self.request("GET", path, params=params, timeout=self.config.export_timeout)
