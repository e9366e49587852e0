"""HTTP client for the Reglo backend."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from reglo_client.config import ApiConfig
from reglo_client.errors import (
    BackendAuthError,
    BackendConnectionError,
    BackendRequestError,
    DomainConflict,
)
from reglo_client.storage.session_storage import AuthStorage

logger = logging.getLogger(__name__)

COMPANY_HEADER = "x-reglo-company-id"


def build_url(base_url: str, path: str) -> str:
    """Join base URL and path, collapsing a duplicated ``/api`` prefix.

    Examples:
        >>> build_url("https://app.reglo.it/api/", "/api/mobile/me")
        'https://app.reglo.it/api/mobile/me'
        >>> build_url("https://app.reglo.it", "mobile/me")
        'https://app.reglo.it/mobile/me'
    """
    trimmed = base_url.rstrip("/")
    with_slash = path if path.startswith("/") else f"/{path}"
    if trimmed.endswith("/api") and with_slash.startswith("/api/"):
        return f"{trimmed}{with_slash[len('/api'):]}"
    return f"{trimmed}{with_slash}"


def clean_params(params: Optional[dict[str, Any]]) -> Optional[dict[str, str]]:
    """Drop ``None`` values and stringify the rest."""
    if not params:
        return None
    cleaned = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        else:
            cleaned[key] = str(value)
    return cleaned or None


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return fallback


class RegloApiClient:
    """Authenticated JSON transport with envelope unwrapping."""

    def __init__(
        self,
        config: ApiConfig,
        auth_storage: AuthStorage,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.auth_storage = auth_storage
        self.http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=config.connect_timeout_sec,
                read=config.read_timeout_sec,
                write=10.0,
                pool=10.0,
            ),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    def _headers(self, with_body: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if with_body:
            headers["Content-Type"] = "application/json"
        token = self.auth_storage.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        company_id = self.auth_storage.get_active_company_id()
        if company_id:
            headers[COMPANY_HEADER] = company_id
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        url = build_url(self.config.base_url, path)
        try:
            response = await self.http.request(
                method,
                url,
                params=clean_params(params),
                json=json,
                headers=self._headers(json is not None),
            )
        except httpx.TimeoutException as exc:
            raise BackendConnectionError(f"backend_timeout: Request to {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise BackendConnectionError(f"backend_connection_failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code in {401, 403}:
            raise BackendAuthError(_error_message(payload, "backend_auth_failed"))
        if response.status_code == 409:
            raise DomainConflict(_error_message(payload, "backend_conflict"))
        if response.status_code >= 400:
            logger.error("Reglo API HTTP error %s on %s %s", response.status_code, method, path)
            raise BackendRequestError(
                _error_message(payload, f"backend_error_{response.status_code}"),
                status=response.status_code,
                payload=payload,
            )

        if isinstance(payload, dict) and "success" in payload:
            if not payload["success"]:
                logger.error("Reglo API application error on %s %s: %s", method, path, payload)
                raise BackendRequestError(
                    _error_message(payload, "Request failed"),
                    status=response.status_code,
                    payload=payload,
                )
            return payload.get("data")
        return payload
