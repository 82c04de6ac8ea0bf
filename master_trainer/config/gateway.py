# master_trainer/config/gateway.py
"""
Remote backend connection singleton and lightweight health check.

This module intentionally:
  - Creates the underlying httpx.AsyncClient lazily, so importing it never
    touches the network or an event loop.
  - Keeps the bearer token in a CredentialStore that the gateway clears on a
    401 response (the "log out and go back to login" policy).
  - Exposes `.client`, `.health_check()`, `.diagnostics()` and `.aclose()`.
  - Avoids logging secrets; diagnostics return structural info only.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from urllib.parse import urlparse

import httpx

from master_trainer.config.settings import settings

logger = logging.getLogger(__name__)

# http(s)://host[:port][/path]
_API_URL_RE = re.compile(r"^https?://[A-Za-z0-9\-\.]+(:\d+)?(/[^\s]*)?$")


class CredentialStore:
    """In-memory holder for the bearer token sent to the backend."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set(self, token: Optional[str]) -> None:
        self._token = token or None

    def clear(self) -> None:
        if self._token:
            logger.info("Clearing stored backend credentials")
        self._token = None

    def auth_headers(self) -> Dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}


class GatewayConnection:
    """
    Lightweight wrapper around the httpx `AsyncClient` used to reach the backend.

    Use:
        from master_trainer.config.gateway import gateway_connection
        client = gateway_connection.client
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        credentials: Optional[CredentialStore] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.trainer_api_url).rstrip("/")
        self.credentials = credentials or CredentialStore(settings.trainer_api_token)
        self.timeout = timeout if timeout is not None else settings.trainer_api_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not self._validate_url(self.base_url):
            logger.error(
                "Backend URL format invalid: %r. Expected http(s)://host[:port]/path",
                self.base_url,
            )

    def _validate_url(self, url: Optional[str]) -> bool:
        return bool(url and _API_URL_RE.match(url))

    @property
    def client(self) -> httpx.AsyncClient:
        """
        Return the underlying AsyncClient, creating it on first use.

        Note: callers should not assume network connectivity; call
        `health_check()` to verify runtime connectivity.
        """
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
            logger.info(
                "Initialized backend client for host=%s", urlparse(self.base_url).netloc
            )
        return self._client

    def diagnostics(self) -> Dict[str, Any]:
        """
        Return non-sensitive diagnostics about the connection configuration.
        Safe to include in logs or in API responses.
        """
        diag: Dict[str, Any] = {
            "configured": self._validate_url(self.base_url),
            "client_present": self._client is not None and not self._client.is_closed,
            "authenticated": bool(self.credentials.token),
            "host": None,
        }
        try:
            diag["host"] = urlparse(self.base_url).netloc
        except Exception:
            diag["host"] = "parse-error"
        return diag

    async def health_check(self, timeout_seconds: Optional[float] = None) -> bool:
        """
        Probe `GET /health` on the backend.

        Any exception or non-success status is reported as unhealthy rather
        than raised, so startup and /health can degrade gracefully.
        """
        if not self._validate_url(self.base_url):
            logger.debug("Backend health_check: no valid URL configured")
            return False
        timeout = timeout_seconds if timeout_seconds is not None else settings.health_check_timeout
        try:
            resp = await self.client.get("/health", timeout=timeout)
        except httpx.HTTPError as exc:
            logger.warning("Backend health_check failed: %s", exc)
            return False
        if resp.status_code >= 400:
            logger.warning("Backend health_check HTTP status: %s", resp.status_code)
            return False
        return True

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.info("Backend client closed")
        self._client = None


# Single module-level instance for easy import
gateway_connection = GatewayConnection()
