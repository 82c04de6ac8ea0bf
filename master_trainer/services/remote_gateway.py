# master_trainer/services/remote_gateway.py
"""
Remote gateway: async REST client for the Master Trainer backend.

Every public method returns the backend envelope as a plain dict:
    {"success": bool, "data": ..., "message": "..."}

Transport problems never come back as an envelope. They raise:
  - GatewayError: network failure, non-2xx status, or a body that is not an
    envelope. `message` is safe to show to a user.
  - AuthorizationError (a GatewayError): HTTP 401. Stored credentials are
    cleared before raising, so the caller only needs to send the user to login.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from master_trainer.config.gateway import GatewayConnection, gateway_connection

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when the backend cannot be reached or answers with an error status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class AuthorizationError(GatewayError):
    """Raised on HTTP 401; credentials have already been cleared."""


def _compact(params: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in params.items() if v is not None and v != ""}


class RemoteGateway:

    def __init__(self, connection: Optional[GatewayConnection] = None):
        self.connection = connection or gateway_connection

    @property
    def credentials(self):
        return self.connection.credentials

    @staticmethod
    def _parse_body(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            return None

    @staticmethod
    def _error_message(body: Any, fallback: str) -> str:
        if isinstance(body, dict):
            msg = body.get("message") or body.get("error")
            if isinstance(msg, str) and msg:
                return msg
        return fallback

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        query = _compact(params or {})
        logger.debug("Gateway %s %s params=%s", method, path, list(query.keys()))
        try:
            resp = await self.connection.client.request(
                method,
                path,
                json=json,
                params=query or None,
                headers=self.credentials.auth_headers(),
            )
        except httpx.HTTPError as exc:
            logger.warning("Gateway %s %s failed: %s", method, path, exc)
            raise GatewayError(f"Network error while calling {path}: {exc}") from exc

        body = self._parse_body(resp)
        if resp.status_code == 401:
            self.credentials.clear()
            raise AuthorizationError(
                self._error_message(body, "Session expired, please log in again"),
                status_code=401,
                payload=body,
            )
        if resp.status_code >= 400:
            logger.warning("Gateway %s %s returned HTTP %s", method, path, resp.status_code)
            raise GatewayError(
                self._error_message(body, f"Backend returned HTTP {resp.status_code}"),
                status_code=resp.status_code,
                payload=body,
            )
        if not isinstance(body, dict) or "success" not in body:
            raise GatewayError(
                f"Unexpected response format from {path}",
                status_code=resp.status_code,
                payload=body,
            )
        return body

    # -----------------------
    # Auth
    # -----------------------
    async def login(self, email: str, password: str) -> Dict[str, Any]:
        body = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        data = body.get("data") or {}
        if body.get("success") and data.get("token"):
            self.credentials.set(data["token"])
            logger.info("Logged in to backend as %s", (data.get("user") or {}).get("id"))
        return body

    async def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        body = await self._request(
            "POST", "/auth/register", json={"name": name, "email": email, "password": password}
        )
        data = body.get("data") or {}
        if body.get("success") and data.get("token"):
            self.credentials.set(data["token"])
        return body

    async def logout(self) -> Dict[str, Any]:
        try:
            return await self._request("POST", "/auth/logout")
        finally:
            self.credentials.clear()

    async def get_me(self) -> Dict[str, Any]:
        return await self._request("GET", "/auth/me")

    # -----------------------
    # Scenarios
    # -----------------------
    async def list_scenarios(
        self,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = {
            "page": page,
            "pageSize": page_size,
            "category": category,
            "difficulty": difficulty,
            "search": search,
        }
        return await self._request("GET", "/scenarios", params=params)

    async def get_scenario(self, scenario_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/scenarios/{scenario_id}")

    async def get_recommended_scenarios(self) -> Dict[str, Any]:
        return await self._request("GET", "/scenarios/recommended")

    # -----------------------
    # Roleplay
    # -----------------------
    async def start_roleplay(self, scenario_id: str) -> Dict[str, Any]:
        return await self._request("POST", "/roleplay/start", json={"scenarioId": scenario_id})

    async def send_roleplay_message(self, session_id: str, content: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/roleplay/message", json={"sessionId": session_id, "content": content}
        )

    async def end_roleplay(self, session_id: str) -> Dict[str, Any]:
        return await self._request("POST", "/roleplay/end", json={"sessionId": session_id})

    async def get_roleplay_session(self, session_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/roleplay/session/{session_id}")

    async def get_roleplay_history(
        self, page: Optional[int] = None, page_size: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "GET", "/roleplay/history", params={"page": page, "pageSize": page_size}
        )

    # -----------------------
    # Feedback / follow-up email
    # -----------------------
    async def generate_feedback(self, session_id: str) -> Dict[str, Any]:
        return await self._request("POST", "/feedback/generate", json={"sessionId": session_id})

    async def get_feedback(self, session_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/feedback/{session_id}")

    async def generate_email(self, session_id: str) -> Dict[str, Any]:
        return await self._request("POST", "/email/generate", json={"sessionId": session_id})

    async def get_email(self, session_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/email/{session_id}")

    async def update_email(self, email_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/email/{email_id}", json=updates)

    # -----------------------
    # Statistics / admin
    # -----------------------
    async def get_user_statistics(self) -> Dict[str, Any]:
        return await self._request("GET", "/statistics/user")

    async def get_admin_statistics(self) -> Dict[str, Any]:
        return await self._request("GET", "/admin/statistics")

    async def create_scenario(self, scenario: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/admin/scenarios", json=scenario)
