# master_trainer/services/feedback_service.py
"""
Feedback and follow-up email flow for an ended session.

Nothing here fabricates content: when the backend is unreachable the error is
reported back to the caller.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from master_trainer.models import Feedback, FollowUpEmail
from master_trainer.services.remote_gateway import (
    AuthorizationError,
    GatewayError,
    RemoteGateway,
)
from master_trainer.services.results import error_result, ok_result

logger = logging.getLogger(__name__)

_EMAIL_FIELDS = ("to", "subject", "body")


class FeedbackService:

    def __init__(self, gateway: Optional[RemoteGateway] = None):
        self.gateway = gateway or RemoteGateway()

    @staticmethod
    def _failure(exc: GatewayError, action: str) -> Dict[str, Any]:
        code = "authorization_required" if isinstance(exc, AuthorizationError) else "gateway_error"
        logger.warning("Feedback %s failed: %s", action, exc.message)
        return error_result(code, exc.message, action=action, status_code=exc.status_code)

    @staticmethod
    def _parse(model, envelope: Dict[str, Any], action: str, default_message: str):
        if not envelope.get("success") or not envelope.get("data"):
            return error_result(
                "backend_rejected", envelope.get("message") or default_message, action=action
            )
        try:
            return ok_result(model.model_validate(envelope["data"]), action=action)
        except ValidationError as exc:
            logger.error("Invalid %s payload from backend: %s", action, exc)
            return error_result("invalid_response", default_message, action=action)

    async def get_or_generate(self, session_id: str) -> Dict[str, Any]:
        """Existing feedback for the session, generating it when none exists yet."""
        try:
            envelope = await self.gateway.get_feedback(session_id)
        except GatewayError as exc:
            # 404 means no feedback yet; anything else is a real failure
            if exc.status_code != 404:
                return self._failure(exc, "get_feedback")
            envelope = {"success": False}

        if envelope.get("success") and envelope.get("data"):
            result = self._parse(Feedback, envelope, "get_feedback", "Failed to load feedback")
            if result["ok"]:
                result["diagnostics"]["generated"] = False
            return result

        logger.info("No feedback for session %s yet; requesting generation", session_id)
        try:
            envelope = await self.gateway.generate_feedback(session_id)
        except GatewayError as exc:
            return self._failure(exc, "generate_feedback")
        result = self._parse(Feedback, envelope, "generate_feedback", "Failed to generate feedback")
        if result["ok"]:
            result["diagnostics"]["generated"] = True
        return result

    async def get_email(self, session_id: str) -> Dict[str, Any]:
        try:
            envelope = await self.gateway.get_email(session_id)
        except GatewayError as exc:
            return self._failure(exc, "get_email")
        return self._parse(FollowUpEmail, envelope, "get_email", "No follow-up email for this session")

    async def generate_email(self, session_id: str) -> Dict[str, Any]:
        try:
            envelope = await self.gateway.generate_email(session_id)
        except GatewayError as exc:
            return self._failure(exc, "generate_email")
        return self._parse(FollowUpEmail, envelope, "generate_email", "Failed to generate email")

    async def update_email(self, email_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Update recipient, subject or body of a follow-up email."""
        payload = {k: v for k, v in (updates or {}).items() if k in _EMAIL_FIELDS and v is not None}
        if not payload:
            return error_result("nothing_to_update", "Provide to, subject or body")
        try:
            envelope = await self.gateway.update_email(email_id, payload)
        except GatewayError as exc:
            return self._failure(exc, "update_email")
        return self._parse(FollowUpEmail, envelope, "update_email", "Failed to update email")
