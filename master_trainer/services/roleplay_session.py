# master_trainer/services/roleplay_session.py
"""
Turn-gated roleplay session controller.

One controller governs one practice conversation:

    idle -> loading -> active -> ending -> ended
              |                   |
              +-> idle (error)    +-> active (end failed, retryable)

Rules:
  - Messages are validated locally (length bounds) before any network call.
  - Sends are single-flight: while one is in flight every other send is
    rejected, so the transcript order is the order sends were issued.
  - turns_remaining = max_turns - number of user messages. At zero no further
    send is accepted and the result tells the caller to end the session.
  - Ending needs an explicit confirmation (request_end() or confirm=True).
  - Ending an already ended session is rejected locally.
  - close() detaches the controller: responses that resolve afterwards do
    not touch its state.

Every public coroutine resolves to a result dict (see services.results);
gateway exceptions are converted at the call site and never escape.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from master_trainer.config.settings import settings
from master_trainer.models import Message, MessageRole, Session, SessionStatus
from master_trainer.services.remote_gateway import (
    AuthorizationError,
    GatewayError,
    RemoteGateway,
)
from master_trainer.services.results import error_result, ok_result

logger = logging.getLogger(__name__)

SessionEndedHook = Callable[[str], Awaitable[Any]]

_DEFAULT_PERSONA = {
    "name": "AI Buyer",
    "role": "Decision Maker",
    "company": "Company",
    "concerns": ["Security", "Cost", "Support"],
}


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ACTIVE = "active"
    ENDING = "ending"
    ENDED = "ended"


def _gateway_failure(exc: GatewayError, action: str) -> Dict[str, Any]:
    if isinstance(exc, AuthorizationError):
        return error_result("authorization_required", exc.message, action=action, status_code=401)
    return error_result("gateway_error", exc.message, action=action, status_code=exc.status_code)


class RoleplaySessionController:

    def __init__(
        self,
        gateway: Optional[RemoteGateway] = None,
        *,
        max_turns: Optional[int] = None,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        demo_session_ids: Optional[Iterable[str]] = None,
        on_session_ended: Optional[SessionEndedHook] = None,
    ) -> None:
        """
        gateway: backend client; defaults to one on the shared connection.
        max_turns: force a turn budget; otherwise the scenario's maxTurns,
                   falling back to settings.max_dialogue_turns.
        demo_session_ids: placeholder ids that open an empty local session.
        on_session_ended: feedback hand-off, awaited with the session id once
                          the session has ended.
        """
        self.gateway = gateway or RemoteGateway()
        self._max_turns_override = max_turns
        self.min_length = settings.message_min_length if min_length is None else min_length
        self.max_length = settings.message_max_length if max_length is None else max_length
        self.demo_session_ids = set(
            settings.demo_session_ids if demo_session_ids is None else demo_session_ids
        )
        self.on_session_ended = on_session_ended

        self.state = SessionState.IDLE
        self.session: Optional[Session] = None
        self._messages: List[Message] = []
        self.is_sending = False
        self.error: Optional[str] = None
        self.validation_error: Optional[str] = None
        self.draft = ""
        self.end_confirmation_pending = False

        # bumped by reset()/close(); responses from an older epoch are dropped
        self._epoch = 0
        self._closed = False

    # -----------------------
    # Derived state
    # -----------------------
    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def session_id(self) -> Optional[str]:
        return self.session.id if self.session else None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def user_message_count(self) -> int:
        return sum(1 for m in self._messages if m.role == MessageRole.USER)

    @property
    def max_turns(self) -> int:
        if self._max_turns_override is not None:
            return self._max_turns_override
        scenario = self.session.scenario if self.session else None
        if scenario is not None and scenario.max_turns and scenario.max_turns > 0:
            return scenario.max_turns
        return settings.max_dialogue_turns

    @property
    def turns_remaining(self) -> int:
        return max(self.max_turns - self.user_message_count, 0)

    @property
    def can_send_message(self) -> bool:
        return (
            self.state == SessionState.ACTIVE
            and self.turns_remaining > 0
            and not self.is_sending
        )

    def progress(self) -> Dict[str, int]:
        return {
            "messages_sent": self.user_message_count,
            "max_turns": self.max_turns,
            "turns_remaining": self.turns_remaining,
        }

    def display_persona(self) -> Dict[str, Any]:
        scenario = self.session.scenario if self.session else None
        if scenario is not None and scenario.buyer_persona is not None:
            return scenario.buyer_persona.to_wire()
        return dict(_DEFAULT_PERSONA)

    def snapshot(self) -> Dict[str, Any]:
        session = self.session
        scenario = session.scenario if session else None
        return {
            "state": self.state.value,
            "session_id": self.session_id,
            "status": session.status.value if session else None,
            "title": scenario.title if scenario else "Sales Roleplay",
            "persona": self.display_persona(),
            "messages": [m.to_wire() for m in self._messages],
            "is_sending": self.is_sending,
            "can_send_message": self.can_send_message,
            "end_confirmation_pending": self.end_confirmation_pending,
            "error": self.error,
            "validation_error": self.validation_error,
            **self.progress(),
        }

    # -----------------------
    # Lifecycle
    # -----------------------
    def close(self) -> None:
        """Detach from the caller; in-flight responses will be ignored."""
        self._closed = True
        self._epoch += 1

    def reset(self) -> None:
        self._epoch += 1
        self.state = SessionState.IDLE
        self.session = None
        self._messages = []
        self.is_sending = False
        self.error = None
        self.validation_error = None
        self.draft = ""
        self.end_confirmation_pending = False

    def _stale(self, epoch: int) -> bool:
        return self._closed or epoch != self._epoch

    def _stale_result(self, action: str) -> Dict[str, Any]:
        logger.debug("Dropping %s response for detached controller", action)
        return error_result("controller_closed", "Session view was closed", action=action)

    def _adopt_session(self, session: Session) -> None:
        self.session = session
        self._messages = list(session.messages)
        self.error = None
        self.validation_error = None
        if session.status == SessionStatus.ACTIVE:
            self.state = SessionState.ACTIVE
        else:
            self.state = SessionState.ENDED

    async def start_session(self, scenario_id: str) -> Dict[str, Any]:
        """Create a new session on the backend for `scenario_id`."""
        if self._closed:
            return self._stale_result("start")
        if self.state in (SessionState.LOADING, SessionState.ENDING) or self.is_sending:
            return error_result("busy", "Another request is in progress")

        epoch = self._epoch
        self.state = SessionState.LOADING
        self.error = None
        logger.info("Starting roleplay session for scenario=%s", scenario_id)
        try:
            envelope = await self.gateway.start_roleplay(scenario_id)
        except GatewayError as exc:
            if self._stale(epoch):
                return self._stale_result("start")
            logger.error("Failed to start session for scenario=%s: %s", scenario_id, exc.message)
            self.state = SessionState.IDLE
            self.error = exc.message
            return _gateway_failure(exc, "start")
        if self._stale(epoch):
            return self._stale_result("start")
        return self._apply_session_envelope(envelope, "start", "Failed to start session")

    async def load_session(self, session_id: str) -> Dict[str, Any]:
        """Load an existing session; placeholder ids open an empty local session."""
        if self._closed:
            return self._stale_result("load")
        if self.state in (SessionState.LOADING, SessionState.ENDING) or self.is_sending:
            return error_result("busy", "Another request is in progress")

        if session_id in self.demo_session_ids:
            logger.info("Opening placeholder session id=%s without a backend fetch", session_id)
            self._epoch += 1
            self._adopt_session(Session(id=session_id, status=SessionStatus.ACTIVE))
            return ok_result(self.session, demo=True)

        epoch = self._epoch
        self.state = SessionState.LOADING
        self.error = None
        try:
            envelope = await self.gateway.get_roleplay_session(session_id)
        except GatewayError as exc:
            if self._stale(epoch):
                return self._stale_result("load")
            logger.warning("Failed to load session id=%s: %s", session_id, exc.message)
            self.state = SessionState.IDLE
            self.error = exc.message
            return _gateway_failure(exc, "load")
        if self._stale(epoch):
            return self._stale_result("load")
        return self._apply_session_envelope(envelope, "load", "Failed to load session")

    def _apply_session_envelope(
        self, envelope: Dict[str, Any], action: str, default_message: str
    ) -> Dict[str, Any]:
        data = (envelope or {}).get("data")
        if not (envelope or {}).get("success") or not data:
            self.state = SessionState.IDLE
            self.error = (envelope or {}).get("message") or default_message
            return error_result("backend_rejected", self.error, action=action)
        try:
            session = Session.model_validate(data)
        except ValidationError as exc:
            logger.error("Backend returned an invalid session payload: %s", exc)
            self.state = SessionState.IDLE
            self.error = default_message
            return error_result("invalid_response", default_message, action=action)
        self._adopt_session(session)
        logger.info(
            "Session %s ready state=%s messages=%d", session.id, self.state.value, len(self._messages)
        )
        return ok_result(session, action=action)

    # -----------------------
    # Messaging
    # -----------------------
    def validate_message(self, content: str) -> Optional[Dict[str, Any]]:
        """Return an error result when `content` is out of bounds, else None."""
        length = len(content or "")
        if length < self.min_length:
            return error_result(
                "message_too_short",
                f"Message must be at least {self.min_length} characters",
                length=length,
            )
        if length > self.max_length:
            return error_result(
                "message_too_long",
                f"Message must not exceed {self.max_length} characters",
                length=length,
            )
        return None

    async def send_message(self, content: Optional[str] = None) -> Dict[str, Any]:
        """
        Send one user turn. `content` defaults to the current draft.

        On success both the user message and the AI reply are appended (in that
        order) and the result carries `turns_remaining` and `should_end`.
        """
        if self._closed:
            return self._stale_result("send")
        if self.state == SessionState.ENDED:
            return error_result("session_already_ended", "This session has already ended")
        if self.state != SessionState.ACTIVE or self.session is None:
            return error_result("no_active_session", "No active session")
        if self.is_sending:
            return error_result("send_in_progress", "A message is already being sent")
        if self.turns_remaining <= 0:
            return error_result(
                "turn_limit_reached",
                "Maximum turns reached. End the session to get your feedback.",
                should_end=True,
                **self.progress(),
            )

        content = self.draft if content is None else content
        invalid = self.validate_message(content)
        if invalid is not None:
            self.validation_error = invalid["message"]
            return invalid

        self.validation_error = None
        self.error = None
        self.draft = ""
        self.is_sending = True
        epoch = self._epoch
        session_id = self.session.id
        try:
            envelope = await self.gateway.send_roleplay_message(session_id, content)
        except GatewayError as exc:
            if self._stale(epoch):
                return self._stale_result("send")
            logger.error("Failed to send message in session=%s: %s", session_id, exc.message)
            self.error = exc.message
            return _gateway_failure(exc, "send")
        finally:
            if not self._stale(epoch):
                self.is_sending = False

        if self._stale(epoch):
            return self._stale_result("send")

        data = (envelope or {}).get("data") or {}
        if not (envelope or {}).get("success") or not data:
            self.error = (envelope or {}).get("message") or "Failed to send message"
            return error_result("backend_rejected", self.error, action="send")
        try:
            user_message = Message.model_validate(data["userMessage"])
            ai_message = Message.model_validate(data["aiMessage"])
        except (KeyError, TypeError, ValidationError) as exc:
            logger.error("Backend returned an invalid message payload: %s", exc)
            self.error = "Failed to send message"
            return error_result("invalid_response", self.error, action="send")

        self._messages.append(user_message)
        self._messages.append(ai_message)
        remaining = self.turns_remaining
        if remaining == 0:
            logger.info("Session %s reached its turn budget (%d)", session_id, self.max_turns)
        return ok_result(
            {
                "user_message": user_message,
                "ai_message": ai_message,
                "turns_remaining": remaining,
                "should_end": remaining == 0,
            }
        )

    # -----------------------
    # Ending
    # -----------------------
    def _end_precondition(self) -> Optional[Dict[str, Any]]:
        if self._closed:
            return self._stale_result("end")
        if self.state == SessionState.ENDED:
            return error_result("session_already_ended", "This session has already ended")
        if self.state == SessionState.ENDING:
            return error_result("end_in_progress", "The session is already being ended")
        if self.state != SessionState.ACTIVE or self.session is None:
            return error_result("no_active_session", "No active session")
        if self.is_sending:
            return error_result("send_in_progress", "Wait for the current message to finish")
        return None

    def request_end(self) -> Dict[str, Any]:
        """Confirmation step: expose progress before the session is committed."""
        blocked = self._end_precondition()
        if blocked is not None:
            return blocked
        self.end_confirmation_pending = True
        return ok_result(self.progress())

    def cancel_end(self) -> None:
        self.end_confirmation_pending = False

    async def end_session(self, confirm: bool = False) -> Dict[str, Any]:
        """
        Commit the end of the session. Requires `confirm=True` or a previous
        request_end(). On failure the controller returns to active and the
        transcript is left untouched so the user may retry.
        """
        blocked = self._end_precondition()
        if blocked is not None:
            return blocked
        if not (confirm or self.end_confirmation_pending):
            return error_result(
                "confirmation_required",
                "Confirm ending the session first",
                progress=self.progress(),
            )

        epoch = self._epoch
        session_id = self.session.id
        self.state = SessionState.ENDING
        self.end_confirmation_pending = False
        self.error = None
        logger.info("Ending session %s progress=%s", session_id, self.progress())
        try:
            envelope = await self.gateway.end_roleplay(session_id)
        except GatewayError as exc:
            if self._stale(epoch):
                return self._stale_result("end")
            logger.error("Failed to end session %s: %s", session_id, exc.message)
            self.state = SessionState.ACTIVE
            self.error = exc.message
            return _gateway_failure(exc, "end")
        if self._stale(epoch):
            return self._stale_result("end")

        data = (envelope or {}).get("data")
        try:
            ended = Session.model_validate(data) if data else None
        except ValidationError as exc:
            logger.error("Backend returned an invalid session payload on end: %s", exc)
            ended = None
        if not (envelope or {}).get("success") or ended is None:
            self.state = SessionState.ACTIVE
            self.error = (envelope or {}).get("message") or "Failed to end session. Please try again."
            return error_result("backend_rejected", self.error, action="end")

        if ended.scenario is None and self.session.scenario is not None:
            ended = ended.model_copy(update={"scenario": self.session.scenario})
        self.session = ended
        self.state = SessionState.ENDED

        diagnostics: Dict[str, Any] = {"feedback_session_id": session_id}
        if self.on_session_ended is not None:
            try:
                await self.on_session_ended(session_id)
                diagnostics["handoff"] = "ok"
            except Exception as exc:
                logger.exception("Feedback hand-off failed for session %s: %s", session_id, exc)
                diagnostics["handoff"] = "failed"
                diagnostics["handoff_error"] = str(exc)
        return ok_result(ended, **diagnostics)
