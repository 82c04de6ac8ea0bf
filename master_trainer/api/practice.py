# master_trainer/api/practice.py
"""
Practice endpoints: one roleplay controller per session id.

Routes (mounted under /practice):
  POST   /sessions                      start a session for a scenario
  POST   /sessions/{id}/load            open an existing (or placeholder) session
  GET    /sessions/{id}                 controller snapshot
  POST   /sessions/{id}/messages        send one user turn
  POST   /sessions/{id}/end/request     confirmation step, returns progress
  POST   /sessions/{id}/end             commit the end (needs confirmation)
  GET    /sessions/{id}/feedback        feedback, generated on first request
  GET    /sessions/{id}/email           follow-up email
  POST   /sessions/{id}/email           generate the follow-up email
  PUT    /sessions/{id}/email           edit the follow-up email
  DELETE /sessions/{id}                 detach and forget the controller
"""
from __future__ import annotations

import collections
import logging
from typing import Callable, Dict, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from master_trainer.api.responses import result_response
from master_trainer.models import WireModel
from master_trainer.services.feedback_service import FeedbackService
from master_trainer.services.remote_gateway import RemoteGateway
from master_trainer.services.results import error_result, ok_result
from master_trainer.services.roleplay_session import RoleplaySessionController

logger = logging.getLogger(__name__)
router = APIRouter()


class StartSessionRequest(WireModel):
    scenario_id: str


class SendMessageRequest(WireModel):
    content: str


class EndSessionRequest(WireModel):
    confirm: bool = False


class EmailUpdateRequest(WireModel):
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None


# Registry of live controllers and their feedback, oldest evicted first
class ControllerRegistry:

    def __init__(
        self,
        factory: Callable[[], RoleplaySessionController],
        max_entries: int = 256,
    ) -> None:
        self._factory = factory
        self._max_entries = int(max_entries)
        self._controllers: "collections.OrderedDict[str, RoleplaySessionController]" = (
            collections.OrderedDict()
        )
        # feedback produced during the end hand-off, served by the feedback route
        self._feedback: "collections.OrderedDict[str, Dict]" = collections.OrderedDict()

    def new_controller(self) -> RoleplaySessionController:
        return self._factory()

    def add(self, session_id: str, controller: RoleplaySessionController) -> None:
        previous = self._controllers.pop(session_id, None)
        if previous is not None and previous is not controller:
            previous.close()
        self._controllers[session_id] = controller
        while len(self._controllers) > self._max_entries:
            old_id, old = self._controllers.popitem(last=False)
            logger.info("Evicting controller for session %s", old_id)
            old.close()
            self._feedback.pop(old_id, None)

    def get(self, session_id: str) -> Optional[RoleplaySessionController]:
        return self._controllers.get(session_id)

    def discard(self, session_id: str) -> bool:
        self._feedback.pop(session_id, None)
        controller = self._controllers.pop(session_id, None)
        if controller is None:
            return False
        controller.close()
        return True

    def count(self) -> int:
        return len(self._controllers)

    def clear(self) -> None:
        for controller in self._controllers.values():
            controller.close()
        self._controllers.clear()
        self._feedback.clear()

    def remember_feedback(self, session_id: str, result: Dict) -> None:
        self._feedback.pop(session_id, None)
        self._feedback[session_id] = result
        while len(self._feedback) > self._max_entries:
            self._feedback.popitem(last=False)

    def cached_feedback(self, session_id: str) -> Optional[Dict]:
        return self._feedback.get(session_id)

    def feedback_count(self) -> int:
        return len(self._feedback)

    @property
    def capacity(self) -> int:
        return self._max_entries


# Singletons
gateway = RemoteGateway()
feedback_service = FeedbackService(gateway)


async def _prefetch_feedback(session_id: str) -> None:
    result = await feedback_service.get_or_generate(session_id)
    if result.get("ok"):
        registry.remember_feedback(session_id, result)
    else:
        logger.info("Feedback not ready for session %s: %s", session_id, result.get("message"))


def _make_controller() -> RoleplaySessionController:
    return RoleplaySessionController(gateway, on_session_ended=_prefetch_feedback)


registry = ControllerRegistry(_make_controller)


def _not_found(session_id: str) -> JSONResponse:
    return result_response(
        error_result("session_not_found", f"No open session {session_id}; load it first")
    )


# -------------------------
# Session lifecycle
# -------------------------
@router.post("/sessions")
async def start_session(req: StartSessionRequest):
    controller = registry.new_controller()
    result = await controller.start_session(req.scenario_id)
    if result["ok"]:
        registry.add(controller.session_id, controller)
        result["data"] = controller.snapshot()
    return result_response(result)


@router.post("/sessions/{session_id}/load")
async def load_session(session_id: str):
    controller = registry.get(session_id) or registry.new_controller()
    result = await controller.load_session(session_id)
    if result["ok"]:
        registry.add(session_id, controller)
        result["data"] = controller.snapshot()
    return result_response(result)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    controller = registry.get(session_id)
    if controller is None:
        return _not_found(session_id)
    return result_response(ok_result(controller.snapshot()))


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    if not registry.discard(session_id):
        return _not_found(session_id)
    return result_response(ok_result({"session_id": session_id, "closed": True}))


# -------------------------
# Messaging / ending
# -------------------------
@router.post("/sessions/{session_id}/messages")
async def send_message(session_id: str, req: SendMessageRequest):
    controller = registry.get(session_id)
    if controller is None:
        return _not_found(session_id)
    result = await controller.send_message(req.content)
    if result["ok"]:
        result["diagnostics"]["progress"] = controller.progress()
    return result_response(result)


@router.post("/sessions/{session_id}/end/request")
async def request_end(session_id: str):
    controller = registry.get(session_id)
    if controller is None:
        return _not_found(session_id)
    return result_response(controller.request_end())


@router.post("/sessions/{session_id}/end")
async def end_session(session_id: str, req: Optional[EndSessionRequest] = None):
    controller = registry.get(session_id)
    if controller is None:
        return _not_found(session_id)
    result = await controller.end_session(confirm=bool(req and req.confirm))
    if result["ok"]:
        result["data"] = controller.snapshot()
    return result_response(result)


# -------------------------
# Feedback / email
# -------------------------
@router.get("/sessions/{session_id}/feedback")
async def get_feedback(session_id: str):
    cached = registry.cached_feedback(session_id)
    if cached is not None:
        return result_response(cached)
    result = await feedback_service.get_or_generate(session_id)
    if result["ok"]:
        registry.remember_feedback(session_id, result)
    return result_response(result)


@router.get("/sessions/{session_id}/email")
async def get_email(session_id: str):
    return result_response(await feedback_service.get_email(session_id))


@router.post("/sessions/{session_id}/email")
async def generate_email(session_id: str):
    return result_response(await feedback_service.generate_email(session_id))


@router.put("/sessions/{session_id}/email")
async def update_email(session_id: str, req: EmailUpdateRequest):
    current = await feedback_service.get_email(session_id)
    if not current["ok"]:
        return result_response(current)
    updates = req.model_dump(exclude_none=True)
    return result_response(await feedback_service.update_email(current["data"].id, updates))
