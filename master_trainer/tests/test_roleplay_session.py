# tests/test_roleplay_session.py
import asyncio

import pytest

from master_trainer.models import MessageRole, SessionStatus
from master_trainer.services.remote_gateway import AuthorizationError, GatewayError
from master_trainer.services.roleplay_session import RoleplaySessionController, SessionState
from master_trainer.tests.conftest import FakeGateway, session_payload

VALID = "Could you tell me about your current setup?"


async def _started(gateway=None, **kwargs):
    gateway = gateway or FakeGateway()
    ctrl = RoleplaySessionController(gateway, **kwargs)
    res = await ctrl.start_session("scn-1")
    assert res["ok"] is True
    return ctrl, gateway


@pytest.mark.asyncio
async def test_start_session_becomes_active():
    ctrl, gw = await _started()
    assert ctrl.state == SessionState.ACTIVE
    assert ctrl.session_id == "s-1"
    assert ctrl.max_turns == 8
    assert ctrl.turns_remaining == 8
    assert ctrl.can_send_message is True
    assert gw.calls == [("start_roleplay", "scn-1")]


@pytest.mark.asyncio
async def test_start_failure_returns_to_idle_with_error():
    gw = FakeGateway()
    gw.errors["start_roleplay"] = GatewayError("Backend returned HTTP 500", status_code=500)
    ctrl = RoleplaySessionController(gw)
    res = await ctrl.start_session("scn-1")
    assert res["ok"] is False
    assert res["error"] == "gateway_error"
    assert ctrl.state == SessionState.IDLE
    assert ctrl.session is None
    assert ctrl.error == "Backend returned HTTP 500"


@pytest.mark.asyncio
async def test_eight_sends_then_ninth_rejected_without_network_call():
    ctrl, gw = await _started()
    for i in range(8):
        res = await ctrl.send_message(f"{VALID} ({i})")
        assert res["ok"] is True
    assert res["data"]["turns_remaining"] == 0
    assert res["data"]["should_end"] is True
    assert ctrl.can_send_message is False

    ninth = await ctrl.send_message(VALID)
    assert ninth["ok"] is False
    assert ninth["error"] == "turn_limit_reached"
    assert ninth["diagnostics"]["should_end"] is True
    assert gw.count("send_roleplay_message") == 8
    assert ctrl.user_message_count == 8
    assert len(ctrl.messages) == 16


@pytest.mark.asyncio
async def test_scenario_max_turns_overrides_default():
    ctrl, gw = await _started(FakeGateway(max_turns=3))
    assert ctrl.max_turns == 3
    for _ in range(3):
        assert (await ctrl.send_message(VALID))["ok"] is True
    assert (await ctrl.send_message(VALID))["error"] == "turn_limit_reached"
    assert gw.count("send_roleplay_message") == 3


@pytest.mark.asyncio
async def test_zero_turn_budget_is_honoured():
    ctrl, gw = await _started(FakeGateway(max_turns=3), max_turns=0)
    assert ctrl.max_turns == 0
    assert ctrl.can_send_message is False
    assert (await ctrl.send_message(VALID))["error"] == "turn_limit_reached"
    assert gw.count("send_roleplay_message") == 0


@pytest.mark.asyncio
async def test_short_message_rejected_locally():
    ctrl, gw = await _started()
    res = await ctrl.send_message("hi")
    assert res["ok"] is False
    assert res["error"] == "message_too_short"
    assert ctrl.validation_error
    assert gw.count("send_roleplay_message") == 0
    assert ctrl.messages == []


@pytest.mark.asyncio
async def test_length_bounds_are_inclusive():
    ctrl, gw = await _started()
    assert ctrl.validate_message("x" * 10) is None
    assert ctrl.validate_message("x" * 2000) is None
    assert ctrl.validate_message("x" * 9)["error"] == "message_too_short"
    assert ctrl.validate_message("x" * 2001)["error"] == "message_too_long"

    res = await ctrl.send_message("x" * 2001)
    assert res["error"] == "message_too_long"
    assert gw.count("send_roleplay_message") == 0


@pytest.mark.asyncio
async def test_send_uses_draft_and_clears_it():
    ctrl, gw = await _started()
    ctrl.draft = VALID
    res = await ctrl.send_message()
    assert res["ok"] is True
    assert ctrl.draft == ""
    assert gw.calls[-1] == ("send_roleplay_message", "s-1", VALID)


@pytest.mark.asyncio
async def test_transcript_alternates_user_then_ai():
    ctrl, _ = await _started()
    for i in range(3):
        await ctrl.send_message(f"{VALID} {i}")
    roles = [m.role for m in ctrl.messages]
    assert roles == [MessageRole.USER, MessageRole.AI] * 3
    assert [m.content for m in ctrl.messages if m.role == MessageRole.USER] == [
        f"{VALID} {i}" for i in range(3)
    ]


@pytest.mark.asyncio
async def test_sends_are_single_flight():
    ctrl, gw = await _started()
    gw.send_gate = asyncio.Event()

    first = asyncio.create_task(ctrl.send_message(VALID + " first"))
    await asyncio.sleep(0)
    assert ctrl.is_sending is True
    assert ctrl.can_send_message is False

    second = await ctrl.send_message(VALID + " second")
    assert second["error"] == "send_in_progress"
    assert gw.count("send_roleplay_message") == 1

    gw.send_gate.set()
    res = await first
    assert res["ok"] is True
    assert ctrl.is_sending is False
    assert len(ctrl.messages) == 2


@pytest.mark.asyncio
async def test_send_failure_leaves_transcript_untouched(network_error):
    ctrl, gw = await _started()
    await ctrl.send_message(VALID)
    gw.errors["send_roleplay_message"] = network_error

    res = await ctrl.send_message(VALID + " again")
    assert res["ok"] is False
    assert res["error"] == "gateway_error"
    assert ctrl.error == network_error.message
    assert ctrl.state == SessionState.ACTIVE
    assert len(ctrl.messages) == 2
    assert ctrl.is_sending is False


@pytest.mark.asyncio
async def test_send_unauthorized_is_reported():
    ctrl, gw = await _started()
    gw.errors["send_roleplay_message"] = AuthorizationError("Session expired", status_code=401)
    res = await ctrl.send_message(VALID)
    assert res["error"] == "authorization_required"
    assert res["diagnostics"]["status_code"] == 401


@pytest.mark.asyncio
async def test_send_before_start_is_rejected():
    gw = FakeGateway()
    ctrl = RoleplaySessionController(gw)
    res = await ctrl.send_message(VALID)
    assert res["error"] == "no_active_session"
    assert gw.calls == []


@pytest.mark.asyncio
async def test_end_requires_confirmation():
    ctrl, gw = await _started()
    res = await ctrl.end_session()
    assert res["error"] == "confirmation_required"
    assert gw.count("end_roleplay") == 0
    assert ctrl.state == SessionState.ACTIVE


@pytest.mark.asyncio
async def test_request_end_reports_progress_then_end_commits():
    ctrl, gw = await _started()
    await ctrl.send_message(VALID)
    await ctrl.send_message(VALID)

    req = ctrl.request_end()
    assert req["ok"] is True
    assert req["data"] == {"messages_sent": 2, "max_turns": 8, "turns_remaining": 6}
    assert ctrl.end_confirmation_pending is True

    res = await ctrl.end_session()
    assert res["ok"] is True
    assert ctrl.state == SessionState.ENDED
    assert ctrl.session.status == SessionStatus.COMPLETED
    assert ctrl.session.completed_at is not None
    assert len(ctrl.messages) == 4


@pytest.mark.asyncio
async def test_ending_twice_is_rejected_locally():
    ctrl, gw = await _started()
    first = await ctrl.end_session(confirm=True)
    assert first["ok"] is True

    second = await ctrl.end_session(confirm=True)
    assert second["ok"] is False
    assert second["error"] == "session_already_ended"
    assert gw.count("end_roleplay") == 1

    after = await ctrl.send_message(VALID)
    assert after["error"] == "session_already_ended"


@pytest.mark.asyncio
async def test_end_failure_rolls_back_to_active():
    ctrl, gw = await _started()
    await ctrl.send_message(VALID)
    gw.errors["end_roleplay"] = GatewayError("Backend returned HTTP 503", status_code=503)

    res = await ctrl.end_session(confirm=True)
    assert res["ok"] is False
    assert ctrl.state == SessionState.ACTIVE
    assert ctrl.error == "Backend returned HTTP 503"
    assert len(ctrl.messages) == 2

    del gw.errors["end_roleplay"]
    retry = await ctrl.end_session(confirm=True)
    assert retry["ok"] is True
    assert ctrl.state == SessionState.ENDED


@pytest.mark.asyncio
async def test_end_hands_off_to_feedback():
    seen = []

    async def hook(session_id):
        seen.append(session_id)

    ctrl, _ = await _started(on_session_ended=hook)
    res = await ctrl.end_session(confirm=True)
    assert seen == ["s-1"]
    assert res["diagnostics"]["feedback_session_id"] == "s-1"
    assert res["diagnostics"]["handoff"] == "ok"


@pytest.mark.asyncio
async def test_failing_handoff_does_not_undo_end():
    async def hook(session_id):
        raise RuntimeError("feedback service down")

    ctrl, _ = await _started(on_session_ended=hook)
    res = await ctrl.end_session(confirm=True)
    assert res["ok"] is True
    assert ctrl.state == SessionState.ENDED
    assert res["diagnostics"]["handoff"] == "failed"


@pytest.mark.asyncio
async def test_demo_session_loads_without_backend():
    gw = FakeGateway()
    ctrl = RoleplaySessionController(gw)
    res = await ctrl.load_session("demo-session-id")
    assert res["ok"] is True
    assert res["diagnostics"]["demo"] is True
    assert ctrl.state == SessionState.ACTIVE
    assert ctrl.messages == []
    assert gw.calls == []
    assert ctrl.display_persona()["name"] == "AI Buyer"


@pytest.mark.asyncio
async def test_load_existing_session_with_transcript():
    gw = FakeGateway()
    gw.responses["get_roleplay_session"] = {
        "success": True,
        "data": session_payload(
            "s-9",
            messages=[
                {"id": "1", "sessionId": "s-9", "role": "USER", "content": VALID},
                {"id": "2", "sessionId": "s-9", "role": "AI", "content": "We use AWS."},
            ],
        ),
    }
    ctrl = RoleplaySessionController(gw)
    res = await ctrl.load_session("s-9")
    assert res["ok"] is True
    assert ctrl.state == SessionState.ACTIVE
    assert ctrl.user_message_count == 1
    assert ctrl.turns_remaining == 7
    assert ctrl.display_persona()["name"] == "Michael Li"


@pytest.mark.asyncio
async def test_load_completed_session_is_ended():
    gw = FakeGateway()
    gw.responses["get_roleplay_session"] = {"success": True, "data": session_payload("s-2", status="COMPLETED")}
    ctrl = RoleplaySessionController(gw)
    await ctrl.load_session("s-2")
    assert ctrl.state == SessionState.ENDED
    assert (await ctrl.send_message(VALID))["error"] == "session_already_ended"


@pytest.mark.asyncio
async def test_load_failure_surfaces_error():
    gw = FakeGateway()
    gw.responses["get_roleplay_session"] = {"success": False, "message": "Session not found"}
    ctrl = RoleplaySessionController(gw)
    res = await ctrl.load_session("missing")
    assert res["ok"] is False
    assert res["error"] == "backend_rejected"
    assert ctrl.state == SessionState.IDLE
    assert ctrl.error == "Session not found"


@pytest.mark.asyncio
async def test_closed_controller_ignores_late_response():
    ctrl, gw = await _started()
    gw.send_gate = asyncio.Event()
    pending = asyncio.create_task(ctrl.send_message(VALID))
    await asyncio.sleep(0)

    ctrl.close()
    gw.send_gate.set()
    res = await pending
    assert res["error"] == "controller_closed"
    assert ctrl.messages == []


@pytest.mark.asyncio
async def test_reset_returns_to_idle():
    ctrl, _ = await _started()
    await ctrl.send_message(VALID)
    ctrl.reset()
    assert ctrl.state == SessionState.IDLE
    assert ctrl.session is None
    assert ctrl.messages == []
    snap = ctrl.snapshot()
    assert snap["state"] == "idle"
    assert snap["turns_remaining"] == 8


@pytest.mark.asyncio
@pytest.mark.parametrize("length", [0, 1, 9, 10, 11, 500, 1999, 2000, 2001, 4096])
async def test_rejected_locally_iff_out_of_bounds(length):
    ctrl, gw = await _started()
    res = await ctrl.send_message("a" * length)
    out_of_bounds = length < 10 or length > 2000
    assert (res["ok"] is False) == out_of_bounds
    assert gw.count("send_roleplay_message") == (0 if out_of_bounds else 1)
