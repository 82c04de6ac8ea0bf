# tests/conftest.py
import asyncio
import itertools
from types import SimpleNamespace

import numpy as np
import pytest

from master_trainer.config.settings import settings
from master_trainer.services.remote_gateway import GatewayError


@pytest.fixture(autouse=True)
def patch_settings(monkeypatch):
    """
    Pin the settings the services read so tests do not depend on the
    developer's .env. Tests can override individual attributes as needed.
    """
    monkeypatch.setattr(settings, "max_dialogue_turns", 8)
    monkeypatch.setattr(settings, "message_min_length", 10)
    monkeypatch.setattr(settings, "message_max_length", 2000)
    monkeypatch.setattr(settings, "demo_session_ids", ["demo-session-id"])
    monkeypatch.setattr(settings, "use_fallback_data", True)
    monkeypatch.setattr(settings, "dashscope_api_key", None)
    monkeypatch.setattr(settings, "dashvector_api_key", None)
    monkeypatch.setattr(settings, "dashvector_endpoint", None)
    return monkeypatch


# --- Fake backend gateway ---
def session_payload(session_id="s-1", status="ACTIVE", messages=None, max_turns=None):
    scenario = {
        "id": "scn-1",
        "title": "Cloud Migration Discussion",
        "difficulty": "MEDIUM",
        "buyerPersona": {"name": "Michael Li", "role": "CTO", "company": "FinTech Innovations Inc."},
    }
    if max_turns is not None:
        scenario["maxTurns"] = max_turns
    return {
        "id": session_id,
        "userId": "u-1",
        "scenarioId": "scn-1",
        "scenario": scenario,
        "status": status,
        "messages": messages or [],
        "startedAt": "2024-05-01T10:00:00Z",
    }


class FakeGateway:
    """
    Stand-in for RemoteGateway. Records every call in `calls`; set
    `errors[method]` to an exception to raise, or `responses[method]` to an
    envelope to return. `send_gate` (an asyncio.Event) holds sends in flight.
    """

    def __init__(self, max_turns=None):
        self.calls = []
        self.errors = {}
        self.responses = {}
        self.max_turns = max_turns
        self.send_gate = None
        self._ids = itertools.count(1)

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.errors:
            raise self.errors[name]
        return self.responses.get(name)

    def count(self, name):
        return sum(1 for c in self.calls if c[0] == name)

    async def start_roleplay(self, scenario_id):
        return self._record("start_roleplay", scenario_id) or {
            "success": True,
            "data": session_payload("s-1", max_turns=self.max_turns),
        }

    async def get_roleplay_session(self, session_id):
        return self._record("get_roleplay_session", session_id) or {
            "success": True,
            "data": session_payload(session_id, max_turns=self.max_turns),
        }

    async def send_roleplay_message(self, session_id, content):
        self.calls.append(("send_roleplay_message", session_id, content))
        if self.send_gate is not None:
            await self.send_gate.wait()
        if "send_roleplay_message" in self.errors:
            raise self.errors["send_roleplay_message"]
        if "send_roleplay_message" in self.responses:
            return self.responses["send_roleplay_message"]
        n = next(self._ids)
        return {
            "success": True,
            "data": {
                "userMessage": {"id": f"m{n}u", "sessionId": session_id, "role": "USER", "content": content},
                "aiMessage": {"id": f"m{n}a", "sessionId": session_id, "role": "AI", "content": f"reply {n}"},
            },
        }

    async def end_roleplay(self, session_id):
        return self._record("end_roleplay", session_id) or {
            "success": True,
            "data": {**session_payload(session_id, status="COMPLETED"), "completedAt": "2024-05-01T10:15:00Z"},
        }

    async def get_feedback(self, session_id):
        return self._record("get_feedback", session_id) or {"success": False, "message": "Feedback not found"}

    async def generate_feedback(self, session_id):
        return self._record("generate_feedback", session_id) or {
            "success": True,
            "data": {
                "id": "f-1",
                "sessionId": session_id,
                "overallScore": 78,
                "dimensions": [{"name": "Needs discovery", "score": 80, "weight": 0.3}],
                "summary": "Solid discovery.",
                "recommendations": ["Quantify ROI earlier"],
            },
        }

    async def get_email(self, session_id):
        return self._record("get_email", session_id) or {
            "success": True,
            "data": {"id": "e-1", "sessionId": session_id, "to": "cto@example.com", "subject": "Follow-up", "body": "Hi"},
        }

    async def generate_email(self, session_id):
        return self._record("generate_email", session_id) or {
            "success": True,
            "data": {"id": "e-1", "sessionId": session_id, "to": "", "subject": "Follow-up", "body": "Hi"},
        }

    async def update_email(self, email_id, updates):
        return self._record("update_email", email_id, updates) or {
            "success": True,
            "data": {"id": email_id, "sessionId": "s-1", "isEdited": True, **updates},
        }


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def network_error():
    return GatewayError("Network error while calling /roleplay/message: connection refused")


# --- Fake audio input device ---
class FakeStream:

    def __init__(self, device):
        self.device = device
        self.started = False
        self.stopped = False
        self.closed = False

    @property
    def ready_state(self):
        return "ended" if self.stopped and self.closed else "live"

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True
        if self.device._task is not None:
            self.device._task.cancel()


class FakeInputDevice:
    """Pushes one frame block every `frame_ms` from a background task once started."""

    def __init__(self, frame_ms=20, amplitude=0.5, fail_with=None):
        self.frame_ms = frame_ms
        self.amplitude = amplitude
        self.fail_with = fail_with
        self.stream = None
        self.opened_with = None
        self._task = None

    def open(self, sample_rate, channels, on_frames):
        if self.fail_with is not None:
            raise self.fail_with
        self.opened_with = SimpleNamespace(sample_rate=sample_rate, channels=channels)
        self.stream = FakeStream(self)
        samples = int(sample_rate * self.frame_ms / 1000)
        block = np.full((samples, channels), self.amplitude, dtype=np.float32)

        async def _pump():
            while not self.stream.stopped:
                if self.stream.started:
                    on_frames(block.copy())
                await asyncio.sleep(self.frame_ms / 1000)

        self._task = asyncio.get_running_loop().create_task(_pump())
        return self.stream


@pytest.fixture
def fake_device():
    return FakeInputDevice()
