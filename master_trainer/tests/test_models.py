# tests/test_models.py
from master_trainer.models import (
    Difficulty,
    Message,
    MessageRole,
    Scenario,
    ScenarioListItem,
    Session,
    SessionStatus,
)


def test_upper_case_enums_are_normalized():
    msg = Message.model_validate({"id": "1", "sessionId": "s", "role": "USER", "content": "Hello there"})
    assert msg.role == MessageRole.USER
    session = Session.model_validate({"id": "s", "status": "COMPLETED", "messages": None})
    assert session.status == SessionStatus.COMPLETED
    assert session.messages == []


def test_wire_round_uses_camel_case_and_drops_none():
    item = ScenarioListItem.model_validate(
        {"id": "1", "title": "Price Objection Handling", "difficulty": "HARD", "practiceCount": 189}
    )
    assert item.difficulty == Difficulty.HARD
    wire = item.to_wire()
    assert wire["practiceCount"] == 189
    assert "myBestScore" not in wire
    assert "practice_count" not in wire


def test_scenario_max_turns_is_optional():
    scenario = Scenario.model_validate(
        {
            "id": "1",
            "title": "Cloud Migration Discussion",
            "buyerPersona": {"name": "Michael Li", "concerns": ["Cost"]},
            "maxTurns": 6,
            "unknownField": "ignored",
        }
    )
    assert scenario.max_turns == 6
    assert scenario.buyer_persona.concerns == ["Cost"]
    assert Scenario.model_validate({"id": "2", "title": "t"}).max_turns is None
