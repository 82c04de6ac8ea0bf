"""
Session and message types for a practice conversation.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import field_validator

from master_trainer.models.common import WireModel, lower_enum_value
from master_trainer.models.feedback import Feedback
from master_trainer.models.scenario import Scenario


class MessageRole(str, Enum):
    USER = "user"
    AI = "ai"
    SYSTEM = "system"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Message(WireModel):
    id: str
    session_id: str
    role: MessageRole
    content: str
    timestamp: Optional[datetime] = None

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        return lower_enum_value(v)


class Session(WireModel):
    id: str
    user_id: Optional[str] = None
    scenario_id: Optional[str] = None
    scenario: Optional[Scenario] = None
    status: SessionStatus = SessionStatus.ACTIVE
    messages: List[Message] = []
    feedback: Optional[Feedback] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return lower_enum_value(v)

    @field_validator("messages", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []
