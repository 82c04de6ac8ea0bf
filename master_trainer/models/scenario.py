"""
Scenario types. Read-only to the practice client: the controller only reads
the turn budget and the persona fields.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import field_validator

from master_trainer.models.common import WireModel, lower_enum_value


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class PersonaSummary(WireModel):
    name: str
    role: str = ""
    company: str = ""


class BuyerPersona(PersonaSummary):
    background: str = ""
    concerns: List[str] = []
    personality: str = ""
    avatar: Optional[str] = None


class ScenarioListItem(WireModel):
    id: str
    title: str
    description: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM
    category: str = ""
    estimated_duration: Optional[int] = None
    practice_count: int = 0
    average_score: float = 0.0
    my_best_score: Optional[float] = None
    buyer_persona: Optional[PersonaSummary] = None

    @field_validator("difficulty", mode="before")
    @classmethod
    def normalize_difficulty(cls, v):
        return lower_enum_value(v)


class Scenario(ScenarioListItem):
    buyer_persona: Optional[BuyerPersona] = None
    objections: List[str] = []
    ideal_responses: List[str] = []
    is_active: bool = True
    max_turns: Optional[int] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
