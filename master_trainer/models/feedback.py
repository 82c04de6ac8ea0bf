"""
Feedback and follow-up email types, produced by the backend after a session ends.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from master_trainer.models.common import WireModel


class FeedbackDimension(WireModel):
    name: str
    score: float
    weight: float = 0
    quote: str = ""
    explanation: str = ""
    suggestions: List[str] = []


class Feedback(WireModel):
    id: str
    session_id: str
    overall_score: float
    dimensions: List[FeedbackDimension] = []
    summary: str = ""
    recommendations: List[str] = []
    created_at: Optional[datetime] = None


class FollowUpEmail(WireModel):
    id: str
    session_id: str
    user_id: Optional[str] = None
    to: str = ""
    subject: str = ""
    body: str = ""
    is_edited: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
