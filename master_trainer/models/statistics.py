"""
Dashboard aggregates.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from master_trainer.models.common import WireModel


class UserStatistics(WireModel):
    total_practices: int = 0
    average_score: float = 0
    total_duration: int = 0
    best_score: float = 0
    this_week_practices: int = 0
    this_week_target: int = 5
    score_history: List[Dict[str, Any]] = []
    score_by_scenario: List[Dict[str, Any]] = []


class AdminStatistics(WireModel):
    active_users_today: int = 0
    sessions_today: int = 0
    active_scenarios: int = 0
    average_score: float = 0
    user_growth: float = 0
    session_growth: float = 0
    total_users: Optional[int] = None
    total_scenarios: Optional[int] = None
    total_sessions: Optional[int] = None
    practices_trend: List[Dict[str, Any]] = []
    score_distribution: List[Dict[str, Any]] = []
    top_scenarios: List[Dict[str, Any]] = []
