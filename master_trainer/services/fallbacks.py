# master_trainer/services/fallbacks.py
"""
Sample payloads substituted by the data loaders when the backend is unreachable.

The datasets are registered per resource key on a FallbackProvider rather than
inlined in the loaders, so tests (or a production deployment that prefers to
surface errors) can pass an empty provider instead.

Payloads use the backend wire shape (camelCase keys). A registered value is
either a static payload (deep-copied on every use) or a factory called with
the loader parameters.
"""
from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

PayloadFactory = Callable[[Dict[str, Any]], Any]
FallbackEntry = Union[PayloadFactory, Any]

SCENARIOS = "scenarios"
SCENARIO_DETAIL = "scenario"
RECOMMENDED_SCENARIOS = "recommended_scenarios"
SESSION_HISTORY = "session_history"
USER_STATISTICS = "user_statistics"
ADMIN_STATISTICS = "admin_statistics"


class FallbackProvider:
    """Mapping from resource key to a sample payload or payload factory."""

    def __init__(self, datasets: Optional[Mapping[str, FallbackEntry]] = None) -> None:
        self._datasets: Dict[str, FallbackEntry] = dict(datasets or {})

    @classmethod
    def empty(cls) -> "FallbackProvider":
        return cls()

    def register(self, key: str, entry: FallbackEntry) -> None:
        self._datasets[key] = entry

    def has(self, key: str) -> bool:
        return key in self._datasets

    def keys(self):
        return list(self._datasets.keys())

    def get(self, key: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Return a fresh payload for `key`; raises KeyError when none is registered."""
        entry = self._datasets[key]
        if callable(entry):
            return entry(dict(params or {}))
        return copy.deepcopy(entry)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


_SCENARIO_ITEMS = [
    {
        "id": "1",
        "title": "Cloud Migration Discussion",
        "description": "Discuss cloud migration options with a CTO who is currently using AWS.",
        "difficulty": "medium",
        "category": "Technical Solution",
        "estimatedDuration": 15,
        "practiceCount": 234,
        "averageScore": 72.5,
        "buyerPersona": {
            "name": "Michael Li",
            "role": "CTO",
            "company": "FinTech Innovations Inc.",
        },
    },
    {
        "id": "2",
        "title": "Price Objection Handling",
        "description": "Handle price objections from a procurement manager.",
        "difficulty": "hard",
        "category": "Objection Handling",
        "estimatedDuration": 12,
        "practiceCount": 189,
        "averageScore": 68.3,
        "buyerPersona": {
            "name": "Sarah Chen",
            "role": "Procurement Manager",
            "company": "Global Manufacturing Corp.",
        },
    },
    {
        "id": "3",
        "title": "Data Security Compliance",
        "description": "Address security and compliance questions from a healthcare company.",
        "difficulty": "medium",
        "category": "Compliance",
        "estimatedDuration": 15,
        "practiceCount": 156,
        "averageScore": 75.1,
        "buyerPersona": {
            "name": "Dr. Jennifer Wong",
            "role": "Chief Compliance Officer",
            "company": "HealthFirst Medical Group",
        },
    },
]


def _scenario_page(params: Dict[str, Any]) -> Dict[str, Any]:
    items = copy.deepcopy(_SCENARIO_ITEMS)
    page_size = int(params.get("page_size") or 10)
    return {
        "items": items,
        "total": len(items),
        "page": 1,
        "pageSize": page_size,
        "totalPages": 1,
    }


def _scenario_detail(params: Dict[str, Any]) -> Dict[str, Any]:
    now = _now_iso()
    return {
        "id": params.get("scenario_id") or "1",
        "title": "Cloud Migration Discussion",
        "description": "Discuss cloud migration options with a CTO who is currently using AWS.",
        "buyerPersona": {
            "name": "Michael Li",
            "role": "CTO",
            "company": "FinTech Innovations Inc.",
            "background": "15 years IT experience, currently using AWS for 3 years.",
            "concerns": ["Data compliance", "Migration cost", "Technical support"],
            "personality": "Direct, data-driven, skeptical of new solutions.",
        },
        "objections": ["Security concerns", "Migration complexity"],
        "idealResponses": [
            "Highlight compliance certifications",
            "Explain migration support",
        ],
        "difficulty": "medium",
        "category": "Technical Solution",
        "isActive": True,
        "estimatedDuration": 15,
        "practiceCount": 234,
        "averageScore": 72.5,
        "createdBy": "admin",
        "createdAt": now,
        "updatedAt": now,
    }


_HISTORY_ITEMS = [
    # (id, title, difficulty, category, score, minutes, messages, hours ago)
    ("1", "Cloud Migration Discussion", "medium", "Technical", 78, 12, 8, 1),
    ("2", "Price Objection Handling", "hard", "Objections", 65, 15, 10, 24),
    ("3", "New Customer Introduction", "easy", "Opening", 85, 8, 6, 48),
    ("4", "Data Security Compliance", "medium", "Compliance", 72, 14, 9, 72),
    ("5", "Competitor Comparison", "hard", "Competition", 68, 18, 12, 96),
]


def _history_page(params: Dict[str, Any]) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    items = [
        {
            "id": session_id,
            "scenario": {"title": title, "difficulty": difficulty, "category": category},
            "score": score,
            "duration": minutes,
            "messageCount": messages,
            "completedAt": (now - timedelta(hours=hours_ago)).isoformat(),
        }
        for session_id, title, difficulty, category, score, minutes, messages, hours_ago in _HISTORY_ITEMS
    ]
    return {
        "items": items,
        "total": len(items),
        "page": 1,
        "pageSize": int(params.get("page_size") or 10),
        "totalPages": 1,
    }


_USER_STATISTICS = {
    "totalPractices": 0,
    "averageScore": 0,
    "totalDuration": 0,
    "bestScore": 0,
    "thisWeekPractices": 0,
    "thisWeekTarget": 5,
    "scoreHistory": [],
    "scoreByScenario": [],
}

_ADMIN_STATISTICS = {
    "activeUsersToday": 0,
    "sessionsToday": 0,
    "activeScenarios": 0,
    "averageScore": 0,
    "userGrowth": 0,
    "sessionGrowth": 0,
    "practicesTrend": [],
    "scoreDistribution": [],
    "topScenarios": [],
}


def default_fallbacks() -> FallbackProvider:
    """Provider with the sample datasets the dashboards show in demo mode."""
    return FallbackProvider(
        {
            SCENARIOS: _scenario_page,
            SCENARIO_DETAIL: _scenario_detail,
            RECOMMENDED_SCENARIOS: _SCENARIO_ITEMS,
            SESSION_HISTORY: _history_page,
            USER_STATISTICS: _USER_STATISTICS,
            ADMIN_STATISTICS: _ADMIN_STATISTICS,
        }
    )
