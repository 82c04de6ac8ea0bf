"""Wire models for the Master Trainer backend."""
from master_trainer.models.common import WireModel
from master_trainer.models.feedback import Feedback, FeedbackDimension, FollowUpEmail
from master_trainer.models.roleplay import Message, MessageRole, Session, SessionStatus
from master_trainer.models.scenario import (
    BuyerPersona,
    Difficulty,
    PersonaSummary,
    Scenario,
    ScenarioListItem,
)
from master_trainer.models.statistics import AdminStatistics, UserStatistics

# Export all models
__all__ = [
    "WireModel",
    "Feedback",
    "FeedbackDimension",
    "FollowUpEmail",
    "Message",
    "MessageRole",
    "Session",
    "SessionStatus",
    "BuyerPersona",
    "Difficulty",
    "PersonaSummary",
    "Scenario",
    "ScenarioListItem",
    "AdminStatistics",
    "UserStatistics",
]
