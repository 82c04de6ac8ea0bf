# master_trainer/config/settings.py
"""
Application configuration using pydantic-settings (pydantic v2 style).

This centralizes environment-driven configuration for the practice console,
the remote gateway, the audio capture defaults and the knowledge base
scripts. Prefer reading values from environment variables; do not rely on
os.getenv inline defaults which can silently hide missing configuration.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application configuration loaded from environment.

    Relevant environment variables:
      - TRAINER_API_URL
      - TRAINER_API_TOKEN
      - MAX_DIALOGUE_TURNS / MESSAGE_MIN_LENGTH / MESSAGE_MAX_LENGTH
      - DEMO_SESSION_IDS (JSON list)
      - USE_FALLBACK_DATA
      - AUDIO_SAMPLE_RATE / AUDIO_CHANNELS / AUDIO_CHUNK_INTERVAL_MS
      - DASHSCOPE_API_KEY
      - DASHVECTOR_API_KEY
      - DASHVECTOR_ENDPOINT
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Remote backend
    trainer_api_url: str = "http://localhost:3001/api"
    trainer_api_token: Optional[str] = None
    trainer_api_timeout: float = 30.0

    # Roleplay rules
    max_dialogue_turns: int = Field(default=8, ge=1)
    message_min_length: int = Field(default=10, ge=0)
    message_max_length: int = Field(default=2000, ge=1)
    demo_session_ids: List[str] = Field(default_factory=lambda: ["demo-session-id"])

    # Read-only views substitute sample data when the backend is unreachable
    use_fallback_data: bool = True

    # Audio capture
    audio_sample_rate: int = 16000
    audio_channels: int = 1
    audio_chunk_interval_ms: int = 250
    audio_meter_interval_ms: int = 16

    # DashScope embeddings
    dashscope_api_key: Optional[str] = None
    dashscope_embedding_url: str = (
        "https://dashscope.aliyuncs.com/api/v1/services/embeddings/text-embedding/text-embedding"
    )
    dashscope_embedding_model: str = "text-embedding-v2"

    # DashVector
    dashvector_api_key: Optional[str] = None
    dashvector_endpoint: Optional[str] = None
    dashvector_collection: str = "bettermeCollection"
    dashvector_dimension: int = 1536
    dashvector_metric: str = "cosine"

    # Startup / health
    health_check_timeout: float = 5.0
    fail_on_gateway_startup: bool = False

    # --- validators / post-init checks ---
    @field_validator("trainer_api_url", "dashvector_endpoint")
    @classmethod
    def strip_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip().rstrip("/")

    @field_validator("trainer_api_token", "dashscope_api_key", "dashvector_api_key")
    @classmethod
    def maybe_strip_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def model_post_init(self, __context) -> None:  # pydantic v2 hooks
        """
        Light-weight notice that runs after the model is constructed.
        Uses logging (not print) so messages show up in server logs.
        """
        if self.message_min_length > self.message_max_length:
            logger.warning(
                "MESSAGE_MIN_LENGTH (%s) exceeds MESSAGE_MAX_LENGTH (%s); every message will be rejected.",
                self.message_min_length,
                self.message_max_length,
            )
        if not self.trainer_api_token:
            logger.info(
                "TRAINER_API_TOKEN not set. Authenticated endpoints need a login first."
            )
        if not self.dashscope_api_key:
            logger.info(
                "DASHSCOPE_API_KEY not set. Knowledge base embedding is disabled."
            )
        if not (self.dashvector_api_key and self.dashvector_endpoint):
            logger.info(
                "DashVector credentials missing or incomplete. Knowledge base scripts will not run."
            )


# single exporter
settings = Settings()
