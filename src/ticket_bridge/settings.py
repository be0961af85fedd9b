"""Environment-driven configuration."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


class Settings(BaseModel):
    """Runtime settings shared by the API, workers and CLI."""

    redis_url: str = "redis://localhost:6379/0"
    database_url: Optional[str] = None
    gateway_url: str = "http://127.0.0.1:3000"
    gateway_timeout_seconds: float = 15.0
    bot_id: Optional[str] = None
    trigger_keyword: Optional[str] = None

    global_rate_limit_per_second: float = Field(default=1.0, gt=0)
    dedupe_ttl_seconds: int = Field(default=30, gt=0)
    conversation_cooldown_seconds: int = Field(default=30, gt=0)
    sender_cooldown_seconds: int = Field(default=60, gt=0)

    ticket_code_prefix: str = "TKT"
    close_command: str = "@close"
    open_command: str = "@support"

    pop_timeout_seconds: int = Field(default=5, ge=0)
    disconnected_poll_seconds: float = 1.0
    paused_poll_seconds: float = 5.0
    requeue_delay_seconds: float = 1.0
    reconnect_delay_seconds: float = 1.0
    ingest_error_backoff_seconds: float = 5.0
    dispatch_error_backoff_seconds: float = 5.0

    control_api_token: Optional[str] = None
    run_workers: bool = False
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_cooldowns(self) -> "Settings":
        if self.conversation_cooldown_seconds >= self.sender_cooldown_seconds:
            raise ValueError(
                "CONVERSATION_COOLDOWN_SECONDS must be shorter than SENDER_COOLDOWN_SECONDS."
            )
        return self

    @property
    def send_interval_seconds(self) -> float:
        """Pause between two outbound send attempts."""
        return max(0.001, 1.0 / self.global_rate_limit_per_second)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        raw = {
            "redis_url": os.getenv("REDIS_URL"),
            "database_url": _env_optional("DATABASE_URL"),
            "gateway_url": os.getenv("GATEWAY_URL"),
            "gateway_timeout_seconds": os.getenv("GATEWAY_TIMEOUT_SECONDS"),
            "bot_id": _env_optional("BOT_ID"),
            "trigger_keyword": _env_optional("TRIGGER_KEYWORD"),
            "global_rate_limit_per_second": os.getenv("GLOBAL_RATE_LIMIT_PER_SECOND"),
            "dedupe_ttl_seconds": os.getenv("DEDUPE_TTL_SECONDS"),
            "conversation_cooldown_seconds": os.getenv("CONVERSATION_COOLDOWN_SECONDS"),
            "sender_cooldown_seconds": os.getenv("SENDER_COOLDOWN_SECONDS"),
            "ticket_code_prefix": os.getenv("TICKET_CODE_PREFIX"),
            "close_command": os.getenv("CLOSE_COMMAND"),
            "open_command": os.getenv("OPEN_COMMAND"),
            "pop_timeout_seconds": os.getenv("POP_TIMEOUT_SECONDS"),
            "disconnected_poll_seconds": os.getenv("DISCONNECTED_POLL_SECONDS"),
            "paused_poll_seconds": os.getenv("PAUSED_POLL_SECONDS"),
            "requeue_delay_seconds": os.getenv("REQUEUE_DELAY_SECONDS"),
            "reconnect_delay_seconds": os.getenv("RECONNECT_DELAY_SECONDS"),
            "ingest_error_backoff_seconds": os.getenv("INGEST_ERROR_BACKOFF_SECONDS"),
            "dispatch_error_backoff_seconds": os.getenv("DISPATCH_ERROR_BACKOFF_SECONDS"),
            "control_api_token": _env_optional("CONTROL_API_TOKEN"),
            "run_workers": _env_bool("RUN_WORKERS"),
            "log_level": os.getenv("LOG_LEVEL"),
        }
        return cls(**{key: value for key, value in raw.items() if value is not None})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
