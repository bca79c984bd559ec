from __future__ import annotations

import os
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from claw_gateway import __version__


class ProviderKind(str, Enum):
    OLLAMA = "ollama"
    OPENAI_COMPATIBLE = "openai_compatible"
    OPENAI_CODEX = "openai_codex"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


class AuthMode(str, Enum):
    API_KEY = "api_key"
    OAUTH_TOKEN = "oauth_token"


class DeviceFlowState(str, Enum):
    NOT_STARTED = "not_started"
    AWAITING_USER_CODE = "awaiting_user_code"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class OAuthTokenResult(BaseModel):
    access_token: str
    refresh_token: str
    expires_at_ms: int = 0
    account_id: str = ""
    enterprise_url: str = ""


class RuntimeConfig(BaseModel):
    """Per-call runtime settings. Persistence belongs to the config store."""

    model_config = ConfigDict(frozen=True)

    provider: str = "ollama"
    model: str = "gpt-oss:20b"
    api_url: str = "http://10.0.2.2:11434"
    api_key: str = ""
    auth_mode: str = AuthMode.API_KEY.value
    oauth_access_token: str = ""
    oauth_refresh_token: str = ""
    oauth_expires_at_ms: int = 0
    account_id: str = ""
    enterprise_url: str = ""
    temperature: float = 0.1

    @property
    def uses_oauth(self) -> bool:
        return self.auth_mode.strip() == AuthMode.OAUTH_TOKEN.value

    @property
    def normalized_provider(self) -> str:
        return self.provider.strip().lower()

    def with_token_result(self, result: OAuthTokenResult) -> "RuntimeConfig":
        updates: dict[str, Any] = {
            "auth_mode": AuthMode.OAUTH_TOKEN.value,
            "oauth_access_token": result.access_token,
            "oauth_refresh_token": result.refresh_token,
            "oauth_expires_at_ms": result.expires_at_ms,
        }
        if result.account_id:
            updates["account_id"] = result.account_id
        if result.enterprise_url:
            updates["enterprise_url"] = result.enterprise_url
        return self.model_copy(update=updates)


class DeviceAuthSession(BaseModel):
    provider: str
    verification_url: str
    user_code: str
    device_code: str
    interval_seconds: int = 5
    metadata: dict[str, str] = Field(default_factory=dict)
    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    state: DeviceFlowState = DeviceFlowState.NOT_STARTED


class GatewaySettings(BaseModel):
    connect_timeout_seconds: float = 10.0
    chat_read_timeout_seconds: float = 300.0
    oauth_read_timeout_seconds: float = 120.0
    user_agent: str = f"claw-gateway/{__version__}"
    refresh_leeway_seconds: int = 60
    poll_buffer_seconds: float = 3.0
    max_poll_attempts: int | None = None

    @model_validator(mode="after")
    def validate_limits(self) -> "GatewaySettings":
        if self.connect_timeout_seconds <= 0:
            raise ValueError("connect_timeout_seconds must be positive")
        if self.chat_read_timeout_seconds <= 0 or self.oauth_read_timeout_seconds <= 0:
            raise ValueError("read timeouts must be positive")
        if self.refresh_leeway_seconds < 0:
            raise ValueError("refresh_leeway_seconds must be >= 0")
        if self.poll_buffer_seconds < 0:
            raise ValueError("poll_buffer_seconds must be >= 0")
        if self.max_poll_attempts is not None and self.max_poll_attempts < 1:
            raise ValueError("max_poll_attempts must be >= 1")
        return self

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "GatewaySettings":
        env = environ if environ is not None else os.environ
        values: dict[str, Any] = {}
        for field_name in cls.model_fields:
            raw = env.get(f"CLAW_GATEWAY_{field_name.upper()}")
            if raw is None or not raw.strip():
                continue
            values[field_name] = raw.strip()
        return cls.model_validate(values)
