from __future__ import annotations

from pydantic import BaseModel, Field

from claw_gateway.hooks.security import mask_secret
from claw_gateway.llm.models import DeviceAuthSession, RuntimeConfig


class ChatRequest(BaseModel):
    message: str
    config: RuntimeConfig | None = None
    profile: str = "default"


class ChatResponse(BaseModel):
    provider: str
    model: str
    output: str


class RuntimeConfigView(BaseModel):
    provider: str
    model: str
    api_url: str
    auth_mode: str
    api_key: str = ""
    oauth_access_token: str = ""
    has_refresh_token: bool = False
    oauth_expires_at_ms: int = 0
    account_id: str = ""
    enterprise_url: str = ""
    temperature: float

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> "RuntimeConfigView":
        return cls(
            provider=config.provider,
            model=config.model,
            api_url=config.api_url,
            auth_mode=config.auth_mode,
            api_key=mask_secret(config.api_key),
            oauth_access_token=mask_secret(config.oauth_access_token),
            has_refresh_token=bool(config.oauth_refresh_token.strip()),
            oauth_expires_at_ms=config.oauth_expires_at_ms,
            account_id=config.account_id,
            enterprise_url=config.enterprise_url,
            temperature=config.temperature,
        )


class DeviceFlowStartRequest(BaseModel):
    provider: str
    enterprise_url: str = ""
    profile: str = "default"


class DeviceFlowSessionResponse(BaseModel):
    session_id: str
    provider: str
    verification_url: str
    user_code: str
    interval_seconds: int
    state: str
    metadata: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_session(cls, session: DeviceAuthSession) -> "DeviceFlowSessionResponse":
        return cls(
            session_id=session.session_id,
            provider=session.provider,
            verification_url=session.verification_url,
            user_code=session.user_code,
            interval_seconds=session.interval_seconds,
            state=session.state.value,
            metadata=dict(session.metadata),
        )


class DeviceFlowCompleteResponse(BaseModel):
    session_id: str
    provider: str
    profile: str
    expires_at_ms: int
    account_id: str = ""
    enterprise_url: str = ""
