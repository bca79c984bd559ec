from __future__ import annotations

from dataclasses import dataclass, field
from threading import Event, Lock

import httpx
from fastapi import FastAPI, HTTPException

from claw_gateway import __version__
from claw_gateway.api.schemas import (
    ChatRequest,
    ChatResponse,
    DeviceFlowCompleteResponse,
    DeviceFlowSessionResponse,
    DeviceFlowStartRequest,
    RuntimeConfigView,
)
from claw_gateway.hooks.observability import EventLogger
from claw_gateway.llm import (
    ChatError,
    DeviceAuthSession,
    DeviceFlowEngine,
    FileConfigStore,
    GatewaySettings,
    MissingCredential,
    OAuthCancelled,
    OAuthDenied,
    OAuthError,
    OAuthPollTimeout,
    ProviderGateway,
    RuntimeConfig,
    TransportError,
    UnsupportedProvider,
)
from claw_gateway.llm.oauth_device import DEVICE_FLOW_PROVIDERS


@dataclass
class PendingDeviceFlow:
    session: DeviceAuthSession
    profile: str
    cancel: Event = field(default_factory=Event)


def _chat_error_status(exc: ChatError) -> int:
    if isinstance(exc, (UnsupportedProvider, MissingCredential)):
        return 400
    if isinstance(exc, TransportError):
        return 504
    return 502


def _oauth_error_status(exc: OAuthError) -> int:
    if isinstance(exc, OAuthDenied):
        return 403
    if isinstance(exc, OAuthPollTimeout):
        return 408
    if isinstance(exc, OAuthCancelled):
        return 409
    return 502


def create_app(
    config_path: str | None = None,
    *,
    settings: GatewaySettings | None = None,
    transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    settings = settings or GatewaySettings.from_env()
    logger = EventLogger()
    config_store = FileConfigStore(config_path)
    gateway = ProviderGateway(settings=settings, logger=logger, transport=transport)
    oauth = DeviceFlowEngine(settings=settings, transport=transport, logger=logger)
    pending: dict[str, PendingDeviceFlow] = {}
    polling: dict[str, PendingDeviceFlow] = {}
    pending_lock = Lock()

    app = FastAPI(title="Claw Gateway API", version=__version__)
    app.state.event_logger = logger
    app.state.config_store = config_store

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.get("/config", response_model=RuntimeConfigView)
    async def get_config(profile: str = "default") -> RuntimeConfigView:
        return RuntimeConfigView.from_config(config_store.load_config(profile))

    @app.put("/config", response_model=RuntimeConfigView)
    async def put_config(payload: RuntimeConfig, profile: str = "default") -> RuntimeConfigView:
        config_store.save_config(payload, profile)
        return RuntimeConfigView.from_config(payload)

    # blocking handlers are plain functions so FastAPI runs them in its threadpool
    @app.post("/chat", response_model=ChatResponse)
    def chat(payload: ChatRequest) -> ChatResponse:
        config = payload.config or config_store.load_config(payload.profile)
        try:
            output = gateway.send_message(payload.message, config)
        except ChatError as exc:
            raise HTTPException(status_code=_chat_error_status(exc), detail=str(exc)) from exc
        return ChatResponse(provider=config.provider, model=config.model, output=output)

    @app.post("/oauth/device/start", response_model=DeviceFlowSessionResponse)
    def start_device_flow(payload: DeviceFlowStartRequest) -> DeviceFlowSessionResponse:
        if payload.provider.strip().lower() not in DEVICE_FLOW_PROVIDERS:
            raise HTTPException(
                status_code=400,
                detail=f"device flow is not supported for provider: {payload.provider}",
            )
        try:
            session = oauth.start_device_flow(payload.provider, payload.enterprise_url)
        except OAuthError as exc:
            raise HTTPException(status_code=_oauth_error_status(exc), detail=str(exc)) from exc
        with pending_lock:
            pending[session.session_id] = PendingDeviceFlow(session=session, profile=payload.profile)
        return DeviceFlowSessionResponse.from_session(session)

    @app.post("/oauth/device/{session_id}/complete", response_model=DeviceFlowCompleteResponse)
    def complete_device_flow(session_id: str) -> DeviceFlowCompleteResponse:
        with pending_lock:
            flow = pending.pop(session_id, None)
            if flow is not None:
                polling[session_id] = flow
        if flow is None:
            raise HTTPException(status_code=404, detail=f"device session not found: {session_id}")
        try:
            result = oauth.complete_device_flow(flow.session, cancel=flow.cancel)
        except OAuthError as exc:
            raise HTTPException(status_code=_oauth_error_status(exc), detail=str(exc)) from exc
        finally:
            with pending_lock:
                polling.pop(session_id, None)

        config_store.apply_token_result(result, flow.profile, provider=flow.session.provider)
        return DeviceFlowCompleteResponse(
            session_id=session_id,
            provider=flow.session.provider,
            profile=flow.profile,
            expires_at_ms=result.expires_at_ms,
            account_id=result.account_id,
            enterprise_url=result.enterprise_url,
        )

    @app.post("/oauth/device/{session_id}/cancel")
    async def cancel_device_flow(session_id: str) -> dict[str, str]:
        with pending_lock:
            flow = polling.get(session_id) or pending.pop(session_id, None)
        if flow is None:
            raise HTTPException(status_code=404, detail=f"device session not found: {session_id}")
        flow.cancel.set()
        return {"session_id": session_id, "status": "cancelling"}

    return app
