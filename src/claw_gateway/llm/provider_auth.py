from __future__ import annotations

import time

from claw_gateway.hooks.observability import EventLogger

from .errors import GatewayError
from .models import ProviderKind, RuntimeConfig
from .transport import HttpTransport

OPENAI_OAUTH_ISSUER = "https://auth.openai.com"
OPENAI_OAUTH_TOKEN_URL = f"{OPENAI_OAUTH_ISSUER}/oauth/token"
OPENAI_OAUTH_CLIENT_ID = "app_EMoamEEZ73f0CkXaXp7hrann"

ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_OAUTH_BETA = "oauth-2025-04-20"


def credential_for_api_key(config: RuntimeConfig) -> str:
    if config.uses_oauth:
        return ""
    return config.api_key.strip()


def credential_for_bearer(config: RuntimeConfig) -> str:
    if config.uses_oauth:
        return config.oauth_access_token.strip()
    return config.api_key.strip()


def now_ms() -> int:
    return int(time.time() * 1000)


def refresh_openai_access_token_if_needed(
    config: RuntimeConfig,
    *,
    transport: HttpTransport,
    logger: EventLogger | None = None,
    current_time_ms: int | None = None,
) -> str:
    """
    Return a usable OpenAI subscription access token.

    Refresh failures fall back to the current token; the chat request that
    follows surfaces the upstream auth error instead.
    """
    current = config.oauth_access_token.strip()
    if not current:
        return ""
    expires = config.oauth_expires_at_ms
    leeway_ms = transport.settings.refresh_leeway_seconds * 1000
    clock = now_ms() if current_time_ms is None else current_time_ms
    if expires <= 0 or clock < expires - leeway_ms:
        return current

    refresh = config.oauth_refresh_token.strip()
    if not refresh:
        return current

    try:
        response = transport.post_form(
            OPENAI_OAUTH_TOKEN_URL,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh,
                "client_id": OPENAI_OAUTH_CLIENT_ID,
            },
            headers={"Accept": "application/json"},
            read_timeout_seconds=transport.settings.oauth_read_timeout_seconds,
        )
    except GatewayError as exc:
        _record_refresh(logger, config, "token_refresh_failed", str(exc))
        return current

    payload = response.json_object() if response.ok else None
    access = payload.get("access_token") if payload else None
    if not isinstance(access, str) or not access.strip():
        _record_refresh(logger, config, "token_refresh_failed", f"HTTP {response.status_code}")
        return current
    _record_refresh(logger, config, "token_refreshed")
    return access.strip()


def _record_refresh(
    logger: EventLogger | None,
    config: RuntimeConfig,
    phase: str,
    detail: str | None = None,
) -> None:
    if logger is None:
        return
    logger.on_llm_call(
        provider=ProviderKind.OPENAI_CODEX.value,
        model=config.model,
        phase=phase,
        detail=detail,
    )


def build_provider_auth_headers(
    *,
    provider: ProviderKind,
    config: RuntimeConfig,
    bearer_token: str = "",
) -> dict[str, str]:
    if provider == ProviderKind.OLLAMA:
        return {}

    if provider in {ProviderKind.OPENAI_COMPATIBLE, ProviderKind.GEMINI}:
        if not bearer_token:
            return {}
        return {"Authorization": f"Bearer {bearer_token}"}

    if provider == ProviderKind.OPENAI_CODEX:
        headers = {
            "Authorization": f"Bearer {bearer_token}",
            "Accept": "application/json",
        }
        if config.account_id.strip():
            headers["ChatGPT-Account-Id"] = config.account_id.strip()
        return headers

    if provider == ProviderKind.ANTHROPIC:
        api_key = credential_for_api_key(config)
        oauth_token = credential_for_bearer(config)
        use_oauth = config.uses_oauth and bool(oauth_token)
        if use_oauth:
            return {
                "Authorization": f"Bearer {oauth_token}",
                "anthropic-beta": ANTHROPIC_OAUTH_BETA,
                "anthropic-version": ANTHROPIC_VERSION,
            }
        return {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    raise ValueError(f"unsupported provider: {provider.value}")
