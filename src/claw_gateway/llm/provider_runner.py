from __future__ import annotations

from typing import Any

import httpx

from claw_gateway.hooks.observability import EventLogger

from .errors import MissingCredential, UpstreamHttpError
from .models import GatewaySettings, ProviderKind, RuntimeConfig
from .provider_auth import (
    build_provider_auth_headers,
    credential_for_api_key,
    credential_for_bearer,
    refresh_openai_access_token_if_needed,
)
from .router import is_copilot
from .transport import HttpTransport, TransportResponse

DEFAULT_OLLAMA_URL = "http://10.0.2.2:11434"
DEFAULT_OPENAI_URL = "https://api.openai.com/v1"
DEFAULT_OPENROUTER_URL = "https://openrouter.ai/api/v1"
DEFAULT_COPILOT_URL = "https://api.githubcopilot.com"
DEFAULT_CODEX_RESPONSES_URL = "https://chatgpt.com/backend-api/codex/responses"
DEFAULT_ANTHROPIC_URL = "https://api.anthropic.com/v1"
DEFAULT_GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL = "gemini-1.5-pro"

ANTHROPIC_MAX_TOKENS = 1024

OPENROUTER_ATTRIBUTION_HEADERS = {
    "HTTP-Referer": "https://mobileclaw.app",
    "X-Title": "MobileClaw",
}
COPILOT_INTENT_HEADERS = {
    "Openai-Intent": "conversation-edits",
    "x-initiator": "user",
}

EMPTY_OLLAMA = "Ollama returned an empty response"
EMPTY_OPENAI_COMPATIBLE = "Provider returned an empty response"
EMPTY_CODEX = "OpenAI subscription endpoint returned an empty response"
EMPTY_ANTHROPIC_CONTENT = "Anthropic returned empty content"
EMPTY_ANTHROPIC_TEXT = "Anthropic returned empty text"
EMPTY_GEMINI = "Gemini returned an empty response"


class HttpProviderRunner:
    """One chat adapter per ProviderKind, sharing a single transport."""

    def __init__(
        self,
        *,
        settings: GatewaySettings | None = None,
        transport: httpx.BaseTransport | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self.settings = settings or GatewaySettings()
        self.http = HttpTransport(settings=self.settings, transport=transport)
        self.logger = logger

    def __call__(self, provider: ProviderKind, message: str, config: RuntimeConfig) -> str:
        if provider == ProviderKind.OLLAMA:
            return self._run_ollama(message=message, config=config)
        if provider == ProviderKind.OPENAI_COMPATIBLE:
            return self._run_openai_compatible(message=message, config=config)
        if provider == ProviderKind.OPENAI_CODEX:
            return self._run_codex(message=message, config=config)
        if provider == ProviderKind.ANTHROPIC:
            return self._run_anthropic(message=message, config=config)
        if provider == ProviderKind.GEMINI:
            return self._run_gemini(message=message, config=config)
        raise ValueError(f"unsupported provider: {provider.value}")

    def _run_ollama(self, *, message: str, config: RuntimeConfig) -> str:
        base = _base_url(config, DEFAULT_OLLAMA_URL)
        payload = self._post(
            f"{base}/api/chat",
            body={
                "model": config.model,
                "stream": False,
                "options": {"temperature": config.temperature},
                "messages": [_user_message(message)],
            },
        )
        return _text_at(payload, "message", "content") or EMPTY_OLLAMA

    def _run_openai_compatible(self, *, message: str, config: RuntimeConfig) -> str:
        provider = config.normalized_provider
        if config.api_url.strip():
            base = config.api_url.strip().rstrip("/")
        elif provider == "openrouter":
            base = DEFAULT_OPENROUTER_URL
        elif is_copilot(config):
            base = DEFAULT_COPILOT_URL
        else:
            base = DEFAULT_OPENAI_URL

        token = credential_for_bearer(config)
        if not token:
            raise MissingCredential(f"API token is required for {config.provider}")

        headers = build_provider_auth_headers(
            provider=ProviderKind.OPENAI_COMPATIBLE,
            config=config,
            bearer_token=token,
        )
        if is_copilot(config):
            headers.update(COPILOT_INTENT_HEADERS)
            if config.enterprise_url.strip():
                headers["X-GitHub-Enterprise-Host"] = config.enterprise_url.strip()
        if "openrouter.ai" in base:
            headers.update(OPENROUTER_ATTRIBUTION_HEADERS)

        payload = self._post(
            f"{base}/chat/completions",
            body={
                "model": config.model,
                "temperature": config.temperature,
                "messages": [_user_message(message)],
            },
            headers=headers,
        )
        return _text_at(payload, "choices", 0, "message", "content") or EMPTY_OPENAI_COMPATIBLE

    def _run_codex(self, *, message: str, config: RuntimeConfig) -> str:
        token = refresh_openai_access_token_if_needed(
            config,
            transport=self.http,
            logger=self.logger,
        )
        if not token:
            raise MissingCredential("OAuth access token is required for OpenAI subscription mode")

        endpoint = config.api_url.strip() or DEFAULT_CODEX_RESPONSES_URL
        headers = build_provider_auth_headers(
            provider=ProviderKind.OPENAI_CODEX,
            config=config,
            bearer_token=token,
        )
        payload = self._post(
            endpoint,
            body={
                "model": config.model,
                "input": [_user_message(message)],
            },
            headers=headers,
        )
        output_text = _text_at(payload, "output_text")
        if output_text:
            return output_text
        return _text_at(payload, "output", 0, "content", 0, "text") or EMPTY_CODEX

    def _run_anthropic(self, *, message: str, config: RuntimeConfig) -> str:
        base = _base_url(config, DEFAULT_ANTHROPIC_URL)
        if not credential_for_api_key(config) and not credential_for_bearer(config):
            raise MissingCredential("API token is required for anthropic")

        headers = build_provider_auth_headers(provider=ProviderKind.ANTHROPIC, config=config)
        payload = self._post(
            f"{base}/messages",
            body={
                "model": config.model,
                "max_tokens": ANTHROPIC_MAX_TOKENS,
                "temperature": config.temperature,
                "messages": [_user_message(message)],
            },
            headers=headers,
        )
        content = payload.get("content")
        if not isinstance(content, list) or not content:
            return EMPTY_ANTHROPIC_CONTENT
        return _text_at(content, 0, "text") or EMPTY_ANTHROPIC_TEXT

    def _run_gemini(self, *, message: str, config: RuntimeConfig) -> str:
        base = _base_url(config, DEFAULT_GEMINI_URL)
        # an API key travels as ?key=, never as a bearer header
        bearer = credential_for_bearer(config) if config.uses_oauth else ""
        api_key = credential_for_api_key(config)
        use_bearer = bool(bearer)
        if not use_bearer and not api_key:
            raise MissingCredential("API token or OAuth token is required for gemini")

        model = config.model.strip() or DEFAULT_GEMINI_MODEL
        headers = build_provider_auth_headers(
            provider=ProviderKind.GEMINI,
            config=config,
            bearer_token=bearer if use_bearer else "",
        )
        payload = self._post(
            f"{base}/models/{model}:generateContent",
            body={
                "contents": [{"parts": [{"text": message}]}],
                "generationConfig": {"temperature": config.temperature},
            },
            headers=headers,
            params=None if use_bearer else {"key": api_key},
        )
        return _text_at(payload, "candidates", 0, "content", "parts", 0, "text") or EMPTY_GEMINI

    def _post(
        self,
        url: str,
        *,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        response = self.http.post_json(url, body, headers=headers, params=params)
        return _parse_chat_response(response)


def _parse_chat_response(response: TransportResponse) -> dict[str, Any]:
    if not response.ok:
        raise UpstreamHttpError(response.status_code, response.text)
    # a 2xx without a JSON object has no content path; callers fall back to placeholders
    return response.json_object() or {}


def _base_url(config: RuntimeConfig, default: str) -> str:
    return (config.api_url.strip() or default).rstrip("/")


def _user_message(message: str) -> dict[str, str]:
    return {"role": "user", "content": message}


def _text_at(payload: Any, *path: str | int) -> str:
    current = payload
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return ""
            current = current[step]
        else:
            if not isinstance(current, dict):
                return ""
            current = current.get(step)
    if not isinstance(current, str) or not current.strip():
        return ""
    return current
