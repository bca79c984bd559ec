import json

import httpx
import pytest

from claw_gateway.hooks.observability import EventLogger
from claw_gateway.llm.client import ProviderGateway
from claw_gateway.llm.errors import MissingCredential, TransportError, UnsupportedProvider, UpstreamHttpError
from claw_gateway.llm.models import ProviderKind, RuntimeConfig
from claw_gateway.llm.router import ProviderRouter


def _gateway(handler, logger: EventLogger | None = None) -> ProviderGateway:
    return ProviderGateway(transport=httpx.MockTransport(handler), logger=logger)


def _body(request: httpx.Request) -> dict:
    return json.loads(request.content.decode("utf-8"))


@pytest.mark.parametrize(
    ("provider", "auth_mode", "expected"),
    [
        ("ollama", "api_key", ProviderKind.OLLAMA),
        ("  OLLAMA ", "api_key", ProviderKind.OLLAMA),
        ("openai", "api_key", ProviderKind.OPENAI_COMPATIBLE),
        ("OpenAI", "oauth_token", ProviderKind.OPENAI_CODEX),
        ("openrouter", "oauth_token", ProviderKind.OPENAI_COMPATIBLE),
        ("copilot", "api_key", ProviderKind.OPENAI_COMPATIBLE),
        ("GitHub-Copilot", "oauth_token", ProviderKind.OPENAI_COMPATIBLE),
        ("anthropic", "api_key", ProviderKind.ANTHROPIC),
        ("gemini", "api_key", ProviderKind.GEMINI),
        (" Google ", "api_key", ProviderKind.GEMINI),
        ("google-gemini", "oauth_token", ProviderKind.GEMINI),
    ],
)
def test_router_resolves_provider_aliases(provider: str, auth_mode: str, expected: ProviderKind) -> None:
    config = RuntimeConfig(provider=provider, auth_mode=auth_mode)
    assert ProviderRouter().resolve_provider(config) == expected


def test_unknown_provider_fails_without_sending_request() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(200, json={})

    logger = EventLogger()
    with pytest.raises(UnsupportedProvider) as exc_info:
        _gateway(handler, logger).send_message("hello", RuntimeConfig(provider="mistral"))

    assert "mistral" in str(exc_info.value)
    assert calls["count"] == 0
    assert [event.name for event in logger.list_events()] == ["error"]


def test_ollama_chat_end_to_end() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert str(request.url) == "http://host:11434/api/chat"
        assert "Authorization" not in request.headers
        assert request.headers["User-Agent"].startswith("claw-gateway/")
        payload = _body(request)
        assert payload == {
            "model": "m",
            "stream": False,
            "options": {"temperature": 0.0},
            "messages": [{"role": "user", "content": "hello"}],
        }
        return httpx.Response(200, json={"message": {"role": "assistant", "content": "hi"}})

    logger = EventLogger()
    config = RuntimeConfig(provider="ollama", api_url="http://host:11434/", model="m", temperature=0)

    assert _gateway(handler, logger).send_message("hello", config) == "hi"
    assert [event.name for event in logger.list_events()] == ["start", "success"]


def test_ollama_http_error_carries_status_and_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    config = RuntimeConfig(provider="ollama", api_url="http://host:11434", model="m", temperature=0)

    with pytest.raises(UpstreamHttpError) as exc_info:
        _gateway(handler).send_message("hello", config)

    assert exc_info.value.status_code == 500
    assert "500" in str(exc_info.value)
    assert "boom" in str(exc_info.value)


def test_ollama_empty_content_returns_placeholder() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"message": {"content": "   "}})

    output = _gateway(handler).send_message("hello", RuntimeConfig(provider="ollama"))
    assert output == "Ollama returned an empty response"


def test_connection_failure_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        _gateway(handler).send_message("hello", RuntimeConfig(provider="ollama"))


def test_openai_compatible_sends_bearer_and_parses_choices() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        payload = _body(request)
        assert payload["model"] == "gpt-4o-mini"
        assert payload["temperature"] == 0.3
        assert payload["messages"] == [{"role": "user", "content": "hello"}]
        return httpx.Response(200, json={"choices": [{"message": {"content": "pong"}}]})

    config = RuntimeConfig(provider="openai", api_url="", api_key=" sk-test ", model="gpt-4o-mini", temperature=0.3)
    assert _gateway(handler).send_message("hello", config) == "pong"


def test_openrouter_defaults_and_attribution_headers() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
        assert request.headers["HTTP-Referer"] == "https://mobileclaw.app"
        assert request.headers["X-Title"] == "MobileClaw"
        return httpx.Response(200, json={"choices": []})

    config = RuntimeConfig(provider="openrouter", api_url="", api_key="or-key")
    assert _gateway(handler).send_message("hello", config) == "Provider returned an empty response"


def test_copilot_adds_intent_and_enterprise_headers() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://api.githubcopilot.com/chat/completions"
        assert request.headers["Authorization"] == "Bearer gho_token"
        assert request.headers["Openai-Intent"] == "conversation-edits"
        assert request.headers["x-initiator"] == "user"
        assert request.headers["X-GitHub-Enterprise-Host"] == "ghe.example.com"
        return httpx.Response(200, json={"choices": [{"message": {"content": "copilot-ok"}}]})

    config = RuntimeConfig(
        provider="copilot",
        api_url="",
        auth_mode="oauth_token",
        oauth_access_token="gho_token",
        enterprise_url="ghe.example.com",
    )
    assert _gateway(handler).send_message("hello", config) == "copilot-ok"


def test_bearer_provider_without_credentials_raises_missing_credential() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    config = RuntimeConfig(provider="openrouter", auth_mode="oauth_token", api_key="ignored-in-oauth-mode")
    with pytest.raises(MissingCredential):
        _gateway(handler).send_message("hello", config)

    with pytest.raises(MissingCredential):
        _gateway(handler).send_message("hello", RuntimeConfig(provider="copilot", api_key="  "))


def test_ollama_in_oauth_mode_still_dispatches() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "Authorization" not in request.headers
        return httpx.Response(200, json={"message": {"content": "local"}})

    config = RuntimeConfig(provider="ollama", auth_mode="oauth_token")
    assert _gateway(handler).send_message("hello", config) == "local"


def test_anthropic_api_key_mode_headers() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "ant-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert "Authorization" not in request.headers
        assert "anthropic-beta" not in request.headers
        payload = _body(request)
        assert payload["max_tokens"] == 1024
        assert payload["messages"] == [{"role": "user", "content": "hello"}]
        return httpx.Response(200, json={"content": [{"type": "text", "text": "claude-ok"}]})

    config = RuntimeConfig(provider="anthropic", api_url="", api_key="ant-key", model="claude")
    assert _gateway(handler).send_message("hello", config) == "claude-ok"


def test_anthropic_oauth_mode_headers() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "x-api-key" not in request.headers
        assert request.headers["Authorization"] == "Bearer ant-oauth"
        assert request.headers["anthropic-beta"] == "oauth-2025-04-20"
        return httpx.Response(200, json={"content": []})

    config = RuntimeConfig(
        provider="anthropic",
        api_url="",
        api_key="ant-key",
        auth_mode="oauth_token",
        oauth_access_token="ant-oauth",
    )
    assert _gateway(handler).send_message("hello", config) == "Anthropic returned empty content"


def test_anthropic_blank_text_placeholder_and_missing_credential() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"content": [{"type": "text", "text": ""}]})

    config = RuntimeConfig(provider="anthropic", api_key="ant-key")
    assert _gateway(handler).send_message("hello", config) == "Anthropic returned empty text"

    with pytest.raises(MissingCredential):
        _gateway(handler).send_message(
            "hello",
            RuntimeConfig(provider="anthropic", auth_mode="oauth_token", api_key="ant-key"),
        )


def test_gemini_api_key_goes_in_query() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1beta/models/gemini-2.0-flash:generateContent"
        assert request.url.params.get("key") == "g-key"
        assert "Authorization" not in request.headers
        payload = _body(request)
        assert payload["contents"] == [{"parts": [{"text": "hello"}]}]
        assert payload["generationConfig"] == {"temperature": 0.1}
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "gemini-ok"}]}}]},
        )

    config = RuntimeConfig(provider="gemini", api_url="", api_key="g-key", model="gemini-2.0-flash")
    assert _gateway(handler).send_message("hello", config) == "gemini-ok"


def test_gemini_bearer_token_omits_key_param() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "key" not in request.url.params
        assert "key=" not in str(request.url)
        assert request.headers["Authorization"] == "Bearer ya29.token"
        assert request.url.path.endswith("/models/gemini-1.5-pro:generateContent")
        return httpx.Response(200, json={"candidates": []})

    config = RuntimeConfig(
        provider="google",
        api_url="",
        model="  ",
        api_key="g-key",
        auth_mode="oauth_token",
        oauth_access_token="ya29.token",
    )
    assert _gateway(handler).send_message("hello", config) == "Gemini returned an empty response"


def test_gemini_without_credentials_raises_missing_credential() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(MissingCredential):
        _gateway(handler).send_message("hello", RuntimeConfig(provider="gemini", auth_mode="oauth_token"))


def test_non_json_success_body_is_treated_as_empty_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>ok</html>")

    config = RuntimeConfig(provider="openai", api_key="sk-test")
    assert _gateway(handler).send_message("hello", config) == "Provider returned an empty response"


def test_gateway_accepts_injected_provider_runner() -> None:
    seen: list[tuple[ProviderKind, str]] = []

    def provider_runner(provider: ProviderKind, message: str, config: RuntimeConfig) -> str:
        seen.append((provider, message))
        return f"ok: {message}"

    gateway = ProviderGateway(provider_runner=provider_runner)
    assert gateway.send_message("ping", RuntimeConfig(provider="anthropic")) == "ok: ping"
    assert seen == [(ProviderKind.ANTHROPIC, "ping")]
