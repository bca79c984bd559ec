from __future__ import annotations

import base64
import json
import time
from threading import Event
from typing import Any

import httpx

from claw_gateway.hooks.observability import EventLogger

from .errors import (
    OAuthCancelled,
    OAuthDenied,
    OAuthError,
    OAuthHttpError,
    OAuthMalformedResponse,
    OAuthPollTimeout,
    OAuthTransportError,
    TransportError,
)
from .models import DeviceAuthSession, DeviceFlowState, GatewaySettings, OAuthTokenResult
from .provider_auth import OPENAI_OAUTH_CLIENT_ID, OPENAI_OAUTH_ISSUER, OPENAI_OAUTH_TOKEN_URL, now_ms
from .transport import HttpTransport, TransportResponse

OPENAI_USER_CODE_URL = f"{OPENAI_OAUTH_ISSUER}/api/accounts/deviceauth/usercode"
OPENAI_DEVICE_TOKEN_URL = f"{OPENAI_OAUTH_ISSUER}/api/accounts/deviceauth/token"
OPENAI_VERIFICATION_URL = f"{OPENAI_OAUTH_ISSUER}/codex/device"
OPENAI_DEVICE_REDIRECT_URI = f"{OPENAI_OAUTH_ISSUER}/deviceauth/callback"
OPENAI_AUTH_CLAIM = "https://api.openai.com/auth"
# the device-auth token endpoint answers these while the user has not approved yet
OPENAI_PENDING_STATUSES = frozenset({403, 404})

COPILOT_CLIENT_ID = "Ov23li8tweQw6odWQebz"
COPILOT_SCOPE = "read:user"
COPILOT_DEFAULT_DOMAIN = "github.com"
DEVICE_CODE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
COPILOT_RETRYABLE_ERRORS = frozenset({"authorization_pending", "slow_down"})

DEFAULT_POLL_INTERVAL_SECONDS = 5
DEFAULT_EXPIRES_IN_SECONDS = 3600

OPENAI_PROVIDER = "openai"
COPILOT_PROVIDER = "copilot"
DEVICE_FLOW_PROVIDERS = {
    "openai": OPENAI_PROVIDER,
    "copilot": COPILOT_PROVIDER,
    "github-copilot": COPILOT_PROVIDER,
}


def normalize_device_flow_provider(provider: str) -> str:
    name = provider.strip().lower()
    resolved = DEVICE_FLOW_PROVIDERS.get(name)
    if resolved is None:
        raise OAuthError(f"device flow is not supported for provider: {name}")
    return resolved


def normalize_domain(url_or_domain: str) -> str:
    trimmed = url_or_domain.strip()
    if not trimmed:
        return COPILOT_DEFAULT_DOMAIN
    for prefix in ("https://", "http://"):
        if trimmed.startswith(prefix):
            trimmed = trimmed[len(prefix):]
            break
    return trimmed.rstrip("/") or COPILOT_DEFAULT_DOMAIN


def decode_account_id(id_token: str) -> str:
    """Best-effort ``chatgpt_account_id`` lookup in an id_token payload."""
    if not isinstance(id_token, str) or not id_token.strip():
        return ""
    segments = id_token.strip().split(".")
    if len(segments) < 2:
        return ""
    payload = segments[1]
    payload += "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload.encode("ascii")).decode("utf-8"))
    except (ValueError, UnicodeError):
        return ""
    if not isinstance(claims, dict):
        return ""
    account_id = claims.get("chatgpt_account_id")
    if isinstance(account_id, str) and account_id.strip():
        return account_id.strip()
    nested = claims.get(OPENAI_AUTH_CLAIM)
    if isinstance(nested, dict):
        account_id = nested.get("chatgpt_account_id")
        if isinstance(account_id, str):
            return account_id.strip()
    return ""


def _coerce_interval(value: Any, default: int) -> int:
    try:
        interval = int(str(value).strip()) if value is not None else default
    except ValueError:
        interval = default
    return max(1, interval)


def _pause(delay: float, cancel: Event | None) -> bool:
    """Sleep for ``delay`` seconds; True when ``cancel`` was set meanwhile."""
    if cancel is None:
        time.sleep(delay)
        return False
    return cancel.wait(delay)


class DeviceFlowEngine:
    """
    OAuth device-authorization grant for OpenAI subscription and GitHub Copilot.

    - start_device_flow(): request a user code and return the session to show
    - complete_device_flow(): poll until the user approves, then return tokens

    Polling has no attempt cap unless ``settings.max_poll_attempts`` is set.
    """

    def __init__(
        self,
        *,
        settings: GatewaySettings | None = None,
        transport: httpx.BaseTransport | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self.settings = settings or GatewaySettings()
        self.http = HttpTransport(settings=self.settings, transport=transport)
        self.logger = logger or EventLogger()

    def start_device_flow(self, provider: str, enterprise_url: str = "") -> DeviceAuthSession:
        resolved = normalize_device_flow_provider(provider)
        if resolved == OPENAI_PROVIDER:
            session = self._start_openai()
        else:
            session = self._start_copilot(enterprise_url)
        session.state = DeviceFlowState.AWAITING_USER_CODE
        self.logger.on_oauth(
            provider=resolved,
            phase="started",
            session_id=session.session_id,
            verification_url=session.verification_url,
        )
        return session

    def complete_device_flow(
        self,
        session: DeviceAuthSession,
        *,
        cancel: Event | None = None,
    ) -> OAuthTokenResult:
        if session.state != DeviceFlowState.AWAITING_USER_CODE:
            raise OAuthError(
                f"device session {session.session_id} cannot be completed from state={session.state.value}"
            )
        provider = normalize_device_flow_provider(session.provider)
        session.state = DeviceFlowState.POLLING
        try:
            if provider == OPENAI_PROVIDER:
                result = self._complete_openai(session, cancel)
            else:
                result = self._complete_copilot(session, cancel)
        except OAuthError as exc:
            session.state = DeviceFlowState.FAILED
            self.logger.on_oauth(
                provider=provider,
                phase="failed",
                detail=str(exc),
                session_id=session.session_id,
            )
            raise
        except BaseException:
            session.state = DeviceFlowState.FAILED
            raise
        session.state = DeviceFlowState.SUCCEEDED
        self.logger.on_oauth(provider=provider, phase="succeeded", session_id=session.session_id)
        return result

    def _start_openai(self) -> DeviceAuthSession:
        payload = self._post_json(OPENAI_USER_CODE_URL, {"client_id": OPENAI_OAUTH_CLIENT_ID})
        return DeviceAuthSession(
            provider=OPENAI_PROVIDER,
            verification_url=OPENAI_VERIFICATION_URL,
            user_code=str(payload.get("user_code") or ""),
            device_code=str(payload.get("device_auth_id") or ""),
            interval_seconds=_coerce_interval(payload.get("interval"), DEFAULT_POLL_INTERVAL_SECONDS),
        )

    def _start_copilot(self, enterprise_url: str) -> DeviceAuthSession:
        domain = normalize_domain(enterprise_url)
        payload = self._post_json(
            f"https://{domain}/login/device/code",
            {"client_id": COPILOT_CLIENT_ID, "scope": COPILOT_SCOPE},
            headers={"Accept": "application/json"},
        )
        return DeviceAuthSession(
            provider=COPILOT_PROVIDER,
            verification_url=str(payload.get("verification_uri") or ""),
            user_code=str(payload.get("user_code") or ""),
            device_code=str(payload.get("device_code") or ""),
            interval_seconds=_coerce_interval(payload.get("interval"), DEFAULT_POLL_INTERVAL_SECONDS),
            metadata={"domain": domain},
        )

    def _complete_openai(self, session: DeviceAuthSession, cancel: Event | None) -> OAuthTokenResult:
        attempt = 0
        while True:
            attempt = self._next_attempt(session, attempt, cancel)
            response = self._send_json(
                OPENAI_DEVICE_TOKEN_URL,
                {"device_auth_id": session.device_code, "user_code": session.user_code},
            )
            if response.status_code in OPENAI_PENDING_STATUSES:
                payload: dict[str, Any] = {}
            else:
                payload = self._json_payload(response)

            code = payload.get("authorization_code")
            verifier = payload.get("code_verifier")
            if code and verifier:
                return self._exchange_openai_code(str(code), str(verifier))

            self._wait(session, attempt, session.interval_seconds, cancel)

    def _exchange_openai_code(self, code: str, code_verifier: str) -> OAuthTokenResult:
        try:
            response = self.http.post_form(
                OPENAI_OAUTH_TOKEN_URL,
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": OPENAI_DEVICE_REDIRECT_URI,
                    "client_id": OPENAI_OAUTH_CLIENT_ID,
                    "code_verifier": code_verifier,
                },
                headers={"Accept": "application/json"},
                read_timeout_seconds=self.settings.oauth_read_timeout_seconds,
            )
        except TransportError as exc:
            raise OAuthTransportError(f"OAuth token exchange failed: {exc}") from exc
        payload = self._json_payload(response)

        access = payload.get("access_token")
        if not isinstance(access, str) or not access.strip():
            raise OAuthMalformedResponse("OAuth token exchange returned no access_token")
        refresh = payload.get("refresh_token")
        try:
            expires_in = int(payload.get("expires_in", DEFAULT_EXPIRES_IN_SECONDS))
        except (TypeError, ValueError, OverflowError):
            expires_in = DEFAULT_EXPIRES_IN_SECONDS
        return OAuthTokenResult(
            access_token=access.strip(),
            refresh_token=refresh.strip() if isinstance(refresh, str) else "",
            expires_at_ms=now_ms() + expires_in * 1000,
            account_id=decode_account_id(str(payload.get("id_token") or "")),
        )

    def _complete_copilot(self, session: DeviceAuthSession, cancel: Event | None) -> OAuthTokenResult:
        domain = session.metadata.get("domain", "").strip() or COPILOT_DEFAULT_DOMAIN
        token_url = f"https://{domain}/login/oauth/access_token"
        attempt = 0
        while True:
            attempt = self._next_attempt(session, attempt, cancel)
            response = self._send_json(
                token_url,
                {
                    "client_id": COPILOT_CLIENT_ID,
                    "device_code": session.device_code,
                    "grant_type": DEVICE_CODE_GRANT_TYPE,
                },
                headers={"Accept": "application/json"},
            )
            payload = response.json_object()
            if payload is None and response.ok:
                raise OAuthMalformedResponse(
                    f"Copilot token endpoint returned non-JSON body: {response.text[:300]}"
                )
            if payload is None or (not response.ok and "error" not in payload):
                raise OAuthHttpError(response.status_code, response.text)

            access = payload.get("access_token")
            if isinstance(access, str) and access.strip():
                return OAuthTokenResult(
                    access_token=access.strip(),
                    refresh_token=access.strip(),
                    expires_at_ms=0,
                    enterprise_url="" if domain == COPILOT_DEFAULT_DOMAIN else domain,
                )

            error = str(payload.get("error") or "").strip()
            if error and error not in COPILOT_RETRYABLE_ERRORS:
                description = str(payload.get("error_description") or "").strip()
                detail = f"Copilot OAuth failed: {error}"
                if description:
                    detail = f"{detail} ({description})"
                if error == "expired_token":
                    raise OAuthPollTimeout(detail)
                raise OAuthDenied(detail)

            interval = max(
                _coerce_interval(payload.get("interval"), session.interval_seconds),
                session.interval_seconds,
            )
            self._wait(session, attempt, interval, cancel)

    def _next_attempt(self, session: DeviceAuthSession, attempt: int, cancel: Event | None) -> int:
        if cancel is not None and cancel.is_set():
            raise OAuthCancelled(f"device flow {session.session_id} was cancelled")
        limit = self.settings.max_poll_attempts
        if limit is not None and attempt >= limit:
            raise OAuthPollTimeout(
                f"device flow {session.session_id} not authorized after {attempt} polls"
            )
        return attempt + 1

    def _wait(
        self,
        session: DeviceAuthSession,
        attempt: int,
        interval_seconds: int,
        cancel: Event | None,
    ) -> None:
        delay = interval_seconds + self.settings.poll_buffer_seconds
        self.logger.on_oauth(
            provider=session.provider,
            phase="poll_pending",
            session_id=session.session_id,
            attempt=attempt,
            sleep_seconds=delay,
        )
        if _pause(delay, cancel):
            raise OAuthCancelled(f"device flow {session.session_id} was cancelled")

    def _post_json(
        self,
        url: str,
        body: dict[str, Any],
        *,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        return self._json_payload(self._send_json(url, body, headers=headers))

    def _send_json(
        self,
        url: str,
        body: dict[str, Any],
        *,
        headers: dict[str, str] | None = None,
    ) -> TransportResponse:
        try:
            return self.http.post_json(
                url,
                body,
                headers=headers,
                read_timeout_seconds=self.settings.oauth_read_timeout_seconds,
            )
        except TransportError as exc:
            raise OAuthTransportError(f"OAuth request to {url} failed: {exc}") from exc

    @staticmethod
    def _json_payload(response: TransportResponse) -> dict[str, Any]:
        if not response.ok:
            raise OAuthHttpError(response.status_code, response.text)
        payload = response.json_object()
        if payload is None:
            raise OAuthMalformedResponse(f"OAuth endpoint returned non-JSON body: {response.text[:300]}")
        return payload
