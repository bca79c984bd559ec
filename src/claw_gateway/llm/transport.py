from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import TransportError
from .models import GatewaySettings


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json_object(self) -> dict[str, Any] | None:
        raw = self.text.strip()
        if not raw:
            return {}
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return payload if isinstance(payload, dict) else None


class HttpTransport:
    """Single-request HTTP transport shared by chat adapters and OAuth flows."""

    def __init__(
        self,
        *,
        settings: GatewaySettings | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings or GatewaySettings()
        self.transport = transport

    def post_json(
        self,
        url: str,
        body: dict[str, Any],
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        read_timeout_seconds: float | None = None,
    ) -> TransportResponse:
        merged = {"Content-Type": "application/json", **(headers or {})}
        return self._post(
            url,
            headers=merged,
            params=params,
            content=json.dumps(body, ensure_ascii=False).encode("utf-8"),
            read_timeout_seconds=read_timeout_seconds,
        )

    def post_form(
        self,
        url: str,
        form: dict[str, str],
        *,
        headers: dict[str, str] | None = None,
        read_timeout_seconds: float | None = None,
    ) -> TransportResponse:
        merged = {"Content-Type": "application/x-www-form-urlencoded", **(headers or {})}
        return self._post(
            url,
            headers=merged,
            data=form,
            read_timeout_seconds=read_timeout_seconds,
        )

    def _post(
        self,
        url: str,
        *,
        headers: dict[str, str],
        params: dict[str, str] | None = None,
        content: bytes | None = None,
        data: dict[str, str] | None = None,
        read_timeout_seconds: float | None = None,
    ) -> TransportResponse:
        timeout = httpx.Timeout(
            read_timeout_seconds or self.settings.chat_read_timeout_seconds,
            connect=self.settings.connect_timeout_seconds,
        )
        request_headers = {"User-Agent": self.settings.user_agent}
        # blank values mean "header not set"
        request_headers.update({key: value for key, value in headers.items() if value.strip()})
        try:
            with httpx.Client(timeout=timeout, transport=self.transport) as client:
                response = client.post(
                    url,
                    headers=request_headers,
                    params=params,
                    content=content,
                    data=data,
                )
        except httpx.HTTPError as exc:
            raise TransportError(f"request to {url} failed: {exc}") from exc
        return TransportResponse(status_code=response.status_code, text=response.text)
