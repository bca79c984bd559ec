from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .security import mask_sensitive_text


@dataclass
class HookEvent:
    at: datetime
    kind: str
    name: str
    payload: dict[str, Any] = field(default_factory=dict)


class EventLogger:
    def __init__(self) -> None:
        self._events: list[HookEvent] = []

    def record(self, kind: str, name: str, payload: dict[str, Any] | None = None) -> None:
        self._events.append(
            HookEvent(
                at=datetime.now(timezone.utc),
                kind=kind,
                name=name,
                payload=payload or {},
            )
        )

    def on_llm_call(self, provider: str, model: str, phase: str, detail: str | None = None) -> None:
        payload: dict[str, Any] = {"provider": provider, "model": model}
        if detail:
            payload["detail"] = mask_sensitive_text(detail)
        self.record("llm_call", phase, payload)

    def on_oauth(self, provider: str, phase: str, detail: str | None = None, **extra: Any) -> None:
        payload: dict[str, Any] = {"provider": provider, **extra}
        if detail:
            payload["detail"] = mask_sensitive_text(detail)
        self.record("oauth", phase, payload)

    def list_events(self, kind: str | None = None) -> list[HookEvent]:
        if kind is None:
            return list(self._events)
        return [event for event in self._events if event.kind == kind]
