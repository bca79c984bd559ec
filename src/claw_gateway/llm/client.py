from __future__ import annotations

from typing import Callable

import httpx

from claw_gateway.hooks.observability import EventLogger

from .errors import ChatError
from .models import GatewaySettings, ProviderKind, RuntimeConfig
from .provider_runner import HttpProviderRunner
from .router import ProviderRouter


class ProviderGateway:
    """
    Routes one chat message to the upstream named by ``config.provider``.

    There is no fallback chain: a failing adapter fails the call, and it is
    never retried against another provider or auth mode. The gateway keeps
    no state between calls beyond its event log.
    """

    def __init__(
        self,
        *,
        settings: GatewaySettings | None = None,
        logger: EventLogger | None = None,
        transport: httpx.BaseTransport | None = None,
        provider_runner: Callable[[ProviderKind, str, RuntimeConfig], str] | None = None,
    ) -> None:
        self.settings = settings or GatewaySettings()
        self.logger = logger or EventLogger()
        self.router = ProviderRouter()
        self.provider_runner = provider_runner or HttpProviderRunner(
            settings=self.settings,
            transport=transport,
            logger=self.logger,
        )

    def send_message(self, message: str, config: RuntimeConfig) -> str:
        try:
            provider = self.router.resolve_provider(config)
        except ChatError as exc:
            self.logger.on_llm_call(
                provider=config.normalized_provider,
                model=config.model,
                phase="error",
                detail=str(exc),
            )
            raise

        self.logger.on_llm_call(provider=provider.value, model=config.model, phase="start")
        try:
            output = self.provider_runner(provider, message, config)
        except ChatError as exc:
            self.logger.on_llm_call(
                provider=provider.value,
                model=config.model,
                phase="error",
                detail=str(exc),
            )
            raise
        self.logger.on_llm_call(provider=provider.value, model=config.model, phase="success")
        return output
