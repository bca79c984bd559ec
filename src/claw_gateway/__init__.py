"""LLM provider gateway with OAuth device-flow login."""

__version__ = "0.1.0"

from .llm import (  # noqa: E402
    DeviceAuthSession,
    DeviceFlowEngine,
    GatewaySettings,
    OAuthTokenResult,
    ProviderGateway,
    RuntimeConfig,
)

__all__ = [
    "__version__",
    "DeviceAuthSession",
    "DeviceFlowEngine",
    "GatewaySettings",
    "OAuthTokenResult",
    "ProviderGateway",
    "RuntimeConfig",
]
