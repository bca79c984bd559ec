"""Provider routing, chat adapters, credential resolution, and OAuth device flows."""

from .client import ProviderGateway
from .errors import (
    ChatError,
    GatewayError,
    MalformedResponse,
    MissingCredential,
    OAuthCancelled,
    OAuthDenied,
    OAuthError,
    OAuthHttpError,
    OAuthMalformedResponse,
    OAuthPollTimeout,
    OAuthTransportError,
    TransportError,
    UnsupportedProvider,
    UpstreamHttpError,
)
from .models import (
    AuthMode,
    DeviceAuthSession,
    DeviceFlowState,
    GatewaySettings,
    OAuthTokenResult,
    ProviderKind,
    RuntimeConfig,
)
from .oauth_device import DeviceFlowEngine, decode_account_id, normalize_domain
from .provider_auth import (
    credential_for_api_key,
    credential_for_bearer,
    refresh_openai_access_token_if_needed,
)
from .provider_runner import HttpProviderRunner
from .router import ProviderRouter
from .token_store import FileConfigStore, default_config_path
from .transport import HttpTransport, TransportResponse

__all__ = [
    "AuthMode",
    "ChatError",
    "credential_for_api_key",
    "credential_for_bearer",
    "decode_account_id",
    "default_config_path",
    "DeviceAuthSession",
    "DeviceFlowEngine",
    "DeviceFlowState",
    "FileConfigStore",
    "GatewayError",
    "GatewaySettings",
    "HttpProviderRunner",
    "HttpTransport",
    "MalformedResponse",
    "MissingCredential",
    "normalize_domain",
    "OAuthCancelled",
    "OAuthDenied",
    "OAuthError",
    "OAuthHttpError",
    "OAuthMalformedResponse",
    "OAuthPollTimeout",
    "OAuthTokenResult",
    "OAuthTransportError",
    "ProviderGateway",
    "ProviderKind",
    "ProviderRouter",
    "refresh_openai_access_token_if_needed",
    "RuntimeConfig",
    "TransportError",
    "TransportResponse",
    "UnsupportedProvider",
    "UpstreamHttpError",
]
