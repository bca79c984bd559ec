from __future__ import annotations


class GatewayError(RuntimeError):
    pass


class ChatError(GatewayError):
    pass


class UnsupportedProvider(ChatError):
    def __init__(self, provider: str) -> None:
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


class MissingCredential(ChatError):
    pass


class TransportError(ChatError):
    """Connection or read failure before any HTTP status was received."""


class MalformedResponse(ChatError):
    pass


class UpstreamHttpError(ChatError):
    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class OAuthError(GatewayError):
    pass


class OAuthDenied(OAuthError):
    pass


class OAuthPollTimeout(OAuthError):
    pass


class OAuthCancelled(OAuthError):
    pass


class OAuthHttpError(OAuthError, UpstreamHttpError):
    pass


class OAuthMalformedResponse(OAuthError, MalformedResponse):
    pass


class OAuthTransportError(OAuthError, TransportError):
    pass
