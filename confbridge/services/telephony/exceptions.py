"""Call-control exceptions."""


class TelephonyError(Exception):
    """Base exception for call-control operations."""


class TelephonyProviderError(TelephonyError):
    """Raised when a call-control provider operation fails."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ResourceUnavailableError(TelephonyProviderError):
    """Raised when the provider cannot serve an inventory or lookup request."""


class CallControlError(TelephonyProviderError):
    """Raised when a call-control verb (connect, disconnect, conference) is refused."""


class TelephonyConfigurationError(TelephonyError):
    """Raised when provider configuration is missing or invalid."""
