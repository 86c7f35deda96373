"""Call-control service: provider abstraction, events and the provider factory."""

import importlib
import logging
import threading

from confbridge.services.telephony.base import (
    Address,
    BaseCallControlProvider,
    Call,
    CallControlObserver,
    Connection,
    ConnectionState,
    Terminal,
)
from confbridge.services.telephony.events import (
    AddressEvent,
    AddressEventType,
    CallEvent,
    CallEventType,
    ProviderEvent,
    ProviderEventType,
    TerminalEvent,
    TerminalEventType,
)
from confbridge.services.telephony.exceptions import (
    CallControlError,
    ResourceUnavailableError,
    TelephonyConfigurationError,
    TelephonyError,
    TelephonyProviderError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "Address",
    "AddressEvent",
    "AddressEventType",
    "BaseCallControlProvider",
    "Call",
    "CallControlError",
    "CallControlObserver",
    "CallEvent",
    "CallEventType",
    "Connection",
    "ConnectionState",
    "ProviderEvent",
    "ProviderEventType",
    "ResourceUnavailableError",
    "TelephonyConfigurationError",
    "TelephonyError",
    "TelephonyProviderError",
    "Terminal",
    "TerminalEvent",
    "TerminalEventType",
    "get_call_control_provider",
    "load_provider_class",
    "reset_call_control_provider",
]

# Lazy-initialized provider (avoids import-time errors when the adapter is missing)
_provider: BaseCallControlProvider | None = None
_provider_lock = threading.Lock()


def load_provider_class(path: str) -> type[BaseCallControlProvider]:
    """Resolve a ``"package.module:ClassName"`` path to a provider class.

    Raises TelephonyConfigurationError if the path is malformed, cannot be
    imported, or does not name a BaseCallControlProvider subclass.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise TelephonyConfigurationError(
            f"CALL_CONTROL_PROVIDER must look like 'package.module:ClassName', got {path!r}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise TelephonyConfigurationError(f"Cannot import provider module {module_name!r}: {exc}") from exc

    cls = getattr(module, attr, None)
    if not isinstance(cls, type) or not issubclass(cls, BaseCallControlProvider):
        raise TelephonyConfigurationError(f"{path!r} is not a BaseCallControlProvider subclass")
    return cls


def get_call_control_provider() -> BaseCallControlProvider:
    """Get or create the call-control provider singleton.

    Raises TelephonyConfigurationError if the configured provider cannot be built.
    """
    global _provider  # noqa: PLW0603
    if _provider is not None:
        return _provider

    with _provider_lock:
        # Double-check after acquiring lock
        if _provider is not None:
            return _provider

        from confbridge.core.config import settings

        cls = load_provider_class(settings.CALL_CONTROL_PROVIDER)
        _provider = cls.from_settings(settings)
        logger.info("Call-control provider %s initialized (%s)", _provider.name, settings.masked_provider_string)
        return _provider


def reset_call_control_provider() -> None:
    """Drop the cached provider so the next lookup builds a fresh one."""
    global _provider  # noqa: PLW0603
    with _provider_lock:
        _provider = None
