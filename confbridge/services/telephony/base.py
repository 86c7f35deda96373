"""Abstract call-control interface.

Mirrors the provider / terminal / address / call / connection model of CTI
call-control stacks. Concrete adapters implement these classes; everything else
in the service talks only to this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

from confbridge.services.telephony.events import (
    AddressEvent,
    CallEvent,
    ProviderEvent,
    TerminalEvent,
)

if TYPE_CHECKING:
    from confbridge.core.config import Settings


class ConnectionState(str, Enum):
    IDLE = "idle"
    OFFERED = "offered"
    IN_PROGRESS = "in-progress"
    ALERTING = "alerting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    UNKNOWN = "unknown"


class CallControlObserver(ABC):
    """Receives batches of change events from a provider."""

    @abstractmethod
    async def provider_changed(self, events: list[ProviderEvent]) -> None: ...

    @abstractmethod
    async def terminal_changed(self, events: list[TerminalEvent]) -> None: ...

    @abstractmethod
    async def address_changed(self, events: list[AddressEvent]) -> None: ...

    @abstractmethod
    async def call_changed(self, events: list[CallEvent]) -> None: ...


class Address(ABC):
    """A dialable directory number."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def in_service(self) -> bool: ...

    @property
    @abstractmethod
    def connections(self) -> list[Connection]:
        """Live connections currently present at this address."""

    @abstractmethod
    async def add_call_observer(self, observer: CallControlObserver) -> None: ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class Terminal(ABC):
    """A device (phone, softphone, route point) hosting one or more addresses."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    def is_route_point(self) -> bool:
        return False

    @abstractmethod
    async def add_call_observer(self, observer: CallControlObserver) -> None: ...

    @abstractmethod
    async def register(self, media: object | None = None) -> None:
        """Register a route-point terminal. ``media=None`` means no media registration.

        Terminals that are not route points raise CallControlError.
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class Connection(ABC):
    """One party's leg in a call."""

    @property
    @abstractmethod
    def connection_id(self) -> str: ...

    @property
    @abstractmethod
    def address(self) -> Address: ...

    @property
    @abstractmethod
    def call(self) -> Call: ...

    @property
    @abstractmethod
    def state(self) -> ConnectionState: ...

    @abstractmethod
    async def disconnect(self) -> None: ...


class Call(ABC):
    @property
    @abstractmethod
    def call_id(self) -> str: ...

    @property
    @abstractmethod
    def connections(self) -> list[Connection]:
        """Snapshot of the call's current connections."""

    @property
    @abstractmethod
    def conference_enabled(self) -> bool: ...

    @abstractmethod
    async def set_conference_enable(self, enabled: bool) -> None: ...

    @abstractmethod
    async def connect(self, terminal: Terminal, address: Address, dialed_digits: str) -> list[Connection]:
        """Place an outbound leg from ``terminal``/``address`` to ``dialed_digits``."""

    @abstractmethod
    async def conference(self, other: Call) -> None:
        """Merge the connections of ``other`` into this call."""


class BaseCallControlProvider(ABC):
    """Abstract base class for call-control providers."""

    @classmethod
    def from_settings(cls, settings: Settings) -> BaseCallControlProvider:
        """Build a provider from application settings."""
        return cls(settings.provider_string)

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier string."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the provider session.

        Readiness is reported asynchronously through an in-service
        ProviderEvent delivered to registered observers.
        """

    @abstractmethod
    async def shutdown(self) -> None: ...

    @abstractmethod
    async def add_observer(self, observer: CallControlObserver) -> None:
        """Register for provider, terminal and address change events."""

    @abstractmethod
    async def get_terminals(self) -> list[Terminal]:
        """Full terminal inventory. Raises ResourceUnavailableError."""

    @abstractmethod
    async def get_addresses(self) -> list[Address]:
        """Full address inventory. Raises ResourceUnavailableError."""

    @abstractmethod
    async def get_terminal(self, name: str) -> Terminal: ...

    @abstractmethod
    async def get_address(self, name: str) -> Address: ...

    @abstractmethod
    async def create_call(self) -> Call: ...
