"""Change events delivered by a call-control provider to its observers.

Events carry live references to the provider objects they concern, so they are
plain dataclasses rather than serializable models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from confbridge.services.telephony.base import Address, Call, Connection, Terminal


class ProviderEventType(str, Enum):
    IN_SERVICE = "provider-in-service"
    OUT_OF_SERVICE = "provider-out-of-service"
    SHUTDOWN = "provider-shutdown"


class TerminalEventType(str, Enum):
    IN_SERVICE = "terminal-in-service"
    OUT_OF_SERVICE = "terminal-out-of-service"


class AddressEventType(str, Enum):
    IN_SERVICE = "address-in-service"
    OUT_OF_SERVICE = "address-out-of-service"


class CallEventType(str, Enum):
    CALL_ACTIVE = "call-active"
    CALL_INVALID = "call-invalid"
    CONNECTION_OFFERED = "connection-offered"
    CONNECTION_ALERTING = "connection-alerting"
    CONNECTION_CONNECTED = "connection-connected"
    CONNECTION_DISCONNECTED = "connection-disconnected"


@dataclass(frozen=True)
class ProviderEvent:
    type: ProviderEventType


@dataclass(frozen=True)
class TerminalEvent:
    type: TerminalEventType
    terminal: Terminal


@dataclass(frozen=True)
class AddressEvent:
    type: AddressEventType
    address: Address


@dataclass(frozen=True)
class CallEvent:
    """A call-level change. ``connection`` is set for connection events."""

    type: CallEventType
    call: Call
    connection: Connection | None = None
