"""In-memory call-control provider.

Simulates a small PBX: terminals host addresses, calls hold connections, and
observers receive the same event batches a vendor adapter would deliver. Used as
the default provider for local development and throughout the test suite.

Destinations that are not part of the inventory are treated as external numbers.
Legs to a number listed in ``auto_answer`` connect immediately; any other leg
stays alerting until ``answer()`` is called for its number.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

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
)

if TYPE_CHECKING:
    from confbridge.core.config import Settings

logger = logging.getLogger(__name__)

PROVIDER_NAME = "simulated"

_LIVE_STATES = frozenset(
    {
        ConnectionState.OFFERED,
        ConnectionState.IN_PROGRESS,
        ConnectionState.ALERTING,
        ConnectionState.CONNECTED,
    }
)


class SimulatedAddress(Address):
    def __init__(self, provider: SimulatedProvider, name: str, external: bool = False) -> None:
        self._provider = provider
        self._name = name
        self.external = external
        self.terminals: list[SimulatedTerminal] = []
        self.call_observers: list[CallControlObserver] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def in_service(self) -> bool:
        return self._provider.in_service and not self.external

    @property
    def connections(self) -> list[Connection]:
        return [
            conn
            for call in self._provider.calls
            for conn in call.connections
            if conn.address is self
        ]

    async def add_call_observer(self, observer: CallControlObserver) -> None:
        if self.external:
            raise CallControlError(PROVIDER_NAME, f"cannot observe external address {self._name}")
        if observer not in self.call_observers:
            self.call_observers.append(observer)


class SimulatedTerminal(Terminal):
    def __init__(self, name: str, route_point: bool = False) -> None:
        self._name = name
        self._route_point = route_point
        self.addresses: list[SimulatedAddress] = []
        self.call_observers: list[CallControlObserver] = []
        self.registered = False
        # Set to an exception instance to make register()/add_call_observer() fail
        self.fail_with: Exception | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_route_point(self) -> bool:
        return self._route_point

    async def register(self, media: object | None = None) -> None:
        if not self._route_point:
            raise CallControlError(PROVIDER_NAME, f"{self._name} is not a route point")
        if self.fail_with is not None:
            raise self.fail_with
        self.registered = True
        logger.debug("Route point %s registered (media=%s)", self._name, media)

    async def add_call_observer(self, observer: CallControlObserver) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        if self._route_point and not self.registered:
            raise CallControlError(PROVIDER_NAME, f"route point {self._name} is not registered")
        if observer not in self.call_observers:
            self.call_observers.append(observer)


class SimulatedConnection(Connection):
    def __init__(
        self,
        connection_id: str,
        call: SimulatedCall,
        address: SimulatedAddress,
        state: ConnectionState,
    ) -> None:
        self._connection_id = connection_id
        self._call = call
        self._address = address
        self._state = state

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def address(self) -> SimulatedAddress:
        return self._address

    @property
    def call(self) -> SimulatedCall:
        return self._call

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def disconnect(self) -> None:
        if self._state not in _LIVE_STATES:
            raise CallControlError(PROVIDER_NAME, f"connection {self._connection_id} is not active")
        self._state = ConnectionState.DISCONNECTED
        await self._call.provider.dispatch_call_event(
            CallEvent(CallEventType.CONNECTION_DISCONNECTED, self._call, self)
        )

    def __repr__(self) -> str:
        return f"<SimulatedConnection {self._connection_id} {self._address.name} {self._state.value}>"


class SimulatedCall(Call):
    def __init__(self, provider: SimulatedProvider, call_id: str) -> None:
        self.provider = provider
        self._call_id = call_id
        self._connections: list[SimulatedConnection] = []
        self._conference_enabled = False
        self.invalid = False

    @property
    def call_id(self) -> str:
        return self._call_id

    @property
    def connections(self) -> list[SimulatedConnection]:
        return [conn for conn in self._connections if conn.state in _LIVE_STATES]

    @property
    def conference_enabled(self) -> bool:
        return self._conference_enabled

    async def set_conference_enable(self, enabled: bool) -> None:
        self._conference_enabled = enabled

    async def connect(self, terminal: Terminal, address: Address, dialed_digits: str) -> list[Connection]:
        if self.invalid:
            raise CallControlError(PROVIDER_NAME, f"call {self._call_id} is no longer valid")
        if not isinstance(address, SimulatedAddress) or terminal not in address.terminals:
            raise CallControlError(PROVIDER_NAME, f"{address!r} is not hosted on {terminal!r}")
        if any(conn.address is address for conn in self.connections):
            raise CallControlError(PROVIDER_NAME, f"{address.name} is already in call {self._call_id}")
        if self.connections and not self._conference_enabled:
            raise CallControlError(PROVIDER_NAME, f"call {self._call_id} is not conference-enabled")

        origin = self._add_connection(address, ConnectionState.CONNECTED)
        created: list[Connection] = [origin]
        events = [CallEvent(CallEventType.CONNECTION_CONNECTED, self, origin)]

        destination = self.provider.resolve_address(dialed_digits)
        joined = next((conn for conn in self.connections if conn.address is destination), None)
        if joined is None:
            if dialed_digits in self.provider.auto_answer:
                state, event_type = ConnectionState.CONNECTED, CallEventType.CONNECTION_CONNECTED
            else:
                state, event_type = ConnectionState.ALERTING, CallEventType.CONNECTION_ALERTING
            joined = self._add_connection(destination, state)
            events.append(CallEvent(event_type, self, joined))
        created.append(joined)

        await self.provider.dispatch_call_event(*events)
        return created

    async def conference(self, other: Call) -> None:
        if not self._conference_enabled:
            raise CallControlError(PROVIDER_NAME, f"call {self._call_id} is not conference-enabled")
        if not isinstance(other, SimulatedCall) or other is self or other.invalid:
            raise CallControlError(PROVIDER_NAME, f"cannot conference {other!r} into {self._call_id}")
        if not other.connections:
            raise CallControlError(PROVIDER_NAME, f"call {other.call_id} has no active connections")

        present = {conn.address for conn in self.connections}
        for conn in other.connections:
            if conn.address in present:
                conn._state = ConnectionState.DISCONNECTED
                continue
            conn._call = self
            self._connections.append(conn)
        other._connections = []
        other.invalid = True
        await self.provider.dispatch_call_event(CallEvent(CallEventType.CALL_INVALID, other))

    def _add_connection(self, address: SimulatedAddress, state: ConnectionState) -> SimulatedConnection:
        conn = SimulatedConnection(self.provider.next_connection_id(), self, address, state)
        self._connections.append(conn)
        return conn

    def __repr__(self) -> str:
        return f"<SimulatedCall {self._call_id}>"


class SimulatedProvider(BaseCallControlProvider):
    """In-memory provider with a configurable terminal/address inventory.

    Usage::

        provider = SimulatedProvider(auto_answer={"4030"})
        provider.add_terminal("CTIRoutePoint88", ["885016"], route_point=True)
        await provider.add_observer(router)
        await provider.connect()
        call = await provider.offer_call("0711223344", "885016")
    """

    def __init__(self, provider_string: str = "", auto_answer: Iterable[str] = ()) -> None:
        # "<host>;login=<user>;passwd=<password>"; only the host is kept
        self.host = provider_string.split(";", 1)[0]
        self.auto_answer: set[str] = set(auto_answer)
        self.in_service = False
        # Set False to make inventory queries raise ResourceUnavailableError
        self.inventory_available = True
        self._observers: list[CallControlObserver] = []
        self._terminals: dict[str, SimulatedTerminal] = {}
        self._addresses: dict[str, SimulatedAddress] = {}
        self._external: dict[str, SimulatedAddress] = {}
        self._calls: list[SimulatedCall] = []
        self._call_ids = itertools.count(1)
        self._connection_ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings: Settings) -> SimulatedProvider:
        """Seed the inventory with every terminal and line the settings refer to."""
        provider = cls(settings.provider_string)
        for rule in settings.CONFERENCE_RULES:
            provider.add_terminal(rule.route_point_terminal, [rule.route_point_dn], route_point=True)
            for party in (rule.first_party, rule.second_party):
                provider.add_terminal(party.terminal, [party.address])
        for dn in settings.MONITORED_LINE_DNS:
            if dn not in provider._addresses:
                provider.add_terminal(f"SEP{dn}", [dn])
        return provider

    @property
    def name(self) -> str:
        return PROVIDER_NAME

    @property
    def calls(self) -> list[SimulatedCall]:
        return [call for call in self._calls if not call.invalid]

    # -- inventory ---------------------------------------------------------

    def add_terminal(self, name: str, dns: Iterable[str], route_point: bool = False) -> SimulatedTerminal:
        terminal = self._terminals.get(name)
        if terminal is None:
            terminal = SimulatedTerminal(name, route_point=route_point)
            self._terminals[name] = terminal
        for dn in dns:
            address = self._addresses.get(dn)
            if address is None:
                address = SimulatedAddress(self, dn)
                self._addresses[dn] = address
            if address not in terminal.addresses:
                terminal.addresses.append(address)
                address.terminals.append(terminal)
        return terminal

    def resolve_address(self, dn: str) -> SimulatedAddress:
        """Inventory address for ``dn``, or an external address created on demand."""
        address = self._addresses.get(dn)
        if address is None:
            address = self._external.get(dn)
        if address is None:
            address = SimulatedAddress(self, dn, external=True)
            self._external[dn] = address
        return address

    def next_connection_id(self) -> str:
        return f"conn-{next(self._connection_ids)}"

    # -- BaseCallControlProvider -------------------------------------------

    async def connect(self) -> None:
        logger.info(
            "Simulated provider connecting to %s (%d terminals, %d addresses)",
            self.host or "localhost",
            len(self._terminals),
            len(self._addresses),
        )
        self.in_service = True
        await self._dispatch("provider_changed", [ProviderEvent(ProviderEventType.IN_SERVICE)])
        await self._dispatch(
            "terminal_changed",
            [TerminalEvent(TerminalEventType.IN_SERVICE, t) for t in self._terminals.values()],
        )
        await self._dispatch(
            "address_changed",
            [AddressEvent(AddressEventType.IN_SERVICE, a) for a in self._addresses.values()],
        )

    async def shutdown(self) -> None:
        if not self.in_service:
            return
        self.in_service = False
        await self._dispatch("provider_changed", [ProviderEvent(ProviderEventType.SHUTDOWN)])

    async def add_observer(self, observer: CallControlObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    async def get_terminals(self) -> list[Terminal]:
        self._check_inventory()
        return list(self._terminals.values())

    async def get_addresses(self) -> list[Address]:
        self._check_inventory()
        return list(self._addresses.values())

    async def get_terminal(self, name: str) -> SimulatedTerminal:
        try:
            return self._terminals[name]
        except KeyError:
            raise ResourceUnavailableError(PROVIDER_NAME, f"unknown terminal {name}") from None

    async def get_address(self, name: str) -> SimulatedAddress:
        try:
            return self._addresses[name]
        except KeyError:
            raise ResourceUnavailableError(PROVIDER_NAME, f"unknown address {name}") from None

    async def create_call(self) -> SimulatedCall:
        if not self.in_service:
            raise CallControlError(PROVIDER_NAME, "provider is not in service")
        call = SimulatedCall(self, f"call-{next(self._call_ids)}")
        self._calls.append(call)
        return call

    # -- call simulation ---------------------------------------------------

    async def offer_call(self, calling_dn: str, called_dn: str) -> SimulatedCall:
        """Simulate an inbound call from ``calling_dn`` offered at ``called_dn``."""
        call = await self.create_call()
        calling = call._add_connection(self.resolve_address(calling_dn), ConnectionState.CONNECTED)
        offered = call._add_connection(self.resolve_address(called_dn), ConnectionState.OFFERED)
        await self.dispatch_call_event(
            CallEvent(CallEventType.CALL_ACTIVE, call),
            CallEvent(CallEventType.CONNECTION_CONNECTED, call, calling),
            CallEvent(CallEventType.CONNECTION_OFFERED, call, offered),
        )
        return call

    async def answer(self, dn: str) -> int:
        """Connect every offered or alerting leg at ``dn``. Returns the number answered."""
        address = self.resolve_address(dn)
        answered = [
            conn
            for call in self.calls
            for conn in call.connections
            if conn.address is address and conn.state in (ConnectionState.OFFERED, ConnectionState.ALERTING)
        ]
        for conn in answered:
            conn._state = ConnectionState.CONNECTED
        if answered:
            await self.dispatch_call_event(
                *[CallEvent(CallEventType.CONNECTION_CONNECTED, conn.call, conn) for conn in answered]
            )
        return len(answered)

    async def establish_call(self, calling_dn: str, called_dn: str) -> SimulatedCall:
        """Create an already-answered two-party call."""
        call = await self.offer_call(calling_dn, called_dn)
        for conn in call.connections:
            conn._state = ConnectionState.CONNECTED
        return call

    # -- event delivery ----------------------------------------------------

    async def dispatch_call_event(self, *events: CallEvent) -> None:
        """Deliver call events to every call observer on the involved addresses and terminals."""
        observers: list[CallControlObserver] = []
        for event in events:
            conns = [event.connection] if event.connection is not None else event.call.connections
            for conn in conns:
                address = conn.address
                candidates = list(address.call_observers)
                for terminal in address.terminals:
                    candidates.extend(terminal.call_observers)
                for observer in candidates:
                    if observer not in observers:
                        observers.append(observer)

        for observer in observers:
            try:
                await observer.call_changed(list(events))
            except Exception:
                logger.exception("Call observer %r failed", observer)

    async def _dispatch(self, method: str, events: list) -> None:
        if not events:
            return
        for observer in list(self._observers):
            try:
                await getattr(observer, method)(events)
            except Exception:
                logger.exception("Observer %r failed handling %s", observer, method)

    def _check_inventory(self) -> None:
        if not self.in_service or not self.inventory_available:
            raise ResourceUnavailableError(PROVIDER_NAME, "inventory is not available")
