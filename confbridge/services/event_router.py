"""Event router: the single observer registered with the call-control provider.

Dispatch:
    provider in-service  → set provider latch, attach call observers to every
                           terminal (route points are registered first, without
                           media) and every address
    terminal in-service  → set generic terminal latch (+ route-point latch on match)
    address in-service   → set generic address latch (+ route-point latch on match)
    connection offered   → start a conference sequence when a rule exists for
                           the offered address

Handlers log every event and never raise: one failing resource or one failing
sequence must not stop delivery of the rest.
"""

import logging

from confbridge.services.conference.manager import ConferenceManager
from confbridge.services.readiness import ReadinessTracker
from confbridge.services.telephony.base import (
    BaseCallControlProvider,
    CallControlObserver,
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
from confbridge.services.telephony.exceptions import ResourceUnavailableError

logger = logging.getLogger(__name__)


class EventRouter(CallControlObserver):
    def __init__(
        self,
        provider: BaseCallControlProvider,
        tracker: ReadinessTracker,
        conference_manager: ConferenceManager,
    ) -> None:
        self._provider = provider
        self._tracker = tracker
        self._conferences = conference_manager

    async def provider_changed(self, events: list[ProviderEvent]) -> None:
        for ev in events:
            logger.info("Received provider event: %s", ev.type.value)
            if ev.type == ProviderEventType.IN_SERVICE:
                self._tracker.provider.set()
                await self._observe_inventory()

    async def terminal_changed(self, events: list[TerminalEvent]) -> None:
        for ev in events:
            logger.debug("Received terminal event: %s %r", ev.type.value, ev.terminal)
            if ev.type == TerminalEventType.IN_SERVICE:
                self._tracker.terminal_in_service(ev.terminal.name)

    async def address_changed(self, events: list[AddressEvent]) -> None:
        for ev in events:
            logger.debug("Received address event: %s %r", ev.type.value, ev.address)
            if ev.type == AddressEventType.IN_SERVICE:
                self._tracker.address_in_service(ev.address.name)

    async def call_changed(self, events: list[CallEvent]) -> None:
        for ev in events:
            logger.info("Received call event: %s on call %s", ev.type.value, ev.call.call_id)
            if ev.type != CallEventType.CONNECTION_OFFERED or ev.connection is None:
                continue
            try:
                self._on_connection_offered(ev)
            except Exception as exc:
                logger.error("Failed to handle offer on call %s: %s", ev.call.call_id, exc, exc_info=True)

    def _on_connection_offered(self, ev: CallEvent) -> None:
        address_name = ev.connection.address.name
        logger.info("Offered on address: %s", address_name)

        rule = self._conferences.match(address_name)
        if rule is None:
            return

        logger.info("Initiating conference call logic for DN %s (rule=%s)", address_name, rule.name)
        self._conferences.start(ev.connection.call, rule)

    async def _observe_inventory(self) -> None:
        """Attach this router as call observer on every terminal and address."""
        try:
            terminals = await self._provider.get_terminals()
        except ResourceUnavailableError as exc:
            logger.error("Terminal inventory unavailable: %s", exc)
            terminals = []

        for terminal in terminals:
            try:
                logger.info("Adding observer to %r", terminal)
                if terminal.is_route_point:
                    await terminal.register(media=None)
                await terminal.add_call_observer(self)
            except Exception as exc:
                logger.error("Failed to observe terminal %s: %s", terminal.name, exc, exc_info=True)

        try:
            addresses = await self._provider.get_addresses()
        except ResourceUnavailableError as exc:
            logger.error("Address inventory unavailable: %s", exc)
            addresses = []

        for address in addresses:
            try:
                logger.info("Adding observer to %r", address)
                await address.add_call_observer(self)
            except Exception as exc:
                logger.error("Failed to observe address %s: %s", address.name, exc, exc_info=True)
