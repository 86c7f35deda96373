import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from confbridge.api.lines import router as lines_router
from confbridge.api.v1.router import api_v1_router
from confbridge.core.config import settings
from confbridge.core.logging import configure_logging
from confbridge.services.conference import ConferenceManager, ConferenceSequencer
from confbridge.services.event_router import EventRouter
from confbridge.services.notifier import LineNotifier
from confbridge.services.readiness import ReadinessTracker
from confbridge.services.telephony import TelephonyConfigurationError, get_call_control_provider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging("DEBUG" if settings.DEBUG else settings.LOG_LEVEL)

    provider = get_call_control_provider()
    rules = settings.CONFERENCE_RULES
    tracker = ReadinessTracker(
        route_point_terminals=[rule.route_point_terminal for rule in rules],
        route_point_addresses=[rule.route_point_dn for rule in rules],
    )
    sequencer = ConferenceSequencer(
        provider,
        poll_interval=settings.JOIN_POLL_INTERVAL_SECONDS,
        poll_attempts=settings.JOIN_POLL_ATTEMPTS,
    )
    conference_manager = ConferenceManager(
        sequencer=sequencer,
        rules=rules,
        recent_limit=settings.RECENT_OUTCOMES_LIMIT,
    )
    router = EventRouter(provider, tracker, conference_manager)
    notifier = LineNotifier(settings.MONITORED_LINE_DNS)

    app.state.provider = provider
    app.state.tracker = tracker
    app.state.conference_manager = conference_manager
    app.state.notifier = notifier

    logger.info("Connecting provider %s: %s", provider.name, settings.masked_provider_string)
    await provider.add_observer(router)
    await provider.connect()

    logger.info("Awaiting provider in-service...")
    if not await tracker.provider.wait(timeout=settings.PROVIDER_READY_TIMEOUT_SECONDS):
        await provider.shutdown()
        raise TelephonyConfigurationError(
            f"Provider {provider.name} not in service after {settings.PROVIDER_READY_TIMEOUT_SECONDS}s"
        )
    logger.info("Provider %s in service (%d conference rule(s))", provider.name, len(conference_manager.rules))

    task = asyncio.create_task(notifier.keepalive_loop(settings.KEEPALIVE_INTERVAL_SECONDS))

    yield

    # Shutdown: stop keep-alives, cancel running sequences, close the provider
    logger.info("Shutting down conference bridge...")
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass

    await conference_manager.teardown_all()
    await provider.shutdown()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    lifespan=lifespan,
)

app.include_router(lines_router)
app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/health")
def health_check():
    return {"status": "healthy"}
