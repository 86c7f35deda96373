import pytest
from fastapi.testclient import TestClient

from confbridge.core.config import settings
from confbridge.main import app as fastapi_app
from confbridge.services.conference.models import ConferenceRule, PartyConfig
from confbridge.services.telephony import reset_call_control_provider
from confbridge.services.telephony.simulated import SimulatedProvider

# Fast timings for tests: keep-alives every 50ms, no wait between join polls
settings.KEEPALIVE_INTERVAL_SECONDS = 0.05
settings.JOIN_POLL_INTERVAL_SECONDS = 0.0
settings.CALL_CONTROL_PROVIDER = "confbridge.services.telephony.simulated:SimulatedProvider"


@pytest.fixture
def rule() -> ConferenceRule:
    """The route-point 885016 rule: 5016 dials 4030, then 5017 is merged in."""
    return ConferenceRule(
        name="route-point-885016",
        route_point_dn="885016",
        route_point_terminal="CTIRoutePoint88",
        first_party=PartyConfig(terminal="CSFAMCKENZIE", address="5016"),
        second_party=PartyConfig(terminal="CSFAPEREZ", address="5017"),
        destination="4030",
    )


@pytest.fixture
def make_provider(rule):
    """Factory for a SimulatedProvider seeded with the rule's terminals and lines."""

    def _make(auto_answer=("4030",)) -> SimulatedProvider:
        provider = SimulatedProvider("cucm.example;login=app;passwd=secret", auto_answer=auto_answer)
        provider.add_terminal(rule.route_point_terminal, [rule.route_point_dn], route_point=True)
        provider.add_terminal(rule.first_party.terminal, [rule.first_party.address])
        provider.add_terminal(rule.second_party.terminal, [rule.second_party.address])
        return provider

    return _make


@pytest.fixture
def client():
    """TestClient running the full lifespan against a fresh simulated provider."""
    reset_call_control_provider()
    with TestClient(fastapi_app) as test_client:
        yield test_client
    reset_call_control_provider()
