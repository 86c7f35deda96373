from pydantic_settings import BaseSettings

from confbridge.services.conference.models import ConferenceRule, PartyConfig


def _default_conference_rules() -> list[ConferenceRule]:
    return [
        ConferenceRule(
            name="route-point-885016",
            route_point_dn="885016",
            route_point_terminal="CTIRoutePoint88",
            first_party=PartyConfig(terminal="CSFAMCKENZIE", address="5016"),
            second_party=PartyConfig(terminal="CSFAPEREZ", address="5017"),
            destination="4030",
        )
    ]


class Settings(BaseSettings):
    PROJECT_NAME: str = "Conference Bridge"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    HOST: str = "0.0.0.0"
    PORT: int = 7000

    # Call-control provider (CUCM / JTAPI style credentials)
    CUCM_ADDRESS: str = ""
    JTAPI_USERNAME: str = ""
    JTAPI_PASSWORD: str = ""
    # Dotted path "module:Class" of the BaseCallControlProvider implementation
    CALL_CONTROL_PROVIDER: str = "confbridge.services.telephony.simulated:SimulatedProvider"
    # None = block startup until the provider reports in-service
    PROVIDER_READY_TIMEOUT_SECONDS: float | None = None

    # Lines announced to WebSocket clients on connect
    MONITORED_LINE_DNS: list[str] = ["5016", "5017"]
    KEEPALIVE_INTERVAL_SECONDS: float = 5.0

    # Conference sequencing
    CONFERENCE_RULES: list[ConferenceRule] = _default_conference_rules()
    JOIN_POLL_INTERVAL_SECONDS: float = 1.0
    JOIN_POLL_ATTEMPTS: int = 10
    RECENT_OUTCOMES_LIMIT: int = 50

    model_config = {"env_file": ".env", "case_sensitive": True}

    @property
    def provider_string(self) -> str:
        return f"{self.CUCM_ADDRESS};login={self.JTAPI_USERNAME};passwd={self.JTAPI_PASSWORD}"

    @property
    def masked_provider_string(self) -> str:
        """Provider string safe for log output."""
        return f"{self.CUCM_ADDRESS};login={self.JTAPI_USERNAME};passwd=****"


settings = Settings()
