"""Conference service: route-point call merging.

Public API:
    - ConferenceRule / PartyConfig: configuration of one route point's merge.
    - ConferenceSequencer: runs the disconnect / create / connect / join / merge workflow.
    - ConferenceManager: matches offered calls to rules, one sequence per call.
"""

from confbridge.services.conference.manager import ConferenceManager
from confbridge.services.conference.models import (
    ConferenceRule,
    ConferenceSession,
    OutcomeRecord,
    PartyConfig,
    SequenceOutcome,
    SequenceState,
)
from confbridge.services.conference.sequencer import ConferenceSequencer

__all__ = [
    "ConferenceManager",
    "ConferenceRule",
    "ConferenceSequencer",
    "ConferenceSession",
    "OutcomeRecord",
    "PartyConfig",
    "SequenceOutcome",
    "SequenceState",
]
