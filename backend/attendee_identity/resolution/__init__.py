"""Identity resolution package.

The resolver itself lives in `attendee_identity.resolution.resolver`; it
depends on the identity store services, which in turn use the normalizer from
this package, so it is not re-exported here.
"""

from attendee_identity.resolution.normalizer import display_name_for, normalize_display_name
from attendee_identity.resolution.types import (
    MatchState,
    ParticipantObservation,
    ResolutionOutcome,
    TerminalState,
)

__all__ = [
    "MatchState",
    "ParticipantObservation",
    "ResolutionOutcome",
    "TerminalState",
    "display_name_for",
    "normalize_display_name",
]
