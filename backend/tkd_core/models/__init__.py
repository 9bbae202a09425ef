from tkd_core.models.division import Division, DivisionParticipant
from tkd_core.models.match import Match
from tkd_core.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Division",
    "DivisionParticipant",
    "Match",
]
