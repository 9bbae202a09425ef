"""
Division/bracket engine errors.

ConfigurationError aborts a whole classification call. The others are
reported per division or per match and leave stored data unchanged.
"""

from typing import List, Optional


class DivisionEngineError(Exception):
    """Base exception for the division and bracket engine"""

    pass


class ConfigurationError(DivisionEngineError):
    """Malformed rule table (overlapping bands, missing open band, overlapping age ranges)"""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid division rule table: " + "; ".join(self.problems))


class InsufficientParticipants(DivisionEngineError):
    """A bracket was requested for fewer than 2 participants"""

    def __init__(self, division_id: Optional[int], count: int):
        self.division_id = division_id
        self.count = count
        super().__init__(
            f"INSUFFICIENT_PARTICIPANTS: division {division_id} has {count} participant(s); "
            "at least 2 are required for a bracket"
        )


class PreconditionViolation(DivisionEngineError):
    """Result rejected: winner not in the match slots, or a slot is still empty"""

    pass


class ResultConflict(DivisionEngineError):
    """Result rejected: the match already has a different winner"""

    def __init__(self, match_id: Optional[int], recorded_winner_id, requested_winner_id):
        self.match_id = match_id
        self.recorded_winner_id = recorded_winner_id
        self.requested_winner_id = requested_winner_id
        super().__init__(
            f"RESULT_CONFLICT: match {match_id} already won by {recorded_winner_id}; "
            f"refusing to change winner to {requested_winner_id}"
        )


class NotFound(DivisionEngineError):
    """Referenced tournament, division or match does not exist"""

    pass


class BracketGenerationConflict(DivisionEngineError):
    """Another bracket generation replaced this division's bracket first"""

    pass
