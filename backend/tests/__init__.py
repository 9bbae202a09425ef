# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from tkd_core.models.division import Division, DivisionParticipant  # noqa: F401
from tkd_core.models.match import Match  # noqa: F401
from tkd_core.models.tournament import Tournament  # noqa: F401
