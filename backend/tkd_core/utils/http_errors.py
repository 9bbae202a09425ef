"""
Map engine errors to HTTP responses.

- NotFound                   -> 404
- ResultConflict             -> 409 (distinct from precondition, so clients can ask for confirmation)
- BracketGenerationConflict  -> 409
- InsufficientParticipants   -> 422
- PreconditionViolation      -> 422
- ConfigurationError         -> 500 for the server's rule table, 422 for a table sent in the request
"""

from fastapi import HTTPException

from tkd_core.services.errors import (
    BracketGenerationConflict,
    ConfigurationError,
    DivisionEngineError,
    InsufficientParticipants,
    NotFound,
    PreconditionViolation,
    ResultConflict,
)


def to_http_exception(exc: DivisionEngineError, *, client_rules: bool = False) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (ResultConflict, BracketGenerationConflict)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (InsufficientParticipants, PreconditionViolation)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=422 if client_rules else 500, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
