"""Translate operator errors into HTTP responses."""

from fastapi import HTTPException

from attendee_identity.errors import (
    AliasOwnershipConflictError,
    ConcurrentCreationConflict,
    IdentityResolutionError,
    MergeLogAlreadyRevertedError,
    NotFoundError,
    PlatformIdentityConflictError,
    ReviewItemClosedError,
)

_CONFLICT_ERRORS = (
    AliasOwnershipConflictError,
    ConcurrentCreationConflict,
    MergeLogAlreadyRevertedError,
    PlatformIdentityConflictError,
    ReviewItemClosedError,
)


def http_error_for(exc: IdentityResolutionError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, _CONFLICT_ERRORS):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))
