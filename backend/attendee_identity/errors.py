"""Error taxonomy for identity resolution."""

from __future__ import annotations


class IdentityResolutionError(Exception):
    """Base class for every error raised by the identity core."""


class NormalizationFailure(IdentityResolutionError):
    """A display name normalized to nothing; the observation goes to review."""

    queue_reason = "empty_name"


class AmbiguousMatchFailure(IdentityResolutionError):
    """Candidates were too close or too weak to attach automatically."""

    queue_reason = "ambiguous_match"


class ConcurrentCreationConflict(IdentityResolutionError):
    """A concurrent write won the race for the same name or identity.

    The resolver retries against the refreshed alias index; callers only see
    this once retries are exhausted.
    """

    def __init__(self, message: str, *, identity_ids: tuple[int | None, ...] = ()) -> None:
        super().__init__(message)
        self.identity_ids = tuple(identity_id for identity_id in identity_ids if identity_id is not None)


class OperatorError(IdentityResolutionError):
    """Invalid manual request; raised before any mutation is applied."""


class NotFoundError(OperatorError):
    def __init__(self, kind: str, object_id: int | str) -> None:
        super().__init__(f"{kind} {object_id} not found")
        self.kind = kind
        self.object_id = object_id


class SelfMergeError(OperatorError):
    def __init__(self, identity_id: int) -> None:
        super().__init__(f"Identity {identity_id} cannot be merged into itself")
        self.identity_id = identity_id


class AliasNotOwnedError(OperatorError):
    def __init__(self, identity_id: int, aliases: list[str]) -> None:
        super().__init__(f"Identity {identity_id} does not own aliases: {', '.join(aliases)}")
        self.identity_id = identity_id
        self.aliases = aliases


class EmptyIdentityError(OperatorError):
    """Demerge would strip every alias; that operation is a merge."""


class PlatformIdentityConflictError(OperatorError):
    """Two identities carry different platform accounts."""


class AliasOwnershipConflictError(OperatorError):
    """The alias already belongs to a different live identity."""


class MergeLogAlreadyRevertedError(OperatorError):
    def __init__(self, entry_id: int, reverted_by_id: int) -> None:
        super().__init__(f"Merge log entry {entry_id} was already reverted by entry {reverted_by_id}")
        self.entry_id = entry_id
        self.reverted_by_id = reverted_by_id


class ReviewItemClosedError(OperatorError):
    def __init__(self, item_id: int, status: str) -> None:
        super().__init__(f"Review item {item_id} is already {status}")
        self.item_id = item_id
        self.status = status
