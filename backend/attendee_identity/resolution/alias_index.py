"""In-memory alias index with blocking keys for fuzzy candidate lookup."""

from __future__ import annotations

import threading
from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from attendee_identity.models.identity import IDENTITY_STATUS_ACTIVE, Identity, IdentityAlias
from attendee_identity.resolution.similarity import name_similarity


@dataclass(slots=True, frozen=True)
class AliasCandidate:
    """One ranked candidate identity for a normalized name."""

    identity_id: int
    score: float
    matched_name: str
    total_appearances: int


class AliasIndex:
    """Arena of live aliases plus hash and blocking-key indexes.

    `_exact` maps a normalized name to the identities owning a raw alias with
    that key (with per-identity raw alias counts). `_blocks` maps
    `"<initial>:<token count>"` to normalized names so fuzzy scoring only sees
    names sharing an initial and a similar token count.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._aliases: dict[int, dict[str, str]] = defaultdict(dict)
        self._owner: dict[str, int] = {}
        self._exact: dict[str, Counter[int]] = defaultdict(Counter)
        self._blocks: dict[str, set[str]] = defaultdict(set)
        self._appearances: dict[int, int] = {}

    def load(self, db: Session) -> None:
        """Rebuild the whole index from live identities."""

        rows = db.execute(
            select(IdentityAlias.identity_id, IdentityAlias.alias, IdentityAlias.normalized_name)
            .join(Identity, Identity.id == IdentityAlias.identity_id)
            .where(Identity.status == IDENTITY_STATUS_ACTIVE)
        ).all()
        appearances = db.execute(
            select(Identity.id, Identity.total_appearances).where(Identity.status == IDENTITY_STATUS_ACTIVE)
        ).all()
        with self._lock:
            self._aliases.clear()
            self._owner.clear()
            self._exact.clear()
            self._blocks.clear()
            self._appearances = {identity_id: total for identity_id, total in appearances}
            for identity_id, alias, normalized in rows:
                self._add(identity_id, alias, normalized)

    def refresh_name(self, db: Session, normalized: str) -> None:
        """Resync every alias stored under one normalized key from the database."""

        if not normalized:
            return
        rows = db.execute(
            select(
                IdentityAlias.identity_id,
                IdentityAlias.alias,
                Identity.total_appearances,
            )
            .join(Identity, Identity.id == IdentityAlias.identity_id)
            .where(
                IdentityAlias.normalized_name == normalized,
                Identity.status == IDENTITY_STATUS_ACTIVE,
            )
        ).all()
        with self._lock:
            for identity_id in list(self._exact.get(normalized, ())):
                for alias, alias_normalized in list(self._aliases.get(identity_id, {}).items()):
                    if alias_normalized == normalized:
                        self._remove(identity_id, alias)
            for identity_id, alias, total in rows:
                self._add(identity_id, alias, normalized)
                self._appearances[identity_id] = total

    def reload_identities(self, db: Session, identity_ids: Iterable[int]) -> None:
        """Resync the aliases and counters of specific identities."""

        ids = sorted({identity_id for identity_id in identity_ids if identity_id is not None})
        if not ids:
            return
        identities = {
            identity.id: identity
            for identity in db.scalars(select(Identity).where(Identity.id.in_(ids))).all()
        }
        rows = db.execute(
            select(IdentityAlias.identity_id, IdentityAlias.alias, IdentityAlias.normalized_name).where(
                IdentityAlias.identity_id.in_(ids)
            )
        ).all()
        with self._lock:
            for identity_id in ids:
                self._drop(identity_id)
            for identity_id, alias, normalized in rows:
                identity = identities.get(identity_id)
                if identity is None or not identity.is_active:
                    continue
                self._add(identity_id, alias, normalized)
            for identity_id, identity in identities.items():
                if identity.is_active:
                    self._appearances[identity_id] = identity.total_appearances

    def add_alias(self, identity_id: int, alias: str, normalized: str) -> None:
        with self._lock:
            self._add(identity_id, alias, normalized)

    def remove_alias(self, identity_id: int, alias: str) -> None:
        with self._lock:
            self._remove(identity_id, alias)

    def move_aliases(self, source_id: int, target_id: int, aliases: Iterable[str]) -> None:
        with self._lock:
            for alias in aliases:
                normalized = self._aliases.get(source_id, {}).get(alias)
                if normalized is None:
                    continue
                self._remove(source_id, alias)
                self._add(target_id, alias, normalized)

    def drop_identity(self, identity_id: int) -> None:
        with self._lock:
            self._drop(identity_id)

    def set_appearances(self, identity_id: int, total: int) -> None:
        with self._lock:
            self._appearances[identity_id] = total

    def appearances(self, identity_id: int) -> int:
        with self._lock:
            return self._appearances.get(identity_id, 0)

    def aliases_of(self, identity_id: int) -> set[str]:
        with self._lock:
            return set(self._aliases.get(identity_id, {}))

    def exact_matches(self, normalized: str) -> list[int]:
        """Identities owning an alias with exactly this normalized key (hash lookup)."""

        if not normalized:
            return []
        with self._lock:
            owners = self._exact.get(normalized)
            return sorted(owners) if owners else []

    def candidates(self, normalized: str, *, floor: float, limit: int) -> list[AliasCandidate]:
        """Rank fuzzy candidates for a normalized name, excluding exact-key owners.

        One candidate per identity (its best alias), scores at or above
        `floor`, ranked by score, then `total_appearances`, then identity id.
        """

        if not normalized:
            return []
        with self._lock:
            pool: set[str] = set()
            for key in query_blocking_keys(normalized):
                pool.update(self._blocks.get(key, ()))
            pool.discard(normalized)
            best: dict[int, tuple[float, str]] = {}
            for candidate_name in sorted(pool):
                score = name_similarity(normalized, candidate_name)
                if score < floor:
                    continue
                for identity_id in self._exact.get(candidate_name, ()):
                    current = best.get(identity_id)
                    if current is None or score > current[0]:
                        best[identity_id] = (score, candidate_name)
            ranked = [
                AliasCandidate(
                    identity_id=identity_id,
                    score=score,
                    matched_name=matched_name,
                    total_appearances=self._appearances.get(identity_id, 0),
                )
                for identity_id, (score, matched_name) in best.items()
            ]
        ranked.sort(key=lambda candidate: (-candidate.score, -candidate.total_appearances, candidate.identity_id))
        return ranked[:limit]

    def _add(self, identity_id: int, alias: str, normalized: str) -> None:
        owner = self._owner.get(alias)
        if owner == identity_id:
            return
        if owner is not None:
            self._remove(owner, alias)
        self._aliases[identity_id][alias] = normalized
        self._owner[alias] = identity_id
        if not normalized:
            return
        self._exact[normalized][identity_id] += 1
        for key in blocking_keys(normalized):
            self._blocks[key].add(normalized)

    def _remove(self, identity_id: int, alias: str) -> None:
        owned = self._aliases.get(identity_id)
        if not owned or alias not in owned:
            return
        normalized = owned.pop(alias)
        self._owner.pop(alias, None)
        if not owned:
            self._aliases.pop(identity_id, None)
        if not normalized:
            return
        owners = self._exact.get(normalized)
        if owners is None:
            return
        owners[identity_id] -= 1
        if owners[identity_id] <= 0:
            del owners[identity_id]
        if not owners:
            del self._exact[normalized]
            for key in blocking_keys(normalized):
                bucket = self._blocks.get(key)
                if bucket is None:
                    continue
                bucket.discard(normalized)
                if not bucket:
                    del self._blocks[key]

    def _drop(self, identity_id: int) -> None:
        for alias in list(self._aliases.get(identity_id, {})):
            self._remove(identity_id, alias)
        self._appearances.pop(identity_id, None)


def blocking_keys(normalized: str) -> set[str]:
    """Keys a stored name is filed under: each token's initial with the token count."""

    tokens = normalized.split()
    count = len(tokens)
    return {f"{token[0]}:{count}" for token in tokens}


def query_blocking_keys(normalized: str) -> set[str]:
    """Keys searched for a lookup: each initial with the token count +/- 1."""

    tokens = normalized.split()
    count = len(tokens)
    return {
        f"{token[0]}:{size}"
        for token in tokens
        for size in (count - 1, count, count + 1)
        if size > 0
    }
