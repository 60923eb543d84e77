"""Process-wide resolution state: alias index, lock registry and thresholds."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy.orm import Session

from attendee_identity.config import Settings, get_settings
from attendee_identity.resolution.alias_index import AliasCandidate, AliasIndex
from attendee_identity.resolution.locks import KeyedLocks


@dataclass(slots=True, frozen=True)
class ResolutionThresholds:
    """Confidence thresholds; defaults are tunable configuration, not a contract."""

    floor: float = 0.55
    auto_attach: float = 0.85
    ambiguity_margin: float = 0.1
    max_candidates: int = 5
    first_last_weight: float = 0.9

    def allows_auto_attach(self, top: AliasCandidate, runner_up: AliasCandidate | None) -> bool:
        if top.score < self.auto_attach:
            return False
        if runner_up is None:
            return True
        return round(top.score - runner_up.score, 4) >= self.ambiguity_margin

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResolutionThresholds":
        return cls(
            floor=settings.fuzzy_match_floor,
            auto_attach=settings.fuzzy_auto_attach_threshold,
            ambiguity_margin=settings.ambiguity_margin,
            max_candidates=settings.max_fuzzy_candidates,
            first_last_weight=settings.first_last_match_weight,
        )


class ResolutionRuntime:
    """Shared by the resolver, merge engine and review queue of one process."""

    def __init__(
        self,
        *,
        thresholds: ResolutionThresholds | None = None,
        bot_keywords: tuple[str, ...] = (),
        max_retries: int = 3,
        index: AliasIndex | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.thresholds = thresholds or ResolutionThresholds()
        self.bot_keywords = tuple(bot_keywords)
        self.max_retries = max(0, max_retries)
        self.index = index or AliasIndex()
        self.locks = locks or KeyedLocks()
        self._load_lock = threading.Lock()
        self._loaded = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ResolutionRuntime":
        settings = settings or get_settings()
        return cls(
            thresholds=ResolutionThresholds.from_settings(settings),
            bot_keywords=tuple(settings.bot_name_keywords),
            max_retries=settings.resolution_max_retries,
        )

    def ensure_index(self, db: Session) -> None:
        """Load the alias index on first use."""

        if self._loaded:
            return
        with self._load_lock:
            if not self._loaded:
                self.index.load(db)
                self._loaded = True

    def invalidate_index(self) -> None:
        with self._load_lock:
            self._loaded = False


@lru_cache
def get_resolution_runtime() -> ResolutionRuntime:
    """Return the cached process-wide runtime."""

    return ResolutionRuntime.from_settings()
