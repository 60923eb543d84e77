"""Per-key mutual exclusion scopes for the serializing write path."""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.orm import Session


class KeyedLocks:
    """Registry of re-entrant locks keyed by string.

    Keys are acquired in sorted order so two scopes over overlapping keys
    cannot deadlock; unused entries are dropped when their last holder leaves.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._holders: dict[str, int] = {}

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        ordered = sorted({key for key in keys if key})
        checked_out: list[str] = []
        acquired: list[threading.RLock] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                checked_out.append(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in checked_out:
                self._checkin(key)

    def active_keys(self) -> list[str]:
        with self._guard:
            return sorted(self._locks)

    def _checkout(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            self._holders[key] = self._holders.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            remaining = self._holders.get(key, 0) - 1
            if remaining <= 0:
                self._holders.pop(key, None)
                self._locks.pop(key, None)
            else:
                self._holders[key] = remaining


def name_lock_key(normalized: str) -> str:
    return f"name:{normalized}"


def identity_lock_key(identity_id: int) -> str:
    return f"identity:{identity_id}"


def platform_lock_key(platform_user_id: str) -> str:
    return f"platform:{platform_user_id}"


def acquire_advisory_lock(db: Session, key: str) -> None:
    """Take a transaction-scoped advisory lock when running on PostgreSQL."""

    bind = db.get_bind()
    if bind.dialect.name != "postgresql":
        return
    db.execute(text("SELECT pg_advisory_xact_lock(:lock_key)"), {"lock_key": _advisory_key(key)})


def _advisory_key(key: str) -> int:
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)
