from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

from scraper_client.core.errors import InvalidReferenceError

Reference = str | int
Clock = Callable[[], datetime]

DEFAULT_TTL_HOURS = 72
ALLOWED_TTL_HOURS = frozenset({12, 24, 72})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_reference(reference: object) -> Reference:
    # bool is an int subclass but never a valid reference number
    if isinstance(reference, bool) or not isinstance(reference, (str, int)):
        raise InvalidReferenceError(f"reference number must be a string or an integer, got {type(reference).__name__}")
    if reference == "":
        raise InvalidReferenceError("reference number cannot be empty")
    return reference


class ReferenceCache:
    """In-memory set of recently submitted reference numbers.

    Entries expire ``ttl_hours`` after they were first set and are evicted
    lazily by the next lookup. Nothing is persisted.
    """

    def __init__(self, *, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._expires_at: dict[Reference, datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._expires_at)

    def has(self, reference: Reference) -> bool:
        if reference == "":
            return False
        validate_reference(reference)
        with self._lock:
            return self._has(reference)

    def set(self, reference: Reference, ttl_hours: int = DEFAULT_TTL_HOURS) -> None:
        self.claim(reference, ttl_hours=ttl_hours)

    def claim(self, reference: Reference, ttl_hours: int = DEFAULT_TTL_HOURS) -> bool:
        """Insert ``reference`` unless it is already cached.

        Returns True only when this call created the entry.
        """

        validate_reference(reference)
        if ttl_hours not in ALLOWED_TTL_HOURS:
            raise ValueError(f"ttl_hours must be one of {sorted(ALLOWED_TTL_HOURS)}, got {ttl_hours}")

        with self._lock:
            if self._has(reference):
                return False
            self._expires_at[reference] = self._clock() + timedelta(hours=ttl_hours)
            return True

    def _has(self, reference: Reference) -> bool:
        expires_at = self._expires_at.get(reference)
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            del self._expires_at[reference]
            return False
        return True
