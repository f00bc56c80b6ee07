"""Provider registry: ordered provider entries plus the active index.

Entries are appended by ``register()`` and never removed.  The active
index only moves through ``advance_if_still_active()``, which compares
entry ids rather than positions so that two failures observed on the
same provider rotate the registry once, not twice.
"""

from __future__ import annotations

import secrets
import string
import threading
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from failover_provider.core.errors import EmptyRegistryError

T = TypeVar("T")

_UID_MIN_LENGTH = 1
_UID_MAX_LENGTH = 256


def uid(length: int = 12) -> str:
    """Return a random string of *length* decimal digits.

    Raises:
        ValueError: If *length* is outside ``1..256``.
    """
    if length < _UID_MIN_LENGTH or length > _UID_MAX_LENGTH:
        raise ValueError(f"The UID length must be between {_UID_MIN_LENGTH} and {_UID_MAX_LENGTH} characters.")
    return "".join(secrets.choice(string.digits) for _ in range(length))


# ── Data class ──────────────────────────────────────────────────────────


@dataclass
class ProviderEntry(Generic[T]):
    """A registered provider.

    Attributes:
        id:              Registry-unique identifier.
        provider:        The wrapped provider instance (referenced, not copied).
        last_latency_ms: Duration of the most recent settled call, in ms.
    """

    id: str
    provider: T
    last_latency_ms: float = 0.0


# ── Registry ────────────────────────────────────────────────────────────


class ProviderRegistry(Generic[T]):
    """Ordered, append-only provider candidates with a round-robin cursor.

    Usage::

        registry = ProviderRegistry()
        primary_id = registry.register(primary)
        registry.register(backup)
        entry = registry.current_entry()
        # ... entry.provider fails ...
        entry = registry.advance_if_still_active(entry.id)
    """

    def __init__(self) -> None:
        self._entries: list[ProviderEntry[T]] = []
        self._active = 0
        self._lock = threading.Lock()

    def register(self, provider: T) -> str:
        """Append *provider* and return its new entry id."""
        entry = ProviderEntry(id=uid(), provider=provider)
        with self._lock:
            self._entries.append(entry)
        return entry.id

    def current_entry(self) -> ProviderEntry[T]:
        """Return the active entry.

        Raises:
            EmptyRegistryError: If no provider has been registered.
        """
        with self._lock:
            if not self._entries:
                raise EmptyRegistryError("registry has no providers")
            return self._entries[self._active]

    def advance_if_still_active(self, failed_entry_id: str) -> ProviderEntry[T]:
        """Rotate past *failed_entry_id* unless another failure already did.

        Returns the entry that is active after the (possible) rotation.
        """
        with self._lock:
            if not self._entries:
                raise EmptyRegistryError("registry has no providers")
            if self._entries[self._active].id == failed_entry_id:
                self._active = (self._active + 1) % len(self._entries)
            return self._entries[self._active]

    def record_latency(self, entry_id: str, duration_ms: float) -> None:
        """Store *duration_ms* as the latest latency of *entry_id*."""
        for entry in self._entries:
            if entry.id == entry_id:
                entry.last_latency_ms = duration_ms
                return

    # ── Access ──────────────────────────────────────────────────────

    @property
    def active_index(self) -> int:
        """Position of the active entry."""
        return self._active

    @property
    def entries(self) -> tuple[ProviderEntry[T], ...]:
        """All entries in registration order."""
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self) -> list[dict[str, Any]]:
        """Return a JSON-serializable view of every entry."""
        with self._lock:
            return [
                {
                    "id": entry.id,
                    "active": index == self._active,
                    "last_latency_ms": entry.last_latency_ms,
                    "provider": type(entry.provider).__name__,
                }
                for index, entry in enumerate(self._entries)
            ]
