"""
RoutingState - Process-wide record of where reads and writes go.

The routing state holds three independent slots:

    - read_index: index serving queries
    - primary_index: index of record for writes
    - secondary_index: optional additional write target (dual-write)

Each slot has its own lock. There is no transaction spanning two slots: an
ingest call that straddles a transition may read the primary from before it
and the secondary from after it, or the other way round. The cutover window
is therefore eventually consistent, and the cutover protocol inserts settle
periods and convergence checks between steps instead of relying on an
atomic multi-field flip.

Usage:
    >>> from livereindex.routing import RoutingState
    >>>
    >>> routing = RoutingState.single("orders-v1")
    >>> routing.set_secondary_index("orders-v2")
    >>> routing.dual_write
    True
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from typing import Generic, TypeVar

from livereindex.config import DEFAULT_INDEX
from livereindex.models import RoutingSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

READ_INDEX_ENV = "READ_INDEX"
PRIMARY_INDEX_ENV = "PRIMARY_INDEX"
SECONDARY_INDEX_ENV = "SECONDARY_INDEX"


class _Slot(Generic[T]):
    """A single independently locked value."""

    __slots__ = ("_lock", "_value")

    def __init__(self, value: T) -> None:
        self._lock = threading.Lock()
        self._value = value

    def get(self) -> T:
        with self._lock:
            return self._value

    def swap(self, value: T) -> T:
        """Set the value and return the previous one."""
        with self._lock:
            previous = self._value
            self._value = value
            return previous


def _normalize_secondary(index: str | None) -> str | None:
    # An empty name means dual-write is disabled.
    return index or None


class RoutingState:
    """
    Mutable routing record shared by every ingest and query call.

    Reads are cheap and never block on writes to a different slot, so
    switching the read index cannot stall ingestion workers.

    Args:
        read_index: Index serving queries.
        primary_index: Index of record for writes. Must not be empty.
        secondary_index: Additional write target, or None.
    """

    def __init__(
        self,
        read_index: str,
        primary_index: str,
        secondary_index: str | None = None,
    ) -> None:
        if not primary_index:
            raise ValueError("primary_index must not be empty")
        if not read_index:
            raise ValueError("read_index must not be empty")

        self._read = _Slot(read_index)
        self._primary = _Slot(primary_index)
        self._secondary: _Slot[str | None] = _Slot(_normalize_secondary(secondary_index))

    @classmethod
    def single(cls, index: str) -> RoutingState:
        """Create the SINGLE state: one index for reads and writes, no secondary."""
        return cls(read_index=index, primary_index=index)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        default_index: str = DEFAULT_INDEX,
    ) -> RoutingState:
        """
        Build the routing state from READ_INDEX, PRIMARY_INDEX and SECONDARY_INDEX.

        Unset or empty variables fall back to a single default index with no
        secondary.

        Args:
            environ: Mapping to read from (defaults to os.environ).
            default_index: Index used when READ_INDEX or PRIMARY_INDEX is unset.
        """
        env = os.environ if environ is None else environ
        state = cls(
            read_index=env.get(READ_INDEX_ENV) or default_index,
            primary_index=env.get(PRIMARY_INDEX_ENV) or default_index,
            secondary_index=env.get(SECONDARY_INDEX_ENV) or None,
        )
        logger.info(
            "Routing initialized from environment",
            extra=state.snapshot().to_dict(),
        )
        return state

    @property
    def read_index(self) -> str:
        return self._read.get()

    @property
    def primary_index(self) -> str:
        return self._primary.get()

    @property
    def secondary_index(self) -> str | None:
        return self._secondary.get()

    @property
    def dual_write(self) -> bool:
        return self._secondary.get() is not None

    def set_read_index(self, index: str) -> str:
        """
        Point reads at an index.

        Returns:
            The previous read index.
        """
        if not index:
            raise ValueError("read index must not be empty")
        previous = self._read.swap(index)
        logger.debug("Read index %s -> %s", previous, index)
        return previous

    def set_primary_index(self, index: str) -> str:
        """
        Make an index the index of record for writes.

        Returns:
            The previous primary index.
        """
        if not index:
            raise ValueError("primary index must not be empty")
        previous = self._primary.swap(index)
        logger.debug("Primary index %s -> %s", previous, index)
        return previous

    def set_secondary_index(self, index: str | None) -> str | None:
        """
        Arm (or disarm, with None or "") the dual-write target.

        Returns:
            The previous secondary index.
        """
        value = _normalize_secondary(index)
        previous = self._secondary.swap(value)
        logger.debug("Secondary index %s -> %s", previous, value)
        return previous

    def snapshot(self) -> RoutingSnapshot:
        """
        Read all three slots.

        The slots are read one after the other, so the result is not atomic
        with respect to concurrent setters.
        """
        return RoutingSnapshot(
            read_index=self._read.get(),
            primary_index=self._primary.get(),
            secondary_index=self._secondary.get(),
        )

    def references(self, index: str) -> list[str]:
        """
        Names of the slots currently pointing at an index.

        Returns:
            Subset of ["read", "primary", "secondary"], empty when unreferenced.
        """
        slots = []
        if self._read.get() == index:
            slots.append("read")
        if self._primary.get() == index:
            slots.append("primary")
        if self._secondary.get() == index:
            slots.append("secondary")
        return slots

    def __repr__(self) -> str:
        snap = self.snapshot()
        return (
            f"RoutingState(read_index={snap.read_index!r}, "
            f"primary_index={snap.primary_index!r}, "
            f"secondary_index={snap.secondary_index!r})"
        )


__all__ = [
    "READ_INDEX_ENV",
    "PRIMARY_INDEX_ENV",
    "SECONDARY_INDEX_ENV",
    "RoutingState",
]
