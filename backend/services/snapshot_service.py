"""Epoch-guarded holder for the latest scheduling data snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from typing import Generic, Optional, TypeVar

from backend.domain.models import BlockedDate, Machine, Reservation, Service


T = TypeVar("T")


@dataclass(frozen=True)
class SchedulingSnapshot:
    reservations: tuple[Reservation, ...] = ()
    machines: tuple[Machine, ...] = ()
    services: tuple[Service, ...] = ()
    blocked_dates: tuple[BlockedDate, ...] = field(default_factory=tuple)


class SnapshotStore(Generic[T]):
    """Keeps the newest committed snapshot.

    Each fetch takes an epoch from ``begin_fetch``; a commit carrying an epoch
    older than the one already committed is dropped, so a slow response can
    never replace data loaded by a later request.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._issued_epoch = 0
        self._committed_epoch = 0
        self._snapshot: Optional[T] = None

    def begin_fetch(self) -> int:
        with self._lock:
            self._issued_epoch += 1
            return self._issued_epoch

    def commit(self, epoch: int, snapshot: T) -> bool:
        with self._lock:
            if epoch <= self._committed_epoch or epoch > self._issued_epoch:
                return False
            self._committed_epoch = epoch
            self._snapshot = snapshot
            return True

    def latest(self) -> Optional[T]:
        with self._lock:
            return self._snapshot

    @property
    def committed_epoch(self) -> int:
        with self._lock:
            return self._committed_epoch
