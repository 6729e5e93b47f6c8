from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class BroadcastSnapshot:
    broadcasts: Dict[str, int]
    sends: Dict[str, int]
    segments: Dict[str, int]
    birthday: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "broadcasts": dict(self.broadcasts),
            "sends": dict(self.sends),
            "segments": dict(self.segments),
            "birthday": dict(self.birthday),
        }


class BroadcastObservabilityStore:
    """Collect dispatch and birthday job telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._broadcasts: Dict[str, int] = defaultdict(int)
        self._sends: Dict[str, int] = defaultdict(int)
        self._segments: Dict[str, int] = defaultdict(int)
        self._birthday: Dict[str, int] = defaultdict(int)

    def record_broadcast(self, segment: str, *, dry_run: bool) -> None:
        with self._lock:
            self._broadcasts["dry_runs" if dry_run else "live"] += 1
            self._segments[segment] += 1

    def record_batch(self, size: int) -> None:
        with self._lock:
            self._broadcasts["batches"] += 1
            self._sends["attempted"] += size

    def record_send(self, success: bool) -> None:
        with self._lock:
            self._sends["succeeded" if success else "failed"] += 1

    def record_birthday_outcome(self, status: str) -> None:
        with self._lock:
            self._birthday[status] += 1

    def snapshot(self) -> BroadcastSnapshot:
        with self._lock:
            return BroadcastSnapshot(
                broadcasts=dict(self._broadcasts),
                sends=dict(self._sends),
                segments=dict(self._segments),
                birthday=dict(self._birthday),
            )

    def reset(self) -> None:
        with self._lock:
            self._broadcasts.clear()
            self._sends.clear()
            self._segments.clear()
            self._birthday.clear()


_STORE = BroadcastObservabilityStore()


def get_broadcast_store() -> BroadcastObservabilityStore:
    return _STORE


__all__ = ["get_broadcast_store", "BroadcastObservabilityStore", "BroadcastSnapshot"]
