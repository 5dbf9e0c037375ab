"""In-memory registry of deployment records."""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Tuple

from .models import DeployStatus, DeploymentRecord


class DeploymentRegistry:
    """Single owner of the deployment records.

    The poller threads and the user-triggered operations share one instance,
    so every read and write takes the lock. Readers get copies.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: Dict[int, DeploymentRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def snapshot(self) -> List[DeploymentRecord]:
        with self._lock:
            return [record.copy() for record in self._records.values()]

    def get(self, build_id: int) -> Optional[DeploymentRecord]:
        with self._lock:
            record = self._records.get(build_id)
            return record.copy() if record else None

    def find_active(self, application_name: str) -> Optional[DeploymentRecord]:
        """Return the non-terminal record for an application, if any."""
        with self._lock:
            for record in self._records.values():
                if record.application_name == application_name and not record.is_terminal:
                    return record.copy()
            return None

    def add(self, record: DeploymentRecord) -> bool:
        """Insert a record; False if the application already has an active one."""
        with self._lock:
            active = self.find_active(record.application_name)
            if active is not None and active.build_id != record.build_id:
                return False
            existing = self._records.get(record.build_id)
            if existing is not None:
                return not existing.is_terminal
            self._records[record.build_id] = record
            return True

    def pending_ids(self) -> List[int]:
        with self._lock:
            return [r.build_id for r in self._records.values() if not r.is_terminal]

    def has_pending(self) -> bool:
        return bool(self.pending_ids())

    def merge(
        self, build_id: int, payload: Dict[str, Any]
    ) -> Optional[Tuple[Optional[DeployStatus], DeploymentRecord]]:
        """Merge a detail payload; returns (previous status, updated copy)."""
        with self._lock:
            record = self._records.get(build_id)
            if record is None:
                return None
            previous = record.status
            record.merge(payload)
            return previous, record.copy()

    def set_loading(self, build_id: int, loading: bool) -> None:
        with self._lock:
            record = self._records.get(build_id)
            if record is not None:
                record.loading = loading

    def remove(self, build_id: int) -> bool:
        """Remove a terminal record; pending records stay."""
        with self._lock:
            record = self._records.get(build_id)
            if record is None or not record.is_terminal:
                return False
            del self._records[build_id]
            return True
