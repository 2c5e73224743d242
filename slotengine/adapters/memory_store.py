"""
In-process implementation of the availability repository.
"""

import threading
from typing import Collection, Dict, List, Optional

from pendulum import DateTime

from ..domain.exceptions import NotFound
from ..domain.models import AvailabilityConfig, CommitmentInterval, CommitmentKind


class InMemoryStore:
    """
    Keeps configuration documents and ledgers in dictionaries.

    Reads return copies of the current state; writes are guarded by a lock
    because detection reads run in worker threads.
    """

    def __init__(self):
        self._configs: Dict[str, AvailabilityConfig] = {}
        self._ledgers: Dict[str, Dict[str, CommitmentInterval]] = {}
        self._lock = threading.RLock()

    def load_config(self, provider_id: str) -> AvailabilityConfig:
        with self._lock:
            try:
                return self._configs[provider_id]
            except KeyError:
                raise NotFound(f"No availability configuration for provider '{provider_id}'") from None

    def save_config(self, provider_id: str, config: AvailabilityConfig) -> None:
        with self._lock:
            self._configs[provider_id] = config
            self._persist()

    def query_commitments(
        self,
        provider_id: str,
        *,
        start: Optional[DateTime] = None,
        end: Optional[DateTime] = None,
        kinds: Optional[Collection[CommitmentKind]] = None,
        statuses: Optional[Collection[str]] = None,
    ) -> List[CommitmentInterval]:
        with self._lock:
            ledger = list(self._ledgers.get(provider_id, {}).values())

        matches = [
            c for c in ledger
            if (kinds is None or c.kind in kinds)
            and (statuses is None or c.status in statuses)
            and (start is None or c.end > start)
            and (end is None or c.start < end)
        ]
        return sorted(matches, key=lambda c: (c.start, c.id))

    def get_commitment(self, provider_id: str, commitment_id: str) -> CommitmentInterval:
        with self._lock:
            try:
                return self._ledgers[provider_id][commitment_id]
            except KeyError:
                raise NotFound(f"Commitment '{commitment_id}' not found for provider '{provider_id}'") from None

    def add_commitment(self, provider_id: str, commitment: CommitmentInterval) -> None:
        with self._lock:
            self._ledgers.setdefault(provider_id, {})[commitment.id] = commitment
            self._persist()

    def replace_commitment(self, provider_id: str, commitment: CommitmentInterval) -> None:
        with self._lock:
            self.get_commitment(provider_id, commitment.id)
            self._ledgers[provider_id][commitment.id] = commitment
            self._persist()

    def remove_commitment(self, provider_id: str, commitment_id: str) -> CommitmentInterval:
        with self._lock:
            commitment = self.get_commitment(provider_id, commitment_id)
            del self._ledgers[provider_id][commitment_id]
            self._persist()
            return commitment

    def _persist(self) -> None:
        """Hook for durable subclasses; the in-memory store keeps nothing."""
