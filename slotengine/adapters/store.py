"""
Persistence interface for availability documents and the commitment ledger.
"""

from typing import Collection, List, Optional, Protocol

from pendulum import DateTime

from ..domain.models import AvailabilityConfig, CommitmentInterval, CommitmentKind


class AvailabilityRepository(Protocol):
    """
    Per-provider document read/write plus an indexed range query over the
    ledger. Any store offering these operations is sufficient.
    """

    def load_config(self, provider_id: str) -> AvailabilityConfig:
        """Return the stored configuration or raise ``NotFound``."""

    def save_config(self, provider_id: str, config: AvailabilityConfig) -> None:
        """Replace the whole configuration document."""

    def query_commitments(
        self,
        provider_id: str,
        *,
        start: Optional[DateTime] = None,
        end: Optional[DateTime] = None,
        kinds: Optional[Collection[CommitmentKind]] = None,
        statuses: Optional[Collection[str]] = None,
    ) -> List[CommitmentInterval]:
        """Commitments overlapping ``[start, end)``, ordered by start."""

    def get_commitment(self, provider_id: str, commitment_id: str) -> CommitmentInterval:
        """Return one commitment or raise ``NotFound``."""

    def add_commitment(self, provider_id: str, commitment: CommitmentInterval) -> None:
        """Append a commitment to the ledger."""

    def replace_commitment(self, provider_id: str, commitment: CommitmentInterval) -> None:
        """Swap the commitment with the same id, or raise ``NotFound``."""

    def remove_commitment(self, provider_id: str, commitment_id: str) -> CommitmentInterval:
        """Delete and return a commitment, or raise ``NotFound``."""
