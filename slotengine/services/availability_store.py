"""
Ownership and validation of provider availability configuration.
"""

import datetime
import logging
import threading
from typing import Any, Collection, List, Mapping, Optional, Union

from pendulum import DateTime
from pydantic import ValidationError

from ..adapters.store import AvailabilityRepository
from ..domain.exceptions import ConfigurationError, NotFound
from ..domain.models import (
    AvailabilityConfig,
    AvailabilitySnapshot,
    CommitmentInterval,
    CommitmentKind,
)

logger = logging.getLogger(__name__)

ConfigInput = Union[AvailabilityConfig, Mapping[str, Any]]


class AvailabilityStore:
    """
    Reads and writes availability documents through a repository.

    A provider without a stored document gets the default configuration
    (no windows, 30 min buffer, 60 min slots, 24h notice, 90 days ahead).
    Edits to one provider's document are serialised by a per-provider lock.
    """

    def __init__(self, repository: AvailabilityRepository):
        self._repository = repository
        self._locks = {}
        self._locks_guard = threading.Lock()

    @property
    def repository(self) -> AvailabilityRepository:
        return self._repository

    def get_config(self, provider_id: str) -> AvailabilityConfig:
        try:
            return self._repository.load_config(provider_id)
        except NotFound:
            logger.debug("No availability stored for %s, using defaults", provider_id)
            return AvailabilityConfig()

    def set_config(self, provider_id: str, config: ConfigInput) -> AvailabilityConfig:
        """
        Validate and store a complete configuration document.

        Args:
            provider_id: Owner of the configuration
            config: A model or a plain mapping (e.g. parsed YAML/JSON)

        Returns:
            The validated configuration that was stored

        Raises:
            ConfigurationError: If any field or window is invalid; nothing is stored
        """
        data = config.model_dump() if isinstance(config, AvailabilityConfig) else dict(config)

        try:
            validated = AvailabilityConfig.model_validate(data)
        except ValidationError as exc:
            errors = [
                f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
                for error in exc.errors()
            ]
            raise ConfigurationError(
                f"Invalid availability configuration for provider '{provider_id}'",
                errors
            ) from exc

        with self._lock_for(provider_id):
            self._repository.save_config(provider_id, validated)
        logger.info(
            "Stored availability for %s (%d window(s), %d blackout(s))",
            provider_id,
            len(validated.weekly_windows),
            len(validated.blackout_dates)
        )
        return validated

    def add_blackout_date(
        self,
        provider_id: str,
        date: datetime.date,
        end_date: Optional[datetime.date] = None,
        reason: Optional[str] = None,
        recurring: bool = False
    ) -> AvailabilityConfig:
        """Append a blackout entry by replacing the whole document."""
        with self._lock_for(provider_id):
            data = self.get_config(provider_id).model_dump()
            data["blackout_dates"].append({
                "date": date,
                "end_date": end_date,
                "reason": reason,
                "recurring": recurring,
            })
            return self.set_config(provider_id, data)

    def _lock_for(self, provider_id: str):
        with self._locks_guard:
            return self._locks.setdefault(provider_id, threading.RLock())

    def query_commitments(
        self,
        provider_id: str,
        *,
        start: Optional[DateTime] = None,
        end: Optional[DateTime] = None,
        kinds: Optional[Collection[CommitmentKind]] = None,
        statuses: Optional[Collection[str]] = None,
    ) -> List[CommitmentInterval]:
        return self._repository.query_commitments(
            provider_id, start=start, end=end, kinds=kinds, statuses=statuses
        )

    def snapshot(
        self,
        provider_id: str,
        start: Optional[DateTime] = None,
        end: Optional[DateTime] = None
    ) -> AvailabilitySnapshot:
        """
        Read configuration and the commitments that can affect ``[start, end)``.

        Slots are generated for whole calendar days, so the query covers the
        full first and last day in the provider's timezone. One extra day on
        each side covers windows declared in another timezone, and the buffer
        lets commitments just outside still push nearby slots away.
        """
        config = self.get_config(provider_id)
        padding = datetime.timedelta(days=1, minutes=config.buffer_minutes)
        query_start = query_end = None
        if start is not None:
            query_start = start.in_timezone(config.timezone).start_of("day") - padding
        if end is not None:
            query_end = end.in_timezone(config.timezone).end_of("day") + padding

        commitments = self.query_commitments(provider_id, start=query_start, end=query_end)
        return AvailabilitySnapshot(
            provider_id=provider_id,
            config=config,
            commitments=tuple(commitments)
        )
