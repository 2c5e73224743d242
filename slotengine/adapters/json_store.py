"""
File-backed availability repository used by the CLI.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

import pendulum

from ..domain.models import AvailabilityConfig, CommitmentInterval, CommitmentKind
from .memory_store import InMemoryStore

logger = logging.getLogger(__name__)


def commitment_to_dict(commitment: CommitmentInterval) -> Dict[str, Any]:
    return {
        "id": commitment.id,
        "start": commitment.start.to_iso8601_string(),
        "end": commitment.end.to_iso8601_string(),
        "kind": commitment.kind.value,
        "source": commitment.source,
        "title": commitment.title,
        "status": commitment.status,
        "description": commitment.description,
        "external_id": commitment.external_id,
    }


def commitment_from_dict(data: Dict[str, Any]) -> CommitmentInterval:
    return CommitmentInterval(
        id=data["id"],
        start=pendulum.parse(data["start"]),
        end=pendulum.parse(data["end"]),
        kind=CommitmentKind(data["kind"]),
        source=data.get("source", "internal"),
        title=data.get("title", ""),
        status=data.get("status", "confirmed"),
        description=data.get("description"),
        external_id=data.get("external_id"),
    )


class JsonFileStore(InMemoryStore):
    """
    Keeps every provider document in one JSON file.

    File format:
    {
        "providers": {
            "<provider id>": {
                "availability": {...},
                "commitments": [{...}]
            }
        }
    }
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = path
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return

        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)

        for provider_id, document in data.get("providers", {}).items():
            if document.get("availability") is not None:
                self._configs[provider_id] = AvailabilityConfig.model_validate(document["availability"])
            self._ledgers[provider_id] = {
                item["id"]: commitment_from_dict(item)
                for item in document.get("commitments", [])
            }

        logger.debug("Loaded %d provider document(s) from %s", len(self._ledgers), self.path)

    def _persist(self) -> None:
        providers: Dict[str, Dict[str, Any]] = {}

        for provider_id in set(self._configs) | set(self._ledgers):
            config = self._configs.get(provider_id)
            providers[provider_id] = {
                "availability": config.model_dump(mode="json") if config else None,
                "commitments": [
                    commitment_to_dict(c)
                    for c in sorted(self._ledgers.get(provider_id, {}).values(), key=lambda c: c.start)
                ],
            }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"providers": providers}, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)
