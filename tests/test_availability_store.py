"""
Tests for availability configuration storage and the repositories.
"""

import datetime
import time
from concurrent.futures import ThreadPoolExecutor

import pendulum
import pytest

from slotengine.adapters.json_store import JsonFileStore
from slotengine.adapters.memory_store import InMemoryStore
from slotengine.domain.exceptions import ConfigurationError, NotFound
from slotengine.domain.models import AvailabilityConfig, CommitmentInterval, CommitmentKind
from slotengine.services.availability_store import AvailabilityStore

MONDAY_MORNING = {
    "weekly_windows": [{"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"}],
    "buffer_minutes": 15,
}


def _commitment(commitment_id: str, start: str, end: str, kind=CommitmentKind.BOOKING, **kwargs):
    return CommitmentInterval(
        id=commitment_id,
        start=pendulum.parse(start, tz="UTC"),
        end=pendulum.parse(end, tz="UTC"),
        kind=kind,
        source=kwargs.pop("source", "internal"),
        **kwargs
    )


class TestAvailabilityStore:
    """Tests for AvailabilityStore."""

    def test_missing_config_returns_defaults(self):
        """Unknown providers get the default document, not an error."""
        store = AvailabilityStore(InMemoryStore())

        assert store.get_config("nobody") == AvailabilityConfig()

    def test_set_config_from_mapping(self):
        """Plain mappings (e.g. parsed YAML) are validated and stored."""
        store = AvailabilityStore(InMemoryStore())

        stored = store.set_config("studio-1", MONDAY_MORNING)

        assert store.get_config("studio-1") == stored
        assert stored.weekly_windows[0].start_time == datetime.time(9, 0)
        assert stored.buffer_minutes == 15

    def test_invalid_window_rejects_whole_update(self):
        """One bad window keeps the previous document untouched."""
        store = AvailabilityStore(InMemoryStore())
        store.set_config("studio-1", MONDAY_MORNING)

        bad = {
            "weekly_windows": [
                {"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"},
                {"day_of_week": 2, "start_time": "15:00", "end_time": "14:00"},
            ],
            "buffer_minutes": 0,
        }

        with pytest.raises(ConfigurationError) as exc_info:
            store.set_config("studio-1", bad)

        assert exc_info.value.errors
        assert any("weekly_windows.1" in error for error in exc_info.value.errors)
        assert store.get_config("studio-1").buffer_minutes == 15

    def test_model_input_is_revalidated(self):
        """Models built without validation cannot slip through."""
        store = AvailabilityStore(InMemoryStore())
        unchecked = AvailabilityConfig.model_construct(buffer_minutes=500)

        with pytest.raises(ConfigurationError):
            store.set_config("studio-1", unchecked)

        with pytest.raises(NotFound):
            store.repository.load_config("studio-1")

    def test_add_blackout_date_replaces_document(self):
        """Blackouts are appended through a full replacement."""
        store = AvailabilityStore(InMemoryStore())
        store.set_config("studio-1", MONDAY_MORNING)

        updated = store.add_blackout_date("studio-1", datetime.date(2030, 1, 7), reason="Holiday")

        assert updated.blackout_dates[0].reason == "Holiday"
        assert updated.weekly_windows == store.get_config("studio-1").weekly_windows
        assert store.get_config("studio-1").is_blacked_out(datetime.date(2030, 1, 7))

    def test_concurrent_blackout_additions_are_all_kept(self):
        """Parallel read-modify-write edits for one provider do not lose updates."""

        class SlowReadStore(InMemoryStore):
            def load_config(self, provider_id):
                config = super().load_config(provider_id)
                time.sleep(0.01)
                return config

        store = AvailabilityStore(SlowReadStore())
        store.set_config("studio-1", MONDAY_MORNING)
        days = [datetime.date(2030, 2, day) for day in range(1, 11)]

        with ThreadPoolExecutor(max_workers=5) as pool:
            list(pool.map(lambda day: store.add_blackout_date("studio-1", day), days))

        stored = store.get_config("studio-1").blackout_dates
        assert sorted(b.date for b in stored) == days

    def test_snapshot_covers_whole_days(self):
        """Commitments anywhere on the first and last day are included."""
        repository = InMemoryStore()
        store = AvailabilityStore(repository)
        store.set_config("studio-1", MONDAY_MORNING)
        repository.add_commitment("studio-1", _commitment("early", "2030-01-07 06:00", "2030-01-07 07:00"))
        repository.add_commitment("studio-1", _commitment("late", "2030-01-07 21:00", "2030-01-07 22:00"))
        repository.add_commitment("studio-1", _commitment("far", "2030-01-04 10:00", "2030-01-04 11:00"))

        snapshot = store.snapshot(
            "studio-1",
            pendulum.parse("2030-01-07 09:00", tz="UTC"),
            pendulum.parse("2030-01-07 12:00", tz="UTC")
        )

        assert sorted(c.id for c in snapshot.commitments) == ["early", "late"]
        assert snapshot.config.buffer_minutes == 15


class TestInMemoryStore:
    """Tests for the in-memory repository."""

    def test_query_filters_and_orders(self):
        """Queries filter by overlap, kind and status and sort by start."""
        repository = InMemoryStore()
        repository.add_commitment("p", _commitment("b", "2030-01-07 12:00", "2030-01-07 13:00"))
        repository.add_commitment("p", _commitment("a", "2030-01-07 10:00", "2030-01-07 11:00"))
        repository.add_commitment(
            "p", _commitment("x", "2030-01-07 10:30", "2030-01-07 11:30", kind=CommitmentKind.BLOCKED)
        )
        repository.add_commitment("p", _commitment("c", "2030-01-07 14:00", "2030-01-07 15:00", status="pending"))

        start = pendulum.parse("2030-01-07 11:00", tz="UTC")
        end = pendulum.parse("2030-01-07 23:00", tz="UTC")

        assert [c.id for c in repository.query_commitments("p")] == ["a", "x", "b", "c"]
        assert [c.id for c in repository.query_commitments("p", start=start, end=end)] == ["x", "b", "c"]
        assert [
            c.id for c in repository.query_commitments("p", kinds={CommitmentKind.BOOKING}, statuses={"confirmed"})
        ] == ["a", "b"]

    def test_missing_commitment_raises(self):
        """Unknown ids surface NotFound."""
        repository = InMemoryStore()

        with pytest.raises(NotFound):
            repository.remove_commitment("p", "missing")
        with pytest.raises(NotFound):
            repository.replace_commitment("p", _commitment("missing", "2030-01-07 10:00", "2030-01-07 11:00"))


class TestJsonFileStore:
    """Tests for the JSON file repository."""

    def test_round_trip_through_disk(self, tmp_path):
        """A second store opened on the same file sees everything written."""
        path = tmp_path / "data" / "store.json"
        first = JsonFileStore(path)
        store = AvailabilityStore(first)
        store.set_config("studio-1", MONDAY_MORNING)
        store.add_blackout_date("studio-1", datetime.date(2030, 2, 1), recurring=True)
        first.add_commitment(
            "studio-1",
            _commitment("ext", "2030-01-07 10:00", "2030-01-07 11:00",
                        kind=CommitmentKind.EXTERNAL, source="google", external_id="g-1")
        )

        second = JsonFileStore(path)

        assert second.load_config("studio-1") == store.get_config("studio-1")
        loaded = second.get_commitment("studio-1", "ext")
        assert loaded.kind == CommitmentKind.EXTERNAL
        assert loaded.external_id == "g-1"
        assert loaded.start == pendulum.parse("2030-01-07 10:00", tz="UTC")

    def test_remove_is_persisted(self, tmp_path):
        """Removals are written immediately."""
        path = tmp_path / "store.json"
        first = JsonFileStore(path)
        first.add_commitment("p", _commitment("a", "2030-01-07 10:00", "2030-01-07 11:00"))
        first.remove_commitment("p", "a")

        assert JsonFileStore(path).query_commitments("p") == []
