"""
Tests for the command line interface.
"""

import json

import pendulum
from typer.testing import CliRunner

from slotengine.cli.app import app
from slotengine.domain.exceptions import AuthenticationError

runner = CliRunner()


def _setup(tmp_path):
    store_path = tmp_path / "store.json"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"timezone: UTC\nstore_path: {store_path}\n", encoding="utf-8")

    availability = tmp_path / "availability.yaml"
    availability.write_text(
        "weekly_windows:\n"
        + "".join(
            f"  - {{day_of_week: {day}, start_time: '09:00', end_time: '17:00'}}\n" for day in range(7)
        )
        + "buffer_minutes: 0\n"
        + "auto_accept: true\n",
        encoding="utf-8"
    )
    return config_path, store_path, availability


def _next_week_morning() -> str:
    return pendulum.now("UTC").add(days=7).format("YYYY-MM-DD") + " 10:00"


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "slotengine" in result.output


def test_set_and_show_config(tmp_path):
    """Availability documents are stored and shown."""
    config_path, store_path, availability = _setup(tmp_path)

    result = runner.invoke(app, ["set-config", "studio-1", str(availability), "--config", str(config_path)])
    assert result.exit_code == 0, result.output

    stored = json.loads(store_path.read_text(encoding="utf-8"))
    assert len(stored["providers"]["studio-1"]["availability"]["weekly_windows"]) == 7

    result = runner.invoke(app, ["show-config", "studio-1", "--config", str(config_path)])
    assert result.exit_code == 0
    assert "Mon" in result.output


def test_invalid_availability_rejected(tmp_path):
    """Invalid windows are listed and nothing is stored."""
    config_path, store_path, _ = _setup(tmp_path)
    bad = tmp_path / "bad.yaml"
    bad.write_text(
        "weekly_windows:\n  - {day_of_week: 0, start_time: '17:00', end_time: '09:00'}\n",
        encoding="utf-8"
    )

    result = runner.invoke(app, ["set-config", "studio-1", str(bad), "--config", str(config_path)])

    assert result.exit_code == 1
    assert not store_path.exists()


def test_book_conflict_and_cancel(tmp_path):
    """A second overlapping booking is refused until the first is cancelled."""
    config_path, store_path, availability = _setup(tmp_path)
    runner.invoke(app, ["set-config", "studio-1", str(availability), "--config", str(config_path)])
    start = _next_week_morning()

    first = runner.invoke(app, ["book", "studio-1", start, "--config", str(config_path)])
    assert first.exit_code == 0, first.output

    second = runner.invoke(app, ["book", "studio-1", start, "--config", str(config_path)])
    assert second.exit_code == 1

    booking_id = json.loads(store_path.read_text(encoding="utf-8"))["providers"]["studio-1"]["commitments"][0]["id"]
    cancelled = runner.invoke(app, ["cancel", "studio-1", booking_id, "--config", str(config_path)])
    assert cancelled.exit_code == 0

    check = runner.invoke(app, ["check", "studio-1", start, "--config", str(config_path)])
    assert check.exit_code == 0
    assert "is available" in check.output


def test_cancel_unknown_id(tmp_path):
    config_path, _, _ = _setup(tmp_path)

    result = runner.invoke(app, ["cancel", "studio-1", "bkg_missing", "--config", str(config_path)])

    assert result.exit_code == 1


def test_slots_and_ics_round_trip(tmp_path):
    """Exported bookings can be imported as busy time for another provider."""
    config_path, _, availability = _setup(tmp_path)
    runner.invoke(app, ["set-config", "studio-1", str(availability), "--config", str(config_path)])
    start = _next_week_morning()
    runner.invoke(app, ["block", "studio-1", start, start.replace("10:00", "12:00"),
                        "--reason", "Maintenance", "--config", str(config_path)])

    slots = runner.invoke(
        app,
        ["slots", "studio-1", "--start", start[:10], "--days", "0", "--all", "--config", str(config_path)]
    )
    assert slots.exit_code == 0, slots.output
    assert "available" in slots.output

    ics_path = tmp_path / "out.ics"
    exported = runner.invoke(
        app, ["export-ics", "studio-1", "--output", str(ics_path), "--config", str(config_path)]
    )
    assert exported.exit_code == 0
    assert "SUMMARY:Maintenance" in ics_path.read_text(encoding="utf-8")

    imported = runner.invoke(app, ["import-ics", "studio-2", str(ics_path), "--config", str(config_path)])
    assert imported.exit_code == 0
    assert "Imported 1 event" in imported.output


def test_non_positive_duration_rejected(tmp_path):
    """A zero-length request ends with an error message, not a traceback."""
    config_path, _, availability = _setup(tmp_path)
    runner.invoke(app, ["set-config", "studio-1", str(availability), "--config", str(config_path)])

    result = runner.invoke(app, ["book", "studio-1", _next_week_morning(), "--duration", "0",
                                 "--config", str(config_path)])

    assert result.exit_code == 1
    assert "must be before" in result.output


def test_failed_microsoft_sign_in(tmp_path, monkeypatch):
    """A sign-in failure while connecting a calendar exits cleanly."""
    config_path, _, _ = _setup(tmp_path)
    with open(config_path, "a", encoding="utf-8") as f:
        f.write("microsoft:\n  client_id: abc\n")

    class FailingAuthenticator:
        def __init__(self, **kwargs):
            self.authority = kwargs["authority_url"]

        def get_credentials(self):
            raise AuthenticationError("Authentication failed: user declined")

    monkeypatch.setattr("slotengine.cli.app.GraphAuthenticator", FailingAuthenticator)

    result = runner.invoke(app, ["check", "studio-1", _next_week_morning(), "--calendar", "microsoft",
                                 "--config", str(config_path)])

    assert result.exit_code == 1
    assert "sign-in failed" in result.output
