"""Tests for CLI commands."""

import json
from datetime import datetime
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from slotshift.cli.commands import app


runner = CliRunner()


@pytest.fixture
def schedule_file(tmp_path, worked_schedule, make_schedule):
    """JSON export of two practitioners' schedules in a service envelope."""
    other = make_schedule("SCH2", "P2", datetime(2024, 6, 2, 10), count=2, occupied={1: "A7"})
    path = tmp_path / "schedules.json"
    path.write_text(
        json.dumps({"data": [s.model_dump(mode="json") for s in (worked_schedule, other)]})
    )
    return path


class TestStatsCommand:
    """Tests for the stats command."""

    def test_table_output(self, schedule_file):
        result = runner.invoke(app, ["stats", str(schedule_file)])

        assert result.exit_code == 0
        assert "2024-06-01" in result.stdout
        assert "2024-06-02" in result.stdout
        assert "Total: 2 occupied, 2 available" in result.stdout

    def test_json_output(self, schedule_file):
        result = runner.invoke(app, ["stats", str(schedule_file), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["dates"]["2024-06-01"] == {"schedules": 1, "occupied": 1, "available": 1}
        assert data["total_available"] == 2

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["stats", str(tmp_path / "nope.json")])

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        result = runner.invoke(app, ["stats", str(path)])

        assert result.exit_code == 1
        assert "Could not read schedules" in result.stdout


class TestTransferCommand:
    """Tests for the transfer command."""

    def test_valid_transfer(self, schedule_file):
        result = runner.invoke(app, ["transfer", str(schedule_file), "SCH1:S1", "SCH1:S2"])

        assert result.exit_code == 0
        assert "Appointment moved from 09:00 to 09:30" in result.stdout

    def test_json_plan(self, schedule_file):
        result = runner.invoke(
            app, ["transfer", str(schedule_file), "P1:SCH1:S1", "P2:SCH2:SCH2-S1", "--json"]
        )

        assert result.exit_code == 0
        plan = json.loads(result.stdout)
        assert plan["appointment_id"] == "A1"
        assert plan["cross_practitioner"] is True

    def test_occupied_target(self, schedule_file):
        result = runner.invoke(app, ["transfer", str(schedule_file), "SCH1:S1", "SCH2:SCH2-S2"])

        assert result.exit_code == 1
        assert "TargetOccupied" in result.stdout

    def test_malformed_key(self, schedule_file):
        result = runner.invoke(app, ["transfer", str(schedule_file), "S1", "SCH1:S2"])

        assert result.exit_code == 1
        assert "InvalidDragKey" in result.stdout


class TestShiftCommand:
    """Tests for the shift command."""

    def test_minute_shift_json(self, schedule_file):
        result = runner.invoke(
            app,
            [
                "shift", str(schedule_file),
                "--date", "2024-06-01", "--minutes", "15",
                "--reason", "Doctor delayed", "--actor", "U1", "--json",
            ],
        )

        assert result.exit_code == 0
        plan = json.loads(result.stdout)
        assert plan["mode"] == "time"
        assert plan["shifted"][0]["slots"][0]["start"] == "2024-06-01T09:15:00"
        assert plan["shifted"][0]["slots"][1]["end"] == "2024-06-01T10:15:00"

    def test_day_shift_table(self, schedule_file):
        result = runner.invoke(
            app,
            [
                "shift", str(schedule_file),
                "--date", "2024-06-02", "--days", "1",
                "--reason", "Clinic closed", "--actor", "U1",
            ],
        )

        assert result.exit_code == 0
        assert "by 1 day(s)" in result.stdout
        assert "2024-06-03 10:00" in result.stdout

    def test_needs_exactly_one_magnitude(self, schedule_file):
        result = runner.invoke(
            app,
            ["shift", str(schedule_file), "--date", "2024-06-01", "--reason", "r", "--actor", "U1"],
        )

        assert result.exit_code == 1
        assert "exactly one" in result.stdout

    def test_out_of_range_minutes(self, schedule_file):
        result = runner.invoke(
            app,
            [
                "shift", str(schedule_file),
                "--date", "2024-06-01", "--minutes", "1441",
                "--reason", "r", "--actor", "U1",
            ],
        )

        assert result.exit_code == 1
        assert "Invalid shift" in result.stdout

    def test_no_schedules_on_date(self, schedule_file):
        result = runner.invoke(
            app,
            [
                "shift", str(schedule_file),
                "--date", "2024-07-01", "--minutes", "5",
                "--reason", "r", "--actor", "U1",
            ],
        )

        assert result.exit_code == 1
        assert "No schedules" in result.stdout


class TestPlanDeleteCommand:
    """Tests for the plan-delete command."""

    def test_date_range(self, schedule_file):
        result = runner.invoke(
            app, ["plan-delete", str(schedule_file), "--from", "2024-06-01", "--to", "2024-06-01"]
        )

        assert result.exit_code == 0
        assert "SCH1" in result.stdout
        assert "1 schedule(s) with a total of 2 slot(s) will be deleted" in result.stdout

    def test_schedule_ids(self, schedule_file):
        result = runner.invoke(
            app, ["plan-delete", str(schedule_file), "--schedule", "SCH1", "--schedule", "SCH2"]
        )

        assert result.exit_code == 0
        assert "2 schedule(s)" in result.stdout

    def test_slot_window(self, schedule_file):
        result = runner.invoke(
            app,
            ["plan-delete", str(schedule_file), "--slots-of", "SCH1", "--start", "09:30", "--end", "10:00"],
        )

        assert result.exit_code == 0
        assert "1 slot(s) will be deleted" in result.stdout

    def test_needs_selection(self, schedule_file):
        result = runner.invoke(app, ["plan-delete", str(schedule_file)])

        assert result.exit_code == 1

    def test_unknown_schedule_for_slots(self, schedule_file):
        result = runner.invoke(
            app,
            ["plan-delete", str(schedule_file), "--slots-of", "SCH9", "--start", "09:00", "--end", "10:00"],
        )

        assert result.exit_code == 1
        assert "UnknownSchedule" in result.stdout


class TestMiscCommands:
    """Tests for serve and version."""

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "SlotShift v" in result.stdout

    def test_serve_runs_app_factory(self):
        with patch("uvicorn.run") as run:
            result = runner.invoke(app, ["serve", "--port", "9001"])

        assert result.exit_code == 0
        run.assert_called_once()
        assert run.call_args.args[0] == "slotshift.api.app:create_app"
        assert run.call_args.kwargs["port"] == 9001
        assert run.call_args.kwargs["factory"] is True
