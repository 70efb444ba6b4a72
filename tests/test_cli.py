"""
Tests for the command line interface, run against the mock provider.
"""

from typer.testing import CliRunner

from freetime import __version__
from freetime.adapters.mock_calendar import MockCalendarProvider
from freetime.cli.app import app
from freetime.domain.exceptions import ProviderFailure

runner = CliRunner()


def write_config(tmp_path, content='timezone: "Europe/Berlin"\n'):
    path = tmp_path / "config.yaml"
    path.write_text(content, encoding="utf-8")
    return str(path)


class TestFreeCommand:
    """Tests for `freetime free`."""

    def test_free_slots_from_mock_data(self, tmp_path):
        result = runner.invoke(app, ["free", "--mock", "--date", "2024-11-25", "--config", write_config(tmp_path)])

        assert result.exit_code == 0
        assert "Free Time Slots" in result.output
        assert "09:00 - 09:30" in result.output
        assert "09:45 - 11:00" in result.output
        assert "12:30 - 16:30" in result.output

    def test_min_duration_hides_short_slots(self, tmp_path):
        result = runner.invoke(
            app,
            ["free", "--mock", "--date", "2024-11-25", "--min-duration", "60", "--config", write_config(tmp_path)],
        )

        assert result.exit_code == 0
        assert "09:00 - 09:30" not in result.output
        assert "09:45 - 11:00" in result.output

    def test_invalid_date(self, tmp_path):
        result = runner.invoke(app, ["free", "--mock", "--date", "25.11.2024", "--config", write_config(tmp_path)])

        assert result.exit_code == 1
        assert "Could not parse date" in result.output

    def test_missing_client_id_without_mock(self, tmp_path):
        result = runner.invoke(app, ["free", "--date", "2024-11-25", "--config", write_config(tmp_path)])

        assert result.exit_code == 1
        assert "No client_id configured" in result.output

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["free", "--mock", "--config", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestOtherCommands:
    """Tests for the remaining commands."""

    def test_calendars(self, tmp_path):
        result = runner.invoke(app, ["calendars", "--mock", "--config", write_config(tmp_path)])

        assert result.exit_code == 0
        assert "Team Events" in result.output
        assert "holidays" in result.output

    def test_events(self, tmp_path):
        result = runner.invoke(app, ["events", "--mock", "--date", "2024-11-25", "--config", write_config(tmp_path)])

        assert result.exit_code == 0
        assert "3 event(s)" in result.output
        assert "'Project Sync'" in result.output

    def test_simulate(self, tmp_path):
        result = runner.invoke(
            app,
            ["simulate", "--from", "14", "--to", "15", "--date", "2024-11-25", "--config", write_config(tmp_path)],
        )

        assert result.exit_code == 0
        assert "Simulation" in result.output
        assert "No free slots available." in result.output
        assert "Simulated Event" in result.output

    def test_simulate_rejects_reversed_hours(self, tmp_path):
        result = runner.invoke(app, ["simulate", "--from", "15", "--to", "14", "--config", write_config(tmp_path)])

        assert result.exit_code == 1

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestErrorReporting:
    """Tests for provider errors surfacing as clean exits."""

    def corrupt_mock_config(self, tmp_path):
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
        return write_config(tmp_path, 'timezone: "Europe/Berlin"\nmock_data_file: broken.json\n')

    def test_calendars_with_corrupt_mock_data(self, tmp_path):
        result = runner.invoke(app, ["calendars", "--mock", "--config", self.corrupt_mock_config(tmp_path)])

        assert result.exit_code == 1
        assert "Could not read mock data" in result.output

    def test_events_with_corrupt_mock_data(self, tmp_path):
        result = runner.invoke(
            app, ["events", "--mock", "--date", "2024-11-25", "--config", self.corrupt_mock_config(tmp_path)]
        )

        assert result.exit_code == 1
        assert "Could not read mock data" in result.output

    def test_watch_with_corrupt_mock_data(self, tmp_path):
        result = runner.invoke(app, ["watch", "--mock", "--config", self.corrupt_mock_config(tmp_path)])

        assert result.exit_code == 1
        assert "Could not read mock data" in result.output

    def test_events_reports_failed_fetch(self, tmp_path, monkeypatch):
        """A failed fetch is reported instead of an empty event list."""

        async def unavailable(self, window, calendar_id):
            raise ProviderFailure("Service temporarily unavailable")

        monkeypatch.setattr(MockCalendarProvider, "fetch_busy", unavailable)

        result = runner.invoke(app, ["events", "--mock", "--date", "2024-11-25", "--config", write_config(tmp_path)])

        assert result.exit_code == 1
        assert "Service temporarily unavailable" in result.output
        assert "event(s)" not in result.output
