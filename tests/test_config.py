"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from freetime.config import AppConfig, WorkdayConfig, load_config


def write_config(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestAppConfig:
    """Tests for AppConfig validation."""

    def test_defaults(self):
        config = AppConfig()

        assert config.timezone == "Europe/Berlin"
        assert config.workday.start_hour == 9
        assert config.workday.end_hour == 17
        assert config.sync.auto_sync_minutes == 0
        assert config.calendar_id == ""
        assert not config.has_graph_credentials

    def test_authority_url(self):
        config = AppConfig(client_id="abc", tenant_id="contoso")

        assert config.has_graph_credentials
        assert config.get_authority_url() == "https://login.microsoftonline.com/contoso"

    @pytest.mark.parametrize(
        "start_hour, end_hour",
        [(24, 25), (-1, 8), (9, 0), (17, 9), (9, 9)],
    )
    def test_invalid_workday_hours(self, start_hour, end_hour):
        with pytest.raises(ValidationError):
            WorkdayConfig(start_hour=start_hour, end_hour=end_hour)

    def test_end_hour_24_is_accepted(self):
        workday = WorkdayConfig(start_hour=18, end_hour=24)

        assert workday.end_hour == 24

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            AppConfig(timezone="Mars/Olympus_Mons")

    def test_negative_values_rejected(self):
        with pytest.raises(ValidationError):
            AppConfig(sync={"auto_sync_minutes": -5})
        with pytest.raises(ValidationError):
            AppConfig(min_duration_minutes=-1)


class TestLoadFromYaml:
    """Tests for reading config files."""

    def test_load_full_config(self, tmp_path):
        path = write_config(
            tmp_path,
            """
client_id: "my-client"
tenant_id: "contoso"
timezone: "America/New_York"
workday:
  start_hour: 8
  end_hour: 18
sync:
  auto_sync_minutes: 10
calendar_id: "work"
min_duration_minutes: 30
""",
        )

        config = AppConfig.load_from_yaml(path)

        assert config.client_id == "my-client"
        assert config.timezone == "America/New_York"
        assert config.workday.start_hour == 8
        assert config.workday.end_hour == 18
        assert config.sync.auto_sync_minutes == 10
        assert config.calendar_id == "work"
        assert config.min_duration_minutes == 30

    def test_empty_file_uses_defaults(self, tmp_path):
        config = AppConfig.load_from_yaml(write_config(tmp_path, ""))

        assert config == AppConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AppConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_non_mapping_root(self, tmp_path):
        with pytest.raises(ValueError, match="mapping"):
            AppConfig.load_from_yaml(write_config(tmp_path, "- just\n- a list\n"))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ValueError, match="Invalid YAML"):
            AppConfig.load_from_yaml(write_config(tmp_path, "workday: [unclosed\n"))

    def test_invalid_hours_in_file(self, tmp_path):
        path = write_config(tmp_path, "workday:\n  start_hour: 17\n  end_hour: 9\n")

        with pytest.raises(ValidationError):
            AppConfig.load_from_yaml(path)

    def test_relative_mock_file_resolved_against_config(self, tmp_path):
        config = AppConfig.load_from_yaml(write_config(tmp_path, "mock_data_file: data/events.json\n"))

        assert config.mock_data_file == tmp_path / "data" / "events.json"


class TestLoadConfig:
    """Tests for locating the config file."""

    def test_explicit_missing_path_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_config_in_working_directory(self, tmp_path, monkeypatch):
        write_config(tmp_path, "calendar_id: team\n")
        monkeypatch.chdir(tmp_path)

        assert load_config().calendar_id == "team"
