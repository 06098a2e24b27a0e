import pytest
from pydantic import ValidationError

from icpminer.core.config import (
    AppConfig,
    ConfigError,
    MiningStatus,
    ScheduleConfig,
    ScheduleType,
    StopReason,
    load_app_config,
    validate_app_config_file,
)


def test_missing_file_yields_defaults(tmp_path):
    config = load_app_config(tmp_path / "absent.yaml")

    assert config == AppConfig()
    assert config.finder.page_size == 10
    assert config.mining.max_pages == 20
    assert config.mining.target_matches == 40


def test_env_vars_expanded(tmp_path, monkeypatch):
    monkeypatch.setenv("FINDER_URL", "https://finder.example.com")
    monkeypatch.delenv("FINDER_KEY", raising=False)
    path = tmp_path / "app.yaml"
    path.write_text(
        "finder:\n"
        "  base_url: ${FINDER_URL}\n"
        "  api_key: ${FINDER_KEY:-dev-key}\n"
        "mining:\n"
        "  max_pages: 5\n",
        encoding="utf-8",
    )

    config = load_app_config(path)

    assert config.finder.base_url == "https://finder.example.com"
    assert config.finder.api_key == "dev-key"
    assert config.mining.max_pages == 5


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("mining:\n  target_matches: 7\n", encoding="utf-8")
    monkeypatch.setenv("ICPMINER_CONFIG", str(path))

    assert load_app_config().mining.target_matches == 7


def test_invalid_yaml_raises(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("mining: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_app_config(path)


def test_invalid_values_raise(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("mining:\n  max_pages: 0\n", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_app_config(path)

    assert excinfo.value.path == path
    assert "max_pages" in excinfo.value.details


def test_validate_reports_field_errors(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("logging:\n  level: LOUD\nfinder:\n  max_retries: 0\n", encoding="utf-8")

    errors = validate_app_config_file(path)

    assert len(errors) == 2
    assert any(error.startswith("logging.level") for error in errors)
    assert any(error.startswith("finder.max_retries") for error in errors)


def test_validate_missing_file(tmp_path):
    errors = validate_app_config_file(tmp_path / "absent.yaml")

    assert len(errors) == 1
    assert "not found" in errors[0]


def test_schedule_time_of_day_validation():
    assert ScheduleConfig(name="daily", type=ScheduleType.DAILY, time_of_day="06:30").time_of_day == "06:30"

    with pytest.raises(ValidationError):
        ScheduleConfig(name="bad", time_of_day="25:00")
    with pytest.raises(ValidationError):
        ScheduleConfig(name="bad", time_of_day="6am")


def test_status_helpers():
    assert MiningStatus.COMPLETED.is_terminal
    assert not MiningStatus.RUNNING.is_terminal
    assert StopReason.NO_MORE_PAGES.is_success
    assert not StopReason.BUDGET_EXHAUSTED.is_success
    assert not StopReason.FETCH_FAILED.is_success
