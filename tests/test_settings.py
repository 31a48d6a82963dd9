from pathlib import Path

import pytest

from edge_ingest.runtime_config import load_runtime_config, set_current_runtime_config
from edge_ingest.settings import Settings

SECRET_ENV = (
    "ODDS_API_KEY",
    "THE_ODDS_API_KEY",
    "EDGE_INGEST_ODDS_API_KEY",
    "X_BEARER_TOKEN",
    "TWITTER_BEARER_TOKEN",
    "EDGE_INGEST_X_BEARER_TOKEN",
)


def _clear_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in SECRET_ENV:
        monkeypatch.delenv(name, raising=False)


def test_settings_load_with_odds_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_secrets(monkeypatch)
    monkeypatch.setenv("ODDS_API_KEY", "test-key")

    settings = Settings(_env_file=None)

    assert settings.odds_api_key == "test-key"
    assert settings.odds_api_base_url == "https://api.the-odds-api.com/v4"
    assert settings.odds_api_timeout_s == 20.0
    assert settings.x_api_base_url == "https://api.twitter.com/2"
    assert settings.retry_max_attempts == 4
    assert settings.retry_base_delay_s == 60.0
    assert settings.retry_max_delay_s == 600.0


def test_settings_allows_missing_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_secrets(monkeypatch)

    settings = Settings(_env_file=None)

    assert settings.odds_api_key == ""
    assert settings.x_bearer_token == ""


def test_bearer_token_is_url_decoded(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_secrets(monkeypatch)
    monkeypatch.setenv("TWITTER_BEARER_TOKEN", " AAAA%3D%3D ")

    settings = Settings(_env_file=None)

    assert settings.x_bearer_token == "AAAA=="


def test_settings_from_runtime_uses_config_endpoints(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _clear_secrets(monkeypatch)
    monkeypatch.setenv("THE_ODDS_API_KEY", "fallback-key")
    config_path = tmp_path / "runtime.toml"
    config_path.write_text(
        "\n".join(
            [
                "[odds_api]",
                'base_url = "https://odds.test/v4"',
                "timeout_s = 5",
                "",
                "[retry]",
                "max_attempts = 2",
                "base_delay_s = 1.5",
            ]
        )
        + "\n",
        encoding="utf-8",
    )

    runtime_config = load_runtime_config(config_path)
    set_current_runtime_config(runtime_config)
    try:
        settings = Settings.from_runtime()
    finally:
        set_current_runtime_config(None)

    assert settings.odds_api_key == "fallback-key"
    assert settings.odds_api_base_url == "https://odds.test/v4"
    assert settings.odds_api_timeout_s == 5.0
    assert settings.retry_max_attempts == 2
    assert settings.retry_base_delay_s == 1.5


def test_store_location_lives_in_runtime_config_only() -> None:
    assert "data_dir" not in Settings.model_fields
