"""アプリケーション設定のテスト"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from dive_toolbox.infrastructure.config.settings import Settings
from dive_toolbox.shared.exceptions.errors import ConfigurationError


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.geocode_rate == 10.0
    assert settings.geocode_burst == 5
    assert settings.concurrency == 4
    assert settings.coordinate_precision == 4
    assert settings.title_format == "{title}"
    assert settings.cache_path == Path("~/.cache/dive-toolbox/geocode.sqlite3").expanduser()


def test_environment_variables_use_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    """環境変数は DIVE_TOOLBOX_ 接頭辞で読み込む"""
    monkeypatch.setenv("DIVE_TOOLBOX_GEOCODE_RATE", "2.5")
    monkeypatch.setenv("DIVE_TOOLBOX_CONCURRENCY", "8")
    monkeypatch.setenv("DIVE_TOOLBOX_LOG_LEVEL", "debug")

    settings = Settings(_env_file=None)

    assert settings.geocode_rate == 2.5
    assert settings.concurrency == 8
    assert settings.log_level == "DEBUG"


def test_env_file_is_read(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("DIVE_TOOLBOX_GEOCODE_BURST=12\n", encoding="utf-8")

    assert Settings(_env_file=env_file).geocode_burst == 12


def test_paths_expand_home() -> None:
    settings = Settings(_env_file=None, lightroom_presets_dir="~/Presets")

    assert settings.lightroom_presets_dir == Path.home() / "Presets"


@pytest.mark.parametrize(
    "field,value",
    [
        ("geocode_rate", 0),
        ("geocode_burst", 0),
        ("concurrency", 0),
        ("coordinate_precision", 9),
        ("log_level", "VERBOSE"),
    ],
)
def test_invalid_values_are_rejected(field: str, value: object) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_retry_backoff_is_capped() -> None:
    settings = Settings(_env_file=None, retry_backoff=30.0, max_retry_backoff=5.0)

    assert settings.effective_retry_backoff == 5.0


def test_required_values_raise_configuration_error() -> None:
    settings = Settings(_env_file=None, google_maps_api_key=None, lightroom_presets_dir=None)

    with pytest.raises(ConfigurationError):
        settings.require_api_key()
    with pytest.raises(ConfigurationError):
        settings.require_presets_dir()
