from pathlib import Path

import pytest

from gameflow.api.settings import GameApiSettings


def test_settings_defaults() -> None:
    settings = GameApiSettings.from_env({})

    assert settings.store_path is None
    assert settings.log_level == "INFO"
    assert settings.leaderboard_limit is None


def test_settings_read_environment() -> None:
    settings = GameApiSettings.from_env(
        {
            "GAMEFLOW_STORE_PATH": "~/games/store.json",
            "GAMEFLOW_LOG_LEVEL": " debug ",
            "GAMEFLOW_LEADERBOARD_LIMIT": "5",
        }
    )

    assert settings.store_path == Path("~/games/store.json").expanduser()
    assert settings.log_level == "DEBUG"
    assert settings.leaderboard_limit == 5


def test_blank_values_count_as_unset() -> None:
    settings = GameApiSettings.from_env({"GAMEFLOW_STORE_PATH": "  ", "GAMEFLOW_LEADERBOARD_LIMIT": ""})

    assert settings.store_path is None
    assert settings.leaderboard_limit is None


@pytest.mark.parametrize(
    "environ",
    [
        {"GAMEFLOW_LOG_LEVEL": "chatty"},
        {"GAMEFLOW_LEADERBOARD_LIMIT": "ten"},
        {"GAMEFLOW_LEADERBOARD_LIMIT": "0"},
    ],
)
def test_invalid_settings_raise(environ: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        GameApiSettings.from_env(environ)
