"""Configuration helpers for deploying the game flow API."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


@dataclass(frozen=True)
class GameApiSettings:
    """Deployment settings for the FastAPI application.

    Values come from environment variables. Paths expand ``~`` and empty
    strings count as unset.
    """

    store_path: Path | None = None
    log_level: str = "INFO"
    leaderboard_limit: int | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GameApiSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        store_path = _normalise_path(source.get("GAMEFLOW_STORE_PATH"))

        log_level = _normalise_string(source.get("GAMEFLOW_LOG_LEVEL"), default="INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"GAMEFLOW_LOG_LEVEL '{log_level}' is not a logging level.")

        leaderboard_limit: int | None = None
        limit_raw = source.get("GAMEFLOW_LEADERBOARD_LIMIT")
        if limit_raw is not None:
            trimmed_limit = limit_raw.strip()
            if trimmed_limit:
                try:
                    parsed_limit = int(trimmed_limit)
                except ValueError as exc:
                    raise ValueError("GAMEFLOW_LEADERBOARD_LIMIT must be a positive integer.") from exc
                if parsed_limit < 1:
                    raise ValueError("GAMEFLOW_LEADERBOARD_LIMIT must be greater than zero.")
                leaderboard_limit = parsed_limit

        return cls(store_path=store_path, log_level=log_level, leaderboard_limit=leaderboard_limit)


__all__ = ["GameApiSettings"]
