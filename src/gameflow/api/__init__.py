"""FastAPI application exposing game editing and play endpoints."""

from .app import create_app
from .settings import GameApiSettings

__all__ = ["create_app", "GameApiSettings"]
