"""4 in a Row package exposing the real-time game client and its building blocks."""

from .client import GameClient
from .config import ClientSettings
from .session import Phase, SessionMachine

__all__ = ["ClientSettings", "GameClient", "Phase", "SessionMachine"]
