"""Client settings, read from ``FOURINAROW_*`` environment variables."""

from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SOCKET_URL = "ws://localhost:8080/ws"
DEFAULT_API_URL = "http://localhost:8080"

_TRUTHY = {"1", "true", "yes", "on"}


class ClientSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    socket_url: str = Field(default=DEFAULT_SOCKET_URL, min_length=1)
    api_url: str = Field(default=DEFAULT_API_URL, min_length=1)
    poll_interval: float = Field(default=10.0, gt=0)
    http_timeout: float = Field(default=5.0, gt=0)
    strict_turns: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientSettings":
        """Build settings from the environment, falling back to the defaults."""

        env = os.environ if environ is None else environ
        values = {
            "socket_url": env.get("FOURINAROW_SOCKET_URL", DEFAULT_SOCKET_URL),
            "api_url": env.get("FOURINAROW_API_URL", DEFAULT_API_URL),
            "poll_interval": env.get("FOURINAROW_POLL_INTERVAL", "10"),
            "http_timeout": env.get("FOURINAROW_HTTP_TIMEOUT", "5"),
            "strict_turns": env.get("FOURINAROW_STRICT_TURNS", "").strip().lower()
            in _TRUTHY,
        }
        return cls.model_validate(values)
