"""Listen address, data file, log level."""

from __future__ import annotations

import os
from dataclasses import dataclass

SERVER_VERSION = "0.1.0"


@dataclass
class ServerConfig:
    server_version: str = SERVER_VERSION

    # Network
    host: str = "0.0.0.0"
    port: int = 3001

    # Persistence
    data_file: str = os.path.join("data", "leaderboard-store.json")

    log_level: str = "INFO"

    @staticmethod
    def _env(*names: str) -> str | None:
        for name in names:
            v = os.environ.get(name)
            if v is not None and v.strip():
                return v.strip()
        return None

    @classmethod
    def from_env(cls) -> "ServerConfig":
        cfg = cls()
        cfg.host = cls._env("LEADERBOARD_HOST", "HOST") or cfg.host
        port = cls._env("LEADERBOARD_PORT", "PORT")
        if port:
            try:
                cfg.port = int(port)
            except ValueError:
                pass
        cfg.data_file = cls._env("LEADERBOARD_DATA_FILE") or cfg.data_file
        cfg.log_level = (cls._env("LEADERBOARD_LOG_LEVEL") or cfg.log_level).upper()
        return cfg
