"""Single-file JSON persistence (write temp, then rename)."""

from __future__ import annotations

import json
import os
from typing import Any


class JsonFileBackend:
    def __init__(self, path: str):
        self.path = path

    @property
    def temp_path(self) -> str:
        return f"{self.path}.tmp"

    def init(self) -> None:
        parent = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(parent, exist_ok=True)

    def close(self) -> None:
        pass

    def load(self) -> Any:
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save(self, doc: dict[str, Any]) -> None:
        with open(self.temp_path, "w", encoding="utf-8") as f:
            json.dump(doc, f, separators=(",", ":"))
        # Atomic on POSIX and Windows; readers never see a partial file.
        os.replace(self.temp_path, self.path)
