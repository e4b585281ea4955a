from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from auth.models import AppConfiguration


class ConfigurationStore(ABC):
    @abstractmethod
    def load(self) -> AppConfiguration:
        raise NotImplementedError

    @abstractmethod
    def save(self, config: AppConfiguration) -> None:
        raise NotImplementedError


class MemoryConfigurationStore(ConfigurationStore):
    def __init__(self, config: AppConfiguration | None = None) -> None:
        self._payload = (config or AppConfiguration()).to_dict()
        self.save_count = 0

    def load(self) -> AppConfiguration:
        return AppConfiguration.from_dict(self._payload)

    def save(self, config: AppConfiguration) -> None:
        self._payload = config.to_dict()
        self.save_count += 1


class FileConfigurationStore(ConfigurationStore):
    def __init__(self, path: str | Path = ".sessions.json") -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppConfiguration:
        if not self._path.exists():
            return AppConfiguration()

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise RuntimeError("Configuration file is invalid; expected top-level JSON object.")
        return AppConfiguration.from_dict(raw)

    def save(self, config: AppConfiguration) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(config.to_dict(), handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
