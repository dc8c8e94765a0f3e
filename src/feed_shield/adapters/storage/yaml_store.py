"""Key-value store persisted as a single YAML document."""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from feed_shield.core.interfaces import KeyValueStore

logger = logging.getLogger(__name__)


class YamlFileStore(KeyValueStore):
    """Store every key in one YAML file.

    The file is read once and kept in memory; each ``set`` rewrites the
    whole document through a temporary file so a crash never leaves a
    half-written state file behind. Last writer wins.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: Optional[dict[str, Any]] = None

    async def get(self, key: str, default: Any = None) -> Any:
        data = self._load()
        return data.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._write(data)

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data

        if not self.path.exists():
            self._data = {}
            return self._data

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error("State file %s is corrupt, starting empty: %s", self.path, e)
            loaded = None

        self._data = loaded if isinstance(loaded, dict) else {}
        return self._data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, allow_unicode=True, default_flow_style=False, sort_keys=False)
        tmp_path.replace(self.path)
