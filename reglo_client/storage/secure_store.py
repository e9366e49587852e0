"""
Durable key/value storage for session credentials and pending intents.

Read and write failures are logged and degrade to "value missing": a
broken store must never crash the session, it only forces a new login.
"""

import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class SecureStore:
    """Minimal string key/value store interface."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete_item(self, key: str) -> None:
        raise NotImplementedError


class MemorySecureStore(SecureStore):
    """Process-local store, used by tests and the offline demo."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def delete_item(self, key: str) -> None:
        self._items.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._items)


class FileSecureStore(SecureStore):
    """JSON file backed store. The whole file is rewritten on every change."""

    def __init__(self, path: str) -> None:
        self._path = Path(path).expanduser()

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Storage read error (%s): %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Storage file %s is not a JSON object, ignoring it", self._path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as exc:
            logger.warning("Storage write error (%s): %s", self._path, exc)

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete_item(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
