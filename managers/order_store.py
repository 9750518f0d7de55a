"""Key/value persistence and the 24-hour custom order override"""

import json
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Union

from errors import PersistenceError
from models.asset import Asset
from models.order import CustomOrder

logger = logging.getLogger("MCP_Server")

CUSTOM_ORDER_KEY = "mixed-content-custom-order"
CUSTOM_ORDER_TTL_HOURS = 24


class KeyValueStore:
    """Local-storage style string store"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str):
        raise NotImplementedError

    def remove(self, key: str):
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str):
        self._data[key] = value

    def remove(self, key: str):
        self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """Keeps every key in one JSON object on disk.

    The file is created on first write. Read and write failures surface as
    ``PersistenceError`` so callers can decide how much to absorb. A write
    over an unreadable file replaces it instead of failing forever.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, IOError) as e:
            raise PersistenceError(f"Failed to read store {self.path}: {e}")
        if not isinstance(data, dict):
            raise PersistenceError(f"Store {self.path} does not contain a JSON object")
        return data

    def _read_for_update(self) -> Dict[str, str]:
        try:
            return self._read_all()
        except PersistenceError as e:
            logger.warning(f"{e}; overwriting with a fresh store")
            return {}

    def _write_all(self, data: Dict[str, str]):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            tmp_path.replace(self.path)
        except (IOError, OSError) as e:
            raise PersistenceError(f"Failed to write store {self.path}: {e}")

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str):
        with self._lock:
            data = self._read_for_update()
            data[key] = value
            self._write_all(data)

    def remove(self, key: str):
        with self._lock:
            data = self._read_for_update()
            if key in data:
                del data[key]
                self._write_all(data)


class OrderStore:
    """Best-effort persistence of the user's custom order.

    Nothing here raises: a store that cannot be read behaves as if no
    override exists, and a failed write is logged and skipped.
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        ttl_hours: int = CUSTOM_ORDER_TTL_HOURS,
        clock: Callable[[], float] = time.time,
    ):
        self.kv_store = kv_store
        self.ttl_hours = ttl_hours
        self._clock = clock

    def now_millis(self) -> int:
        return int(self._clock() * 1000)

    def load(self) -> Optional[CustomOrder]:
        try:
            raw = self.kv_store.get(CUSTOM_ORDER_KEY)
        except Exception as e:
            logger.warning(f"Failed to load custom order: {e}")
            return None
        if not raw:
            return None

        try:
            custom_order = CustomOrder.from_json(raw)
        except ValueError as e:
            logger.warning(f"Ignoring corrupt custom order: {e}")
            return None

        if custom_order.is_expired(self.now_millis(), self.ttl_hours):
            logger.debug("Stored custom order is older than %s hours; ignoring", self.ttl_hours)
            return None
        return custom_order

    def save(self, assets: Sequence[Asset]) -> bool:
        custom_order = CustomOrder.from_assets(assets, self.now_millis())
        try:
            self.kv_store.set(CUSTOM_ORDER_KEY, custom_order.to_json())
        except Exception as e:
            logger.warning(f"Failed to save custom order: {e}")
            return False
        logger.debug(f"Saved custom order for {len(custom_order.entries)} assets")
        return True

    def clear(self) -> bool:
        try:
            self.kv_store.remove(CUSTOM_ORDER_KEY)
        except Exception as e:
            logger.warning(f"Failed to clear custom order: {e}")
            return False
        return True
