"""Key-value lookup cache for contract decimals and pricing identifiers."""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class LookupCache(Protocol):
    """
    Interface for caches keyed by namespace and contract address.

    Entries never expire and are never invalidated.

    """

    def get(self, namespace: str, key: str) -> Any | None: ...

    def set(self, namespace: str, key: str, value: Any) -> None: ...


class MemoryLookupCache:
    """In-memory lookup cache living for a single process."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _make_key(key: str) -> str:
        # Contract addresses are compared case-insensitively
        return key.lower()

    def get(self, namespace: str, key: str) -> Any | None:
        """
        Get a cached value.

        Parameters
        ----------
        namespace : str
            Cache namespace (e.g. 'decimals', 'identifier')
        key : str
            Contract address

        Returns
        -------
        Any | None
            Cached value if found, None otherwise

        """
        with self._lock:
            return self._data.get(namespace, {}).get(self._make_key(key))

    def set(self, namespace: str, key: str, value: Any) -> None:
        """
        Store a value.

        Parameters
        ----------
        namespace : str
            Cache namespace
        key : str
            Contract address
        value : Any
            JSON-serializable value to cache

        """
        with self._lock:
            self._data.setdefault(namespace, {})[self._make_key(key)] = value

    def clear(self) -> None:
        """Clear all cached entries."""
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._data.values())


class JSONFileLookupCache(MemoryLookupCache):
    """
    Lookup cache persisted as a JSON document on disk.

    The file is read once on construction and rewritten after every ``set``.
    A corrupt or unreadable file is treated as an empty cache.

    Parameters
    ----------
    path : Path | str
        Location of the cache file

    """

    def __init__(self, path: Path | str) -> None:
        super().__init__()
        self.path = Path(path).expanduser()
        self._data = self._load()

    def _load(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable lookup cache %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed lookup cache %s", self.path)
            return {}
        return {ns: dict(entries) for ns, entries in data.items() if isinstance(entries, dict)}

    def set(self, namespace: str, key: str, value: Any) -> None:
        """
        Store a value and persist the cache file.

        A failed write is logged; the entry stays available in memory.

        """
        super().set(namespace, key, value)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(self._data, f, indent=2, sort_keys=True)
                tmp_path.replace(self.path)
            except OSError as e:
                logger.warning("Could not write lookup cache %s: %s", self.path, e)
