"""
Secure credential store.
- Async keyed get/set/delete; values are short verbatim strings.
- File backend: one JSON document, atomic replace, 0600 permissions,
  fcntl advisory lock across processes, blocking I/O off the event loop.
- Memory backend for tests and demo kiosks.
"""

from __future__ import annotations

import asyncio
import fcntl
import json
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Optional, Protocol, TYPE_CHECKING

from photolab.utils import logger

if TYPE_CHECKING:
    from photolab.config import StoreConfig


SECURE_KEY = "photo_lab_pin"


class SecureStoreError(Exception):
    """Raised when the backing store cannot be read or written."""


class SecureStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemorySecureStore:
    """Process-local store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


# ----------------------- Locks ---------------------------
@contextmanager
def file_lock(path: Path, timeout: float = 10.0):
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(path), os.O_RDWR | os.O_CREAT, 0o600)
    start = time.monotonic()
    try:
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() - start > timeout:
                    raise TimeoutError(f"Could not acquire lock {path} within {timeout}s")
                time.sleep(0.05)
        yield
    finally:
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        except OSError:
            pass
        os.close(fd)


class FileSecureStore:
    """
    JSON-file backed store.

    The document is a flat ``{key: value}`` object. Writes go to a temp file
    that replaces the original, so readers never see a partial document.
    """

    def __init__(self, path: str | Path, *, lock_timeout_s: float = 10.0) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_timeout_s = float(lock_timeout_s)

    # ----------------- internal helpers -----------------
    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        raw = self.path.read_text(encoding="utf-8") or "{}"
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        values: Dict[str, str] = {}
        for k, v in data.items():
            # null or non-string entries count as absent
            if isinstance(v, str):
                values[str(k)] = v
            else:
                logger.warning("[SecureStore] Ignoring non-string value for key %s in %s", k, self.path)
        return values

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(str(tmp), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def _get_sync(self, key: str) -> Optional[str]:
        with file_lock(self.lock_path, self.lock_timeout_s):
            return self._read().get(key)

    def _set_sync(self, key: str, value: str) -> None:
        with file_lock(self.lock_path, self.lock_timeout_s):
            data = self._read()
            data[key] = str(value)
            self._write(data)

    def _delete_sync(self, key: str) -> None:
        with file_lock(self.lock_path, self.lock_timeout_s):
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)

    # ----------------- public API -----------------
    async def get(self, key: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._get_sync, key)
        except (OSError, ValueError, TimeoutError) as e:
            logger.error("[SecureStore] Read failed for key %s: %s", key, e)
            raise SecureStoreError(f"Failed to read {key}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(self._set_sync, key, value)
        except (OSError, ValueError, TimeoutError) as e:
            logger.error("[SecureStore] Write failed for key %s: %s", key, e)
            raise SecureStoreError(f"Failed to write {key}") from e
        logger.info("[SecureStore] Stored credential under %s", key)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete_sync, key)
        except (OSError, ValueError, TimeoutError) as e:
            logger.error("[SecureStore] Delete failed for key %s: %s", key, e)
            raise SecureStoreError(f"Failed to delete {key}") from e
        logger.info("[SecureStore] Deleted credential under %s", key)


def build_store(cfg: "StoreConfig") -> SecureStore:
    """Pick the store backend named in the configuration."""
    backend = (cfg.backend or "file").lower()
    if backend == "memory":
        logger.warning("[SecureStore] Using in-memory store; the PIN is lost on restart")
        return MemorySecureStore()
    if backend == "file":
        return FileSecureStore(cfg.path)
    raise ValueError(f"Unknown store backend: {cfg.backend}")
