"""Local state cache: a JSON file of key -> value under a size quota.

Writes that would exceed the quota trigger a cleanup of stale keys and one
retry; if the write still does not fit it is dropped with a warning. Callers
are never interrupted by quota or disk errors.
"""

import asyncio
import json
import os
import re
from pathlib import Path
from typing import Any, Callable

from advisory_engine.core.errors import QuotaExceededError
from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)

STATE_KEY = "advisory_state"
SYNC_QUEUE_KEY = "sync_queue"

# Keys left behind by earlier cache layouts and manual backups
_STALE_KEY = re.compile(r"^v\d+_old_|_backup_")


def is_stale_key(key: str) -> bool:
    return bool(_STALE_KEY.search(key))


class LocalStateStore:
    """File-backed key/value cache standing in for browser local storage."""

    def __init__(self, path: str | Path, max_bytes: int = 50 * 1024 * 1024):
        self.path = Path(path)
        self.max_bytes = max_bytes
        self._data: dict[str, Any] = self._read()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Local state at {self.path} unreadable, starting empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        payload = json.dumps(data, default=str)
        if len(payload.encode("utf-8")) > self.max_bytes:
            raise QuotaExceededError(
                f"Local state would be {len(payload)} bytes (quota {self.max_bytes})"
            )
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise QuotaExceededError(f"Local state write failed: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def keys(self) -> list[str]:
        return list(self._data)

    def set(self, key: str, value: Any) -> bool:
        """
        Store a value.

        Returns:
            True if written, False if dropped for lack of space
        """
        candidate = {**self._data, key: value}
        try:
            self._write(candidate)
        except QuotaExceededError as e:
            logger.warning(f"Local storage quota hit writing {key}: {e}; cleaning up")
            removed = self.cleanup()
            candidate = {**self._data, key: value}
            try:
                self._write(candidate)
            except QuotaExceededError as retry_error:
                logger.warning(
                    f"Dropped local write for {key} after cleanup of {removed} keys: {retry_error}"
                )
                return False
        self._data = candidate
        return True

    def remove(self, key: str) -> None:
        if key not in self._data:
            return
        remaining = {k: v for k, v in self._data.items() if k != key}
        try:
            self._write(remaining)
        except QuotaExceededError as e:
            logger.warning(f"Could not persist removal of {key}: {e}")
        self._data = remaining

    def cleanup(self) -> int:
        """Remove stale keys. Returns how many were removed."""
        stale = [k for k in self._data if is_stale_key(k)]
        if not stale:
            return 0
        self._data = {k: v for k, v in self._data.items() if k not in stale}
        try:
            self._write(self._data)
        except QuotaExceededError as e:
            logger.warning(f"Cleanup removed {len(stale)} keys but could not persist: {e}")
        logger.info(f"Removed {len(stale)} stale local keys")
        return len(stale)


class LocalStateScheduler:
    """Debounced writer: flush on change after a quiet period, and on shutdown."""

    def __init__(
        self,
        store: LocalStateStore,
        snapshot: Callable[[], Any],
        key: str = STATE_KEY,
        debounce_seconds: float = 1.0,
    ):
        self.store = store
        self.snapshot = snapshot
        self.key = key
        self.debounce_seconds = debounce_seconds
        self._handle: asyncio.TimerHandle | None = None
        self.flush_count = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def notify_change(self) -> None:
        """Schedule a flush, restarting the debounce window."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop: nothing can fire the timer later
            self.flush()
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.debounce_seconds, self.flush)

    def flush(self) -> bool:
        """Write the current snapshot now."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.flush_count += 1
        return self.store.set(self.key, self.snapshot())

    def shutdown(self) -> None:
        """Final write before exit, whether or not a flush is pending."""
        self.flush()
