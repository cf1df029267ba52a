"""Persistent URL -> duration cache.

Entries live in memory and are persisted as one JSON object keyed by
``"duration:" + url``. Each value is ``{"duration": seconds, "timestamp":
epoch_seconds}``; bare numbers from older cache files are accepted on load
and are never pruned by age.

All mutation happens on the event loop thread, so ``get``/``set`` are atomic
with respect to each other. ``save`` snapshots the map synchronously before
writing, and a ``set`` that lands while the write is in flight re-marks the
cache dirty for the next save.
"""
import asyncio
import json
import logging
import math
import time
from pathlib import Path
from typing import Dict, List, Optional

from strmthumb.domain.errors import CacheWriteError

logger = logging.getLogger(__name__)

KEY_PREFIX = "duration:"


class DurationCache:

    def __init__(self, cache_file: Path, auto_save_interval: float = 300.0):
        self.cache_file = Path(cache_file)
        self.auto_save_interval = auto_save_interval
        self._entries: Dict[str, dict] = {}
        self._dirty = False
        self._save_lock = asyncio.Lock()
        self._auto_save_task: Optional[asyncio.Task] = None

    @staticmethod
    def key(url: str) -> str:
        return f"{KEY_PREFIX}{url}"

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def get(self, url: str) -> Optional[float]:
        entry = self._entries.get(self.key(url))
        if entry is None:
            return None
        return entry["duration"]

    def has(self, url: str) -> bool:
        return self.key(url) in self._entries

    def set(self, url: str, duration: float, timestamp: Optional[float] = None) -> None:
        duration = float(duration)
        if not math.isfinite(duration) or duration <= 0:
            raise ValueError(f"Refusing to cache non-positive duration {duration!r} for {url}")
        self._entries[self.key(url)] = {
            "duration": duration,
            "timestamp": time.time() if timestamp is None else timestamp,
        }
        self._dirty = True

    def delete(self, url: str) -> bool:
        if self._entries.pop(self.key(url), None) is None:
            return False
        self._dirty = True
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._dirty = True
        logger.info("Duration cache cleared")

    def prune_older_than(self, max_age: float, now: Optional[float] = None) -> int:
        """Evicts entries whose timestamp is more than ``max_age`` seconds old."""
        now = time.time() if now is None else now
        stale = [
            key for key, entry in self._entries.items()
            if entry.get("timestamp") is not None and now - entry["timestamp"] > max_age
        ]
        for key in stale:
            del self._entries[key]
        if stale:
            self._dirty = True
            logger.info(f"Pruned {len(stale)} expired duration cache entries")
        return len(stale)

    def stats(self) -> dict:
        types: Dict[str, int] = {}
        for key in self._entries:
            kind = key.split(":", 1)[0]
            types[kind] = types.get(kind, 0) + 1
        return {"total": len(self._entries), "types": types, "dirty": self._dirty}

    @staticmethod
    def _parse_entry(value) -> Optional[dict]:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            duration, timestamp = float(value), None
        elif isinstance(value, dict):
            try:
                duration = float(value.get("duration", value.get("value")))
            except (TypeError, ValueError):
                return None
            timestamp = value.get("timestamp")
            if timestamp is not None:
                try:
                    timestamp = float(timestamp)
                except (TypeError, ValueError):
                    timestamp = None
                # Millisecond timestamps from older cache files
                if timestamp is not None and timestamp > 1e11:
                    timestamp = timestamp / 1000.0
        else:
            return None
        if not math.isfinite(duration) or duration <= 0:
            return None
        return {"duration": duration, "timestamp": timestamp}

    async def load(self) -> int:
        """Replaces in-memory entries with the file contents; returns the entry count.

        A missing file means an empty cache. Malformed content is logged as a
        warning and also yields an empty cache.
        """
        try:
            text = await asyncio.to_thread(self.cache_file.read_text, encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"No duration cache at {self.cache_file}, starting empty")
            self._entries = {}
            self._dirty = False
            return 0
        except OSError as e:
            logger.warning(f"Failed to read duration cache {self.cache_file}: {e}")
            self._entries = {}
            self._dirty = False
            return 0

        try:
            data = json.loads(text) if text.strip() else {}
            if not isinstance(data, dict):
                raise ValueError("top-level value is not an object")
        except ValueError as e:
            logger.warning(f"Malformed duration cache {self.cache_file}, starting empty: {e}")
            self._entries = {}
            self._dirty = False
            return 0

        entries = {}
        skipped = 0
        for key, value in data.items():
            entry = self._parse_entry(value)
            if entry is None:
                skipped += 1
                continue
            entries[key] = entry
        if skipped:
            logger.warning(f"Ignored {skipped} malformed duration cache entries")

        self._entries = entries
        self._dirty = False
        logger.info(f"Duration cache loaded: {len(entries)} entries")
        return len(entries)

    async def save(self) -> bool:
        """Writes the cache when dirty. Returns False when there was nothing to write.

        Raises CacheWriteError when the file cannot be written.
        """
        async with self._save_lock:
            if not self._dirty:
                logger.debug("Duration cache unchanged, skipping save")
                return False
            snapshot = {key: dict(entry) for key, entry in self._entries.items()}
            self._dirty = False
            try:
                await asyncio.to_thread(self._write, snapshot)
            except OSError as e:
                self._dirty = True
                raise CacheWriteError(f"Cannot write duration cache {self.cache_file}: {e}") from e
            logger.debug(f"Duration cache saved: {len(snapshot)} entries")
            return True

    def _write(self, snapshot: Dict[str, dict]) -> None:
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.cache_file.with_name(self.cache_file.name + ".tmp")
        tmp_path.write_text(json.dumps(snapshot, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.cache_file)

    def start_auto_save(self) -> None:
        if self._auto_save_task is not None and not self._auto_save_task.done():
            self._auto_save_task.cancel()
        self._auto_save_task = asyncio.get_running_loop().create_task(self._auto_save_loop())
        logger.debug(f"Duration cache auto-save every {self.auto_save_interval:g}s")

    async def stop_auto_save(self) -> None:
        task, self._auto_save_task = self._auto_save_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _auto_save_loop(self) -> None:
        while True:
            await asyncio.sleep(self.auto_save_interval)
            if not self._dirty:
                continue
            try:
                await self.save()
            except CacheWriteError as e:
                logger.error(f"Duration cache auto-save failed: {e}")

    async def close(self) -> None:
        await self.stop_auto_save()
        await self.save()
        logger.info("Duration cache closed")
