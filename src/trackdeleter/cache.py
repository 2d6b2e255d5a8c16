"""Cache backends for extracted track metadata."""

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Dict, Optional, Protocol

from .models import Track

logger = logging.getLogger(__name__)


def cache_key(path: Path, mtime: int, size: int) -> str:
    """Entries are only valid for an unchanged file (same mtime and size)."""
    return f"{path}:{mtime}:{size}"


class CacheBackend(Protocol):
    """Protocol for cache backend implementations."""

    def get_track(self, path: Path, mtime: int, size: int) -> Optional[Track]:
        """Get cached track metadata for an unchanged file."""
        ...

    def set_track(self, track: Track) -> None:
        """Store track metadata."""
        ...

    def get_stats(self) -> Dict[str, int]:
        """Get cache statistics (hits, misses, size)."""
        ...

    def clear(self) -> bool:
        """Clear all cache entries."""
        ...

    def close(self) -> None:
        """Close cache connections and cleanup."""
        ...


class SQLiteCacheBackend:
    """
    Thread-safe SQLite cache backend for track metadata.

    Uses WAL mode for concurrent reads and atomic writes.
    Each thread gets its own connection via thread-local storage.
    """

    def __init__(self, db_path: Path):
        """
        Initialize SQLite cache backend.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._local = threading.local()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection with retry logic."""
        if not hasattr(self._local, "conn"):
            max_retries = 5
            retry_delay = 0.1

            for attempt in range(max_retries):
                try:
                    conn = sqlite3.connect(str(self.db_path), timeout=30.0)
                    conn.execute("PRAGMA journal_mode=WAL")
                    self._local.conn = conn
                    break
                except sqlite3.OperationalError as e:
                    if attempt < max_retries - 1:
                        time.sleep(retry_delay)
                        retry_delay *= 2
                    else:
                        raise RuntimeError(
                            f"unable to open database file "
                            f"after {max_retries} attempts: {e}"
                        ) from e

        return self._local.conn  # type: ignore[no-any-return]

    def _init_db(self) -> None:
        conn = self._get_connection()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS track_cache (
                cache_key TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                last_accessed INTEGER NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_track_last_accessed
            ON track_cache(last_accessed)
            """
        )
        conn.commit()

    def get_track(self, path: Path, mtime: int, size: int) -> Optional[Track]:
        """
        Get cached metadata for a file.

        Args:
            path: Absolute path of the audio file
            mtime: Current modification time (int seconds)
            size: Current size in bytes

        Returns:
            Cached Track, or None if missing or stale
        """
        key = cache_key(path, mtime, size)
        conn = self._get_connection()
        row = conn.execute(
            "SELECT payload FROM track_cache WHERE cache_key = ?", (key,)
        ).fetchone()

        if row is None:
            with self._lock:
                self._misses += 1
            return None

        try:
            track = Track.from_dict(json.loads(row[0]))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.debug("Discarding unreadable cache entry for %s", path)
            with self._lock:
                self._misses += 1
            return None

        conn.execute(
            "UPDATE track_cache SET last_accessed = ? WHERE cache_key = ?",
            (int(time.time()), key),
        )
        conn.commit()
        with self._lock:
            self._hits += 1
        return track

    def set_track(self, track: Track) -> None:
        """Store metadata for a track."""
        conn = self._get_connection()
        now = int(time.time())
        conn.execute(
            """
            INSERT OR REPLACE INTO track_cache
            (cache_key, payload, created_at, last_accessed)
            VALUES (?, ?, ?, ?)
            """,
            (
                cache_key(track.path, track.mtime, track.size),
                json.dumps(track.to_dict()),
                now,
                now,
            ),
        )
        conn.commit()

    def get_stats(self) -> Dict[str, int]:
        conn = self._get_connection()
        size = conn.execute("SELECT COUNT(*) FROM track_cache").fetchone()[0]
        with self._lock:
            return {"hits": self._hits, "misses": self._misses, "size": size}

    def clear(self) -> bool:
        try:
            conn = self._get_connection()
            conn.execute("DELETE FROM track_cache")
            conn.commit()
            with self._lock:
                self._hits = 0
                self._misses = 0
            return True
        except sqlite3.Error:
            return False

    def cleanup_old(self, max_age_days: int = 90) -> int:
        """
        Remove entries not accessed for the given number of days.

        Returns:
            Number of entries removed
        """
        conn = self._get_connection()
        cutoff = int(time.time()) - (max_age_days * 86400)
        cursor = conn.execute(
            "DELETE FROM track_cache WHERE last_accessed < ?", (cutoff,)
        )
        conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        """Close database connection for current thread."""
        if hasattr(self._local, "conn"):
            self._local.conn.close()
            delattr(self._local, "conn")


class JSONCacheBackend:
    """
    Single-file JSON cache backend.

    Entries are held in memory behind a lock and written on close().
    """

    def __init__(self, json_path: Path):
        self.json_path = json_path
        self._cache: Dict[str, dict] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._modified = False

        if json_path.exists():
            try:
                with open(json_path) as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    self._cache = data
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Ignoring unreadable cache %s: %s", json_path, e)

    def get_track(self, path: Path, mtime: int, size: int) -> Optional[Track]:
        with self._lock:
            data = self._cache.get(cache_key(path, mtime, size))
            if data is None:
                self._misses += 1
                return None
            self._hits += 1
        return Track.from_dict(data)

    def set_track(self, track: Track) -> None:
        with self._lock:
            self._cache[cache_key(track.path, track.mtime, track.size)] = (
                track.to_dict()
            )
            self._modified = True

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._cache),
            }

    def clear(self) -> bool:
        try:
            with self._lock:
                self._cache.clear()
                if self.json_path.exists():
                    self.json_path.unlink()
                self._hits = 0
                self._misses = 0
                self._modified = False
            return True
        except OSError:
            return False

    def close(self) -> None:
        """Save cache to disk if modified."""
        with self._lock:
            if not self._modified:
                return
            try:
                self.json_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.json_path, "w") as f:
                    json.dump(self._cache, f)
                self._modified = False
            except OSError as e:
                logger.warning("Could not write cache %s: %s", self.json_path, e)


def default_cache_path(config_dir: Path, backend: str) -> Path:
    return config_dir / ("tracks.db" if backend == "sqlite" else "tracks.json")


def open_cache(path: Path, backend: str = "sqlite") -> CacheBackend:
    """
    Open a cache backend.

    Args:
        path: Cache database or JSON file
        backend: 'sqlite' or 'json'
    """
    if backend == "sqlite":
        return SQLiteCacheBackend(path)
    if backend == "json":
        return JSONCacheBackend(path)
    raise ValueError(f"Unknown cache backend: {backend}")
