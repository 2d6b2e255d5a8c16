"""Tests for cache backend implementations."""

import json
import tempfile
import threading
from pathlib import Path

import pytest

from trackdeleter.cache import (
    JSONCacheBackend,
    SQLiteCacheBackend,
    cache_key,
    default_cache_path,
    open_cache,
)
from trackdeleter.models import Track


def make_track(name: str = "song.mp3", mtime: int = 1000, size: int = 4096) -> Track:
    return Track(
        path=Path("/music") / name,
        title="Song",
        artist="Artist",
        album="Album",
        duration=201.4,
        format="mp3",
        size=size,
        sample_rate=44100,
        bitrate=320,
        mtime=mtime,
    )


class TestSQLiteCacheBackend:
    """Tests for SQLite cache backend."""

    def test_init_creates_database(self):
        """Test that initialization creates database file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "nested" / "test.db"
            cache = SQLiteCacheBackend(db_path)

            assert db_path.exists()
            cache.close()

    def test_set_and_get(self):
        """Test storing and retrieving a track."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = SQLiteCacheBackend(Path(tmpdir) / "test.db")
            track = make_track()

            cache.set_track(track)

            assert cache.get_track(track.path, track.mtime, track.size) == track
            cache.close()

    def test_changed_file_is_a_miss(self):
        """Test that a different mtime or size invalidates the entry."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = SQLiteCacheBackend(Path(tmpdir) / "test.db")
            track = make_track()
            cache.set_track(track)

            assert cache.get_track(track.path, track.mtime + 1, track.size) is None
            assert cache.get_track(track.path, track.mtime, track.size + 1) is None
            cache.close()

    def test_get_stats(self):
        """Test cache statistics tracking."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = SQLiteCacheBackend(Path(tmpdir) / "test.db")

            stats = cache.get_stats()
            assert stats == {"hits": 0, "misses": 0, "size": 0}

            a = make_track("a.mp3")
            cache.set_track(a)
            cache.set_track(make_track("b.mp3"))

            cache.get_track(Path("/music/missing.mp3"), 1, 1)
            cache.get_track(a.path, a.mtime, a.size)

            stats = cache.get_stats()
            assert stats["hits"] == 1
            assert stats["misses"] == 1
            assert stats["size"] == 2
            cache.close()

    def test_clear(self):
        """Test clearing cache."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = SQLiteCacheBackend(Path(tmpdir) / "test.db")
            track = make_track()
            cache.set_track(track)

            assert cache.clear() is True
            assert cache.get_track(track.path, track.mtime, track.size) is None
            assert cache.get_stats()["size"] == 0
            cache.close()

    def test_persistence(self):
        """Test that entries survive closing and reopening."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "test.db"
            track = make_track()

            cache = SQLiteCacheBackend(db_path)
            cache.set_track(track)
            cache.close()

            cache = SQLiteCacheBackend(db_path)
            assert cache.get_track(track.path, track.mtime, track.size) == track
            cache.close()

    def test_cleanup_old(self):
        """Test that recently accessed entries are kept."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = SQLiteCacheBackend(Path(tmpdir) / "test.db")
            cache.set_track(make_track())

            assert cache.cleanup_old(max_age_days=1) == 0
            assert cache.get_stats()["size"] == 1
            cache.close()

    def test_thread_safety(self):
        """Test concurrent writes from several threads."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = SQLiteCacheBackend(Path(tmpdir) / "test.db")

            def writer(thread_id: int) -> None:
                for i in range(10):
                    cache.set_track(make_track(f"t{thread_id}_{i}.mp3"))
                cache.close()

            threads = [threading.Thread(target=writer, args=(i,)) for i in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert cache.get_stats()["size"] == 40
            cache.close()


class TestJSONCacheBackend:
    """Tests for JSON cache backend."""

    def test_set_and_get(self):
        """Test storing and retrieving a track."""
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = JSONCacheBackend(Path(tmpdir) / "cache.json")
            track = make_track()

            cache.set_track(track)

            assert cache.get_track(track.path, track.mtime, track.size) == track

    def test_close_writes_file(self):
        """Test that close() saves entries to disk."""
        with tempfile.TemporaryDirectory() as tmpdir:
            json_path = Path(tmpdir) / "cache.json"
            track = make_track()

            cache = JSONCacheBackend(json_path)
            cache.set_track(track)
            cache.close()

            with open(json_path) as f:
                data = json.load(f)
            assert cache_key(track.path, track.mtime, track.size) in data

            reopened = JSONCacheBackend(json_path)
            assert reopened.get_track(track.path, track.mtime, track.size) == track

    def test_unmodified_cache_not_written(self):
        """Test that close() without changes creates no file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            json_path = Path(tmpdir) / "cache.json"
            JSONCacheBackend(json_path).close()
            assert not json_path.exists()

    def test_corrupt_file_ignored(self):
        """Test that an unreadable cache file starts an empty cache."""
        with tempfile.TemporaryDirectory() as tmpdir:
            json_path = Path(tmpdir) / "cache.json"
            json_path.write_text("{not json")

            cache = JSONCacheBackend(json_path)
            assert cache.get_stats()["size"] == 0

    def test_clear_removes_file(self):
        """Test clearing removes the cache file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            json_path = Path(tmpdir) / "cache.json"
            cache = JSONCacheBackend(json_path)
            cache.set_track(make_track())
            cache.close()

            assert cache.clear() is True
            assert not json_path.exists()
            assert cache.get_stats() == {"hits": 0, "misses": 0, "size": 0}


class TestOpenCache:
    """Tests for backend selection."""

    def test_open_sqlite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = open_cache(Path(tmpdir) / "c.db", "sqlite")
            assert isinstance(cache, SQLiteCacheBackend)
            cache.close()

    def test_open_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = open_cache(Path(tmpdir) / "c.json", "json")
            assert isinstance(cache, JSONCacheBackend)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown cache backend"):
            open_cache(Path("/tmp/c"), "redis")

    def test_default_paths(self):
        config_dir = Path("/home/user/.config/trackdeleter")
        assert default_cache_path(config_dir, "sqlite").name == "tracks.db"
        assert default_cache_path(config_dir, "json").name == "tracks.json"
