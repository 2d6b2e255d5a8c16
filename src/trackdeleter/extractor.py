"""Audio metadata extraction with mutagen."""

import hashlib
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError

from .cache import CacheBackend
from .errors import ExtractionError
from .models import Track

logger = logging.getLogger(__name__)

# Easy-mode tag names first, then raw ID3 / Vorbis / MP4 keys
TAG_KEYS = {
    "title": ("title", "TIT2", "TITLE", "\xa9nam"),
    "artist": ("artist", "TPE1", "ARTIST", "\xa9ART"),
    "album": ("album", "TALB", "ALBUM", "\xa9alb"),
}


def compute_sha256(file_path: Path) -> str:
    """
    Compute SHA256 hash of a file.

    Args:
        file_path: Path to file

    Returns:
        Hexadecimal SHA256 hash string
    """
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            sha256_hash.update(chunk)
    return sha256_hash.hexdigest()


def _tag_text(value: Any) -> str:
    """Flatten a mutagen tag value (list, ID3 frame, MP4 list) to a string."""
    if value is None:
        return ""
    text = getattr(value, "text", None)
    if text is not None:
        value = text
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return str(value).strip()


def _first_tag(tags: Any, name: str) -> str:
    if not tags:
        return ""
    for key in TAG_KEYS[name]:
        try:
            value = tags.get(key)
        except (KeyError, ValueError):
            continue
        text = _tag_text(value)
        if text:
            return text
    return ""


class MetadataExtractor:
    """Reads tags and stream info from audio files into Track objects."""

    def __init__(
        self,
        cache: Optional[CacheBackend] = None,
        with_content_hash: bool = False,
    ):
        """
        Initialize extractor.

        Args:
            cache: Optional metadata cache, keyed by path + mtime + size
            with_content_hash: Also compute a SHA256 of the file bytes
        """
        self.cache = cache
        self.with_content_hash = with_content_hash

    def extract(self, path: Path) -> Track:
        """
        Extract metadata for one file.

        Args:
            path: Absolute path to an audio file

        Returns:
            Track populated from tags, stream info and filesystem stat

        Raises:
            ExtractionError: If the file cannot be read or parsed
        """
        try:
            st = os.stat(path)
        except OSError as e:
            raise ExtractionError(path, e.strerror or str(e)) from e

        mtime = int(st.st_mtime)
        track = None
        if self.cache is not None:
            track = self.cache.get_track(path, mtime, st.st_size)

        if track is None:
            track = self._read(path, st.st_size, mtime)
            if self.with_content_hash:
                track = replace(track, content_hash=self._hash(path))
            self._store(track)
        elif self.with_content_hash and track.content_hash is None:
            track = replace(track, content_hash=self._hash(path))
            self._store(track)

        return track

    def _read(self, path: Path, size: int, mtime: int) -> Track:
        try:
            audio = MutagenFile(str(path), easy=True)
        except (MutagenError, OSError) as e:
            raise ExtractionError(path, str(e)) from e

        if audio is None:
            raise ExtractionError(path, "unrecognized audio format")
        info = getattr(audio, "info", None)
        if info is None:
            raise ExtractionError(path, "no audio stream information")

        length = getattr(info, "length", 0) or 0
        sample_rate = getattr(info, "sample_rate", 0) or 0
        bitrate_bps = getattr(info, "bitrate", 0) or 0
        tags = getattr(audio, "tags", None)

        logger.debug(
            "Read %s: %.2fs %sHz %sbps", path.name, length, sample_rate, bitrate_bps
        )

        return Track(
            path=path,
            title=_first_tag(tags, "title"),
            artist=_first_tag(tags, "artist"),
            album=_first_tag(tags, "album"),
            duration=max(float(length), 0.0),
            format=path.suffix.lower().lstrip("."),
            size=size,
            sample_rate=int(sample_rate),
            bitrate=round(bitrate_bps / 1000) if bitrate_bps else None,
            mtime=mtime,
        )

    def _hash(self, path: Path) -> str:
        try:
            return compute_sha256(path)
        except OSError as e:
            raise ExtractionError(path, f"cannot hash content: {e}") from e

    def _store(self, track: Track) -> None:
        if self.cache is not None:
            self.cache.set_track(track)
