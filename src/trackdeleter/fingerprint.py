"""Duplicate-detection keys derived from track metadata.

Everything here is pure: keys are computed only from the attributes the
scanner already collected, never from the filesystem.
"""

import math
import re
from enum import Enum
from typing import Optional

from .errors import UnfingerprintableTrack
from .models import FingerprintKey, Track

DEFAULT_TOLERANCE = 1.0

_WHITESPACE = re.compile(r"\s+")

# Prefix for keys built from the filename, so they can never collide with
# a key built from real tags
_UNTAGGED = "\x00untagged"


class MatchMode(str, Enum):
    """How candidate duplicates (same tags) are confirmed."""

    METADATA = "metadata"  # duration within tolerance
    STRICT = "strict"  # duration within tolerance and identical size
    CONTENT = "content"  # identical content hash


def normalize(text: Optional[str]) -> str:
    """Trim, lowercase and collapse internal whitespace."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text.strip().lower())


def round_duration(seconds: float) -> int:
    """Round half up to whole seconds."""
    return int(math.floor(seconds + 0.5))


def unfingerprintable_reason(
    track: Track, mode: MatchMode = MatchMode.METADATA
) -> Optional[str]:
    """
    Explain why a track cannot take part in grouping.

    Returns:
        Reason string, or None if the track can be fingerprinted
    """
    duration = track.duration
    if duration is None or not math.isfinite(duration) or duration <= 0:
        return "unknown or zero duration"
    if mode == MatchMode.CONTENT and not track.content_hash:
        return "no content hash"
    return None


def is_fingerprintable(track: Track, mode: MatchMode = MatchMode.METADATA) -> bool:
    return unfingerprintable_reason(track, mode) is None


def fingerprint(track: Track) -> FingerprintKey:
    """
    Build the duplicate-detection key for a track.

    The primary key is the normalized (title, artist, album). When all three
    are empty the key falls back to the filename stem plus rounded duration
    and size, so untagged files only match copies of themselves.

    Raises:
        UnfingerprintableTrack: If the track has no usable duration
    """
    reason = unfingerprintable_reason(track)
    if reason is not None:
        raise UnfingerprintableTrack(track.path, reason)

    duration = round_duration(track.duration)
    tags = (normalize(track.title), normalize(track.artist), normalize(track.album))

    if any(tags):
        primary = tags
        fallback = False
    else:
        primary = (
            _UNTAGGED,
            normalize(track.path.stem),
            str(duration),
            str(track.size),
        )
        fallback = True

    return FingerprintKey(
        primary=primary,
        duration=duration,
        size=track.size,
        content_hash=track.content_hash,
        fallback=fallback,
    )


def confirms(
    a: FingerprintKey,
    b: FingerprintKey,
    mode: MatchMode = MatchMode.METADATA,
    tolerance: float = DEFAULT_TOLERANCE,
) -> bool:
    """
    Check the secondary discriminator of two candidate duplicates.

    Args:
        a: Key of the first track
        b: Key of the second track (same primary key as ``a``)
        mode: Match mode
        tolerance: Allowed difference of rounded durations, in seconds
    """
    if a.primary != b.primary:
        return False
    if mode == MatchMode.CONTENT:
        return a.content_hash is not None and a.content_hash == b.content_hash

    if abs(a.duration - b.duration) > tolerance:
        return False
    if mode == MatchMode.STRICT:
        return a.size == b.size
    return True
