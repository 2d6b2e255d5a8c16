"""Tests for duplicate-detection keys."""

import math
from pathlib import Path

import pytest

from trackdeleter.errors import UnfingerprintableTrack
from trackdeleter.fingerprint import (
    MatchMode,
    confirms,
    fingerprint,
    is_fingerprintable,
    normalize,
    round_duration,
    unfingerprintable_reason,
)
from trackdeleter.models import Track


def make_track(path: str = "/music/a.mp3", **kwargs) -> Track:
    defaults = dict(
        title="Song", artist="Artist", album="Album", duration=200.0, size=1000
    )
    defaults.update(kwargs)
    return Track(path=Path(path), **defaults)


class TestNormalize:
    """Test tag normalization."""

    def test_case_and_whitespace(self) -> None:
        assert normalize("  Hello   World ") == "hello world"
        assert normalize("A\tB\nC") == "a b c"

    def test_empty(self) -> None:
        assert normalize("") == ""
        assert normalize(None) == ""
        assert normalize("   ") == ""


class TestRoundDuration:
    """Test duration rounding."""

    def test_round_half_up(self) -> None:
        assert round_duration(200.5) == 201
        assert round_duration(200.49) == 200
        assert round_duration(201.5) == 202


class TestFingerprint:
    """Test key derivation."""

    def test_tag_normalization(self) -> None:
        """Test that case and spacing differences produce one key."""
        a = fingerprint(make_track(title="Hey  Jude", artist="The Beatles"))
        b = fingerprint(make_track(title=" hey jude", artist="THE BEATLES"))
        assert a.primary == b.primary
        assert a.fallback is False

    def test_fallback_for_untagged(self) -> None:
        """Test that untagged files key on filename, duration and size."""
        key = fingerprint(
            make_track("/music/Track01.mp3", title="", artist="", album="")
        )
        assert key.fallback is True
        assert "track01" in key.primary
        assert "200" in key.primary
        assert "1000" in key.primary

    def test_untagged_never_matches_tagged(self) -> None:
        """Test that fallback keys cannot collide with tag keys."""
        untagged = fingerprint(
            make_track("/music/song.mp3", title="", artist="", album="")
        )
        tagged = fingerprint(make_track(title="song", artist="", album=""))
        assert untagged.primary != tagged.primary

    def test_partial_tags_use_primary_key(self) -> None:
        """Test that a single non-empty tag is enough for a tag key."""
        key = fingerprint(make_track(title="Only title", artist="", album=""))
        assert key.fallback is False
        assert key.primary == ("only title", "", "")

    @pytest.mark.parametrize("duration", [0.0, -1.0, math.nan, math.inf])
    def test_unusable_duration(self, duration: float) -> None:
        """Test that tracks without a usable duration are rejected."""
        track = make_track(duration=duration)
        assert is_fingerprintable(track) is False
        with pytest.raises(UnfingerprintableTrack):
            fingerprint(track)

    def test_content_mode_requires_hash(self) -> None:
        track = make_track()
        assert unfingerprintable_reason(track, MatchMode.CONTENT) == "no content hash"
        assert is_fingerprintable(track, MatchMode.METADATA) is True


class TestConfirms:
    """Test secondary discriminators per match mode."""

    def test_metadata_within_tolerance(self) -> None:
        a = fingerprint(make_track(duration=200.2))
        b = fingerprint(make_track(duration=201.0))
        c = fingerprint(make_track(duration=202.6))
        assert confirms(a, b) is True
        assert confirms(a, c) is False
        assert confirms(a, c, tolerance=3) is True

    def test_zero_tolerance(self) -> None:
        a = fingerprint(make_track(duration=200.2))
        b = fingerprint(make_track(duration=200.4))
        c = fingerprint(make_track(duration=200.6))
        assert confirms(a, b, tolerance=0) is True
        assert confirms(a, c, tolerance=0) is False

    def test_strict_requires_equal_size(self) -> None:
        a = fingerprint(make_track(size=1000))
        b = fingerprint(make_track(size=1001))
        assert confirms(a, b, MatchMode.METADATA) is True
        assert confirms(a, b, MatchMode.STRICT) is False

    def test_content_requires_equal_hash(self) -> None:
        a = fingerprint(make_track(content_hash="aa", duration=200))
        b = fingerprint(make_track(content_hash="aa", duration=260))
        c = fingerprint(make_track(content_hash="bb"))
        assert confirms(a, b, MatchMode.CONTENT) is True
        assert confirms(a, c, MatchMode.CONTENT) is False

    def test_different_primary_never_confirms(self) -> None:
        a = fingerprint(make_track(title="One"))
        b = fingerprint(make_track(title="Two"))
        assert confirms(a, b) is False
