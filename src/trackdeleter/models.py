"""Data types shared by the scanner, grouping engine and deletion executor."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import DirectoryReadError, ExtractionError, PlanStateError

LOSSLESS_FORMATS = {"flac", "wav", "alac", "ape", "wv", "aiff"}


@dataclass(frozen=True)
class Track:
    """One discovered audio file with its extracted metadata.

    Identity is the absolute path. Bitrate is in kbps, or None when unknown.
    """

    path: Path
    title: str = ""
    artist: str = ""
    album: str = ""
    duration: float = 0.0
    format: str = ""
    size: int = 0
    sample_rate: int = 0
    bitrate: Optional[int] = None
    mtime: int = 0
    content_hash: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def is_lossless(self) -> bool:
        return self.format in LOSSLESS_FORMATS

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "path": str(self.path),
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration,
            "format": self.format,
            "size": self.size,
            "sample_rate": self.sample_rate,
            "bitrate": self.bitrate,
            "mtime": self.mtime,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        """Build a Track from a dictionary produced by to_dict()."""
        bitrate = data.get("bitrate")
        return cls(
            path=Path(data["path"]),
            title=data.get("title") or "",
            artist=data.get("artist") or "",
            album=data.get("album") or "",
            duration=float(data.get("duration") or 0.0),
            format=data.get("format") or "",
            size=int(data.get("size") or 0),
            sample_rate=int(data.get("sample_rate") or 0),
            bitrate=int(bitrate) if bitrate is not None else None,
            mtime=int(data.get("mtime") or 0),
            content_hash=data.get("content_hash"),
        )

    def rule_fields(self) -> Dict[str, Any]:
        """Fields exposed to protection rules."""
        fields = self.to_dict()
        fields["filename"] = self.filename
        fields["is_lossless"] = self.is_lossless
        return fields


@dataclass(frozen=True)
class FingerprintKey:
    """Duplicate-detection key derived from a Track.

    Tracks sharing ``primary`` are candidate duplicates; the remaining fields
    are the secondary discriminators used to confirm them.
    """

    primary: Tuple[str, ...]
    duration: int
    size: int
    content_hash: Optional[str] = None
    fallback: bool = False


@dataclass(frozen=True)
class DuplicateGroup:
    """Two or more tracks judged duplicates, with exactly one keeper."""

    key: FingerprintKey
    keeper: Track
    redundant: Tuple[Track, ...]

    def __post_init__(self) -> None:
        if not self.redundant:
            raise ValueError("A duplicate group needs at least two tracks")

    @property
    def tracks(self) -> Tuple[Track, ...]:
        return (self.keeper,) + self.redundant

    @property
    def reclaimable_bytes(self) -> int:
        return sum(track.size for track in self.redundant)


class PlanStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    EXECUTED = "executed"
    PARTIALLY_EXECUTED = "partially_executed"
    FAILED = "failed"


FINAL_STATUSES = {
    PlanStatus.EXECUTED,
    PlanStatus.PARTIALLY_EXECUTED,
    PlanStatus.FAILED,
}


class ExecutionMode(str, Enum):
    DRY_RUN = "dry_run"
    COMMIT = "commit"


class Outcome(str, Enum):
    DELETED = "deleted"
    WOULD_DELETE = "would_delete"
    ALREADY_ABSENT = "already_absent"
    SKIPPED = "skipped"
    FAILED = "failed"


SUCCESS_OUTCOMES = {Outcome.DELETED, Outcome.WOULD_DELETE, Outcome.ALREADY_ABSENT}


@dataclass(frozen=True)
class PlanEntry:
    """A redundant track scheduled for deletion."""

    track: Track
    keeper_path: Path
    action: str = "delete"


@dataclass(frozen=True)
class ProtectedEntry:
    """A redundant track a protection rule kept out of the plan."""

    track: Track
    keeper_path: Path
    rule: str


@dataclass
class DeletionPlan:
    """Ordered deletions proposed for review.

    Lifecycle: DRAFT -> CONFIRMED -> EXECUTED / PARTIALLY_EXECUTED / FAILED.
    A plan in a final status cannot be confirmed or executed again.
    """

    entries: Tuple[PlanEntry, ...] = ()
    protected: Tuple[ProtectedEntry, ...] = ()
    status: PlanStatus = PlanStatus.DRAFT
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    root: Optional[Path] = None  # library root the plan was built from

    def __post_init__(self) -> None:
        seen = set()
        for entry in self.entries:
            if entry.track.path in seen:
                raise ValueError(f"Duplicate plan entry for {entry.track.path}")
            seen.add(entry.track.path)

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES

    @property
    def total_bytes(self) -> int:
        return sum(entry.track.size for entry in self.entries)

    def confirm(self) -> None:
        """Mark the plan as approved for execution."""
        if self.status != PlanStatus.DRAFT:
            raise PlanStateError(
                f"Only a draft plan can be confirmed (status: {self.status.value})"
            )
        self.status = PlanStatus.CONFIRMED

    def finish(self, status: PlanStatus) -> None:
        """Record the result of a committed execution."""
        if status not in FINAL_STATUSES:
            raise ValueError(f"Not a final status: {status}")
        if self.status != PlanStatus.CONFIRMED:
            raise PlanStateError(
                f"Plan must be confirmed before execution (status: "
                f"{self.status.value})"
            )
        self.status = status


@dataclass(frozen=True)
class EntryResult:
    """Outcome of one plan entry."""

    path: Path
    outcome: Outcome
    reason: str = ""
    freed_bytes: int = 0

    @property
    def succeeded(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES


@dataclass
class DeletionReport:
    """Per-track outcomes and totals of one executor run."""

    mode: ExecutionMode
    status: PlanStatus
    results: List[EntryResult] = field(default_factory=list)
    batch_id: Optional[str] = None

    def count(self, outcome: Outcome) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def deleted(self) -> int:
        return self.count(Outcome.DELETED)

    @property
    def would_delete(self) -> int:
        return self.count(Outcome.WOULD_DELETE)

    @property
    def already_absent(self) -> int:
        return self.count(Outcome.ALREADY_ABSENT)

    @property
    def skipped(self) -> int:
        return self.count(Outcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(Outcome.FAILED)

    @property
    def freed_bytes(self) -> int:
        return sum(result.freed_bytes for result in self.results)

    def summary(self) -> Dict[str, int]:
        return {
            "deleted": self.deleted,
            "would_delete": self.would_delete,
            "already_absent": self.already_absent,
            "skipped": self.skipped,
            "failed": self.failed,
            "freed_bytes": self.freed_bytes,
        }


@dataclass
class ScanResult:
    """Everything the scan stage hands to grouping and to the caller."""

    tracks: List[Track] = field(default_factory=list)
    directory_errors: List[DirectoryReadError] = field(default_factory=list)
    extraction_errors: List[ExtractionError] = field(default_factory=list)
    cancelled: bool = False
