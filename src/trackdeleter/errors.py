"""Exception types raised across the scan, grouping and deletion pipeline."""

from pathlib import Path
from typing import Optional


class TrackDeleterError(Exception):
    """Base class for all trackdeleter errors."""


class ConfigError(TrackDeleterError):
    """Invalid configuration file or value."""


class RootPathError(TrackDeleterError):
    """Scan root is missing, not a directory, or unreadable. Fatal to a scan."""

    def __init__(self, root: Path, reason: str):
        super().__init__(f"Cannot scan {root}: {reason}")
        self.root = root
        self.reason = reason


class DirectoryReadError(TrackDeleterError):
    """A directory below the root could not be listed. The scan continues."""

    def __init__(self, directory: Path, reason: str):
        super().__init__(f"Cannot read directory {directory}: {reason}")
        self.directory = directory
        self.reason = reason


class ExtractionError(TrackDeleterError):
    """Metadata could not be read from a file. The file is skipped."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Cannot extract metadata from {path}: {reason}")
        self.path = path
        self.reason = reason


class UnfingerprintableTrack(TrackDeleterError):
    """Track has no usable duration (or content hash) to build a fingerprint.

    Not a failure of the scan: such tracks are reported separately and never
    take part in grouping.
    """

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Cannot fingerprint {path}: {reason}")
        self.path = path
        self.reason = reason


class StaleStateError(TrackDeleterError):
    """File changed between scan and deletion."""

    def __init__(self, path: Path, expected_size: int, actual_size: int):
        super().__init__(
            f"{path} changed since scan (size {expected_size} -> {actual_size})"
        )
        self.path = path
        self.expected_size = expected_size
        self.actual_size = actual_size


class DeletionError(TrackDeleterError):
    """A single file could not be deleted."""

    def __init__(self, path: Path, reason: str, cause: Optional[OSError] = None):
        super().__init__(f"Cannot delete {path}: {reason}")
        self.path = path
        self.reason = reason
        self.cause = cause


class PlanStateError(TrackDeleterError):
    """Operation not allowed in the plan's current lifecycle state."""


class KeeperConflictError(TrackDeleterError):
    """The keeper of a plan entry is gone, or is the entry's own file."""

    def __init__(self, path: Path, keeper: Path, reason: str):
        super().__init__(f"Refusing to delete {path} (keeper {keeper}): {reason}")
        self.path = path
        self.keeper = keeper
        self.reason = reason
