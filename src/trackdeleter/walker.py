"""Directory traversal for audio file discovery."""

import logging
import os
import threading
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Tuple, Union

from .errors import DirectoryReadError, RootPathError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = frozenset({"mp3", "wav", "flac", "m4a"})

# Staged (reversibly deleted) files must never be rescanned as library tracks
STAGING_DIR_NAME = ".deletedByTrackdeleter"


def normalize_extensions(extensions: Iterable[str]) -> frozenset:
    """Lowercase extensions and drop leading dots ('.MP3' -> 'mp3')."""
    return frozenset(ext.lower().lstrip(".") for ext in extensions if ext.strip("."))


class FileTreeWalker:
    """
    Enumerate audio files below a root directory.

    Iterating the walker performs a fresh walk each time, so the same walker
    can be reused after the filesystem changes. Directory entries are visited
    in sorted order. Directories that cannot be listed are recorded in
    ``errors`` and skipped; the walk carries on with their siblings.
    """

    def __init__(
        self,
        root: Union[str, Path],
        recurse: bool = True,
        extensions: Optional[Iterable[str]] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize walker.

        Args:
            root: Directory to scan
            recurse: Descend into subfolders (default: True)
            extensions: Allowed file extensions, case-insensitive
                (default: mp3, wav, flac, m4a)
            stop_event: Set by the caller to stop the walk between entries
        """
        self.root = Path(root).expanduser().absolute()
        self.recurse = recurse
        self.extensions = normalize_extensions(
            extensions if extensions is not None else DEFAULT_EXTENSIONS
        )
        self.stop_event = stop_event
        self.errors: List[DirectoryReadError] = []
        self.cancelled = False

    def __iter__(self) -> Iterator[Path]:
        return self.walk()

    def is_audio_file(self, path: Path) -> bool:
        """Check if file has an allowed audio extension."""
        return path.suffix.lower().lstrip(".") in self.extensions

    def check_root(self) -> Tuple[int, int]:
        """
        Validate the root directory.

        Returns:
            (st_dev, st_ino) identity of the root

        Raises:
            RootPathError: If the root is missing, not a directory or unreadable
        """
        try:
            st = os.stat(self.root)
        except FileNotFoundError:
            raise RootPathError(self.root, "path does not exist") from None
        except OSError as e:
            raise RootPathError(self.root, e.strerror or str(e)) from e

        if not self.root.is_dir():
            raise RootPathError(self.root, "not a directory")
        if not os.access(self.root, os.R_OK | os.X_OK):
            raise RootPathError(self.root, "permission denied")

        return (st.st_dev, st.st_ino)

    def walk(self) -> Iterator[Path]:
        """
        Yield absolute paths of matching audio files.

        Raises:
            RootPathError: Before the first item, if the root is unusable
        """
        root_id = self.check_root()
        self.errors = []
        self.cancelled = False
        visited: Set[Tuple[int, int]] = {root_id}
        pending: List[Path] = [self.root]

        while pending:
            directory = pending.pop()
            subdirs: List[Path] = []

            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                self._record_error(directory, e)
                continue

            for entry in entries:
                if self._should_stop():
                    return

                path = Path(entry.path)
                try:
                    is_dir = entry.is_dir()
                    is_file = (
                        not is_dir and entry.is_file() and not entry.is_symlink()
                    )
                except OSError as e:
                    logger.debug("Cannot stat %s: %s", path, e)
                    continue

                if is_dir:
                    if not self.recurse or entry.name == STAGING_DIR_NAME:
                        continue
                    identity = self._identity(path)
                    if identity is None:
                        continue
                    if identity in visited:
                        logger.debug("Skipping already visited directory %s", path)
                        continue
                    visited.add(identity)
                    subdirs.append(path)
                elif is_file and self.is_audio_file(path):
                    yield path

            # Reverse so the stack pops subdirectories in sorted order
            pending.extend(reversed(subdirs))

    def _identity(self, path: Path) -> Optional[Tuple[int, int]]:
        try:
            st = os.stat(path)
        except OSError as e:
            self._record_error(path, e)
            return None
        return (st.st_dev, st.st_ino)

    def _record_error(self, directory: Path, error: OSError) -> None:
        err = DirectoryReadError(directory, error.strerror or str(error))
        self.errors.append(err)
        logger.warning("%s", err)

    def _should_stop(self) -> bool:
        if self.stop_event is not None and self.stop_event.is_set():
            if not self.cancelled:
                logger.info("Walk of %s cancelled", self.root)
            self.cancelled = True
            return True
        return False
