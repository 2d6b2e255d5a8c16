"""Scan stage: walk a library and extract metadata in parallel."""

import logging
import os
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Iterable, Optional, Set, Tuple

from .errors import ExtractionError
from .extractor import MetadataExtractor
from .models import ScanResult, Track
from .walker import FileTreeWalker

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def default_workers() -> int:
    """Worker count proportional to available cores."""
    return min(32, os.cpu_count() or 1)


class LibraryScanner:
    """
    Runs the walker and the metadata extractor over a library.

    Extraction is spread over a bounded thread pool. The returned ScanResult
    is only produced once every submitted file has finished, so grouping
    always sees the complete set of tracks.
    """

    def __init__(
        self,
        walker: FileTreeWalker,
        extractor: MetadataExtractor,
        max_workers: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        """
        Initialize scanner.

        Args:
            walker: Source of audio file paths
            extractor: Metadata extractor applied to each path
            max_workers: Extraction threads (default: CPU count, 1 = sequential)
            stop_event: Cooperative cancellation signal, shared with the walker
            progress: Called with (files_done, files_found) after each file
        """
        self.walker = walker
        self.extractor = extractor
        self.max_workers = max_workers or default_workers()
        self.stop_event = stop_event or walker.stop_event or threading.Event()
        if walker.stop_event is None:
            walker.stop_event = self.stop_event
        self.progress = progress

    def scan(self) -> ScanResult:
        """
        Walk the library and extract every matching file.

        Returns:
            ScanResult with tracks sorted by path

        Raises:
            RootPathError: If the walker's root is unusable
        """
        result = ScanResult()
        lock = threading.Lock()
        logger.info("Scanning %s (recurse=%s)", self.walker.root, self.walker.recurse)

        if self.max_workers > 1:
            self._scan_parallel(result, lock)
        else:
            self._scan_sequential(result, lock)

        result.tracks.sort(key=lambda t: str(t.path))
        result.directory_errors = list(self.walker.errors)
        result.cancelled = self.stop_event.is_set()

        logger.info(
            "Scan finished: %d track(s), %d unreadable file(s), "
            "%d unreadable folder(s)%s",
            len(result.tracks),
            len(result.extraction_errors),
            len(result.directory_errors),
            " (cancelled)" if result.cancelled else "",
        )
        return result

    def _record(
        self,
        result: ScanResult,
        lock: threading.Lock,
        track: Optional[Track],
        error: Optional[ExtractionError],
    ) -> None:
        with lock:
            if track is not None:
                result.tracks.append(track)
            elif error is not None:
                result.extraction_errors.append(error)

    def _scan_sequential(self, result: ScanResult, lock: threading.Lock) -> None:
        found = 0
        for path in self.walker:
            if self.stop_event.is_set():
                break
            found += 1
            track, error = self._run_unit(path)
            self._record(result, lock, track, error)
            self._report(found, found)

    def _scan_parallel(self, result: ScanResult, lock: threading.Lock) -> None:
        found = 0
        done = 0
        pending: Set[Future] = set()

        def collect(finished: Set[Future]) -> None:
            nonlocal done
            for future in finished:
                if future.cancelled():
                    continue
                track, error = future.result()
                self._record(result, lock, track, error)
                done += 1
                self._report(done, found)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for path in self.walker:
                if self.stop_event.is_set():
                    break
                found += 1
                future = executor.submit(self._run_unit, path)
                pending.add(future)

                # Bound the number of queued paths to keep memory flat
                if len(pending) >= self.max_workers * 4:
                    finished, pending = wait(pending, return_when=FIRST_COMPLETED)
                    collect(finished)

            if self.stop_event.is_set():
                for future in pending:
                    future.cancel()

            finished, _ = wait(pending)
            collect(finished)

    def _run_unit(
        self, path: Path
    ) -> Tuple[Optional[Track], Optional[ExtractionError]]:
        """Extract one file; errors become values so the pool never raises."""
        if self.stop_event.is_set():
            return None, None
        try:
            return self.extractor.extract(path), None
        except ExtractionError as e:
            logger.warning("%s", e)
            return None, e
        except OSError as e:
            error = ExtractionError(path, e.strerror or str(e))
            logger.warning("%s", error)
            return None, error

    def _report(self, done: int, found: int) -> None:
        if self.progress is not None:
            self.progress(done, found)


def scan_library(
    root: Path,
    recurse: bool = True,
    extensions: Optional[Iterable[str]] = None,
    extractor: Optional[MetadataExtractor] = None,
    max_workers: Optional[int] = None,
    stop_event: Optional[threading.Event] = None,
) -> ScanResult:
    """Convenience wrapper: build a walker and scanner and run one scan."""
    walker = FileTreeWalker(
        root, recurse=recurse, extensions=extensions, stop_event=stop_event
    )
    scanner = LibraryScanner(
        walker,
        extractor or MetadataExtractor(),
        max_workers=max_workers,
        stop_event=stop_event,
    )
    return scanner.scan()
