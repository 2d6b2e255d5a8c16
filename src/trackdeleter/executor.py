"""Apply a deletion plan to the filesystem and report per-file outcomes."""

import errno
import logging
import os
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional

from .errors import (
    DeletionError,
    KeeperConflictError,
    PlanStateError,
    StaleStateError,
)
from .models import (
    DeletionPlan,
    DeletionReport,
    EntryResult,
    ExecutionMode,
    Outcome,
    PlanEntry,
    PlanStatus,
)
from .staging import StagingManager

logger = logging.getLogger(__name__)

STALE_STATE = "StaleState"
PERMISSION_DENIED = "PermissionDenied"
FILE_IN_USE = "FileInUse"
CANCELLED = "Cancelled"
KEEPER_MISSING = "KeeperMissing"
SAME_FILE_AS_KEEPER = "SameFileAsKeeper"


def _reason_for(error: OSError) -> str:
    if isinstance(error, PermissionError):
        return PERMISSION_DENIED
    if error.errno in (errno.EBUSY, errno.ETXTBSY):
        return FILE_IN_USE
    return error.strerror or str(error)


class DeletionExecutor:
    """
    Executes deletion plans.

    DRY_RUN verifies every entry and reports what would happen without
    touching the filesystem. COMMIT verifies and deletes (or stages) each entry.
    A failing entry never stops the others, and nothing is retried.
    """

    def __init__(
        self,
        max_workers: int = 4,
        stop_event: Optional[threading.Event] = None,
        staging: Optional[StagingManager] = None,
    ):
        """
        Initialize executor.

        Args:
            max_workers: Concurrent deletions (1 = sequential)
            stop_event: Cooperative cancellation, checked before each entry
            staging: Move files into this staging batch instead of unlinking
        """
        self.max_workers = max(1, max_workers)
        self.stop_event = stop_event or threading.Event()
        self.staging = staging
        self._path_locks: Dict[Path, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def execute(
        self, plan: DeletionPlan, mode: ExecutionMode = ExecutionMode.DRY_RUN
    ) -> DeletionReport:
        """
        Run a plan.

        Args:
            plan: Plan to run; COMMIT requires a CONFIRMED plan
            mode: DRY_RUN or COMMIT

        Returns:
            DeletionReport with one result per plan entry (in plan order),
            followed by SKIPPED results for protected tracks. For DRY_RUN the
            status is the one a commit would reach; the plan is left untouched.

        Raises:
            PlanStateError: If the plan is not in a runnable state
        """
        mode = ExecutionMode(mode)
        if plan.is_final:
            raise PlanStateError(
                f"Plan was already executed (status: {plan.status.value})"
            )
        if mode == ExecutionMode.COMMIT and plan.status != PlanStatus.CONFIRMED:
            raise PlanStateError("Plan must be confirmed before committing")

        logger.info(
            "%s: %d deletion(s) planned",
            "Dry run" if mode == ExecutionMode.DRY_RUN else "Executing",
            len(plan.entries),
        )

        results = self._run_entries(list(plan.entries), mode)
        results.extend(
            EntryResult(
                path=entry.track.path,
                outcome=Outcome.SKIPPED,
                reason=f"Protected: {entry.rule}",
            )
            for entry in plan.protected
        )

        status = self._final_status(results[: len(plan.entries)])
        report = DeletionReport(mode=mode, status=status, results=results)

        if mode == ExecutionMode.COMMIT:
            plan.finish(status)
            if self.staging is not None:
                self.staging.finalize()
                if report.deleted:
                    report.batch_id = self.staging.batch_id

        logger.info(
            "Finished (%s): %d deleted, %d would delete, %d already absent, "
            "%d skipped, %d failed",
            status.value,
            report.deleted,
            report.would_delete,
            report.already_absent,
            report.skipped,
            report.failed,
        )
        return report

    def _run_entries(
        self, entries: List[PlanEntry], mode: ExecutionMode
    ) -> List[EntryResult]:
        results: List[Optional[EntryResult]] = [None] * len(entries)
        lock = threading.Lock()

        def run(index: int, entry: PlanEntry) -> None:
            if self.stop_event.is_set():
                result = EntryResult(entry.track.path, Outcome.SKIPPED, CANCELLED)
            else:
                result = self._run_entry(entry, mode)
            with lock:
                results[index] = result

        if self.max_workers > 1 and len(entries) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = [
                    pool.submit(run, index, entry)
                    for index, entry in enumerate(entries)
                ]
                for future in futures:
                    future.result()
        else:
            for index, entry in enumerate(entries):
                run(index, entry)

        return [result for result in results if result is not None]

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            return self._path_locks[path]

    def _run_entry(self, entry: PlanEntry, mode: ExecutionMode) -> EntryResult:
        """Verify and delete one entry. Every error becomes a result."""
        path = entry.track.path

        with self._lock_for(path):
            try:
                self.verify(entry)
            except FileNotFoundError:
                logger.info("Already absent: %s", path)
                return EntryResult(path, Outcome.ALREADY_ABSENT)
            except StaleStateError as e:
                logger.warning("%s", e)
                return EntryResult(path, Outcome.FAILED, STALE_STATE)
            except KeeperConflictError as e:
                logger.warning("%s", e)
                return EntryResult(path, Outcome.FAILED, e.reason)
            except OSError as e:
                logger.warning("Cannot check %s: %s", path, e)
                return EntryResult(path, Outcome.FAILED, _reason_for(e))

            if mode == ExecutionMode.DRY_RUN:
                return EntryResult(
                    path, Outcome.WOULD_DELETE, freed_bytes=entry.track.size
                )

            try:
                freed = self.delete(entry)
            except FileNotFoundError:
                logger.info("Already absent: %s", path)
                return EntryResult(path, Outcome.ALREADY_ABSENT)
            except DeletionError as e:
                logger.warning("%s", e)
                return EntryResult(path, Outcome.FAILED, e.reason)

            logger.info("Deleted %s", path)
            return EntryResult(path, Outcome.DELETED, freed_bytes=freed)

    @staticmethod
    def verify(entry: PlanEntry) -> None:
        """
        Check that the file still matches what was scanned
        and that its keeper is still there as a separate file.

        Raises:
            FileNotFoundError: If the file is gone
            StaleStateError: If it is no longer a regular file of the scanned size
            KeeperConflictError: If the keeper is gone or is the same file
        """
        st = os.stat(entry.track.path)
        if not os.path.isfile(entry.track.path) or st.st_size != entry.track.size:
            raise StaleStateError(entry.track.path, entry.track.size, st.st_size)
        try:
            same = os.path.samefile(entry.track.path, entry.keeper_path)
        except FileNotFoundError:
            raise KeeperConflictError(
                entry.track.path, entry.keeper_path, KEEPER_MISSING
            ) from None
        if same:
            raise KeeperConflictError(
                entry.track.path, entry.keeper_path, SAME_FILE_AS_KEEPER
            )

    def delete(self, entry: PlanEntry) -> int:
        """
        Remove one file (unlink, or move into staging).

        Returns:
            Bytes freed

        Raises:
            FileNotFoundError: If the file vanished before removal
            DeletionError: For any other filesystem error
        """
        try:
            if self.staging is not None:
                return self.staging.stage_track(entry.track, entry.keeper_path)
            os.unlink(entry.track.path)
            return entry.track.size
        except FileNotFoundError:
            raise
        except OSError as e:
            raise DeletionError(entry.track.path, _reason_for(e), e) from e

    @staticmethod
    def _final_status(results: List[EntryResult]) -> PlanStatus:
        if not results:
            return PlanStatus.EXECUTED
        succeeded = sum(1 for r in results if r.succeeded)
        if succeeded == len(results):
            return PlanStatus.EXECUTED
        if succeeded == 0:
            return PlanStatus.FAILED
        return PlanStatus.PARTIALLY_EXECUTED
