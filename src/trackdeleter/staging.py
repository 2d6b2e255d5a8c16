"""Staging folder management for reversible deletion."""

import json
import logging
import shutil
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .extractor import compute_sha256
from .models import Track
from .walker import STAGING_DIR_NAME

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
MANIFEST_MARKER = "_trackdeleter_manifest"


class StagingManager:
    """
    Moves redundant tracks into a staging batch instead of unlinking them.

    Files go to <library parent>/.deletedByTrackdeleter/TIMESTAMP/ with a UUID
    prefix to avoid name collisions. Each batch has a manifest.json recording
    original paths and SHA256 hashes for restoration.
    """

    def __init__(self, scan_path: Path, command: str = ""):
        """
        Initialize staging manager for a library root.

        Args:
            scan_path: Library root (determines staging location)
            command: Command that triggered deletion (for manifest)
        """
        self.scan_path = scan_path.resolve()
        self.staging_base = self.get_staging_base(self.scan_path)
        self.batch_id = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        self.batch_dir = self.staging_base / self.batch_id
        self.command = command
        self.created_timestamp = datetime.now().isoformat()
        self._lock = threading.Lock()
        self.manifest: Dict[str, Any] = {
            MANIFEST_MARKER: {
                "format_version": "1.0",
                "created_at": self.created_timestamp,
                "created_with_version": __version__,
                "manifest_location": str(self.batch_dir / MANIFEST_NAME),
            },
            "deletion_batch": {
                "id": f"batch_{self.batch_id}",
                "timestamp": self.created_timestamp,
                "command": command,
                "deleted_items": [],
                "total_items_deleted": 0,
                "space_freed_bytes": 0,
            },
        }

    @staticmethod
    def get_staging_base(scan_path: Path) -> Path:
        """
        Staging lives next to the library root so moves stay on one filesystem
        (a rename, not a copy).
        """
        root = scan_path.parent if scan_path.is_dir() else scan_path.parent.parent
        return root / STAGING_DIR_NAME

    def stage_track(self, track: Track, keeper_path: Optional[Path] = None) -> int:
        """
        Move one track into the staging batch.

        Args:
            track: Track to stage
            keeper_path: Path of the kept duplicate (for the manifest)

        Returns:
            Bytes moved out of the library

        Raises:
            OSError: If the file cannot be hashed or moved
        """
        self.batch_dir.mkdir(parents=True, exist_ok=True)

        sha256 = compute_sha256(track.path)
        staged_filename = f"{uuid.uuid4().hex[:8]}-{track.path.name}"
        staged_path = self.batch_dir / staged_filename

        shutil.move(str(track.path), str(staged_path))
        size = staged_path.stat().st_size
        logger.debug("Staged %s as %s", track.path, staged_filename)

        with self._lock:
            batch = self.manifest["deletion_batch"]
            batch["deleted_items"].append(
                {
                    "type": "track",
                    "original_path": str(track.path),
                    "staged_filename": staged_filename,
                    "size_bytes": size,
                    "sha256": sha256,
                    "duplicate_of": str(keeper_path) if keeper_path else None,
                    "title": track.title,
                    "artist": track.artist,
                    "album": track.album,
                }
            )
            batch["total_items_deleted"] += 1
            batch["space_freed_bytes"] += size

        return size

    def finalize(self) -> Dict[str, Any]:
        """
        Write manifest and finish staging.

        Returns:
            Manifest dictionary with deletion statistics
        """
        with self._lock:
            if self.manifest["deletion_batch"]["total_items_deleted"] == 0:
                # Nothing was staged, don't create empty batch
                return self.manifest

            manifest_path = self.batch_dir / MANIFEST_NAME
            with open(manifest_path, "w") as f:
                json.dump(self.manifest, f, indent=2)

            # Read-only to prevent accidental modification
            manifest_path.chmod(0o444)
            logger.info(
                "Staged %d file(s) in %s",
                self.manifest["deletion_batch"]["total_items_deleted"],
                self.batch_dir,
            )
            return self.manifest

    @staticmethod
    def list_batches(staging_base: Path) -> List[Dict[str, Any]]:
        """
        List all deletion batches in a staging directory.

        Returns:
            Batch info dictionaries, oldest first
        """
        batches: List[Dict[str, Any]] = []
        if not staging_base.exists():
            return batches

        for batch_dir in sorted(staging_base.iterdir()):
            manifest_path = batch_dir / MANIFEST_NAME
            if not batch_dir.is_dir() or not manifest_path.exists():
                continue

            try:
                with open(manifest_path) as f:
                    manifest = json.load(f)
                batch_info = manifest["deletion_batch"]
            except (json.JSONDecodeError, KeyError, OSError) as e:
                logger.warning("Skipping invalid manifest %s: %s", manifest_path, e)
                continue

            batch_info["staging_path"] = str(batch_dir)
            batches.append(batch_info)

        return batches

    @staticmethod
    def restore_batch(
        batch_id: str, staging_base: Path, restore_to: Optional[Path] = None
    ) -> int:
        """
        Restore all tracks from a deletion batch.

        Args:
            batch_id: Batch directory name (e.g., "2025-10-02_15-30-45")
            staging_base: Staging directory containing the batch
            restore_to: Restore into this directory instead of original paths

        Returns:
            Number of tracks restored

        Raises:
            FileNotFoundError: If batch or manifest not found
            ValueError: If a staged file fails SHA256 verification
        """
        batch_dir = staging_base / batch_id.replace("batch_", "", 1)
        manifest_path = batch_dir / MANIFEST_NAME
        if not manifest_path.exists():
            raise FileNotFoundError(f"Batch not found: {batch_id}")

        with open(manifest_path) as f:
            manifest = json.load(f)
        if MANIFEST_MARKER not in manifest:
            raise ValueError(f"Not a trackdeleter manifest: {manifest_path}")

        restored = 0
        for item in manifest["deletion_batch"]["deleted_items"]:
            if item.get("type") == "track":
                if StagingManager._restore_track(item, batch_dir, restore_to):
                    restored += 1

        shutil.rmtree(batch_dir)
        logger.info("Restored %d file(s) from batch %s", restored, batch_id)
        return restored

    @staticmethod
    def _restore_track(
        item: Dict[str, Any], batch_dir: Path, restore_to: Optional[Path]
    ) -> bool:
        staged_file = batch_dir / item["staged_filename"]
        original = Path(item["original_path"])
        target = restore_to / original.name if restore_to else original

        if not staged_file.exists():
            logger.warning("Staged file missing, cannot restore: %s", staged_file)
            return False

        computed = compute_sha256(staged_file)
        if "sha256" in item and computed != item["sha256"]:
            raise ValueError(
                f"SHA256 mismatch for {staged_file.name}\n"
                f"Expected: {item['sha256']}\n"
                f"Computed: {computed}\n"
                f"File may be corrupted or tampered with"
            )

        if target.exists():
            raise FileExistsError(f"Refusing to overwrite existing file: {target}")

        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(staged_file), str(target))
        return True

    @staticmethod
    def empty_batches(
        staging_base: Path,
        older_than_days: Optional[int] = None,
        keep_last: Optional[int] = None,
    ) -> int:
        """
        Permanently delete staging batches.

        Args:
            staging_base: Staging directory
            older_than_days: Only delete batches older than N days
            keep_last: Keep the N most recent batches

        Returns:
            Number of batches deleted
        """
        batches = StagingManager.list_batches(staging_base)
        batches.sort(key=lambda b: b["timestamp"], reverse=True)

        deleted_count = 0
        for idx, batch in enumerate(batches):
            if keep_last and idx < keep_last:
                continue

            if older_than_days:
                batch_time = datetime.fromisoformat(batch["timestamp"])
                if (datetime.now() - batch_time).days < older_than_days:
                    continue

            staging_path = Path(batch["staging_path"])
            if staging_path.exists():
                # Manifest is read-only; make the tree removable first
                (staging_path / MANIFEST_NAME).chmod(0o644)
                shutil.rmtree(staging_path)
                deleted_count += 1

        return deleted_count
