"""Save, load and export deletion plans so they can be applied without rescanning."""

import csv
import json
from pathlib import Path
from typing import IO, Any, Dict, List

from . import __version__
from .models import (
    DeletionPlan,
    DuplicateGroup,
    PlanEntry,
    PlanStatus,
    ProtectedEntry,
    Track,
)

PLAN_FORMAT = "trackdeleter-plan"
PLAN_FORMAT_VERSION = 1

CSV_COLUMNS = [
    "group_id",
    "is_keeper",
    "path",
    "title",
    "artist",
    "album",
    "duration",
    "format",
    "size_bytes",
    "sample_rate",
    "bitrate_kbps",
]


class PlanFile:
    """Read and write deletion plans as JSON."""

    @staticmethod
    def to_dict(plan: DeletionPlan) -> Dict[str, Any]:
        return {
            "format": PLAN_FORMAT,
            "format_version": PLAN_FORMAT_VERSION,
            "created_with_version": __version__,
            "created_at": plan.created_at,
            "status": plan.status.value,
            "root": str(plan.root) if plan.root is not None else None,
            "entries": [
                {
                    "action": entry.action,
                    "keeper_path": str(entry.keeper_path),
                    "track": entry.track.to_dict(),
                }
                for entry in plan.entries
            ],
            "protected": [
                {
                    "rule": entry.rule,
                    "keeper_path": str(entry.keeper_path),
                    "track": entry.track.to_dict(),
                }
                for entry in plan.protected
            ],
        }

    @staticmethod
    def save(plan: DeletionPlan, path: Path) -> None:
        """Write a plan to a JSON file."""
        with open(path, "w") as f:
            json.dump(PlanFile.to_dict(plan), f, indent=2)

    @staticmethod
    def load(path: Path) -> DeletionPlan:
        """
        Load a plan written by save().

        The loaded plan is always a DRAFT: it must be reviewed and confirmed
        again before it can be committed.

        Raises:
            ValueError: If the file is not a valid plan
        """
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid plan file {path}: {e}") from e

        if not isinstance(data, dict) or data.get("format") != PLAN_FORMAT:
            raise ValueError(f"Not a trackdeleter plan file: {path}")
        if data.get("format_version") != PLAN_FORMAT_VERSION:
            raise ValueError(
                f"Unsupported plan format version: {data.get('format_version')}"
            )

        status = PlanStatus(data.get("status", PlanStatus.DRAFT.value))
        if status not in (PlanStatus.DRAFT, PlanStatus.CONFIRMED):
            raise ValueError(f"Plan was already executed (status: {status.value})")

        try:
            entries = tuple(
                PlanEntry(
                    track=Track.from_dict(item["track"]),
                    keeper_path=Path(item["keeper_path"]),
                    action=item.get("action", "delete"),
                )
                for item in data.get("entries", [])
            )
            protected = tuple(
                ProtectedEntry(
                    track=Track.from_dict(item["track"]),
                    keeper_path=Path(item["keeper_path"]),
                    rule=item.get("rule", ""),
                )
                for item in data.get("protected", [])
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed plan entry in {path}: {e}") from e

        for entry in entries:
            if entry.action != "delete":
                raise ValueError(f"Unsupported plan action: {entry.action}")

        return DeletionPlan(
            entries=entries,
            protected=protected,
            created_at=data.get("created_at", ""),
            root=Path(data["root"]) if data.get("root") else None,
        )


def groups_to_list(groups: List[DuplicateGroup]) -> List[Dict[str, Any]]:
    """JSON-compatible view of duplicate groups, keeper first."""
    return [
        {
            "group_id": idx,
            "reclaimable_bytes": group.reclaimable_bytes,
            "keeper": group.keeper.to_dict(),
            "redundant": [track.to_dict() for track in group.redundant],
        }
        for idx, group in enumerate(groups, 1)
    ]


def write_groups_csv(groups: List[DuplicateGroup], out: IO[str]) -> None:
    """Write one CSV row per track, grouped, keeper first."""
    writer = csv.writer(out)
    writer.writerow(CSV_COLUMNS)
    for idx, group in enumerate(groups, 1):
        for track in group.tracks:
            writer.writerow(
                [
                    idx,
                    "true" if track.path == group.keeper.path else "false",
                    str(track.path),
                    track.title,
                    track.artist,
                    track.album,
                    f"{track.duration:.3f}",
                    track.format,
                    track.size,
                    track.sample_rate,
                    "" if track.bitrate is None else track.bitrate,
                ]
            )
