"""Group confirmed duplicates, pick keepers and build deletion plans."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from .fingerprint import (
    DEFAULT_TOLERANCE,
    MatchMode,
    confirms,
    fingerprint,
    unfingerprintable_reason,
)
from .models import (
    DeletionPlan,
    DuplicateGroup,
    FingerprintKey,
    PlanEntry,
    ProtectedEntry,
    Track,
)

if TYPE_CHECKING:
    from .rules import RuleEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unfingerprintable:
    """A track left out of grouping, with the reason."""

    track: Track
    reason: str


@dataclass
class GroupingResult:
    groups: List[DuplicateGroup] = field(default_factory=list)
    unfingerprintable: List[Unfingerprintable] = field(default_factory=list)

    @property
    def redundant_count(self) -> int:
        return sum(len(group.redundant) for group in self.groups)


def keeper_rank(track: Track) -> Tuple[int, int, str]:
    """
    Sort key where the best keeper sorts first.

    Highest bitrate wins (unknown bitrate ranks below any known one), then the
    larger file, then the lexicographically smallest path.
    """
    bitrate = track.bitrate if track.bitrate is not None else -1
    return (-bitrate, -track.size, str(track.path))


def select_keeper(tracks: Iterable[Track]) -> Track:
    return min(tracks, key=keeper_rank)


class DuplicateGrouper:
    """
    Groups tracks that share a confirmed fingerprint.

    Runs synchronously over a complete, in-memory track list. The result does
    not depend on the order of the input.
    """

    def __init__(
        self,
        mode: MatchMode = MatchMode.METADATA,
        tolerance: float = DEFAULT_TOLERANCE,
    ):
        """
        Initialize grouper.

        Args:
            mode: How candidates with equal tags are confirmed
            tolerance: Allowed duration difference in seconds (default: 1)
        """
        self.mode = MatchMode(mode)
        self.tolerance = tolerance

    def group(self, tracks: Iterable[Track]) -> GroupingResult:
        """
        Find duplicate groups.

        Args:
            tracks: All scanned tracks

        Returns:
            GroupingResult with groups ordered by keeper path
        """
        result = GroupingResult()
        buckets: Dict[Tuple[str, ...], List[Tuple[Track, FingerprintKey]]]
        buckets = defaultdict(list)

        for track in self._unique(tracks):
            reason = unfingerprintable_reason(track, self.mode)
            if reason is not None:
                logger.debug("Not fingerprintable: %s (%s)", track.path, reason)
                result.unfingerprintable.append(Unfingerprintable(track, reason))
                continue
            key = fingerprint(track)
            buckets[key.primary].append((track, key))

        for primary in sorted(buckets):
            for cluster in self._cluster(buckets[primary]):
                if len(cluster) < 2:
                    continue
                members = [track for track, _ in cluster]
                keeper = select_keeper(members)
                redundant = sorted(
                    (t for t in members if t.path != keeper.path),
                    key=lambda t: str(t.path),
                )
                keeper_key = next(k for t, k in cluster if t.path == keeper.path)
                result.groups.append(
                    DuplicateGroup(
                        key=keeper_key, keeper=keeper, redundant=tuple(redundant)
                    )
                )

        result.groups.sort(key=lambda g: str(g.keeper.path))
        logger.info(
            "Found %d duplicate group(s) (%d redundant track(s), "
            "%d not fingerprintable)",
            len(result.groups),
            result.redundant_count,
            len(result.unfingerprintable),
        )
        return result

    @staticmethod
    def _unique(tracks: Iterable[Track]) -> List[Track]:
        """Sort by path and drop repeated paths."""
        seen: Dict[Path, Track] = {}
        for track in sorted(tracks, key=lambda t: str(t.path)):
            seen.setdefault(track.path, track)
        return list(seen.values())

    def _cluster(
        self, bucket: List[Tuple[Track, FingerprintKey]]
    ) -> List[List[Tuple[Track, FingerprintKey]]]:
        """
        Split one primary-key bucket into confirmed clusters.

        Each cluster is anchored on its first member; a track joins the first
        cluster whose anchor it confirms against. Every member is therefore
        within tolerance of its anchor, so loosely chained tracks (1s apart,
        then 1s apart again) are not merged into one group.
        """
        ordered = sorted(
            bucket,
            key=lambda item: (
                item[1].content_hash or "",
                item[1].size if self.mode == MatchMode.STRICT else 0,
                item[0].duration,
                item[1].size,
                str(item[0].path),
            ),
        )
        clusters: List[List[Tuple[Track, FingerprintKey]]] = []
        for item in ordered:
            for cluster in clusters:
                if confirms(cluster[0][1], item[1], self.mode, self.tolerance):
                    cluster.append(item)
                    break
            else:
                clusters.append([item])
        return clusters


def build_plan(
    groups: Iterable[DuplicateGroup],
    rules: Optional["RuleEngine"] = None,
    root: Optional[Path] = None,
) -> DeletionPlan:
    """
    Turn duplicate groups into a draft deletion plan.

    Args:
        groups: Groups from DuplicateGrouper.group()
        rules: Optional protection rules; a redundant track whose first
            matching rule says "keep" stays out of the plan
        root: Library root the groups were scanned from, kept with the plan

    Returns:
        DeletionPlan in DRAFT status
    """
    entries: List[PlanEntry] = []
    protected: List[ProtectedEntry] = []

    for group in groups:
        for track in group.redundant:
            rule = rules.match(track.rule_fields()) if rules is not None else None
            if rule is not None and rule.action == "keep":
                protected.append(ProtectedEntry(track, group.keeper.path, rule.name))
                logger.info("Protected by rule '%s': %s", rule.name, track.path)
            else:
                entries.append(PlanEntry(track=track, keeper_path=group.keeper.path))

    return DeletionPlan(
        entries=tuple(entries), protected=tuple(protected), root=root
    )
