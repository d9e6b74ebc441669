#!/usr/bin/env python3
"""
Data model for the git history analyzer.

Holds the commit record consumed from history traversal, the per-contributor,
activity and per-file statistics produced by the aggregators, the work
pattern classification result and the assembled report.

All statistics types support ``merge()`` which returns a new value and never
mutates either operand. Merges are associative and commutative, so partial
results from any partitioning of the commit sequence can be combined in any
order.
"""

from dataclasses import FrozenInstanceError, dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple


HOURS_PER_DAY = 24
DAY_START_HOUR = 9
DAY_END_HOUR = 18  # exclusive

UNKNOWN_IDENTITY = "unknown"
UNKNOWN_NAME = "Unknown"

LABEL_DAY_WORKER = "DayWorker"
LABEL_MOONLIGHTER = "Moonlighter"
LABEL_MIXED = "Mixed"
LABEL_UNKNOWN = "Unknown"

WORK_PATTERN_LABELS = (LABEL_DAY_WORKER, LABEL_MOONLIGHTER, LABEL_MIXED, LABEL_UNKNOWN)


# ============================================================================
# ERRORS
# ============================================================================


class AnalyzerError(Exception):
    """Base class for analyzer errors"""


class SourceUnavailable(AnalyzerError):
    """Repository missing, corrupt, or could not be cloned/read"""


class MalformedCommit(AnalyzerError):
    """A commit whose author or timestamp fields cannot be parsed"""


# ============================================================================
# COMMIT RECORD
# ============================================================================


def _instant_key(dt: datetime) -> Tuple[datetime, Any]:
    # Same instant recorded under two offsets must still order deterministically
    return (dt, dt.utcoffset())


@dataclass(frozen=True)
class CommitRecord:
    """
    A single historical change-set.

    ``authored_at`` is timezone-aware and keeps the author's own UTC offset,
    so ``local_hour`` and ``is_weekend`` reflect the author's wall clock.
    For merge commits ``paths`` holds only the first-parent diff.
    """

    author_name: str
    identity_key: str
    authored_at: datetime
    paths: FrozenSet[str] = frozenset()
    is_merge: bool = False
    commit_hash: str = ""

    @property
    def local_hour(self) -> int:
        return self.authored_at.hour

    @property
    def is_weekend(self) -> bool:
        return self.authored_at.weekday() >= 5

    @property
    def is_daytime(self) -> bool:
        return DAY_START_HOUR <= self.authored_at.hour < DAY_END_HOUR

    @property
    def month_key(self) -> str:
        return self.authored_at.strftime("%Y-%m")


# ============================================================================
# STATISTICS
# ============================================================================


def _empty_hours() -> List[int]:
    return [0] * HOURS_PER_DAY


def _sum_hours(a: Sequence[int], b: Sequence[int]) -> List[int]:
    return [x + y for x, y in zip(a, b)]


class Sealable:
    """
    Statistics that can be made read-only once a fold is complete.

    ``seal()`` freezes containers in place and rejects any later attribute
    assignment with FrozenInstanceError. Copies of a sealed value are
    writable again.
    """

    _sealed = False

    def seal(self):
        if self._sealed:
            return self
        self._freeze_containers()
        object.__setattr__(self, "_sealed", True)
        return self

    def _freeze_containers(self):
        pass

    def __setattr__(self, name, value):
        if self._sealed:
            raise FrozenInstanceError(f"cannot assign to field {name!r}")
        object.__setattr__(self, name, value)


@dataclass
class ContributorStats(Sealable):
    """Per-identity counters accumulated by ContributorAggregator"""

    identity_key: str
    name: str = ""
    total_commits: int = 0
    day_count: int = 0
    night_count: int = 0
    weekend_count: int = 0
    hourly_histogram: List[int] = field(default_factory=_empty_hours)
    earliest: Optional[datetime] = None
    latest: Optional[datetime] = None

    def add(self, record: CommitRecord):
        """Fold one commit into the counters"""
        self.total_commits += 1
        if record.is_daytime:
            self.day_count += 1
        else:
            self.night_count += 1
        if record.is_weekend:
            self.weekend_count += 1
        self.hourly_histogram[record.local_hour] += 1

        ts = record.authored_at
        if self.earliest is None or _instant_key(ts) < _instant_key(self.earliest):
            self.earliest = ts
        if self.latest is None or self._newer(ts, record.author_name):
            self.latest = ts
            self.name = record.author_name

    def _newer(self, ts: datetime, name: str) -> bool:
        # Display name follows the latest commit; ties resolve by name
        return (_instant_key(ts), name) > (_instant_key(self.latest), self.name)

    def merge(self, other: "ContributorStats") -> "ContributorStats":
        """Combine two partial results for the same identity"""
        if other.identity_key != self.identity_key:
            raise ValueError(
                f"Cannot merge stats for {self.identity_key!r} and {other.identity_key!r}"
            )
        if other.total_commits == 0:
            return self.copy()
        if self.total_commits == 0:
            return other.copy()

        if (_instant_key(other.latest), other.name) > (
            _instant_key(self.latest),
            self.name,
        ):
            latest, name = other.latest, other.name
        else:
            latest, name = self.latest, self.name

        return ContributorStats(
            identity_key=self.identity_key,
            name=name,
            total_commits=self.total_commits + other.total_commits,
            day_count=self.day_count + other.day_count,
            night_count=self.night_count + other.night_count,
            weekend_count=self.weekend_count + other.weekend_count,
            hourly_histogram=_sum_hours(self.hourly_histogram, other.hourly_histogram),
            earliest=min(self.earliest, other.earliest, key=_instant_key),
            latest=latest,
        )

    def copy(self) -> "ContributorStats":
        return ContributorStats(
            identity_key=self.identity_key,
            name=self.name,
            total_commits=self.total_commits,
            day_count=self.day_count,
            night_count=self.night_count,
            weekend_count=self.weekend_count,
            hourly_histogram=list(self.hourly_histogram),
            earliest=self.earliest,
            latest=self.latest,
        )

    def _freeze_containers(self):
        self.hourly_histogram = tuple(self.hourly_histogram)


@dataclass
class ActivityStats(Sealable):
    """Monthly and hourly commit histograms"""

    monthly: Dict[str, int] = field(default_factory=dict)
    hourly: List[int] = field(default_factory=_empty_hours)

    @property
    def total_commits(self) -> int:
        return sum(self.hourly)

    def merge(self, other: "ActivityStats") -> "ActivityStats":
        monthly = dict(self.monthly)
        for month, count in other.monthly.items():
            monthly[month] = monthly.get(month, 0) + count
        return ActivityStats(monthly=monthly, hourly=_sum_hours(self.hourly, other.hourly))

    def _freeze_containers(self):
        self.monthly = MappingProxyType(dict(self.monthly))
        self.hourly = tuple(self.hourly)

    def monthly_items(self) -> List[Tuple[str, int]]:
        """Months in chronological order ("YYYY-MM" sorts lexically)"""
        return sorted(self.monthly.items())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthly": [
                {"month": month, "count": count} for month, count in self.monthly_items()
            ],
            "hourly": list(self.hourly),
        }


@dataclass
class FileStats(Sealable):
    """Per-path change counters; entries exist only after a first touch"""

    path: str
    commit_count: int
    last_modified: datetime

    def merge(self, other: "FileStats") -> "FileStats":
        if other.path != self.path:
            raise ValueError(f"Cannot merge stats for {self.path!r} and {other.path!r}")
        return FileStats(
            path=self.path,
            commit_count=self.commit_count + other.commit_count,
            last_modified=max(self.last_modified, other.last_modified, key=_instant_key),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "commit_count": self.commit_count,
            "last_modified": self.last_modified.isoformat(),
        }


# ============================================================================
# CLASSIFICATION & REPORT
# ============================================================================


@dataclass(frozen=True)
class ClassificationResult:
    label: str
    confidence: int

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "confidence": self.confidence}


@dataclass(frozen=True)
class ContributorEntry:
    """A contributor's frozen statistics paired with its classification"""

    stats: ContributorStats
    classification: ClassificationResult

    def to_dict(self) -> Dict[str, Any]:
        s = self.stats
        return {
            "name": s.name,
            "identity_key": s.identity_key,
            "total_commits": s.total_commits,
            "day_count": s.day_count,
            "night_count": s.night_count,
            "weekend_count": s.weekend_count,
            "first_commit": s.earliest.isoformat() if s.earliest else None,
            "last_commit": s.latest.isoformat() if s.latest else None,
            "hourly_histogram": list(s.hourly_histogram),
            "classification": self.classification.to_dict(),
        }


@dataclass(frozen=True)
class Report:
    """
    Ordered, serializable result of one analysis run.

    The statistics a report holds are sealed on construction, so the report
    is read-only all the way down.
    """

    contributors: Tuple[ContributorEntry, ...] = ()
    files: Tuple[FileStats, ...] = ()
    activity: ActivityStats = field(default_factory=ActivityStats)
    skipped_commits: int = 0

    def __post_init__(self):
        for entry in self.contributors:
            entry.stats.seal()
        for f in self.files:
            f.seal()
        self.activity.seal()

    def contributors_to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.contributors]

    def files_to_list(self) -> List[Dict[str, Any]]:
        return [f.to_dict() for f in self.files]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contributors": self.contributors_to_list(),
            "files": self.files_to_list(),
            "activity": self.activity.to_dict(),
            "skipped_commits": self.skipped_commits,
        }
