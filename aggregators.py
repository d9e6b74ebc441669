#!/usr/bin/env python3
"""
Aggregation and classification engine.

Three independent reducers fold the same commit sequence in one pass:

- ContributorAggregator: per-identity day/night/weekend counters
- ActivityAggregator: monthly and hourly histograms
- FileChangeAggregator: per-path change counters (hotspots)

WorkPatternClassifier turns a contributor's counters into a labelled work
pattern with a confidence score, and ReportAssembler sorts and packages the
three outputs into a Report.

Every aggregator is an owned accumulator. Partial folds over disjoint chunks
of the commit sequence can be merged in any order, which is what
fold_commits_parallel relies on.
"""

import math
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from functools import reduce
from typing import Dict, Iterable, List, Sequence

from analyzer_models import (
    LABEL_DAY_WORKER,
    LABEL_MIXED,
    LABEL_MOONLIGHTER,
    LABEL_UNKNOWN,
    ActivityStats,
    ClassificationResult,
    CommitRecord,
    ContributorEntry,
    ContributorStats,
    FileStats,
    Report,
)


# ============================================================================
# BASE AGGREGATOR
# ============================================================================


class CommitAggregator:
    """
    Base class for commit aggregators.

    Subclasses override ingest(), finalize() and merge(). An aggregator is
    written by a single fold and treated as read-only afterwards.
    """

    def ingest(self, record: CommitRecord):
        """Process a single commit - override in subclasses"""
        raise NotImplementedError

    def finalize(self):
        """Return the accumulated statistics - override in subclasses"""
        raise NotImplementedError

    def merge(self, other: "CommitAggregator") -> "CommitAggregator":
        """Return a new aggregator combining both partial results"""
        raise NotImplementedError


# ============================================================================
# CONTRIBUTORS
# ============================================================================


class ContributorAggregator(CommitAggregator):
    """
    Track per-contributor work-time statistics.

    Commits are grouped by identity key (normalized email). The local hour and
    weekday come from the commit's own UTC offset, not the observer's.
    """

    def __init__(self):
        self.contributors: Dict[str, ContributorStats] = {}

    def ingest(self, record: CommitRecord):
        stats = self.contributors.get(record.identity_key)
        if stats is None:
            stats = ContributorStats(identity_key=record.identity_key)
            self.contributors[record.identity_key] = stats
        stats.add(record)

    def finalize(self) -> Dict[str, ContributorStats]:
        return self.contributors

    def merge(self, other: "ContributorAggregator") -> "ContributorAggregator":
        merged = ContributorAggregator()
        merged.contributors = {k: v.copy() for k, v in self.contributors.items()}
        for key, stats in other.contributors.items():
            if key in merged.contributors:
                merged.contributors[key] = merged.contributors[key].merge(stats)
            else:
                merged.contributors[key] = stats.copy()
        return merged


class WorkPatternClassifier:
    """
    Rule-based work pattern classification.

    Rules are applied in precedence order, first match wins:
    1. DayWorker   if day_ratio >= 0.70 and weekend_ratio < 0.30
    2. Moonlighter if night_ratio >= 0.60 or weekend_ratio >= 0.40
    3. Mixed       otherwise

    Contributors with fewer than MIN_COMMITS commits are Unknown.
    """

    MIN_COMMITS = 5
    DAY_RATIO_THRESHOLD = 0.70
    DAY_WEEKEND_CEILING = 0.30
    NIGHT_RATIO_THRESHOLD = 0.60
    WEEKEND_RATIO_THRESHOLD = 0.40

    # Confidence = strength * STRENGTH_WEIGHT + volume share * VOLUME_WEIGHT
    STRENGTH_WEIGHT = 80
    VOLUME_WEIGHT = 20
    VOLUME_SATURATION = 50

    @classmethod
    def classify(cls, stats: ContributorStats) -> ClassificationResult:
        """
        Classify a contributor from its counters alone.

        Args:
            stats: Contributor counters (only the counts are read)

        Returns:
            ClassificationResult with label and confidence in [0, 100]
        """
        total = stats.total_commits
        if total < cls.MIN_COMMITS:
            return ClassificationResult(LABEL_UNKNOWN, 0)

        day_ratio = stats.day_count / total
        night_ratio = stats.night_count / total
        weekend_ratio = stats.weekend_count / total

        if (
            day_ratio >= cls.DAY_RATIO_THRESHOLD
            and weekend_ratio < cls.DAY_WEEKEND_CEILING
        ):
            label, strength = LABEL_DAY_WORKER, day_ratio
        elif (
            night_ratio >= cls.NIGHT_RATIO_THRESHOLD
            or weekend_ratio >= cls.WEEKEND_RATIO_THRESHOLD
        ):
            label, strength = LABEL_MOONLIGHTER, max(night_ratio, weekend_ratio)
        else:
            # Strength of a mixed pattern is how balanced day and night are
            label, strength = LABEL_MIXED, 1 - abs(day_ratio - night_ratio)

        return ClassificationResult(label, cls.confidence(strength, total))

    @classmethod
    def confidence(cls, strength: float, total_commits: int) -> int:
        volume = min(total_commits, cls.VOLUME_SATURATION) / cls.VOLUME_SATURATION
        score = strength * cls.STRENGTH_WEIGHT + volume * cls.VOLUME_WEIGHT
        # Halves round up
        return int(math.floor(max(0, min(100, score)) + 0.5))


def classify(stats: ContributorStats) -> ClassificationResult:
    return WorkPatternClassifier.classify(stats)


# ============================================================================
# ACTIVITY
# ============================================================================


class ActivityAggregator(CommitAggregator):
    """Monthly and hourly commit histograms in each commit's local time"""

    def __init__(self):
        self.stats = ActivityStats()

    def ingest(self, record: CommitRecord):
        month = record.month_key
        self.stats.monthly[month] = self.stats.monthly.get(month, 0) + 1
        self.stats.hourly[record.local_hour] += 1

    def finalize(self) -> ActivityStats:
        return self.stats

    def merge(self, other: "ActivityAggregator") -> "ActivityAggregator":
        merged = ActivityAggregator()
        merged.stats = self.stats.merge(other.stats)
        return merged


# ============================================================================
# FILES
# ============================================================================


class FileChangeAggregator(CommitAggregator):
    """
    Track how often each path changes.

    The touched-path set on a merge record is already limited to the
    first-parent diff, so merges never re-count work from other branches.
    """

    def __init__(self):
        self.files: Dict[str, FileStats] = {}

    def ingest(self, record: CommitRecord):
        ts = record.authored_at
        for path in record.paths:
            stats = self.files.get(path)
            if stats is None:
                self.files[path] = FileStats(path=path, commit_count=1, last_modified=ts)
                continue
            stats.commit_count += 1
            if (ts, ts.utcoffset()) > (
                stats.last_modified,
                stats.last_modified.utcoffset(),
            ):
                stats.last_modified = ts

    def finalize(self) -> Dict[str, FileStats]:
        return self.files

    def merge(self, other: "FileChangeAggregator") -> "FileChangeAggregator":
        merged = FileChangeAggregator()
        merged.files = {
            path: FileStats(s.path, s.commit_count, s.last_modified)
            for path, s in self.files.items()
        }
        for path, stats in other.files.items():
            if path in merged.files:
                merged.files[path] = merged.files[path].merge(stats)
            else:
                merged.files[path] = FileStats(
                    stats.path, stats.commit_count, stats.last_modified
                )
        return merged


# ============================================================================
# REPORT ASSEMBLY
# ============================================================================


class ReportAssembler:
    """Sort, classify and package aggregator outputs into a Report"""

    @staticmethod
    def assemble(
        contributors: Dict[str, ContributorStats],
        activity: ActivityStats,
        files: Dict[str, FileStats],
        skipped_commits: int = 0,
    ) -> Report:
        ordered_contributors = sorted(
            contributors.values(),
            key=lambda s: (-s.total_commits, s.name, s.identity_key),
        )
        entries = tuple(
            ContributorEntry(stats=s.copy(), classification=classify(s))
            for s in ordered_contributors
        )

        ordered_files = tuple(
            FileStats(f.path, f.commit_count, f.last_modified)
            for f in sorted(files.values(), key=lambda f: (-f.commit_count, f.path))
        )

        frozen_activity = ActivityStats(
            monthly=dict(activity.monthly_items()), hourly=list(activity.hourly)
        )

        return Report(
            contributors=entries,
            files=ordered_files,
            activity=frozen_activity,
            skipped_commits=skipped_commits,
        )


# ============================================================================
# FOLD DRIVERS
# ============================================================================


class CommitFold:
    """The three aggregators fed together by a single pass"""

    def __init__(self):
        self.contributors = ContributorAggregator()
        self.activity = ActivityAggregator()
        self.files = FileChangeAggregator()
        self.commits_processed = 0

    def ingest(self, record: CommitRecord):
        self.contributors.ingest(record)
        self.activity.ingest(record)
        self.files.ingest(record)
        self.commits_processed += 1

    def merge(self, other: "CommitFold") -> "CommitFold":
        merged = CommitFold()
        merged.contributors = self.contributors.merge(other.contributors)
        merged.activity = self.activity.merge(other.activity)
        merged.files = self.files.merge(other.files)
        merged.commits_processed = self.commits_processed + other.commits_processed
        return merged

    def assemble(self, skipped_commits: int = 0) -> Report:
        return ReportAssembler.assemble(
            self.contributors.finalize(),
            self.activity.finalize(),
            self.files.finalize(),
            skipped_commits=skipped_commits,
        )


def fold_commits(records: Iterable[CommitRecord], progress_bar=None) -> CommitFold:
    """
    Fold a commit sequence in one pass.

    Args:
        records: Any iterable of CommitRecord; order does not matter
        progress_bar: Optional tqdm-like object updated once per commit

    Returns:
        CommitFold holding the three populated aggregators
    """
    fold = CommitFold()
    for record in records:
        fold.ingest(record)
        if progress_bar is not None:
            progress_bar.update(1)
    return fold


def chunk_iterator(items: Sequence, chunk_size: int = 5000):
    """Yield consecutive disjoint slices of items"""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    for i in range(0, len(items), chunk_size):
        yield items[i : i + chunk_size]


def _fold_chunk(chunk: List[CommitRecord]) -> CommitFold:
    return fold_commits(chunk)


def fold_commits_parallel(
    records: Iterable[CommitRecord],
    workers: int = 4,
    chunk_size: int = 5000,
    use_processes: bool = True,
    progress_bar=None,
) -> CommitFold:
    """
    Fold a commit sequence by partitioning it into chunks.

    Each chunk is folded by its own worker into private aggregators; the
    partial folds are merged in completion order.

    Args:
        records: Commit sequence (materialized before partitioning)
        workers: Maximum number of concurrent workers
        chunk_size: Commits per partition
        use_processes: ProcessPoolExecutor when True, ThreadPoolExecutor otherwise
        progress_bar: Optional tqdm-like object updated per finished chunk

    Returns:
        CommitFold equal to fold_commits() over the same records
    """
    items = list(records)
    chunks = list(chunk_iterator(items, chunk_size))
    if workers <= 1 or len(chunks) <= 1:
        return fold_commits(items, progress_bar=progress_bar)

    executor_cls = ProcessPoolExecutor if use_processes else ThreadPoolExecutor
    partials: List[CommitFold] = []
    with executor_cls(max_workers=workers) as ex:
        futs = {ex.submit(_fold_chunk, chunk): len(chunk) for chunk in chunks}
        for fut in as_completed(futs):
            partials.append(fut.result())
            if progress_bar is not None:
                progress_bar.update(futs[fut])

    return reduce(lambda a, b: a.merge(b), partials, CommitFold())

