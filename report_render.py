#!/usr/bin/env python3
"""
Text and JSON rendering of analysis reports.

Tables are fixed-width and meant for a terminal; JSON output mirrors
Report.to_dict() exactly.
"""

import json
from typing import Any, List, Optional, Sequence

from analyzer_models import (
    LABEL_DAY_WORKER,
    LABEL_MIXED,
    LABEL_MOONLIGHTER,
    ActivityStats,
    ContributorEntry,
    FileStats,
    Report,
)


PATTERN_EMOJI = {
    LABEL_DAY_WORKER: "☀️",
    LABEL_MOONLIGHTER: "🌙",
    LABEL_MIXED: "⚖️",
}
UNKNOWN_EMOJI = "❓"

CONTRIBUTOR_LEGEND = [
    "☀️  Day Worker: Primarily commits during business hours (9 AM - 6 PM)",
    "🌙  Moonlighter: Commits mostly evenings/nights and weekends",
    "⚖️  Mixed: Balanced between day and night work",
    "❓  Unknown: Insufficient data (< 5 commits)",
]


def render_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _take(items: Sequence, limit: Optional[int]) -> Sequence:
    return items if limit is None else items[:limit]


def render_contributors(
    entries: Sequence[ContributorEntry], limit: Optional[int] = 10
) -> str:
    """Top contributors table with work pattern, confidence and day/night split"""
    lines: List[str] = ["📊 Top Contributors:"]
    lines.append(
        f"{'Name':<25} {'Email':<25} {'Commits':<8} {'Pattern':<15} "
        f"{'Confidence':<12} {'Day/Night':<12}"
    )
    lines.append("=" * 100)

    for entry in _take(entries, limit):
        s = entry.stats
        label = entry.classification.label
        pattern = f"{PATTERN_EMOJI.get(label, UNKNOWN_EMOJI)} {label}"
        confidence = f"{entry.classification.confidence}%"
        split = f"{s.day_count}/{s.night_count}"
        lines.append(
            f"{s.name:<25} {s.identity_key:<25} {s.total_commits:<8} {pattern:<15} "
            f"{confidence:<12} {split:<12}"
        )

    if not entries:
        lines.append("   (no commits)")

    lines.append("")
    lines.append("Legend:")
    lines.extend(CONTRIBUTOR_LEGEND)
    return "\n".join(lines)


def render_activity(activity: ActivityStats) -> str:
    """Monthly commit counts, then one row per hour of the day"""
    lines: List[str] = ["📈 Commit Activity by Month:"]
    for month, count in activity.monthly_items():
        lines.append(f"{month}: {count} commits")
    if not activity.monthly:
        lines.append("   (no commits)")

    lines.append("")
    lines.append("📊 Commit Activity by Hour:")
    for hour, count in enumerate(activity.hourly):
        lines.append(f"{hour:02d}:00 - {hour:02d}:59: {count} commits")
    return "\n".join(lines)


def render_files(files: Sequence[FileStats], limit: Optional[int] = 20) -> str:
    """Most frequently modified files"""
    lines: List[str] = ["📁 Most Modified Files:"]
    lines.append(f"{'File Path':<50} {'Commits':<8} {'Last Modified':<20}")
    lines.append("=" * 80)
    for f in _take(files, limit):
        modified = f.last_modified.strftime("%Y-%m-%d %H:%M")
        lines.append(f"{f.path:<50} {f.commit_count:<8} {modified:<20}")
    if not files:
        lines.append("   (no files)")
    return "\n".join(lines)


def render_report(
    report: Report,
    top_contributors: Optional[int] = 10,
    top_files: Optional[int] = 20,
) -> str:
    sections = [
        render_contributors(report.contributors, top_contributors),
        render_activity(report.activity),
        render_files(report.files, top_files),
    ]
    return "\n\n".join(sections)
