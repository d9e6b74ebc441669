#!/usr/bin/env python3
"""
Commit source: turns a git repository into a stream of CommitRecord.

History is read by streaming ``git log`` through a subprocess, one commit
header line followed by the paths it touched. Merge commits are diffed against
their first parent only; the root commit lists every file it introduces.

Also provides repository acquisition: opening a local path, or cloning a URL
into a temporary directory while reporting clone progress.
"""

import os
import re
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterator, List, Optional

from analyzer_models import (
    UNKNOWN_IDENTITY,
    UNKNOWN_NAME,
    CommitRecord,
    MalformedCommit,
    SourceUnavailable,
)


MISSING_EMAIL_SHARED = "shared"
MISSING_EMAIL_BY_NAME = "by-name"
MISSING_EMAIL_POLICIES = (MISSING_EMAIL_SHARED, MISSING_EMAIL_BY_NAME)

# hash, parents, author name, author email, strict ISO author date
LOG_FORMAT = "%H%x00%P%x00%an%x00%ae%x00%aI"
HEADER_FIELDS = 5


# ============================================================================
# PARSING
# ============================================================================


def normalize_identity(
    author_name: str, author_email: str, missing_email: str = MISSING_EMAIL_SHARED
) -> str:
    """
    Build the identity key used to group commits by contributor.

    Emails are stripped and case-folded. Commits without an email share the
    "unknown" bucket, or get one bucket per author name with the "by-name"
    policy.
    """
    email = (author_email or "").strip().casefold()
    if email:
        return email
    if missing_email == MISSING_EMAIL_BY_NAME and author_name.strip():
        return f"{UNKNOWN_IDENTITY}:{author_name.strip().casefold()}"
    return UNKNOWN_IDENTITY


def parse_commit_header(
    line: str, missing_email: str = MISSING_EMAIL_SHARED
) -> CommitRecord:
    """
    Parse one header line produced with LOG_FORMAT.

    Returns a CommitRecord without paths; the caller attaches the touched
    paths that follow the header.

    Raises:
        MalformedCommit: missing fields, empty author, or bad timestamp
    """
    parts = line.split("\x00")
    if len(parts) < HEADER_FIELDS:
        raise MalformedCommit(f"Expected {HEADER_FIELDS} header fields: {line[:50]!r}")

    commit_hash, parents, author_name, author_email, date_str = parts[:HEADER_FIELDS]
    author_name = author_name.strip()
    if not author_name and not author_email.strip():
        raise MalformedCommit(f"Commit {commit_hash[:12]} has no author")

    try:
        authored_at = datetime.fromisoformat(date_str.strip())
    except ValueError:
        raise MalformedCommit(
            f"Commit {commit_hash[:12]} has unparseable date {date_str!r}"
        )
    if authored_at.tzinfo is None:
        raise MalformedCommit(f"Commit {commit_hash[:12]} date has no UTC offset")

    return CommitRecord(
        author_name=author_name or UNKNOWN_NAME,
        identity_key=normalize_identity(author_name, author_email, missing_email),
        authored_at=authored_at,
        is_merge=len(parents.split()) > 1,
        commit_hash=commit_hash,
    )


# ============================================================================
# GIT HISTORY
# ============================================================================


class GitCommitSource:
    """
    Stream every commit reachable from HEAD of a local repository.

    Malformed commits are skipped: ``skipped`` counts them and ``errors``
    keeps one message per skipped commit.
    """

    def __init__(self, repo_path: str, missing_email: str = MISSING_EMAIL_SHARED):
        if missing_email not in MISSING_EMAIL_POLICIES:
            raise ValueError(f"Unknown missing-email policy: {missing_email}")
        self.repo_path = os.path.abspath(repo_path)
        self.missing_email = missing_email
        self.skipped = 0
        self.errors: List[str] = []

    def _git(self, *args) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["git", "-C", self.repo_path, *args],
            capture_output=True,
            text=True,
        )

    def validate(self):
        """Raise SourceUnavailable unless repo_path is a readable git repository"""
        if not os.path.isdir(self.repo_path):
            raise SourceUnavailable(f"Repository path does not exist: {self.repo_path}")
        result = self._git("rev-parse", "--git-dir")
        if result.returncode != 0:
            raise SourceUnavailable(f"Not a git repository: {self.repo_path}")

    def has_head(self) -> bool:
        """False for a repository with no commits yet"""
        return self._git("rev-parse", "--verify", "-q", "HEAD").returncode == 0

    def count_commits(self) -> int:
        """Number of commits reachable from HEAD (for progress bars)"""
        if not self.has_head():
            return 0
        result = self._git("rev-list", "--count", "HEAD")
        if result.returncode != 0:
            raise SourceUnavailable(f"git rev-list failed: {result.stderr.strip()}")
        return int(result.stdout.strip() or 0)

    def iter_commits(self) -> Iterator[CommitRecord]:
        """
        Yield one CommitRecord per commit reachable from HEAD.

        Raises:
            SourceUnavailable: git log exits with an error
        """
        if not self.has_head():
            return

        cmd = [
            "git",
            "-C",
            self.repo_path,
            "-c",
            "core.quotePath=false",
            "log",
            "HEAD",
            # Independent of log.showRoot and log.showSignature in user config
            "--root",
            "--no-show-signature",
            "--name-only",
            "--diff-merges=first-parent",
            "--no-renames",
            f"--format={LOG_FORMAT}",
        ]

        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )

        current: Optional[CommitRecord] = None
        paths: List[str] = []
        in_malformed = False

        try:
            for line in process.stdout:
                line = line.rstrip("\n")
                if not line:
                    continue

                if "\x00" in line:
                    if current is not None:
                        yield replace(current, paths=frozenset(paths))
                    current, paths, in_malformed = None, [], False
                    try:
                        current = parse_commit_header(line, self.missing_email)
                    except MalformedCommit as e:
                        self.skipped += 1
                        self.errors.append(str(e))
                        in_malformed = True
                elif current is not None:
                    paths.append(line)
                elif not in_malformed:
                    self.errors.append(f"Unexpected git log line: {line[:50]}")

            if current is not None:
                yield replace(current, paths=frozenset(paths))

            process.wait()
        finally:
            # Consumer stopped early
            if process.poll() is None:
                process.kill()
                process.wait()

        if process.returncode != 0:
            stderr = process.stderr.read()
            raise SourceUnavailable(f"Git command failed: {stderr.strip()}")


# ============================================================================
# REPOSITORY ACQUISITION
# ============================================================================


@dataclass(frozen=True)
class CloneProgress:
    stage: str
    percent: int
    current: int
    total: int


CLONE_PROGRESS_RE = re.compile(
    r"^(?:remote:\s*)?(?P<stage>[A-Za-z ]+objects|Resolving deltas):\s+"
    r"(?P<percent>\d+)%\s+\((?P<current>\d+)/(?P<total>\d+)\)"
)


def parse_clone_progress(line: str) -> Optional[CloneProgress]:
    """Parse a ``git clone --progress`` status line, or None if it isn't one"""
    match = CLONE_PROGRESS_RE.match(line.strip())
    if not match:
        return None
    return CloneProgress(
        stage=match.group("stage").strip(),
        percent=int(match.group("percent")),
        current=int(match.group("current")),
        total=int(match.group("total")),
    )


def clone_repository(
    url: str,
    dest: str,
    progress: Optional[Callable[[CloneProgress], None]] = None,
):
    """
    Clone url into dest, reporting progress via the callback.

    Raises:
        SourceUnavailable: git clone exits with an error
    """
    process = subprocess.Popen(
        ["git", "clone", "--progress", url, dest],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
    )

    messages = []
    for chunk in process.stderr:
        # Progress redraws are separated by carriage returns
        for line in chunk.split("\r"):
            update = parse_clone_progress(line)
            if update is None:
                if line.strip():
                    messages.append(line.strip())
                continue
            if progress is not None:
                progress(update)

    process.wait()
    if process.returncode != 0:
        detail = messages[-1] if messages else f"exit status {process.returncode}"
        raise SourceUnavailable(f"Failed to clone {url}: {detail}")


@contextmanager
def open_repository(
    path: Optional[str] = None,
    url: Optional[str] = None,
    progress: Optional[Callable[[CloneProgress], None]] = None,
):
    """
    Yield a validated local repository path.

    With a url the repository is cloned into a temporary directory that is
    removed when the context exits.
    """
    if url:
        with tempfile.TemporaryDirectory(prefix="git-analyzer-") as tmpdir:
            dest = os.path.join(tmpdir, "repo")
            clone_repository(url, dest, progress=progress)
            GitCommitSource(dest).validate()
            yield dest
        return

    repo_path = os.path.abspath(path or ".")
    GitCommitSource(repo_path).validate()
    yield repo_path
