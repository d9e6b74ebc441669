import os
import subprocess
from datetime import datetime, timedelta, timezone

import pytest

from analyzer_models import CommitRecord
from git_analyzer import ProgressReporter


@pytest.fixture
def quiet_reporter():
    return ProgressReporter(quiet=True, use_colors=False)


@pytest.fixture
def make_record():
    """Factory for CommitRecord with a local wall-clock time and UTC offset."""

    def _make(
        year=2024,
        month=4,
        day=10,
        hour=10,
        minute=0,
        offset_hours=0,
        name="Alice Smith",
        email="alice@example.com",
        paths=("src/main.py",),
        is_merge=False,
    ):
        tz = timezone(timedelta(hours=offset_hours))
        return CommitRecord(
            author_name=name,
            identity_key=email.casefold() if email else "unknown",
            authored_at=datetime(year, month, day, hour, minute, tzinfo=tz),
            paths=frozenset(paths),
            is_merge=is_merge,
        )

    return _make


@pytest.fixture
def moonlighter_records(make_record):
    """
    Five commits at local hours 10, 11, 14 (weekdays), 22 on Saturday and
    23 on Sunday. 2024-04-13 is a Saturday.
    """
    return [
        make_record(day=8, hour=10),
        make_record(day=9, hour=11),
        make_record(day=10, hour=14),
        make_record(day=13, hour=22),
        make_record(day=14, hour=23),
    ]


@pytest.fixture
def sample_records(make_record):
    """Commits from three authors in different timezones, spanning two months."""
    return [
        make_record(month=3, day=28, hour=9, paths=("src/main.py", "src/utils.py")),
        make_record(month=3, day=29, hour=17, offset_hours=2, paths=("src/main.py",)),
        make_record(
            month=4,
            day=1,
            hour=23,
            offset_hours=-5,
            name="Bob Jones",
            email="Bob@Example.com",
            paths=("README.md",),
        ),
        make_record(
            month=4,
            day=6,
            hour=2,
            offset_hours=9,
            name="Bob Jones",
            email="bob@example.com",
            paths=("src/main.py", "README.md"),
        ),
        make_record(
            month=4,
            day=7,
            hour=12,
            name="Carol",
            email="carol@example.com",
            paths=("docs/guide.md",),
            is_merge=True,
        ),
    ]


def _git(repo, *args, date=None):
    env = dict(os.environ)
    if date:
        env["GIT_AUTHOR_DATE"] = date
        env["GIT_COMMITTER_DATE"] = date
    subprocess.run(
        ["git", "-C", str(repo)] + list(args),
        check=True,
        capture_output=True,
        env=env,
    )


def _init_repo(repo):
    repo.mkdir()
    _git(repo, "init")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    _git(repo, "config", "user.email", "tester@test.com")
    _git(repo, "config", "user.name", "Tester")
    _git(repo, "config", "commit.gpgsign", "false")


@pytest.fixture
def git_repo(tmp_path):
    """
    Four commits with fixed author dates:
    - 2024-04-10 10:00 +09:00 Tester adds app.py, lib.py
    - 2024-04-11 14:30 +09:00 Tester modifies app.py, lib.py
    - 2024-04-13 22:15 -07:00 Night Owl adds readme.md (Saturday)
    - 2024-05-02 09:05 +00:00 Tester modifies app.py
    """
    repo = tmp_path / "repo"
    _init_repo(repo)

    (repo / "app.py").write_text("print('hello')\n", encoding="utf-8")
    (repo / "lib.py").write_text("def helper(): pass\n", encoding="utf-8")
    _git(repo, "add", ".")
    _git(repo, "commit", "-m", "initial", date="2024-04-10T10:00:00+09:00")

    (repo / "app.py").write_text("print('hello')\nprint('world')\n", encoding="utf-8")
    (repo / "lib.py").write_text("def helper(): return 1\n", encoding="utf-8")
    _git(repo, "add", ".")
    _git(repo, "commit", "-m", "update both", date="2024-04-11T14:30:00+09:00")

    (repo / "readme.md").write_text("# App\n", encoding="utf-8")
    _git(repo, "add", ".")
    _git(
        repo,
        "-c",
        "user.name=Night Owl",
        "-c",
        "user.email=Owl@Example.com",
        "commit",
        "-m",
        "add readme",
        date="2024-04-13T22:15:00-07:00",
    )

    (repo / "app.py").write_text("print('!')\n", encoding="utf-8")
    _git(repo, "add", ".")
    _git(repo, "commit", "-m", "tweak app", date="2024-05-02T09:05:00+00:00")

    return str(repo)


@pytest.fixture
def merge_repo(tmp_path):
    """
    History with one merge commit:
    - base adds a.txt and b.txt
    - main modifies b.txt
    - feature (from base) modifies a.txt
    - main merges feature with --no-ff

    The merge differs from its first parent only in a.txt and from its
    second parent only in b.txt.
    """
    repo = tmp_path / "merge_repo"
    _init_repo(repo)

    (repo / "a.txt").write_text("a0\n", encoding="utf-8")
    (repo / "b.txt").write_text("b0\n", encoding="utf-8")
    _git(repo, "add", ".")
    _git(repo, "commit", "-m", "base", date="2024-01-01T10:00:00+00:00")

    _git(repo, "checkout", "-b", "feature")
    (repo / "a.txt").write_text("a1\n", encoding="utf-8")
    _git(repo, "commit", "-am", "feature edits a", date="2024-01-02T10:00:00+00:00")

    _git(repo, "checkout", "main")
    (repo / "b.txt").write_text("b1\n", encoding="utf-8")
    _git(repo, "commit", "-am", "main edits b", date="2024-01-03T10:00:00+00:00")

    _git(
        repo,
        "merge",
        "--no-ff",
        "feature",
        "-m",
        "merge feature",
        date="2024-01-04T10:00:00+00:00",
    )

    return str(repo)


@pytest.fixture
def empty_repo(tmp_path):
    repo = tmp_path / "empty_repo"
    _init_repo(repo)
    return str(repo)
