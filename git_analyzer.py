#!/usr/bin/env python3
"""
Git Analyzer - contributor work patterns, commit activity and file hotspots

Reads every commit reachable from HEAD and reports:
- Contributors: commit counts, day/night/weekend split and a work pattern
  (Day Worker, Moonlighter, Mixed, Unknown) with a confidence score
- Activity: commits per month and per hour of day, in each author's local time
- Files: the most frequently modified paths

Repositories can be analyzed in place or cloned from a URL into a temporary
directory. Output is an aligned text table or JSON (--json).

Usage:
    git-analyzer contributors -p /path/to/repo
    git-analyzer all --url https://github.com/org/repo.git --json
"""

import json
import os
import sys
import time
from typing import Any, Dict, Optional

import click
import yaml
from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm

from aggregators import fold_commits, fold_commits_parallel
from analyzer_models import AnalyzerError, Report
from commit_source import (
    MISSING_EMAIL_POLICIES,
    MISSING_EMAIL_SHARED,
    CloneProgress,
    GitCommitSource,
    open_repository,
)
from report_render import (
    render_activity,
    render_contributors,
    render_files,
    render_json,
    render_report,
)


VERSION = "0.1.0"

colorama_init(autoreset=True)


# ============================================================================
# PROGRESS REPORTING
# ============================================================================


class ProgressReporter:
    """
    Interactive progress reporting
    - Color-coded output (colorama)
    - Progress bars with percentage (tqdm)
    - Errors always go to stderr, even in quiet mode
    """

    def __init__(
        self, quiet: bool = False, verbose: bool = False, use_colors: bool = True
    ):
        self.quiet = quiet
        self.verbose = verbose
        self.use_colors = use_colors
        self.start_time = time.time()
        self.stage_times = {}
        self.clone_bar = None
        self.clone_stage = None

    def _colorize(self, text: str, color: str) -> str:
        """Apply color if enabled"""
        if self.use_colors:
            return f"{color}{text}{Style.RESET_ALL}"
        return text

    def _echo(self, text: str = ""):
        # Diagnostics go to stderr so stdout stays clean for reports
        click.echo(text, err=True)

    def stage_start(self, stage_name: str, message: str = ""):
        """Mark the start of a processing stage"""
        if self.quiet:
            return
        self.stage_times[stage_name] = time.time()

        separator = self._colorize("=" * 70, Fore.CYAN)
        stage_text = self._colorize(f"🔄 {stage_name}", Fore.BLUE + Style.BRIGHT)

        self._echo(f"\n{separator}")
        self._echo(stage_text)
        if message:
            self._echo(f"   {message}")
        self._echo(separator)

    def stage_complete(self, stage_name: str, stats: Dict = None):
        """Mark completion of a processing stage"""
        if self.quiet:
            return
        elapsed = time.time() - self.stage_times.get(stage_name, time.time())

        complete_text = self._colorize(
            f"✅ {stage_name} complete ({elapsed:.2f}s)", Fore.GREEN + Style.BRIGHT
        )
        self._echo(complete_text)

        if stats and self.verbose:
            for key, value in stats.items():
                self._echo(f"   {key}: {value}")

    def create_progress_bar(
        self, total: int, desc: str = "Processing", unit: str = " commits"
    ) -> Optional[tqdm]:
        """Create a progress bar with ETA"""
        if self.quiet:
            return None

        return tqdm(
            total=total,
            desc=self._colorize(desc, Fore.CYAN),
            unit=unit,
            ncols=100,
            file=sys.stderr,
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]",
        )

    def clone_progress(self, update: CloneProgress):
        """Drive one progress bar per clone stage (objects, deltas)"""
        if self.quiet:
            return
        if update.stage != self.clone_stage:
            self.close_clone_progress()
            self.clone_stage = update.stage
            self.clone_bar = self.create_progress_bar(
                update.total, desc=update.stage, unit=" objects"
            )
        if self.clone_bar is not None:
            self.clone_bar.update(update.current - self.clone_bar.n)

    def close_clone_progress(self):
        if self.clone_bar is not None:
            self.clone_bar.close()
        self.clone_bar = None
        self.clone_stage = None

    def info(self, message: str):
        """Display informational message"""
        if not self.quiet:
            info_text = self._colorize("ℹ️  ", Fore.BLUE)
            self._echo(f"{info_text}{message}")

    def warning(self, message: str):
        """Display warning message"""
        if not self.quiet:
            warning_text = self._colorize("⚠️  ", Fore.YELLOW + Style.BRIGHT)
            self._echo(f"{warning_text}{message}")

    def error(self, message: str):
        """Display error message (always shown)"""
        error_text = self._colorize(f"❌ ERROR: {message}", Fore.RED + Style.BRIGHT)
        self._echo(error_text)

    def success(self, message: str):
        """Display success message"""
        if not self.quiet:
            success_text = self._colorize(f"✨ {message}", Fore.GREEN + Style.BRIGHT)
            self._echo(success_text)

    def summary(self, stats: Dict[str, Any]):
        """Display final summary"""
        if self.quiet:
            return
        elapsed = time.time() - self.start_time

        separator = self._colorize("=" * 70, Fore.CYAN)
        header = self._colorize("📊 ANALYSIS SUMMARY", Fore.MAGENTA + Style.BRIGHT)

        self._echo(f"\n{separator}")
        self._echo(header)
        self._echo(separator)
        for key, value in stats.items():
            self._echo(f"   {key}: {value}")

        time_text = self._colorize(f"⏱️  Total time: {elapsed:.2f}s", Fore.YELLOW)
        self._echo(f"\n{time_text}")
        self._echo(f"{separator}\n")


# ============================================================================
# CONFIGURATION FILE SUPPORT
# ============================================================================


CONFIG_NAMES = [
    ".git-analyzer.yaml",
    ".git-analyzer.yml",
    ".git-analyzer.json",
]

DEFAULTS = {
    "workers": 1,
    "chunk_size": 5000,
    "top_contributors": 10,
    "top_files": 20,
    "missing_email": MISSING_EMAIL_SHARED,
    "quiet": False,
    "verbose": False,
    "no_color": False,
}

PRESETS = {
    "standard": {},
    "full": {"top_contributors": 0, "top_files": 0},
    "parallel": {"workers": 4},
}


def load_config_file(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.
    Supports .git-analyzer.yaml, .git-analyzer.yml, .git-analyzer.json
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    file_ext = os.path.splitext(config_path)[1].lower()

    with open(config_path, "r", encoding="utf-8") as f:
        if file_ext in [".yaml", ".yml"]:
            data = yaml.safe_load(f)
        elif file_ext == ".json":
            data = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {file_ext}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration must be a mapping: {config_path}")
    return data


def find_config_file(repo_path: Optional[str]) -> Optional[str]:
    """
    Auto-discover configuration file in repository or current directory.
    Searches for: .git-analyzer.yaml, .git-analyzer.yml, .git-analyzer.json
    """
    search_paths = [os.getcwd()]
    if repo_path:
        search_paths.insert(0, repo_path)

    for search_dir in search_paths:
        for config_name in CONFIG_NAMES:
            config_path = os.path.join(search_dir, config_name)
            if os.path.exists(config_path):
                return config_path

    return None


class ConfigResolver:
    """
    Resolve configuration with precedence: CLI > Config File > Preset > Defaults
    """

    def __init__(
        self,
        cli_args: Dict[str, Any],
        config_path: Optional[str],
        preset_name: Optional[str],
        repo_path: Optional[str],
    ):
        self.cli = {k: v for k, v in cli_args.items() if v is not None}
        self.config = {}
        self.config_path = config_path

        # 1. Load Config File (if provided or auto-discovered)
        if config_path:
            self.config = load_config_file(config_path)
        else:
            auto_path = find_config_file(repo_path)
            if auto_path:
                try:
                    self.config = load_config_file(auto_path)
                    self.config_path = auto_path
                except (OSError, ValueError, yaml.YAMLError) as e:
                    click.echo(
                        f"Warning: Found config file but failed to load: {e}",
                        err=True,
                    )

        # Normalize config keys (kebab-case to snake_case)
        self.config = {k.replace("-", "_"): v for k, v in self.config.items()}

        # 2. Determine Preset
        # CLI preset overrides config preset
        final_preset_name = preset_name or self.config.get("preset")
        self.preset = self._get_preset(final_preset_name)

    def _get_preset(self, name: Optional[str]) -> Dict[str, Any]:
        """Return configuration dictionary for a named preset"""
        if not name:
            return {}
        if name not in PRESETS:
            raise ValueError(f"Unknown preset: {name}")
        return PRESETS[name]

    def get(self, key: str, default: Any = None) -> Any:
        """Resolve value based on precedence"""
        if key in self.cli:
            return self.cli[key]
        if key in self.config:
            return self.config[key]
        if key in self.preset:
            return self.preset[key]
        if default is None:
            return DEFAULTS.get(key)
        return default


def _limit(value: Optional[int]) -> Optional[int]:
    """Top-N setting; 0 or a negative value means no truncation"""
    if value is None or int(value) <= 0:
        return None
    return int(value)


# ============================================================================
# ANALYSIS
# ============================================================================


def run_analysis(
    repo_path: str,
    reporter: ProgressReporter,
    missing_email: str = MISSING_EMAIL_SHARED,
    workers: int = 1,
    chunk_size: int = 5000,
) -> Report:
    """
    Fold the history of a local repository into a Report.

    Raises:
        SourceUnavailable: repository cannot be read
    """
    source = GitCommitSource(repo_path, missing_email=missing_email)

    reporter.stage_start("Git Log Processing", "Streaming commit history...")
    total = source.count_commits()
    progress_bar = reporter.create_progress_bar(total=total, desc="Analyzing commits")
    try:
        if workers > 1:
            fold = fold_commits_parallel(
                source.iter_commits(),
                workers=workers,
                chunk_size=chunk_size,
                progress_bar=progress_bar,
            )
        else:
            fold = fold_commits(source.iter_commits(), progress_bar=progress_bar)
    finally:
        if progress_bar:
            progress_bar.close()

    report = fold.assemble(skipped_commits=source.skipped)
    reporter.stage_complete(
        "Git Log Processing",
        {
            "Commits processed": f"{fold.commits_processed:,}",
            "Contributors": f"{len(report.contributors):,}",
            "Files tracked": f"{len(report.files):,}",
            "Workers": workers,
        },
    )

    if source.skipped:
        reporter.warning(f"Skipped {source.skipped} malformed commit(s)")
        if reporter.verbose:
            for message in source.errors:
                reporter.info(message)

    return report


def render_section(
    report: Report,
    section: str,
    as_json: bool,
    top_contributors: Optional[int],
    top_files: Optional[int],
) -> str:
    if as_json:
        if section == "contributors":
            return render_json(report.contributors_to_list())
        if section == "activity":
            return render_json(report.activity.to_dict())
        if section == "files":
            return render_json(report.files_to_list())
        return render_json(report.to_dict())

    if section == "contributors":
        return render_contributors(report.contributors, top_contributors)
    if section == "activity":
        return render_activity(report.activity)
    if section == "files":
        return render_files(report.files, top_files)
    return render_report(report, top_contributors, top_files)


def execute(section: str, path, url, as_json, config, preset, limit, **kwargs):
    """Shared body of every subcommand"""
    try:
        resolver = ConfigResolver(kwargs, config, preset, None if url else path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        ProgressReporter(use_colors=not kwargs.get("no_color")).error(
            f"Invalid configuration: {e}"
        )
        sys.exit(2)

    quiet = resolver.get("quiet") or as_json
    verbose = resolver.get("verbose")
    reporter = ProgressReporter(
        quiet=quiet, verbose=verbose, use_colors=not resolver.get("no_color")
    )

    missing_email = resolver.get("missing_email")
    if missing_email not in MISSING_EMAIL_POLICIES:
        reporter.error(
            f"missing_email must be one of {', '.join(MISSING_EMAIL_POLICIES)}, "
            f"got {missing_email!r}"
        )
        sys.exit(2)

    workers = int(resolver.get("workers"))
    chunk_size = int(resolver.get("chunk_size"))
    top_contributors = _limit(resolver.get("top_contributors"))
    top_files = _limit(resolver.get("top_files"))
    if limit is not None:
        top_contributors = top_files = _limit(limit)

    if resolver.config_path:
        reporter.info(f"Configuration: {resolver.config_path}")

    try:
        if url:
            reporter.stage_start("Clone", f"Cloning {url}...")
        with open_repository(
            path=path, url=url, progress=reporter.clone_progress
        ) as repo_path:
            if url:
                reporter.close_clone_progress()
                reporter.stage_complete("Clone")
            report = run_analysis(
                repo_path,
                reporter,
                missing_email=missing_email,
                workers=workers,
                chunk_size=chunk_size,
            )
    except AnalyzerError as e:
        reporter.close_clone_progress()
        reporter.error(str(e))
        sys.exit(1)

    click.echo(render_section(report, section, as_json, top_contributors, top_files))

    reporter.summary(
        {
            "Repository": url or os.path.abspath(path),
            "Contributors": f"{len(report.contributors):,}",
            "Files tracked": f"{len(report.files):,}",
            "Total commits": f"{report.activity.total_commits:,}",
            "Skipped commits": report.skipped_commits,
        }
    )
    reporter.success("Analysis complete!")


# ============================================================================
# CLI INTERFACE
# ============================================================================


def analysis_options(func):
    """Options shared by every subcommand"""
    options = [
        click.option(
            "-p",
            "--path",
            default=".",
            show_default=True,
            type=click.Path(file_okay=False),
            help="Path to a local git repository",
        ),
        click.option("-u", "--url", help="Clone this repository URL instead of --path"),
        click.option(
            "-j", "--json", "as_json", is_flag=True, help="Print JSON instead of tables"
        ),
        click.option(
            "--config",
            type=click.Path(exists=True, dir_okay=False),
            help="Configuration file path (.yaml or .json)",
        ),
        click.option(
            "--preset",
            type=click.Choice(sorted(PRESETS)),
            help="Use predefined configuration",
        ),
        click.option(
            "-n",
            "--limit",
            type=int,
            help="Rows to show in tables (0 for all)",
        ),
        click.option("--workers", type=int, help="Parallel fold workers (1 = sequential)"),
        click.option("--chunk-size", type=int, help="Commits per parallel partition"),
        click.option(
            "--missing-email",
            type=click.Choice(MISSING_EMAIL_POLICIES),
            help="Group commits without an email into one bucket or by author name",
        ),
        click.option(
            "-q", "--quiet", is_flag=True, default=None, help="Suppress progress output"
        ),
        click.option(
            "-v",
            "--verbose",
            is_flag=True,
            default=None,
            help="Show detailed progress information",
        ),
        click.option(
            "--no-color", is_flag=True, default=None, help="Disable colored output"
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(version=VERSION)
def main():
    """Analyze Git repositories for insights and statistics"""


@main.command()
@analysis_options
def contributors(**kwargs):
    """Top contributors and their work patterns"""
    execute("contributors", **kwargs)


@main.command()
@analysis_options
def activity(**kwargs):
    """Commit activity by month and by hour of day"""
    execute("activity", **kwargs)


@main.command()
@analysis_options
def files(**kwargs):
    """Most frequently modified files"""
    execute("files", **kwargs)


@main.command(name="all")
@analysis_options
def all_command(**kwargs):
    """Run all analyses"""
    execute("all", **kwargs)


if __name__ == "__main__":
    main()
