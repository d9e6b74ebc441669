import json
import os

import pytest
from click.testing import CliRunner

from git_analyzer import (
    DEFAULTS,
    ConfigResolver,
    ProgressReporter,
    find_config_file,
    load_config_file,
    main,
)
from commit_source import CloneProgress


@pytest.fixture
def runner():
    return CliRunner()


# ============================================================================
# CLI: COMMANDS
# ============================================================================


class TestCommands:
    def test_contributors_table(self, runner, git_repo):
        result = runner.invoke(main, ["contributors", "-p", git_repo, "--no-color"])
        assert result.exit_code == 0, result.output
        assert "Top Contributors" in result.output
        assert "tester@test.com" in result.output
        assert "Legend:" in result.output

    def test_contributors_json(self, runner, git_repo):
        result = runner.invoke(main, ["contributors", "-p", git_repo, "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert [c["identity_key"] for c in data] == [
            "tester@test.com",
            "owl@example.com",
        ]
        assert data[0]["classification"] == {"label": "Unknown", "confidence": 0}

    def test_activity_json(self, runner, git_repo):
        result = runner.invoke(main, ["activity", "-p", git_repo, "-j"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["monthly"] == [
            {"month": "2024-04", "count": 3},
            {"month": "2024-05", "count": 1},
        ]
        assert len(data["hourly"]) == 24
        assert data["hourly"][22] == 1

    def test_activity_table(self, runner, git_repo):
        result = runner.invoke(main, ["activity", "-p", git_repo, "-q"])
        assert result.exit_code == 0, result.output
        assert "2024-05: 1 commits" in result.output
        assert "22:00 - 22:59: 1 commits" in result.output

    def test_files_json(self, runner, git_repo):
        result = runner.invoke(main, ["files", "-p", git_repo, "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data[0] == {
            "path": "app.py",
            "commit_count": 3,
            "last_modified": "2024-05-02T09:05:00+00:00",
        }

    def test_files_limit(self, runner, git_repo):
        result = runner.invoke(main, ["files", "-p", git_repo, "-q", "-n", "1"])
        assert result.exit_code == 0, result.output
        assert "app.py" in result.output
        assert "lib.py" not in result.output

    def test_all_json(self, runner, git_repo):
        result = runner.invoke(main, ["all", "-p", git_repo, "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert set(data) == {"contributors", "files", "activity", "skipped_commits"}
        assert data["skipped_commits"] == 0

    def test_all_table(self, runner, git_repo):
        result = runner.invoke(main, ["all", "-p", git_repo, "--no-color"])
        assert result.exit_code == 0, result.output
        assert "Top Contributors" in result.output
        assert "Commit Activity by Month" in result.output
        assert "Most Modified Files" in result.output

    def test_parallel_matches_sequential(self, runner, git_repo):
        sequential = runner.invoke(main, ["all", "-p", git_repo, "--json"])
        parallel = runner.invoke(
            main, ["all", "-p", git_repo, "--json", "--workers", "2", "--chunk-size", "1"]
        )
        assert parallel.exit_code == 0, parallel.output
        assert json.loads(parallel.output) == json.loads(sequential.output)

    def test_clone_url(self, runner, git_repo):
        result = runner.invoke(main, ["files", "--url", git_repo, "--json"])
        assert result.exit_code == 0, result.output
        assert len(json.loads(result.output)) == 3

    def test_empty_repository(self, runner, empty_repo):
        result = runner.invoke(main, ["all", "-p", empty_repo, "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["contributors"] == []
        assert data["files"] == []
        assert data["activity"]["hourly"] == [0] * 24

    def test_not_a_repository(self, runner, tmp_path):
        result = runner.invoke(main, ["contributors", "-p", str(tmp_path)])
        assert result.exit_code == 1
        assert "Not a git repository" in result.output

    def test_missing_path(self, runner, tmp_path):
        result = runner.invoke(main, ["files", "-p", str(tmp_path / "nope")])
        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_clone_failure(self, runner, tmp_path):
        result = runner.invoke(main, ["all", "--url", str(tmp_path / "nope")])
        assert result.exit_code == 1
        assert "Failed to clone" in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("contributors", "activity", "files", "all"):
            assert command in result.output


class TestCommandConfiguration:
    def test_auto_discovered_config(self, runner, git_repo):
        with open(os.path.join(git_repo, ".git-analyzer.yaml"), "w") as f:
            f.write("top-files: 1\n")
        result = runner.invoke(main, ["files", "-p", git_repo, "-q"])
        assert result.exit_code == 0, result.output
        assert "app.py" in result.output
        assert "lib.py" not in result.output

    def test_cli_limit_overrides_config(self, runner, git_repo, tmp_path):
        config = tmp_path / "config.json"
        config.write_text('{"top_files": 1}', encoding="utf-8")
        result = runner.invoke(
            main, ["files", "-p", git_repo, "-q", "--config", str(config), "-n", "0"]
        )
        assert result.exit_code == 0, result.output
        assert "readme.md" in result.output

    def test_missing_email_policy_from_config(self, runner, git_repo, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("missing_email: everyone\n", encoding="utf-8")
        result = runner.invoke(main, ["all", "-p", git_repo, "--config", str(config)])
        assert result.exit_code == 2
        assert "missing_email" in result.output

    def test_unsupported_config(self, runner, git_repo, tmp_path):
        config = tmp_path / "config.txt"
        config.write_text("", encoding="utf-8")
        result = runner.invoke(main, ["all", "-p", git_repo, "--config", str(config)])
        assert result.exit_code == 2
        assert "Invalid configuration" in result.output

    def test_full_preset(self, runner, git_repo):
        result = runner.invoke(main, ["files", "-p", git_repo, "-q", "--preset", "full"])
        assert result.exit_code == 0, result.output
        assert "readme.md" in result.output


# ============================================================================
# CONFIGURATION
# ============================================================================


class TestConfigurationLoading:
    def test_load_yaml(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("workers: 3\npreset: full\n", encoding="utf-8")
        assert load_config_file(str(path)) == {"workers": 3, "preset": "full"}

    def test_load_json(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text('{"workers": 2}', encoding="utf-8")
        assert load_config_file(str(path)) == {"workers": 2}

    def test_load_empty_yaml(self, tmp_path):
        path = tmp_path / "c.yml"
        path.write_text("", encoding="utf-8")
        assert load_config_file(str(path)) == {}

    def test_load_non_mapping(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config_file(str(path))

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_config_file("/nonexistent/config.yaml")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "c.toml"
        path.touch()
        with pytest.raises(ValueError):
            load_config_file(str(path))


class TestConfigFileDiscovery:
    def test_find_in_repo(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        repo = tmp_path / "repo"
        repo.mkdir()
        (repo / ".git-analyzer.json").write_text("{}", encoding="utf-8")
        assert find_config_file(str(repo)) == str(repo / ".git-analyzer.json")

    def test_yaml_preferred(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".git-analyzer.json").write_text("{}", encoding="utf-8")
        (tmp_path / ".git-analyzer.yaml").write_text("a: 1", encoding="utf-8")
        assert find_config_file(str(tmp_path)).endswith(".git-analyzer.yaml")

    def test_falls_back_to_cwd(self, tmp_path, monkeypatch):
        cwd = tmp_path / "cwd"
        cwd.mkdir()
        (cwd / ".git-analyzer.yml").write_text("a: 1", encoding="utf-8")
        monkeypatch.chdir(cwd)
        assert find_config_file(str(tmp_path)) == str(cwd / ".git-analyzer.yml")

    def test_not_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert find_config_file(str(tmp_path)) is None


class TestConfigResolver:
    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        resolver = ConfigResolver({}, None, None, str(tmp_path))
        for key, value in DEFAULTS.items():
            assert resolver.get(key) == value

    def test_precedence(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = tmp_path / "c.json"
        config.write_text('{"workers": 2, "top_files": 5}', encoding="utf-8")

        resolver = ConfigResolver({"workers": 8}, str(config), "parallel", None)
        assert resolver.get("workers") == 8
        assert resolver.get("top_files") == 5

        resolver = ConfigResolver({}, None, "parallel", str(tmp_path))
        assert resolver.get("workers") == 4

    def test_none_cli_values_ignored(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        resolver = ConfigResolver({"quiet": None}, None, None, None)
        assert resolver.get("quiet") is False

    def test_config_preset(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".git-analyzer.yaml").write_text("preset: full\n", encoding="utf-8")
        resolver = ConfigResolver({}, None, None, str(tmp_path))
        assert resolver.get("top_contributors") == 0

    def test_key_normalization(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = tmp_path / "c.yaml"
        config.write_text("chunk-size: 10\n", encoding="utf-8")
        resolver = ConfigResolver({}, str(config), None, None)
        assert resolver.get("chunk_size") == 10

    def test_unknown_preset(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ValueError):
            ConfigResolver({}, None, "turbo", None)


# ============================================================================
# PROGRESS REPORTER
# ============================================================================


class TestProgressReporter:
    def test_messages_go_to_stderr(self, capsys):
        reporter = ProgressReporter(verbose=True, use_colors=False)
        reporter.stage_start("Stage 1", "Details")
        reporter.info("Info")
        reporter.warning("Warn")
        reporter.success("Done")
        reporter.stage_complete("Stage 1", {"Stat": 1})
        reporter.summary({"Total": 10})

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Stage 1" in captured.err
        assert "Warn" in captured.err
        assert "Stat: 1" in captured.err
        assert "ANALYSIS SUMMARY" in captured.err

    def test_quiet_mode(self, capsys):
        reporter = ProgressReporter(quiet=True)
        reporter.stage_start("Stage")
        reporter.info("Info")
        reporter.warning("Warn")
        reporter.error("Boom")
        captured = capsys.readouterr()
        assert "Info" not in captured.err
        assert "Warn" not in captured.err
        assert "Boom" in captured.err

    def test_colorize(self):
        assert ProgressReporter(use_colors=False)._colorize("x", "\033[31m") == "x"
        assert "\033[31m" in ProgressReporter(use_colors=True)._colorize("x", "\033[31m")

    def test_progress_bar(self):
        assert ProgressReporter(quiet=True).create_progress_bar(10) is None
        bar = ProgressReporter(use_colors=False).create_progress_bar(10)
        bar.update(3)
        assert bar.n == 3
        bar.close()

    def test_clone_progress_bars(self):
        reporter = ProgressReporter(use_colors=False)
        reporter.clone_progress(CloneProgress("Receiving objects", 50, 5, 10))
        reporter.clone_progress(CloneProgress("Receiving objects", 100, 10, 10))
        assert reporter.clone_bar.n == 10
        reporter.clone_progress(CloneProgress("Resolving deltas", 50, 1, 2))
        assert reporter.clone_stage == "Resolving deltas"
        assert reporter.clone_bar.n == 1
        reporter.close_clone_progress()
        assert reporter.clone_bar is None
