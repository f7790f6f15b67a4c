"""Integration tests for CLI commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from reviewgraph import __version__
from reviewgraph.cli import app
from reviewgraph.config import ReviewConfig
from reviewgraph.orchestrator import ReviewOrchestrator
from reviewgraph.runner import CommandResult

runner = CliRunner()


def clone_into(args, cwd):
    Path(args[-1]).mkdir(parents=True)
    return CommandResult(returncode=0)


@pytest.fixture
def project(temp_dir: Path) -> Path:
    """A one-file project with an eval call on line 2."""
    (temp_dir / "src").mkdir()
    (temp_dir / "src" / "app.ts").write_text("const raw = read();\nconst data = eval(raw);\n")
    return temp_dir


@pytest.fixture
def fake_orchestrator(monkeypatch, sandbox_config, make_fake_runner):
    """Route the CLI's orchestrator through a FakeRunner; returns the runner."""
    fake = make_fake_runner({
        "git clone --depth 1": clone_into,
        "npm run build": CommandResult(returncode=0),
        "npx eslint": CommandResult(returncode=0, stdout="[]"),
        "npm test": CommandResult(returncode=0, stdout="3 passed, 3 total"),
    })
    orchestrator = ReviewOrchestrator(ReviewConfig(sandbox=sandbox_config), runner=fake)
    monkeypatch.setattr("reviewgraph.cli._orchestrator", lambda: orchestrator)
    return fake


class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"reviewgraph v{__version__}" in result.stdout


class TestAnalyzeCommand:
    """Tests for 'reviewgraph analyze'."""

    def test_analyze_json(self, sample_project_path: Path, isolated_config):
        diff = sample_project_path / "change.diff"
        result = runner.invoke(app, ["analyze", str(diff), "--root", str(sample_project_path), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["graph"]["changedSymbols"] == ["src/pricing.ts:sumLines", "src/pricing.ts:total"]
        assert "src/pricing.ts:calculateTotal" in data["graph"]["affectedSymbols"]
        assert "src/checkout.ts:total" not in data["graph"]["affectedSymbols"]

    def test_analyze_all_files(self, sample_project_path: Path, isolated_config):
        diff = sample_project_path / "change.diff"
        result = runner.invoke(
            app, ["analyze", str(diff), "--root", str(sample_project_path), "--all-files", "--json"]
        )

        assert result.exit_code == 0
        assert "src/checkout.ts:total" in json.loads(result.stdout)["graph"]["affectedSymbols"]

    def test_analyze_from_diff_text_only(self, sample_project_path: Path, isolated_config):
        result = runner.invoke(app, ["analyze", str(sample_project_path / "change.diff")])

        assert result.exit_code == 0
        assert "LOW RISK" in result.stdout
        assert "Changed: 2" in result.stdout

    def test_diff_text_matches_checkout(self, sample_project_path: Path, isolated_config):
        diff = str(sample_project_path / "change.diff")
        from_diff = json.loads(runner.invoke(app, ["analyze", diff, "--json"]).stdout)
        from_root = json.loads(runner.invoke(app, ["analyze", diff, "--root", str(sample_project_path), "--json"]).stdout)

        assert from_diff["graph"]["changedSymbols"] == ["src/pricing.ts:sumLines", "src/pricing.ts:total"]
        assert from_diff["graph"]["changedSymbols"] == from_root["graph"]["changedSymbols"]
        node = from_diff["graph"]["nodes"]["src/pricing.ts:sumLines"]
        assert node["symbol"]["startLine"] == 10

    def test_analyze_missing_diff(self, isolated_config):
        result = runner.invoke(app, ["analyze", "/nonexistent/change.diff"])
        assert result.exit_code != 0


class TestPatchesCommand:
    """Tests for 'reviewgraph patches'."""

    def test_generate_and_write(self, project: Path, temp_dir: Path, isolated_config):
        suggestions = temp_dir / "suggestions.json"
        suggestions.write_text(json.dumps([
            {"file": "src/app.ts", "category": "Security", "issue": "eval is unsafe", "suggestion": "Use JSON.parse"},
            {"file": "src/missing.ts", "category": "Bug", "issue": "null access", "suggestion": "Guard it"},
        ]))
        output = temp_dir / "patches.json"

        result = runner.invoke(app, ["patches", str(suggestions), "--root", str(project), "--output", str(output)])

        assert result.exit_code == 0
        data = json.loads(output.read_text())
        assert data["summary"]["patchesGenerated"] == 1
        assert data["summary"]["skippedCount"] == 1
        assert "JSON.parse(raw)" in data["patches"][0]["patchedContent"]
        assert data["skipped"][0]["reason"] == "File content not available"

    def test_suggestions_under_key(self, project: Path, temp_dir: Path, isolated_config):
        suggestions = temp_dir / "review.json"
        suggestions.write_text(json.dumps({"suggestions": [
            {"file": "src/app.ts", "category": "Security", "issue": "eval", "suggestion": "Use JSON.parse"},
        ]}))
        result = runner.invoke(app, ["patches", str(suggestions), "--root", str(project)])
        assert result.exit_code == 0
        assert "Patches: 1" in result.stdout

    def test_invalid_json(self, project: Path, temp_dir: Path, isolated_config):
        bad = temp_dir / "bad.json"
        bad.write_text("{not json")
        result = runner.invoke(app, ["patches", str(bad), "--root", str(project)])
        assert result.exit_code != 0


class TestValidateCommand:
    """Tests for 'reviewgraph validate' with a fake command runner."""

    def test_validate_patches_json(self, temp_dir: Path, fake_orchestrator, isolated_config):
        patches = temp_dir / "patches.json"
        patches.write_text(json.dumps({"patches": [
            {"file": "src/app.ts", "patchedContent": "export const x = 1;\n", "description": "d", "type": "fix"},
        ]}))

        result = runner.invoke(app, ["validate", str(patches), "--repo", "repo", "--branch", "main", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data[0]["file"] == "src/app.ts"
        assert data[0]["summary"]["recommendation"] == "approve"
        assert data[0]["testResults"]["passed"] == 3

    def test_validate_from_suggestions(self, project: Path, temp_dir: Path, fake_orchestrator, isolated_config):
        suggestions = temp_dir / "suggestions.json"
        suggestions.write_text(json.dumps([
            {"file": "src/app.ts", "category": "Security", "issue": "eval", "suggestion": "Use JSON.parse"},
        ]))

        result = runner.invoke(
            app, ["validate", str(suggestions), "--repo", "repo", "-b", "main", "--root", str(project), "--json"]
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout)[0]["success"] is True

    def test_rejection_exits_non_zero(self, temp_dir: Path, fake_orchestrator, isolated_config):
        fake_orchestrator.responses["npm run build"] = CommandResult(returncode=1, stderr="build broke")
        patches = temp_dir / "patches.json"
        patches.write_text(json.dumps([
            {"file": "src/app.ts", "patchedContent": "broken(", "description": "d", "type": "fix"},
        ]))

        result = runner.invoke(app, ["validate", str(patches), "--repo", "repo", "--branch", "main"])

        assert result.exit_code == 1

    def test_nothing_to_validate(self, temp_dir: Path, fake_orchestrator, isolated_config):
        empty = temp_dir / "empty.json"
        empty.write_text("[]")
        result = runner.invoke(app, ["validate", str(empty), "--repo", "repo", "--branch", "main"])
        assert result.exit_code == 0
        assert "No patches to validate" in result.stdout
        assert fake_orchestrator.calls == []


class TestScanCommand:
    def test_scan_file_json(self, temp_dir: Path, isolated_config):
        target = temp_dir / "deploy.env"
        target.write_text('DB_PASSWORD = "hunter22"\n')

        result = runner.invoke(app, ["scan", str(target), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["summary"]["toolsRun"] == ["Security Scanner"]
        assert data["issues"][0]["rule"] == "no-hardcoded-credentials"

    def test_scan_absolute_directory_runs_tools(self, temp_dir: Path, fake_orchestrator, isolated_config):
        fake_orchestrator.responses["ruff check"] = CommandResult(returncode=0, stdout="[]")
        scanned = temp_dir.resolve() / "pkg"
        (scanned / "sub").mkdir(parents=True)
        (scanned / "sub" / "a.py").write_text("import os\n")

        result = runner.invoke(app, ["scan", str(scanned), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["summary"]["toolsRun"] == ["Ruff", "Security Scanner"]
        ruff_calls = [c for c in fake_orchestrator.commands() if c.startswith("ruff check")]
        assert len(ruff_calls) == 1
        assert ruff_calls[0].endswith("sub/a.py")

    def test_scan_file_and_directory_share_a_base(self, temp_dir: Path, fake_orchestrator, isolated_config):
        (temp_dir / "src").mkdir()
        (temp_dir / "src" / "app.ts").write_text("const x = eval(input);\n")
        (temp_dir / "deploy.env").write_text('API_KEY = "abcdef"\n')

        result = runner.invoke(app, ["scan", str(temp_dir / "src"), str(temp_dir / "deploy.env"), "--json"])

        assert result.exit_code == 0
        files = {issue["file"] for issue in json.loads(result.stdout)["issues"]}
        assert files == {"src/app.ts", "deploy.env"}

    def test_scan_missing_path(self, isolated_config):
        result = runner.invoke(app, ["scan", "/nonexistent/file.ts"])
        assert result.exit_code != 0


class TestConfigCommands:
    def test_show_config(self, isolated_config):
        result = runner.invoke(app, ["show-config"])
        assert result.exit_code == 0
        assert "node:18-alpine" in result.stdout

    def test_init_config(self, isolated_config: Path):
        result = runner.invoke(app, ["init-config"])
        assert result.exit_code == 0
        assert isolated_config.exists()

        again = runner.invoke(app, ["init-config"])
        assert again.exit_code == 1

        forced = runner.invoke(app, ["init-config", "--force"])
        assert forced.exit_code == 0
