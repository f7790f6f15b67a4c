"""Typer-based CLI for reviewgraph change-impact analysis and patch validation."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from . import __version__, config
from .diff_engine import DiffEngine
from .orchestrator import ReviewOrchestrator
from .parser import collect_source_files
from .review_models import CodePatch, Suggestion

console = Console()

app = typer.Typer(
    help="reviewgraph: impact analysis, patch generation and sandboxed patch validation.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

RECOMMENDATION_STYLE = {"approve": "green", "review": "yellow", "reject": "red"}
SEVERITY_STYLE = {"error": "red", "warning": "yellow", "info": "dim"}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"reviewgraph v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
):
    """reviewgraph: review a change by its blast radius, then prove the fixes."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _orchestrator() -> ReviewOrchestrator:
    return ReviewOrchestrator(config.load_config())


def _read_text(path: Path) -> str:
    if not path.exists():
        raise typer.BadParameter(f"File not found: {path}")
    return path.read_text(encoding="utf-8", errors="ignore")


def _load_json_list(path: Path, key: str) -> List[Dict[str, Any]]:
    try:
        data = json.loads(_read_text(path))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{path} is not valid JSON: {exc}")
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise typer.BadParameter(f"{path} must contain a JSON list of {key}.")
    return data


# ===================================================================
# analyze
# ===================================================================

@app.command("analyze")
def analyze(
    diff_file: Path = typer.Argument(..., help="Unified diff to analyze."),
    root: Optional[Path] = typer.Option(None, "--root", "-r", file_okay=False, help="Checkout the diff applies to."),
    all_files: bool = typer.Option(False, "--all-files", help="Scan every source file under --root, not only changed ones."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
):
    """Find changed and affected symbols and assess the change's risk."""
    diff = _read_text(diff_file)
    result = _orchestrator().analyze_diff(diff, root=root, whole_project=all_files)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    summary = result.summary
    risk = result.insights.risk_assessment
    color = "red" if risk.startswith("HIGH") else "yellow" if risk.startswith("MEDIUM") else "green"
    console.print(Panel.fit(f"[bold {color}]{risk}[/bold {color}]", title="[bold]Risk[/bold]", border_style=color))
    console.print(
        f"Symbols: {summary.total_symbols} | Changed: {summary.changed_symbols} | "
        f"Affected: {summary.affected_symbols} | High impact: {summary.high_impact_changes} | "
        f"{summary.analysis_time_ms}ms"
    )

    nodes = result.graph.nodes
    if result.graph.changed_symbols:
        table = Table(title="\nChanged Symbols", show_header=True)
        table.add_column("Symbol", style="cyan")
        table.add_column("Kind")
        table.add_column("Lines")
        table.add_column("Impact", justify="right")
        table.add_column("Complexity")
        for key in result.graph.changed_symbols:
            node = nodes[key]
            table.add_row(
                key,
                node.symbol.kind,
                f"{node.symbol.start_line}-{node.symbol.end_line}",
                str(node.impact_score),
                node.complexity,
            )
        console.print(table)

    if result.graph.affected_symbols:
        console.print("\n[bold yellow]Affected[/bold yellow]")
        for key in result.graph.affected_symbols:
            console.print(f"  • {key}")

    for title, items in (
        ("Architectural concerns", result.insights.architectural_concerns),
        ("Refactoring opportunities", result.insights.refactoring_opportunities),
        ("Dependency issues", result.insights.dependency_issues),
    ):
        if items:
            console.print(f"\n[bold]{title}[/bold]")
            for item in items:
                console.print(f"  • {item}")


# ===================================================================
# patches
# ===================================================================

@app.command("patches")
def patches(
    suggestions_file: Path = typer.Argument(..., help="JSON list of review suggestions."),
    root: Path = typer.Option(Path("."), "--root", "-r", exists=True, file_okay=False, help="Project the suggestions refer to."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write generated patches as JSON."),
    show_diff: bool = typer.Option(False, "--show-diff", help="Print a unified diff for each patch."),
):
    """Turn review suggestions into concrete file patches."""
    suggestions = [Suggestion.from_dict(item) for item in _load_json_list(suggestions_file, "suggestions")]
    result = _orchestrator().generate_patches(suggestions, root=root)

    summary = result.summary
    console.print(
        f"Suggestions: {summary['totalSuggestions']} | "
        f"[green]Patches: {summary['patchesGenerated']}[/green] | "
        f"[yellow]Skipped: {summary['skippedCount']}[/yellow]"
    )
    for patch in result.patches:
        console.print(f"  [green]✓[/green] {patch}")
        if show_diff:
            diff = DiffEngine().create_diff(patch.original_content, patch.patched_content, patch.file)
            console.print(Syntax(diff or "(no textual change)", "diff", theme="monokai"))
    for skipped in result.skipped:
        console.print(f"  [yellow]–[/yellow] {skipped.suggestion.file}: {skipped.reason}")

    if output:
        output.write_text(json.dumps(result.to_dict(), indent=2))
        console.print(f"\n[green]✓[/green] Patches written to {output}")


# ===================================================================
# validate
# ===================================================================

@app.command("validate")
def validate(
    input_file: Path = typer.Argument(..., help="JSON list of suggestions or of generated patches."),
    repo: str = typer.Option(..., "--repo", help="Repository URL (or local path) to clone."),
    branch: str = typer.Option(..., "--branch", "-b", help="Branch the patches target."),
    root: Path = typer.Option(Path("."), "--root", "-r", exists=True, file_okay=False, help="Local checkout used to read original files."),
    test_command: Optional[str] = typer.Option(None, "--test-command", "-t", help="Test command to run instead of the defaults."),
    workers: int = typer.Option(1, "--workers", "-w", min=1, help="Patches validated concurrently."),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON."),
):
    """Validate patches in isolated clones. Exits 1 if any patch is rejected."""
    orchestrator = _orchestrator()
    items = _load_json_list(input_file, "patches")

    if items and all("patchedContent" in item for item in items):
        patch_list = [CodePatch.from_dict(item) for item in items]
    else:
        generated = orchestrator.generate_patches([Suggestion.from_dict(i) for i in items], root=root)
        patch_list = generated.patches
        for skipped in generated.skipped:
            console.print(f"[yellow]–[/yellow] Skipped {skipped.suggestion.file}: {skipped.reason}")

    if not patch_list:
        console.print("[yellow]No patches to validate.[/yellow]")
        raise typer.Exit(0)

    with console.status(f"[cyan]Validating {len(patch_list)} patch(es)..."):
        results = orchestrator.validate(repo, branch, patch_list, test_command=test_command, max_workers=workers)

    if as_json:
        typer.echo(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        table = Table(title="Sandbox Validation", show_header=True)
        table.add_column("File", style="cyan")
        table.add_column("Build")
        table.add_column("Lint")
        table.add_column("Tests")
        table.add_column("Recommendation")
        table.add_column("Reasoning")
        for r in results:
            style = RECOMMENDATION_STYLE[r.summary.recommendation]
            table.add_row(
                r.file,
                "✓" if r.build_results.success else "✗",
                f"{r.lint_results.error_count}E/{r.lint_results.warning_count}W",
                f"{r.test_results.passed}/{r.test_results.total}",
                f"[{style}]{r.summary.recommendation}[/{style}] ({r.summary.confidence})",
                r.summary.reasoning,
            )
        console.print(table)

    if any(r.summary.recommendation == "reject" for r in results):
        raise typer.Exit(1)


# ===================================================================
# scan
# ===================================================================

@app.command("scan")
def scan(
    paths: List[Path] = typer.Argument(..., help="Files or directories to analyze."),
    diff_file: Optional[Path] = typer.Option(None, "--diff", help="Diff used to extract code hunks."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
):
    """Run the security scanner plus ESLint, tsc and Ruff where they apply."""
    base, files = _collect_scan_targets(paths)

    diff = _read_text(diff_file) if diff_file else ""
    result = _orchestrator().scan(files, diff=diff)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    summary = result.summary
    console.print(
        f"Tools: {', '.join(summary['toolsRun'])} | Issues: {summary['totalIssues']} "
        f"([red]{summary['errorCount']} errors[/red], [yellow]{summary['warningCount']} warnings[/yellow], "
        f"{summary['infoCount']} info)"
    )
    console.print(f"[dim]Paths relative to {base}[/dim]")
    for issue in result.issues:
        style = SEVERITY_STYLE.get(issue.severity, "white")
        console.print(f"  [{style}]{issue.severity:<7}[/{style}] {issue.file}:{issue.line} [dim]{issue.rule}[/dim] {issue.message}")
        if issue.suggestion:
            console.print(f"          💡 {issue.suggestion}")


def _collect_scan_targets(paths: List[Path]) -> Tuple[Path, Dict[str, str]]:
    """Read *paths* keyed relative to their common parent directory."""
    for path in paths:
        if not path.exists():
            raise typer.BadParameter(f"Path not found: {path}")

    resolved = [path.resolve() for path in paths]
    base = Path(os.path.commonpath([str(p if p.is_dir() else p.parent) for p in resolved]))

    files: Dict[str, str] = {}
    for path in resolved:
        if path.is_dir():
            for rel, text in collect_source_files(path).items():
                files[(path / rel).relative_to(base).as_posix()] = text
        else:
            files[path.relative_to(base).as_posix()] = path.read_text(encoding="utf-8", errors="ignore")
    return base, files


# ===================================================================
# configuration
# ===================================================================

@app.command("show-config")
def show_config():
    """Show the effective configuration."""
    cfg = config.load_config()
    table = Table(title="reviewgraph configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("config file", str(config.CONFIG_FILE))
    table.add_row("sandbox.sandbox_dir", str(cfg.sandbox.sandbox_dir))
    table.add_row("sandbox.docker_image", cfg.sandbox.docker_image)
    table.add_row("sandbox.timeout_ms", str(cfg.sandbox.timeout_ms))
    table.add_row("sandbox.build_commands", "; ".join(" ".join(c) for c in cfg.sandbox.build_commands))
    table.add_row("sandbox.lint_commands", "; ".join(" ".join(c) for c in cfg.sandbox.lint_commands))
    table.add_row("sandbox.test_commands", "; ".join(" ".join(c) for c in cfg.sandbox.test_commands))
    table.add_row("analysis.proximity_threshold", str(cfg.analysis.proximity_threshold))
    table.add_row("analysis.high_impact_threshold", str(cfg.analysis.high_impact_threshold))
    table.add_row("analysis.symbol_source", cfg.analysis.symbol_source)
    console.print(table)


@app.command("init-config")
def init_config(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config file."),
):
    """Write the default configuration to the config file."""
    if config.CONFIG_FILE.exists() and not force:
        console.print(f"[red]✗[/red] {config.CONFIG_FILE} already exists. Use --force to overwrite.")
        raise typer.Exit(1)
    path = config.save_config(config.ReviewConfig())
    console.print(f"[green]✓[/green] Wrote default configuration to {path}")


if __name__ == "__main__":
    app()
