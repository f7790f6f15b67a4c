"""Static analysis orchestrator: pattern scanner plus ESLint, tsc and Ruff.

Every finding is normalized into :class:`StaticAnalysisIssue`. The lint
output parsers are module-level so the sandbox validator can reuse them on
whatever its lint phase printed.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .diff_engine import DiffEngine
from .parser import detect_language
from .review_models import IssueCategory, Severity, StaticAnalysisIssue, StaticAnalysisResult
from .runner import CommandRunner
from .security_scanner import PatternSecurityScanner

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"error": 3, "warning": 2, "info": 1}
CATEGORY_ORDER = {"security": 5, "performance": 4, "type": 3, "maintainability": 2, "style": 1, "syntax": 1}

TSC_ERROR_RE = re.compile(r"^(.+?)\((\d+),(\d+)\): error TS(\d+): (.+)$")

ESLINT_CONFIG: Dict[str, Any] = {
    "env": {"browser": True, "es2021": True, "node": True},
    "extends": ["eslint:recommended"],
    "parserOptions": {"ecmaVersion": "latest", "sourceType": "module"},
    "rules": {
        "no-eval": "error",
        "no-implied-eval": "error",
        "no-new-func": "error",
        "no-script-url": "error",
        "prefer-const": "error",
        "no-var": "error",
        "no-loop-func": "warn",
        "complexity": ["warn", {"max": 10}],
        "max-depth": ["warn", {"max": 4}],
        "max-lines-per-function": ["warn", {"max": 50}],
        "eqeqeq": "error",
        "no-console": "warn",
        "no-debugger": "error",
        "no-alert": "error",
    },
}

TS_CONFIG: Dict[str, Any] = {
    "compilerOptions": {
        "target": "ES2020",
        "lib": ["ES2020", "DOM"],
        "module": "ESNext",
        "moduleResolution": "node",
        "allowJs": True,
        "strict": True,
        "noImplicitReturns": True,
        "noFallthroughCasesInSwitch": True,
        "esModuleInterop": True,
        "skipLibCheck": True,
        "resolveJsonModule": True,
        "isolatedModules": True,
        "noEmit": True,
        "jsx": "react-jsx",
    },
    "include": ["**/*"],
    "exclude": ["node_modules", "dist"],
}


class StaticAnalyzer:
    """Runs every applicable analyzer over a set of in-memory files."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        scanner: Optional[PatternSecurityScanner] = None,
        diff_engine: Optional[DiffEngine] = None,
        tool_timeout: float = 120.0,
    ):
        self.runner = runner or CommandRunner()
        self.scanner = scanner or PatternSecurityScanner()
        self.diff_engine = diff_engine or DiffEngine()
        self.tool_timeout = tool_timeout

    def analyze(
        self,
        files: Mapping[str, str],
        diff: str = "",
        repo_context: Optional[Mapping[str, str]] = None,
    ) -> StaticAnalysisResult:
        """Analyze *files* (path -> content) and return prioritized issues.

        The files are written to a private temporary tree for the external
        tools; the tree is removed before returning, whatever happens.
        """
        started = time.monotonic()
        result = StaticAnalysisResult()
        if repo_context:
            result.tool_results["repoContext"] = dict(repo_context)

        temp_dir = Path(tempfile.mkdtemp(prefix="reviewgraph-analysis-"))
        try:
            written = self._write_files(temp_dir, files)

            if diff:
                result.code_hunks = self.diff_engine.extract_code_hunks(files, diff)
                result.tool_results["hunks"] = {"hunksExtracted": len(result.code_hunks)}

            languages = {path: detect_language(path) for path in written}
            js_files = [p for p, lang in languages.items() if lang in ("javascript", "jsx", "typescript", "tsx")]
            ts_files = [p for p, lang in languages.items() if lang in ("typescript", "tsx")]
            py_files = [p for p, lang in languages.items() if lang == "python"]

            if js_files:
                issues, raw = self._run_eslint(temp_dir, js_files)
                result.issues.extend(issues)
                result.tool_results["eslint"] = raw
                result.tools_run.append("ESLint")

            if ts_files:
                issues, raw = self._run_tsc(temp_dir)
                result.issues.extend(issues)
                result.tool_results["typescript"] = raw
                result.tools_run.append("TypeScript")

            if py_files:
                issues, raw = self._run_ruff(temp_dir, py_files)
                result.issues.extend(issues)
                result.tool_results["ruff"] = raw
                result.tools_run.append("Ruff")

            issues, stats = self.scanner.scan_files(files)
            result.issues.extend(issues)
            result.tool_results["security"] = stats
            result.tools_run.append("Security Scanner")
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

        result.issues = prioritize_issues(result.issues)
        result.analysis_time_ms = int((time.monotonic() - started) * 1000)
        logger.debug("Static analysis found %d issues in %dms", len(result.issues), result.analysis_time_ms)
        return result

    # ------------------------------------------------------------------
    # Tool runs
    # ------------------------------------------------------------------

    @staticmethod
    def _write_files(root: Path, files: Mapping[str, str]) -> List[str]:
        written: List[str] = []
        resolved_root = root.resolve()
        for rel_path, content in files.items():
            target = (root / rel_path).resolve()
            if resolved_root not in target.parents:
                logger.warning("Refusing to write %s outside the analysis directory", rel_path)
                continue
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
            except OSError as exc:
                logger.warning("Failed to write file %s: %s", rel_path, exc)
                continue
            written.append(rel_path)
        return written

    def _run_eslint(self, root: Path, paths: List[str]):
        (root / ".eslintrc.json").write_text(json.dumps(ESLINT_CONFIG, indent=2))
        proc = self.runner.run(
            ["npx", "eslint", "--format", "json", *paths],
            cwd=root,
            timeout=self.tool_timeout,
            env={"ESLINT_USE_FLAT_CONFIG": "false"},
        )
        data = _load_json(proc.stdout)
        if not isinstance(data, list):
            logger.warning("Failed to parse ESLint output")
            return [], None
        return parse_eslint_results(data, root), data

    def _run_tsc(self, root: Path):
        (root / "tsconfig.json").write_text(json.dumps(TS_CONFIG, indent=2))
        proc = self.runner.run(
            ["npx", "tsc", "--noEmit", "--pretty", "false", "-p", "tsconfig.json"],
            cwd=root,
            timeout=self.tool_timeout,
        )
        if proc.ok:
            return [], None
        output = proc.stdout or proc.stderr
        return parse_tsc_output(output, root), {"returncode": proc.returncode, "output": output}

    def _run_ruff(self, root: Path, paths: List[str]):
        proc = self.runner.run(
            ["ruff", "check", "--output-format", "json", "--exit-zero", *paths],
            cwd=root,
            timeout=self.tool_timeout,
        )
        data = _load_json(proc.stdout)
        if not isinstance(data, list):
            logger.warning("Failed to parse Ruff output")
            return [], None
        return parse_ruff_results(data, root), data


# ----------------------------------------------------------------------
# Ordering
# ----------------------------------------------------------------------

def prioritize_issues(issues: List[StaticAnalysisIssue]) -> List[StaticAnalysisIssue]:
    """Most severe first; within a severity, most important category first."""
    return sorted(
        issues,
        key=lambda i: (-SEVERITY_ORDER.get(i.severity, 0), -CATEGORY_ORDER.get(i.category, 0)),
    )


# ----------------------------------------------------------------------
# Output parsers
# ----------------------------------------------------------------------

def _load_json(text: str) -> Any:
    text = (text or "").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def _relative(path: str, root: Optional[Path]) -> str:
    if root is None or not os.path.isabs(path):
        return path
    try:
        return os.path.relpath(path, root)
    except ValueError:
        return path


def parse_eslint_results(results: List[Dict[str, Any]], root: Optional[Path] = None) -> List[StaticAnalysisIssue]:
    issues: List[StaticAnalysisIssue] = []
    for file_result in results:
        file_path = _relative(file_result.get("filePath") or "unknown", root)
        for message in file_result.get("messages") or []:
            level = message.get("severity")
            severity: Severity = "error" if level == 2 else "warning" if level == 1 else "info"
            rule = message.get("ruleId") or "unknown"
            suggestions = message.get("suggestions") or []
            issues.append(StaticAnalysisIssue(
                tool="ESLint",
                file=file_path,
                line=message.get("line") or 1,
                column=message.get("column"),
                severity=severity,
                rule=rule,
                message=message.get("message") or "Unknown issue",
                category=categorize_eslint_rule(rule),
                suggestion=suggestions[0].get("desc") if suggestions else None,
            ))
    return issues


def parse_ruff_results(results: List[Dict[str, Any]], root: Optional[Path] = None) -> List[StaticAnalysisIssue]:
    issues: List[StaticAnalysisIssue] = []
    for item in results:
        code = item.get("code") or "unknown"
        location = item.get("location") or {}
        fix = item.get("fix") or {}
        issues.append(StaticAnalysisIssue(
            tool="Ruff",
            file=_relative(item.get("filename") or "unknown", root),
            line=location.get("row") or 1,
            column=location.get("column"),
            severity=ruff_severity(code),
            rule=code,
            message=item.get("message") or "Unknown issue",
            category=categorize_ruff_rule(code),
            suggestion=fix.get("message"),
        ))
    return issues


def parse_tsc_output(output: str, root: Optional[Path] = None) -> List[StaticAnalysisIssue]:
    issues: List[StaticAnalysisIssue] = []
    for line in output.splitlines():
        match = TSC_ERROR_RE.match(line.strip())
        if not match:
            continue
        file_path, line_no, column, code, message = match.groups()
        issues.append(StaticAnalysisIssue(
            tool="TypeScript",
            file=_relative(file_path, root),
            line=int(line_no),
            column=int(column),
            severity="error",
            rule=f"TS{code}",
            message=message,
            category=categorize_typescript_error(code),
        ))
    return issues


def parse_lint_output(output: str, root: Optional[Path] = None) -> Optional[List[StaticAnalysisIssue]]:
    """Parse ESLint or Ruff JSON; None when the text is neither."""
    data = _load_json(output)
    if not isinstance(data, list):
        return None
    if all(isinstance(item, dict) and "messages" in item for item in data):
        return parse_eslint_results(data, root)
    if all(isinstance(item, dict) and "code" in item and "location" in item for item in data):
        return parse_ruff_results(data, root)
    return None


# ----------------------------------------------------------------------
# Categorization
# ----------------------------------------------------------------------

_ESLINT_SECURITY = ("no-eval", "no-implied-eval", "no-script-url", "no-unsafe-innerHTML", "no-new-func")
_ESLINT_PERFORMANCE = ("no-loop-func", "prefer-const", "no-var")
_ESLINT_STYLE = ("indent", "quotes", "semi", "comma-spacing", "brace-style")
_ESLINT_MAINTAINABILITY = ("complexity", "max-depth", "max-lines", "no-duplicate-code", "no-console", "no-debugger")

_TS_SYNTAX_ERRORS = {"1005", "1009", "1014", "1016"}

# flake8's classic "stop the build" selection
_RUFF_ERROR_PREFIXES = ("E9", "F63", "F7", "F82")


def categorize_eslint_rule(rule_id: str) -> IssueCategory:
    if any(rule in rule_id for rule in _ESLINT_SECURITY):
        return "security"
    if any(rule in rule_id for rule in _ESLINT_PERFORMANCE):
        return "performance"
    if any(rule in rule_id for rule in _ESLINT_STYLE):
        return "style"
    if any(rule in rule_id for rule in _ESLINT_MAINTAINABILITY):
        return "maintainability"
    return "syntax"


def categorize_typescript_error(code: str) -> IssueCategory:
    if code in _TS_SYNTAX_ERRORS:
        return "syntax"
    return "type"


def ruff_severity(code: str) -> Severity:
    return "error" if code.startswith(_RUFF_ERROR_PREFIXES) else "warning"


def categorize_ruff_rule(code: str) -> IssueCategory:
    if code.startswith("S"):
        return "security"
    if code.startswith("PERF"):
        return "performance"
    if code.startswith("E9"):
        return "syntax"
    if code.startswith(("ANN", "TC", "FA")):
        return "type"
    if code.startswith(("E", "W", "I", "Q", "D", "N")):
        return "style"
    return "maintainability"
