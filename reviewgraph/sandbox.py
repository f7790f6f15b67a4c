"""Sandbox validation: apply a patch to a fresh clone and build, lint, test it."""

from __future__ import annotations

import logging
import os
import re
import shlex
import shutil
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from .config import SandboxConfig
from .review_models import (
    BuildResult,
    CodePatch,
    LintResult,
    PerformanceMetrics,
    SandboxValidationResult,
    TestRunResult,
    ValidationSummary,
)
from .runner import CommandResult, CommandRunner
from .static_analysis import parse_lint_output

logger = logging.getLogger(__name__)

WARNING_LIMIT = 5

DOCKERFILE_TEMPLATE = """FROM {image}

# Install common tools
RUN apk add --no-cache git curl

WORKDIR /app

RUN npm install -g pnpm

COPY package*.json pnpm-lock.yaml* ./

RUN if [ -f pnpm-lock.yaml ]; then pnpm install --frozen-lockfile; else npm ci; fi

COPY . .

CMD ["sh"]
"""

_PASSED_RE = re.compile(r"(\d+)\s+pass", re.IGNORECASE)
_FAILED_RE = re.compile(r"(\d+)\s+fail", re.IGNORECASE)
_TOTAL_RE = re.compile(r"(\d+)\s+total", re.IGNORECASE)


class SandboxError(Exception):
    """A pipeline step that cannot be degraded gracefully."""


class SandboxValidator:
    """Validates patches one workspace at a time.

    Commands go through ``runner`` so the whole pipeline can be driven by a
    fake in tests. Every workspace is removed when its patch is done, on
    success and on failure alike.
    """

    def __init__(self, config: Optional[SandboxConfig] = None, runner: Optional[CommandRunner] = None):
        self.config = config or SandboxConfig()
        self.runner = runner or CommandRunner()

    def validate_patches(
        self,
        repo_url: str,
        branch: str,
        patches: Sequence[CodePatch],
        test_command: Optional[str] = None,
        max_workers: int = 1,
    ) -> List[SandboxValidationResult]:
        """Validate each patch independently; results keep the input order."""

        def _one(patch: CodePatch) -> SandboxValidationResult:
            try:
                return self.validate_patch(repo_url, branch, patch, test_command)
            except Exception as exc:
                logger.warning("Failed to validate patch for %s: %s", patch.file, exc)
                return failed_result(patch, exc)

        if max_workers <= 1 or len(patches) <= 1:
            return [_one(patch) for patch in patches]

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(_one, patches))

    def validate_patch(
        self,
        repo_url: str,
        branch: str,
        patch: CodePatch,
        test_command: Optional[str] = None,
    ) -> SandboxValidationResult:
        """Run the full pipeline for one patch. Setup failures raise."""
        patch_id = str(uuid.uuid4())

        with self.workspace(patch_id) as sandbox_path:
            self._provision(sandbox_path)
            repo_path = sandbox_path / "repo"
            self._clone(repo_url, branch, repo_path)
            self._apply_patch(repo_path, patch)

            build = self._run_build(repo_path)
            lint = self._run_lint(repo_path)
            tests = self._run_tests(repo_path, test_command)
            performance = PerformanceMetrics(disk_usage=disk_usage(sandbox_path))

        summary = score_results(build, lint, tests)
        logger.debug("Patch %s for %s: %s", patch_id, patch.file, summary.recommendation)
        return SandboxValidationResult(
            patch_id=patch_id,
            success=summary.overall_success,
            build_results=build,
            lint_results=lint,
            test_results=tests,
            performance=performance,
            summary=summary,
            file=patch.file,
        )

    @contextmanager
    def workspace(self, patch_id: str) -> Iterator[Path]:
        """Create ``<sandbox_dir>/<patch_id>`` and remove it on exit."""
        path = Path(self.config.sandbox_dir) / patch_id
        path.mkdir(parents=True, exist_ok=True)
        try:
            yield path
        finally:
            try:
                shutil.rmtree(path)
            except OSError as exc:
                logger.warning("Failed to cleanup sandbox %s: %s", path, exc)

    # ------------------------------------------------------------------
    # Setup phases
    # ------------------------------------------------------------------

    def _provision(self, sandbox_path: Path) -> None:
        # Descriptor only; the image is never built here
        dockerfile = DOCKERFILE_TEMPLATE.format(image=self.config.docker_image)
        (sandbox_path / "Dockerfile").write_text(dockerfile)

    def _clone(self, repo_url: str, branch: str, repo_path: Path) -> None:
        cfg = self.config
        shallow = self.runner.run(
            ["git", "clone", "--depth", "1", "--branch", branch, repo_url, str(repo_path)],
            timeout=cfg.clone_timeout,
        )
        if shallow.ok:
            return

        logger.debug("Shallow clone of %s failed, retrying default branch", branch)
        shutil.rmtree(repo_path, ignore_errors=True)
        fallback = self.runner.run(
            ["git", "clone", "--depth", "10", repo_url, str(repo_path)],
            timeout=cfg.clone_timeout,
        )
        if not fallback.ok:
            raise SandboxError(f"Clone failed: {fallback.output.strip() or shallow.output.strip()}")

        checkout = self.runner.run(["git", "checkout", branch], cwd=repo_path, timeout=cfg.checkout_timeout)
        if not checkout.ok:
            logger.warning("Could not checkout branch %s, using default branch", branch)

    @staticmethod
    def _apply_patch(repo_path: Path, patch: CodePatch) -> None:
        repo_root = repo_path.resolve()
        target = (repo_path / patch.file).resolve()
        if repo_root not in target.parents:
            raise SandboxError(f"Patch path escapes the repository: {patch.file}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(patch.patched_content, encoding="utf-8")

    # ------------------------------------------------------------------
    # Build / lint / test
    # ------------------------------------------------------------------

    def _run_build(self, repo_path: Path) -> BuildResult:
        started = time.monotonic()
        last: Optional[CommandResult] = None
        for command in self.config.build_commands:
            last = self.runner.run(command, cwd=repo_path, timeout=self.config.build_timeout)
            if last.ok:
                return BuildResult(success=True, output=last.output, duration_ms=_elapsed_ms(started))

        output = last.output if last else "No build commands configured"
        return BuildResult(
            success=False,
            output=output,
            errors=[output or "Build failed"],
            duration_ms=_elapsed_ms(started),
        )

    def _run_lint(self, repo_path: Path) -> LintResult:
        for command in self.config.lint_commands:
            proc = self.runner.run(command, cwd=repo_path, timeout=self.config.lint_timeout)
            if proc.timed_out:
                continue
            # Linters exit non-zero when they report problems
            issues = parse_lint_output(proc.stdout, repo_path)
            if proc.ok or issues is not None:
                issues = issues or []
                has_errors = any(i.severity == "error" for i in issues)
                return LintResult(success=not has_errors, issues=issues, output=proc.stdout)

        return LintResult(success=True, output="No linting available")

    def _run_tests(self, repo_path: Path, test_command: Optional[str]) -> TestRunResult:
        started = time.monotonic()
        commands: List[List[str]] = (
            [shlex.split(test_command)] if test_command else self.config.test_commands
        )
        errors: List[str] = []

        for command in commands:
            proc = self.runner.run(command, cwd=repo_path, timeout=self.config.test_timeout)
            passed, failed, total = parse_test_counts(proc.output)
            if proc.ok or failed > 0:
                return TestRunResult(
                    success=proc.ok,
                    passed=passed,
                    failed=failed,
                    total=total,
                    duration_ms=_elapsed_ms(started),
                    output=proc.output,
                    errors=errors,
                )
            errors.append(proc.output.strip() or f"{' '.join(command)} exited with {proc.returncode}")

        # Not having runnable tests is not a failure
        return TestRunResult(
            success=True,
            duration_ms=_elapsed_ms(started),
            output="No tests available",
            errors=errors,
        )


# ----------------------------------------------------------------------
# Scoring and helpers
# ----------------------------------------------------------------------

def score_results(build: BuildResult, lint: LintResult, tests: TestRunResult) -> ValidationSummary:
    """Turn phase results into a recommendation, confidence and reasoning."""
    errors = lint.error_count
    warnings = lint.warning_count
    reasons: List[str] = []

    if not build.success:
        reasons.append("Build failed.")
    if errors > 0:
        reasons.append(f"{errors} linting errors found.")
    elif warnings > WARNING_LIMIT:
        reasons.append(f"{warnings} linting warnings found.")
    if tests.failed > 0:
        reasons.append(f"{tests.failed} tests failed.")
    elif tests.total == 0:
        reasons.append("No tests found to validate changes.")
    else:
        reasons.append(f"All {tests.passed} tests passed.")

    if not build.success or errors > 0 or tests.failed > 0:
        recommendation, confidence = "reject", "low"
    elif warnings > WARNING_LIMIT:
        recommendation, confidence = "review", "medium"
    elif tests.total == 0:
        recommendation, confidence = "approve", "medium"
    else:
        recommendation, confidence = "approve", "high"

    return ValidationSummary(
        overall_success=build.success and lint.success and tests.failed == 0,
        confidence=confidence,
        recommendation=recommendation,
        reasoning=" ".join(reasons),
    )


def failed_result(patch: CodePatch, error: BaseException) -> SandboxValidationResult:
    """A fully populated rejection for a pipeline that could not finish."""
    message = str(error) or type(error).__name__
    return SandboxValidationResult(
        patch_id=str(uuid.uuid4()),
        success=False,
        build_results=BuildResult(success=False, errors=[message]),
        lint_results=LintResult(success=False, output=message),
        test_results=TestRunResult(success=False, failed=1, total=1, errors=[message]),
        performance=PerformanceMetrics(),
        summary=ValidationSummary(
            overall_success=False,
            confidence="low",
            recommendation="reject",
            reasoning=f"Sandbox validation failed: {message}",
        ),
        file=patch.file,
    )


def parse_test_counts(output: str) -> Tuple[int, int, int]:
    """Best-effort ``(passed, failed, total)`` from common runner summaries."""
    passed_match = _PASSED_RE.search(output)
    failed_match = _FAILED_RE.search(output)
    total_match = _TOTAL_RE.search(output)
    passed = int(passed_match.group(1)) if passed_match else 0
    failed = int(failed_match.group(1)) if failed_match else 0
    total = int(total_match.group(1)) if total_match else passed + failed
    return passed, failed, total


def disk_usage(path: Path) -> int:
    """Total size in bytes of regular files under *path*."""
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except OSError:
                continue
    return total


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
