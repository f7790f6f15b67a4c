"""Composition root wiring every review service from one configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .code_graph import CodeGraphAnalyzer
from .config import ReviewConfig
from .diff_engine import DiffEngine
from .models import CodeGraphAnalysisResult
from .parser import collect_source_files, get_symbol_source
from .patch_generator import PatchGenerator
from .review_models import (
    CodePatch,
    PatchGenerationResult,
    SandboxValidationResult,
    StaticAnalysisResult,
    Suggestion,
)
from .runner import CommandRunner
from .sandbox import SandboxValidator
from .static_analysis import StaticAnalyzer

logger = logging.getLogger(__name__)


class ReviewOrchestrator:
    """Owns one instance of each service, built explicitly from *config*."""

    def __init__(self, config: Optional[ReviewConfig] = None, runner: Optional[CommandRunner] = None):
        self.config = config or ReviewConfig()
        self.runner = runner or CommandRunner()
        self.diff_engine = DiffEngine()
        self.graph_analyzer = CodeGraphAnalyzer(
            symbol_source=get_symbol_source(self.config.analysis.symbol_source),
            config=self.config.analysis,
            diff_engine=self.diff_engine,
        )
        self.patch_generator = PatchGenerator()
        self.static_analyzer = StaticAnalyzer(runner=self.runner, diff_engine=self.diff_engine)
        self.sandbox = SandboxValidator(self.config.sandbox, runner=self.runner)

    def analyze_diff(
        self,
        diff: str,
        root: Optional[Path] = None,
        whole_project: bool = False,
    ) -> CodeGraphAnalysisResult:
        """Impact analysis for *diff*.

        Files come from *root* when given (the whole project with
        ``whole_project``), otherwise from the new-side text in the diff.
        """
        changed = self.diff_engine.changed_files(diff)
        files = self.load_files(changed, diff, root)
        if root is not None and whole_project:
            files = {**collect_source_files(root), **files}
        return self.graph_analyzer.analyze(files, diff, changed)

    def generate_patches(
        self,
        suggestions: Sequence[Suggestion],
        root: Optional[Path] = None,
        file_contents: Optional[Mapping[str, str]] = None,
    ) -> PatchGenerationResult:
        contents: Dict[str, str] = dict(file_contents or {})
        if root is not None:
            missing = [s.file for s in suggestions if s.file not in contents]
            contents.update(read_files(root, missing))
        return self.patch_generator.generate_patches(suggestions, contents)

    def validate(
        self,
        repo_url: str,
        branch: str,
        patches: Sequence[CodePatch],
        test_command: Optional[str] = None,
        max_workers: int = 1,
    ) -> List[SandboxValidationResult]:
        return self.sandbox.validate_patches(repo_url, branch, patches, test_command, max_workers)

    def scan(
        self,
        files: Mapping[str, str],
        diff: str = "",
        repo_context: Optional[Mapping[str, str]] = None,
    ) -> StaticAnalysisResult:
        return self.static_analyzer.analyze(files, diff, repo_context)

    def load_files(self, paths: Iterable[str], diff: str = "", root: Optional[Path] = None) -> Dict[str, str]:
        """Read *paths* under *root*; fall back to the diff's visible text."""
        paths = list(paths)
        files = read_files(root, paths) if root is not None else {}
        missing = [p for p in paths if p not in files]
        if missing and diff:
            from_diff = self.diff_engine.extract_file_contents(diff)
            for path in missing:
                if path in from_diff:
                    files[path] = from_diff[path]
        return files


def read_files(root: Path, paths: Iterable[str]) -> Dict[str, str]:
    """Read each relative path under *root*, skipping missing files."""
    files: Dict[str, str] = {}
    for rel_path in paths:
        file_path = root / rel_path
        if not file_path.is_file():
            logger.debug("Skipping missing file %s", file_path)
            continue
        files[rel_path] = file_path.read_text(encoding="utf-8", errors="ignore")
    return files
