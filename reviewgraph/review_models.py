"""Data models for suggestions, patches, static analysis and sandbox runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

PatchType = Literal["fix", "security", "optimization", "refactor"]
Severity = Literal["error", "warning", "info"]
IssueCategory = Literal["syntax", "type", "security", "performance", "style", "maintainability"]
Confidence = Literal["high", "medium", "low"]
Recommendation = Literal["approve", "review", "reject"]

SUGGESTION_CATEGORIES = ("Security", "Performance", "Bug", "Style", "Maintainability", "Architecture")


@dataclass
class Suggestion:
    """A natural-language review suggestion, usually produced by an LLM."""
    file: str
    category: str
    issue: str
    suggestion: str
    line: Optional[int] = None
    patch: Optional[str] = None
    reasoning: str = ""
    severity: Severity = "warning"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Suggestion":
        line = data.get("line")
        return cls(
            file=str(data.get("file", "")),
            category=str(data.get("category", "")),
            issue=str(data.get("issue", "")),
            suggestion=str(data.get("suggestion", "")),
            line=int(line) if line is not None else None,
            patch=data.get("patch"),
            reasoning=str(data.get("reasoning", "")),
            severity=data.get("severity", "warning"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "file": self.file,
            "category": self.category,
            "issue": self.issue,
            "suggestion": self.suggestion,
            "reasoning": self.reasoning,
            "severity": self.severity,
        }
        if self.line is not None:
            data["line"] = self.line
        if self.patch is not None:
            data["patch"] = self.patch
        return data


@dataclass(frozen=True)
class CodePatch:
    """A complete replacement of one file's content."""
    file: str
    original_content: str
    patched_content: str
    description: str
    type: PatchType

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodePatch":
        return cls(
            file=data["file"],
            original_content=data.get("originalContent", ""),
            patched_content=data["patchedContent"],
            description=data.get("description", ""),
            type=data.get("type", "fix"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "originalContent": self.original_content,
            "patchedContent": self.patched_content,
            "description": self.description,
            "type": self.type,
        }

    def __str__(self) -> str:
        return f"[{self.type}] {self.file}: {self.description}"


@dataclass
class SkippedSuggestion:
    suggestion: Suggestion
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"suggestion": self.suggestion.to_dict(), "reason": self.reason}


@dataclass
class PatchGenerationResult:
    patches: List[CodePatch] = field(default_factory=list)
    skipped: List[SkippedSuggestion] = field(default_factory=list)
    categories: Dict[str, int] = field(default_factory=dict)

    @property
    def total_suggestions(self) -> int:
        return len(self.patches) + len(self.skipped)

    @property
    def summary(self) -> Dict[str, Any]:
        return {
            "totalSuggestions": self.total_suggestions,
            "patchesGenerated": len(self.patches),
            "skippedCount": len(self.skipped),
            "categories": dict(self.categories),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patches": [p.to_dict() for p in self.patches],
            "skipped": [s.to_dict() for s in self.skipped],
            "summary": self.summary,
        }


@dataclass
class StaticAnalysisIssue:
    """One finding, normalized across every tool."""
    tool: str
    file: str
    line: int
    severity: Severity
    rule: str
    message: str
    category: IssueCategory
    column: Optional[int] = None
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "tool": self.tool,
            "file": self.file,
            "line": self.line,
            "severity": self.severity,
            "rule": self.rule,
            "message": self.message,
            "category": self.category,
        }
        if self.column is not None:
            data["column"] = self.column
        if self.suggestion:
            data["suggestion"] = self.suggestion
        return data

    def __str__(self) -> str:
        return f"{self.file}:{self.line} [{self.severity}] {self.rule}: {self.message}"


@dataclass
class CodeHunk:
    """A changed region of a file plus surrounding context."""
    filename: str
    start_line: int
    end_line: int
    content: str
    type: Literal["function", "class", "method", "interface", "other"] = "other"
    function_name: Optional[str] = None
    class_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "content": self.content,
            "functionName": self.function_name,
            "className": self.class_name,
            "type": self.type,
        }


@dataclass
class StaticAnalysisResult:
    issues: List[StaticAnalysisIssue] = field(default_factory=list)
    code_hunks: List[CodeHunk] = field(default_factory=list)
    tools_run: List[str] = field(default_factory=list)
    tool_results: Dict[str, Any] = field(default_factory=dict)
    analysis_time_ms: int = 0

    def count(self, severity: Severity) -> int:
        return sum(1 for issue in self.issues if issue.severity == severity)

    @property
    def summary(self) -> Dict[str, Any]:
        return {
            "totalIssues": len(self.issues),
            "errorCount": self.count("error"),
            "warningCount": self.count("warning"),
            "infoCount": self.count("info"),
            "toolsRun": list(self.tools_run),
            "analysisTime": self.analysis_time_ms,
            "hunksExtracted": len(self.code_hunks),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "codeHunks": [h.to_dict() for h in self.code_hunks],
            "summary": self.summary,
            "toolResults": self.tool_results,
        }


# ---------------------------------------------------------------------------
# Sandbox validation
# ---------------------------------------------------------------------------

@dataclass
class BuildResult:
    success: bool
    output: str = ""
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "output": self.output,
            "errors": list(self.errors),
            "duration": self.duration_ms,
        }


@dataclass
class LintResult:
    success: bool
    issues: List[StaticAnalysisIssue] = field(default_factory=list)
    output: str = ""

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == "error")

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == "warning")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "issues": [i.to_dict() for i in self.issues],
            "output": self.output,
        }


@dataclass
class TestRunResult:
    __test__ = False  # not a pytest test class

    success: bool
    passed: int = 0
    failed: int = 0
    total: int = 0
    duration_ms: int = 0
    output: str = ""
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "passed": self.passed,
            "failed": self.failed,
            "total": self.total,
            "duration": self.duration_ms,
            "output": self.output,
            "errors": list(self.errors),
        }


@dataclass
class PerformanceMetrics:
    memory_usage: int = 0
    cpu_time: int = 0
    disk_usage: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memoryUsage": self.memory_usage,
            "cpuTime": self.cpu_time,
            "diskUsage": self.disk_usage,
        }


@dataclass
class ValidationSummary:
    overall_success: bool
    confidence: Confidence
    recommendation: Recommendation
    reasoning: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallSuccess": self.overall_success,
            "confidence": self.confidence,
            "recommendation": self.recommendation,
            "reasoning": self.reasoning,
        }


@dataclass
class SandboxValidationResult:
    patch_id: str
    success: bool
    build_results: BuildResult
    lint_results: LintResult
    test_results: TestRunResult
    performance: PerformanceMetrics
    summary: ValidationSummary
    file: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patchId": self.patch_id,
            "file": self.file,
            "success": self.success,
            "buildResults": self.build_results.to_dict(),
            "lintResults": self.lint_results.to_dict(),
            "testResults": self.test_results.to_dict(),
            "performance": self.performance.to_dict(),
            "summary": self.summary.to_dict(),
        }

    def __str__(self) -> str:
        s = self.summary
        return f"{self.file or self.patch_id}: {s.recommendation} ({s.confidence} confidence)"
