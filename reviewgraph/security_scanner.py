"""Pattern-based security scanner over raw file text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .parser import detect_language
from .review_models import IssueCategory, Severity, StaticAnalysisIssue

TOOL_NAME = "Security Scanner"

JS_LANGUAGES = frozenset({"javascript", "jsx", "typescript", "tsx"})
PY_LANGUAGES = frozenset({"python"})


@dataclass(frozen=True)
class SecurityPattern:
    pattern: "re.Pattern[str]"
    rule: str
    message: str
    severity: Severity
    category: IssueCategory
    suggestion: str
    # None means every language, including unrecognized files
    languages: Optional[FrozenSet[str]] = None

    def applies_to(self, language: Optional[str]) -> bool:
        return self.languages is None or language in self.languages


def _p(regex: str, flags: int = 0) -> "re.Pattern[str]":
    return re.compile(regex, flags)


class PatternSecurityScanner:
    """Scan code text for security smells and leftover debug statements."""

    def __init__(self, extra_patterns: Iterable[SecurityPattern] = ()):
        self.patterns: List[SecurityPattern] = [
            SecurityPattern(
                _p(r"(?<![\w.])eval\s*\("), "no-eval",
                "Use of eval() can lead to code injection vulnerabilities",
                "error", "security", "Use JSON.parse() for data or create a safer alternative",
            ),
            SecurityPattern(
                _p(r"innerHTML\s*="), "no-inner-html",
                "Direct innerHTML assignment can lead to XSS vulnerabilities",
                "warning", "security", "Use textContent or a sanitization library", JS_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"document\.write\s*\("), "no-document-write",
                "document.write can be dangerous and should be avoided",
                "warning", "security", "Use DOM manipulation methods instead", JS_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"(password|pwd|secret|token|key).*=.*['\"]\w+['\"]", re.IGNORECASE),
                "no-hardcoded-credentials",
                "Hardcoded credential detected - security risk",
                "error", "security", "Use environment variables or secure credential storage",
            ),
            SecurityPattern(
                _p(r"api[_-]?key.*=.*['\"]\w{10,}['\"]", re.IGNORECASE), "no-hardcoded-api-key",
                "Hardcoded API key detected",
                "error", "security", "Store API keys in environment variables",
            ),
            SecurityPattern(
                _p(r"Math\.random\(\)"), "no-weak-random",
                "Math.random() is not cryptographically secure",
                "warning", "security", "Use crypto.randomBytes() for security-sensitive operations", JS_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"\brandom\.(?:random|randint|choice|getrandbits)\("), "no-weak-random",
                "The random module is not cryptographically secure",
                "warning", "security", "Use the secrets module for security-sensitive values", PY_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"localStorage\.|sessionStorage\."), "web-storage-security",
                "Web storage can be accessed by XSS attacks",
                "info", "security", "Avoid storing sensitive data in web storage", JS_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"\.exec\(|child_process|spawn\("), "command-injection",
                "Command execution detected - potential security risk",
                "warning", "security", "Validate and sanitize all inputs to command execution", JS_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"\bos\.(?:system|popen)\(|shell\s*=\s*True"), "command-injection",
                "Command execution detected - potential security risk",
                "warning", "security", "Pass arguments as a list with shell=False", PY_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"SELECT.*FROM.*WHERE.*\+|UPDATE.*SET.*WHERE.*\+|INSERT.*VALUES.*\+", re.IGNORECASE),
                "sql-injection",
                "Potential SQL injection vulnerability",
                "error", "security", "Use parameterized queries or prepared statements",
            ),
            SecurityPattern(
                _p(r"\bpickle\.loads?\(|\byaml\.load\((?![^)]*Loader)"), "unsafe-deserialization",
                "Deserializing untrusted data can execute arbitrary code",
                "error", "security", "Use json or yaml.safe_load for untrusted input", PY_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"console\.log\s*\("), "no-console",
                "Console.log statements should be removed in production",
                "info", "maintainability", "Use proper logging framework or remove debug statements", JS_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"^\s*print\s*\("), "no-print",
                "print() statements should be removed in production",
                "info", "maintainability", "Use the logging module or remove debug statements", PY_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"debugger;"), "no-debugger",
                "Debugger statements should not be committed",
                "warning", "maintainability", "Remove debugger statements before committing", JS_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"\bbreakpoint\(\)|\bpdb\.set_trace\(\)"), "no-debugger",
                "Debugger statements should not be committed",
                "warning", "maintainability", "Remove debugger statements before committing", PY_LANGUAGES,
            ),
            SecurityPattern(
                _p(r"(?:fetch|requests\.\w+|httpx\.\w+)\s*\(\s*['\"](http://|//)", re.IGNORECASE),
                "no-insecure-requests",
                "Insecure HTTP requests detected",
                "warning", "security", "Use HTTPS for all external requests",
            ),
        ]
        self.patterns.extend(extra_patterns)

    def scan_file(self, file_path: str, content: str) -> List[StaticAnalysisIssue]:
        """Scan one file's text.

        Args:
            file_path: Path reported on each issue
            content: File text

        Returns:
            One issue per pattern match, in line order
        """
        language = detect_language(file_path)
        active = [p for p in self.patterns if p.applies_to(language)]
        issues: List[StaticAnalysisIssue] = []

        for line_no, line in enumerate(content.split("\n"), start=1):
            for pattern in active:
                for match in pattern.pattern.finditer(line):
                    issues.append(StaticAnalysisIssue(
                        tool=TOOL_NAME,
                        file=file_path,
                        line=line_no,
                        column=match.start() + 1,
                        severity=pattern.severity,
                        rule=pattern.rule,
                        message=pattern.message,
                        category=pattern.category,
                        suggestion=pattern.suggestion,
                    ))
        return issues

    def scan_files(self, files: Mapping[str, str]) -> Tuple[List[StaticAnalysisIssue], dict]:
        """Scan every file; also return a small stats dict for tool results."""
        issues: List[StaticAnalysisIssue] = []
        for file_path, content in files.items():
            issues.extend(self.scan_file(file_path, content))
        stats = {
            "patterns": len(self.patterns),
            "filesScanned": len(files),
            "totalLinesScanned": sum(len(c.split("\n")) for c in files.values()),
        }
        return issues, stats
