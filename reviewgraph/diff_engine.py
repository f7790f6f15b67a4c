"""DiffEngine for reading unified diffs and rendering patch previews."""

from __future__ import annotations

import difflib
import re
from typing import Dict, List, Mapping, Optional

from .models import ChangedRange
from .review_models import CodeHunk

FILE_HEADER_RE = re.compile(r"^diff --git a/(.+) b/(.+)$")
HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,\d+)? \+(\d+)(?:,(\d+))? @@")

_FUNCTION_RE = re.compile(r"(?:function|const|let|var|def)\s+(\w+)\s*[=(]|(\w+)\s*:\s*\([^)]*\)\s*=>")
_CLASS_RE = re.compile(r"class\s+(\w+)")
_METHOD_RE = re.compile(r"(\w+)\s*\([^)]*\)\s*\{")


class DiffEngine:
    """Parses unified diffs into changed ranges, file contents and hunks."""

    def parse_changed_ranges(self, diff: str) -> Dict[str, List[ChangedRange]]:
        """Map each file in *diff* to its new-side changed line ranges.

        Ranges keep the order their hunk headers appear in and are never
        merged. Lines that match neither header form are ignored, so a
        malformed diff simply yields fewer ranges.
        """
        ranges: Dict[str, List[ChangedRange]] = {}
        current_file = ""

        for line in diff.splitlines():
            if line.startswith("diff --git"):
                match = FILE_HEADER_RE.match(line)
                current_file = match.group(2) if match else ""
            elif line.startswith("@@"):
                match = HUNK_HEADER_RE.match(line)
                if not match or not current_file:
                    continue
                start = int(match.group(2))
                # A missing or zero length still marks the start line
                length = int(match.group(3) or 0) or 1
                ranges.setdefault(current_file, []).append(
                    ChangedRange(file=current_file, start=start, end=start + length - 1)
                )

        return ranges

    def extract_file_contents(self, diff: str) -> Dict[str, str]:
        """Reconstruct the new-side text visible in *diff* for every file.

        Context and added lines sit at their new-side line numbers, so line
        N of the result is line N of the new file. Lines the diff does not
        show are left blank.
        """
        contents: Dict[str, str] = {}
        current_file = ""
        current: List[str] = []
        next_line = 0

        def _flush() -> None:
            if current_file and current:
                contents[current_file] = "\n".join(current)

        for line in diff.splitlines():
            if line.startswith("diff --git"):
                _flush()
                match = FILE_HEADER_RE.match(line)
                current_file = match.group(2) if match else ""
                current = []
                next_line = 0
            elif line.startswith("@@"):
                match = HUNK_HEADER_RE.match(line)
                next_line = int(match.group(2)) if match else 0
            elif not next_line or line.startswith(("+++", "---")):
                continue
            elif line == "" or line[0] in "+ ":
                if len(current) < next_line - 1:
                    current.extend([""] * (next_line - 1 - len(current)))
                current.append(line[1:])
                next_line += 1

        _flush()
        return contents

    def extract_code_hunks(
        self,
        files: Mapping[str, str],
        diff: str,
        context_lines: int = 5,
    ) -> List[CodeHunk]:
        """Cut a hunk with surrounding context around every changed range."""
        hunks: List[CodeHunk] = []
        changed = self.parse_changed_ranges(diff)

        for filename, content in files.items():
            lines = content.split("\n")
            for rng in changed.get(filename, []):
                start = max(1, rng.start - context_lines)
                end = min(len(lines), rng.end + context_lines)
                hunk_text = "\n".join(lines[start - 1:end])
                hunks.append(_describe_hunk(filename, start, end, hunk_text))

        return hunks

    def create_diff(self, original: str, modified: str, filename: str = "file") -> str:
        """Create unified diff between two versions.

        Args:
            original: Original content
            modified: Modified content
            filename: Name of file for diff header

        Returns:
            Unified diff string
        """
        diff = difflib.unified_diff(
            original.splitlines(keepends=True),
            modified.splitlines(keepends=True),
            fromfile=f"a/{filename}",
            tofile=f"b/{filename}",
        )
        return "".join(diff)

    def changed_files(self, diff: str) -> List[str]:
        """Files named by ``diff --git`` headers, in order, without repeats."""
        seen: List[str] = []
        for line in diff.splitlines():
            match = FILE_HEADER_RE.match(line)
            if match and match.group(2) not in seen:
                seen.append(match.group(2))
        return seen


def _describe_hunk(filename: str, start: int, end: int, text: str) -> CodeHunk:
    function_name: Optional[str] = None
    class_name: Optional[str] = None
    hunk_type = "other"

    func_match = _FUNCTION_RE.search(text)
    if func_match:
        function_name = func_match.group(1) or func_match.group(2)
        hunk_type = "function"

    class_match = _CLASS_RE.search(text)
    if class_match:
        class_name = class_match.group(1)
        hunk_type = "class"

    if not func_match and not class_match:
        method_match = _METHOD_RE.search(text)
        if method_match:
            function_name = method_match.group(1)
            hunk_type = "method"

    return CodeHunk(
        filename=filename,
        start_line=start,
        end_line=end,
        content=text,
        type=hunk_type,
        function_name=function_name,
        class_name=class_name,
    )

