"""PatchGenerator for turning review suggestions into whole-file patches."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from .parser import detect_language
from .review_models import CodePatch, PatchGenerationResult, PatchType, SkippedSuggestion, Suggestion

logger = logging.getLogger(__name__)

CATEGORY_PATCH_TYPES: Dict[str, PatchType] = {
    "Security": "security",
    "Performance": "optimization",
    "Bug": "fix",
    "Style": "refactor",
    "Maintainability": "refactor",
    "Architecture": "refactor",
}

REASON_NO_CONTENT = "File content not available"
REASON_NOT_APPLICABLE = "Could not generate applicable patch"

Transform = Callable[[Suggestion, List[str], "FileContext"], Optional[List[str]]]


@dataclass(frozen=True)
class FileContext:
    """Language facts a transform needs about the target file."""
    language: Optional[str]

    @property
    def is_python(self) -> bool:
        return self.language == "python"

    @property
    def comment(self) -> str:
        return "#" if self.is_python else "//"


@dataclass(frozen=True)
class PatchRule:
    """One entry of the rule table.

    ``matcher`` looks at the suggestion only; ``transform`` receives a copy
    of the file's lines and returns the new lines, or None when it cannot
    apply.
    """
    category: str
    name: str
    matcher: Callable[[Suggestion], bool]
    transform: Transform


def map_category_to_patch_type(category: str) -> PatchType:
    return CATEGORY_PATCH_TYPES.get(category, "fix")


def issue_mentions(*words: str) -> Callable[[Suggestion], bool]:
    """Matcher that is true when every word appears in the issue text."""
    lowered = [w.lower() for w in words]

    def _match(suggestion: Suggestion) -> bool:
        issue = suggestion.issue.lower()
        return all(w in issue for w in lowered)

    return _match


def issue_mentions_any(*words: str) -> Callable[[Suggestion], bool]:
    lowered = [w.lower() for w in words]
    return lambda suggestion: any(w in suggestion.issue.lower() for w in lowered)


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------

def _target_index(suggestion: Suggestion, lines: Sequence[str]) -> Optional[int]:
    if suggestion.line is None:
        return None
    index = suggestion.line - 1
    return index if 0 <= index < len(lines) else None


def _indent_of(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def _substitute(pattern: str, replacement: str, flags: int = 0) -> Transform:
    compiled = re.compile(pattern, flags)

    def _apply(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
        return [compiled.sub(replacement, line) for line in lines]

    return _apply


def _replace_eval(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    pattern = re.compile(r"(?<![\w.])eval\s*\(")
    if not ctx.is_python:
        return [pattern.sub("JSON.parse(", line) for line in lines]

    patched = [pattern.sub("ast.literal_eval(", line) for line in lines]
    if patched != lines and not any(re.match(r"^\s*import ast\b", line) for line in patched):
        insert_at = 0
        for index, line in enumerate(patched):
            if line.startswith("from __future__"):
                insert_at = index + 1
        patched.insert(insert_at, "import ast")
    return patched


def _hash_plain_password(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    index = _target_index(suggestion, lines)
    if index is None:
        return None
    line = lines[index]
    if "password" not in line or "hash" in line or "bcrypt" in line:
        return None
    if ctx.is_python:
        lines[index] = re.sub(r"password\s*=\s*(.+?)\s*$", r"password = bcrypt.hashpw(\1.encode(), bcrypt.gensalt())", line)
    else:
        lines[index] = re.sub(r"password\s*=\s*([^;]+)", r"password = await bcrypt.hash(\1, 10)", line)
    return lines


def _iterate_directly(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    if ctx.is_python:
        pattern = re.compile(r"for\s+(\w+)\s+in\s+range\(\s*len\(\s*([\w.]+)\s*\)\s*\)\s*:")
        return [pattern.sub(r"for \1, item in enumerate(\2):", line) for line in lines]
    pattern = re.compile(r"for\s*\(\s*let\s+i\s*=\s*0;\s*i\s*<\s*(\w+)\.length;\s*i\+\+\s*\)")
    return [pattern.sub(r"for (const item of \1)", line) for line in lines]


def _memoize_note(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    index = _target_index(suggestion, lines)
    if index is None:
        return None
    lines.insert(index, f"{_indent_of(lines[index])}{ctx.comment} TODO: Consider memoizing this expensive calculation")
    return lines


def _null_guard(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    index = _target_index(suggestion, lines)
    if index is None:
        return None
    line = lines[index]
    access = re.search(r"(\w+)\.(\w+)", line)
    if not access:
        return None
    if ctx.is_python:
        indent = _indent_of(line)
        lines[index:index] = [f"{indent}if {access.group(1)} is None:", f"{indent}    return None"]
    else:
        lines[index] = line.replace(access.group(0), f"{access.group(1)}?.{access.group(2)}", 1)
    return lines


def _bounds_check(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    if ctx.is_python:
        return None
    index = _target_index(suggestion, lines)
    pattern = re.compile(r"\[(\w+)\]")
    if index is None:
        return [pattern.sub(r"[\1] ?? undefined", line) for line in lines]
    lines[index] = pattern.sub(r"[\1] ?? undefined", lines[index])
    return lines


def _var_to_const(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    if ctx.is_python:
        return None
    return [re.sub(r"\bvar\b", "const", line) for line in lines]


_NO_SEMICOLON_ENDINGS = (";", "{", "}", ",", "(", "[", ":", "=>", "*/")


def _add_semicolons(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    if ctx.is_python:
        return None
    patched = []
    for line in lines:
        stripped = line.rstrip()
        body = stripped.lstrip()
        if not body or body.startswith(("//", "/*", "*")) or body.endswith(_NO_SEMICOLON_ENDINGS):
            patched.append(line)
        else:
            patched.append(stripped + ";")
    return patched


def _tabs_to_spaces(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    width = "    " if ctx.is_python else "  "
    return [re.sub(r"^\t+", lambda m: width * len(m.group(0)), line) for line in lines]


def _annotate_return(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    index = _target_index(suggestion, lines)
    if index is None or ctx.is_python:
        return None
    line = lines[index]
    if "function" not in line or ":" in line:
        return None
    lines[index] = re.sub(r"\)(\s*\{)", r"): any\1", line, count=1)
    return lines


def _extract_magic_number(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    index = _target_index(suggestion, lines)
    numbers = re.findall(r"\b\d+\b", suggestion.issue)
    if index is None or not numbers:
        return None
    indent = _indent_of(lines[index])
    statement = f"CONSTANT_VALUE = {numbers[0]}" if ctx.is_python else f"const CONSTANT_VALUE = {numbers[0]};"
    lines.insert(index, indent + statement)
    return lines


def _interface_stub(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    if suggestion.line is None or suggestion.line < 1 or ctx.is_python:
        return None
    name_match = re.search(r"interface\s+(\w+)", suggestion.suggestion)
    name = name_match.group(1) if name_match else "NewInterface"
    index = min(suggestion.line - 1, len(lines))
    lines[index:index] = [f"interface {name} {{", "  // TODO: Define interface properties", "}", ""]
    return lines


def _wrap_in_try(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[List[str]]:
    index = _target_index(suggestion, lines)
    if index is None:
        return None
    line = lines[index]
    if "await" not in line or "try" in line:
        return None
    indent = _indent_of(line)
    body = line.strip()
    if ctx.is_python:
        wrapped = [
            f"{indent}try:",
            f"{indent}    {body}",
            f"{indent}except Exception:",
            f"{indent}    logger.exception(\"Error\")",
            f"{indent}    raise",
        ]
    else:
        wrapped = [
            f"{indent}try {{",
            f"{indent}  {body}",
            f"{indent}}} catch (error) {{",
            f"{indent}  console.error(\"Error:\", error);",
            f"{indent}  throw error;",
            f"{indent}}}",
        ]
    lines[index:index + 1] = wrapped
    return lines


DEFAULT_RULES: List[PatchRule] = [
    PatchRule("Security", "eval", issue_mentions("eval"), _replace_eval),
    PatchRule("Security", "innerHTML", issue_mentions("innerhtml"), _substitute(r"\.innerHTML\s*=", ".textContent =")),
    PatchRule("Security", "insecure-url", issue_mentions("http:"), _substitute(r"http:", "https:")),
    PatchRule("Security", "plaintext-password", issue_mentions("password", "plain"), _hash_plain_password),
    PatchRule("Performance", "index-loop", issue_mentions_any("for loop", "inefficient"), _iterate_directly),
    PatchRule("Performance", "memoize", issue_mentions("expensive", "calculation"), _memoize_note),
    PatchRule("Bug", "null-safety", issue_mentions_any("null", "undefined", "none"), _null_guard),
    PatchRule("Bug", "array-bounds", issue_mentions("array", "bounds"), _bounds_check),
    PatchRule("Style", "var-declaration", issue_mentions("var"), _var_to_const),
    PatchRule("Style", "semicolon", issue_mentions("semicolon"), _add_semicolons),
    PatchRule("Style", "indentation", issue_mentions("indent"), _tabs_to_spaces),
    PatchRule("Maintainability", "type-annotation", issue_mentions("type"), _annotate_return),
    PatchRule("Maintainability", "magic-number", issue_mentions("magic number"), _extract_magic_number),
    PatchRule("Architecture", "interface", issue_mentions("interface"), _interface_stub),
    PatchRule("Architecture", "error-handling", issue_mentions("error handling"), _wrap_in_try),
]


class PatchGenerator:
    """Applies category rules to suggestions, one patch or skip per suggestion."""

    def __init__(self, rules: Optional[Sequence[PatchRule]] = None):
        self.rules = list(DEFAULT_RULES if rules is None else rules)

    def generate_patches(
        self,
        suggestions: Sequence[Suggestion],
        file_contents: Mapping[str, str],
    ) -> PatchGenerationResult:
        """Generate patches for *suggestions*.

        Args:
            suggestions: Review suggestions, in order
            file_contents: Current content keyed by file path

        Returns:
            PatchGenerationResult with patches, skips and category counts
        """
        result = PatchGenerationResult()

        for suggestion in suggestions:
            result.categories[suggestion.category] = result.categories.get(suggestion.category, 0) + 1

            content = file_contents.get(suggestion.file)
            if not content:
                result.skipped.append(SkippedSuggestion(suggestion, REASON_NO_CONTENT))
                continue

            try:
                patch = self.generate_single_patch(suggestion, content)
            except Exception as exc:
                logger.warning("Failed to generate patch for %s: %s", suggestion.file, exc)
                result.skipped.append(SkippedSuggestion(suggestion, str(exc) or type(exc).__name__))
                continue

            if patch:
                result.patches.append(patch)
            else:
                result.skipped.append(SkippedSuggestion(suggestion, REASON_NOT_APPLICABLE))

        logger.debug(
            "Generated %d patches, skipped %d", len(result.patches), len(result.skipped)
        )
        return result

    def generate_single_patch(self, suggestion: Suggestion, original: str) -> Optional[CodePatch]:
        if suggestion.patch:
            patched: Optional[str] = suggestion.patch
        else:
            patched = self.apply_suggestion(suggestion, original)

        if not patched or patched == original:
            return None
        return CodePatch(
            file=suggestion.file,
            original_content=original,
            patched_content=patched,
            description=suggestion.suggestion,
            type=map_category_to_patch_type(suggestion.category),
        )

    def apply_suggestion(self, suggestion: Suggestion, original: str) -> Optional[str]:
        """Run matching rules in table order; fall back to a comment."""
        lines = original.split("\n")
        ctx = FileContext(detect_language(suggestion.file))

        for rule in self.rules:
            if rule.category != suggestion.category or not rule.matcher(suggestion):
                continue
            patched = rule.transform(suggestion, list(lines), ctx)
            if patched is not None and patched != lines:
                logger.debug("Rule %s/%s applied to %s", rule.category, rule.name, suggestion.file)
                return "\n".join(patched)

        return self._comment_fallback(suggestion, lines, ctx)

    @staticmethod
    def _comment_fallback(suggestion: Suggestion, lines: List[str], ctx: FileContext) -> Optional[str]:
        index = _target_index(suggestion, lines)
        if index is None:
            return None
        note = " ".join(suggestion.suggestion.split())
        lines.insert(index, f"{_indent_of(lines[index])}{ctx.comment} {note}")
        return "\n".join(lines)
