"""Best-effort symbol extraction for impact analysis.

Two interchangeable symbol sources are provided:

- :class:`RegexSymbolSource` (default) scans a file line by line with
  regular expressions. It never fails on malformed code, understands
  JavaScript/TypeScript and Python well enough for impact estimation, and
  reports every definition as a one-line span (``start_line == end_line``).
- :class:`PythonASTSymbolSource` uses the built-in ``ast`` module for
  Python files, which gives real spans, parameters and return types, and
  falls back to another source for everything else.

Both return a :class:`~reviewgraph.models.FileSymbols`. Relationship sources
are bare names at this stage; the graph builder resolves them to symbol keys.
"""

from __future__ import annotations

import ast
import keyword
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .models import FileSymbols, SymbolDefinition, SymbolRelationship, SymbolUsage

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "jsx",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
}

SKIP_DIRS: Set[str] = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "site-packages", ".tox", ".pytest_cache", "build", "dist",
    ".mypy_cache", ".ruff_cache", "htmlcov", ".eggs", "coverage",
}

JS_KEYWORDS: Set[str] = {
    "if", "for", "while", "switch", "catch", "return", "function", "typeof",
    "new", "await", "async", "super", "this", "import", "export", "delete",
    "void", "yield", "throw", "else", "do", "try", "finally", "case", "in",
    "of", "instanceof", "constructor", "class", "const", "let", "var",
}
PY_KEYWORDS: Set[str] = set(keyword.kwlist) | {"print", "self", "cls", "super"}


def detect_language(filename: str) -> Optional[str]:
    """Return the language tag for *filename*, or None when unsupported."""
    return LANGUAGE_MAP.get(PurePosixPath(filename).suffix.lower())


def collect_source_files(root: Path) -> Dict[str, str]:
    """Read every supported file under *root*, keyed by POSIX relative path."""
    files: Dict[str, str] = {}
    for ext in sorted(set(LANGUAGE_MAP)):
        for file_path in sorted(root.rglob(f"*{ext}")):
            rel = file_path.relative_to(root)
            if any(part in SKIP_DIRS for part in rel.parts) or not file_path.is_file():
                continue
            rel_path = rel.as_posix()
            files[rel_path] = file_path.read_text(encoding="utf-8", errors="ignore")
    return files


# ===================================================================
# Abstract symbol source
# ===================================================================

class SymbolSource(ABC):
    """Capability that turns one file's text into symbols, usages and edges."""

    @abstractmethod
    def extract(self, file_path: str, content: str, language: str) -> FileSymbols:
        """Extract everything this source can see in one file."""
        ...

    @abstractmethod
    def supports_language(self, language: str) -> bool:
        """Return True if this source can handle *language*."""
        ...


def extract_file_safely(source: SymbolSource, file_path: str, content: str) -> FileSymbols:
    """Run *source* on one file without letting its failure escape.

    Unrecognized extensions and unsupported languages produce an empty
    result. Any exception raised while scanning is logged and the file
    contributes nothing.
    """
    language = detect_language(file_path)
    if not language or not source.supports_language(language):
        return FileSymbols(file=file_path)
    try:
        return source.extract(file_path, content, language)
    except Exception as exc:
        logger.warning("Failed to analyze %s: %s", file_path, exc)
        return FileSymbols(file=file_path, language=language)


# ===================================================================
# Regex symbol source (default)
# ===================================================================

_JS_FUNCTION_RE = re.compile(r"(?:function\*?|const|let|var)\s+(\w+)\s*[=(<]")
_JS_ARROW_OR_FUNC_RE = re.compile(r"=\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*(?::[^=]+)?=>|\w+\s*=>)")
_PY_DEF_RE = re.compile(r"^(\s*)(?:async\s+)?def\s+(\w+)\s*\(")
_PY_VAR_RE = re.compile(r"^([A-Za-z_]\w*)\s*(?::[^=]+)?=(?!=)")
_CLASS_RE = re.compile(r"\bclass\s+(\w+)")
_INTERFACE_RE = re.compile(r"\binterface\s+(\w+)")
_METHOD_RE = re.compile(
    r"^\s+(?:(?:public|private|protected|static|async|readonly|override|get|set)\s+)*"
    r"(\w+)\s*(?:<[^>]*>)?\s*\([^)]*\)\s*[{:]"
)
_PROPERTY_RE = re.compile(r"^\s+(?:(?:public|private|protected|readonly|static)\s+)+(\w+)\s*[?!]?\s*[:=;]")

_PARAMS_RE = re.compile(r"\(([^)]*)\)")
_TS_RETURN_RE = re.compile(r"\)\s*:\s*([^{=]+?)\s*(?:\{|=>|;|$)")
_PY_RETURN_RE = re.compile(r"\)\s*->\s*([^:]+?)\s*:")

_JS_EXTENDS_RE = re.compile(r"\bclass\s+\w+(?:<[^>]*>)?\s+extends\s+([\w.]+)")
_JS_IMPLEMENTS_RE = re.compile(r"\bimplements\s+([\w.,\s]+?)\s*\{")
_INTERFACE_EXTENDS_RE = re.compile(r"\binterface\s+\w+(?:<[^>]*>)?\s+extends\s+([\w.,\s]+?)\s*\{")
_PY_BASES_RE = re.compile(r"^\s*class\s+\w+\s*\(([^)]*)\)")

_CALL_RE = re.compile(r"\b([A-Za-z_$][\w$]*)\s*\(")
_JS_NAMED_IMPORT_RE = re.compile(r"^\s*import\s+(?:type\s+)?(?:(\w+)\s*,?\s*)?(?:\{([^}]*)\})?\s*(?:\*\s+as\s+(\w+))?\s*from\s")
_PY_FROM_IMPORT_RE = re.compile(r"^\s*from\s+[\w.]+\s+import\s+\(?([^)#]+)\)?")
_PY_IMPORT_RE = re.compile(r"^\s*import\s+([\w.,\s]+?)(?:\s+as\s+(\w+))?\s*$")


class RegexSymbolSource(SymbolSource):
    """Line-oriented pattern matching, tolerant of any input."""

    def supports_language(self, language: str) -> bool:
        return language in set(LANGUAGE_MAP.values())

    def extract(self, file_path: str, content: str, language: str) -> FileSymbols:
        lines = content.split("\n")
        python = language == "python"

        symbols = self._extract_symbols(file_path, lines, python)
        imported = {name for _, name, _ in self._iter_imports(lines, python)}
        usages = self._extract_usages(file_path, lines, symbols, imported, python)
        relationships = self._extract_relationships(file_path, lines, symbols, imported, python)

        return FileSymbols(
            file=file_path,
            language=language,
            symbols=symbols,
            usages=usages,
            relationships=relationships,
        )

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def _extract_symbols(self, file_path: str, lines: List[str], python: bool) -> List[SymbolDefinition]:
        symbols: List[SymbolDefinition] = []
        for index, line in enumerate(lines):
            if _is_comment(line, python):
                continue
            line_no = index + 1
            found = self._python_line(line) if python else self._js_line(line)
            for name, kind in found:
                symbols.append(SymbolDefinition(
                    name=name,
                    kind=kind,
                    file=file_path,
                    start_line=line_no,
                    end_line=line_no,
                    signature=line.strip(),
                    parameters=_parameters(line) if kind in ("function", "method") else None,
                    return_type=_return_type(line, python) if kind in ("function", "method") else None,
                    visibility=_visibility(line, name, python),
                ))
        return symbols

    @staticmethod
    def _js_line(line: str) -> List[Tuple[str, str]]:
        found: List[Tuple[str, str]] = []
        function_match = _JS_FUNCTION_RE.search(line)
        if function_match:
            is_callable = "function" in line[:function_match.end()] or _JS_ARROW_OR_FUNC_RE.search(line)
            found.append((function_match.group(1), "function" if is_callable else "variable"))

        class_match = _CLASS_RE.search(line)
        if class_match:
            found.append((class_match.group(1), "class"))

        interface_match = _INTERFACE_RE.search(line)
        if interface_match:
            found.append((interface_match.group(1), "interface"))

        if not function_match and not class_match and not interface_match:
            method_match = _METHOD_RE.search(line)
            if method_match and method_match.group(1) not in JS_KEYWORDS:
                found.append((method_match.group(1), "method"))
            else:
                property_match = _PROPERTY_RE.search(line)
                if property_match:
                    found.append((property_match.group(1), "property"))
        return found

    @staticmethod
    def _python_line(line: str) -> List[Tuple[str, str]]:
        def_match = _PY_DEF_RE.search(line)
        if def_match:
            indent, name = def_match.groups()
            return [(name, "method" if indent else "function")]
        class_match = _CLASS_RE.search(line)
        if class_match and line.lstrip().startswith("class "):
            bases = _PY_BASES_RE.search(line)
            is_protocol = bool(bases and "Protocol" in bases.group(1))
            return [(class_match.group(1), "interface" if is_protocol else "class")]
        var_match = _PY_VAR_RE.search(line)
        if var_match and var_match.group(1) not in PY_KEYWORDS:
            return [(var_match.group(1), "variable")]
        return []

    # ------------------------------------------------------------------
    # Usages
    # ------------------------------------------------------------------

    def _iter_imports(self, lines: List[str], python: bool) -> Iterator[Tuple[int, str, int]]:
        """Yield ``(line_index, imported_name, column)`` for every import."""
        for index, line in enumerate(lines):
            names: List[str] = []
            if python:
                from_match = _PY_FROM_IMPORT_RE.search(line)
                plain_match = None if from_match else _PY_IMPORT_RE.search(line)
                if from_match:
                    names = [_strip_alias(part) for part in from_match.group(1).split(",")]
                elif plain_match:
                    names = [part.strip().split(".")[0] for part in plain_match.group(1).split(",")]
            else:
                js_match = _JS_NAMED_IMPORT_RE.search(line)
                if js_match:
                    default_name, named, namespace = js_match.groups()
                    if default_name:
                        names.append(default_name)
                    if named:
                        names.extend(_strip_alias(part) for part in named.split(","))
                    if namespace:
                        names.append(namespace)
            for name in names:
                if name and name.isidentifier():
                    yield index, name, _column(line, name)

    def _extract_usages(
        self,
        file_path: str,
        lines: List[str],
        symbols: List[SymbolDefinition],
        imported: Set[str],
        python: bool,
    ) -> List[SymbolUsage]:
        usages: List[SymbolUsage] = []
        keywords = PY_KEYWORDS if python else JS_KEYWORDS
        definition_lines = _definition_lines(symbols)
        local_names = {s.name for s in symbols}
        import_lines: Set[int] = set()

        for index, name, column in self._iter_imports(lines, python):
            import_lines.add(index)
            usages.append(SymbolUsage(file_path, index + 1, column, lines[index], "import", name))

        for index, line in enumerate(lines):
            if index in import_lines or _is_comment(line, python):
                continue
            line_no = index + 1
            defined_here = definition_lines.get(line_no, set())
            called: Set[int] = set()

            for match in _CALL_RE.finditer(line):
                name = match.group(1)
                if name in keywords or name in defined_here:
                    continue
                called.add(match.start(1))
                usages.append(SymbolUsage(file_path, line_no, match.start(1) + 1, line, "call", name))

            for name in local_names | imported:
                if name in defined_here:
                    continue
                for match in re.finditer(rf"(?<![\w$.]){re.escape(name)}\b", line):
                    if match.start() in called:
                        continue
                    tail = line[match.end():]
                    is_assignment = re.match(r"\s*=(?!=)", tail) is not None
                    usages.append(SymbolUsage(
                        file_path, line_no, match.start() + 1, line,
                        "assignment" if is_assignment else "reference", name,
                    ))
        return usages

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def _extract_relationships(
        self,
        file_path: str,
        lines: List[str],
        symbols: List[SymbolDefinition],
        imported: Set[str],
        python: bool,
    ) -> List[SymbolRelationship]:
        relationships: List[SymbolRelationship] = []
        keywords = PY_KEYWORDS if python else JS_KEYWORDS
        known = {s.name for s in symbols} | imported

        for symbol in symbols:
            if symbol.kind not in ("class", "interface"):
                continue
            line = lines[symbol.start_line - 1]
            for base, kind in _bases(line, python):
                if base != symbol.name:
                    relationships.append(SymbolRelationship(base, symbol.key, kind, file_path, symbol.start_line))

        for owner, start, end in _regions(symbols, len(lines)):
            for line_no in range(start, end + 1):
                line = lines[line_no - 1]
                if _is_comment(line, python):
                    continue
                if line_no == owner.start_line and owner.kind in ("class", "interface"):
                    continue
                called: Set[str] = set()
                for match in _CALL_RE.finditer(line):
                    name = match.group(1)
                    if name in keywords or name == owner.name:
                        continue
                    called.add(name)
                    relationships.append(SymbolRelationship(name, owner.key, "calls", file_path, line_no))
                for name in known - called - {owner.name}:
                    if re.search(rf"(?<![\w$.]){re.escape(name)}\b", line):
                        relationships.append(SymbolRelationship(name, owner.key, "uses", file_path, line_no))
            for index, name, _ in self._iter_imports(lines[start - 1:end], python):
                relationships.append(SymbolRelationship(name, owner.key, "imports", file_path, start + index))

        return relationships


# ===================================================================
# Python AST symbol source
# ===================================================================

class PythonASTSymbolSource(SymbolSource):
    """Python extraction with the ``ast`` module; other languages delegate.

    A file that does not parse is handed to the fallback source so a
    syntax error still yields best-effort symbols.
    """

    def __init__(self, fallback: Optional[SymbolSource] = None) -> None:
        self.fallback = fallback or RegexSymbolSource()

    def supports_language(self, language: str) -> bool:
        return language == "python" or self.fallback.supports_language(language)

    def extract(self, file_path: str, content: str, language: str) -> FileSymbols:
        if language != "python":
            return self.fallback.extract(file_path, content, language)
        try:
            tree = ast.parse(content)
        except SyntaxError as exc:
            logger.warning("SyntaxError in %s: %s; using line-based extraction", file_path, exc)
            return self.fallback.extract(file_path, content, language)

        lines = content.split("\n")
        visitor = _ASTVisitor(file_path, lines)
        visitor.visit(tree)
        return FileSymbols(
            file=file_path,
            language=language,
            symbols=visitor.symbols,
            usages=visitor.usages,
            relationships=visitor.relationships,
        )


class _ASTVisitor(ast.NodeVisitor):
    """Collect definitions, usages and edges from one module."""

    def __init__(self, file_path: str, lines: List[str]) -> None:
        self.file_path = file_path
        self.lines = lines
        self.symbols: List[SymbolDefinition] = []
        self.usages: List[SymbolUsage] = []
        self.relationships: List[SymbolRelationship] = []
        self._owner_stack: List[SymbolDefinition] = []
        self._in_class = 0

    def _context(self, lineno: int) -> str:
        return self.lines[lineno - 1] if 0 < lineno <= len(self.lines) else ""

    def _usage(self, node: ast.AST, usage_type: str, name: str) -> None:
        lineno = getattr(node, "lineno", 0)
        col = getattr(node, "col_offset", 0) + 1
        self.usages.append(SymbolUsage(self.file_path, lineno, col, self._context(lineno), usage_type, name))

    def _edge(self, source: str, kind: str, lineno: int) -> None:
        if self._owner_stack and source != self._owner_stack[-1].name:
            owner = self._owner_stack[-1]
            self.relationships.append(SymbolRelationship(source, owner.key, kind, self.file_path, lineno))

    def _define(self, node: ast.AST, name: str, kind: str, **extra) -> SymbolDefinition:
        decorators = getattr(node, "decorator_list", [])
        start = min([node.lineno] + [d.lineno for d in decorators])
        symbol = SymbolDefinition(
            name=name,
            kind=kind,
            file=self.file_path,
            start_line=start,
            end_line=getattr(node, "end_lineno", None) or node.lineno,
            signature=self._context(node.lineno).strip(),
            visibility=_visibility("", name, True),
            **extra,
        )
        self.symbols.append(symbol)
        return symbol

    def _visit_function(self, node) -> None:
        params = [a.arg for a in node.args.posonlyargs + node.args.args + node.args.kwonlyargs]
        if node.args.vararg:
            params.append("*" + node.args.vararg.arg)
        if node.args.kwarg:
            params.append("**" + node.args.kwarg.arg)
        symbol = self._define(
            node,
            node.name,
            "method" if self._in_class else "function",
            parameters=params or None,
            return_type=ast.unparse(node.returns) if node.returns else None,
            docstring=ast.get_docstring(node),
        )
        self._owner_stack.append(symbol)
        saved, self._in_class = self._in_class, 0
        self.generic_visit(node)
        self._in_class = saved
        self._owner_stack.pop()

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        base_names = [_dotted_name(b) for b in node.bases]
        is_protocol = any(b and b.split(".")[-1] == "Protocol" for b in base_names)
        symbol = self._define(
            node, node.name, "interface" if is_protocol else "class", docstring=ast.get_docstring(node),
        )
        for base in base_names:
            if base and base != "object":
                self.relationships.append(SymbolRelationship(
                    base.split(".")[-1], symbol.key, "extends", self.file_path, node.lineno,
                ))
        self._owner_stack.append(symbol)
        self._in_class += 1
        self.generic_visit(node)
        self._in_class -= 1
        self._owner_stack.pop()

    def visit_Assign(self, node: ast.Assign) -> None:
        if not self._owner_stack:
            for target in node.targets:
                if isinstance(target, ast.Name):
                    self._define(node, target.id, "variable")
        elif self._in_class:
            for target in node.targets:
                if isinstance(target, ast.Name):
                    self._define(node, target.id, "property")
        self.generic_visit(node)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            name = alias.name.split(".")[0]
            self._usage(node, "import", name)
            self._edge(name, "imports", node.lineno)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            if alias.name == "*":
                continue
            self._usage(node, "import", alias.name)
            self._edge(alias.name, "imports", node.lineno)

    def visit_Call(self, node: ast.Call) -> None:
        name = _dotted_name(node.func)
        if name:
            short = name.split(".")[-1]
            self._usage(node.func, "call", short)
            self._edge(short, "calls", node.lineno)
        # Skip the callee Name so it is not also counted as a reference
        for child in list(node.args) + [kw.value for kw in node.keywords]:
            self.visit(child)
        if isinstance(node.func, ast.Attribute):
            self.visit(node.func.value)

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Store):
            self._usage(node, "assignment", node.id)
        else:
            self._usage(node, "reference", node.id)
            self._edge(node.id, "uses", node.lineno)


# ===================================================================
# Helpers
# ===================================================================

def _is_comment(line: str, python: bool) -> bool:
    stripped = line.lstrip()
    if python:
        return stripped.startswith("#")
    return stripped.startswith(("//", "/*", "*"))


def _strip_alias(part: str) -> str:
    part = part.strip()
    if part.startswith("type "):
        part = part[5:]
    return part.split(" as ")[0].strip()


def _column(line: str, name: str) -> int:
    match = re.search(rf"\b{re.escape(name)}\b", line)
    return match.start() + 1 if match else 1


def _parameters(line: str) -> Optional[List[str]]:
    match = _PARAMS_RE.search(line)
    if not match:
        return None
    params = [p.strip() for p in match.group(1).split(",") if p.strip()]
    return params or None


def _return_type(line: str, python: bool) -> Optional[str]:
    match = (_PY_RETURN_RE if python else _TS_RETURN_RE).search(line)
    return match.group(1).strip() if match else None


def _visibility(line: str, name: str, python: bool) -> str:
    if python:
        if name.startswith("__") and not name.endswith("__"):
            return "private"
        if name.startswith("_"):
            return "protected"
        return "public"
    if "private" in line or name.startswith("#"):
        return "private"
    if "protected" in line:
        return "protected"
    return "public"


def _bases(line: str, python: bool) -> List[Tuple[str, str]]:
    bases: List[Tuple[str, str]] = []
    if python:
        match = _PY_BASES_RE.search(line)
        if match:
            for part in match.group(1).split(","):
                part = part.strip()
                if part and "=" not in part and part != "object":
                    bases.append((part.split(".")[-1].split("[")[0], "extends"))
        return bases

    extends_match = _JS_EXTENDS_RE.search(line)
    if extends_match:
        bases.append((extends_match.group(1).split(".")[-1], "extends"))
    iface_extends = _INTERFACE_EXTENDS_RE.search(line)
    if iface_extends:
        bases.extend((n.strip(), "extends") for n in iface_extends.group(1).split(",") if n.strip())
    implements_match = _JS_IMPLEMENTS_RE.search(line)
    if implements_match:
        bases.extend((n.strip(), "implements") for n in implements_match.group(1).split(",") if n.strip())
    return bases


def _definition_lines(symbols: List[SymbolDefinition]) -> Dict[int, Set[str]]:
    by_line: Dict[int, Set[str]] = {}
    for symbol in symbols:
        by_line.setdefault(symbol.start_line, set()).add(symbol.name)
    return by_line


def _regions(symbols: List[SymbolDefinition], line_count: int) -> Iterator[Tuple[SymbolDefinition, int, int]]:
    """Yield ``(owner, first_line, last_line)`` for each enclosing definition.

    A region runs from an owner's definition line up to the line before the
    next owner. Variables only own a region when nothing else does, so a
    local ``const`` does not steal the body of its function.
    """
    owners = [s for s in symbols if s.kind in ("function", "method", "class", "interface")]
    if not owners:
        owners = list(symbols)
    owners.sort(key=lambda s: s.start_line)
    for index, owner in enumerate(owners):
        next_start = owners[index + 1].start_line if index + 1 < len(owners) else line_count + 1
        if next_start > owner.start_line:
            yield owner, owner.start_line, next_start - 1


def _dotted_name(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        inner = _dotted_name(node.value)
        return f"{inner}.{node.attr}" if inner else node.attr
    return None


SYMBOL_SOURCES = {
    "regex": RegexSymbolSource,
    "ast": PythonASTSymbolSource,
}


def get_symbol_source(name: str = "regex") -> SymbolSource:
    """Construct a symbol source by its configuration name."""
    try:
        return SYMBOL_SOURCES[name]()
    except KeyError:
        raise ValueError(f"Unknown symbol source '{name}'. Choose from: {', '.join(SYMBOL_SOURCES)}")
