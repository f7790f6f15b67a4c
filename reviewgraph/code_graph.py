"""Impact graph builder: changed symbols, affected symbols and scores."""

from __future__ import annotations

import logging
import time
from typing import Dict, Iterable, List, Mapping, Optional, Set

from .config import AnalysisConfig
from .diff_engine import DiffEngine
from .insights import generate_insights
from .models import (
    ChangedRange,
    CodeGraph,
    CodeGraphAnalysisResult,
    CodeGraphNode,
    Complexity,
    FileSymbols,
    GraphSummary,
    SymbolDefinition,
    SymbolRelationship,
    SymbolUsage,
)
from .parser import RegexSymbolSource, SymbolSource, extract_file_safely

logger = logging.getLogger(__name__)


class CodeGraphAnalyzer:
    """Build a dependency graph for a change set and score its impact.

    The analyzer owns no global state; construct one per configuration and
    call :meth:`analyze` as often as needed.
    """

    def __init__(
        self,
        symbol_source: Optional[SymbolSource] = None,
        config: Optional[AnalysisConfig] = None,
        diff_engine: Optional[DiffEngine] = None,
    ) -> None:
        self.symbol_source = symbol_source or RegexSymbolSource()
        self.config = config or AnalysisConfig()
        self.diff_engine = diff_engine or DiffEngine()

    def analyze(
        self,
        files: Mapping[str, str],
        diff: str,
        changed_files: Iterable[str],
    ) -> CodeGraphAnalysisResult:
        """Run the full analysis over *files* for the change in *diff*."""
        started = time.monotonic()

        extracted = [extract_file_safely(self.symbol_source, path, content) for path, content in files.items()]
        symbols = self._collect_symbols(extracted)
        usages = self._associate_usages(symbols, extracted)
        relationships = resolve_relationships(symbols, extracted)

        ranges = self.diff_engine.parse_changed_ranges(diff)
        changed = find_changed_symbols(symbols, ranges, set(changed_files))
        dependents = build_dependents(relationships)
        affected = find_affected_symbols(changed, dependents)

        nodes: Dict[str, CodeGraphNode] = {}
        for key, symbol in symbols.items():
            symbol_usages = usages.get(key, [])
            symbol_edges = [r for r in relationships if r.source == key or r.target == key]
            nodes[key] = CodeGraphNode(
                symbol=symbol,
                usages=symbol_usages,
                relationships=symbol_edges,
                impact_score=impact_score(key, dependents, symbol_usages),
                complexity=classify_complexity(symbol, len(symbol_usages), len(symbol_edges)),
            )

        graph = CodeGraph(
            nodes=nodes,
            changed_symbols=changed,
            affected_symbols=affected,
            dependency_graph=dependents,
        )
        high_impact = sum(
            1 for key in changed if nodes[key].impact_score > self.config.high_impact_threshold
        )
        summary = GraphSummary(
            total_symbols=len(nodes),
            changed_symbols=len(changed),
            affected_symbols=len(affected),
            high_impact_changes=high_impact,
            analysis_time_ms=int((time.monotonic() - started) * 1000),
        )
        logger.debug(
            "Graph built: %d symbols, %d changed, %d affected",
            summary.total_symbols, summary.changed_symbols, summary.affected_symbols,
        )
        insights = generate_insights(graph, self.config.high_impact_threshold)
        return CodeGraphAnalysisResult(graph=graph, summary=summary, insights=insights)

    # ------------------------------------------------------------------
    # Step 1: union of per-file extraction
    # ------------------------------------------------------------------

    @staticmethod
    def _collect_symbols(extracted: List[FileSymbols]) -> Dict[str, SymbolDefinition]:
        symbols: Dict[str, SymbolDefinition] = {}
        for file_symbols in extracted:
            for symbol in file_symbols.symbols:
                # Redefinition in the same file keeps the last one
                symbols[symbol.key] = symbol
        return symbols

    def _associate_usages(
        self,
        symbols: Dict[str, SymbolDefinition],
        extracted: List[FileSymbols],
    ) -> Dict[str, List[SymbolUsage]]:
        """Attach every usage to at most one nearby symbol in the same file.

        Candidates lie strictly within ``proximity_threshold`` lines. An exact
        name match wins, then the nearest definition, then the
        lexically smallest name.
        """
        by_file: Dict[str, List[SymbolDefinition]] = {}
        for symbol in symbols.values():
            by_file.setdefault(symbol.file, []).append(symbol)

        threshold = self.config.proximity_threshold
        associated: Dict[str, List[SymbolUsage]] = {}
        for file_symbols in extracted:
            candidates_in_file = by_file.get(file_symbols.file, [])
            for usage in file_symbols.usages:
                candidates = [
                    s for s in candidates_in_file if abs(s.start_line - usage.line) < threshold
                ]
                if not candidates:
                    continue
                best = min(
                    candidates,
                    key=lambda s: (s.name != usage.name, abs(s.start_line - usage.line), s.name),
                )
                associated.setdefault(best.key, []).append(usage)
        return associated


# ----------------------------------------------------------------------
# Graph steps, usable on their own
# ----------------------------------------------------------------------

def resolve_relationships(
    symbols: Mapping[str, SymbolDefinition],
    extracted: Iterable[FileSymbols],
) -> List[SymbolRelationship]:
    """Rewrite bare-name edge sources into symbol keys.

    A name defined in the edge's own file wins; otherwise the lexically
    first key carrying that name is used. Edges whose source matches no
    known symbol, or whose target is unknown, are dropped.
    """
    keys_by_name: Dict[str, List[str]] = {}
    for key, symbol in symbols.items():
        keys_by_name.setdefault(symbol.name, []).append(key)

    resolved: List[SymbolRelationship] = []
    for file_symbols in extracted:
        for rel in file_symbols.relationships:
            if rel.target not in symbols:
                logger.debug("Dropping edge with unknown target %s", rel.target)
                continue
            if rel.source in symbols:
                source_key = rel.source
            else:
                matches = keys_by_name.get(rel.source)
                if not matches:
                    logger.debug("Unresolved %s edge from '%s' in %s:%d", rel.kind, rel.source, rel.file, rel.line)
                    continue
                local = [k for k in matches if symbols[k].file == rel.file]
                source_key = local[0] if local else sorted(matches)[0]
            if source_key == rel.target:
                continue
            resolved.append(SymbolRelationship(source_key, rel.target, rel.kind, rel.file, rel.line))
    return resolved


def find_changed_symbols(
    symbols: Mapping[str, SymbolDefinition],
    ranges: Mapping[str, List[ChangedRange]],
    changed_files: Set[str],
) -> List[str]:
    """Keys of symbols in *changed_files* that overlap any changed range."""
    changed: List[str] = []
    for key, symbol in symbols.items():
        if symbol.file not in changed_files:
            continue
        if any(symbol.overlaps(r.start, r.end) for r in ranges.get(symbol.file, [])):
            changed.append(key)
    return changed


def build_dependents(relationships: Iterable[SymbolRelationship]) -> Dict[str, List[str]]:
    """``dependents[source]`` lists every symbol that depends on ``source``."""
    dependents: Dict[str, List[str]] = {}
    for rel in relationships:
        targets = dependents.setdefault(rel.source, [])
        if rel.target not in targets:
            targets.append(rel.target)
    return dependents


def find_affected_symbols(changed: Iterable[str], dependents: Mapping[str, List[str]]) -> List[str]:
    """Every symbol reachable from a changed symbol through ``dependents``.

    Each traversal is an explicit depth-first walk whose visited set starts
    with its own origin, so cycles terminate and a changed symbol appears
    only when another changed symbol leads to it.
    """
    affected: List[str] = []
    reported: Set[str] = set()

    for origin in changed:
        seen = {origin}
        stack = list(reversed(dependents.get(origin, [])))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            if current not in reported:
                reported.add(current)
                affected.append(current)
            stack.extend(reversed(dependents.get(current, [])))

    return affected


def impact_score(key: str, dependents: Mapping[str, List[str]], usages: List[SymbolUsage]) -> int:
    """Dependency-graph entries that list *key*, plus its usage count."""
    listed_in = sum(1 for targets in dependents.values() if key in targets)
    return listed_in + len(usages)


def classify_complexity(symbol: SymbolDefinition, usage_count: int, relationship_count: int) -> Complexity:
    score = (symbol.end_line - symbol.start_line) * 0.1 + usage_count * 0.5 + relationship_count * 2
    if score > 20:
        return "HIGH"
    if score > 10:
        return "MEDIUM"
    return "LOW"
