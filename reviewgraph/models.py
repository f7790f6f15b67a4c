"""Core data models used by symbol extraction and the impact graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

SymbolKind = Literal["function", "class", "interface", "variable", "method", "property"]
Visibility = Literal["public", "private", "protected"]
UsageType = Literal["call", "import", "reference", "assignment"]
RelationshipKind = Literal["calls", "imports", "extends", "implements", "uses"]
Complexity = Literal["LOW", "MEDIUM", "HIGH"]


def symbol_key(file: str, name: str) -> str:
    """Identity key of a symbol inside one analysis run."""
    return f"{file}:{name}"


@dataclass(frozen=True)
class SymbolDefinition:
    name: str
    kind: SymbolKind
    file: str
    start_line: int
    end_line: int
    signature: Optional[str] = None
    parameters: Optional[List[str]] = None
    return_type: Optional[str] = None
    visibility: Visibility = "public"
    docstring: Optional[str] = None

    @property
    def key(self) -> str:
        return symbol_key(self.file, self.name)

    def overlaps(self, start: int, end: int) -> bool:
        """Inclusive interval overlap with ``[start, end]``."""
        return self.start_line <= end and self.end_line >= start

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.kind,
            "file": self.file,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "signature": self.signature,
            "parameters": self.parameters,
            "returnType": self.return_type,
            "visibility": self.visibility,
            "docstring": self.docstring,
        }


@dataclass(frozen=True)
class SymbolUsage:
    file: str
    line: int
    column: int
    context: str
    usage_type: UsageType
    name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "context": self.context,
            "usageType": self.usage_type,
            "name": self.name,
        }


@dataclass(frozen=True)
class SymbolRelationship:
    """Directed edge: ``target`` depends on ``source`` through ``kind``.

    Extractors emit ``source`` as a bare name; the graph builder rewrites it
    to a symbol key once every file has been scanned.
    """
    source: str
    target: str
    kind: RelationshipKind
    file: str
    line: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.source,
            "relatedSymbol": self.target,
            "relationship": self.kind,
            "file": self.file,
            "line": self.line,
        }


@dataclass(frozen=True)
class ChangedRange:
    file: str
    start: int
    end: int

    def __str__(self) -> str:
        return f"{self.file}:{self.start}-{self.end}"


@dataclass
class FileSymbols:
    """Everything one symbol source produced for a single file."""
    file: str
    language: Optional[str] = None
    symbols: List[SymbolDefinition] = field(default_factory=list)
    usages: List[SymbolUsage] = field(default_factory=list)
    relationships: List[SymbolRelationship] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.symbols or self.usages or self.relationships)


@dataclass
class CodeGraphNode:
    symbol: SymbolDefinition
    usages: List[SymbolUsage]
    relationships: List[SymbolRelationship]
    impact_score: int
    complexity: Complexity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol.to_dict(),
            "usages": [u.to_dict() for u in self.usages],
            "relationships": [r.to_dict() for r in self.relationships],
            "impactScore": self.impact_score,
            "complexity": self.complexity,
        }


@dataclass
class CodeGraph:
    nodes: Dict[str, CodeGraphNode]
    changed_symbols: List[str]
    affected_symbols: List[str]
    dependency_graph: Dict[str, List[str]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": {key: node.to_dict() for key, node in self.nodes.items()},
            "changedSymbols": list(self.changed_symbols),
            "affectedSymbols": list(self.affected_symbols),
            "dependencyGraph": {key: list(deps) for key, deps in self.dependency_graph.items()},
        }


@dataclass
class GraphSummary:
    total_symbols: int
    changed_symbols: int
    affected_symbols: int
    high_impact_changes: int
    analysis_time_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalSymbols": self.total_symbols,
            "changedSymbols": self.changed_symbols,
            "affectedSymbols": self.affected_symbols,
            "highImpactChanges": self.high_impact_changes,
            "analysisTime": self.analysis_time_ms,
        }


@dataclass
class GraphInsights:
    risk_assessment: str
    dependency_issues: List[str] = field(default_factory=list)
    architectural_concerns: List[str] = field(default_factory=list)
    refactoring_opportunities: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "riskAssessment": self.risk_assessment,
            "dependencyIssues": list(self.dependency_issues),
            "architecturalConcerns": list(self.architectural_concerns),
            "refactoringOpportunities": list(self.refactoring_opportunities),
        }


@dataclass
class CodeGraphAnalysisResult:
    graph: CodeGraph
    summary: GraphSummary
    insights: GraphInsights

    def to_dict(self) -> Dict[str, Any]:
        return {
            "graph": self.graph.to_dict(),
            "summary": self.summary.to_dict(),
            "insights": self.insights.to_dict(),
        }
