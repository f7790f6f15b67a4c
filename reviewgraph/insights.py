"""Turn an impact graph into human-readable review insights."""

from __future__ import annotations

from typing import List

from .models import CodeGraph, GraphInsights

HIGH_IMPACT = 5
ARCHITECTURAL_IMPACT = 10
WIDE_BLAST_RADIUS = 10

DEPENDENCY_ADVISORY = "Dependency analysis not yet implemented"


def generate_insights(graph: CodeGraph, high_impact_threshold: int = HIGH_IMPACT) -> GraphInsights:
    """Derive risk, architectural and refactoring notes from *graph*."""
    nodes = graph.nodes
    high_impact = [
        key for key in graph.changed_symbols
        if key in nodes and nodes[key].impact_score > high_impact_threshold
    ]

    if high_impact:
        risk = f"HIGH RISK: {len(high_impact)} high-impact symbols modified"
    elif len(graph.affected_symbols) > WIDE_BLAST_RADIUS:
        risk = f"MEDIUM RISK: {len(graph.affected_symbols)} symbols affected"
    else:
        risk = "LOW RISK: Limited impact scope"

    concerns: List[str] = []
    for key in graph.changed_symbols:
        node = nodes.get(key)
        if node and node.impact_score > ARCHITECTURAL_IMPACT:
            concerns.append(
                f"High-impact symbol modified: {node.symbol.name} (impact score: {node.impact_score})"
            )

    opportunities = [
        f"Consider refactoring {node.symbol.name}: high complexity with high impact"
        for node in nodes.values()
        if node.complexity == "HIGH" and node.impact_score > high_impact_threshold
    ]

    return GraphInsights(
        risk_assessment=risk,
        dependency_issues=dependency_issues(graph),
        architectural_concerns=concerns,
        refactoring_opportunities=opportunities,
    )


def dependency_issues(graph: CodeGraph) -> List[str]:
    # TODO: report cycles in graph.dependency_graph instead of the fixed advisory
    return [DEPENDENCY_ADVISORY]
