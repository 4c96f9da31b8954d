"""Report export helpers for JSON, Markdown and Graphviz DOT outputs."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from .models import DiscoveryResult


def export_json(result: DiscoveryResult, output_file: Path) -> None:
    output_file.write_text(result.to_json() + "\n", encoding="utf-8")


def render_markdown(result: DiscoveryResult) -> str:
    """Human-readable report: summary, boundary table, details, advice."""
    metrics = result.confidence_metrics
    analysis = result.clustering_analysis

    lines: List[str] = ["# Module Boundary Report", ""]
    if result.partial:
        lines += ["> **Partial result:** discovery stopped at its time limit.", ""]

    lines += [
        f"- Files scanned: {result.files_scanned}",
        f"- Files analyzed: {result.files_analyzed}",
        f"- Declarations: {result.node_count}",
        f"- Boundaries: {len(result.discovered_boundaries)}",
        f"- Overall confidence: {metrics.overall_confidence * 100:.1f}%",
        f"- Cluster quality: {analysis.cluster_quality_score * 100:.1f}%",
        "",
    ]

    if result.discovered_boundaries:
        lines += [
            "## Boundaries",
            "",
            "| Name | Confidence | Files | Elements | Tables |",
            "|------|-----------:|------:|---------:|--------|",
        ]
        for b in result.discovered_boundaries:
            name = f"{b.name} (declared)" if b.user_declared else b.name
            lines.append(
                f"| {_md(name)} | {b.confidence * 100:.1f}% | {len(b.files)} | "
                f"{b.element_count} | {_md(', '.join(b.database_tables)) or '-'} |"
            )
        lines.append("")

        for b in result.discovered_boundaries:
            lines += [f"### {b.name}", "", b.description, ""]
            lines += [f"- {reason}" for reason in b.reasoning]
            lines.append("")
            lines += [f"  - `{f}`" for f in b.files]
            lines.append("")

    if result.recommendations:
        lines += ["## Recommendations", ""]
        for rec in result.recommendations:
            lines.append(
                f"- **{rec.type}** ({rec.implementation_difficulty}) "
                f"{', '.join(rec.boundaries)}: {rec.reason}. {rec.expected_benefit}."
            )
        lines.append("")

    if analysis.orphaned_files:
        lines += ["## Orphaned files", ""]
        lines += [f"- `{f}`" for f in analysis.orphaned_files]
        lines.append("")

    return "\n".join(lines)


def export_markdown(result: DiscoveryResult, output_file: Path) -> None:
    output_file.write_text(render_markdown(result), encoding="utf-8")


def render_dot(result: DiscoveryResult) -> str:
    lines = ["digraph Boundaries {", "  rankdir=LR;", "  node [shape=box];"]
    anchors: Dict[str, str] = {}

    for index, boundary in enumerate(result.discovered_boundaries):
        anchor = f"b{index}"
        anchors.setdefault(boundary.name, anchor)
        label = f"{boundary.name} ({boundary.confidence * 100:.0f}%)"
        lines.append(f"  subgraph cluster_{index} {{")
        lines.append(f'    label="{_esc(label)}";')
        lines.append(f'    "{anchor}" [shape=folder, label="{_esc(boundary.name)}"];')
        for file_path in boundary.files:
            lines.append(f'    "{anchor}:{_esc(file_path)}" [label="{_esc(file_path)}"];')
        lines.append("  }")

    for overlap in result.clustering_analysis.boundary_overlaps:
        if overlap.overlap_type != "dependency":
            continue
        if overlap.boundary1 not in anchors or overlap.boundary2 not in anchors:
            continue
        lines.append(
            f'  "{anchors[overlap.boundary1]}" -> "{anchors[overlap.boundary2]}" '
            f'[style=dashed, label="{overlap.overlap_strength:.2f}"];'
        )

    lines.append("}")
    return "\n".join(lines)


def export_dot(result: DiscoveryResult, output_file: Path) -> None:
    output_file.write_text(render_dot(result), encoding="utf-8")


def _esc(text: str) -> str:
    return text.replace('"', '\\"')


def _md(text: str) -> str:
    return text.replace("|", "\\|")
