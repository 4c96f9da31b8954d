"""Advisory recommendations and overlap analysis over discovered boundaries.

Nothing here feeds back into clustering; the output is for humans.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, List, Sequence, Set, Tuple

from .dependency import jaccard
from .models import BoundaryOverlap, BoundaryRecommendation, DiscoveredBoundary

MERGE_FILE_OVERLAP = 0.3
MERGE_KEYWORD_OVERLAP = 0.7
SPLIT_MAX_FILES = 20
SPLIT_MAX_KEYWORDS = 5
SEMANTIC_OVERLAP = 0.5


def _pairs(boundaries: Sequence[DiscoveredBoundary]):
    for i in range(len(boundaries)):
        for j in range(i + 1, len(boundaries)):
            yield boundaries[i], boundaries[j]


def _declarations(boundary: DiscoveredBoundary) -> Set[str]:
    return set(boundary.structs) | set(boundary.interfaces) | set(boundary.functions)


def generate_recommendations(boundaries: Sequence[DiscoveredBoundary]) -> List[BoundaryRecommendation]:
    """Suggest merges, splits, renames and file moves."""
    recommendations: List[BoundaryRecommendation] = []

    for a, b in _pairs(boundaries):
        files = jaccard(a.files, b.files)
        keywords = jaccard(a.semantic_keywords, b.semantic_keywords)
        if files > MERGE_FILE_OVERLAP or keywords > MERGE_KEYWORD_OVERLAP:
            recommendations.append(BoundaryRecommendation(
                type="merge",
                boundaries=[a.name, b.name],
                reason=(
                    f"High overlap between boundaries "
                    f"({files * 100:.0f}% files, {keywords * 100:.0f}% keywords)"
                ),
                expected_benefit="Reduced coupling and clearer module ownership",
                implementation_difficulty="medium",
            ))

    for a, b in _pairs(boundaries):
        if a.name == b.name:
            recommendations.append(BoundaryRecommendation(
                type="rename",
                boundaries=[a.name, b.name],
                reason=f"Two boundaries are both named '{a.name}'",
                expected_benefit="Unambiguous module names",
                implementation_difficulty="low",
            ))

    for boundary in boundaries:
        if len(boundary.files) > SPLIT_MAX_FILES or len(boundary.semantic_keywords) > SPLIT_MAX_KEYWORDS:
            recommendations.append(BoundaryRecommendation(
                type="split",
                boundaries=[boundary.name],
                reason=(
                    f"Large boundary with {len(boundary.files)} files and "
                    f"{len(boundary.semantic_keywords)} semantic concepts"
                ),
                expected_benefit="Better separation of concerns and maintainability",
                implementation_difficulty="high",
            ))

    owners: Dict[str, List[str]] = {}
    for boundary in boundaries:
        for file_path in boundary.files:
            owners.setdefault(file_path, []).append(boundary.name)

    shared: "OrderedDict[Tuple[str, ...], List[str]]" = OrderedDict()
    for file_path in sorted(owners):
        if len(owners[file_path]) > 1:
            shared.setdefault(tuple(owners[file_path]), []).append(file_path)

    for names, files in shared.items():
        listed = ", ".join(files[:3]) + (" ..." if len(files) > 3 else "")
        recommendations.append(BoundaryRecommendation(
            type="move_files",
            boundaries=list(names),
            reason=f"{len(files)} file(s) belong to several boundaries: {listed}",
            expected_benefit="Each file owned by exactly one module",
            implementation_difficulty="low",
        ))

    return recommendations


def analyze_overlaps(boundaries: Sequence[DiscoveredBoundary]) -> List[BoundaryOverlap]:
    """Report file, semantic and dependency overlaps between boundary pairs."""
    overlaps: List[BoundaryOverlap] = []
    for a, b in _pairs(boundaries):
        files = jaccard(a.files, b.files)
        if files > 0:
            overlaps.append(BoundaryOverlap(
                boundary1=a.name,
                boundary2=b.name,
                overlap_type="file",
                overlap_strength=files,
                resolution_suggestion="Assign the shared files to a single boundary",
            ))

        keywords = jaccard(a.semantic_keywords, b.semantic_keywords)
        if keywords > SEMANTIC_OVERLAP:
            overlaps.append(BoundaryOverlap(
                boundary1=a.name,
                boundary2=b.name,
                overlap_type="semantic",
                overlap_strength=keywords,
                resolution_suggestion="Clarify responsibilities or merge the boundaries",
            ))

        deps_a, deps_b = set(a.dependency_clusters), set(b.dependency_clusters)
        crossing = (deps_a & _declarations(b)) | (deps_b & _declarations(a))
        if crossing:
            overlaps.append(BoundaryOverlap(
                boundary1=a.name,
                boundary2=b.name,
                overlap_type="dependency",
                overlap_strength=len(crossing) / len(deps_a | deps_b),
                resolution_suggestion=(
                    "Introduce an explicit interface for "
                    + ", ".join(sorted(crossing)[:3])
                ),
            ))
    return overlaps
