"""Confidence scoring and conversion of candidates into boundaries."""

from __future__ import annotations

import logging
import posixpath
from typing import List, Sequence, Tuple

from .dependency import file_overlap
from .models import DiscoveredBoundary, ModuleCandidate, NodeArena, NodeKind, clamp

logger = logging.getLogger(__name__)

COHESION_WEIGHT = 0.30
SIZE_WEIGHT = 0.20
DATABASE_WEIGHT = 0.25
ISOLATION_WEIGHT = 0.25

HIGH_COHESION = 0.7


# ===================================================================
# Sub-scores
# ===================================================================

def size_score(size: int) -> float:
    if 5 <= size <= 20:
        return 1.0
    if 3 <= size <= 30:
        return 0.8
    if 2 <= size <= 50:
        return 0.6
    return 0.3


def database_score(candidate: ModuleCandidate) -> float:
    if not candidate.database_access:
        return 0.5
    tables = len(candidate.tables)
    if tables <= 3:
        return 1.0
    if tables <= 5:
        return 0.7
    return 0.4


def isolation_score(candidate: ModuleCandidate, all_candidates: Sequence[ModuleCandidate]) -> float:
    overlaps = [
        file_overlap(candidate.files, other.files)
        for other in all_candidates
        if other is not candidate
    ]
    return 1.0 - max(overlaps, default=0.0)


def score(candidate: ModuleCandidate, all_candidates: Sequence[ModuleCandidate]) -> float:
    """Weighted confidence in [0, 1] that *candidate* is a real module."""
    value = (
        COHESION_WEIGHT * candidate.cohesion_score
        + SIZE_WEIGHT * size_score(candidate.size)
        + DATABASE_WEIGHT * database_score(candidate)
        + ISOLATION_WEIGHT * isolation_score(candidate, all_candidates)
    )
    return clamp(value)


# ===================================================================
# Presentation
# ===================================================================

def directories(candidate: ModuleCandidate) -> List[str]:
    return sorted({posixpath.dirname(f) or "." for f in candidate.files})


def reasoning(candidate: ModuleCandidate) -> List[str]:
    reasons: List[str] = []
    if candidate.user_declared:
        reasons.append("Declared in the user boundary file")
    if candidate.semantic_keywords:
        top = sorted(candidate.semantic_keywords)[:5]
        reasons.append(f"Semantic keywords: {', '.join(top)}")
    if candidate.tables:
        reasons.append(f"Database tables: {', '.join(sorted(candidate.tables))}")
    if candidate.cohesion_score > HIGH_COHESION:
        reasons.append(f"High cohesion score: {candidate.cohesion_score * 100:.1f}%")
    dirs = directories(candidate)
    if len(dirs) == 1:
        reasons.append(f"All files live in directory '{dirs[0]}'")
    return reasons


def describe(candidate: ModuleCandidate) -> str:
    if candidate.description:
        return candidate.description
    keywords = sorted(candidate.semantic_keywords)[:3] or [candidate.name]
    return (
        f"Module grouping functionality related to {', '.join(keywords)} "
        f"({candidate.size} elements)"
    )


def _names(candidate: ModuleCandidate, arena: NodeArena, kind: NodeKind) -> List[str]:
    return sorted({node.name for node in candidate.nodes(arena, kind)})


def to_boundary(candidate: ModuleCandidate, arena: NodeArena, confidence: float) -> DiscoveredBoundary:
    return DiscoveredBoundary(
        name=candidate.name,
        description=describe(candidate),
        confidence=confidence,
        files=sorted(candidate.files),
        structs=_names(candidate, arena, NodeKind.STRUCT),
        interfaces=_names(candidate, arena, NodeKind.INTERFACE),
        functions=_names(candidate, arena, NodeKind.FUNCTION),
        database_tables=sorted(candidate.tables),
        reasoning=reasoning(candidate),
        semantic_keywords=sorted(candidate.semantic_keywords),
        dependency_clusters=sorted(candidate.external_dependencies),
        user_declared=candidate.user_declared,
    )


# ===================================================================
# Selection
# ===================================================================

def _drop_umbrellas(
    scored: List[Tuple[ModuleCandidate, float]],
) -> List[Tuple[ModuleCandidate, float]]:
    """Remove discovered candidates fully covered by two or more smaller ones.

    A directory-wide group over several finer modules adds nothing once the
    finer modules survive on their own.
    """
    kept: List[Tuple[ModuleCandidate, float]] = []
    for candidate, confidence in sorted(scored, key=lambda item: len(item[0].files)):
        if not candidate.user_declared:
            covering = [
                other for other, _ in kept
                if len(other.files) < len(candidate.files) and other.files & candidate.files
            ]
            covered = set().union(*(other.files for other in covering))
            if len(covering) >= 2 and candidate.files <= covered:
                logger.debug("Dropping umbrella candidate '%s'", candidate.name)
                continue
        kept.append((candidate, confidence))
    return kept


def select(
    candidates: Sequence[ModuleCandidate],
    arena: NodeArena,
    min_confidence: float = 0.5,
) -> List[Tuple[ModuleCandidate, DiscoveredBoundary]]:
    """Score, filter and rank candidates; keep each candidate with its boundary."""
    scored: List[Tuple[ModuleCandidate, float]] = []
    for candidate in candidates:
        if candidate.user_declared:
            scored.append((candidate, 1.0))
            continue
        confidence = round(score(candidate, candidates), 6)
        if confidence < min_confidence:
            logger.debug(
                "Candidate '%s' below threshold (%.3f < %.3f)",
                candidate.name, confidence, min_confidence,
            )
            continue
        scored.append((candidate, confidence))

    pairs = [
        (candidate, to_boundary(candidate, arena, confidence))
        for candidate, confidence in _drop_umbrellas(scored)
    ]
    pairs.sort(key=lambda pair: (-pair[1].confidence, pair[1].name, pair[1].files))
    return pairs


def to_boundaries(
    candidates: Sequence[ModuleCandidate],
    arena: NodeArena,
    min_confidence: float = 0.5,
) -> List[DiscoveredBoundary]:
    return [boundary for _, boundary in select(candidates, arena, min_confidence)]
