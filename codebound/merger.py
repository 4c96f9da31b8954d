"""Consolidation of overlapping module candidates.

Candidates from every strategy are pooled and merged until no two of them
share more than half of their files.  A second, same-directory pass merges
candidates whose members reference mostly the same project declarations,
which catches tightly coupled files that no single strategy put together.

Both passes only compare candidates found through an inverted index (file
for the overlap pass, directory and identifier for the coupling pass), so
disjoint candidates are never compared at all.
"""

from __future__ import annotations

import heapq
import logging
import posixpath
from collections import defaultdict
from typing import Dict, FrozenSet, Hashable, Iterable, List, Optional, Sequence, Set, Tuple

from .clustering import is_meaningful
from .dependency import external_dependencies, jaccard
from .models import ModuleCandidate, NodeArena

logger = logging.getLogger(__name__)

MERGE_THRESHOLD = 0.5
COUPLING_THRESHOLD = 0.5


def referenced_identifiers(
    candidate: ModuleCandidate,
    arena: NodeArena,
    declared: Optional[FrozenSet[str]] = None,
) -> Set[str]:
    """Project declarations referenced or called by the candidate's members."""
    if declared is None:
        declared = arena.declared_names
    identifiers: Set[str] = set()
    for node in candidate.nodes(arena):
        identifiers.update(ref for ref in node.references if ref in declared)
        for call in node.called_identifiers:
            target = call.rsplit(".", 1)[-1]
            if target in declared:
                identifiers.add(target)
    return identifiers


def merged_name(group: Sequence[ModuleCandidate]) -> str:
    """Pick a name for a merged group.

    A user-declared name always wins.  Otherwise each keyword scores
    ``1 + cohesion`` for every candidate that carries it; the best keyword
    wins, ties broken alphabetically.
    """
    for candidate in group:
        if candidate.user_declared:
            return candidate.name

    scores: Dict[str, float] = defaultdict(float)
    for candidate in group:
        for keyword in candidate.semantic_keywords:
            if is_meaningful(keyword):
                scores[keyword] += 1.0 + candidate.cohesion_score
    if not scores:
        return group[0].name
    return min(scores.items(), key=lambda kv: (-kv[1], kv[0]))[0]


def combine(
    group: Sequence[ModuleCandidate],
    arena: Optional[NodeArena] = None,
    declared: Optional[FrozenSet[str]] = None,
) -> ModuleCandidate:
    if len(group) == 1:
        return group[0]

    members: Set[int] = set()
    files: Set[str] = set()
    facts: Set = set()
    keywords: Set[str] = set()
    external: Set[str] = set()
    sources: Set[str] = set()
    for candidate in group:
        members |= candidate.members
        files |= candidate.files
        facts |= candidate.database_access
        keywords |= candidate.semantic_keywords
        external |= candidate.external_dependencies
        sources.update(s for s in candidate.source.split("+") if s)

    if arena is not None:
        external = external_dependencies(members, arena, declared)

    user = next((c for c in group if c.user_declared), None)
    return ModuleCandidate(
        name=merged_name(group),
        members=members,
        files=files,
        database_access=facts,
        semantic_keywords=keywords,
        cohesion_score=sum(c.cohesion_score for c in group) / len(group),
        external_dependencies=external,
        source="+".join(sorted(sources)),
        user_declared=user is not None,
        description=user.description if user is not None else "",
    )


def _single_directory(files: Iterable[str]) -> Optional[str]:
    directories = {posixpath.dirname(f) for f in files}
    return directories.pop() if len(directories) == 1 else None


def _push_neighbours(
    keys: Iterable[Hashable],
    index: Dict[Hashable, List[int]],
    floor: int,
    seen: Set[int],
    pending: List[int],
) -> None:
    for key in keys:
        for j in index.get(key, ()):
            if j > floor and j not in seen:
                seen.add(j)
                heapq.heappush(pending, j)


def _overlap_pass(
    candidates: List[ModuleCandidate],
    arena: Optional[NodeArena],
    declared: Optional[FrozenSet[str]],
) -> Tuple[List[ModuleCandidate], bool]:
    # Overlap above one half needs at least one shared file.
    index: Dict[Hashable, List[int]] = defaultdict(list)
    for i, candidate in enumerate(candidates):
        for path in candidate.files:
            index[path].append(i)

    absorbed = [False] * len(candidates)
    result: List[ModuleCandidate] = []
    changed = False

    for i, candidate in enumerate(candidates):
        if absorbed[i]:
            continue
        group = [candidate]
        files = set(candidate.files)
        seen = {i}
        pending: List[int] = []
        _push_neighbours(files, index, i, seen, pending)
        while pending:
            j = heapq.heappop(pending)
            if absorbed[j]:
                continue
            other = candidates[j]
            if jaccard(files, other.files) > MERGE_THRESHOLD:
                added = other.files - files
                group.append(other)
                files |= other.files
                absorbed[j] = True
                _push_neighbours(added, index, i, seen, pending)
        changed = changed or len(group) > 1
        result.append(combine(group, arena, declared))
    return result, changed


def _coupling_pass(
    candidates: List[ModuleCandidate],
    arena: NodeArena,
    declared: FrozenSet[str],
) -> Tuple[List[ModuleCandidate], bool]:
    identifiers = [referenced_identifiers(c, arena, declared) for c in candidates]
    directories = [_single_directory(c.files) for c in candidates]

    # Coupled candidates live in one directory and share an identifier.
    index: Dict[Hashable, List[int]] = defaultdict(list)
    for i, (directory, idents) in enumerate(zip(directories, identifiers)):
        if directory is not None:
            for ident in idents:
                index[(directory, ident)].append(i)

    absorbed = [False] * len(candidates)
    result: List[ModuleCandidate] = []
    changed = False

    for i, candidate in enumerate(candidates):
        if absorbed[i]:
            continue
        group = [candidate]
        directory = directories[i]
        if directory is not None and identifiers[i]:
            idents = set(identifiers[i])
            seen = {i}
            pending: List[int] = []
            _push_neighbours(((directory, x) for x in idents), index, i, seen, pending)
            while pending:
                j = heapq.heappop(pending)
                if absorbed[j]:
                    continue
                if jaccard(idents, identifiers[j]) > COUPLING_THRESHOLD:
                    added = identifiers[j] - idents
                    group.append(candidates[j])
                    idents |= identifiers[j]
                    absorbed[j] = True
                    _push_neighbours(((directory, x) for x in added), index, i, seen, pending)
        changed = changed or len(group) > 1
        result.append(combine(group, arena, declared))
    return result, changed


def merge_candidates(
    candidates: Sequence[ModuleCandidate],
    arena: Optional[NodeArena] = None,
    max_candidates: int = 400,
) -> List[ModuleCandidate]:
    """Merge candidates until no pair overlaps by more than half its files.

    Every pass that changes anything strictly reduces the number of
    candidates, so the loop terminates.  The coupling pass needs the arena
    and is skipped without one.

    Args:
        candidates: Candidates from all strategies, in strategy order.
        arena: Node arena the candidates index into.
        max_candidates: Above this many candidates, the largest (by file
            count) absorb first.  Only the order changes; the amount of
            work is bounded by the inverted indexes.

    Returns:
        The merged candidates; no two share more than 50% of their files.
    """
    working = [c for c in candidates if c.members or c.files]
    if len(working) > max_candidates:
        logger.info(
            "Merging %d candidates largest-first (limit %d)", len(working), max_candidates,
        )
        working.sort(key=lambda c: -len(c.files))

    declared = arena.declared_names if arena is not None else None
    passes = 0
    while True:
        passes += 1
        working, overlap_changed = _overlap_pass(working, arena, declared)
        coupling_changed = False
        if arena is not None and declared is not None:
            working, coupling_changed = _coupling_pass(working, arena, declared)
        if not (overlap_changed or coupling_changed):
            break

    logger.debug("Merged into %d candidates after %d passes", len(working), passes)
    return working
