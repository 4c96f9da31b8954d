"""Pairwise relationship facts between declaration nodes.

No global graph is materialised: every fact is computed on demand from two
nodes, which keeps the clustering strategies pure functions of the arena.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import FrozenSet, Iterable, List, Optional, Set

from .models import DeclarationNode, NodeArena

# Relationship weights used by dependency-distance clustering.
DIRECT_REFERENCE_WEIGHT = 0.8
CALL_REFERENCE_WEIGHT = 0.6
SAME_FILE_WEIGHT = 0.4
SAME_DIRECTORY_WEIGHT = 0.2
SEMANTIC_WEIGHT = 0.3

_TOKEN_SPLIT_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])|[^A-Za-z0-9]+")


@dataclass(frozen=True)
class DependencyFact:
    source: str
    target: str
    kind: str  # reference | call | co_location | directory
    weight: float


def tokenize_name(name: str) -> List[str]:
    """Split camelCase / snake_case names into lowercase tokens (> 2 chars)."""
    return [t.lower() for t in _TOKEN_SPLIT_RE.split(name) if len(t) > 2]


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def semantic_similarity(name1: str, name2: str) -> float:
    tokens1, tokens2 = tokenize_name(name1), tokenize_name(name2)
    if not tokens1 or not tokens2:
        return 0.0
    return jaccard(tokens1, tokens2)


def name_similarity(name1: str, name2: str) -> float:
    """Normalised edit similarity of two names (case-insensitive)."""
    if not name1 or not name2:
        return 0.0
    return SequenceMatcher(None, name1.lower(), name2.lower()).ratio()


def file_overlap(files1: Iterable[str], files2: Iterable[str]) -> float:
    return jaccard(files1, files2)


def _calls(caller: DeclarationNode, callee: DeclarationNode) -> bool:
    suffix = "." + callee.name
    return any(c == callee.name or c.endswith(suffix) for c in caller.called_identifiers)


def references(a: DeclarationNode, b: DeclarationNode) -> bool:
    return b.name in a.references or a.name in b.references


def calls_either(a: DeclarationNode, b: DeclarationNode) -> bool:
    return _calls(a, b) or _calls(b, a)


def dependency_strength(a: DeclarationNode, b: DeclarationNode) -> float:
    """Weighted relationship strength between two nodes, capped at 1.0.

    Symmetric: ``dependency_strength(a, b) == dependency_strength(b, a)``.
    """
    strength = 0.0
    if references(a, b):
        strength += DIRECT_REFERENCE_WEIGHT
    if calls_either(a, b):
        strength += CALL_REFERENCE_WEIGHT
    if a.file == b.file:
        strength += SAME_FILE_WEIGHT
    if a.directory == b.directory:
        strength += SAME_DIRECTORY_WEIGHT
    strength += semantic_similarity(a.name, b.name) * SEMANTIC_WEIGHT
    return min(strength, 1.0)


def facts_between(a: DeclarationNode, b: DeclarationNode) -> List[DependencyFact]:
    facts: List[DependencyFact] = []
    if references(a, b):
        facts.append(DependencyFact(a.name, b.name, "reference", DIRECT_REFERENCE_WEIGHT))
    if calls_either(a, b):
        facts.append(DependencyFact(a.name, b.name, "call", CALL_REFERENCE_WEIGHT))
    if a.file == b.file:
        facts.append(DependencyFact(a.name, b.name, "co_location", SAME_FILE_WEIGHT))
    elif a.directory == b.directory:
        facts.append(DependencyFact(a.name, b.name, "directory", SAME_DIRECTORY_WEIGHT))
    return facts


def build_facts(arena: NodeArena) -> List[DependencyFact]:
    """All pairwise facts of an arena, for `cb scan --facts` (quadratic)."""
    facts: List[DependencyFact] = []
    nodes = arena.nodes
    for i in range(len(nodes)):
        for j in range(i + 1, len(nodes)):
            facts.extend(facts_between(nodes[i], nodes[j]))
    return facts


def external_dependencies(
    members: Iterable[int],
    arena: NodeArena,
    declared: Optional[FrozenSet[str]] = None,
) -> Set[str]:
    """Project declarations referenced or called by *members* but outside them.

    *declared* defaults to every name in the arena.
    """
    member_set = set(members)
    inside = {arena[i].name for i in member_set}
    if declared is None:
        declared = arena.declared_names

    external: Set[str] = set()
    for i in member_set:
        node = arena[i]
        for ref in node.references:
            if ref not in inside and ref in declared:
                external.add(ref)
        for call in node.called_identifiers:
            target = call.rsplit(".", 1)[-1]
            if target not in inside and target in declared:
                external.add(target)
    return external
