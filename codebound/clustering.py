"""Multi-signal clustering of declaration nodes into module candidates.

Four independent strategies look at the same arena from different angles:

- **semantic**: domain keywords found in node and file names
- **dependency**: single-link greedy grouping by dependency strength
- **database**: functions that touch the same table
- **directory**: nodes that live in the same directory

Every strategy is a pure function ``(arena, options) -> candidates``.  A
strategy that raises is logged and contributes nothing; the others are
unaffected.
"""

from __future__ import annotations

import logging
import posixpath
from collections import Counter, OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .dependency import (
    dependency_strength,
    external_dependencies,
    name_similarity,
    semantic_similarity,
    tokenize_name,
)
from .models import DeclarationNode, ModuleCandidate, NodeArena
from .scanner import stride_sample

logger = logging.getLogger(__name__)

# Curated business-domain vocabulary; earlier entries win ties.
DOMAIN_KEYWORDS: Tuple[str, ...] = (
    "user", "customer", "account", "auth", "session", "role", "permission",
    "tenant", "organization", "team", "member", "profile",
    "order", "cart", "checkout", "product", "catalog", "inventory", "stock",
    "price", "pricing", "discount", "coupon", "promotion",
    "payment", "invoice", "billing", "subscription", "refund", "wallet", "ledger",
    "transaction",
    "shipment", "shipping", "delivery", "transport", "warehouse", "supplier",
    "notification", "alert", "message", "email", "chat",
    "report", "analytics", "metrics", "audit",
    "document", "file", "upload", "media", "content", "comment", "review",
    "search", "booking", "reservation", "schedule", "calendar", "event",
)

GENERIC_WORDS = frozenset({
    "type", "model", "data", "info", "item", "base", "common", "util", "utils",
    "helper", "helpers", "impl", "interface", "struct", "func", "main", "init",
    "test", "mock", "handle", "handler", "service", "repository", "repo",
    "manager", "get", "set", "new", "create", "update", "delete", "list",
})

# Pairwise cohesion is estimated on at most this many members.
COHESION_SAMPLE = 100
DEPENDENCY_THRESHOLD = 0.3


@dataclass(frozen=True)
class ClusteringOptions:
    max_dependency_nodes: int = 100
    extra_keywords: Tuple[str, ...] = ()
    min_semantic_group: int = 2
    min_directory_group: int = 3
    min_table_functions: int = 2

    @property
    def vocabulary(self) -> Tuple[str, ...]:
        extra = tuple(k.lower() for k in self.extra_keywords if k.lower() not in DOMAIN_KEYWORDS)
        return extra + DOMAIN_KEYWORDS


Strategy = Callable[[NodeArena, ClusteringOptions], List[ModuleCandidate]]


# ===================================================================
# Shared helpers
# ===================================================================

def node_tokens(node: DeclarationNode) -> List[str]:
    return tokenize_name(node.name)


def cluster_keywords(nodes: Iterable[DeclarationNode]) -> set:
    keywords: set = set()
    for node in nodes:
        keywords.update(node_tokens(node))
    return keywords


def is_meaningful(keyword: str) -> bool:
    return len(keyword) > 3 and keyword not in GENERIC_WORDS


def cluster_name(nodes: Sequence[DeclarationNode], fallback: str = "module") -> str:
    """Most frequent meaningful name token among *nodes* (ties: alphabetical)."""
    counts: Counter = Counter()
    for node in nodes:
        counts.update(t for t in node_tokens(node) if is_meaningful(t))
    if not counts:
        return fallback
    return min(counts.items(), key=lambda kv: (-kv[1], kv[0]))[0]


def name_cohesion(nodes: Sequence[DeclarationNode]) -> float:
    """Mean pairwise token similarity of member names."""
    sample = stride_sample(list(nodes), COHESION_SAMPLE)
    if len(sample) <= 1:
        return 1.0
    total = 0.0
    comparisons = 0
    for i in range(len(sample)):
        for j in range(i + 1, len(sample)):
            total += semantic_similarity(sample[i].name, sample[j].name)
            comparisons += 1
    return total / comparisons if comparisons else 0.0


def semantic_cohesion(nodes: Sequence[DeclarationNode]) -> float:
    """Share of member pairs that reference a common type or have similar names."""
    sample = stride_sample(list(nodes), COHESION_SAMPLE)
    if len(sample) <= 1:
        return 1.0
    connections = 0.0
    pairs = 0
    for i in range(len(sample)):
        for j in range(i + 1, len(sample)):
            pairs += 1
            a, b = sample[i], sample[j]
            if set(a.references) & set(b.references):
                connections += 1
                continue
            similarity = name_similarity(a.name, b.name)
            if similarity > 0.5:
                connections += similarity
    return connections / pairs if pairs else 0.0


def directory_name(file_path: str) -> str:
    parent = posixpath.dirname(file_path)
    return posixpath.basename(parent) if parent else "root"


def _candidate(
    name: str,
    members: Iterable[int],
    arena: NodeArena,
    source: str,
    keywords: Iterable[str],
    cohesion: float,
    **kwargs,
) -> ModuleCandidate:
    member_list = sorted(set(members))
    return ModuleCandidate.from_members(
        name,
        member_list,
        arena,
        semantic_keywords=set(keywords),
        cohesion_score=cohesion,
        external_dependencies=external_dependencies(member_list, arena),
        source=source,
        **kwargs,
    )


# ===================================================================
# Strategies
# ===================================================================

def semantic_clusters(arena: NodeArena, options: ClusteringOptions) -> List[ModuleCandidate]:
    """Group nodes by the first domain keyword in their name or file name."""
    vocabulary = options.vocabulary
    groups: "OrderedDict[str, List[int]]" = OrderedDict()

    for index, node in enumerate(arena.nodes):
        file_stem = posixpath.basename(node.file).rsplit(".", 1)[0]
        tokens = set(node_tokens(node)) | set(tokenize_name(file_stem))
        key = next(
            (kw for kw in vocabulary if kw in tokens or kw + "s" in tokens or kw + "es" in tokens),
            None,
        )
        if key is None:
            key = directory_name(node.file)
        groups.setdefault(key, []).append(index)

    candidates: List[ModuleCandidate] = []
    for key, members in groups.items():
        if len(members) < options.min_semantic_group:
            continue
        nodes = [arena[i] for i in members]
        candidates.append(_candidate(
            key, members, arena, "semantic", [key], semantic_cohesion(nodes),
        ))
    return candidates


def dependency_clusters(arena: NodeArena, options: ClusteringOptions) -> List[ModuleCandidate]:
    """Single-pass greedy clustering on pairwise dependency strength.

    Arena order (``file, line, name``) is the iteration order, so the result
    is deterministic.  Each seed absorbs every later unclustered node whose
    strength to the seed exceeds the threshold; absorption is not transitive.
    """
    indices = stride_sample(list(range(len(arena))), options.max_dependency_nodes)
    if len(indices) < len(arena):
        logger.info(
            "Dependency clustering sampled %d of %d nodes", len(indices), len(arena),
        )

    clustered: set = set()
    candidates: List[ModuleCandidate] = []
    for pos, seed in enumerate(indices):
        if seed in clustered:
            continue
        clustered.add(seed)
        members = [seed]
        for other in indices[pos + 1:]:
            if other in clustered:
                continue
            if dependency_strength(arena[seed], arena[other]) > DEPENDENCY_THRESHOLD:
                members.append(other)
                clustered.add(other)
        if len(members) < 2:
            continue
        nodes = [arena[i] for i in members]
        candidates.append(_candidate(
            cluster_name(nodes), members, arena, "dependency",
            cluster_keywords(nodes), name_cohesion(nodes),
        ))
    return candidates


def database_clusters(arena: NodeArena, options: ClusteringOptions) -> List[ModuleCandidate]:
    """One candidate per table accessed by enough distinct functions."""
    functions_by_key: Dict[Tuple[str, str], List[int]] = {}
    for index in arena.indices():
        node = arena[index]
        if node.is_function:
            functions_by_key.setdefault((node.name, node.file), []).append(index)

    tables: "OrderedDict[str, List[int]]" = OrderedDict()
    for fact in arena.facts:
        matches = functions_by_key.get((fact.function, fact.file), [])
        bucket = tables.setdefault(fact.table, [])
        for index in matches:
            if index not in bucket:
                bucket.append(index)

    candidates: List[ModuleCandidate] = []
    for table, members in tables.items():
        if len(members) < options.min_table_functions:
            continue
        nodes = [arena[i] for i in members]
        table_tokens = tokenize_name(table)
        if table_tokens:
            name = table_tokens[0]
            keywords = set(table_tokens)
        else:
            name = cluster_name(nodes, fallback=table)
            keywords = {name}
        candidates.append(_candidate(
            name, members, arena, "database", keywords, name_cohesion(nodes),
            database_access={f for f in arena.facts if f.table == table},
        ))
    return candidates


def directory_clusters(arena: NodeArena, options: ClusteringOptions) -> List[ModuleCandidate]:
    """Group every node kind by the name of its parent directory."""
    groups: "OrderedDict[str, List[int]]" = OrderedDict()
    for index, node in enumerate(arena.nodes):
        groups.setdefault(directory_name(node.file), []).append(index)

    candidates: List[ModuleCandidate] = []
    for dir_name, members in groups.items():
        if len(members) < options.min_directory_group:
            continue
        nodes = [arena[i] for i in members]
        candidates.append(_candidate(
            dir_name, members, arena, "directory",
            cluster_keywords(nodes), name_cohesion(nodes),
        ))
    return candidates


STRATEGIES: "OrderedDict[str, Strategy]" = OrderedDict([
    ("semantic", semantic_clusters),
    ("dependency", dependency_clusters),
    ("database", database_clusters),
    ("directory", directory_clusters),
])


def run_strategies(
    arena: NodeArena,
    options: Optional[ClusteringOptions] = None,
    strategies: Optional[Dict[str, Strategy]] = None,
    log: Optional[logging.Logger] = None,
) -> List[ModuleCandidate]:
    """Run every strategy over *arena* and concatenate their candidates."""
    options = options or ClusteringOptions()
    strategies = STRATEGIES if strategies is None else strategies
    log = log or logger

    candidates: List[ModuleCandidate] = []
    for name, strategy in strategies.items():
        try:
            found = strategy(arena, options)
        except Exception as exc:
            log.warning("Clustering strategy '%s' failed: %s", name, exc)
            continue
        log.info("Strategy '%s' produced %d candidates", name, len(found))
        candidates.extend(found)
    return candidates
