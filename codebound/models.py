"""Core data models shared by extraction, clustering, scoring and export."""

from __future__ import annotations

import json
import posixpath
from dataclasses import dataclass, field
from functools import cached_property
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple


class NodeKind(str, Enum):
    STRUCT = "struct"
    INTERFACE = "interface"
    FUNCTION = "function"


DB_OPERATIONS = ("select", "insert", "update", "delete")
RECOMMENDATION_TYPES = ("merge", "split", "rename", "move_files")
DIFFICULTIES = ("low", "medium", "high")
OVERLAP_TYPES = ("file", "dependency", "semantic")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _to_percent(value: float) -> float:
    return round(value * 100, 2)


def _from_percent(value: float) -> float:
    return round(float(value) / 100, 6)


# ===================================================================
# Extraction models
# ===================================================================

@dataclass(frozen=True)
class Member:
    """A struct field, interface method or function parameter."""

    name: str
    type: str


@dataclass(frozen=True)
class DeclarationNode:
    kind: NodeKind
    name: str
    file: str
    line: int
    members: Tuple[Member, ...] = ()
    called_identifiers: Tuple[str, ...] = ()
    owner: Optional[str] = None
    table_access: Tuple[str, ...] = ()
    references: Tuple[str, ...] = ()

    @property
    def key(self) -> Tuple[str, str, int, str]:
        return (self.kind.value, self.file, self.line, self.name)

    @property
    def sort_key(self) -> Tuple[str, int, str, str]:
        return (self.file, self.line, self.name, self.kind.value)

    @property
    def directory(self) -> str:
        return posixpath.dirname(self.file) or "."

    @property
    def is_struct(self) -> bool:
        return self.kind is NodeKind.STRUCT

    @property
    def is_interface(self) -> bool:
        return self.kind is NodeKind.INTERFACE

    @property
    def is_function(self) -> bool:
        return self.kind is NodeKind.FUNCTION


@dataclass(frozen=True)
class DatabaseAccessFact:
    table: str
    operation: str
    file: str
    function: str

    def __post_init__(self) -> None:
        if self.operation not in DB_OPERATIONS:
            raise ValueError(f"Unknown database operation '{self.operation}'")

    def to_dict(self) -> Dict[str, str]:
        return {
            "table": self.table,
            "operation": self.operation,
            "file": self.file,
            "function": self.function,
        }


@dataclass
class FileExtraction:
    """Declarations extracted from a single source file."""

    structs: List[DeclarationNode] = field(default_factory=list)
    interfaces: List[DeclarationNode] = field(default_factory=list)
    functions: List[DeclarationNode] = field(default_factory=list)
    database_access: List[DatabaseAccessFact] = field(default_factory=list)

    @property
    def nodes(self) -> List[DeclarationNode]:
        return [*self.structs, *self.interfaces, *self.functions]

    def add(self, node: DeclarationNode) -> None:
        if node.is_struct:
            self.structs.append(node)
        elif node.is_interface:
            self.interfaces.append(node)
        else:
            self.functions.append(node)

    def __len__(self) -> int:
        return len(self.structs) + len(self.interfaces) + len(self.functions)


@dataclass(frozen=True)
class NodeArena:
    """Every extracted node, addressed by a stable integer index.

    Nodes are ordered by ``(file, line, name)`` so that index order, and
    therefore every clustering pass, is independent of the order in which
    files finished extracting.
    """

    nodes: Tuple[DeclarationNode, ...] = ()
    facts: Tuple[DatabaseAccessFact, ...] = ()
    files: Tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        nodes: Iterable[DeclarationNode],
        facts: Iterable[DatabaseAccessFact] = (),
        files: Iterable[str] = (),
    ) -> "NodeArena":
        ordered = tuple(sorted(set(nodes), key=lambda n: n.sort_key))
        ordered_facts = tuple(sorted(
            set(facts), key=lambda f: (f.file, f.function, f.table, f.operation),
        ))
        all_files = set(files) | {n.file for n in ordered}
        return cls(nodes=ordered, facts=ordered_facts, files=tuple(sorted(all_files)))

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, index: int) -> DeclarationNode:
        return self.nodes[index]

    def indices(self, kind: Optional[NodeKind] = None) -> List[int]:
        return [i for i, n in enumerate(self.nodes) if kind is None or n.kind is kind]

    def files_of(self, members: Iterable[int]) -> Set[str]:
        return {self.nodes[i].file for i in members}

    @cached_property
    def declared_names(self) -> FrozenSet[str]:
        """Names of every declaration in the arena."""
        return frozenset(n.name for n in self.nodes)


# ===================================================================
# Clustering models
# ===================================================================

@dataclass
class ModuleCandidate:
    """An intermediate grouping of arena indices produced by one strategy."""

    name: str
    members: Set[int] = field(default_factory=set)
    files: Set[str] = field(default_factory=set)
    database_access: Set[DatabaseAccessFact] = field(default_factory=set)
    semantic_keywords: Set[str] = field(default_factory=set)
    cohesion_score: float = 0.0
    external_dependencies: Set[str] = field(default_factory=set)
    source: str = ""
    user_declared: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        self.cohesion_score = clamp(self.cohesion_score)

    @classmethod
    def from_members(
        cls,
        name: str,
        members: Iterable[int],
        arena: NodeArena,
        **kwargs: Any,
    ) -> "ModuleCandidate":
        member_set = set(members)
        files = arena.files_of(member_set) | set(kwargs.pop("files", ()))
        return cls(name=name, members=member_set, files=files, **kwargs)

    def nodes(self, arena: NodeArena, kind: Optional[NodeKind] = None) -> List[DeclarationNode]:
        return [
            arena[i] for i in sorted(self.members)
            if kind is None or arena[i].kind is kind
        ]

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def tables(self) -> Set[str]:
        return {f.table for f in self.database_access}


# ===================================================================
# Output models
# ===================================================================

@dataclass
class DiscoveredBoundary:
    name: str
    description: str
    confidence: float
    files: List[str] = field(default_factory=list)
    structs: List[str] = field(default_factory=list)
    interfaces: List[str] = field(default_factory=list)
    functions: List[str] = field(default_factory=list)
    database_tables: List[str] = field(default_factory=list)
    reasoning: List[str] = field(default_factory=list)
    semantic_keywords: List[str] = field(default_factory=list)
    dependency_clusters: List[str] = field(default_factory=list)
    user_declared: bool = False

    def __post_init__(self) -> None:
        self.confidence = round(clamp(self.confidence), 6)

    @property
    def element_count(self) -> int:
        return len(self.structs) + len(self.interfaces) + len(self.functions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "confidence": _to_percent(self.confidence),
            "files": list(self.files),
            "structs": list(self.structs),
            "interfaces": list(self.interfaces),
            "functions": list(self.functions),
            "database_tables": list(self.database_tables),
            "reasoning": list(self.reasoning),
            "semantic_keywords": list(self.semantic_keywords),
            "dependency_clusters": list(self.dependency_clusters),
            "user_declared": self.user_declared,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscoveredBoundary":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            confidence=_from_percent(data.get("confidence", 0)),
            files=list(data.get("files", [])),
            structs=list(data.get("structs", [])),
            interfaces=list(data.get("interfaces", [])),
            functions=list(data.get("functions", [])),
            database_tables=list(data.get("database_tables", [])),
            reasoning=list(data.get("reasoning", [])),
            semantic_keywords=list(data.get("semantic_keywords", [])),
            dependency_clusters=list(data.get("dependency_clusters", [])),
            user_declared=bool(data.get("user_declared", False)),
        )


@dataclass
class ConfidenceMetrics:
    overall_confidence: float = 0.0
    semantic_consistency: float = 0.0
    structural_coherence: float = 0.0
    dependency_clarity: float = 0.0
    database_alignment: float = 0.0

    def __post_init__(self) -> None:
        for name in self._fields():
            setattr(self, name, round(clamp(getattr(self, name)), 6))

    @staticmethod
    def _fields() -> Tuple[str, ...]:
        return (
            "overall_confidence",
            "semantic_consistency",
            "structural_coherence",
            "dependency_clarity",
            "database_alignment",
        )

    def to_dict(self) -> Dict[str, float]:
        return {name: _to_percent(getattr(self, name)) for name in self._fields()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfidenceMetrics":
        return cls(**{name: _from_percent(data.get(name, 0)) for name in cls._fields()})


@dataclass
class BoundaryOverlap:
    boundary1: str
    boundary2: str
    overlap_type: str
    overlap_strength: float
    resolution_suggestion: str

    def __post_init__(self) -> None:
        if self.overlap_type not in OVERLAP_TYPES:
            raise ValueError(f"Unknown overlap type '{self.overlap_type}'")
        self.overlap_strength = round(clamp(self.overlap_strength), 6)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "boundary1": self.boundary1,
            "boundary2": self.boundary2,
            "overlap_type": self.overlap_type,
            "overlap_strength": self.overlap_strength,
            "resolution_suggestion": self.resolution_suggestion,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoundaryOverlap":
        return cls(**{k: data[k] for k in (
            "boundary1", "boundary2", "overlap_type", "overlap_strength", "resolution_suggestion",
        )})


@dataclass
class ClusteringAnalysis:
    optimal_cluster_count: int = 0
    cluster_quality_score: float = 0.0
    boundary_overlaps: List[BoundaryOverlap] = field(default_factory=list)
    orphaned_files: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.cluster_quality_score = round(clamp(self.cluster_quality_score), 6)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "optimal_cluster_count": self.optimal_cluster_count,
            "cluster_quality_score": _to_percent(self.cluster_quality_score),
            "boundary_overlaps": [o.to_dict() for o in self.boundary_overlaps],
            "orphaned_files": list(self.orphaned_files),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusteringAnalysis":
        return cls(
            optimal_cluster_count=int(data.get("optimal_cluster_count", 0)),
            cluster_quality_score=_from_percent(data.get("cluster_quality_score", 0)),
            boundary_overlaps=[BoundaryOverlap.from_dict(o) for o in data.get("boundary_overlaps", [])],
            orphaned_files=list(data.get("orphaned_files", [])),
        )


@dataclass
class BoundaryRecommendation:
    type: str
    boundaries: List[str]
    reason: str
    expected_benefit: str
    implementation_difficulty: str

    def __post_init__(self) -> None:
        if self.type not in RECOMMENDATION_TYPES:
            raise ValueError(f"Unknown recommendation type '{self.type}'")
        if self.implementation_difficulty not in DIFFICULTIES:
            raise ValueError(f"Unknown difficulty '{self.implementation_difficulty}'")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "boundaries": list(self.boundaries),
            "reason": self.reason,
            "expected_benefit": self.expected_benefit,
            "implementation_difficulty": self.implementation_difficulty,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoundaryRecommendation":
        return cls(
            type=data["type"],
            boundaries=list(data.get("boundaries", [])),
            reason=data.get("reason", ""),
            expected_benefit=data.get("expected_benefit", ""),
            implementation_difficulty=data.get("implementation_difficulty", "medium"),
        )


@dataclass
class DiscoveryResult:
    discovered_boundaries: List[DiscoveredBoundary] = field(default_factory=list)
    confidence_metrics: ConfidenceMetrics = field(default_factory=ConfidenceMetrics)
    clustering_analysis: ClusteringAnalysis = field(default_factory=ClusteringAnalysis)
    recommendations: List[BoundaryRecommendation] = field(default_factory=list)
    files_scanned: int = 0
    files_analyzed: int = 0
    node_count: int = 0
    partial: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "discovered_boundaries": [b.to_dict() for b in self.discovered_boundaries],
            "confidence_metrics": self.confidence_metrics.to_dict(),
            "clustering_analysis": self.clustering_analysis.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "statistics": {
                "files_scanned": self.files_scanned,
                "files_analyzed": self.files_analyzed,
                "node_count": self.node_count,
                "partial": self.partial,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscoveryResult":
        stats = data.get("statistics", {})
        return cls(
            discovered_boundaries=[
                DiscoveredBoundary.from_dict(b) for b in data.get("discovered_boundaries", [])
            ],
            confidence_metrics=ConfidenceMetrics.from_dict(data.get("confidence_metrics", {})),
            clustering_analysis=ClusteringAnalysis.from_dict(data.get("clustering_analysis", {})),
            recommendations=[
                BoundaryRecommendation.from_dict(r) for r in data.get("recommendations", [])
            ],
            files_scanned=int(stats.get("files_scanned", 0)),
            files_analyzed=int(stats.get("files_analyzed", 0)),
            node_count=int(stats.get("node_count", 0)),
            partial=bool(stats.get("partial", False)),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, text: str) -> "DiscoveryResult":
        return cls.from_dict(json.loads(text))
