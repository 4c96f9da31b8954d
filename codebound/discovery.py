"""Boundary discovery engine: scan, extract, cluster, merge, score, report."""

from __future__ import annotations

import logging
import posixpath
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .clustering import ClusteringOptions, Strategy, run_strategies
from .config import DiscoveryConfig
from .dependency import jaccard
from .merger import merge_candidates
from .models import (
    ClusteringAnalysis,
    ConfidenceMetrics,
    DiscoveredBoundary,
    DiscoveryResult,
    FileExtraction,
    ModuleCandidate,
    NodeArena,
)
from .parser import extract_file
from .recommendations import analyze_overlaps, generate_recommendations
from .scanner import SourceScanner, sampler_for
from .scoring import database_score, select
from .user_boundaries import load_user_boundaries, user_candidates

logger = logging.getLogger(__name__)


class Deadline:
    """Wall-clock budget, checked by the engine between stages."""

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._started = clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    @property
    def expired(self) -> bool:
        return self.timeout_seconds is not None and self.elapsed >= self.timeout_seconds


# ===================================================================
# Metrics
# ===================================================================

def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def confidence_metrics(pairs: Sequence[Tuple[ModuleCandidate, DiscoveredBoundary]]) -> ConfidenceMetrics:
    if not pairs:
        return ConfidenceMetrics()

    boundaries = [b for _, b in pairs]
    if len(boundaries) < 2:
        clarity = 1.0
    else:
        overlaps = [
            jaccard(boundaries[i].files, boundaries[j].files)
            for i in range(len(boundaries))
            for j in range(i + 1, len(boundaries))
        ]
        clarity = 1.0 - _mean(overlaps)

    single_directory = [
        b for b in boundaries
        if len({posixpath.dirname(f) for f in b.files}) == 1
    ]
    return ConfidenceMetrics(
        overall_confidence=_mean([b.confidence for b in boundaries]),
        semantic_consistency=_mean([c.cohesion_score for c, _ in pairs]),
        structural_coherence=len(single_directory) / len(boundaries),
        dependency_clarity=clarity,
        database_alignment=_mean([database_score(c) for c, _ in pairs]),
    )


def quality_score(metrics: ConfidenceMetrics) -> float:
    return _mean([
        metrics.semantic_consistency,
        metrics.structural_coherence,
        metrics.dependency_clarity,
        metrics.database_alignment,
    ])


def orphaned_files(arena: NodeArena, boundaries: Sequence[DiscoveredBoundary]) -> List[str]:
    """Analyzed files with declarations that no boundary claims."""
    owned = {f for b in boundaries for f in b.files}
    return sorted({node.file for node in arena.nodes} - owned)


# ===================================================================
# Engine
# ===================================================================

class BoundaryDiscoveryEngine:
    """Propose module boundaries for the source tree under a project root.

    The engine is a function of the files it finds and its configuration;
    running it twice on an unchanged tree yields identical results.

    Args:
        config: Discovery settings (defaults when omitted).
        logger: Any ``logging.Logger``-compatible object receiving stage
            progress; the module logger by default.
        strategies: Override the clustering strategies (name -> callable).
    """

    def __init__(
        self,
        config: Optional[DiscoveryConfig] = None,
        logger: Optional[logging.Logger] = None,
        strategies: Optional[Dict[str, Strategy]] = None,
    ) -> None:
        self.config = config or DiscoveryConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.strategies = strategies

    @property
    def clustering_options(self) -> ClusteringOptions:
        return ClusteringOptions(
            max_dependency_nodes=self.config.max_dependency_nodes,
            extra_keywords=tuple(self.config.extra_keywords),
        )

    def extract(self, root: Path, files: Sequence[Path]) -> NodeArena:
        """Extract every file (in parallel when configured) into one arena."""
        worker = partial(extract_file, root)
        if self.config.workers <= 1 or len(files) <= 1:
            extractions: List[FileExtraction] = [worker(f) for f in files]
        else:
            with ThreadPoolExecutor(max_workers=min(self.config.workers, len(files))) as executor:
                extractions = list(executor.map(worker, files))

        nodes = [node for extraction in extractions for node in extraction.nodes]
        facts = [fact for extraction in extractions for fact in extraction.database_access]
        return NodeArena.build(nodes, facts, (f.as_posix() for f in files))

    def _timed_out(self, stage: str, deadline: Deadline, **stats: int) -> DiscoveryResult:
        self.logger.warning(
            "Discovery timed out after %.2fs (during %s); returning a partial result",
            deadline.elapsed, stage,
        )
        return DiscoveryResult(partial=True, **stats)

    def discover(self, root: Path, boundary_file: Optional[Path] = None) -> DiscoveryResult:
        """Run the full pipeline over *root*.

        Raises:
            InvalidRootError: *root* is missing or not a directory.
            BoundaryFileError: *boundary_file* cannot be loaded.
        """
        log = self.logger
        deadline = Deadline(self.config.timeout_seconds)

        scanner = SourceScanner.from_config(Path(root), self.config)
        root_path = scanner.validate_root()
        declared = load_user_boundaries(boundary_file) if boundary_file else []

        scanned = scanner.scan()
        files = sampler_for(self.config).sample(scanned, root_path)
        log.info("Analyzing %d of %d source files under %s", len(files), len(scanned), root_path)
        stats = {"files_scanned": len(scanned), "files_analyzed": len(files)}
        if deadline.expired:
            return self._timed_out("scanning", deadline, **stats)

        arena = self.extract(root_path, files)
        stats["node_count"] = len(arena)
        log.info(
            "Extracted %d declarations and %d table accesses", len(arena), len(arena.facts),
        )
        if deadline.expired:
            return self._timed_out("extraction", deadline, **stats)

        candidates = user_candidates(declared, arena, [f.as_posix() for f in files])
        candidates.extend(run_strategies(arena, self.clustering_options, self.strategies, log))
        if deadline.expired:
            return self._timed_out("clustering", deadline, **stats)

        merged = merge_candidates(candidates, arena, self.config.max_merge_candidates)
        log.info("Merged %d candidates into %d", len(candidates), len(merged))
        if deadline.expired:
            return self._timed_out("merging", deadline, **stats)

        pairs = select(merged, arena, self.config.min_confidence)
        boundaries = [boundary for _, boundary in pairs]
        log.info("Discovered %d boundaries", len(boundaries))

        metrics = confidence_metrics(pairs)
        analysis = ClusteringAnalysis(
            optimal_cluster_count=len(boundaries),
            cluster_quality_score=quality_score(metrics),
            boundary_overlaps=analyze_overlaps(boundaries),
            orphaned_files=orphaned_files(arena, boundaries),
        )
        return DiscoveryResult(
            discovered_boundaries=boundaries,
            confidence_metrics=metrics,
            clustering_analysis=analysis,
            recommendations=generate_recommendations(boundaries),
            **stats,
        )


def discover(
    root: Path,
    config: Optional[DiscoveryConfig] = None,
    boundary_file: Optional[Path] = None,
    logger: Optional[logging.Logger] = None,
) -> DiscoveryResult:
    """Convenience wrapper around :class:`BoundaryDiscoveryEngine`."""
    return BoundaryDiscoveryEngine(config=config, logger=logger).discover(root, boundary_file)
