"""Source file enumeration and file-set sampling.

The scanner is the only place that decides *which* files are analyzed.
Sampling happens exactly once, here, so its effect on determinism stays
isolated from the clustering stages.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Sequence, Set, TypeVar

from .config import DEFAULT_EXCLUDE, DiscoveryConfig
from .errors import InvalidRootError
from .parser import supported_extensions

logger = logging.getLogger(__name__)

T = TypeVar("T")

SKIP_DIRS: Set[str] = {
    ".git", ".hg", ".svn", ".venv", "venv", "__pycache__", "node_modules",
    "site-packages", ".tox", ".pytest_cache", ".mypy_cache", ".ruff_cache",
    ".idea", ".vscode", "htmlcov", ".eggs", ".codebound",
}

# Path fragments that mark a file as architecturally important, with weights.
IMPORTANCE_HINTS = (
    (("handler", "controller"), 3.0),
    (("service", "usecase"), 3.0),
    (("repository", "dao"), 3.0),
    (("model", "entity"), 2.0),
    (("domain", "core"), 2.0),
)


def _matches(rel_path: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch(rel_path, pattern) for pattern in patterns)


class SourceScanner:
    """Enumerate candidate source files below *root*."""

    def __init__(
        self,
        root: Path,
        include: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
        extensions: Optional[Iterable[str]] = None,
    ) -> None:
        self.root = Path(root)
        self.include = list(include or [])
        self.exclude = list(DEFAULT_EXCLUDE if exclude is None else exclude)
        self.extensions = set(extensions or supported_extensions())

    @classmethod
    def from_config(cls, root: Path, config: DiscoveryConfig) -> "SourceScanner":
        return cls(root, include=config.include, exclude=config.exclude)

    def validate_root(self) -> Path:
        if not self.root.exists():
            raise InvalidRootError(f"Project root '{self.root}' does not exist.")
        if not self.root.is_dir():
            raise InvalidRootError(f"Project root '{self.root}' is not a directory.")
        return self.root.resolve()

    def scan(self) -> List[Path]:
        """Return matching files as sorted paths relative to the root."""
        root = self.validate_root()
        found: List[Path] = []

        for file_path in sorted(root.rglob("*")):
            rel = file_path.relative_to(root)
            if any(part in SKIP_DIRS for part in rel.parts[:-1]):
                continue
            if not file_path.is_file() or file_path.suffix not in self.extensions:
                continue
            rel_posix = rel.as_posix()
            if self.include and not _matches(rel_posix, self.include):
                continue
            if _matches(rel_posix, self.exclude):
                continue
            found.append(rel)

        logger.debug("Scanned %s: %d candidate files", root, len(found))
        return found


# ===================================================================
# Samplers
# ===================================================================

def stride_sample(items: Sequence[T], max_items: int) -> List[T]:
    """Deterministically keep at most *max_items* evenly strided items."""
    if len(items) <= max_items:
        return list(items)
    step = max(1, len(items) // max_items)
    return list(items[::step][:max_items])


class Sampler(ABC):
    """Strategy that bounds the set of files handed to extraction."""

    @abstractmethod
    def sample(self, paths: Sequence[Path], root: Path) -> List[Path]:
        ...


class NoSampler(Sampler):
    def sample(self, paths: Sequence[Path], root: Path) -> List[Path]:
        return list(paths)


class StrideSampler(Sampler):
    def __init__(self, max_files: int) -> None:
        self.max_files = max_files

    def sample(self, paths: Sequence[Path], root: Path) -> List[Path]:
        return stride_sample(sorted(paths), self.max_files)


class ImportanceSampler(Sampler):
    """Keep the top-K files by path depth, naming hints and size."""

    def __init__(self, max_files: int) -> None:
        self.max_files = max_files

    @staticmethod
    def importance(rel_path: Path, root: Path) -> float:
        posix = PurePosixPath(rel_path.as_posix())
        lowered = str(posix).lower()

        score = max(0.0, 5.0 - len(posix.parts))
        for hints, weight in IMPORTANCE_HINTS:
            if any(hint in lowered for hint in hints):
                score += weight

        try:
            size = (root / rel_path).stat().st_size
        except OSError:
            size = 0
        score += min(3.0, size / 10000)
        return score

    def sample(self, paths: Sequence[Path], root: Path) -> List[Path]:
        if len(paths) <= self.max_files:
            return sorted(paths)
        scored = sorted(
            paths,
            key=lambda p: (-self.importance(p, root), p.as_posix()),
        )
        return sorted(scored[: self.max_files])


def sampler_for(config: DiscoveryConfig) -> Sampler:
    if config.sampling == "stride":
        return StrideSampler(config.max_files)
    if config.sampling == "importance":
        return ImportanceSampler(config.max_files)
    return NoSampler()
