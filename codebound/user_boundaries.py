"""User-declared module boundaries.

A boundary file lists modules the user already knows about::

    [modules.billing]
    description = "Invoices and payments"
    paths = ["billing/**", "internal/payment/*.go"]

JSON with the same shape is accepted when the file ends in ``.json``.
Declared modules take part in merging like any other candidate, but they
always survive scoring.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Dict, List, Sequence

import toml

from .clustering import cluster_keywords, name_cohesion
from .dependency import external_dependencies, tokenize_name
from .errors import BoundaryFileError
from .models import ModuleCandidate, NodeArena

logger = logging.getLogger(__name__)


@dataclass
class UserBoundary:
    name: str
    description: str = ""
    paths: List[str] = field(default_factory=list)

    def matches(self, rel_path: str) -> bool:
        return any(fnmatch(rel_path, pattern) for pattern in self.paths)


def _read(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise BoundaryFileError(f"Cannot read boundary file {path}: {exc}") from exc

    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return toml.loads(text)
    except (ValueError, toml.TomlDecodeError) as exc:
        raise BoundaryFileError(f"Malformed boundary file {path}: {exc}") from exc


def load_user_boundaries(path: Path) -> List[UserBoundary]:
    """Parse a TOML or JSON boundary file.

    Raises:
        BoundaryFileError: The file is missing, unparsable or has the wrong shape.
    """
    path = Path(path)
    data = _read(path)
    modules = data.get("modules") if isinstance(data, dict) else None
    if not isinstance(modules, dict) or not modules:
        raise BoundaryFileError(f"{path}: expected a non-empty 'modules' table")

    boundaries: List[UserBoundary] = []
    for name, spec in modules.items():
        if not isinstance(spec, dict):
            raise BoundaryFileError(f"{path}: module '{name}' must be a table")
        paths = spec.get("paths")
        if (
            not isinstance(paths, list)
            or not paths
            or not all(isinstance(p, str) for p in paths)
        ):
            raise BoundaryFileError(f"{path}: module '{name}' needs a non-empty list of 'paths'")
        description = spec.get("description", "")
        if not isinstance(description, str):
            raise BoundaryFileError(f"{path}: description of module '{name}' must be a string")
        boundaries.append(UserBoundary(name=str(name), description=description, paths=list(paths)))

    logger.info("Loaded %d user-declared boundaries from %s", len(boundaries), path)
    return boundaries


def user_candidates(
    boundaries: Sequence[UserBoundary],
    arena: NodeArena,
    files: Sequence[str],
) -> List[ModuleCandidate]:
    """Turn declared boundaries into candidates over the analyzed files."""
    candidates: List[ModuleCandidate] = []
    for boundary in boundaries:
        matched = {f for f in files if boundary.matches(f)}
        if not matched:
            logger.warning("User boundary '%s' matches no analyzed files", boundary.name)
            continue
        members = [i for i, node in enumerate(arena.nodes) if node.file in matched]
        nodes = [arena[i] for i in members]
        keywords = set(tokenize_name(boundary.name)) or {boundary.name.lower()}
        candidates.append(ModuleCandidate.from_members(
            boundary.name,
            members,
            arena,
            files=matched,
            semantic_keywords=keywords | cluster_keywords(nodes),
            cohesion_score=name_cohesion(nodes) if nodes else 0.0,
            external_dependencies=external_dependencies(members, arena),
            source="user",
            user_declared=True,
            description=boundary.description,
        ))
    return candidates
