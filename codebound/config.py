"""Configuration paths and discovery defaults.

Settings are layered: built-in defaults, then the ``[discovery]`` table of
``~/.codebound/config.toml`` (set via ``cb config set``), then a
``codebound.toml`` in the analyzed project root, then explicit overrides
from the command line.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

logger = logging.getLogger(__name__)

BASE_DIR = Path(os.environ.get("CODEBOUND_HOME", str(Path.home() / ".codebound"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
PROJECT_CONFIG_NAME = "codebound.toml"

DEFAULT_EXCLUDE: List[str] = [
    "vendor/**",
    "**/vendor/**",
    "*_test.go",
    "**/*_test.go",
    "test_*.py",
    "**/test_*.py",
    "*_test.py",
    "**/*_test.py",
    "tests/**",
    "**/tests/**",
    "**/testdata/**",
]

SAMPLING_MODES = ("none", "stride", "importance")


@dataclass
class DiscoveryConfig:
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    sampling: str = "importance"
    max_files: int = 150
    max_dependency_nodes: int = 100
    max_merge_candidates: int = 400
    min_confidence: float = 0.5
    workers: int = 4
    timeout_seconds: Optional[float] = None
    extra_keywords: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.sampling not in SAMPLING_MODES:
            raise ValueError(
                f"Unknown sampling mode '{self.sampling}'. Choose one of: {', '.join(SAMPLING_MODES)}"
            )
        if self.max_files < 1:
            raise ValueError("max_files must be at least 1")
        if self.max_dependency_nodes < 2:
            raise ValueError("max_dependency_nodes must be at least 2")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError("min_confidence must be between 0 and 1")
        self.workers = max(1, int(self.workers))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["timeout_seconds"] is None:
            del data["timeout_seconds"]
        return data

    def with_overrides(self, **overrides: Any) -> "DiscoveryConfig":
        """Return a copy with every non-None override applied."""
        data = asdict(self)
        for key, value in overrides.items():
            if value is None:
                continue
            if key not in data:
                raise ValueError(f"Unknown discovery setting '{key}'")
            data[key] = value
        return DiscoveryConfig(**data)


def _known_keys() -> set:
    return {f.name for f in fields(DiscoveryConfig)}


def load_full_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config file (all sections)."""
    path = path or CONFIG_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def _discovery_section(data: Dict[str, Any], source: Path) -> Dict[str, Any]:
    section = data.get("discovery", {})
    if not isinstance(section, dict):
        logger.warning("[discovery] in %s is not a table; ignoring it", source)
        return {}
    unknown = set(section) - _known_keys()
    for key in sorted(unknown):
        logger.warning("Unknown discovery setting '%s' in %s", key, source)
    return {k: v for k, v in section.items() if k not in unknown}


def load_config(
    project_root: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> DiscoveryConfig:
    """Resolve the effective discovery configuration."""
    settings: Dict[str, Any] = {}
    settings.update(_discovery_section(load_full_config(CONFIG_FILE), CONFIG_FILE))

    if project_root is not None:
        project_file = Path(project_root) / PROJECT_CONFIG_NAME
        settings.update(_discovery_section(load_full_config(project_file), project_file))

    config = DiscoveryConfig(**settings)
    if overrides:
        config = config.with_overrides(**overrides)
    return config


def save_config(key: str, value: Any) -> bool:
    """Persist one ``[discovery]`` setting, preserving other sections.

    Returns:
        True if saved successfully, False otherwise
    """
    if key not in _known_keys():
        raise ValueError(f"Unknown discovery setting '{key}'")

    data = load_full_config(CONFIG_FILE)
    section = dict(data.get("discovery", {}))
    section[key] = value
    # Validate before writing.
    DiscoveryConfig(**section)
    data["discovery"] = section

    BASE_DIR.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(data, f)
        return True
    except OSError as exc:
        logger.warning("Could not write %s: %s", CONFIG_FILE, exc)
        return False


def coerce_value(key: str, raw: str) -> Any:
    """Convert a CLI string into the type of the named setting."""
    default = getattr(DiscoveryConfig(), key, None)
    if key not in _known_keys():
        raise ValueError(f"Unknown discovery setting '{key}'")
    if isinstance(default, bool):
        return raw.lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float) or key == "timeout_seconds":
        return float(raw)
    if isinstance(default, list):
        return [part.strip() for part in raw.split(",") if part.strip()]
    return raw
