"""YAML configuration loader with dotted-key overrides."""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from functools import reduce
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml


def load_config(path: Path) -> dict[str, Any]:
    """Load a YAML config file into a dictionary."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config {path} must be a YAML mapping at top-level.")
    return data


def _deep_update(dst: Dict[str, Any], src: Mapping[str, Any]) -> Dict[str, Any]:
    for k, v in src.items():
        if isinstance(v, Mapping) and isinstance(dst.get(k), dict):
            _deep_update(dst[k], v)
        else:
            dst[k] = dict(v) if isinstance(v, Mapping) else v
    return dst


def merge_overrides(config: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Merge overrides like ``{"split_merge.seed": 7}`` into a nested config dictionary."""
    merged = _deep_update({}, config)
    for key, value in overrides.items():
        keys = key.split(".")
        d = reduce(lambda acc, kk: acc.setdefault(kk, {}), keys[:-1], merged)
        if not isinstance(d, dict):
            raise ValueError(f"Key path conflict at '{key}'")
        d[keys[-1]] = value
    return merged


@dataclass(frozen=True)
class SplitMergeConfig:
    """Settings for the split-merge sampler."""

    annealing_factor: float = 1.0
    num_parameter_draws: int = 10
    iterations: int = 100
    seed: int = 42

    def __post_init__(self):
        if not (0.0 < self.annealing_factor <= 1.0):
            raise ValueError("annealing_factor must lie in (0, 1]")
        if self.num_parameter_draws < 1:
            raise ValueError("num_parameter_draws must be >= 1")
        if self.iterations < 0:
            raise ValueError("iterations must be >= 0")

    @classmethod
    def from_dict(cls, cfg: Mapping[str, Any]) -> "SplitMergeConfig":
        """Build from a mapping, reading the ``split_merge`` section when present."""
        section = cfg.get("split_merge", cfg)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(section) - known)
        if unknown:
            raise ValueError(f"Unknown split_merge config keys: {unknown}")
        return cls(**dict(section))

    @classmethod
    def from_yaml(
        cls, path: Path, overrides: Optional[Mapping[str, Any]] = None
    ) -> "SplitMergeConfig":
        """Load ``path`` and apply dotted-key ``overrides`` such as ``{"split_merge.seed": 7}``."""
        return cls.from_dict(merge_overrides(load_config(path), overrides or {}))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
