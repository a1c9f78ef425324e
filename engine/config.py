"""Engine configuration surface.

Core functions take these values as plain parameters; this object only
collects them in one place for hosts that want a single settings bundle.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

ANN_BACKENDS = ("exact", "faiss")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    embed_dim: int = 256
    cluster_threshold: float = 0.55
    rebuild_threshold: float = 0.35
    prune_threshold: float = 0.15
    session_target_count: int = 20
    high_volume_threshold: float = 0.75
    overflow_cluster_threshold: float = 0.7
    use_ann: bool = False
    ann_backend: str = "exact"
    embed_model: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from `KG_ENGINE_*` environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            embed_dim=_env_int("KG_ENGINE_EMBED_DIM", defaults.embed_dim),
            cluster_threshold=_env_float("KG_ENGINE_CLUSTER_THRESHOLD", defaults.cluster_threshold),
            rebuild_threshold=_env_float("KG_ENGINE_REBUILD_THRESHOLD", defaults.rebuild_threshold),
            prune_threshold=_env_float("KG_ENGINE_PRUNE_THRESHOLD", defaults.prune_threshold),
            session_target_count=_env_int("KG_ENGINE_SESSION_TARGET", defaults.session_target_count),
            high_volume_threshold=_env_float(
                "KG_ENGINE_HIGH_VOLUME_THRESHOLD", defaults.high_volume_threshold
            ),
            overflow_cluster_threshold=_env_float(
                "KG_ENGINE_OVERFLOW_CLUSTER_THRESHOLD", defaults.overflow_cluster_threshold
            ),
            use_ann=_env_bool("KG_ENGINE_USE_ANN", defaults.use_ann),
            ann_backend=(os.environ.get("KG_ENGINE_ANN_BACKEND") or defaults.ann_backend).strip().lower(),
            embed_model=os.environ.get("KG_ENGINE_EMBED_MODEL") or None,
        )

    def validate(self) -> List[str]:
        issues: List[str] = []
        if self.embed_dim < 1:
            issues.append(f"embed_dim must be positive (got {self.embed_dim})")
        for name in (
            "cluster_threshold",
            "rebuild_threshold",
            "prune_threshold",
            "high_volume_threshold",
            "overflow_cluster_threshold",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                issues.append(f"{name} must be within [0, 1] (got {value})")
        if self.prune_threshold > self.rebuild_threshold:
            issues.append(
                f"prune_threshold ({self.prune_threshold}) is above rebuild_threshold "
                f"({self.rebuild_threshold}); freshly proposed edges would be pruned"
            )
        if self.session_target_count < 0:
            issues.append(f"session_target_count must not be negative (got {self.session_target_count})")
        if self.ann_backend not in ANN_BACKENDS:
            issues.append(f"ann_backend must be one of {', '.join(ANN_BACKENDS)} (got {self.ann_backend!r})")
        return issues

    def ensure_valid(self) -> "EngineConfig":
        issues = self.validate()
        if issues:
            raise ValueError("Invalid engine configuration: " + "; ".join(issues))
        return self
