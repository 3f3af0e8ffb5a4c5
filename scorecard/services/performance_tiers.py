"""Performance Tier Registry - vendor tier thresholds.

Maps a vendor's average overall rating to a named tier. Thresholds live in
scorecard/performance_tiers.yaml so they can be tuned without touching the
aggregator.

Usage:
    from scorecard.services.performance_tiers import get_tier_config

    tiers = get_tier_config()
    tiers.tier_for(8.4)  # "top"
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from ..config import get_tiers_path
from ..constants import DEFAULT_TIER_THRESHOLDS, UNRATED_TIER

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierThreshold:
    """Vendors with average overall >= min_overall fall in this tier."""

    name: str
    min_overall: float
    description: str = ""


@dataclass(frozen=True)
class TierConfig:
    """Ordered tier thresholds (highest first)."""

    thresholds: tuple[TierThreshold, ...] = field(default_factory=tuple)
    unrated: str = UNRATED_TIER

    def tier_for(self, avg_overall: Optional[float]) -> str:
        """Bucket an average overall rating. None -> unrated."""
        if avg_overall is None:
            return self.unrated
        for threshold in self.thresholds:
            if avg_overall >= threshold.min_overall:
                return threshold.name
        # Below every threshold: lowest band
        return self.thresholds[-1].name if self.thresholds else self.unrated


# Module-level cache
_tier_cache: Optional[TierConfig] = None


def _build_default_config() -> TierConfig:
    return TierConfig(thresholds=tuple(TierThreshold(name, floor) for name, floor in DEFAULT_TIER_THRESHOLDS))


def _validate_thresholds(thresholds: list[TierThreshold]) -> None:
    """Thresholds must be non-empty, uniquely named and strictly descending."""
    if not thresholds:
        raise ValueError("Tier config defines no tiers")
    names = [t.name for t in thresholds]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate tier names: {names}")
    floors = [t.min_overall for t in thresholds]
    if any(a <= b for a, b in zip(floors, floors[1:])):
        raise ValueError(f"Tier thresholds must be strictly descending, got {floors}")


def load_tier_config(path: Path) -> TierConfig:
    """Load and validate tier thresholds from a YAML file."""
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    thresholds = [
        TierThreshold(
            name=str(entry["name"]),
            min_overall=float(entry["min_overall"]),
            description=entry.get("description", ""),
        )
        for entry in raw.get("tiers", [])
    ]
    _validate_thresholds(thresholds)
    return TierConfig(thresholds=tuple(thresholds), unrated=raw.get("unrated_tier", UNRATED_TIER))


def get_tier_config() -> TierConfig:
    """Load and cache tier thresholds, falling back to defaults if the file is missing."""
    global _tier_cache
    if _tier_cache is not None:
        return _tier_cache

    config_path = get_tiers_path()
    if not config_path.exists():
        logger.warning(f"Tier config not found at {config_path}, using defaults")
        _tier_cache = _build_default_config()
        return _tier_cache

    _tier_cache = load_tier_config(config_path)
    logger.info(f"Loaded {len(_tier_cache.thresholds)} performance tiers from {config_path}")
    return _tier_cache


def clear_cache():
    """Clear the tier cache (useful for testing)."""
    global _tier_cache
    _tier_cache = None
