"""
TRELLIS SETTINGS - Engine configuration from TOML.

Loads config/trellis.toml (or a caller-supplied path) with tomllib and
converts each section into a frozen msgspec struct. A missing or malformed
file never stops the engine: we warn and fall back to defaults.

Sections:
    [matching]     Trigger matching thresholds, weights, fuzzy matching, boosts
    [composition]  Progressive defaults (max level, barrier levels)
    [scheduling]   Legacy fixed-cadence fallback
    [logging]      Logger level and activation buffer size
"""
import logging
import tomllib
import warnings
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import msgspec

from core.ontology import DEFAULT_BARRIER_LEVELS

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "trellis.toml"

WEIGHT_TOLERANCE = 0.001


# =============================================================================
# SECTION STRUCTS
# =============================================================================

class KeywordBoost(msgspec.Struct, kw_only=True, frozen=True):
    """Multiply a constraint's score when any indicator keyword is present."""
    constraint_id: str
    indicators: Tuple[str, ...]
    factor: float = 1.1

    def __post_init__(self):
        if self.factor <= 0:
            raise ValueError(f"Boost factor must be positive, got {self.factor}")
        if not self.indicators:
            raise ValueError(f"Boost for {self.constraint_id} has no indicators")


class MatchingSettings(msgspec.Struct, kw_only=True, frozen=True):
    """Trigger matching configuration."""
    default_confidence_threshold: float = 0.7
    max_active_constraints: int = 5
    keyword_weight: float = 0.4
    file_pattern_weight: float = 0.3
    context_pattern_weight: float = 0.3
    substring_match_weight: float = 0.5
    enable_fuzzy_matching: bool = False
    enable_synonyms: bool = False
    fuzzy_match_threshold: float = 0.7
    max_evaluation_time_ms: int = 45
    keyword_boosts: Tuple[KeywordBoost, ...] = ()

    def __post_init__(self):
        for name in (
            "default_confidence_threshold",
            "keyword_weight",
            "file_pattern_weight",
            "context_pattern_weight",
            "substring_match_weight",
            "fuzzy_match_threshold",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if not 1 <= self.max_active_constraints <= 20:
            raise ValueError(f"max_active_constraints must be within [1, 20], got {self.max_active_constraints}")
        if not 1 <= self.max_evaluation_time_ms <= 1000:
            raise ValueError(f"max_evaluation_time_ms must be within [1, 1000], got {self.max_evaluation_time_ms}")
        total = self.keyword_weight + self.file_pattern_weight + self.context_pattern_weight
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Matching weights must sum to 1.0, got {total:.3f}")

    # -------------------------------------------------------------------------
    # Presets
    # -------------------------------------------------------------------------

    @classmethod
    def default(cls) -> "MatchingSettings":
        return cls()

    @classmethod
    def relaxed(cls) -> "MatchingSettings":
        return cls(default_confidence_threshold=0.6)

    @classmethod
    def strict(cls) -> "MatchingSettings":
        return cls(default_confidence_threshold=0.8)

    @classmethod
    def high_performance(cls) -> "MatchingSettings":
        """Fewer, more certain activations within a tighter budget."""
        return cls(
            default_confidence_threshold=0.8,
            max_active_constraints=3,
            max_evaluation_time_ms=30,
        )

    @classmethod
    def high_accuracy(cls) -> "MatchingSettings":
        """Lower threshold, more activations, fuzzy and synonym matching on."""
        return cls(
            default_confidence_threshold=0.6,
            max_active_constraints=8,
            enable_fuzzy_matching=True,
            enable_synonyms=True,
            max_evaluation_time_ms=50,
        )

    def with_threshold(self, threshold: float) -> "MatchingSettings":
        return msgspec.structs.replace(self, default_confidence_threshold=threshold)

    def with_max_active(self, count: int) -> "MatchingSettings":
        return msgspec.structs.replace(self, max_active_constraints=count)


class CompositionSettings(msgspec.Struct, kw_only=True, frozen=True):
    default_max_level: int = 6
    default_barrier_levels: Tuple[int, ...] = DEFAULT_BARRIER_LEVELS

    def __post_init__(self):
        if self.default_max_level < 1:
            raise ValueError(f"default_max_level must be at least 1, got {self.default_max_level}")


class SchedulingSettings(msgspec.Struct, kw_only=True, frozen=True):
    # 0 disables the fallback
    fallback_cadence: int = 0

    def __post_init__(self):
        if self.fallback_cadence < 0:
            raise ValueError(f"fallback_cadence must be non-negative, got {self.fallback_cadence}")


class LoggingSettings(msgspec.Struct, kw_only=True, frozen=True):
    level: str = "INFO"
    buffer_size: int = 1000

    def __post_init__(self):
        if self.buffer_size < 1:
            raise ValueError(f"buffer_size must be at least 1, got {self.buffer_size}")


class TrellisSettings(msgspec.Struct, kw_only=True, frozen=True):
    matching: MatchingSettings = msgspec.field(default_factory=MatchingSettings)
    composition: CompositionSettings = msgspec.field(default_factory=CompositionSettings)
    scheduling: SchedulingSettings = msgspec.field(default_factory=SchedulingSettings)
    logging: LoggingSettings = msgspec.field(default_factory=LoggingSettings)


# =============================================================================
# LOADING
# =============================================================================

def load_toml_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load raw configuration sections from TOML.

    Returns:
        Dict with all configuration sections, empty on failure
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Failed to load config from TOML: {e}")
        return {}


def settings_from_dict(raw: Dict[str, Any]) -> TrellisSettings:
    """Convert raw sections into settings. Raises msgspec.ValidationError on bad values."""
    return msgspec.convert(raw, TrellisSettings)


def load_settings(path: Optional[Union[str, Path]] = None) -> TrellisSettings:
    """Load settings, falling back to defaults if the file is missing or invalid."""
    raw = load_toml_config(path)
    try:
        return settings_from_dict(raw)
    except (msgspec.ValidationError, ValueError) as e:
        warnings.warn(f"Invalid trellis configuration, using defaults: {e}")
        return TrellisSettings()


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Apply the configured level to the trellis logger hierarchy."""
    root = logging.getLogger("trellis")
    root.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    return root
