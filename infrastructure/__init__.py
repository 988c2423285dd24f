"""
TRELLIS INFRASTRUCTURE - System-Level Modules

This package contains infrastructure components:
- settings: TOML engine configuration converted to msgspec structs
- activation_log: Per-call activation records and their ring buffer
- pack_builder: Declarative constraint pack -> ConstraintLibrary
"""

from infrastructure.settings import (
    CompositionSettings,
    KeywordBoost,
    LoggingSettings,
    MatchingSettings,
    SchedulingSettings,
    TrellisSettings,
    configure_logging,
    load_settings,
    load_toml_config,
    settings_from_dict,
)
from infrastructure.activation_log import (
    ActivationBuffer,
    ActivationLog,
    ActivationRecord,
    decode_record,
    encode_jsonl,
    encode_record,
)
from infrastructure.pack_builder import build_library

__all__ = [
    "CompositionSettings",
    "KeywordBoost",
    "LoggingSettings",
    "MatchingSettings",
    "SchedulingSettings",
    "TrellisSettings",
    "configure_logging",
    "load_settings",
    "load_toml_config",
    "settings_from_dict",
    "ActivationBuffer",
    "ActivationLog",
    "ActivationRecord",
    "decode_record",
    "encode_jsonl",
    "encode_record",
    "build_library",
]
