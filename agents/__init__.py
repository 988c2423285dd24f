"""
TRELLIS AGENTS - Request-level orchestration.

This package provides:
- ActivationPipeline: analyzer -> matching -> composition for one call
- SessionRegistry: per-session composition state behind per-session locks
- InjectionScheduler: legacy fixed-cadence fallback
"""
from agents.pipeline import ActivationPipeline, PipelineResult
from agents.scheduler import InjectionScheduler
from agents.session_registry import SessionRegistry, SessionState

__all__ = [
    "ActivationPipeline",
    "PipelineResult",
    "InjectionScheduler",
    "SessionRegistry",
    "SessionState",
]
