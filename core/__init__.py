"""
TRELLIS CORE - Central exports for the constraint data model.

This module provides access to:
- Vocabulary (CompositionType, ActivationReason, ErrorKind, ContextType)
- Value types (constraints, references, contexts, activations)
- Composition state variants and result structs
- ConstraintLibrary and ConstraintResolver
"""

from core.ontology import (
    ActivationReason,
    CompositionType,
    ContextType,
    ErrorKind,
)
from core.schemas import (
    AtomicConstraint,
    CompletionCondition,
    CompositeConstraint,
    CompositionContext,
    CompositionOptions,
    Constraint,
    ConstraintActivation,
    ConstraintId,
    ConstraintReference,
    DependencyInfo,
    TriggerConfiguration,
    TriggerContext,
    is_valid_constraint_id,
    now_utc,
)
from core.composition_state import (
    CompositionState,
    HierarchicalCompositionState,
    LayeredCompositionState,
    LayerViolation,
    ProgressiveCompositionState,
    SequentialCompositionState,
)
from core.results import (
    ActivationResult,
    ComponentsResult,
    ConstraintError,
    LibraryFrozenError,
    LibraryResult,
    LoadResult,
    LookupResult,
    StrategyResult,
    TransitionResult,
)
from core.library import ConstraintLibrary, LibraryStatistics
from core.resolver import ConstraintResolver, ResolutionMetrics

__all__ = [
    # Vocabulary
    "ActivationReason",
    "CompositionType",
    "ContextType",
    "ErrorKind",
    # Value types
    "AtomicConstraint",
    "CompletionCondition",
    "CompositeConstraint",
    "CompositionContext",
    "CompositionOptions",
    "Constraint",
    "ConstraintActivation",
    "ConstraintId",
    "ConstraintReference",
    "DependencyInfo",
    "TriggerConfiguration",
    "TriggerContext",
    "is_valid_constraint_id",
    "now_utc",
    # Composition state
    "CompositionState",
    "HierarchicalCompositionState",
    "LayeredCompositionState",
    "LayerViolation",
    "ProgressiveCompositionState",
    "SequentialCompositionState",
    # Results
    "ActivationResult",
    "ComponentsResult",
    "ConstraintError",
    "LibraryFrozenError",
    "LibraryResult",
    "LoadResult",
    "LookupResult",
    "StrategyResult",
    "TransitionResult",
    # Library
    "ConstraintLibrary",
    "LibraryStatistics",
    "ConstraintResolver",
    "ResolutionMetrics",
]
