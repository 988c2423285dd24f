"""
TRELLIS RESULTS - Success/failure values for domain outcomes.

Expected failures (unknown id, out-of-order transition, cycle, unsupported
composition type, out-of-range value) travel as ConstraintError inside a
result struct. Callers branch on `success`; nothing in the pipeline raises
for these.

Exceptions remain for programming errors only: invalid constructor
arguments (ValueError) and writes to a frozen library (LibraryFrozenError).
"""
from typing import Any, Optional, Tuple

import msgspec

from core.ontology import ErrorKind
from core.schemas import ConstraintActivation, Constraint
from core.composition_state import CompositionState, LayerViolation


# =============================================================================
# ERRORS
# =============================================================================

class ConstraintError(msgspec.Struct, kw_only=True, frozen=True):
    """A domain-expected failure."""
    kind: ErrorKind
    message: str
    constraint_id: Optional[str] = None

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"

    @classmethod
    def not_found(cls, constraint_id: str) -> "ConstraintError":
        return cls(
            kind=ErrorKind.NOT_FOUND,
            message=f"Constraint not found: {constraint_id}",
            constraint_id=constraint_id,
        )

    @classmethod
    def invalid_transition(cls, message: str, constraint_id: Optional[str] = None) -> "ConstraintError":
        return cls(kind=ErrorKind.INVALID_TRANSITION, message=message, constraint_id=constraint_id)

    @classmethod
    def circular_reference(cls, message: str, constraint_id: Optional[str] = None) -> "ConstraintError":
        return cls(kind=ErrorKind.CIRCULAR_REFERENCE, message=message, constraint_id=constraint_id)

    @classmethod
    def unsupported(cls, message: str, constraint_id: Optional[str] = None) -> "ConstraintError":
        return cls(kind=ErrorKind.UNSUPPORTED_COMPOSITION_TYPE, message=message, constraint_id=constraint_id)

    @classmethod
    def validation(cls, message: str, constraint_id: Optional[str] = None) -> "ConstraintError":
        return cls(kind=ErrorKind.VALIDATION_ERROR, message=message, constraint_id=constraint_id)


class LibraryFrozenError(Exception):
    """Raised when a frozen constraint library is written to."""
    def __init__(self, constraint_id: str):
        self.constraint_id = constraint_id
        super().__init__(f"Library is frozen; cannot add {constraint_id}")


# =============================================================================
# RESULT STRUCTS
# =============================================================================

class LookupResult(msgspec.Struct, kw_only=True, frozen=True):
    """Result of resolving a single constraint id."""
    success: bool
    constraint: Optional[Constraint] = None
    error: Optional[ConstraintError] = None


class ComponentsResult(msgspec.Struct, kw_only=True, frozen=True):
    """Result of flattening a composite into atomic leaves."""
    success: bool
    components: Tuple[Constraint, ...] = ()
    error: Optional[ConstraintError] = None


class LibraryResult(msgspec.Struct, kw_only=True, frozen=True):
    """Result of adding a constraint to the library."""
    success: bool
    constraint_id: Optional[str] = None
    error: Optional[ConstraintError] = None


class LoadResult(msgspec.Struct, kw_only=True, frozen=True):
    """Result of building a library from a declarative pack."""
    success: bool
    library: Any = None
    errors: Tuple[ConstraintError, ...] = ()


class StrategyResult(msgspec.Struct, kw_only=True, frozen=True):
    """Result of the activation strategy factory."""
    success: bool
    strategy: Any = None
    error: Optional[ConstraintError] = None


class ActivationResult(msgspec.Struct, kw_only=True, frozen=True):
    """
    Result of asking a composition strategy for its next constraint.

    completed: the composition has nothing left to activate.
    completed_step: a step the context reports satisfied; the caller should
        record it with AdvanceState.
    violations: layered dependency violations found in the context.
    """
    success: bool
    activation: Optional[ConstraintActivation] = None
    error: Optional[ConstraintError] = None
    completed: bool = False
    completed_step: Optional[str] = None
    cycle_restart: bool = False
    violations: Tuple[LayerViolation, ...] = ()

    @classmethod
    def failure(cls, error: ConstraintError) -> "ActivationResult":
        return cls(success=False, error=error)

    @classmethod
    def finished(cls, violations: Tuple[LayerViolation, ...] = ()) -> "ActivationResult":
        return cls(success=True, completed=True, violations=violations)


class TransitionResult(msgspec.Struct, kw_only=True, frozen=True):
    """Result of a state transition. On failure, state is the unchanged input."""
    success: bool
    state: Optional[CompositionState] = None
    error: Optional[ConstraintError] = None

    @property
    def message(self) -> str:
        return self.error.message if self.error else ""
