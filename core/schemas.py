"""
TRELLIS SCHEMAS - The Grammar of the System

If ontology.py is the Dictionary (defining the words we can use),
schemas.py is the Grammar (defining how we structure sentences).

This module defines the value types that flow through the activation pipeline:
- TriggerConfiguration: When a constraint is relevant
- AtomicConstraint / CompositeConstraint: What the library stores
- ConstraintReference: How composites point at components (by id, never by object)
- TriggerContext / CompositionContext: What the analyzer and caller supply
- ConstraintActivation: What the pipeline hands to the formatter

Design Principles:
1. STRICT TYPING: msgspec.Struct with no silent type coercion
2. KW_ONLY: Enforce keyword arguments to prevent positional mix-ups
3. FROZEN: Every value is immutable; transitions build new values
4. ID REFERENCES: Composites hold ConstraintIds, resolved through the library
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

import msgspec

from core.ontology import CompositionType


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def now_utc() -> str:
    """Fast UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


# Dot-namespaced identifier: "testing.write-test-first"
ConstraintId = str

_CONSTRAINT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]*(\.[A-Za-z0-9][A-Za-z0-9_\-]*)*$")


def is_valid_constraint_id(value: Any) -> bool:
    """True if value is a non-empty dot-namespaced identifier."""
    return isinstance(value, str) and bool(_CONSTRAINT_ID_PATTERN.match(value))


def _check_id(value: Any, field: str = "id") -> None:
    if not is_valid_constraint_id(value):
        raise ValueError(f"Invalid constraint {field}: {value!r}")


def _check_unit_interval(value: float, field: str) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{field} must be within [0, 1], got {value}")


# =============================================================================
# TRIGGERS
# =============================================================================

class TriggerConfiguration(msgspec.Struct, kw_only=True, frozen=True):
    """
    Conditions under which a constraint becomes relevant.

    An empty configuration never activates: there is nothing to score.
    A None threshold defers to the engine's default threshold.
    """
    keywords: Tuple[str, ...] = ()
    context_patterns: Tuple[str, ...] = ()
    file_patterns: Tuple[str, ...] = ()
    anti_patterns: Tuple[str, ...] = ()
    confidence_threshold: Optional[float] = None

    def __post_init__(self):
        if self.confidence_threshold is not None:
            _check_unit_interval(self.confidence_threshold, "confidence_threshold")

    @property
    def is_empty(self) -> bool:
        return not (self.keywords or self.context_patterns or self.file_patterns)


# =============================================================================
# CONSTRAINTS
# =============================================================================

class AtomicConstraint(msgspec.Struct, kw_only=True, frozen=True, tag="atomic"):
    """Leaf constraint: a titled set of reminders with trigger conditions."""
    id: ConstraintId
    title: str
    priority: float
    triggers: TriggerConfiguration = msgspec.field(default_factory=TriggerConfiguration)
    reminders: Tuple[str, ...] = ()

    def __post_init__(self):
        _check_id(self.id)
        if not self.title.strip():
            raise ValueError(f"Constraint {self.id} has an empty title")
        _check_unit_interval(self.priority, "priority")

    @property
    def is_composite(self) -> bool:
        return False


class CompletionCondition(msgspec.Struct, kw_only=True, frozen=True):
    """
    A user-defined (workflow_state, evaluation_status) predicate.

    Empty fields are wildcards. A condition with both fields empty is never
    satisfied by workflow signals, only by an explicit "satisfied" signal.
    """
    workflow_state: str = ""
    evaluation_status: str = ""

    @property
    def is_blank(self) -> bool:
        return not self.workflow_state and not self.evaluation_status

    def matches(self, workflow_state: str, evaluation_status: str) -> bool:
        if self.is_blank:
            return False
        if self.workflow_state and self.workflow_state.lower() != workflow_state.lower():
            return False
        if self.evaluation_status and self.evaluation_status.lower() != evaluation_status.lower():
            return False
        return True


class ConstraintReference(msgspec.Struct, kw_only=True, frozen=True, eq=False):
    """
    A composite's pointer at a component.

    Identity is the constraint id alone: ordering and metadata do not take
    part in equality or hashing.
    """
    constraint_id: ConstraintId
    sequence_order: Optional[int] = None
    hierarchy_level: Optional[int] = None
    metadata: Dict[str, Any] = msgspec.field(default_factory=dict)

    def __post_init__(self):
        _check_id(self.constraint_id, "reference")
        if self.sequence_order is not None and self.sequence_order < 0:
            raise ValueError(
                f"sequence_order must be non-negative for {self.constraint_id}, got {self.sequence_order}"
            )
        if self.hierarchy_level is not None and self.hierarchy_level < 0:
            raise ValueError(
                f"hierarchy_level must be non-negative for {self.constraint_id}, got {self.hierarchy_level}"
            )

    def __eq__(self, other):
        if not isinstance(other, ConstraintReference):
            return NotImplemented
        return self.constraint_id == other.constraint_id

    def __hash__(self):
        return hash(self.constraint_id)

    def condition(self, key: str = "completion") -> CompletionCondition:
        """Read a completion condition stored under metadata[key]."""
        raw = self.metadata.get(key)
        if raw is None:
            return CompletionCondition()
        if isinstance(raw, CompletionCondition):
            return raw
        return msgspec.convert(raw, CompletionCondition)


class CompositionOptions(msgspec.Struct, kw_only=True, frozen=True):
    """Per-composite knobs for progressive and layered compositions."""
    max_level: Optional[int] = None
    barrier_levels: Optional[Tuple[int, ...]] = None
    barrier_guidance: Dict[int, Tuple[str, ...]] = msgspec.field(default_factory=dict)
    required_layer_completions: int = 1

    def __post_init__(self):
        if self.max_level is not None and self.max_level < 1:
            raise ValueError(f"max_level must be at least 1, got {self.max_level}")
        if self.required_layer_completions < 1:
            raise ValueError("required_layer_completions must be at least 1")


class CompositeConstraint(msgspec.Struct, kw_only=True, frozen=True, tag="composite"):
    """A constraint built from other constraints, referenced by id."""
    id: ConstraintId
    title: str
    priority: float
    composition_type: CompositionType
    references: Tuple[ConstraintReference, ...]
    triggers: TriggerConfiguration = msgspec.field(default_factory=TriggerConfiguration)
    reminders: Tuple[str, ...] = ()
    options: CompositionOptions = msgspec.field(default_factory=CompositionOptions)

    def __post_init__(self):
        _check_id(self.id)
        if not self.title.strip():
            raise ValueError(f"Constraint {self.id} has an empty title")
        _check_unit_interval(self.priority, "priority")
        if not self.references:
            raise ValueError(f"Composite {self.id} has no component references")
        if len(set(self.references)) != len(self.references):
            raise ValueError(f"Composite {self.id} references a component twice")

    @property
    def is_composite(self) -> bool:
        return True

    @property
    def component_ids(self) -> Tuple[ConstraintId, ...]:
        return tuple(ref.constraint_id for ref in self.references)


Constraint = Union[AtomicConstraint, CompositeConstraint]


# =============================================================================
# CONTEXTS
# =============================================================================

class TriggerContext(msgspec.Struct, kw_only=True, frozen=True):
    """
    Normalized view of one tool call or user message.

    Keywords are lower-case, de-duplicated, in first-seen order.
    """
    keywords: Tuple[str, ...] = ()
    file_path: Optional[str] = None
    context_type: str = "unclear"
    session_id: str = ""
    metadata: Dict[str, Any] = msgspec.field(default_factory=dict)

    @property
    def keyword_set(self) -> FrozenSet[str]:
        return frozenset(self.keywords)

    def has_keyword(self, keyword: str) -> bool:
        return keyword.lower() in self.keyword_set


class DependencyInfo(msgspec.Struct, kw_only=True, frozen=True):
    """A recorded dependency edge between two namespaces or paths."""
    source: str
    target: str


class CompositionContext(msgspec.Struct, kw_only=True, frozen=True):
    """
    Everything a composition strategy may consult besides its state.

    workflow_state/evaluation_status is the user-defined position pair.
    satisfied holds ids of constraints the caller explicitly reports as done.
    """
    trigger: TriggerContext = msgspec.field(default_factory=TriggerContext)
    workflow_state: str = ""
    evaluation_status: str = ""
    satisfied: FrozenSet[str] = frozenset()
    dependencies: Tuple[DependencyInfo, ...] = ()
    confidence: float = 1.0

    def __post_init__(self):
        _check_unit_interval(self.confidence, "confidence")

    def satisfies(self, reference: ConstraintReference, key: str = "completion") -> bool:
        if reference.constraint_id in self.satisfied:
            return True
        return reference.condition(key).matches(self.workflow_state, self.evaluation_status)

    def describe(self) -> str:
        return f"workflow_state={self.workflow_state or '-'}, evaluation_status={self.evaluation_status or '-'}"


# =============================================================================
# ACTIVATIONS
# =============================================================================

class ConstraintActivation(msgspec.Struct, kw_only=True, frozen=True):
    """Decision output: this constraint is relevant (or next) right now."""
    constraint_id: ConstraintId
    confidence_score: float
    reason: str
    trigger_context: TriggerContext
    timestamp: str = msgspec.field(default_factory=now_utc)
    composite_id: Optional[ConstraintId] = None
    guidance: Tuple[str, ...] = ()
    metadata: Dict[str, Any] = msgspec.field(default_factory=dict)

    def __post_init__(self):
        _check_unit_interval(self.confidence_score, "confidence_score")

    @property
    def is_composition_step(self) -> bool:
        return self.composite_id is not None
