"""
Composition strategy contract.

Every strategy is built for one composite and answers two questions:
- get_next_constraint(state, components, context): which single component
  should be surfaced now, or is the composition complete?
- advance_state(state, completed_activation, context): record that a step
  finished, returning a new state (the input state is never touched).

Expected failures come back inside ActivationResult/TransitionResult.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Tuple

from core.ontology import ActivationReason, CompositionType
from core.schemas import (
    CompositeConstraint,
    CompositionContext,
    Constraint,
    ConstraintActivation,
    ConstraintReference,
)
from core.composition_state import CompositionState
from core.results import ActivationResult, ConstraintError, TransitionResult
from infrastructure.settings import CompositionSettings

logger = logging.getLogger("trellis.composition")


class CompositionStrategy(ABC):
    """Base class for the four composition state machines."""

    composition_type: CompositionType
    state_type: type

    def __init__(self, composite: CompositeConstraint, settings: Optional[CompositionSettings] = None):
        if composite.composition_type != self.composition_type:
            raise ValueError(
                f"{type(self).__name__} cannot drive a {composite.composition_type.value} composite"
            )
        self.composite = composite
        self.settings = settings or CompositionSettings()

    @property
    def references(self) -> Tuple[ConstraintReference, ...]:
        return self.composite.references

    @abstractmethod
    def initial_state(self) -> CompositionState:
        """State for a composite that has never been activated."""

    @abstractmethod
    def get_next_constraint(
        self,
        state: CompositionState,
        components: Sequence[Constraint],
        context: CompositionContext,
    ) -> ActivationResult:
        """Pick the next component to activate."""

    @abstractmethod
    def advance_state(
        self,
        state: CompositionState,
        completed_activation: ConstraintActivation,
        context: CompositionContext,
    ) -> TransitionResult:
        """Record completion of the activated component."""

    def is_complete(self, state: CompositionState) -> bool:
        return False

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _check_state(self, state: Any) -> Optional[ConstraintError]:
        if not isinstance(state, self.state_type):
            return ConstraintError.validation(
                f"{self.composition_type.value} composite {self.composite.id} "
                f"cannot use state {type(state).__name__}",
                self.composite.id,
            )
        return None

    def _check_components(self, components: Sequence[Constraint]) -> Optional[ConstraintError]:
        resolved = tuple(c.id for c in components)
        if resolved != self.composite.component_ids:
            return ConstraintError.validation(
                f"Resolved components {list(resolved)} do not match references of {self.composite.id}",
                self.composite.id,
            )
        return None

    def _precheck(self, state: Any, components: Sequence[Constraint]) -> Optional[ActivationResult]:
        error = self._check_state(state) or self._check_components(components)
        if error is not None:
            return ActivationResult.failure(error)
        return None

    def _reject(self, state: CompositionState, message: str, constraint_id: Optional[str] = None) -> TransitionResult:
        logger.info("Rejected transition on %s: %s", self.composite.id, message)
        return TransitionResult(
            success=False,
            state=state,
            error=ConstraintError.invalid_transition(message, constraint_id or self.composite.id),
        )

    def _activate(
        self,
        reference: ConstraintReference,
        components: Sequence[Constraint],
        context: CompositionContext,
        reason: ActivationReason,
        guidance: Tuple[str, ...] = (),
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConstraintActivation:
        titles = {c.id: c.title for c in components}
        details = {"strategy": self.composition_type.value}
        if reference.constraint_id in titles:
            details["title"] = titles[reference.constraint_id]
        details.update(metadata or {})
        return ConstraintActivation(
            constraint_id=reference.constraint_id,
            confidence_score=context.confidence,
            reason=reason.value,
            trigger_context=context.trigger,
            composite_id=self.composite.id,
            guidance=guidance,
            metadata=details,
        )

    def _find(self, constraint_id: str) -> Optional[ConstraintReference]:
        for ref in self.references:
            if ref.constraint_id == constraint_id:
                return ref
        return None
