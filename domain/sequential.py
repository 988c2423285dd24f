"""
Sequential composition: steps in strict order, one at a time.

Steps are ordered by sequence_order (declaration order breaks ties and fills
in missing values). The position only moves forward, by exactly one step per
completion. A context that reports a later step satisfied while the current
step is still open is rejected as an invalid transition.
"""
from typing import List, Sequence, Tuple

import msgspec

from core.ontology import ActivationReason, CompositionType
from core.schemas import (
    CompositeConstraint,
    CompositionContext,
    Constraint,
    ConstraintActivation,
    ConstraintReference,
)
from core.composition_state import SequentialCompositionState
from core.results import ActivationResult, ConstraintError, TransitionResult
from domain.strategy_base import CompositionStrategy, logger


class SequentialStrategy(CompositionStrategy):
    composition_type = CompositionType.SEQUENTIAL
    state_type = SequentialCompositionState

    def __init__(self, composite: CompositeConstraint, settings=None):
        super().__init__(composite, settings)
        indexed = list(enumerate(composite.references))
        indexed.sort(key=lambda pair: (
            pair[1].sequence_order if pair[1].sequence_order is not None else pair[0],
            pair[0],
        ))
        self.steps: Tuple[ConstraintReference, ...] = tuple(ref for _, ref in indexed)

    def initial_state(self) -> SequentialCompositionState:
        return SequentialCompositionState()

    def is_complete(self, state: SequentialCompositionState) -> bool:
        return state.position >= len(self.steps)

    def progress(self, state: SequentialCompositionState) -> Tuple[int, int, float]:
        """(completed steps, total steps, percentage complete)."""
        total = len(self.steps)
        done = min(state.position, total)
        return done, total, (done / total * 100.0) if total else 100.0

    def get_next_constraint(
        self,
        state: SequentialCompositionState,
        components: Sequence[Constraint],
        context: CompositionContext,
    ) -> ActivationResult:
        failed = self._precheck(state, components)
        if failed:
            return failed
        if self.is_complete(state):
            return ActivationResult.finished()

        position = state.position
        current = self.steps[position]

        if context.satisfies(current):
            if position + 1 >= len(self.steps):
                return ActivationResult(success=True, completed=True, completed_step=current.constraint_id)
            logger.debug("%s: step %d satisfied, moving to step %d", self.composite.id, position + 1, position + 2)
            return ActivationResult(
                success=True,
                activation=self._step(position + 1, components, context),
                completed_step=current.constraint_id,
            )

        ahead = self._satisfied_ahead(position, context)
        if ahead:
            index = ahead[0]
            return ActivationResult.failure(ConstraintError.invalid_transition(
                f"Invalid sequential workflow transition: step {index + 1} "
                f"({self.steps[index].constraint_id}) reported satisfied before step "
                f"{position + 1} ({current.constraint_id}) was completed",
                self.steps[index].constraint_id,
            ))

        return ActivationResult(success=True, activation=self._step(position, components, context))

    def advance_state(
        self,
        state: SequentialCompositionState,
        completed_activation: ConstraintActivation,
        context: CompositionContext,
    ) -> TransitionResult:
        error = self._check_state(state)
        if error:
            return TransitionResult(success=False, state=state, error=error)

        completed_id = completed_activation.constraint_id
        if self.is_complete(state):
            return self._reject(state, f"Sequence {self.composite.id} is already complete", completed_id)

        current = self.steps[state.position]
        if completed_id != current.constraint_id:
            if completed_id in state.completed:
                return self._reject(state, f"Step {completed_id} is already completed", completed_id)
            if self._find(completed_id) is None:
                return self._reject(state, f"{completed_id} is not a step of {self.composite.id}", completed_id)
            return self._reject(
                state,
                f"Invalid sequential workflow transition: cannot complete {completed_id} "
                f"before step {state.position + 1} ({current.constraint_id})",
                completed_id,
            )

        return TransitionResult(
            success=True,
            state=msgspec.structs.replace(
                state,
                completed=state.completed | {completed_id},
                position=state.position + 1,
            ),
        )

    def _satisfied_ahead(self, position: int, context: CompositionContext) -> List[int]:
        return [i for i in range(position + 1, len(self.steps)) if context.satisfies(self.steps[i])]

    def _step(self, index: int, components: Sequence[Constraint], context: CompositionContext) -> ConstraintActivation:
        ref = self.steps[index]
        return self._activate(
            ref,
            components,
            context,
            ActivationReason.WORKFLOW_PROGRESSION,
            guidance=(
                f"Step {index + 1} of {len(self.steps)}",
                f"Context: {context.describe()}",
            ),
            metadata={"step": index + 1, "total_steps": len(self.steps)},
        )
