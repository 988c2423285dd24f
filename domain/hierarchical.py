"""
Hierarchical composition: an outer gate driving inner loops.

Levels come from hierarchy_level (declaration index when absent). The lowest
level holds exactly one reference, the gate. Until the gate reports satisfied
(its "completion" condition), only the gate is activated. Once open, inner
levels run lowest first; within a level the highest-priority component is
surfaced and completing any component completes the level.

When every inner level is complete the gate's final check ("gate" condition,
defaulting to "completion") is re-evaluated. Passing completes the
composition; failing starts another inner cycle.
"""
from typing import Dict, List, Optional, Sequence, Tuple

import msgspec

from core.ontology import ActivationReason, CompositionType
from core.schemas import (
    CompositeConstraint,
    CompositionContext,
    Constraint,
    ConstraintActivation,
    ConstraintReference,
)
from core.composition_state import HierarchicalCompositionState
from core.results import ActivationResult, ConstraintError, TransitionResult
from domain.strategy_base import CompositionStrategy, logger


def validate_hierarchy(composite: CompositeConstraint) -> Optional[ConstraintError]:
    """The outermost level must hold exactly one reference."""
    levels = _group_levels(composite.references)
    gate_refs = levels[min(levels)]
    if len(gate_refs) != 1:
        return ConstraintError.validation(
            f"Hierarchical composite {composite.id} needs exactly one gate reference at level "
            f"{min(levels)}, found {len(gate_refs)}",
            composite.id,
        )
    return None


def _group_levels(references: Sequence[ConstraintReference]) -> Dict[int, List[Tuple[int, ConstraintReference]]]:
    levels: Dict[int, List[Tuple[int, ConstraintReference]]] = {}
    for index, ref in enumerate(references):
        level = ref.hierarchy_level if ref.hierarchy_level is not None else index
        levels.setdefault(level, []).append((index, ref))
    return levels


class HierarchicalStrategy(CompositionStrategy):
    composition_type = CompositionType.HIERARCHICAL
    state_type = HierarchicalCompositionState

    def __init__(self, composite: CompositeConstraint, settings=None):
        super().__init__(composite, settings)
        error = validate_hierarchy(composite)
        if error is not None:
            raise ValueError(error.message)
        self._levels = _group_levels(composite.references)
        gate_level = min(self._levels)
        self.gate: ConstraintReference = self._levels[gate_level][0][1]
        self.inner_levels: Tuple[int, ...] = tuple(sorted(l for l in self._levels if l != gate_level))

    def initial_state(self) -> HierarchicalCompositionState:
        return HierarchicalCompositionState()

    def is_complete(self, state: HierarchicalCompositionState) -> bool:
        return state.gate_passed

    def level_of(self, constraint_id: str) -> Optional[int]:
        for level, entries in self._levels.items():
            if any(ref.constraint_id == constraint_id for _, ref in entries):
                return level
        return None

    def pending_levels(self, state: HierarchicalCompositionState) -> Tuple[int, ...]:
        return tuple(l for l in self.inner_levels if l not in state.completed_levels)

    # =========================================================================
    # NEXT CONSTRAINT
    # =========================================================================

    def get_next_constraint(
        self,
        state: HierarchicalCompositionState,
        components: Sequence[Constraint],
        context: CompositionContext,
    ) -> ActivationResult:
        failed = self._precheck(state, components)
        if failed:
            return failed
        if state.gate_passed:
            return ActivationResult.finished()

        if not state.gate_open:
            if not context.satisfies(self.gate):
                return ActivationResult(success=True, activation=self._gate_activation(
                    components, context, "Outer level must be satisfied before inner levels activate",
                ))
            if not self.inner_levels:
                return ActivationResult(success=True, completed=True, completed_step=self.gate.constraint_id)
            logger.debug("%s: gate %s satisfied, opening inner levels", self.composite.id, self.gate.constraint_id)
            return ActivationResult(
                success=True,
                activation=self._level_activation(self.inner_levels[0], state, components, context),
                completed_step=self.gate.constraint_id,
            )

        pending = self.pending_levels(state)
        if pending:
            level = pending[0]
            done = self._satisfied_in_level(level, context)
            if done is None:
                return ActivationResult(
                    success=True,
                    activation=self._level_activation(level, state, components, context),
                )
            if len(pending) > 1:
                return ActivationResult(
                    success=True,
                    activation=self._level_activation(pending[1], state, components, context),
                    completed_step=done.constraint_id,
                )
            return ActivationResult(
                success=True,
                activation=self._gate_activation(
                    components, context, "All inner levels complete: re-check the outer level",
                ),
                completed_step=done.constraint_id,
            )

        if self._final_gate_passed(context):
            return ActivationResult(success=True, completed=True, completed_step=self.gate.constraint_id)

        logger.debug("%s: outer check unmet, starting inner cycle %d", self.composite.id, state.cycles + 2)
        note = (f"Outer check still unmet: starting inner cycle {state.cycles + 2}",)
        first = self.inner_levels[0]
        done = self._satisfied_in_level(first, context)
        if done is None:
            activation = self._level_activation(first, state, components, context, extra=note)
            return ActivationResult(success=True, activation=activation, cycle_restart=True)

        # first inner level already reported done: open the new cycle past it
        if len(self.inner_levels) > 1:
            activation = self._level_activation(self.inner_levels[1], state, components, context, extra=note)
        else:
            activation = self._gate_activation(
                components, context, "All inner levels complete: re-check the outer level",
            )
        return ActivationResult(
            success=True,
            activation=activation,
            completed_step=done.constraint_id,
            cycle_restart=True,
        )

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def advance_state(
        self,
        state: HierarchicalCompositionState,
        completed_activation: ConstraintActivation,
        context: CompositionContext,
    ) -> TransitionResult:
        error = self._check_state(state)
        if error:
            return TransitionResult(success=False, state=state, error=error)

        completed_id = completed_activation.constraint_id
        if state.gate_passed:
            return self._reject(state, f"Hierarchy {self.composite.id} is already complete", completed_id)
        level = self.level_of(completed_id)
        if level is None:
            return self._reject(state, f"{completed_id} is not part of {self.composite.id}", completed_id)

        pending = self.pending_levels(state)

        if completed_id == self.gate.constraint_id:
            if not state.gate_open:
                return TransitionResult(success=True, state=msgspec.structs.replace(
                    state, gate_open=True, gate_passed=not self.inner_levels,
                ))
            if pending:
                return self._reject(
                    state,
                    f"Outer check cannot pass while inner levels {list(pending)} are incomplete",
                    completed_id,
                )
            return TransitionResult(success=True, state=msgspec.structs.replace(state, gate_passed=True))

        if not state.gate_open:
            return self._reject(
                state,
                f"Level {level} cannot complete before the outer level ({self.gate.constraint_id}) is satisfied",
                completed_id,
            )

        if not pending:
            if level != self.inner_levels[0]:
                return self._reject(
                    state,
                    f"A new inner cycle must start at level {self.inner_levels[0]}, not level {level}",
                    completed_id,
                )
            return TransitionResult(success=True, state=msgspec.structs.replace(
                state, completed_levels=frozenset({level}), cycles=state.cycles + 1,
            ))

        if level != pending[0]:
            if level in state.completed_levels:
                return self._reject(state, f"Level {level} is already completed in this cycle", completed_id)
            return self._reject(
                state,
                f"Level {level} cannot complete before prerequisite level {pending[0]}",
                completed_id,
            )

        return TransitionResult(success=True, state=msgspec.structs.replace(
            state, completed_levels=state.completed_levels | {level},
        ))

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _ordered_level(self, level: int, components: Sequence[Constraint]) -> List[ConstraintReference]:
        priorities = {c.id: c.priority for c in components}
        entries = sorted(
            self._levels[level],
            key=lambda pair: (-priorities.get(pair[1].constraint_id, 0.0), pair[0]),
        )
        return [ref for _, ref in entries]

    def _satisfied_in_level(self, level: int, context: CompositionContext) -> Optional[ConstraintReference]:
        for _, ref in self._levels[level]:
            if context.satisfies(ref):
                return ref
        return None

    def _final_gate_passed(self, context: CompositionContext) -> bool:
        key = "gate" if "gate" in self.gate.metadata else "completion"
        return context.satisfies(self.gate, key)

    def _gate_activation(
        self,
        components: Sequence[Constraint],
        context: CompositionContext,
        note: str,
    ) -> ConstraintActivation:
        return self._activate(
            self.gate, components, context, ActivationReason.HIERARCHY_GATE,
            guidance=(note,),
            metadata={"level": min(self._levels)},
        )

    def _level_activation(
        self,
        level: int,
        state: HierarchicalCompositionState,
        components: Sequence[Constraint],
        context: CompositionContext,
        extra: Tuple[str, ...] = (),
    ) -> ConstraintActivation:
        ordered = self._ordered_level(level, components)
        guidance = [f"Level {level} of {self.inner_levels[-1]}"]
        if len(ordered) > 1:
            guidance.append("Also at this level: " + ", ".join(r.constraint_id for r in ordered[1:]))
        guidance.extend(extra)
        return self._activate(
            ordered[0], components, context, ActivationReason.HIERARCHY_GATE,
            guidance=tuple(guidance),
            metadata={"level": level, "cycle": state.cycles + 1},
        )
