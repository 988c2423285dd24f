"""
Progressive composition: numbered levels, completed strictly in order.

Each reference is one level. The level number is metadata["level"] when
given, otherwise sequence_order + 1, otherwise declaration index + 1. Levels
must run 1..N without gaps. The top level is the composite's max_level
option, or N capped at the configured default maximum.

Barrier levels (3 and 5 unless configured) are known drop-off points. While
barrier detection is on, activations at a barrier carry extra guidance.
"""
from typing import Dict, Optional, Sequence, Tuple

import msgspec

from core.ontology import (
    ActivationReason,
    CompositionType,
    DEFAULT_BARRIER_GUIDANCE,
    DEFAULT_LEVEL_DESCRIPTIONS,
    GENERIC_BARRIER_GUIDANCE,
)
from core.schemas import (
    CompositeConstraint,
    CompositionContext,
    Constraint,
    ConstraintActivation,
    ConstraintReference,
)
from core.composition_state import ProgressiveCompositionState
from core.results import ActivationResult, ConstraintError, TransitionResult
from domain.strategy_base import CompositionStrategy, logger


class ProgressionStep(msgspec.Struct, kw_only=True, frozen=True):
    level: int
    constraint_id: str
    description: str
    is_barrier: bool


def _declared_level(index: int, ref: ConstraintReference) -> int:
    if "level" in ref.metadata:
        return int(ref.metadata["level"])
    if ref.sequence_order is not None:
        return ref.sequence_order + 1
    return index + 1


class ProgressiveStrategy(CompositionStrategy):
    composition_type = CompositionType.PROGRESSIVE
    state_type = ProgressiveCompositionState

    def __init__(self, composite: CompositeConstraint, settings=None):
        super().__init__(composite, settings)
        self._by_level: Dict[int, ConstraintReference] = {}
        for index, ref in enumerate(composite.references):
            level = _declared_level(index, ref)
            if level in self._by_level:
                raise ValueError(f"Progressive composite {composite.id} declares level {level} twice")
            self._by_level[level] = ref
        declared = sorted(self._by_level)
        if declared != list(range(1, len(declared) + 1)):
            raise ValueError(f"Progressive composite {composite.id} levels must run 1..N, got {declared}")

        options = composite.options
        if options.max_level is not None:
            if options.max_level > len(declared):
                raise ValueError(
                    f"Progressive composite {composite.id} max_level {options.max_level} "
                    f"exceeds its {len(declared)} declared levels"
                )
            self.max_level = options.max_level
        else:
            self.max_level = min(len(declared), self.settings.default_max_level)

        barriers = (
            options.barrier_levels
            if options.barrier_levels is not None
            else self.settings.default_barrier_levels
        )
        self.barrier_levels = frozenset(l for l in barriers if 1 <= l <= self.max_level)

    def initial_state(self) -> ProgressiveCompositionState:
        return ProgressiveCompositionState()

    def is_complete(self, state: ProgressiveCompositionState) -> bool:
        return self.max_level in state.completed_levels

    def is_barrier(self, level: int) -> bool:
        return level in self.barrier_levels

    def reference_for(self, level: int) -> Optional[ConstraintReference]:
        return self._by_level.get(level) if level <= self.max_level else None

    def _check_state(self, state) -> Optional[ConstraintError]:
        error = super()._check_state(state)
        if error is not None:
            return error
        if state.current_level > self.max_level:
            return ConstraintError.validation(
                f"current_level {state.current_level} is outside 1..{self.max_level} for {self.composite.id}",
                self.composite.id,
            )
        stray = sorted(l for l in state.completed_levels if not 1 <= l <= self.max_level)
        if stray:
            return ConstraintError.validation(
                f"completed levels {stray} are outside 1..{self.max_level} for {self.composite.id}",
                self.composite.id,
            )
        return None

    def level_of(self, constraint_id: str) -> Optional[int]:
        for level, ref in self._by_level.items():
            if ref.constraint_id == constraint_id and level <= self.max_level:
                return level
        return None

    def barrier_guidance(self, level: int) -> Tuple[str, ...]:
        configured = self.composite.options.barrier_guidance.get(level)
        if configured:
            return tuple(configured)
        ref = self._by_level[level]
        if ref.metadata.get("guidance"):
            return tuple(ref.metadata["guidance"])
        return DEFAULT_BARRIER_GUIDANCE.get(level, GENERIC_BARRIER_GUIDANCE)

    def describe_level(self, level: int, components: Sequence[Constraint] = ()) -> str:
        ref = self._by_level[level]
        if ref.metadata.get("description"):
            return str(ref.metadata["description"])
        titles = {c.id: c.title for c in components}
        if ref.constraint_id in titles:
            return titles[ref.constraint_id]
        return DEFAULT_LEVEL_DESCRIPTIONS.get(level, f"Level {level}")

    def progression_path(self, components: Sequence[Constraint] = ()) -> Tuple[ProgressionStep, ...]:
        return tuple(
            ProgressionStep(
                level=level,
                constraint_id=self._by_level[level].constraint_id,
                description=self.describe_level(level, components),
                is_barrier=self.is_barrier(level),
            )
            for level in range(1, self.max_level + 1)
        )

    # =========================================================================
    # NEXT CONSTRAINT
    # =========================================================================

    def get_next_constraint(
        self,
        state: ProgressiveCompositionState,
        components: Sequence[Constraint],
        context: CompositionContext,
    ) -> ActivationResult:
        failed = self._precheck(state, components)
        if failed:
            return failed
        if self.is_complete(state):
            return ActivationResult.finished()

        level = state.current_level
        ref = self._by_level[level]
        guidance = [f"Level {level} of {self.max_level}: {self.describe_level(level, components)}"]
        barrier = self.is_barrier(level) and state.barrier_detection
        if barrier:
            logger.debug("%s: level %d is a barrier level", self.composite.id, level)
            guidance.extend(self.barrier_guidance(level))

        activation = self._activate(
            ref, components, context, ActivationReason.PROGRESSIVE_LEVEL,
            guidance=tuple(guidance),
            metadata={"level": level, "max_level": self.max_level, "is_barrier": barrier},
        )
        return ActivationResult(success=True, activation=activation)

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def complete_stage(self, state: ProgressiveCompositionState, level: int) -> TransitionResult:
        """
        Mark `level` complete.

        Only the current level may be completed. Jumping ahead is rejected and
        the returned state is the unchanged input.
        """
        error = self._check_state(state)
        if error:
            return TransitionResult(success=False, state=state, error=error)

        if level > state.current_level:
            missing = [l for l in range(state.current_level, level) if l not in state.completed_levels]
            return self._reject(
                state,
                "Level skipping not allowed: must complete prerequisite levels systematically "
                f"(prerequisite levels {missing} not completed before level {level})",
            )
        if level < 1:
            return self._reject(state, f"Level {level} does not exist")
        if self.is_complete(state):
            return self._reject(state, f"Progression {self.composite.id} is already complete")
        if level < state.current_level or level in state.completed_levels:
            return self._reject(state, f"Level {level} is already completed")

        return TransitionResult(success=True, state=msgspec.structs.replace(
            state,
            completed_levels=state.completed_levels | {level},
            current_level=min(level + 1, self.max_level),
        ))

    def advance_state(
        self,
        state: ProgressiveCompositionState,
        completed_activation: ConstraintActivation,
        context: CompositionContext,
    ) -> TransitionResult:
        level = self.level_of(completed_activation.constraint_id)
        if level is None:
            return self._reject(
                state,
                f"{completed_activation.constraint_id} is not a level of {self.composite.id}",
                completed_activation.constraint_id,
            )
        return self.complete_stage(state, level)

    def set_barrier_detection(self, state: ProgressiveCompositionState, enabled: bool) -> ProgressiveCompositionState:
        return msgspec.structs.replace(state, barrier_detection=enabled)
