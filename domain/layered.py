"""
Layered composition: architectural layers with inward-only dependencies.

Layers are the composite's references ordered innermost first
(hierarchy_level, then declaration order). Each layer has a name
(metadata["layer"], defaulting to the component id) and optional namespace
patterns (metadata["patterns"]) used to place dependency endpoints.

A dependency source -> target is valid when the target's layer is not more
outward than the source's. Validation reports every violation; endpoints
that belong to no layer are skipped.
"""
from typing import List, Optional, Sequence, Tuple

import msgspec

from core.ontology import ActivationReason, CompositionType
from core.schemas import (
    CompositeConstraint,
    CompositionContext,
    Constraint,
    ConstraintActivation,
    ConstraintReference,
    DependencyInfo,
)
from core.composition_state import LayeredCompositionState, LayerViolation
from core.results import ActivationResult, TransitionResult
from domain.strategy_base import CompositionStrategy, logger


class Layer(msgspec.Struct, kw_only=True, frozen=True):
    index: int  # 0 = innermost
    name: str
    constraint_id: str
    patterns: Tuple[str, ...] = ()


class LayeredStrategy(CompositionStrategy):
    composition_type = CompositionType.LAYERED
    state_type = LayeredCompositionState

    def __init__(self, composite: CompositeConstraint, settings=None):
        super().__init__(composite, settings)
        indexed = list(enumerate(composite.references))
        indexed.sort(key=lambda pair: (
            pair[1].hierarchy_level if pair[1].hierarchy_level is not None else pair[0],
            pair[0],
        ))
        self.layers: Tuple[Layer, ...] = tuple(
            Layer(
                index=position,
                name=str(ref.metadata.get("layer", ref.constraint_id)),
                constraint_id=ref.constraint_id,
                patterns=tuple(str(p) for p in ref.metadata.get("patterns", ())),
            )
            for position, (_, ref) in enumerate(indexed)
        )
        self.required_completions = composite.options.required_layer_completions

    def initial_state(self) -> LayeredCompositionState:
        return LayeredCompositionState(layer_completions=(0,) * len(self.layers))

    def is_complete(self, state: LayeredCompositionState) -> bool:
        return all(state.completions_for(l.index) >= self.required_completions for l in self.layers)

    # =========================================================================
    # DEPENDENCY RULES
    # =========================================================================

    def resolve_layer(self, endpoint: str) -> Optional[Layer]:
        """Exact layer name first, then the most specific matching pattern."""
        needle = endpoint.lower()
        for layer in self.layers:
            if layer.name.lower() == needle:
                return layer
        best: Optional[Layer] = None
        best_length = 0
        for layer in self.layers:
            for pattern in layer.patterns:
                if pattern and pattern.lower() in needle and len(pattern) > best_length:
                    best, best_length = layer, len(pattern)
        return best

    def is_valid_dependency(self, dependency: DependencyInfo) -> bool:
        return self.check_dependency(dependency) is None

    def check_dependency(self, dependency: DependencyInfo) -> Optional[LayerViolation]:
        source = self.resolve_layer(dependency.source)
        target = self.resolve_layer(dependency.target)
        if source is None or target is None:
            logger.debug(
                "%s: skipping dependency %s -> %s outside known layers",
                self.composite.id, dependency.source, dependency.target,
            )
            return None
        if target.index <= source.index:
            return None
        return LayerViolation(
            source=dependency.source,
            target=dependency.target,
            source_layer=source.name,
            target_layer=target.name,
            reason=f"Layer '{source.name}' must not depend on outer layer '{target.name}'",
        )

    def validate_dependencies(self, dependencies: Sequence[DependencyInfo]) -> Tuple[LayerViolation, ...]:
        """All violations, in input order."""
        violations: List[LayerViolation] = []
        for dependency in dependencies:
            violation = self.check_dependency(dependency)
            if violation is not None:
                violations.append(violation)
        return tuple(violations)

    # =========================================================================
    # NEXT CONSTRAINT
    # =========================================================================

    def get_next_constraint(
        self,
        state: LayeredCompositionState,
        components: Sequence[Constraint],
        context: CompositionContext,
    ) -> ActivationResult:
        failed = self._precheck(state, components)
        if failed:
            return failed

        violations = self.validate_dependencies(context.dependencies)
        incomplete = [l for l in self.layers if state.completions_for(l.index) < self.required_completions]
        if not incomplete:
            return ActivationResult.finished(violations)

        layer = min(incomplete, key=lambda l: (state.completions_for(l.index), l.index))
        guidance = [f"Layer '{layer.name}' ({layer.index + 1} of {len(self.layers)}, innermost first)"]
        guidance.extend(f"Dependency violation: {v.source} -> {v.target}: {v.reason}" for v in violations)

        activation = self._activate(
            self._reference(layer), components, context, ActivationReason.LAYER_ORDER,
            guidance=tuple(guidance),
            metadata={"layer": layer.name, "layer_index": layer.index, "violation_count": len(violations)},
        )
        return ActivationResult(success=True, activation=activation, violations=violations)

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def advance_state(
        self,
        state: LayeredCompositionState,
        completed_activation: ConstraintActivation,
        context: CompositionContext,
    ) -> TransitionResult:
        error = self._check_state(state)
        if error:
            return TransitionResult(success=False, state=state, error=error)

        layer = next((l for l in self.layers if l.constraint_id == completed_activation.constraint_id), None)
        if layer is None:
            return self._reject(
                state,
                f"{completed_activation.constraint_id} is not a layer of {self.composite.id}",
                completed_activation.constraint_id,
            )

        counts = [state.completions_for(l.index) for l in self.layers]
        counts[layer.index] += 1
        recorded = list(state.violations)
        for violation in self.validate_dependencies(context.dependencies):
            if violation not in recorded:
                recorded.append(violation)

        return TransitionResult(success=True, state=msgspec.structs.replace(
            state, layer_completions=tuple(counts), violations=tuple(recorded),
        ))

    def _reference(self, layer: Layer) -> ConstraintReference:
        return self._find(layer.constraint_id)
