"""
TRELLIS ACTIVATION PIPELINE - The Orchestrator

Wires the decision pipeline together for one inbound call:

    tool call / user input
        -> ContextAnalyzer          (TriggerContext)
        -> TriggerMatchingEngine    (ranked activations)
        -> for composite activations:
             ActivationStrategyFactory -> strategy
             ConstraintResolver        -> components
             strategy.get_next_constraint(state, components, context)
             strategy.advance_state(...) when the context reports a step done
        -> PipelineResult + ActivationRecord

Concurrency:
- Library, engine, factory and resolver are shared across sessions.
- Composition state is read, transitioned and written back while holding
  the session's lock, so two calls for one session cannot race to advance
  the same sequence. Different sessions never share a lock.

Error handling:
- NotFound / UnsupportedCompositionType / InvalidTransition for one
  composite land in PipelineResult.errors; the other activations proceed.
"""
import logging
import threading
import time
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import msgspec

from core.library import ConstraintLibrary
from core.ontology import ActivationReason
from core.resolver import ConstraintResolver
from core.results import ConstraintError, StrategyResult, TransitionResult
from core.composition_state import CompositionState, LayerViolation
from core.schemas import (
    AtomicConstraint,
    CompositeConstraint,
    CompositionContext,
    ConstraintActivation,
    DependencyInfo,
    TriggerContext,
)
from domain.context_analyzer import ContextAnalyzer
from domain.progressive import ProgressiveStrategy
from domain.strategy_base import CompositionStrategy
from domain.strategy_factory import ActivationStrategyFactory
from domain.trigger_matching import TriggerMatchingEngine
from agents.scheduler import InjectionScheduler
from agents.session_registry import SessionRegistry, SessionState
from infrastructure.activation_log import ActivationLog, ActivationRecord
from infrastructure.settings import TrellisSettings

logger = logging.getLogger("trellis.pipeline")


class PipelineResult(msgspec.Struct, kw_only=True, frozen=True):
    """What one call hands to the formatter and the structured logger."""
    activations: Tuple[ConstraintActivation, ...]
    errors: Tuple[ConstraintError, ...]
    record: ActivationRecord
    completed_composites: Tuple[str, ...] = ()
    violations: Tuple[LayerViolation, ...] = ()

    @property
    def activated_ids(self) -> Tuple[str, ...]:
        return tuple(a.constraint_id for a in self.activations)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


class _Composed(msgspec.Struct, kw_only=True, frozen=True):
    activation: Optional[ConstraintActivation] = None
    error: Optional[ConstraintError] = None
    completed: bool = False
    violations: Tuple[LayerViolation, ...] = ()


class ActivationPipeline:
    """
    One entry point per inbound call shape.

    Usage:
        pipeline = ActivationPipeline(library)
        result = pipeline.evaluate_tool_call(
            "tools/write_file", {"file_path": "src/app.test.ts"}, "session-1",
            workflow_state="red", evaluation_status="failing",
        )
        for activation in result.activations:
            print(activation.constraint_id, activation.confidence_score)
    """

    def __init__(
        self,
        library: ConstraintLibrary,
        settings: Optional[TrellisSettings] = None,
        analyzer: Optional[ContextAnalyzer] = None,
        registry: Optional[SessionRegistry] = None,
        activation_log: Optional[ActivationLog] = None,
    ):
        self.library = library
        self.settings = settings or TrellisSettings()
        self.analyzer = analyzer or ContextAnalyzer()
        self.engine = TriggerMatchingEngine(library, self.settings.matching)
        self.factory = ActivationStrategyFactory(self.settings.composition)
        self.resolver = ConstraintResolver(library)
        self.registry = registry or SessionRegistry()
        self.activation_log = activation_log or ActivationLog(buffer_size=self.settings.logging.buffer_size)
        cadence = self.settings.scheduling.fallback_cadence
        self.scheduler = InjectionScheduler(cadence) if cadence > 0 else None
        self._strategies: Dict[str, StrategyResult] = {}
        self._strategy_lock = threading.Lock()

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def evaluate_tool_call(
        self,
        method: str,
        arguments: Optional[Mapping[str, str]],
        session_id: str,
        workflow_state: str = "",
        evaluation_status: str = "",
        satisfied: Iterable[str] = (),
        dependencies: Iterable[DependencyInfo] = (),
    ) -> PipelineResult:
        context = self.analyzer.analyze_tool_call(method, arguments, session_id)
        return self.evaluate(context, workflow_state, evaluation_status, satisfied, dependencies)

    def evaluate_user_input(
        self,
        text: str,
        session_id: str,
        workflow_state: str = "",
        evaluation_status: str = "",
        satisfied: Iterable[str] = (),
        dependencies: Iterable[DependencyInfo] = (),
    ) -> PipelineResult:
        context = self.analyzer.analyze_user_input(text, session_id)
        return self.evaluate(context, workflow_state, evaluation_status, satisfied, dependencies)

    def evaluate(
        self,
        context: TriggerContext,
        workflow_state: str = "",
        evaluation_status: str = "",
        satisfied: Iterable[str] = (),
        dependencies: Iterable[DependencyInfo] = (),
    ) -> PipelineResult:
        start = time.perf_counter()
        matched = self.engine.evaluate_constraints(context)
        signals = CompositionContext(
            trigger=context,
            workflow_state=workflow_state,
            evaluation_status=evaluation_status,
            satisfied=frozenset(satisfied),
            dependencies=tuple(dependencies),
        )

        activations: List[ConstraintActivation] = []
        errors: List[ConstraintError] = []
        completed: List[str] = []
        violations: List[LayerViolation] = []
        strategies_used: List[str] = []

        with self.registry.session(context.session_id) as session:
            interaction = session.next_interaction()

            for matched_activation in matched:
                constraint = self.library.try_get_constraint(matched_activation.constraint_id)
                if isinstance(constraint, AtomicConstraint):
                    activations.append(matched_activation)
                    continue

                strategies_used.append(constraint.composition_type.value)
                composed = self._compose(
                    session,
                    constraint,
                    msgspec.structs.replace(signals, confidence=matched_activation.confidence_score),
                )
                if composed.error is not None:
                    errors.append(composed.error)
                    continue
                if composed.completed:
                    completed.append(constraint.id)
                violations.extend(composed.violations)
                if composed.activation is not None:
                    activations.append(composed.activation)

            if not matched and self.scheduler is not None and self.scheduler.should_inject(interaction):
                fallback = self._fallback_activation(context)
                if fallback is not None:
                    activations.append(fallback)
                    strategies_used.append(ActivationReason.SCHEDULED_FALLBACK.value)

            activations = self._unique(activations)
            ids = tuple(a.constraint_id for a in activations)
            session.record_activations(ids)

        record = self.activation_log.record(ActivationRecord(
            session_id=context.session_id,
            interaction=interaction,
            activated_constraint_ids=ids,
            strategy_used=self._strategy_label(matched, strategies_used),
            latency_ms=(time.perf_counter() - start) * 1000,
            error_count=len(errors),
        ))
        for error in errors:
            logger.warning("Session %s: %s", context.session_id, error)

        return PipelineResult(
            activations=tuple(activations),
            errors=tuple(errors),
            record=record,
            completed_composites=tuple(completed),
            violations=tuple(violations),
        )

    # =========================================================================
    # EXPLICIT TRANSITIONS
    # =========================================================================

    def complete_step(
        self,
        session_id: str,
        composite_id: str,
        constraint_id: str,
        workflow_state: str = "",
        evaluation_status: str = "",
        dependencies: Iterable[DependencyInfo] = (),
    ) -> TransitionResult:
        """Report that a composite's component is done and advance its state."""
        strategy_result = self._composite_strategy(composite_id)
        if not strategy_result.success:
            return TransitionResult(success=False, error=strategy_result.error)
        strategy: CompositionStrategy = strategy_result.strategy

        context = CompositionContext(
            trigger=TriggerContext(session_id=session_id),
            workflow_state=workflow_state,
            evaluation_status=evaluation_status,
            dependencies=tuple(dependencies),
        )
        done = ConstraintActivation(
            constraint_id=constraint_id,
            confidence_score=1.0,
            reason=ActivationReason.WORKFLOW_PROGRESSION.value,
            trigger_context=context.trigger,
            composite_id=composite_id,
        )
        with self.registry.session(session_id) as session:
            state = session.composition_states.get(composite_id)
            if state is None:
                state = strategy.initial_state()
            transition = strategy.advance_state(state, done, context)
            if transition.success:
                session.composition_states[composite_id] = transition.state
        return transition

    def complete_stage(self, session_id: str, composite_id: str, level: int) -> TransitionResult:
        """Progressive compositions: complete a level by number."""
        strategy_result = self._composite_strategy(composite_id)
        if not strategy_result.success:
            return TransitionResult(success=False, error=strategy_result.error)
        strategy = strategy_result.strategy
        if not isinstance(strategy, ProgressiveStrategy):
            return TransitionResult(success=False, error=ConstraintError.validation(
                f"{composite_id} is not a progressive composite", composite_id,
            ))
        with self.registry.session(session_id) as session:
            state = session.composition_states.get(composite_id)
            if state is None:
                state = strategy.initial_state()
            transition = strategy.complete_stage(state, level)
            if transition.success:
                session.composition_states[composite_id] = transition.state
        return transition

    def get_state(self, session_id: str, composite_id: str) -> Optional[CompositionState]:
        return self.registry.get_state(session_id, composite_id)

    def reset_session(self, session_id: str) -> None:
        self.registry.reset(session_id)

    def end_session(self, session_id: str) -> bool:
        """Forget everything held for a session. Its logged records stay in the activation log."""
        return self.registry.discard(session_id)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _strategy(self, composite: CompositeConstraint) -> StrategyResult:
        with self._strategy_lock:
            cached = self._strategies.get(composite.id)
            if cached is None:
                cached = self.factory.create_strategy(composite)
                self._strategies[composite.id] = cached
            return cached

    def _composite_strategy(self, composite_id: str) -> StrategyResult:
        lookup = self.resolver.resolve(composite_id)
        if not lookup.success:
            return StrategyResult(success=False, error=lookup.error)
        if not isinstance(lookup.constraint, CompositeConstraint):
            return StrategyResult(success=False, error=ConstraintError.validation(
                f"{composite_id} is not a composite constraint", composite_id,
            ))
        return self._strategy(lookup.constraint)

    def _compose(
        self,
        session: SessionState,
        composite: CompositeConstraint,
        context: CompositionContext,
    ) -> _Composed:
        strategy_result = self._strategy(composite)
        if not strategy_result.success:
            return _Composed(error=strategy_result.error)
        strategy: CompositionStrategy = strategy_result.strategy

        resolved = self.resolver.resolve_references(composite)
        if not resolved.success:
            return _Composed(error=resolved.error)

        state = session.composition_states.get(composite.id)
        if state is None:
            state = strategy.initial_state()
        result = strategy.get_next_constraint(state, resolved.components, context)
        if not result.success:
            return _Composed(error=result.error)

        if result.completed_step is not None:
            done = ConstraintActivation(
                constraint_id=result.completed_step,
                confidence_score=context.confidence,
                reason=ActivationReason.WORKFLOW_PROGRESSION.value,
                trigger_context=context.trigger,
                composite_id=composite.id,
            )
            transition = strategy.advance_state(state, done, context)
            if not transition.success:
                return _Composed(error=transition.error)
            state = transition.state
            logger.debug("%s: recorded completion of %s", composite.id, result.completed_step)

        session.composition_states[composite.id] = state
        return _Composed(
            activation=result.activation,
            completed=result.completed,
            violations=result.violations,
        )

    def _fallback_activation(self, context: TriggerContext) -> Optional[ConstraintActivation]:
        atomics = sorted(self.library.atomic_constraints, key=lambda c: (-c.priority, c.id))
        if not atomics:
            return None
        top = atomics[0]
        return ConstraintActivation(
            constraint_id=top.id,
            confidence_score=top.priority,
            reason=ActivationReason.SCHEDULED_FALLBACK.value,
            trigger_context=context,
        )

    @staticmethod
    def _unique(activations: List[ConstraintActivation]) -> List[ConstraintActivation]:
        """One activation per constraint id, keeping first-seen order.

        A composite step wins over a plain trigger match for the same id since
        it carries the composite id and guidance; otherwise higher confidence wins.
        """
        kept: Dict[str, ConstraintActivation] = {}
        for activation in activations:
            current = kept.get(activation.constraint_id)
            if current is None:
                kept[activation.constraint_id] = activation
                continue
            current_rank = (current.composite_id is not None, current.confidence_score)
            if (activation.composite_id is not None, activation.confidence_score) > current_rank:
                kept[activation.constraint_id] = activation
        return list(kept.values())

    @staticmethod
    def _strategy_label(matched: Tuple[ConstraintActivation, ...], strategies_used: List[str]) -> str:
        if strategies_used:
            return ",".join(dict.fromkeys(strategies_used))
        if matched:
            return "trigger_matching"
        return "none"
