"""
Tests for the hierarchical composition strategy (outside-in development).

Gate: testing.acceptance-test (level 0)
Inner: testing.write-test-first (level 1), testing.make-it-pass (level 2)
"""
import pytest

from core.composition_state import HierarchicalCompositionState
from core.ontology import ActivationReason, CompositionType, ErrorKind
from core.schemas import (
    CompositeConstraint,
    CompositionContext,
    ConstraintActivation,
    ConstraintReference,
    TriggerContext,
)
from domain.hierarchical import HierarchicalStrategy, validate_hierarchy

GATE = "testing.acceptance-test"
WRITE = "testing.write-test-first"
PASS = "testing.make-it-pass"


@pytest.fixture
def outside_in(composite_parts):
    composite, components = composite_parts("methodology.outside-in")
    return HierarchicalStrategy(composite), components


def done(constraint_id):
    return ConstraintActivation(
        constraint_id=constraint_id, confidence_score=1.0,
        reason=ActivationReason.HIERARCHY_GATE.value, trigger_context=TriggerContext(),
    )


def opened(*levels, cycles=0):
    return HierarchicalCompositionState(gate_open=True, completed_levels=frozenset(levels), cycles=cycles)


class TestStructure:

    def test_levels(self, outside_in):
        strategy, _ = outside_in
        assert strategy.gate.constraint_id == GATE
        assert strategy.inner_levels == (1, 2)
        assert strategy.level_of(PASS) == 2
        assert strategy.level_of("missing") is None

    def test_two_gates_rejected(self):
        composite = CompositeConstraint(
            id="h.bad", title="Bad", priority=0.5, composition_type=CompositionType.HIERARCHICAL,
            references=(
                ConstraintReference(constraint_id="a.one", hierarchy_level=0),
                ConstraintReference(constraint_id="a.two", hierarchy_level=0),
                ConstraintReference(constraint_id="a.three", hierarchy_level=1),
            ),
        )
        assert validate_hierarchy(composite).kind == ErrorKind.VALIDATION_ERROR
        with pytest.raises(ValueError, match="exactly one gate"):
            HierarchicalStrategy(composite)


class TestGetNext:

    def test_closed_gate_activates_gate(self, outside_in):
        strategy, components = outside_in
        result = strategy.get_next_constraint(strategy.initial_state(), components, CompositionContext())
        assert result.activation.constraint_id == GATE
        assert result.activation.reason == ActivationReason.HIERARCHY_GATE.value
        assert result.activation.metadata["level"] == 0

    def test_closed_gate_ignores_inner_readiness(self, outside_in):
        strategy, components = outside_in
        ctx = CompositionContext(
            workflow_state="green", evaluation_status="passing", satisfied=frozenset({WRITE, PASS}),
        )
        for _ in range(3):
            result = strategy.get_next_constraint(strategy.initial_state(), components, ctx)
            assert result.activation.constraint_id == GATE
            assert result.completed_step is None

    def test_gate_satisfied_opens_level_one(self, outside_in):
        strategy, components = outside_in
        ctx = CompositionContext(workflow_state="acceptance", evaluation_status="failing")
        result = strategy.get_next_constraint(strategy.initial_state(), components, ctx)
        assert result.completed_step == GATE
        assert result.activation.constraint_id == WRITE
        assert result.activation.guidance[0] == "Level 1 of 2"

    def test_inner_level_progression(self, outside_in):
        strategy, components = outside_in
        ctx = CompositionContext(workflow_state="red", evaluation_status="failing")
        result = strategy.get_next_constraint(opened(), components, ctx)
        assert result.completed_step == WRITE
        assert result.activation.constraint_id == PASS

    def test_pending_level_unsatisfied(self, outside_in):
        strategy, components = outside_in
        result = strategy.get_next_constraint(opened(1), components, CompositionContext())
        assert result.activation.constraint_id == PASS
        assert result.completed_step is None

    def test_last_inner_level_returns_to_gate(self, outside_in):
        strategy, components = outside_in
        ctx = CompositionContext(workflow_state="green", evaluation_status="passing")
        result = strategy.get_next_constraint(opened(1), components, ctx)
        assert result.completed_step == PASS
        assert result.activation.constraint_id == GATE
        assert "re-check" in result.activation.guidance[0]

    def test_final_gate_passes(self, outside_in):
        strategy, components = outside_in
        ctx = CompositionContext(workflow_state="acceptance", evaluation_status="passing")
        result = strategy.get_next_constraint(opened(1, 2), components, ctx)
        assert result.completed
        assert result.completed_step == GATE

    def test_final_gate_fails_restarts_cycle(self, outside_in):
        strategy, components = outside_in
        ctx = CompositionContext(workflow_state="acceptance", evaluation_status="failing")
        result = strategy.get_next_constraint(opened(1, 2), components, ctx)
        assert result.cycle_restart
        assert result.activation.constraint_id == WRITE
        assert any("inner cycle 2" in line for line in result.activation.guidance)
        assert result.completed_step is None

    def test_restart_with_first_level_done_moves_on(self, outside_in):
        strategy, components = outside_in
        ctx = CompositionContext(workflow_state="red", evaluation_status="failing")
        result = strategy.get_next_constraint(opened(1, 2), components, ctx)
        assert result.cycle_restart
        assert result.completed_step == WRITE
        assert result.activation.constraint_id == PASS

        advanced = strategy.advance_state(opened(1, 2), done(result.completed_step), ctx)
        assert advanced.state.completed_levels == frozenset({1})
        assert advanced.state.cycles == 1

    def test_passed_gate_is_finished(self, outside_in):
        strategy, components = outside_in
        state = HierarchicalCompositionState(gate_open=True, gate_passed=True)
        result = strategy.get_next_constraint(state, components, CompositionContext())
        assert result.completed
        assert strategy.is_complete(state)


class TestAdvance:

    def test_gate_opens(self, outside_in):
        strategy, _ = outside_in
        result = strategy.advance_state(strategy.initial_state(), done(GATE), CompositionContext())
        assert result.success
        assert result.state.gate_open
        assert not result.state.gate_passed

    def test_inner_before_gate_rejected(self, outside_in):
        strategy, _ = outside_in
        state = strategy.initial_state()
        result = strategy.advance_state(state, done(WRITE), CompositionContext())
        assert result.error.kind == ErrorKind.INVALID_TRANSITION
        assert result.state is state

    def test_level_skip_rejected(self, outside_in):
        strategy, _ = outside_in
        result = strategy.advance_state(opened(), done(PASS), CompositionContext())
        assert not result.success
        assert "prerequisite level 1" in result.message

    def test_levels_in_order_then_gate(self, outside_in):
        strategy, _ = outside_in
        state = opened()
        for step in (WRITE, PASS, GATE):
            result = strategy.advance_state(state, done(step), CompositionContext())
            assert result.success, result.message
            state = result.state
        assert state.completed_levels == frozenset({1, 2})
        assert strategy.is_complete(state)

    def test_repeat_level_rejected(self, outside_in):
        strategy, _ = outside_in
        result = strategy.advance_state(opened(1), done(WRITE), CompositionContext())
        assert "already completed" in result.message

    def test_gate_with_pending_levels_rejected(self, outside_in):
        strategy, _ = outside_in
        result = strategy.advance_state(opened(1), done(GATE), CompositionContext())
        assert not result.success

    def test_new_cycle_starts_at_first_level(self, outside_in):
        strategy, _ = outside_in
        result = strategy.advance_state(opened(1, 2), done(WRITE), CompositionContext())
        assert result.success
        assert result.state.completed_levels == frozenset({1})
        assert result.state.cycles == 1

        bad = strategy.advance_state(opened(1, 2), done(PASS), CompositionContext())
        assert not bad.success

    def test_unknown_constraint(self, outside_in):
        strategy, _ = outside_in
        result = strategy.advance_state(opened(), done("x.y"), CompositionContext())
        assert result.error.kind == ErrorKind.INVALID_TRANSITION
