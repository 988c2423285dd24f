"""
Tests for the activation pipeline.
"""
import pytest

from agents.pipeline import ActivationPipeline
from core.composition_state import ProgressiveCompositionState, SequentialCompositionState
from core.ontology import ActivationReason, ErrorKind
from core.schemas import DependencyInfo
from infrastructure.pack_builder import build_library
from infrastructure.settings import SchedulingSettings, TrellisSettings

WRITE = "testing.write-test-first"
PASS = "testing.make-it-pass"
TDD = "methodology.tdd"


class TestTriggerOnly:

    def test_tool_call_activates_atomic(self, pipeline):
        result = pipeline.evaluate_tool_call(
            "tools/create_file",
            {"file_path": "/src/Foo.test.cs", "content": "write the first test for the feature"},
            "s1",
        )
        assert result.activated_ids == (WRITE,)
        assert not result.has_errors
        assert result.record.interaction == 1
        assert result.record.strategy_used == "trigger_matching"
        assert result.record.activated_constraint_ids == (WRITE,)
        assert result.activations[0].trigger_context.context_type == "testing"

    def test_nothing_matches(self, pipeline):
        result = pipeline.evaluate_user_input("hello there", "s1")
        assert result.activations == ()
        assert result.record.strategy_used == "none"

    def test_interaction_counter_per_session(self, pipeline):
        pipeline.evaluate_user_input("hello", "s1")
        pipeline.evaluate_user_input("hello", "s1")
        other = pipeline.evaluate_user_input("hello", "s2")
        third = pipeline.evaluate_user_input("hello", "s1")
        assert other.record.interaction == 1
        assert third.record.interaction == 3

    def test_records_logged(self, pipeline):
        pipeline.evaluate_user_input("hello", "s1")
        pipeline.evaluate_user_input("hello", "s2")
        assert len(pipeline.activation_log.buffer) == 2
        assert len(pipeline.activation_log.buffer.get_by_session("s2")) == 1


class TestComposition:

    def test_composite_yields_first_step(self, pipeline):
        result = pipeline.evaluate_user_input("let's do tdd for the cart", "s1")
        assert result.activated_ids == (WRITE,)
        assert result.activations[0].composite_id == TDD
        assert result.record.strategy_used == "sequential"
        assert pipeline.get_state("s1", TDD) == SequentialCompositionState()

    def test_reported_step_advances_state(self, pipeline):
        pipeline.evaluate_user_input("tdd", "s1")
        result = pipeline.evaluate_user_input("tdd", "s1", workflow_state="red", evaluation_status="failing")
        assert result.activated_ids == (PASS,)
        state = pipeline.get_state("s1", TDD)
        assert state.position == 1
        assert state.completed == frozenset({WRITE})

    def test_skip_ahead_is_collected_error(self, pipeline):
        result = pipeline.evaluate_user_input("tdd", "s1", workflow_state="green", evaluation_status="passing")
        assert result.activations == ()
        assert [e.kind for e in result.errors] == [ErrorKind.INVALID_TRANSITION]
        assert result.record.error_count == 1
        assert pipeline.get_state("s1", TDD) is None

    def test_sessions_do_not_share_state(self, pipeline):
        pipeline.evaluate_user_input("tdd", "s1", workflow_state="red", evaluation_status="failing")
        assert pipeline.get_state("s1", TDD).position == 1
        assert pipeline.get_state("s2", TDD) is None
        result = pipeline.evaluate_user_input("tdd", "s2")
        assert result.activated_ids == (WRITE,)

    def test_final_step_completes_composite(self, pipeline):
        for step in (WRITE, PASS):
            assert pipeline.complete_step("s1", TDD, step).success
        result = pipeline.evaluate_user_input(
            "tdd", "s1", workflow_state="refactor", evaluation_status="passing",
        )
        assert result.completed_composites == (TDD,)
        assert result.activations == ()
        assert pipeline.get_state("s1", TDD).position == 3

    def test_hierarchical_gate(self, pipeline):
        result = pipeline.evaluate_user_input(
            "outside", "s1", satisfied=[WRITE, PASS],
        )
        assert result.activated_ids == ("testing.acceptance-test",)
        assert result.activations[0].reason == ActivationReason.HIERARCHY_GATE.value

    def test_hierarchy_runs_a_second_inner_cycle(self, pipeline):
        outside = "methodology.outside-in"

        def step(workflow_state, evaluation_status):
            return pipeline.evaluate_user_input(
                "outside", "s1", workflow_state=workflow_state, evaluation_status=evaluation_status,
            )

        assert step("acceptance", "failing").activated_ids == (WRITE,)
        assert step("red", "failing").activated_ids == (PASS,)
        assert step("green", "passing").activated_ids == ("testing.acceptance-test",)
        assert pipeline.get_state("s1", outside).completed_levels == frozenset({1, 2})

        second = step("red", "failing")
        assert second.activated_ids == (PASS,)
        state = pipeline.get_state("s1", outside)
        assert state.completed_levels == frozenset({1})
        assert state.cycles == 1

        assert step("green", "passing").activated_ids == ("testing.acceptance-test",)
        finished = step("acceptance", "passing")
        assert finished.completed_composites == (outside,)
        assert pipeline.get_state("s1", outside).gate_passed

    def test_step_matched_twice_is_listed_once(self, pipeline):
        result = pipeline.evaluate_user_input("tdd write test first", "s1")
        assert result.activated_ids == (WRITE,)
        assert result.activations[0].composite_id == TDD
        assert result.record.activated_constraint_ids == (WRITE,)
        with pipeline.registry.session("s1") as session:
            assert session.activation_counts[WRITE] == 1

    def test_layered_violations(self, pipeline):
        result = pipeline.evaluate_user_input(
            "architecture review", "s1",
            dependencies=[DependencyInfo(source="app.domain.order", target="app.infrastructure.db")],
        )
        assert result.activated_ids == ("architecture.domain-pure",)
        assert len(result.violations) == 1
        assert result.record.strategy_used == "layered"

    def test_unsupported_composite_does_not_block_others(self):
        pack = {
            "constraints": [
                {"id": "cart.rule", "title": "Cart rule", "priority": 0.5,
                 "triggers": {"keywords": ["cart"]}},
                {"id": "cart.parallel", "title": "Cart parallel", "priority": 0.9,
                 "triggers": {"keywords": ["cart"]},
                 "composition": {"type": "parallel", "components": ["cart.rule"]}},
            ],
        }
        pipeline = ActivationPipeline(build_library(pack).library)
        result = pipeline.evaluate_user_input("cart", "s1")
        assert result.activated_ids == ("cart.rule",)
        assert [e.kind for e in result.errors] == [ErrorKind.UNSUPPORTED_COMPOSITION_TYPE]


class TestExplicitTransitions:

    def test_complete_step(self, pipeline):
        result = pipeline.complete_step("s1", TDD, WRITE)
        assert result.success
        assert pipeline.get_state("s1", TDD).position == 1

    def test_complete_step_out_of_order(self, pipeline):
        result = pipeline.complete_step("s1", TDD, "testing.refactor-safely")
        assert not result.success
        assert result.error.kind == ErrorKind.INVALID_TRANSITION
        assert pipeline.get_state("s1", TDD) is None

    def test_unknown_composite(self, pipeline):
        result = pipeline.complete_step("s1", "nope.nothing", WRITE)
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_atomic_is_not_a_composite(self, pipeline):
        result = pipeline.complete_step("s1", WRITE, WRITE)
        assert result.error.kind == ErrorKind.VALIDATION_ERROR

    def test_complete_stage(self, pipeline):
        skipped = pipeline.complete_stage("s1", "quality.refactoring-levels", 3)
        assert not skipped.success
        assert "systematic" in skipped.message
        assert skipped.state == ProgressiveCompositionState()

        result = pipeline.complete_stage("s1", "quality.refactoring-levels", 1)
        assert result.success
        assert pipeline.get_state("s1", "quality.refactoring-levels").current_level == 2

    def test_complete_stage_requires_progressive(self, pipeline):
        result = pipeline.complete_stage("s1", TDD, 1)
        assert result.error.kind == ErrorKind.VALIDATION_ERROR

    def test_reset_session(self, pipeline):
        pipeline.complete_step("s1", TDD, WRITE)
        pipeline.reset_session("s1")
        assert pipeline.get_state("s1", TDD) is None

    def test_end_session(self, pipeline):
        pipeline.evaluate_user_input("tdd", "s1")
        assert pipeline.end_session("s1")
        assert "s1" not in pipeline.registry
        assert not pipeline.end_session("s1")
        assert len(pipeline.activation_log.buffer.get_by_session("s1")) == 1


class TestFallback:

    @pytest.fixture
    def scheduled(self, library):
        settings = TrellisSettings(scheduling=SchedulingSettings(fallback_cadence=3))
        return ActivationPipeline(library, settings)

    def test_fallback_cadence(self, scheduled):
        results = [scheduled.evaluate_user_input("hello", "s1") for _ in range(4)]
        assert [bool(r.activations) for r in results] == [True, False, True, False]
        first = results[0].activations[0]
        assert first.constraint_id == WRITE
        assert first.reason == ActivationReason.SCHEDULED_FALLBACK.value
        assert results[0].record.strategy_used == "scheduled_fallback"

    def test_no_fallback_when_something_matched(self, scheduled):
        result = scheduled.evaluate_user_input("tdd", "s1")
        assert result.activations[0].reason == ActivationReason.WORKFLOW_PROGRESSION.value

    def test_disabled_by_default(self, pipeline):
        assert pipeline.scheduler is None
