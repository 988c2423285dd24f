"""
Tests for the activation strategy factory.
"""
import pytest

from core.ontology import CompositionType, ErrorKind
from core.schemas import CompositeConstraint, ConstraintReference
from domain.hierarchical import HierarchicalStrategy
from domain.layered import LayeredStrategy
from domain.progressive import ProgressiveStrategy
from domain.sequential import SequentialStrategy
from domain.strategy_factory import ActivationStrategyFactory


def composite(kind, refs=("a.one", "a.two")):
    return CompositeConstraint(
        id="c.any", title="Any", priority=0.5, composition_type=kind,
        references=tuple(ConstraintReference(constraint_id=r) for r in refs),
    )


@pytest.mark.parametrize("kind, expected", [
    (CompositionType.SEQUENTIAL, SequentialStrategy),
    (CompositionType.HIERARCHICAL, HierarchicalStrategy),
    (CompositionType.PROGRESSIVE, ProgressiveStrategy),
    (CompositionType.LAYERED, LayeredStrategy),
])
def test_dispatch(kind, expected):
    result = ActivationStrategyFactory().create_strategy(composite(kind))
    assert result.success
    assert isinstance(result.strategy, expected)
    assert result.strategy.composite.id == "c.any"


def test_parallel_unsupported():
    factory = ActivationStrategyFactory()
    result = factory.create_strategy(composite(CompositionType.PARALLEL))
    assert not result.success
    assert result.error.kind == ErrorKind.UNSUPPORTED_COMPOSITION_TYPE
    assert not factory.supports(CompositionType.PARALLEL)


def test_invalid_shape_is_validation_error():
    bad = CompositeConstraint(
        id="c.bad", title="Bad", priority=0.5, composition_type=CompositionType.HIERARCHICAL,
        references=(
            ConstraintReference(constraint_id="a.one", hierarchy_level=0),
            ConstraintReference(constraint_id="a.two", hierarchy_level=0),
        ),
    )
    result = ActivationStrategyFactory().create_strategy(bad)
    assert not result.success
    assert result.error.kind == ErrorKind.VALIDATION_ERROR


def test_custom_registry():
    factory = ActivationStrategyFactory(strategies={CompositionType.SEQUENTIAL: SequentialStrategy})
    assert factory.supported_types() == (CompositionType.SEQUENTIAL,)
    assert not factory.create_strategy(composite(CompositionType.LAYERED)).success


def test_sample_pack_composites_all_supported(library):
    factory = ActivationStrategyFactory()
    for constraint in library.composite_constraints:
        assert factory.create_strategy(constraint).success, constraint.id
