"""
Tests for ConstraintResolver.
"""
from core.ontology import CompositionType, ErrorKind
from core.resolver import ConstraintResolver
from core.results import ConstraintError, LookupResult
from core.schemas import AtomicConstraint, CompositeConstraint, ConstraintReference


def _composite(cid, refs):
    return CompositeConstraint(
        id=cid, title=cid, priority=0.5, composition_type=CompositionType.SEQUENTIAL,
        references=tuple(ConstraintReference(constraint_id=r) for r in refs),
    )


class CyclicLibrary:
    """A hand-built store holding a cycle the real library would refuse."""

    def __init__(self):
        self.constraints = {
            "c.one": _composite("c.one", ["a.leaf", "c.two"]),
            "c.two": _composite("c.two", ["c.one"]),
            "a.leaf": AtomicConstraint(id="a.leaf", title="Leaf", priority=0.5),
        }

    def get_constraint(self, constraint_id):
        constraint = self.constraints.get(constraint_id)
        if constraint is None:
            return LookupResult(success=False, error=ConstraintError.not_found(constraint_id))
        return LookupResult(success=True, constraint=constraint)


class TestResolve:

    def test_existing(self, resolver):
        result = resolver.resolve("testing.make-it-pass")
        assert result.success
        assert result.constraint.id == "testing.make-it-pass"

    def test_missing(self, resolver):
        result = resolver.resolve("missing.id")
        assert not result.success
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_cache_hits_counted(self, resolver):
        resolver.resolve("testing.make-it-pass")
        resolver.resolve("testing.make-it-pass")
        metrics = resolver.metrics()
        assert metrics.total_resolutions == 2
        assert metrics.cache_hits == 1
        assert metrics.cache_hit_rate == 0.5

    def test_cache_disabled(self, library):
        resolver = ConstraintResolver(library, enable_cache=False)
        resolver.resolve("testing.make-it-pass")
        resolver.resolve("testing.make-it-pass")
        assert resolver.metrics().cache_hits == 0

    def test_clear_cache(self, resolver):
        resolver.resolve("testing.make-it-pass")
        resolver.clear_cache()
        resolver.resolve("testing.make-it-pass")
        assert resolver.metrics().cache_hits == 0

    def test_empty_metrics(self, library):
        metrics = ConstraintResolver(library).metrics()
        assert metrics.total_resolutions == 0
        assert metrics.cache_hit_rate == 0.0


class TestComponents:

    def test_direct_references_in_order(self, resolver, library):
        composite = library.get_constraint("quality.refactoring-levels").constraint
        result = resolver.resolve_references(composite)
        assert result.success
        assert [c.id for c in result.components] == [f"quality.level-{i}" for i in range(1, 7)]

    def test_missing_reference_fails(self, resolver):
        result = resolver.resolve_references(_composite("c.x", ["testing.make-it-pass", "ghost.id"]))
        assert not result.success
        assert result.error.constraint_id == "ghost.id"

    def test_flatten_nested(self, library):
        nested = library.clone()
        nested.add_composite(_composite("c.both", ["methodology.tdd", "testing.acceptance-test"]))
        resolver = ConstraintResolver(nested)
        result = resolver.resolve_components(nested.get_constraint("c.both").constraint)
        assert result.success
        assert [c.id for c in result.components] == [
            "testing.write-test-first",
            "testing.make-it-pass",
            "testing.refactor-safely",
            "testing.acceptance-test",
        ]

    def test_cycle_reported_not_recursed(self):
        store = CyclicLibrary()
        resolver = ConstraintResolver(store)
        result = resolver.resolve_components(store.constraints["c.one"])
        assert not result.success
        assert result.error.kind == ErrorKind.CIRCULAR_REFERENCE
        assert "c.one -> c.two -> c.one" in result.error.message
