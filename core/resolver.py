"""
Constraint resolver: ConstraintId -> live constraint object.

Composites store ids, not objects. The resolver materializes them against a
ConstraintLibrary, caches successful lookups and keeps timing metrics.
Resolution of nested composites tracks the current chain so that a cycle
slipped in past load-time validation is reported instead of recursing.
"""
import logging
import threading
import time
from typing import Dict, List, Optional

import msgspec

from core.library import ConstraintLibrary
from core.schemas import CompositeConstraint, Constraint, ConstraintId
from core.results import ComponentsResult, ConstraintError, LookupResult

logger = logging.getLogger("trellis.resolver")


class ResolutionMetrics(msgspec.Struct, kw_only=True, frozen=True):
    total_resolutions: int
    cache_hits: int
    cache_hit_rate: float
    average_resolution_ms: float
    peak_resolution_ms: float


class ConstraintResolver:
    """Resolves constraint ids through a library. Safe to share across threads."""

    def __init__(self, library: ConstraintLibrary, enable_cache: bool = True):
        self.library = library
        self.enable_cache = enable_cache
        self._cache: Dict[ConstraintId, Constraint] = {}
        self._lock = threading.Lock()
        self._total = 0
        self._hits = 0
        self._elapsed_ms = 0.0
        self._peak_ms = 0.0

    def resolve(self, constraint_id: ConstraintId) -> LookupResult:
        """Exact lookup. A missing id yields a NOT_FOUND failure, never None."""
        start = time.perf_counter()
        with self._lock:
            cached = self._cache.get(constraint_id) if self.enable_cache else None
        if cached is not None:
            self._record(start, hit=True)
            return LookupResult(success=True, constraint=cached)

        result = self.library.get_constraint(constraint_id)
        if result.success and self.enable_cache:
            with self._lock:
                self._cache[constraint_id] = result.constraint
        self._record(start, hit=False)
        return result

    def resolve_references(self, composite: CompositeConstraint) -> ComponentsResult:
        """Resolve a composite's direct components, in declared order."""
        components: List[Constraint] = []
        for ref in composite.references:
            result = self.resolve(ref.constraint_id)
            if not result.success:
                logger.warning("Composite %s: %s", composite.id, result.error.message)
                return ComponentsResult(success=False, error=result.error)
            components.append(result.constraint)
        return ComponentsResult(success=True, components=tuple(components))

    def resolve_components(self, composite: CompositeConstraint) -> ComponentsResult:
        """Flatten a composite into its atomic leaves, depth first, in declared order."""
        leaves: List[Constraint] = []
        error = self._flatten(composite, [composite.id], leaves)
        if error is not None:
            return ComponentsResult(success=False, error=error)
        return ComponentsResult(success=True, components=tuple(leaves))

    def _flatten(
        self,
        composite: CompositeConstraint,
        chain: List[ConstraintId],
        leaves: List[Constraint],
    ) -> Optional[ConstraintError]:
        for ref in composite.references:
            if ref.constraint_id in chain:
                return ConstraintError.circular_reference(
                    "Circular reference: " + " -> ".join(chain + [ref.constraint_id]),
                    ref.constraint_id,
                )
            result = self.resolve(ref.constraint_id)
            if not result.success:
                return result.error
            component = result.constraint
            if isinstance(component, CompositeConstraint):
                error = self._flatten(component, chain + [component.id], leaves)
                if error is not None:
                    return error
            elif component not in leaves:
                leaves.append(component)
        return None

    def _record(self, start: float, hit: bool) -> None:
        elapsed = (time.perf_counter() - start) * 1000
        with self._lock:
            self._total += 1
            if hit:
                self._hits += 1
            self._elapsed_ms += elapsed
            self._peak_ms = max(self._peak_ms, elapsed)

    def metrics(self) -> ResolutionMetrics:
        with self._lock:
            total = self._total
            return ResolutionMetrics(
                total_resolutions=total,
                cache_hits=self._hits,
                cache_hit_rate=(self._hits / total) if total else 0.0,
                average_resolution_ms=(self._elapsed_ms / total) if total else 0.0,
                peak_resolution_ms=self._peak_ms,
            )

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
