"""
TRELLIS CONSTRAINT LIBRARY - The Aggregate Root

Owns every AtomicConstraint and CompositeConstraint for a process session.
Populated once at load time through add_atomic/add_composite, then frozen;
after freeze() the library is read-only and may be shared across sessions
without locking.

Architecture (The Bridge Pattern):
  Python Layer (Business Logic)
  - Uses constraint ids: "testing.write-test-first"

  Bridge Layer (This File)
  - _node_map: Dict[str, int]  (id -> index)
  - _inv_map: Dict[int, str]   (index -> id)

  Rust Layer (rustworkx.PyDiGraph)
  - Edges run composite -> component
  - Reverse lookups and transitive dependents via predecessors/ancestors
"""
import logging
from typing import Dict, List, Optional, Tuple

import msgspec
import rustworkx as rx

from core.schemas import (
    AtomicConstraint,
    CompositeConstraint,
    Constraint,
    ConstraintId,
)
from core.results import (
    ConstraintError,
    LibraryFrozenError,
    LibraryResult,
    LoadResult,
    LookupResult,
)
from core.graph_invariants import GraphInvariants, InvariantReport

logger = logging.getLogger("trellis.library")


class LibraryStatistics(msgspec.Struct, kw_only=True, frozen=True):
    """Summary counts for a constraint library."""
    total_constraints: int
    atomic_count: int
    composite_count: int
    average_priority: float
    reference_count: int


class ConstraintLibrary:
    """
    Id-keyed store of constraint definitions.

    Lookups never return None for a missing id: get_constraint returns a
    failed LookupResult carrying a NOT_FOUND error.
    """

    def __init__(self, version: str = "1.0.0", description: str = ""):
        self.version = version
        self.description = description
        self._atomics: Dict[str, AtomicConstraint] = {}
        self._composites: Dict[str, CompositeConstraint] = {}
        self._order: List[str] = []
        self._graph = rx.PyDiGraph()
        self._node_map: Dict[str, int] = {}
        self._inv_map: Dict[int, str] = {}
        self._frozen = False

    # =========================================================================
    # LOAD-TIME MUTATION
    # =========================================================================

    def add_atomic(self, constraint: AtomicConstraint) -> LibraryResult:
        """Add a leaf constraint. Duplicate ids are rejected."""
        self._check_writable(constraint.id)
        if constraint.id in self:
            return self._duplicate(constraint.id)

        self._atomics[constraint.id] = constraint
        self._register(constraint.id)
        logger.debug("Added atomic constraint %s", constraint.id)
        return LibraryResult(success=True, constraint_id=constraint.id)

    def add_composite(self, constraint: CompositeConstraint) -> LibraryResult:
        """
        Add a composite after validating its references.

        Every referenced id must already be in the library, the composite may
        not list itself, and no referenced constraint may reach the
        composite's id through existing edges.
        """
        self._check_writable(constraint.id)
        if constraint.id in self:
            return self._duplicate(constraint.id)

        for ref in constraint.references:
            if ref.constraint_id == constraint.id:
                return LibraryResult(
                    success=False,
                    constraint_id=constraint.id,
                    error=ConstraintError.circular_reference(
                        f"Composite {constraint.id} references itself", constraint.id
                    ),
                )
            if ref.constraint_id not in self:
                error = ConstraintError.not_found(ref.constraint_id)
                return LibraryResult(
                    success=False,
                    constraint_id=constraint.id,
                    error=ConstraintError(
                        kind=error.kind,
                        message=f"Composite {constraint.id} references unknown constraint {ref.constraint_id}",
                        constraint_id=ref.constraint_id,
                    ),
                )
            if constraint.id in self.get_descendants(ref.constraint_id):
                return LibraryResult(
                    success=False,
                    constraint_id=constraint.id,
                    error=ConstraintError.circular_reference(
                        f"Composite {constraint.id} would reach itself through {ref.constraint_id}",
                        constraint.id,
                    ),
                )

        self._composites[constraint.id] = constraint
        source = self._register(constraint.id)
        self._graph.add_edges_from([
            (source, self._node_map[ref.constraint_id], None) for ref in constraint.references
        ])
        logger.debug(
            "Added %s composite %s with %d references",
            constraint.composition_type.value, constraint.id, len(constraint.references),
        )
        return LibraryResult(success=True, constraint_id=constraint.id)

    def add(self, constraint: Constraint) -> LibraryResult:
        if isinstance(constraint, CompositeConstraint):
            return self.add_composite(constraint)
        return self.add_atomic(constraint)

    def freeze(self) -> "ConstraintLibrary":
        """Make the library read-only. Returns self for chaining."""
        self._frozen = True
        logger.info(
            "Constraint library %s frozen: %d atomic, %d composite",
            self.version, len(self._atomics), len(self._composites),
        )
        return self

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def _check_writable(self, constraint_id: str) -> None:
        if self._frozen:
            raise LibraryFrozenError(constraint_id)

    def _duplicate(self, constraint_id: str) -> LibraryResult:
        return LibraryResult(
            success=False,
            constraint_id=constraint_id,
            error=ConstraintError.validation(f"Duplicate constraint id: {constraint_id}", constraint_id),
        )

    def _register(self, constraint_id: str) -> int:
        idx = self._graph.add_node(constraint_id)
        self._node_map[constraint_id] = idx
        self._inv_map[idx] = constraint_id
        self._order.append(constraint_id)
        return idx

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def __contains__(self, constraint_id: object) -> bool:
        return constraint_id in self._atomics or constraint_id in self._composites

    def __len__(self) -> int:
        return len(self._order)

    def contains(self, constraint_id: ConstraintId) -> bool:
        return constraint_id in self

    def get_constraint(self, constraint_id: ConstraintId) -> LookupResult:
        constraint = self.try_get_constraint(constraint_id)
        if constraint is None:
            return LookupResult(success=False, error=ConstraintError.not_found(constraint_id))
        return LookupResult(success=True, constraint=constraint)

    def try_get_constraint(self, constraint_id: ConstraintId) -> Optional[Constraint]:
        return self._atomics.get(constraint_id) or self._composites.get(constraint_id)

    @property
    def constraint_ids(self) -> Tuple[ConstraintId, ...]:
        return tuple(self._order)

    @property
    def atomic_constraints(self) -> Tuple[AtomicConstraint, ...]:
        return tuple(self._atomics[cid] for cid in self._order if cid in self._atomics)

    @property
    def composite_constraints(self) -> Tuple[CompositeConstraint, ...]:
        return tuple(self._composites[cid] for cid in self._order if cid in self._composites)

    @property
    def all_constraints(self) -> Tuple[Constraint, ...]:
        return tuple(self.try_get_constraint(cid) for cid in self._order)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_constraints_by_priority(self, min_priority: float, max_priority: float) -> Tuple[Constraint, ...]:
        """Constraints with min <= priority <= max, highest priority first."""
        if min_priority > max_priority:
            raise ValueError(f"min_priority {min_priority} exceeds max_priority {max_priority}")
        matches = [c for c in self.all_constraints if min_priority <= c.priority <= max_priority]
        return tuple(sorted(matches, key=lambda c: (-c.priority, c.id)))

    def get_constraints_by_keyword(self, keyword: str) -> Tuple[Constraint, ...]:
        """Constraints with a trigger keyword containing `keyword`, case-insensitive."""
        needle = keyword.strip().lower()
        if not needle:
            raise ValueError("keyword must be non-empty")
        matches = [
            c for c in self.all_constraints
            if any(needle in kw.lower() for kw in c.triggers.keywords)
        ]
        return tuple(sorted(matches, key=lambda c: (-c.priority, c.id)))

    def get_references_to_constraint(self, constraint_id: ConstraintId) -> Tuple[ConstraintId, ...]:
        """Composites that list constraint_id directly, in load order."""
        idx = self._node_map.get(constraint_id)
        if idx is None:
            return ()
        referrers = {self._inv_map[p] for p in self._graph.predecessor_indices(idx)}
        return tuple(cid for cid in self._order if cid in referrers)

    def get_dependents(self, constraint_id: ConstraintId) -> Tuple[ConstraintId, ...]:
        """Composites that reach constraint_id directly or transitively."""
        idx = self._node_map.get(constraint_id)
        if idx is None:
            return ()
        ancestors = {self._inv_map[a] for a in rx.ancestors(self._graph, idx)}
        return tuple(cid for cid in self._order if cid in ancestors)

    def get_descendants(self, constraint_id: ConstraintId) -> Tuple[ConstraintId, ...]:
        """Every constraint reachable from constraint_id through references."""
        idx = self._node_map.get(constraint_id)
        if idx is None:
            return ()
        descendants = {self._inv_map[d] for d in rx.descendants(self._graph, idx)}
        return tuple(cid for cid in self._order if cid in descendants)

    def references_map(self) -> Dict[ConstraintId, Tuple[ConstraintId, ...]]:
        return {cid: c.component_ids for cid, c in self._composites.items()}

    # =========================================================================
    # VALIDATION AND STATISTICS
    # =========================================================================

    def validate(self) -> InvariantReport:
        """Re-check referential integrity and acyclicity over the whole library."""
        return GraphInvariants.validate_all(self.references_map(), self._order)

    def statistics(self) -> LibraryStatistics:
        constraints = self.all_constraints
        total = len(constraints)
        return LibraryStatistics(
            total_constraints=total,
            atomic_count=len(self._atomics),
            composite_count=len(self._composites),
            average_priority=(sum(c.priority for c in constraints) / total) if total else 0.0,
            reference_count=self._graph.num_edges(),
        )

    # =========================================================================
    # COPYING
    # =========================================================================

    def clone(self) -> "ConstraintLibrary":
        """Unfrozen copy with the same constraints."""
        copy = ConstraintLibrary(version=self.version, description=self.description)
        for constraint in self.atomic_constraints:
            copy.add_atomic(constraint)
        for constraint in self.composite_constraints:
            copy.add_composite(constraint)
        return copy

    def merge_with(self, other: "ConstraintLibrary") -> LoadResult:
        """
        Build a new library holding both constraint sets.

        Neither input is modified. Any id present in both fails the merge.
        """
        merged = self.clone()
        errors: List[ConstraintError] = []
        for constraint in other.atomic_constraints + other.composite_constraints:
            result = merged.add(constraint)
            if not result.success:
                errors.append(result.error)
        if errors:
            logger.warning("Library merge failed with %d errors", len(errors))
            return LoadResult(success=False, errors=tuple(errors))
        return LoadResult(success=True, library=merged)
