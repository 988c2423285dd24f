"""
TRELLIS GRAPH INVARIANTS - The Reference Graph Physics

Composites reference components by id. Those ids form a directed graph
(composite -> component). This module enforces the physics of that graph
before a constraint set is accepted.

Invariants Implemented:
1. Referential Integrity: Every referenced id exists in the library
2. No Self Reference: A composite never lists its own id
3. DAG Acyclicity: No composite reaches itself through other composites

Design Philosophy:
- These are MATHEMATICAL constraints, not business rules
- Violations are errors, not warnings
- Checks are O(V+E) using rustworkx primitives
"""
import rustworkx as rx
from typing import List, Tuple, Dict, Any, Optional, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum


# =============================================================================
# INVARIANT RESULTS
# =============================================================================

class InvariantSeverity(Enum):
    """Severity levels for invariant violations."""
    ERROR = "error"      # Constraint set must not be loaded
    WARNING = "warning"  # Should be investigated


@dataclass
class InvariantViolation:
    """A specific invariant violation."""
    invariant: str           # Name of the invariant
    severity: InvariantSeverity
    message: str
    constraints_involved: List[str] = None

    def __post_init__(self):
        if self.constraints_involved is None:
            self.constraints_involved = []


@dataclass
class InvariantReport:
    """Complete invariant validation report."""
    valid: bool
    violations: List[InvariantViolation]
    metrics: Dict[str, Any]

    @property
    def errors(self) -> List[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.ERROR]

    @property
    def warnings(self) -> List[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.WARNING]

    def involves(self, constraint_id: str) -> bool:
        return any(constraint_id in v.constraints_involved for v in self.violations)


# =============================================================================
# GRAPH CONSTRUCTION
# =============================================================================

def build_reference_graph(
    references: Mapping[str, Iterable[str]],
    known_ids: Iterable[str] = (),
) -> Tuple[rx.PyDiGraph, Dict[str, int]]:
    """
    Build a composite -> component graph.

    Args:
        references: composite id -> referenced ids
        known_ids: additional ids (atomics) to include as nodes

    Returns:
        (graph, id -> node index map). Node payloads are the ids.
    """
    graph = rx.PyDiGraph()
    index: Dict[str, int] = {}

    def node(constraint_id: str) -> int:
        if constraint_id not in index:
            index[constraint_id] = graph.add_node(constraint_id)
        return index[constraint_id]

    for constraint_id in known_ids:
        node(constraint_id)
    for composite_id, targets in references.items():
        source = node(composite_id)
        for target in targets:
            graph.add_edge(source, node(target), None)
    return graph, index


# =============================================================================
# GRAPH INVARIANTS (Rustworkx-Native)
# =============================================================================

class GraphInvariants:
    """
    Invariant validators for the constraint reference graph.

    All methods are static. The ConstraintLibrary and the pack builder wrap
    these for constraint-friendly access.
    """

    @staticmethod
    def validate_dag_acyclicity(graph: rx.PyDiGraph) -> Tuple[bool, Optional[InvariantViolation]]:
        """
        DAG Topological Invariant: The reference graph must be acyclic.

        Uses rustworkx's is_directed_acyclic_graph for O(V+E) check.

        Returns:
            (is_valid, violation or None)
        """
        if rx.is_directed_acyclic_graph(graph):
            return True, None

        cycle = GraphInvariants.find_cycle(graph)
        return False, InvariantViolation(
            invariant="dag_acyclicity",
            severity=InvariantSeverity.ERROR,
            message="Circular reference: " + " -> ".join(cycle),
            constraints_involved=cycle,
        )

    @staticmethod
    def find_cycle(graph: rx.PyDiGraph) -> List[str]:
        """Return one cycle as an id path that starts and ends on the same id."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {idx: WHITE for idx in graph.node_indices()}
        path: List[int] = []

        def dfs(node) -> Optional[List[int]]:
            color[node] = GRAY
            path.append(node)
            for succ in graph.successor_indices(node):
                if color[succ] == GRAY:
                    start = path.index(succ)
                    return path[start:] + [succ]
                if color[succ] == WHITE:
                    found = dfs(succ)
                    if found:
                        return found
            path.pop()
            color[node] = BLACK
            return None

        for idx in graph.node_indices():
            if color[idx] == WHITE:
                found = dfs(idx)
                if found:
                    return [graph[i] for i in found]
        return []

    @staticmethod
    def validate_no_self_reference(
        references: Mapping[str, Iterable[str]],
    ) -> Tuple[bool, Optional[InvariantViolation]]:
        """A composite must not list its own id among its components."""
        offenders = [cid for cid, targets in references.items() if cid in set(targets)]
        if not offenders:
            return True, None
        return False, InvariantViolation(
            invariant="no_self_reference",
            severity=InvariantSeverity.ERROR,
            message=f"Composite references itself: {', '.join(sorted(offenders))}",
            constraints_involved=sorted(offenders),
        )

    @staticmethod
    def validate_referential_integrity(
        references: Mapping[str, Iterable[str]],
        known_ids: Iterable[str],
    ) -> Tuple[bool, List[InvariantViolation]]:
        """Every referenced id must name a constraint that exists."""
        known = set(known_ids)
        violations = []
        for composite_id, targets in references.items():
            missing = [t for t in targets if t not in known]
            if missing:
                violations.append(InvariantViolation(
                    invariant="referential_integrity",
                    severity=InvariantSeverity.ERROR,
                    message=f"Composite {composite_id} references unknown constraints: {', '.join(missing)}",
                    constraints_involved=[composite_id] + missing,
                ))
        return not violations, violations

    @staticmethod
    def validate_all(
        references: Mapping[str, Iterable[str]],
        known_ids: Iterable[str],
    ) -> InvariantReport:
        """
        Run all invariant checks and return a complete report.

        Args:
            references: composite id -> referenced ids
            known_ids: every id in the constraint set (atomic and composite)
        """
        known = list(known_ids)
        references = {cid: list(targets) for cid, targets in references.items()}
        violations: List[InvariantViolation] = []

        _, integrity = GraphInvariants.validate_referential_integrity(references, known)
        violations.extend(integrity)

        valid, violation = GraphInvariants.validate_no_self_reference(references)
        if not valid:
            violations.append(violation)

        graph, _ = build_reference_graph(references, known)
        valid, violation = GraphInvariants.validate_dag_acyclicity(graph)
        if not valid:
            violations.append(violation)

        metrics = {
            "node_count": graph.num_nodes(),
            "edge_count": graph.num_edges(),
            "composite_count": len(references),
        }
        return InvariantReport(
            valid=not any(v.severity == InvariantSeverity.ERROR for v in violations),
            violations=violations,
            metrics=metrics,
        )
