"""
TRELLIS PACK BUILDER - Declarative constraint pack -> ConstraintLibrary

The configuration collaborator (YAML/JSON loading, schema files) lives
outside this package. It hands us plain dicts shaped like:

    {
      "version": "1.0.0",
      "constraints": [
        {"id": "testing.write-test-first", "title": "...", "priority": 0.9,
         "triggers": {"keywords": [...], "contexts": [...], "file_patterns": [...],
                      "anti_patterns": [...], "confidence_threshold": 0.7},
         "reminders": [...]},
        {"id": "methodology.tdd", "title": "...", "priority": 0.95,
         "composition": {"type": "sequential", "sequence": [...]}}
      ]
    }

Composition blocks:
    sequence:  [id | {id, completion}]                      order = position
    hierarchy: [{id, level, completion, gate}]
    levels:    [id | {id, level, description, guidance}]     + max_level, barrier_levels, barrier_guidance
    layers:    [id | {id, name, patterns}]                   innermost first, + required_completions

Composites are added in dependency order (rustworkx topological sort), so a
pack may reference composites declared later. A reference cycle fails the
whole load.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import msgspec
import rustworkx as rx

from core.graph_invariants import GraphInvariants, build_reference_graph
from core.library import ConstraintLibrary
from core.ontology import CompositionType
from core.results import ConstraintError, LoadResult
from core.schemas import (
    AtomicConstraint,
    CompositeConstraint,
    CompositionOptions,
    ConstraintReference,
    TriggerConfiguration,
)

logger = logging.getLogger("trellis.library")

_BUILD_ERRORS = (ValueError, TypeError, KeyError, msgspec.ValidationError)

_ENTRY_KEYS = {"id", "level", "completion", "gate", "name", "patterns", "description", "guidance", "metadata"}


# =============================================================================
# CONVERSION
# =============================================================================

def convert_triggers(raw: Optional[Mapping[str, Any]]) -> TriggerConfiguration:
    raw = raw or {}
    return msgspec.convert(
        {
            "keywords": raw.get("keywords", []),
            "context_patterns": raw.get("contexts", raw.get("context_patterns", [])),
            "file_patterns": raw.get("file_patterns", []),
            "anti_patterns": raw.get("anti_patterns", []),
            "confidence_threshold": raw.get("confidence_threshold"),
        },
        TriggerConfiguration,
    )


def convert_atomic(raw: Mapping[str, Any]) -> AtomicConstraint:
    return AtomicConstraint(
        id=raw["id"],
        title=raw["title"],
        priority=float(raw["priority"]),
        triggers=convert_triggers(raw.get("triggers")),
        reminders=tuple(raw.get("reminders", ())),
    )


def _entry(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, str):
        return {"id": raw}
    if not isinstance(raw, Mapping) or "id" not in raw:
        raise ValueError(f"Composition entry must be an id or a mapping with 'id', got {raw!r}")
    unknown = set(raw) - _ENTRY_KEYS
    if unknown:
        raise ValueError(f"Unknown composition entry keys for {raw['id']}: {sorted(unknown)}")
    return dict(raw)


def _metadata(entry: Mapping[str, Any], *keys: str) -> Dict[str, Any]:
    metadata = dict(entry.get("metadata", {}))
    for key in keys:
        if key in entry:
            metadata[key] = entry[key]
    return metadata


def convert_references(composition: Mapping[str, Any]) -> Tuple[ConstraintReference, ...]:
    """Turn a composition block into ordered references."""
    composition_type = CompositionType(composition["type"])

    if "references" in composition:
        return msgspec.convert(composition["references"], Tuple[ConstraintReference, ...])

    if composition_type == CompositionType.SEQUENTIAL:
        return tuple(
            ConstraintReference(
                constraint_id=e["id"], sequence_order=i, metadata=_metadata(e, "completion"),
            )
            for i, e in enumerate(_entry(r) for r in composition["sequence"])
        )

    if composition_type == CompositionType.HIERARCHICAL:
        return tuple(
            ConstraintReference(
                constraint_id=e["id"],
                hierarchy_level=int(e.get("level", i)),
                metadata=_metadata(e, "completion", "gate"),
            )
            for i, e in enumerate(_entry(r) for r in composition["hierarchy"])
        )

    if composition_type == CompositionType.PROGRESSIVE:
        return tuple(
            ConstraintReference(
                constraint_id=e["id"],
                sequence_order=int(e.get("level", i + 1)) - 1,
                metadata=_metadata(e, "level", "description", "guidance", "completion"),
            )
            for i, e in enumerate(_entry(r) for r in composition["levels"])
        )

    if composition_type == CompositionType.LAYERED:
        refs = []
        for i, e in enumerate(_entry(r) for r in composition["layers"]):
            metadata = _metadata(e, "patterns", "completion")
            if "name" in e:
                metadata["layer"] = e["name"]
            refs.append(ConstraintReference(constraint_id=e["id"], hierarchy_level=i, metadata=metadata))
        return tuple(refs)

    # Parallel and friends: a flat component list
    return tuple(
        ConstraintReference(constraint_id=e["id"], metadata=_metadata(e, "completion"))
        for e in (_entry(r) for r in composition.get("components", ()))
    )


def convert_options(composition: Mapping[str, Any]) -> CompositionOptions:
    guidance = composition.get("barrier_guidance", {})
    barrier_levels = composition.get("barrier_levels")
    return CompositionOptions(
        max_level=composition.get("max_level"),
        barrier_levels=tuple(int(l) for l in barrier_levels) if barrier_levels is not None else None,
        barrier_guidance={int(level): tuple(lines) for level, lines in guidance.items()},
        required_layer_completions=int(composition.get("required_completions", 1)),
    )


def convert_composite(raw: Mapping[str, Any]) -> CompositeConstraint:
    composition = raw["composition"]
    return CompositeConstraint(
        id=raw["id"],
        title=raw["title"],
        priority=float(raw["priority"]),
        composition_type=CompositionType(composition["type"]),
        references=convert_references(composition),
        triggers=convert_triggers(raw.get("triggers")),
        reminders=tuple(raw.get("reminders", ())),
        options=convert_options(composition),
    )


# =============================================================================
# BUILD
# =============================================================================

def build_library(pack: Mapping[str, Any], freeze: bool = True) -> LoadResult:
    """
    Build a ConstraintLibrary from a declarative pack.

    Every problem found is reported; any problem fails the load. A reference
    cycle is reported as CIRCULAR_REFERENCE.
    """
    library = ConstraintLibrary(
        version=str(pack.get("version", "1.0.0")),
        description=str(pack.get("description", "")),
    )
    errors: List[ConstraintError] = []
    atomics: List[AtomicConstraint] = []
    composites: Dict[str, CompositeConstraint] = {}

    for raw in pack.get("constraints", ()):
        constraint_id = raw.get("id") if isinstance(raw, Mapping) else None
        try:
            if "composition" in raw:
                composite = convert_composite(raw)
                if composite.id in composites:
                    errors.append(ConstraintError.validation(
                        f"Duplicate constraint id: {composite.id}", composite.id,
                    ))
                    continue
                composites[composite.id] = composite
            else:
                atomics.append(convert_atomic(raw))
        except _BUILD_ERRORS as e:
            errors.append(ConstraintError.validation(
                f"Invalid constraint {constraint_id or '<unnamed>'}: {e}", constraint_id,
            ))

    for atomic in atomics:
        result = library.add_atomic(atomic)
        if not result.success:
            errors.append(result.error)

    graph, _ = build_reference_graph({cid: c.component_ids for cid, c in composites.items()})
    acyclic, violation = GraphInvariants.validate_dag_acyclicity(graph)
    if not acyclic:
        logger.error("Constraint pack rejected: %s", violation.message)
        errors.append(ConstraintError.circular_reference(
            violation.message, violation.constraints_involved[0] if violation.constraints_involved else None,
        ))
        return LoadResult(success=False, errors=tuple(errors))

    # Edges run composite -> component, so components come later in topological order
    for node in reversed(rx.topological_sort(graph)):
        composite = composites.get(graph[node])
        if composite is None:
            continue
        result = library.add_composite(composite)
        if not result.success:
            errors.append(result.error)

    if errors:
        logger.warning("Constraint pack rejected with %d errors", len(errors))
        return LoadResult(success=False, errors=tuple(errors))

    if freeze:
        library.freeze()
    logger.info("Loaded constraint pack %s: %d constraints", library.version, len(library))
    return LoadResult(success=True, library=library)
