"""
Composition state variants.

One frozen struct per composition type. Strategies never mutate a state:
every transition returns a new value built with msgspec.structs.replace.
"""
from typing import FrozenSet, Tuple, Union

import msgspec


class LayerViolation(msgspec.Struct, kw_only=True, frozen=True):
    """A dependency pointing outward, from an inner layer to an outer one."""
    source: str
    target: str
    source_layer: str
    target_layer: str
    reason: str


class SequentialCompositionState(msgspec.Struct, kw_only=True, frozen=True, tag="sequential"):
    completed: FrozenSet[str] = frozenset()
    position: int = 0


class HierarchicalCompositionState(msgspec.Struct, kw_only=True, frozen=True, tag="hierarchical"):
    """
    gate_open: the level-0 constraint has reported satisfied, inner levels may run.
    completed_levels: inner levels finished in the current cycle.
    gate_passed: the final outer check succeeded, composition is done.
    """
    gate_open: bool = False
    completed_levels: FrozenSet[int] = frozenset()
    cycles: int = 0
    gate_passed: bool = False


class ProgressiveCompositionState(msgspec.Struct, kw_only=True, frozen=True, tag="progressive"):
    current_level: int = 1
    completed_levels: FrozenSet[int] = frozenset()
    barrier_detection: bool = True

    def __post_init__(self):
        if self.current_level < 1:
            raise ValueError(f"current_level must be at least 1, got {self.current_level}")


class LayeredCompositionState(msgspec.Struct, kw_only=True, frozen=True, tag="layered"):
    """layer_completions is indexed by layer order; missing entries count as zero."""
    layer_completions: Tuple[int, ...] = ()
    violations: Tuple[LayerViolation, ...] = ()

    def completions_for(self, index: int) -> int:
        if index < len(self.layer_completions):
            return self.layer_completions[index]
        return 0


CompositionState = Union[
    SequentialCompositionState,
    HierarchicalCompositionState,
    ProgressiveCompositionState,
    LayeredCompositionState,
]
