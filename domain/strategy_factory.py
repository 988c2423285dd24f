"""
Activation strategy factory: CompositionType -> composition strategy.

Pure dispatch. An unsupported type (PARALLEL, or anything not registered)
and a composite whose shape the strategy rejects both come back as failed
StrategyResults rather than exceptions.
"""
import logging
from typing import Dict, Optional, Tuple, Type

from core.ontology import CompositionType
from core.schemas import CompositeConstraint, CompositionContext
from core.results import ConstraintError, StrategyResult
from domain.strategy_base import CompositionStrategy
from domain.sequential import SequentialStrategy
from domain.hierarchical import HierarchicalStrategy
from domain.progressive import ProgressiveStrategy
from domain.layered import LayeredStrategy
from infrastructure.settings import CompositionSettings

logger = logging.getLogger("trellis.composition")

DEFAULT_STRATEGIES: Dict[CompositionType, Type[CompositionStrategy]] = {
    CompositionType.SEQUENTIAL: SequentialStrategy,
    CompositionType.HIERARCHICAL: HierarchicalStrategy,
    CompositionType.PROGRESSIVE: ProgressiveStrategy,
    CompositionType.LAYERED: LayeredStrategy,
}


class ActivationStrategyFactory:
    """Builds the strategy matching a composite's declared composition type."""

    def __init__(
        self,
        settings: Optional[CompositionSettings] = None,
        strategies: Optional[Dict[CompositionType, Type[CompositionStrategy]]] = None,
    ):
        self.settings = settings or CompositionSettings()
        self._strategies = dict(strategies if strategies is not None else DEFAULT_STRATEGIES)

    def supported_types(self) -> Tuple[CompositionType, ...]:
        return tuple(self._strategies)

    def supports(self, composition_type: CompositionType) -> bool:
        return composition_type in self._strategies

    def create_strategy(
        self,
        composite: CompositeConstraint,
        context: Optional[CompositionContext] = None,
    ) -> StrategyResult:
        strategy_cls = self._strategies.get(composite.composition_type)
        if strategy_cls is None:
            logger.warning(
                "No strategy for %s composition (%s)", composite.composition_type.value, composite.id,
            )
            return StrategyResult(success=False, error=ConstraintError.unsupported(
                f"Unsupported composition type '{composite.composition_type.value}' for {composite.id}",
                composite.id,
            ))
        try:
            strategy = strategy_cls(composite, self.settings)
        except ValueError as e:
            return StrategyResult(success=False, error=ConstraintError.validation(str(e), composite.id))
        return StrategyResult(success=True, strategy=strategy)
