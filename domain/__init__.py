# Domain layer - context analysis, trigger matching, composition strategies
"""
TRELLIS DOMAIN LAYER

This module provides:
- ContextAnalyzer: Tool call / user input -> TriggerContext
- KeywordMatcher: Keyword extraction and match weighting
- TriggerMatchingEngine: Ranked activations for a TriggerContext
- Composition strategies: Sequential, Hierarchical, Progressive, Layered
- ActivationStrategyFactory: CompositionType -> strategy

Usage:
    from domain import ContextAnalyzer, TriggerMatchingEngine

    context = ContextAnalyzer().analyze_tool_call("tools/write", {"path": "src/app.py"}, "s1")
    activations = TriggerMatchingEngine(library).evaluate_constraints(context)
"""
from .keyword_matcher import (
    KeywordMatch,
    KeywordMatcher,
    extract_keywords,
    levenshtein_distance,
    similarity,
    tokenize,
)
from .context_analyzer import (
    ContextAnalyzer,
    classify_context,
    is_test_file,
)
from .trigger_matching import (
    ScoreBreakdown,
    TriggerMatchingEngine,
)
from .strategy_base import CompositionStrategy
from .sequential import SequentialStrategy
from .hierarchical import HierarchicalStrategy, validate_hierarchy
from .progressive import ProgressionStep, ProgressiveStrategy
from .layered import Layer, LayeredStrategy
from .strategy_factory import ActivationStrategyFactory, DEFAULT_STRATEGIES

__all__ = [
    "KeywordMatch",
    "KeywordMatcher",
    "extract_keywords",
    "levenshtein_distance",
    "similarity",
    "tokenize",
    "ContextAnalyzer",
    "classify_context",
    "is_test_file",
    "ScoreBreakdown",
    "TriggerMatchingEngine",
    "CompositionStrategy",
    "SequentialStrategy",
    "HierarchicalStrategy",
    "validate_hierarchy",
    "ProgressionStep",
    "ProgressiveStrategy",
    "Layer",
    "LayeredStrategy",
    "ActivationStrategyFactory",
    "DEFAULT_STRATEGIES",
]
