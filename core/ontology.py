"""
TRELLIS ONTOLOGY - The Dictionary of the System

If schemas.py is the Grammar (how we structure constraints and contexts),
ontology.py is the Dictionary (the words we can use).

This module defines:
- Enums: The vocabulary (CompositionType, ActivationReason, ErrorKind, ContextType)
- Keyword vocabularies used by the context classifier
- Default progressive barrier guidance

Key Principle: Methodology is DATA, not code.
No enum here names a workflow phase ("red", "green", "refactor"). Workflow
position is a user-defined (category, value) pair supplied by configuration;
the engine only knows the SHAPES a composition can take.
"""
from typing import Dict, FrozenSet, Tuple
from enum import Enum


# =============================================================================
# ENUMS (The Vocabulary)
# =============================================================================

class CompositionType(str, Enum):
    """Structural pattern governing how a composite orders its components."""
    SEQUENTIAL = "sequential"        # Steps in strict order, one at a time
    HIERARCHICAL = "hierarchical"    # Level 0 gates the inner levels
    PROGRESSIVE = "progressive"      # Numbered levels, no skipping
    LAYERED = "layered"              # Architectural layers, inward dependencies
    PARALLEL = "parallel"            # Declared only; no strategy implements it


class ActivationReason(str, Enum):
    """Why a constraint was activated."""
    KEYWORD_MATCH = "keyword_match"
    FILE_PATTERN_MATCH = "file_pattern_match"
    CONTEXT_PATTERN_MATCH = "context_pattern_match"
    COMBINED_FACTORS = "combined_factors"
    WORKFLOW_PROGRESSION = "workflow_progression"
    HIERARCHY_GATE = "hierarchy_gate"
    PROGRESSIVE_LEVEL = "progressive_level"
    LAYER_ORDER = "layer_order"
    SCHEDULED_FALLBACK = "scheduled_fallback"
    UNKNOWN = "unknown"

    @property
    def description(self) -> str:
        return _REASON_DESCRIPTIONS[self]

    @property
    def is_high_confidence(self) -> bool:
        """Reasons backed by direct lexical or workflow evidence."""
        return self in (
            ActivationReason.KEYWORD_MATCH,
            ActivationReason.COMBINED_FACTORS,
            ActivationReason.WORKFLOW_PROGRESSION,
        )


_REASON_DESCRIPTIONS: Dict[ActivationReason, str] = {
    ActivationReason.KEYWORD_MATCH: "Activated by keyword match in the tool call",
    ActivationReason.FILE_PATTERN_MATCH: "Activated by file pattern match",
    ActivationReason.CONTEXT_PATTERN_MATCH: "Activated by context type match",
    ActivationReason.COMBINED_FACTORS: "Activated by multiple matching factors",
    ActivationReason.WORKFLOW_PROGRESSION: "Next step in a sequential workflow",
    ActivationReason.HIERARCHY_GATE: "Active level of a hierarchical composition",
    ActivationReason.PROGRESSIVE_LEVEL: "Current level of a progressive composition",
    ActivationReason.LAYER_ORDER: "Least complete layer of a layered composition",
    ActivationReason.SCHEDULED_FALLBACK: "Injected by the fixed-cadence fallback",
    ActivationReason.UNKNOWN: "Unknown activation reason",
}


class ErrorKind(str, Enum):
    """Kinds of domain-expected failures. Returned as values, never raised."""
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    CIRCULAR_REFERENCE = "circular_reference"
    UNSUPPORTED_COMPOSITION_TYPE = "unsupported_composition_type"
    VALIDATION_ERROR = "validation_error"


class ContextType(str, Enum):
    """Classification produced by the context analyzer."""
    TESTING = "testing"
    REFACTORING = "refactoring"
    FEATURE_DEVELOPMENT = "feature_development"
    UNCLEAR = "unclear"


# =============================================================================
# KEYWORD VOCABULARIES
# =============================================================================

STOP_WORDS: FrozenSet[str] = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
    "has", "he", "in", "is", "it", "its", "of", "on", "that", "the",
    "to", "was", "were", "will", "with", "i", "need", "want", "would",
    "could", "should", "can", "may", "might", "must", "shall", "do",
    "does", "did", "have", "had", "this", "these", "those", "they",
    "them", "their", "there", "then", "than", "but", "or", "so", "if",
})

TESTING_KEYWORDS: FrozenSet[str] = frozenset({
    "test", "tests", "testing", "unittest", "spec", "tdd", "assert", "failing",
})

REFACTORING_KEYWORDS: FrozenSet[str] = frozenset({
    "refactor", "refactoring", "cleanup", "clean", "restructure",
    "simplify", "rename", "extract", "improve",
})

FEATURE_KEYWORDS: FrozenSet[str] = frozenset({
    "implement", "implementation", "feature", "develop", "create", "build", "add",
})

TEST_FILE_PATTERNS: Tuple[str, ...] = (
    "*.test.*",
    "*Test.*",
    "*Tests.*",
    "*_test.*",
    "*.spec.*",
    "test_*",
)

# Argument keys that name the file a tool call operates on, in lookup order
FILE_PATH_KEYS: Tuple[str, ...] = (
    "file_path", "filePath", "path", "file", "filename", "target_file",
)

# Hyphenated entries match when all of their words appear in the context
SYNONYM_GROUPS: Tuple[FrozenSet[str], ...] = (
    frozenset({"test", "testing", "unittest", "spec"}),
    frozenset({"tdd", "test-driven"}),
    frozenset({"hexagonal", "clean-architecture", "ports-adapters", "layered"}),
    frozenset({"implement", "implementation", "create", "build", "develop"}),
    frozenset({"refactor", "refactoring", "restructure", "cleanup"}),
)


# =============================================================================
# PROGRESSIVE BARRIER GUIDANCE
# =============================================================================

DEFAULT_BARRIER_LEVELS: Tuple[int, ...] = (3, 5)

DEFAULT_BARRIER_GUIDANCE: Dict[int, Tuple[str, ...]] = {
    3: (
        "Level 3 is a common drop-off point - take your time with class responsibilities",
        "Focus on Single Responsibility Principle and reducing coupling",
        "Consider pair programming or code review for this level",
    ),
    5: (
        "Level 5 patterns require deeper architectural thinking",
        "Start with simple patterns like Strategy or Command",
        "Don't force patterns where they don't naturally fit",
    ),
}

GENERIC_BARRIER_GUIDANCE: Tuple[str, ...] = (
    "This level is a common drop-off point - slow down and ask for support",
)

DEFAULT_LEVEL_DESCRIPTIONS: Dict[int, str] = {
    1: "Readability",
    2: "Complexity",
    3: "Responsibilities",
    4: "Abstractions",
    5: "Patterns",
    6: "SOLID",
}
