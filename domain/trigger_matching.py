"""
TRELLIS TRIGGER MATCHING ENGINE

Scores every constraint in the library against a TriggerContext and returns
ranked activations.

Scoring:
1. Anti-patterns first. Any declared anti-pattern present in the context
   excludes the constraint outright (score 0), whatever else matches.
2. Factors, each in [0, 1], for the parts of the trigger that are configured:
   keyword overlap, file glob match, context-type match.
3. Weighted mean over the configured factors only, so a keyword-only trigger
   with full overlap scores 1.0.
4. Keyword boosts from settings, then clamp to [0, 1].

A constraint activates when its score is positive and reaches its own
threshold (or the default threshold when it declares none). The work is
O(constraints) string and set operations; nothing here performs I/O.
"""
import fnmatch
import logging
import time
from typing import Dict, List, Optional, Tuple

import msgspec

from core.library import ConstraintLibrary
from core.ontology import ActivationReason
from core.schemas import Constraint, ConstraintActivation, TriggerContext
from domain.context_analyzer import basename
from domain.keyword_matcher import KeywordMatcher
from infrastructure.settings import MatchingSettings

logger = logging.getLogger("trellis.matching")


class ScoreBreakdown(msgspec.Struct, kw_only=True, frozen=True):
    """Per-constraint scoring detail, useful for tracing why something fired."""
    constraint_id: str
    score: float
    excluded: bool = False
    excluded_by: Optional[str] = None
    factors: Dict[str, float] = msgspec.field(default_factory=dict)
    threshold: float = 0.0

    @property
    def activated(self) -> bool:
        return not self.excluded and self.score > 0.0 and self.score >= self.threshold

    @property
    def reason(self) -> ActivationReason:
        contributing = [name for name, value in self.factors.items() if value > 0.0]
        if len(contributing) > 1:
            return ActivationReason.COMBINED_FACTORS
        if not contributing:
            return ActivationReason.UNKNOWN
        return {
            "keyword": ActivationReason.KEYWORD_MATCH,
            "file_pattern": ActivationReason.FILE_PATTERN_MATCH,
            "context_pattern": ActivationReason.CONTEXT_PATTERN_MATCH,
        }[contributing[0]]


def find_anti_pattern(anti_patterns: Tuple[str, ...], context: TriggerContext) -> Optional[str]:
    """Return the first anti-pattern present in the context, if any."""
    context_type = context.context_type.lower()
    for anti in anti_patterns:
        needle = anti.lower().strip()
        if not needle:
            continue
        if needle in context_type or any(needle in kw for kw in context.keywords):
            return anti
    return None


def matches_file_pattern(patterns: Tuple[str, ...], file_path: Optional[str]) -> bool:
    """Case-insensitive glob match against the full path or its basename."""
    if not file_path:
        return False
    path = file_path.lower()
    name = basename(path)
    for pattern in patterns:
        pat = pattern.lower()
        if fnmatch.fnmatchcase(path, pat) or fnmatch.fnmatchcase(name, pat):
            return True
    return False


def matches_context_pattern(patterns: Tuple[str, ...], context_type: str) -> bool:
    current = context_type.lower()
    return any(p.lower() == current or (p and p.lower() in current) for p in patterns)


class TriggerMatchingEngine:
    """
    Relevance scoring over a read-only constraint library.

    Usage:
        engine = TriggerMatchingEngine(library)
        activations = engine.evaluate_constraints(context)
    """

    def __init__(
        self,
        library: ConstraintLibrary,
        settings: Optional[MatchingSettings] = None,
        matcher: Optional[KeywordMatcher] = None,
    ):
        self.library = library
        self.settings = settings or MatchingSettings()
        self.matcher = matcher or KeywordMatcher(
            substring_weight=self.settings.substring_match_weight,
            enable_synonyms=self.settings.enable_synonyms,
            enable_fuzzy=self.settings.enable_fuzzy_matching,
            fuzzy_threshold=self.settings.fuzzy_match_threshold,
        )

    # =========================================================================
    # SCORING
    # =========================================================================

    def score_constraint(self, constraint: Constraint, context: TriggerContext) -> ScoreBreakdown:
        triggers = constraint.triggers
        threshold = (
            triggers.confidence_threshold
            if triggers.confidence_threshold is not None
            else self.settings.default_confidence_threshold
        )

        anti = find_anti_pattern(triggers.anti_patterns, context)
        if anti is not None:
            return ScoreBreakdown(
                constraint_id=constraint.id, score=0.0,
                excluded=True, excluded_by=anti, threshold=threshold,
            )

        factors: Dict[str, float] = {}
        weighted = 0.0
        total_weight = 0.0
        if triggers.keywords:
            factors["keyword"] = self.matcher.keyword_score(triggers.keywords, context.keywords)
            weighted += self.settings.keyword_weight * factors["keyword"]
            total_weight += self.settings.keyword_weight
        if triggers.file_patterns:
            factors["file_pattern"] = 1.0 if matches_file_pattern(triggers.file_patterns, context.file_path) else 0.0
            weighted += self.settings.file_pattern_weight * factors["file_pattern"]
            total_weight += self.settings.file_pattern_weight
        if triggers.context_patterns:
            factors["context_pattern"] = (
                1.0 if matches_context_pattern(triggers.context_patterns, context.context_type) else 0.0
            )
            weighted += self.settings.context_pattern_weight * factors["context_pattern"]
            total_weight += self.settings.context_pattern_weight

        score = weighted / total_weight if total_weight > 0 else 0.0
        if score > 0.0:
            score = self._apply_boosts(constraint.id, score, context)

        return ScoreBreakdown(
            constraint_id=constraint.id,
            score=min(max(score, 0.0), 1.0),
            factors=factors,
            threshold=threshold,
        )

    def _apply_boosts(self, constraint_id: str, score: float, context: TriggerContext) -> float:
        keywords = context.keyword_set
        for boost in self.settings.keyword_boosts:
            if boost.constraint_id != constraint_id:
                continue
            if any(indicator.lower() in keywords for indicator in boost.indicators):
                score *= boost.factor
        return min(score, 1.0)

    # =========================================================================
    # EVALUATION
    # =========================================================================

    def evaluate_constraints(self, context: TriggerContext) -> Tuple[ConstraintActivation, ...]:
        """
        Activations for every constraint that reaches its threshold.

        Ordered by confidence (desc), priority (desc), id (asc), and capped
        at max_active_constraints.
        """
        start = time.perf_counter()
        ranked: List[Tuple[ScoreBreakdown, Constraint]] = []
        for constraint in self.library.all_constraints:
            breakdown = self.score_constraint(constraint, context)
            if breakdown.excluded:
                logger.debug("%s excluded by anti-pattern %r", constraint.id, breakdown.excluded_by)
                continue
            if breakdown.activated:
                ranked.append((breakdown, constraint))

        ranked.sort(key=lambda pair: (-pair[0].score, -pair[1].priority, pair[1].id))
        ranked = ranked[: self.settings.max_active_constraints]

        activations = tuple(
            ConstraintActivation(
                constraint_id=constraint.id,
                confidence_score=breakdown.score,
                reason=breakdown.reason.value,
                trigger_context=context,
                metadata={"factors": dict(breakdown.factors)},
            )
            for breakdown, constraint in ranked
        )

        elapsed_ms = (time.perf_counter() - start) * 1000
        if elapsed_ms > self.settings.max_evaluation_time_ms:
            logger.warning(
                "Trigger evaluation took %.1fms (budget %dms) over %d constraints",
                elapsed_ms, self.settings.max_evaluation_time_ms, len(self.library),
            )
        logger.debug("Evaluated %d constraints, %d activated", len(self.library), len(activations))
        return activations

    def get_relevant_constraints(
        self,
        context: TriggerContext,
        min_confidence: float = 0.7,
    ) -> Tuple[ConstraintActivation, ...]:
        return tuple(a for a in self.evaluate_constraints(context) if a.confidence_score >= min_confidence)
