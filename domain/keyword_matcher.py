"""
TRELLIS KEYWORD MATCHER

Keyword extraction and per-keyword match weighting.

This module provides:
- extract_keywords: tokenize, lower-case, drop stop words and short tokens
- KeywordMatcher: score a trigger keyword against a context's keyword set

Match weights (best applicable wins):
- exact        1.0
- synonym      0.9   (opt-in, fixed synonym groups)
- fuzzy        0.7   (opt-in, Levenshtein similarity)
- substring    configurable, 0.5 by default

Architecture:
- Pure string/set operations, no external calls
- Synonym and fuzzy matching are off unless settings enable them
"""
import re
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

import msgspec

from core.ontology import STOP_WORDS, SYNONYM_GROUPS

EXACT_MATCH_WEIGHT = 1.0
SYNONYM_MATCH_WEIGHT = 0.9
FUZZY_MATCH_WEIGHT = 0.7

MIN_KEYWORD_LENGTH = 2
MIN_FUZZY_LENGTH = 3
MIN_SUBSTRING_LENGTH = 3

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


# =============================================================================
# EXTRACTION
# =============================================================================

def tokenize(text: str) -> List[str]:
    """Split text into lower-case alphanumeric runs."""
    return _TOKEN_PATTERN.findall(text.lower())


def extract_keywords(texts: Iterable[str], stop_words: FrozenSet[str] = STOP_WORDS) -> Tuple[str, ...]:
    """
    Extract keywords from one or more texts.

    Drops stop words and tokens shorter than two characters, and keeps the
    first occurrence of each keyword in order.
    """
    seen = set()
    keywords = []
    for text in texts:
        if not text:
            continue
        for token in tokenize(text):
            if len(token) < MIN_KEYWORD_LENGTH or token in stop_words or token in seen:
                continue
            seen.add(token)
            keywords.append(token)
    return tuple(keywords)


def _phrase(word: str) -> str:
    return " ".join(tokenize(word))


# =============================================================================
# MATCHING
# =============================================================================

class KeywordMatch(msgspec.Struct, kw_only=True, frozen=True):
    """How one trigger keyword matched the context."""
    keyword: str
    matched: Optional[str]
    score: float
    match_type: str  # "exact", "synonym", "fuzzy", "substring", "none"


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


class KeywordMatcher:
    """
    Scores trigger keywords against a context keyword set.

    Usage:
        matcher = KeywordMatcher()
        matcher.keyword_score(("test", "first"), ("test", "first", "feature"))  # 1.0
    """

    def __init__(
        self,
        substring_weight: float = 0.5,
        enable_synonyms: bool = False,
        enable_fuzzy: bool = False,
        fuzzy_threshold: float = 0.7,
        synonym_groups: Sequence[FrozenSet[str]] = SYNONYM_GROUPS,
    ):
        self.substring_weight = substring_weight
        self.enable_synonyms = enable_synonyms
        self.enable_fuzzy = enable_fuzzy
        self.fuzzy_threshold = fuzzy_threshold
        self._synonyms: Dict[str, FrozenSet[str]] = {}
        for group in synonym_groups:
            phrases = frozenset(_phrase(word) for word in group)
            for phrase in phrases:
                self._synonyms[phrase] = self._synonyms.get(phrase, frozenset()) | phrases

    def synonyms_of(self, keyword: str) -> FrozenSet[str]:
        """Synonyms in token form: "test-driven" is stored as the phrase "test driven"."""
        phrase = _phrase(keyword)
        return self._synonyms.get(phrase, frozenset()) - {phrase}

    def _find_synonym(self, keyword: str, context_keywords: Sequence[str]) -> Optional[str]:
        synonyms = self.synonyms_of(keyword)
        for candidate in context_keywords:
            if candidate in synonyms:
                return candidate
        # multi-word synonyms match when every word is present
        present = set(context_keywords)
        for phrase in sorted(synonyms):
            words = phrase.split()
            if len(words) > 1 and present.issuperset(words):
                return phrase
        return None

    def match(self, keyword: str, context_keywords: Sequence[str]) -> KeywordMatch:
        """Best match of a single trigger keyword."""
        needle = keyword.lower().strip()
        if needle in context_keywords:
            return KeywordMatch(keyword=keyword, matched=needle, score=EXACT_MATCH_WEIGHT, match_type="exact")

        best = KeywordMatch(keyword=keyword, matched=None, score=0.0, match_type="none")

        if self.enable_synonyms:
            synonym = self._find_synonym(needle, context_keywords)
            if synonym is not None:
                return KeywordMatch(
                    keyword=keyword, matched=synonym,
                    score=SYNONYM_MATCH_WEIGHT, match_type="synonym",
                )

        if self.enable_fuzzy and len(needle) >= MIN_FUZZY_LENGTH:
            for candidate in context_keywords:
                if len(candidate) < MIN_FUZZY_LENGTH:
                    continue
                if similarity(needle, candidate) >= self.fuzzy_threshold and FUZZY_MATCH_WEIGHT > best.score:
                    best = KeywordMatch(
                        keyword=keyword, matched=candidate,
                        score=FUZZY_MATCH_WEIGHT, match_type="fuzzy",
                    )
                    break

        if self.substring_weight > best.score:
            for candidate in context_keywords:
                if needle in candidate or (len(candidate) >= MIN_SUBSTRING_LENGTH and candidate in needle):
                    best = KeywordMatch(
                        keyword=keyword, matched=candidate,
                        score=self.substring_weight, match_type="substring",
                    )
                    break

        return best

    def match_all(self, keywords: Sequence[str], context_keywords: Sequence[str]) -> List[KeywordMatch]:
        return [self.match(kw, context_keywords) for kw in keywords]

    def keyword_score(self, keywords: Sequence[str], context_keywords: Sequence[str]) -> float:
        """Mean match weight over the trigger keywords, 0.0 if there are none."""
        if not keywords:
            return 0.0
        context = tuple(context_keywords)
        return sum(m.score for m in self.match_all(keywords, context)) / len(keywords)
