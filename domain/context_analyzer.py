"""
TRELLIS CONTEXT ANALYZER

Turns a raw tool call (method name + argument bag) or free-text user input
into a TriggerContext.

Classification is an ordered rule chain, first match wins:
1. Test file path          -> testing
2. Testing keywords        -> testing
3. Refactoring keywords    -> refactoring
4. Feature keywords/src    -> feature_development
5. Nothing                 -> unclear

The analyzer is stateless and pure: same inputs, same TriggerContext.
"""
import fnmatch
import re
from typing import Mapping, Optional, Sequence, Tuple

from core.ontology import (
    ContextType,
    FEATURE_KEYWORDS,
    FILE_PATH_KEYS,
    REFACTORING_KEYWORDS,
    TEST_FILE_PATTERNS,
    TESTING_KEYWORDS,
)
from core.schemas import TriggerContext
from domain.keyword_matcher import extract_keywords

_PATH_SPLIT = re.compile(r"[\\/]")


def basename(path: str) -> str:
    parts = [p for p in _PATH_SPLIT.split(path) if p]
    return parts[-1] if parts else ""


def is_test_file(path: Optional[str]) -> bool:
    """True if the path's basename matches a conventional test file pattern."""
    if not path:
        return False
    name = basename(path)
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in TEST_FILE_PATTERNS)


def has_source_segment(path: Optional[str]) -> bool:
    if not path:
        return False
    return "src" in (p.lower() for p in _PATH_SPLIT.split(path))


def classify_context(keywords: Sequence[str], file_path: Optional[str] = None) -> ContextType:
    """Run the classification chain over a keyword sequence and optional path."""
    words = set(keywords)
    if is_test_file(file_path):
        return ContextType.TESTING
    if words & TESTING_KEYWORDS:
        return ContextType.TESTING
    if words & REFACTORING_KEYWORDS:
        return ContextType.REFACTORING
    if words & FEATURE_KEYWORDS or has_source_segment(file_path):
        return ContextType.FEATURE_DEVELOPMENT
    return ContextType.UNCLEAR


class ContextAnalyzer:
    """
    Builds TriggerContexts from tool calls and user input.

    Usage:
        analyzer = ContextAnalyzer()
        ctx = analyzer.analyze_tool_call(
            "tools/create_file",
            {"file_path": "/src/Foo.test.cs", "content": "write the failing test first"},
            "session-1",
        )
        ctx.context_type  # "testing"
    """

    def __init__(self, file_path_keys: Tuple[str, ...] = FILE_PATH_KEYS):
        self.file_path_keys = file_path_keys

    def analyze_tool_call(
        self,
        method: str,
        arguments: Optional[Mapping[str, str]],
        session_id: str,
    ) -> TriggerContext:
        arguments = arguments or {}
        texts = [method or ""]
        texts.extend(
            str(value) for key, value in arguments.items()
            if value is not None and "session" not in key.lower()
        )
        keywords = extract_keywords(texts)
        file_path = self.extract_file_path(arguments)
        return TriggerContext(
            keywords=keywords,
            file_path=file_path,
            context_type=classify_context(keywords, file_path).value,
            session_id=session_id,
            metadata={"source": "tool_call", "method": method or ""},
        )

    def analyze_user_input(self, text: str, session_id: str) -> TriggerContext:
        keywords = extract_keywords([text or ""])
        return TriggerContext(
            keywords=keywords,
            file_path=None,
            context_type=classify_context(keywords).value,
            session_id=session_id,
            metadata={"source": "user_input"},
        )

    def extract_file_path(self, arguments: Mapping[str, str]) -> Optional[str]:
        for key in self.file_path_keys:
            value = arguments.get(key)
            if value:
                return str(value)
        return None
