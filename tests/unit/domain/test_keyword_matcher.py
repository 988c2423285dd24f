"""
Tests for keyword extraction and match weighting.
"""
import pytest

from domain.keyword_matcher import (
    KeywordMatcher,
    extract_keywords,
    levenshtein_distance,
    similarity,
    tokenize,
)


class TestExtraction:

    def test_tokenize_lowercases_and_splits(self):
        assert tokenize("Write_Failing-Test/Foo.cs") == ["write", "failing", "test", "foo", "cs"]

    def test_stop_words_short_tokens_and_duplicates_dropped(self):
        keywords = extract_keywords(["I need a test for the Cart", "test x cart checkout"])
        assert keywords == ("test", "cart", "checkout")

    def test_skips_empty_texts(self):
        assert extract_keywords(["", None, "tdd"]) == ("tdd",)

    def test_custom_stop_words(self):
        assert extract_keywords(["write the test"], stop_words=frozenset({"write"})) == ("the", "test")


class TestDistance:

    def test_levenshtein(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_similarity(self):
        assert similarity("refactr", "refactor") == pytest.approx(0.875)
        assert similarity("", "") == 1.0


class TestMatch:

    def test_exact(self):
        m = KeywordMatcher().match("Test", ("test", "first"))
        assert m.match_type == "exact"
        assert m.score == 1.0

    def test_substring_both_directions(self):
        matcher = KeywordMatcher()
        assert matcher.match("test", ("testing",)).score == 0.5
        assert matcher.match("refactoring", ("refactor",)).match_type == "substring"

    def test_short_candidate_not_substring(self):
        assert KeywordMatcher().match("testing", ("te",)).score == 0.0

    def test_synonym_opt_in(self):
        assert KeywordMatcher().match("test", ("unittest",)).score == 0.5
        m = KeywordMatcher(enable_synonyms=True).match("test", ("unittest",))
        assert m.match_type == "synonym"
        assert m.score == 0.9

    def test_fuzzy_opt_in(self):
        assert KeywordMatcher().match("refactor", ("refactr",)).score == 0.0
        m = KeywordMatcher(enable_fuzzy=True).match("refactor", ("refactr",))
        assert m.match_type == "fuzzy"
        assert m.score == 0.7

    def test_fuzzy_threshold(self):
        matcher = KeywordMatcher(enable_fuzzy=True, fuzzy_threshold=0.9)
        assert matcher.match("refactor", ("refactr",)).score == 0.0

    def test_no_match(self):
        m = KeywordMatcher().match("deploy", ("test", "first"))
        assert m.match_type == "none"
        assert m.matched is None

    def test_synonyms_of_excludes_self(self):
        synonyms = KeywordMatcher().synonyms_of("refactor")
        assert "refactor" not in synonyms
        assert "cleanup" in synonyms

    def test_hyphenated_synonyms_match_as_phrases(self):
        matcher = KeywordMatcher(enable_synonyms=True)
        m = matcher.match("tdd", extract_keywords(["a test-driven approach"]))
        assert m.match_type == "synonym"
        assert m.matched == "test driven"
        assert matcher.match("test-driven", ("tdd",)).score == 0.9
        assert "hexagonal" in matcher.synonyms_of("ports-adapters")

    def test_phrase_needs_every_word(self):
        m = KeywordMatcher(enable_synonyms=True).match("tdd", ("driven",))
        assert m.match_type != "synonym"


class TestKeywordScore:

    def test_mean_over_trigger_keywords(self):
        matcher = KeywordMatcher()
        assert matcher.keyword_score(("test", "first"), ("test", "first", "feature")) == 1.0
        assert matcher.keyword_score(("test", "first"), ("test",)) == 0.5
        assert matcher.keyword_score(("test", "first"), ("testing",)) == 0.25

    def test_no_trigger_keywords(self):
        assert KeywordMatcher().keyword_score((), ("test",)) == 0.0
