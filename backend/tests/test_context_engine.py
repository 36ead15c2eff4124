"""Tests for token estimation, tokenization, dedup, compression and summarization."""
import pytest

from agent_os.context_engine.deduplicator import SemanticDeduplicator, content_hash
from agent_os.context_engine.models import ContextFragment, FragmentPriority
from agent_os.context_engine.summarizer import (
    extract_keywords,
    indicator_score,
    position_score,
    split_sentences,
    summarize,
)
from agent_os.context_engine.text_compressor import (
    Aggressiveness,
    TechnicalAbbreviator,
    TextCompressor,
    WhitespaceCompressor,
)
from agent_os.context_engine.text_tokenizer import jaccard_similarity, normalize_text, tokenize
from agent_os.context_engine.token_estimator import estimate_length, estimate_tokens


# --- token estimator ---

class TestTokenEstimator:
    def test_json_object_estimate(self):
        # '{"a": "' + 400 x + '"}' is 409 characters
        assert estimate_tokens({"a": "x" * 400}) == 103

    def test_string_uses_raw_length(self):
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_empty(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens(None) == 0
        assert estimate_length(0) == 0


# --- tokenizer ---

class TestTokenizer:
    def test_normalize(self):
        assert normalize_text("  Hello,   World! ") == "hello world"

    def test_tokenize_empty(self):
        assert tokenize("") == []

    def test_jaccard(self):
        assert jaccard_similarity(["a", "b"], ["b", "c"]) == pytest.approx(1 / 3)
        assert jaccard_similarity([], []) == 0.0


# --- deduplicator ---

def _frag(fid, content, priority=FragmentPriority.NORMAL):
    return ContextFragment(id=fid, content=content, priority=priority)


class TestSemanticDeduplicator:
    def test_exact_duplicate_removed_first_wins(self):
        dedup = SemanticDeduplicator(threshold=0.85)
        text = "Nuxt components should use composition API with typed props everywhere"
        result = dedup.remove_duplicates([_frag("a", text), _frag("b", text), _frag("c", "Totally different content about servers")])
        assert [f.id for f in result] == ["a", "c"]

    def test_reordered_words_share_hash(self):
        assert content_hash("alpha beta gamma") == content_hash("gamma alpha beta")

    def test_distinct_fragments_kept(self):
        dedup = SemanticDeduplicator(threshold=0.85)
        result = dedup.remove_duplicates([
            _frag("a", "server routes live in the nitro directory"),
            _frag("b", "theme tokens configure the color palette"),
        ])
        assert len(result) == 2

    def test_idempotent(self):
        dedup = SemanticDeduplicator(threshold=0.5)
        fragments = [
            _frag("a", "alpha beta gamma delta epsilon"),
            _frag("b", "alpha beta gamma delta zeta"),
            _frag("c", "one two three four five six"),
            _frag("d", "epsilon delta gamma beta alpha"),
            _frag("e", "x y"),
            _frag("f", "z w"),
        ]
        once = dedup.remove_duplicates(fragments)
        twice = dedup.remove_duplicates(once)
        assert [f.id for f in twice] == [f.id for f in once]


# --- whitespace ---

class TestWhitespaceCompressor:
    def test_collapses_blank_lines_and_spaces(self):
        text = "Title\n\n\n\nSome    text   here .\n   indented"
        assert WhitespaceCompressor().compress(text) == "Title\n\nSome text here.\nindented"

    def test_code_preserved(self):
        text = "Use   this:\n```\nconst   a  =  1\n```"
        result = WhitespaceCompressor().compress(text)
        assert "const   a  =  1" in result
        assert result.startswith("Use this:")

    def test_list_bullets_normalized(self):
        assert WhitespaceCompressor().compress("items\n  * one\n  + two") == "items\n- one\n- two"


# --- abbreviation ---

class TestTechnicalAbbreviator:
    def test_low_single_words(self):
        abbreviator = TechnicalAbbreviator()
        assert abbreviator.abbreviate("component configuration", Aggressiveness.LOW) == "comp config"

    def test_low_skips_medium_terms(self):
        abbreviator = TechnicalAbbreviator()
        assert abbreviator.abbreviate("performance", Aggressiveness.LOW) == "performance"
        assert abbreviator.abbreviate("performance", Aggressiveness.MEDIUM) == "perf"

    def test_medium_excludes_ambiguous(self):
        abbreviator = TechnicalAbbreviator()
        assert abbreviator.abbreviate("interface", Aggressiveness.MEDIUM) == "interface"
        assert abbreviator.abbreviate("interface", Aggressiveness.HIGH) == "iface"

    def test_phrases_before_words(self):
        abbreviator = TechnicalAbbreviator()
        assert abbreviator.abbreviate("the development environment", Aggressiveness.MEDIUM) == "the dev env"

    def test_code_spans_untouched(self):
        abbreviator = TechnicalAbbreviator()
        result = abbreviator.abbreviate("a component `component`", Aggressiveness.LOW)
        assert result == "a comp `component`"

    def test_aggressive_level_maps_to_high(self):
        assert Aggressiveness.from_level("aggressive") == Aggressiveness.HIGH

    def test_overflow_escalation_respects_floor(self):
        assert Aggressiveness.for_overflow(110, 100) == Aggressiveness.LOW
        assert Aggressiveness.for_overflow(150, 100) == Aggressiveness.MEDIUM
        assert Aggressiveness.for_overflow(200, 100) == Aggressiveness.HIGH
        assert Aggressiveness.for_overflow(110, 100, Aggressiveness.MEDIUM) == Aggressiveness.MEDIUM

    def test_expand(self):
        compressor = TextCompressor()
        assert compressor.expand("comp config") == "component configuration"


# --- summarizer ---

LONG_TEXT = (
    "Components must be written with the composition API. "
    "Every component needs typed props and emits. "
    "However the legacy options API is still accepted in old modules. "
    "Styling should use the shared theme tokens where possible. "
    "It is important that accessibility attributes are always present. "
    "Tests cover every component with at least one render assertion."
)


class TestSummarizer:
    def test_short_text_unchanged(self):
        text = "Short text. Already fits."
        assert summarize(text, 500) == text

    def test_idempotent_at_exact_length(self):
        assert summarize(LONG_TEXT, len(LONG_TEXT)) == LONG_TEXT

    def test_respects_target(self):
        result = summarize(LONG_TEXT, 150)
        assert len(result) <= 150
        assert result.endswith(".")

    def test_keeps_original_order(self):
        result = summarize(LONG_TEXT, 200)
        sentences = [s for s in split_sentences(LONG_TEXT) if s in result]
        positions = [result.index(s) for s in sentences]
        assert positions == sorted(positions)
        assert len(sentences) >= 1

    def test_forces_one_sentence(self):
        result = summarize(LONG_TEXT, 5)
        assert result
        assert result.rstrip(".") in split_sentences(LONG_TEXT)

    def test_no_sentences_falls_back_to_prefix(self):
        assert summarize("short. tiny. bits.", 6) == "short."

    def test_shared_indicators_weigh_double(self):
        assert indicator_score("A crucial step in the build") == pytest.approx(0.2)
        assert indicator_score("A fundamental rule of routing") == pytest.approx(0.2)
        assert indicator_score("An essential step in the build") == pytest.approx(0.1)
        assert indicator_score("However this step is crucial") == pytest.approx(0.15)

    def test_split_drops_short_pieces(self):
        assert split_sentences("Hi. This one is long enough.") == ["This one is long enough"]

    def test_position_score(self):
        assert position_score(0, 10) == 1.0
        assert position_score(9, 10) == 0.8
        assert position_score(5, 10) == 0.5

    def test_keywords_within_density(self):
        keywords = extract_keywords(LONG_TEXT)
        assert "component" in keywords
        assert "the" not in keywords
