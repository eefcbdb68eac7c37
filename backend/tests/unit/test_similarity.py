"""Unit tests for duplicate detection."""

import pytest

from connection_game.services.similarity import (
    ContentHashCache,
    DuplicateReason,
    SimilarityDetector,
    content_hash,
    extract_keywords,
    jaccard_similarity,
    levenshtein_distance,
    levenshtein_similarity,
    normalize_text,
)


class TestNormalization:
    """Tests for text normalization and hashing."""

    def test_normalize_lowercases_and_strips_punctuation(self):
        """Test punctuation is removed and case folded."""
        assert normalize_text("What's YOUR favorite Song?!") == "whats your favorite song"

    def test_normalize_collapses_whitespace(self):
        """Test whitespace runs collapse to one space and ends are trimmed."""
        assert normalize_text("  one \t two\n\nthree  ") == "one two three"

    def test_hash_is_deterministic(self):
        """Test hashing the same text twice gives the same digest."""
        text = "Describe a moment when you felt truly understood."
        assert content_hash(text) == content_hash(text)
        assert len(content_hash(text)) == 64

    def test_hash_ignores_case_punctuation_and_spacing(self):
        """Test texts differing only in case, punctuation and spacing collide."""
        a = "What's your go-to karaoke song?"
        b = "whats   YOUR goto karaoke song"
        assert content_hash(a) == content_hash(b)

    def test_hash_differs_for_different_words(self):
        """Test different content hashes differently."""
        assert content_hash("What makes you laugh?") != content_hash("What makes you cry?")


class TestKeywordOverlap:
    """Tests for keyword extraction and Jaccard similarity."""

    def test_short_words_are_ignored(self):
        """Test words of three characters or fewer are dropped."""
        assert extract_keywords("What is the best day of your life?") == {"what", "best", "your", "life"}

    def test_jaccard_identical_sets(self):
        """Test identical non-empty sets have similarity 1."""
        words = {"favorite", "childhood", "memory"}
        assert jaccard_similarity(words, set(words)) == 1.0

    def test_jaccard_disjoint_sets(self):
        """Test disjoint sets have similarity 0."""
        assert jaccard_similarity({"alpha", "beta"}, {"gamma", "delta"}) == 0.0

    def test_jaccard_partial_overlap(self):
        """Test partial overlap is |A∩B| / |A∪B|."""
        assert jaccard_similarity({"a1", "b2", "c3"}, {"b2", "c3", "d4"}) == pytest.approx(0.5)

    def test_jaccard_empty_sets(self):
        """Test two empty sets do not divide by zero."""
        assert jaccard_similarity(set(), set()) == 0.0

    @pytest.mark.parametrize(
        "a, b",
        [
            ({"one1"}, {"one1", "two2"}),
            ({"x123", "y123"}, {"z123"}),
            ({"same"}, {"same"}),
            (set(), {"only"}),
        ],
    )
    def test_jaccard_is_bounded(self, a, b):
        """Test similarity stays within [0, 1]."""
        assert 0.0 <= jaccard_similarity(a, b) <= 1.0


class TestLevenshtein:
    """Tests for edit distance and its normalized similarity."""

    @pytest.mark.parametrize(
        "s1, s2, expected",
        [
            ("kitten", "sitting", 3),
            ("flaw", "lawn", 2),
            ("", "abc", 3),
            ("abc", "", 3),
            ("same", "same", 0),
        ],
    )
    def test_distance(self, s1, s2, expected):
        """Test known edit distances."""
        assert levenshtein_distance(s1, s2) == expected

    def test_distance_is_symmetric(self):
        """Test argument order does not matter."""
        assert levenshtein_distance("sunday", "saturday") == levenshtein_distance("saturday", "sunday")

    def test_similarity_both_empty(self):
        """Test two empty strings are fully similar."""
        assert levenshtein_similarity("", "") == 1.0

    def test_similarity_one_empty(self):
        """Test an empty string against a non-empty one is 0."""
        assert levenshtein_similarity("", "abcd") == 0.0

    def test_similarity_uses_longer_length(self):
        """Test similarity is (longer - distance) / longer."""
        assert levenshtein_similarity("kitten", "sitting") == pytest.approx(4 / 7)


class TestContentHashCache:
    """Tests for the per-run hash cache."""

    def test_from_texts(self):
        """Test the cache is seeded from existing texts."""
        cache = ContentHashCache.from_texts(["First card text here", "Second card text here"])
        assert len(cache) == 2
        assert cache.contains("first CARD text here!")

    def test_add_records_normalized_text(self):
        """Test add records the text under its normalized hash."""
        cache = ContentHashCache()
        cache.add("Tell me about your hometown.")
        cache.add("TELL me about your hometown!")
        assert len(cache) == 1
        assert cache.contains("tell me about your hometown")

    def test_separate_caches_are_isolated(self):
        """Test two runs never see each other's content."""
        first = ContentHashCache()
        second = ContentHashCache()
        first.add("Only in the first run")
        assert not second.contains("Only in the first run")


class TestSimilarityDetector:
    """Tests for the combined duplicate check."""

    @pytest.fixture
    def detector(self):
        return SimilarityDetector()

    def test_unique_candidate(self, detector):
        """Test a novel candidate passes every check."""
        cache = ContentHashCache.from_texts(["What is your favorite childhood board game?"])
        reason = detector.check(
            "Describe the best meal you have ever cooked for someone.",
            cache,
            ["Which superpower would you pick for a single afternoon?"],
            ["Share a song that always lifts your mood."],
        )
        assert reason is None

    def test_exact_duplicate(self, detector):
        """Test a hash hit is reported as an exact duplicate."""
        cache = ContentHashCache.from_texts(["What makes you laugh the hardest?"])
        assert detector.check("what makes you LAUGH the hardest", cache) is DuplicateReason.EXACT

    def test_semantic_duplicate(self, detector):
        """Test high keyword overlap with an existing card is flagged."""
        existing = ["Describe your favorite childhood memory with your family"]
        candidate = "Describe your favorite childhood memory with family members"
        reason = detector.check(candidate, ContentHashCache(), existing)
        assert reason is DuplicateReason.SEMANTIC

    def test_semantic_threshold_is_strict(self):
        """Test similarity equal to the threshold is not a duplicate."""
        detector = SimilarityDetector(semantic_threshold=0.5)
        # {"alpha", "bravo", "charlie"} vs {"bravo", "charlie", "delta"} -> 0.5
        assert not detector.is_semantic_duplicate("alpha bravo charlie", ["bravo charlie delta"])

    def test_semantic_sample_size_limits_corpus(self):
        """Test only the first ``semantic_sample_size`` corpus entries are compared."""
        detector = SimilarityDetector(semantic_sample_size=1)
        corpus = ["Completely unrelated sentence here", "Share your proudest accomplishment lately"]
        assert not detector.is_semantic_duplicate("Share your proudest accomplishment lately", corpus)

    def test_fuzzy_duplicate_within_batch(self, detector):
        """Test near-identical text accepted earlier in the batch is flagged."""
        accepted = ["What is your favorite movie of all time?"]
        reason = detector.check("What is your favourite movie of all time?", ContentHashCache(), [], accepted)
        assert reason is DuplicateReason.FUZZY

    def test_exact_check_runs_first(self, detector):
        """Test the cheapest check wins when several would match."""
        text = "What is your favorite movie of all time?"
        cache = ContentHashCache.from_texts([text])
        assert detector.check(text, cache, [text], [text]) is DuplicateReason.EXACT

    def test_is_duplicate_once_hash_added(self, detector):
        """Test content is always a duplicate after its hash is added."""
        cache = ContentHashCache()
        text = "If you could live anywhere for a year, where would it be?"
        assert not detector.is_duplicate(text, cache)
        cache.add(text)
        assert detector.is_duplicate(text, cache)
        assert detector.is_duplicate(text, cache)
