"""Duplicate detection for generated card content.

Three independent signals are combined, cheapest first:

1. Exact match on the SHA-256 of the normalized text.
2. Keyword overlap (Jaccard) against existing cards of the same partition.
3. Normalized Levenshtein similarity against cards accepted in the same batch.
"""

import hashlib
import re
from enum import Enum
from typing import Iterable, Optional, Sequence, Set

# Default thresholds; both comparisons are strict (similarity > threshold)
SEMANTIC_SIMILARITY_THRESHOLD = 0.7
FUZZY_SIMILARITY_THRESHOLD = 0.8

# Number of existing cards compared in the keyword-overlap check
SEMANTIC_SAMPLE_SIZE = 100

# Words of this length or shorter are ignored as noise
KEYWORD_MIN_LENGTH = 3

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


class DuplicateReason(str, Enum):
    """Which check classified a candidate as duplicate."""

    EXACT = "exact"
    SEMANTIC = "semantic"
    FUZZY = "fuzzy"


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    text = _NON_WORD.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the normalized text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def extract_keywords(text: str, min_length: int = KEYWORD_MIN_LENGTH) -> Set[str]:
    """Return the set of lowercase words longer than ``min_length``."""
    words = _NON_WORD.sub("", text.lower()).split()
    return {word for word in words if len(word) > min_length}


def jaccard_similarity(a: Set[str], b: Set[str]) -> float:
    """|A ∩ B| / |A ∪ B|, or 0.0 when both sets are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def levenshtein_distance(s1: str, s2: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1
    if not s2:
        return len(s1)

    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            cost = 0 if c1 == c2 else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]


def levenshtein_similarity(s1: str, s2: str) -> float:
    """(len(longer) - distance) / len(longer); 1.0 when both are empty."""
    longer = max(len(s1), len(s2))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(s1, s2)) / longer


class ContentHashCache:
    """Hashes of content already accepted during one generation run.

    Built once per run from the existing cards of a partition and only ever
    appended to. Never share an instance between runs.
    """

    def __init__(self, hashes: Iterable[str] = ()):
        self._hashes = set(hashes)

    @classmethod
    def from_texts(cls, texts: Iterable[str]) -> "ContentHashCache":
        return cls(content_hash(text) for text in texts)

    def add(self, text: str) -> None:
        """Record ``text`` as accepted."""
        self._hashes.add(content_hash(text))

    def contains(self, text: str) -> bool:
        return content_hash(text) in self._hashes

    def __len__(self) -> int:
        return len(self._hashes)


class SimilarityDetector:
    """Classifies candidate card text as duplicate or unique."""

    def __init__(
        self,
        semantic_threshold: float = SEMANTIC_SIMILARITY_THRESHOLD,
        fuzzy_threshold: float = FUZZY_SIMILARITY_THRESHOLD,
        semantic_sample_size: int = SEMANTIC_SAMPLE_SIZE,
        keyword_min_length: int = KEYWORD_MIN_LENGTH,
    ):
        """Initialize SimilarityDetector.

        Args:
            semantic_threshold: Jaccard similarity above which a candidate
                duplicates an existing card.
            fuzzy_threshold: Levenshtein similarity above which a candidate
                duplicates a card accepted earlier in the same batch.
            semantic_sample_size: Maximum number of existing cards compared.
            keyword_min_length: Words must be longer than this to count.
        """
        self.semantic_threshold = semantic_threshold
        self.fuzzy_threshold = fuzzy_threshold
        self.semantic_sample_size = semantic_sample_size
        self.keyword_min_length = keyword_min_length

    def is_semantic_duplicate(self, candidate: str, existing_corpus: Sequence[str]) -> bool:
        candidate_words = extract_keywords(candidate, self.keyword_min_length)
        for existing in existing_corpus[: self.semantic_sample_size]:
            existing_words = extract_keywords(existing, self.keyword_min_length)
            if jaccard_similarity(candidate_words, existing_words) > self.semantic_threshold:
                return True
        return False

    def is_fuzzy_duplicate(self, candidate: str, accepted: Sequence[str]) -> bool:
        return any(
            levenshtein_similarity(candidate, other) > self.fuzzy_threshold
            for other in accepted
        )

    def check(
        self,
        candidate: str,
        hash_cache: ContentHashCache,
        existing_corpus: Sequence[str] = (),
        accepted_in_batch: Sequence[str] = (),
    ) -> Optional[DuplicateReason]:
        """Return the first check that flags ``candidate``, or None if unique."""
        if hash_cache.contains(candidate):
            return DuplicateReason.EXACT
        if self.is_semantic_duplicate(candidate, existing_corpus):
            return DuplicateReason.SEMANTIC
        if self.is_fuzzy_duplicate(candidate, accepted_in_batch):
            return DuplicateReason.FUZZY
        return None

    def is_duplicate(
        self,
        candidate: str,
        hash_cache: ContentHashCache,
        existing_corpus: Sequence[str] = (),
        accepted_in_batch: Sequence[str] = (),
    ) -> bool:
        return self.check(candidate, hash_cache, existing_corpus, accepted_in_batch) is not None
