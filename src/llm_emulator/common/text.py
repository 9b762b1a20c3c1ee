"""
LLM Emulator Text Utilities

Normalization, tokenization and similarity metrics used by the matching layer.

Features:
- Unicode-aware normalization (letters, digits, whitespace only)
- Jaro-Winkler string similarity
- Token overlap scoring
- Character n-gram cosine similarity (cheap offline "semantic" score)
"""

import math
import re
from collections import Counter
from typing import Dict, List

# \w also matches underscore, which is punctuation for our purposes
_NON_WORD = re.compile(r'[^\w\s]|_', re.UNICODE)
_WHITESPACE = re.compile(r'\s+')


def norm(text: str) -> str:
    """
    Normalize a string for comparison.

    - lowercases
    - replaces every character that is not a letter, digit or whitespace
    - collapses whitespace runs and trims

    Args:
        text: Input text (None is treated as empty)

    Returns:
        Normalized string
    """
    value = (text or '').lower()
    value = _NON_WORD.sub(' ', value)
    return _WHITESPACE.sub(' ', value).strip()


def tokens(text: str) -> List[str]:
    """Tokenize into normalized, non-empty tokens."""
    return [t for t in norm(text).split(' ') if t]


def match_exact(text: str, pattern: str) -> bool:
    """Exact match after normalization."""
    return norm(text) == norm(pattern)


def jaro_winkler(a: str, b: str) -> float:
    """
    Jaro-Winkler similarity.

    Args:
        a: First string
        b: Second string

    Returns:
        Score in [0, 1]; 1 for identical non-empty strings, 0 when no
        characters match
    """
    if not a or not b:
        return 0.0

    match_window = max(0, max(len(a), len(b)) // 2 - 1)

    matched_a = [False] * len(a)
    matched_b = [False] * len(b)
    matches = 0

    for i, ch in enumerate(a):
        start = max(0, i - match_window)
        end = min(i + match_window + 1, len(b))
        for j in range(start, end):
            if not matched_b[j] and ch == b[j]:
                matched_a[i] = True
                matched_b[j] = True
                matches += 1
                break

    if not matches:
        return 0.0

    # Half-transpositions
    transpositions = 0
    k = 0
    for i, ch in enumerate(a):
        if matched_a[i]:
            while not matched_b[k]:
                k += 1
            if ch != b[k]:
                transpositions += 1
            k += 1

    jaro = (
        matches / len(a)
        + matches / len(b)
        + (matches - transpositions / 2) / matches
    ) / 3

    prefix = 0
    max_prefix = min(4, len(a), len(b))
    while prefix < max_prefix and a[prefix] == b[prefix]:
        prefix += 1

    return jaro + prefix * 0.1 * (1 - jaro)


def tok_overlap_score(a: str, b: str) -> float:
    """
    Token set overlap: |A & B| / max(|A|, |B|, 1).

    Duplicated tokens are collapsed before counting.
    """
    set_a = set(tokens(a))
    set_b = set(tokens(b))
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / max(len(set_a), len(set_b), 1)


def score_fuzzy(text: str, pattern: str) -> float:
    """
    Fuzzy similarity combining Jaro-Winkler and token overlap.

    Weighted 0.6 / 0.4, computed on the normalized strings.
    """
    normalized_text = norm(text)
    normalized_pattern = norm(pattern)
    similarity = jaro_winkler(normalized_text, normalized_pattern)
    overlap = tok_overlap_score(normalized_text, normalized_pattern)
    return 0.6 * similarity + 0.4 * overlap


def char_ngrams(text: str, min_n: int = 3, max_n: int = 5) -> List[str]:
    """Character n-grams (min_n..max_n) of a "__"-padded string."""
    padded = f'__{text}__'
    grams = []
    for n in range(min_n, max_n + 1):
        if len(padded) < n:
            continue
        for i in range(len(padded) - n + 1):
            grams.append(padded[i:i + n])
    return grams


def ngram_vector(text: str) -> Dict[str, int]:
    """Sparse n-gram frequency vector of the normalized text."""
    return Counter(char_ngrams(norm(text)))


def sparse_cosine(vec_a: Dict[str, float], vec_b: Dict[str, float]) -> float:
    """Cosine similarity between two sparse vectors."""
    dot = sum(value * vec_b.get(key, 0) for key, value in vec_a.items())
    norm_a = sum(value * value for value in vec_a.values())
    norm_b = sum(value * value for value in vec_b.values())
    denom = math.sqrt(norm_a or 1) * math.sqrt(norm_b or 1)
    return dot / denom if denom else 0.0


def score_ngram_semantic(text: str, pattern: str) -> float:
    """
    Rough "semantic-ish" similarity from character n-gram cosine.

    Cheap and fully offline; used by the semantic-ngrams strategy and as
    the fallback embedder.
    """
    return sparse_cosine(ngram_vector(text), ngram_vector(pattern))
