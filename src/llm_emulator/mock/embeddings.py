"""
LLM Emulator Embedders

Pluggable embedding capability for the semantic-embedding matching strategy.

The n-gram embedder is always available and needs no model download.
Deployments that want model-backed similarity provide any object with an
`embed(text)` method (sync or async) returning a dense list of floats or a
sparse {feature: weight} mapping.
"""

import math
from typing import Dict, List, Protocol, Sequence, Union, runtime_checkable

from ..common.text import ngram_vector, norm, sparse_cosine
from ..common.utils import maybe_await
from .patterns import PLACEHOLDER

Vector = Union[Sequence[float], Dict[str, float]]


@runtime_checkable
class Embedder(Protocol):
    """Anything that maps text to a vector."""

    def embed(self, text: str) -> Vector:
        ...


class NgramEmbedder:
    """Character n-gram frequency vectors (sparse)."""

    def embed(self, text: str) -> Dict[str, int]:
        return ngram_vector(text)


class CachingEmbedder:
    """
    Memoizes another embedder's vectors by text.

    Model-backed embedders are slow; case patterns are embedded once.
    """

    def __init__(self, inner: Embedder, max_size: int = 1000):
        self.inner = inner
        self.max_size = max_size
        self.cache: Dict[str, Vector] = {}

    async def embed(self, text: str) -> Vector:
        if text in self.cache:
            return self.cache[text]

        vector = await maybe_await(self.inner.embed(text))

        # FIFO eviction
        if len(self.cache) >= self.max_size:
            del self.cache[next(iter(self.cache))]
        self.cache[text] = vector
        return vector


def placeholderize(pattern: str) -> str:
    """Replace {{var}} placeholders with a generic token before embedding."""
    return norm(PLACEHOLDER.sub(' var ', pattern))


def cosine_similarity(vec_a: Vector, vec_b: Vector) -> float:
    """Cosine similarity for two dense sequences or two sparse mappings."""
    if isinstance(vec_a, dict) and isinstance(vec_b, dict):
        return sparse_cosine(vec_a, vec_b)

    dense_a: List[float] = list(vec_a)
    dense_b: List[float] = list(vec_b)
    length = min(len(dense_a), len(dense_b))

    dot = sum(dense_a[i] * dense_b[i] for i in range(length))
    norm_a = sum(dense_a[i] * dense_a[i] for i in range(length))
    norm_b = sum(dense_b[i] * dense_b[i] for i in range(length))
    denom = math.sqrt(norm_a or 1) * math.sqrt(norm_b or 1)
    return dot / denom if denom else 0.0
