"""
Embedding Generator

Deterministic pseudo-embeddings for similarity search and duplicate
fingerprinting. No model download, no network: the vector is a pure
function of the text.

Algorithm:
----------
1. Lowercase, drop everything except [a-z0-9] and whitespace, split words
2. For word i and character j with code c:
       embedding[(c * (i+1) * (j+1)) mod D] += sin(c / 100) * 0.1
3. Add a content-hash term to every dimension k:
       embedding[k] += sin((hash + k) / 1000) * 0.05
4. L2-normalize (a zero vector stays zero)

Features:
---------
- Fixed dimension (384 by default, matches the vector index)
- Normalized output, so cosine similarity is a dot product
- Shared content_hash() used as the duplicate fingerprint
- Explicit degraded mode when generation fails (hashed or random vector)
"""

import logging
import re
from typing import Optional

import numpy as np

from contentflow.core.config import settings

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")

CHAR_WEIGHT = 0.1
HASH_WEIGHT = 0.05


def content_hash(text: str) -> int:
    """
    32-bit rolling hash of the original text.

    h = h * 31 + c over the UTF-16 code units (characters outside the BMP
    count as their two surrogates), wrapped to a signed 32-bit integer at
    every step; the absolute value is returned.
    """
    encoded = text.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(encoded), 2):
        h = (h * 31 + int.from_bytes(encoded[i:i + 2], "little")) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def content_fingerprint(text: str) -> str:
    """content_hash as the string stored in the duplicate filter."""
    return str(content_hash(text))


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Divide by the L2 norm. A zero vector is returned unchanged."""
    magnitude = float(np.linalg.norm(vector))
    if magnitude == 0.0:
        return np.zeros_like(vector)
    return vector / magnitude


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two vectors (0.0 if either is zero)."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


class EmbeddingGenerator:
    """
    Generates fixed-dimension, L2-normalized embeddings.

    Usage:
    ------
    embedder = EmbeddingGenerator()
    vector = embedder.embed("What a great product")
    len(vector)  # 384
    """

    def __init__(
        self,
        dimension: Optional[int] = None,
        fallback_mode: Optional[str] = None
    ):
        """
        Args:
            dimension: Vector size (default from settings)
            fallback_mode: "hashed" (deterministic) or "random" degraded vectors
        """
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.fallback_mode = fallback_mode or settings.EMBEDDING_FALLBACK_MODE
        if self.fallback_mode not in ("hashed", "random"):
            raise ValueError(f"Unknown fallback mode: {self.fallback_mode}")

    def get_embedding_dimension(self) -> int:
        return self.dimension

    def embed(self, text: str) -> list[float]:
        """
        Generate the embedding for ``text``.

        Falls back to ``fallback_embedding`` if generation fails; that path
        is only deterministic in "hashed" mode.
        """
        try:
            return self._generate(text).tolist()
        except Exception as e:
            logger.error(
                f"Embedding generation failed, using {self.fallback_mode} fallback: {e}"
            )
            return self.fallback_embedding(text)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts."""
        return [self.embed(text) for text in texts]

    def _generate(self, text: str) -> np.ndarray:
        dim = self.dimension
        embedding = np.zeros(dim, dtype=np.float64)

        words = _NON_ALNUM.sub("", text.lower()).split()

        indices = []
        values = []
        for i, word in enumerate(words):
            for j, ch in enumerate(word):
                code = ord(ch)
                indices.append((code * (i + 1) * (j + 1)) % dim)
                values.append(np.sin(code / 100) * CHAR_WEIGHT)
        if indices:
            # add.at accumulates repeated indices
            np.add.at(embedding, indices, values)

        text_hash = content_hash(text)
        embedding += np.sin((text_hash + np.arange(dim)) / 1000) * HASH_WEIGHT

        return l2_normalize(embedding)

    def fallback_embedding(self, text: str) -> list[float]:
        """
        Degraded-mode vector.

        "hashed": uniform values from a generator seeded by content_hash, so
        the same text still maps to the same vector.
        "random": fresh uniform values on every call.
        """
        if self.fallback_mode == "hashed":
            seed = content_hash(text) if isinstance(text, str) else 0
            rng = np.random.default_rng(seed)
        else:
            rng = np.random.default_rng()
        vector = rng.uniform(-0.5, 0.5, self.dimension)
        return l2_normalize(vector).tolist()

    def compute_similarity(self, embedding1: list[float], embedding2: list[float]) -> float:
        """
        Cosine similarity between two embeddings.

        Both are normalized by construction, so this is their dot product.
        """
        return float(np.dot(np.asarray(embedding1), np.asarray(embedding2)))

    def find_most_similar(
        self,
        query_embedding: list[float],
        candidate_embeddings: list[list[float]],
        top_k: int = 5
    ) -> list[tuple[int, float]]:
        """
        Rank candidates by similarity to the query.

        Returns:
            List of (index, similarity_score) tuples, best first
        """
        if not candidate_embeddings:
            return []

        similarities = [
            (i, self.compute_similarity(query_embedding, candidate))
            for i, candidate in enumerate(candidate_embeddings)
        ]
        similarities.sort(key=lambda x: x[1], reverse=True)
        return similarities[:top_k]
