"""
Tests for EmbeddingGenerator.

This test module verifies:
1. Dimension and L2 normalization
2. Determinism
3. content_hash (signed 32-bit wrap, absolute value)
4. Similarity helpers
5. Both degraded fallback branches (hashed and random)
"""

from unittest.mock import patch

import numpy as np
import pytest

from contentflow.services.embedder import (
    EmbeddingGenerator,
    content_fingerprint,
    content_hash,
    cosine_similarity,
    l2_normalize,
)


@pytest.fixture
def embedder() -> EmbeddingGenerator:
    return EmbeddingGenerator(dimension=384, fallback_mode="hashed")


class TestContentHash:
    """Test the rolling hash used as duplicate fingerprint."""

    def test_empty(self):
        assert content_hash("") == 0

    def test_small_values(self):
        assert content_hash("a") == 97
        assert content_hash("ab") == 97 * 31 + 98

    def test_signed_wrap(self):
        # 31**7 * 122 overflows 32 bits; result must still fit in [0, 2**31]
        value = content_hash("zzzzzzzzzzzzzzzz")
        assert 0 <= value <= 2 ** 31

    def test_known_value(self):
        # "hello world" hashes to 1794106052 as a signed 32-bit value
        assert content_hash("hello world") == 1794106052

    def test_astral_characters_hash_as_surrogate_pairs(self):
        # U+1F600 is the UTF-16 pair D83D DE00
        assert content_hash("\U0001F600") == 0xD83D * 31 + 0xDE00
        assert content_hash("\U0001F600") == 1772899

    def test_bmp_characters_hash_as_single_units(self):
        assert content_hash("\u00e9") == 0xE9

    def test_fingerprint_is_string(self):
        assert content_fingerprint("abc") == str(content_hash("abc"))


class TestEmbedding:
    """Test embedding generation."""

    def test_dimension(self, embedder):
        assert embedder.get_embedding_dimension() == 384
        assert len(embedder.embed("What a great product")) == 384

    def test_unit_norm(self, embedder):
        for text in ["hello", "I hate this stupid thing", "a" * 1000, "!!!"]:
            vector = np.asarray(embedder.embed(text))
            assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_deterministic(self, embedder):
        text = "This product is absolutely amazing! Best purchase ever!"
        assert embedder.embed(text) == embedder.embed(text)
        assert EmbeddingGenerator(384).embed(text) == embedder.embed(text)

    def test_different_texts_differ(self, embedder):
        assert embedder.embed("great product") != embedder.embed("terrible product")

    def test_empty_text_still_normalized(self, embedder):
        # the content-hash term of "" is sin(k / 1000) * 0.05, not all zero
        vector = np.asarray(embedder.embed(""))
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_custom_dimension(self):
        assert len(EmbeddingGenerator(dimension=16).embed("hello")) == 16

    def test_batch(self, embedder):
        vectors = embedder.embed_batch(["one", "two"])
        assert vectors == [embedder.embed("one"), embedder.embed("two")]

    def test_invalid_fallback_mode(self):
        with pytest.raises(ValueError):
            EmbeddingGenerator(fallback_mode="zeros")


class TestSimilarity:
    """Test similarity helpers."""

    def test_self_similarity(self, embedder):
        vector = embedder.embed("identical text")
        assert embedder.compute_similarity(vector, vector) == pytest.approx(1.0)

    def test_cosine_similarity_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_cosine_similarity_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 2.0]) == pytest.approx(0.0)

    def test_l2_normalize_zero(self):
        assert np.array_equal(l2_normalize(np.zeros(3)), np.zeros(3))

    def test_find_most_similar(self, embedder):
        query = embedder.embed("great product")
        candidates = [
            embedder.embed("terrible service"),
            embedder.embed("great product"),
            embedder.embed("unrelated words"),
        ]
        ranked = embedder.find_most_similar(query, candidates, top_k=2)
        assert len(ranked) == 2
        assert ranked[0][0] == 1
        assert ranked[0][1] == pytest.approx(1.0)

    def test_find_most_similar_empty(self, embedder):
        assert embedder.find_most_similar([1.0], []) == []


class TestFallback:
    """Test both degraded-mode branches separately."""

    def test_hashed_fallback_used_on_failure(self):
        embedder = EmbeddingGenerator(dimension=32, fallback_mode="hashed")
        with patch.object(EmbeddingGenerator, "_generate", side_effect=RuntimeError("boom")):
            first = embedder.embed("same text")
            second = embedder.embed("same text")
            other = embedder.embed("other text")

        assert len(first) == 32
        assert first == second
        assert first != other
        assert np.linalg.norm(first) == pytest.approx(1.0)

    def test_hashed_fallback_differs_from_normal_embedding(self):
        embedder = EmbeddingGenerator(dimension=32, fallback_mode="hashed")
        assert embedder.fallback_embedding("text") != embedder.embed("text")

    def test_random_fallback_used_on_failure(self):
        embedder = EmbeddingGenerator(dimension=32, fallback_mode="random")
        with patch.object(EmbeddingGenerator, "_generate", side_effect=RuntimeError("boom")):
            first = embedder.embed("same text")
            second = embedder.embed("same text")

        assert len(first) == 32
        assert first != second
        assert np.linalg.norm(first) == pytest.approx(1.0)
        assert all(abs(x) <= 1.0 for x in first)
