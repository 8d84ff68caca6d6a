"""
Content Analyzer

Heuristic moderation scoring for free text.

Scoring:
--------
1. Toxicity: +0.3 for every toxic term found (substring match), capped at 1.0
2. Positivity: +0.2 for every positive term found, capped at 1.0
3. Sentiment: positive / negative when one score dominates and exceeds 0.3
4. Category: first category in CATEGORY_KEYWORDS with a keyword match,
   falling back to the caller's hint (or "general")
5. Confidence: grows with text length and with any keyword signal, max 0.95
6. Keywords: 5 most frequent tokens longer than 3 chars (ties: first seen)

The analyzer is pure and total: the same input always yields an equal
AnalysisResult, and internal failures degrade to a low-confidence neutral
result instead of raising.
"""

import logging
import re
from collections import Counter
from typing import Optional

from contentflow.core.exceptions import AnalysisError
from contentflow.models.content import AnalysisResult, ContentCategory, Sentiment

logger = logging.getLogger(__name__)


TOXIC_TERMS = ("hate", "stupid", "terrible", "awful", "horrible", "disgusting")
POSITIVE_TERMS = (
    "great", "excellent", "amazing", "wonderful", "fantastic", "love", "best", "awesome",
)

TOXIC_WEIGHT = 0.3
POSITIVE_WEIGHT = 0.2
SENTIMENT_THRESHOLD = 0.3
TOXIC_THRESHOLD = 0.5
MAX_CONFIDENCE = 0.95
FALLBACK_CONFIDENCE = 0.1
MAX_KEYWORDS = 5

# Order matters: the first category with a match wins
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (ContentCategory.REVIEW.value, ("product", "service", "quality", "recommend", "buy")),
    (ContentCategory.SUPPORT.value, ("help", "problem", "issue", "bug", "error")),
    (ContentCategory.FEEDBACK.value, ("suggest", "improve", "feature", "idea")),
)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def count_words(text: str) -> int:
    """Number of single-space separated segments."""
    return len(text.split(" "))


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """
    Most frequent tokens longer than 3 characters.

    Ties are broken by first appearance (Counter keeps insertion order and
    sorted() is stable).
    """
    tokens = [t for t in _NON_ALNUM.sub(" ", text.lower()).split() if len(t) > 3]
    counts = Counter(tokens)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [word for word, _ in ranked[:limit]]


class ContentAnalyzer:
    """
    Scores text for toxicity, sentiment, category and keywords.

    Usage:
    ------
    analyzer = ContentAnalyzer()
    result = analyzer.analyze("I hate this stupid thing", "comment")
    result.is_toxic  # True
    """

    def __init__(
        self,
        toxic_terms: tuple[str, ...] = TOXIC_TERMS,
        positive_terms: tuple[str, ...] = POSITIVE_TERMS,
        category_keywords: tuple[tuple[str, tuple[str, ...]], ...] = CATEGORY_KEYWORDS,
    ):
        self.toxic_terms = toxic_terms
        self.positive_terms = positive_terms
        self.category_keywords = category_keywords

    def analyze(self, text: str, category_hint: Optional[str] = None) -> AnalysisResult:
        """
        Analyze text. Never raises.

        Args:
            text: Content to score
            category_hint: Category supplied by the submitter

        Returns:
            AnalysisResult (``error`` set when scoring failed)
        """
        try:
            return self._score(text, category_hint)
        except Exception as e:
            logger.error(f"Content analysis failed, using neutral fallback: {e}")
            return self._fallback(text, category_hint, e)

    def _score(self, text: str, category_hint: Optional[str]) -> AnalysisResult:
        if not isinstance(text, str):
            raise AnalysisError(f"Expected text, got {type(text).__name__}")

        lowered = text.lower()

        toxicity = min(
            sum(TOXIC_WEIGHT for term in self.toxic_terms if term in lowered), 1.0
        )
        positivity = min(
            sum(POSITIVE_WEIGHT for term in self.positive_terms if term in lowered), 1.0
        )

        if positivity > toxicity and positivity > SENTIMENT_THRESHOLD:
            sentiment = Sentiment.POSITIVE
        elif toxicity > positivity and toxicity > SENTIMENT_THRESHOLD:
            sentiment = Sentiment.NEGATIVE
        else:
            sentiment = Sentiment.NEUTRAL

        confidence = min(
            0.5
            + 0.3 * min(len(text) / 200, 1.0)
            + (0.2 if toxicity > 0 else 0.0)
            + (0.1 if positivity > 0 else 0.0),
            MAX_CONFIDENCE,
        )

        return AnalysisResult(
            toxicity_score=round(toxicity, 2),
            positive_score=round(positivity, 2),
            sentiment=sentiment,
            category=self._resolve_category(lowered, category_hint),
            is_toxic=toxicity > TOXIC_THRESHOLD,
            confidence=round(confidence, 2),
            keywords=extract_keywords(text),
            word_count=count_words(text),
            language="en",
        )

    def _resolve_category(self, lowered: str, category_hint: Optional[str]) -> str:
        for category, keywords in self.category_keywords:
            if any(keyword in lowered for keyword in keywords):
                return category
        return category_hint or ContentCategory.GENERAL.value

    def _fallback(
        self,
        text: str,
        category_hint: Optional[str],
        error: Exception
    ) -> AnalysisResult:
        word_count = count_words(text) if isinstance(text, str) else 0
        return AnalysisResult(
            toxicity_score=0.0,
            positive_score=0.0,
            sentiment=Sentiment.NEUTRAL,
            category=category_hint or ContentCategory.GENERAL.value,
            is_toxic=False,
            confidence=FALLBACK_CONFIDENCE,
            keywords=[],
            word_count=word_count,
            language="en",
            error=str(error) or type(error).__name__,
        )
