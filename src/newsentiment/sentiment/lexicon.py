from __future__ import annotations

import re
from collections import Counter
from typing import Dict, FrozenSet

from newsentiment.core.models import SentimentScore
from newsentiment.sentiment.base import SentimentClient

POSITIVE = frozenset({
    "bullish", "surge", "rally", "gain", "profit", "growth", "increase", "positive",
    "strong", "upbeat", "optimistic", "favorable", "excellent", "outperform", "beat",
    "exceed", "rise", "climb", "jump", "soar", "breakthrough", "milestone", "record",
    "high", "peak", "success", "expansion", "acquisition", "partnership", "innovation",
    "efficiency",
})

NEGATIVE = frozenset({
    "bearish", "decline", "fall", "drop", "loss", "decrease", "negative", "weak",
    "downbeat", "pessimistic", "unfavorable", "poor", "underperform", "miss", "below",
    "sink", "plunge", "crash", "downturn", "recession", "bankruptcy", "default",
    "delinquency", "restructuring", "layoff", "closure", "shutdown", "recall",
    "violation", "penalty", "fine",
})

NEUTRAL = frozenset({
    "stable", "steady", "maintain", "hold", "unchanged", "flat", "sideways",
    "consolidate", "range", "support", "resistance", "technical", "fundamental",
    "analysis", "report", "quarterly", "annual", "earnings", "revenue", "guidance",
    "outlook", "forecast", "projection", "estimate", "target",
})

_WORD = re.compile(r"[a-z]+")

SCORE_PER_MATCH = 0.1
MAX_SCORE = 0.8
BASE_CONFIDENCE = 0.5
CONFIDENCE_PER_MATCH = 0.05
MAX_CONFIDENCE = 0.9
NEUTRAL_CONFIDENCE = 0.6


class KeywordSentiment(SentimentClient):
    """Financial term counting, used when the model is unavailable.

    Whole words only, so "fine" does not fire on "finest". The list with the
    most hits wins outright; any tie is neutral. Scores are signed (-0.8..0.8).
    """

    def __init__(
        self,
        positive: FrozenSet[str] = POSITIVE,
        negative: FrozenSet[str] = NEGATIVE,
        neutral: FrozenSet[str] = NEUTRAL,
    ):
        self.lexicons: Dict[str, FrozenSet[str]] = {
            "positive": positive,
            "negative": negative,
            "neutral": neutral,
        }

    def counts(self, text: str) -> Dict[str, int]:
        words = Counter(_WORD.findall((text or "").lower()))
        return {
            label: sum(words[w] for w in lexicon)
            for label, lexicon in self.lexicons.items()
        }

    def analyze(self, text: str) -> SentimentScore:
        counts = self.counts(text)
        best = max(counts.values())
        leaders = [label for label, count in counts.items() if count == best]

        if best == 0 or len(leaders) > 1 or leaders[0] == "neutral":
            return SentimentScore(
                label="neutral",
                score=0.0,
                confidence=NEUTRAL_CONFIDENCE,
                method="keyword",
                signed=True,
            )

        label = leaders[0]
        sign = 1.0 if label == "positive" else -1.0
        return SentimentScore(
            label=label,
            score=sign * min(best * SCORE_PER_MATCH, MAX_SCORE),
            confidence=min(BASE_CONFIDENCE + CONFIDENCE_PER_MATCH * best, MAX_CONFIDENCE),
            method="keyword",
            signed=True,
        )
