from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Protocol

from newsentiment.core.models import SentimentScore


class Classifier(Protocol):
    """Remote model returning ``[{"label": ..., "score": ...}]``, best first."""

    def classify(self, text: str, model: Optional[str] = None) -> List[dict]: ...


class Cache(Protocol):
    def get(self, key: str): ...

    def set(self, key: str, value, ttl_seconds: int) -> None: ...


class SentimentClient(ABC):
    """Turns a piece of news text into a SentimentScore."""

    @abstractmethod
    def analyze(self, text: str) -> SentimentScore:
        raise NotImplementedError

    def analyze_many(self, texts: Iterable[str]) -> List[SentimentScore]:
        return [self.analyze(text) for text in texts]
