from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Type

from newsentiment.core.errors import ParserNotFound
from newsentiment.core.logger import get_logger
from newsentiment.core.models import Article, SearchResult, SourceConfig, ValidationResult
from newsentiment.parsers.base import (
    SourceParser,
    generic_is_stock_relevant,
    generic_stock_symbols,
)
from newsentiment.parsers.bse import BSEParser
from newsentiment.parsers.business_standard import BusinessStandardParser
from newsentiment.parsers.economic_times import EconomicTimesParser
from newsentiment.parsers.moneycontrol import MoneyControlParser
from newsentiment.parsers.nse import NSEParser

log = get_logger("parser_registry")

PARSER_CLASSES: Dict[str, Type[SourceParser]] = {
    cls.name: cls
    for cls in (
        MoneyControlParser,
        EconomicTimesParser,
        BusinessStandardParser,
        NSEParser,
        BSEParser,
    )
}

# Selectors every parser must define to be usable
REQUIRED_SELECTORS = ("search_results", "search_link", "title", "content")


class ParserRegistry:
    """Name-keyed source parsers with generic fallbacks for optional capabilities."""

    def __init__(self) -> None:
        self._parsers: Dict[str, SourceParser] = {}

    def register(self, parser: SourceParser) -> None:
        if not parser.name:
            raise ValueError(f"{type(parser).__name__} has no source name")
        self._parsers[parser.name] = parser
        log.debug(f"Parser registered: {parser.name} ({parser.document_kind})")

    def get(self, source: str) -> SourceParser:
        try:
            return self._parsers[source]
        except KeyError:
            raise ParserNotFound(source) from None

    def has(self, source: str) -> bool:
        return source in self._parsers

    def sources(self) -> List[str]:
        return sorted(self._parsers)

    def parse_search_results(self, source: str, html: str, page_url: str) -> List[SearchResult]:
        return self.get(source).parse_search_results(html, page_url)

    def parse_document(self, source: str, html: str, url: str) -> Optional[Article]:
        """Article or announcement, whichever the source publishes."""
        return self.get(source).parse_document(html, url)

    def extract_stock_symbols(self, source: str, text: str) -> List[str]:
        parser = self.get(source)
        own = getattr(parser, "extract_stock_symbols", None)
        return own(text) if own else generic_stock_symbols(text)

    def is_stock_relevant(self, source: str, text: str) -> bool:
        parser = self.get(source)
        own = getattr(parser, "is_stock_relevant", None)
        return own(text) if own else generic_is_stock_relevant(text)

    def validate_data(self, source: str, article: Article) -> ValidationResult:
        return self.get(source).validate_data(article)

    def get_config(self, source: str) -> dict:
        return self.get(source).get_config()

    def all_configs(self) -> Dict[str, dict]:
        return {name: parser.get_config() for name, parser in sorted(self._parsers.items())}

    def health(self) -> Dict[str, dict]:
        """Per-parser readiness: required selectors present, which capabilities are native."""
        report = {}
        for name, parser in sorted(self._parsers.items()):
            missing = [s for s in REQUIRED_SELECTORS if not getattr(parser.selectors, s, "")]
            report[name] = {
                "healthy": not missing,
                "missingSelectors": missing,
                "documentKind": parser.document_kind,
                "nativeSymbolExtraction": hasattr(parser, "extract_stock_symbols"),
                "nativeRelevanceCheck": hasattr(parser, "is_stock_relevant"),
            }
        return report


def create_default_registry(sources: Iterable[SourceConfig]) -> ParserRegistry:
    """Register a parser for every configured source that has one."""
    registry = ParserRegistry()
    for config in sources:
        parser_cls = PARSER_CLASSES.get(config.name)
        if parser_cls is None:
            log.warning(f"No parser implementation for source {config.name}")
            continue
        registry.register(parser_cls(config))
    return registry
