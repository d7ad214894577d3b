from __future__ import annotations

from typing import List

from newsentiment.parsers.base import (
    FINANCE_KEYWORDS,
    NewsArticleParser,
    SelectorSet,
    generic_is_stock_relevant,
    generic_stock_symbols,
)

BS_KEYWORDS = FINANCE_KEYWORDS + (
    "economy", "financial", "business", "corporate", "company",
    "industry", "sector", "capital", "equity",
)


class BusinessStandardParser(NewsArticleParser):
    """business-standard.com ("Last Updated at : Jan 15, 2024 10:30 AM IST")."""

    name = "business_standard"
    selectors = SelectorSet(
        search_results=".search-result, .news-item, .story-item, .article-item",
        search_title="h1, h2, h3, .title, .headline, .article-title",
        search_link="a",
        search_summary=".summary, .description, .excerpt, .article-summary, p",
        search_date=".date, .publish-date, time",
        title="h1.article_title, .article_title h1, .artTitle, .main-title",
        content=".article_content, .article-body, .story-content, .article-content",
        meta=".article_meta, .article-meta, .story-meta, .article-meta-info",
        date=".article_date, .date, .published-date, .publish-date",
        author=".author, .byline, .writer, .author-name",
        tags=".tags, .keywords, .categories, .article-tags",
        stock_symbol=".stock-symbol, .symbol, .ticker, .scrip-code",
        stock_price=".stock-price, .price, .current-price, .market-price",
        stock_change=".stock-change, .change, .price-change, .price-change-value",
    )
    date_prefixes = (r"^last\s+updated\s+at\s*:?\s*", r"^first\s+published\s*:?\s*")
    date_formats = (
        "%b %d, %Y %I:%M %p",
        "%b %d, %Y | %I:%M %p",
        "%B %d, %Y %I:%M %p",
        "%b %d, %Y",
    )

    def extract_stock_symbols(self, text: str) -> List[str]:
        return generic_stock_symbols(text)

    def is_stock_relevant(self, text: str) -> bool:
        return generic_is_stock_relevant(text, BS_KEYWORDS)
