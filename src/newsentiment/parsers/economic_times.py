from __future__ import annotations

from typing import List

from newsentiment.parsers.base import (
    FINANCE_KEYWORDS,
    NewsArticleParser,
    SelectorSet,
    generic_is_stock_relevant,
    generic_stock_symbols,
)

ET_KEYWORDS = FINANCE_KEYWORDS + (
    "economy", "financial", "business", "corporate", "company",
)


class EconomicTimesParser(NewsArticleParser):
    """economictimes.indiatimes.com ("Updated: Jan 15, 2024, 10:30 AM IST")."""

    name = "economic_times"
    selectors = SelectorSet(
        search_results=".search-result, .news-item, .story-item, .eachStory",
        search_title="h1, h2, h3, .title, .headline, .storyTitle",
        search_link="a",
        search_summary=".summary, .description, .excerpt, .storySum, p",
        search_date=".date-format, time, .publishOn",
        title="h1.article_title, .article_title h1, .artTitle, .pageTitle",
        content=".article_content, .article-body, .story-content, .Normal",
        meta=".article_meta, .article-meta, .story-meta, .metaData",
        date=".article_date, .date, .published-date, .publishOn",
        author=".author, .byline, .writer, .byLine",
        tags=".tags, .keywords, .categories, .tagList",
        stock_symbol=".stock-symbol, .symbol, .ticker, .scripCode",
        stock_price=".stock-price, .price, .current-price, .ltp",
        stock_change=".stock-change, .change, .price-change, .changeValue",
    )
    date_prefixes = (r"^(last\s+)?updated\s*:?\s*", r"^published\s*:?\s*")
    date_formats = (
        "%b %d, %Y, %I:%M %p",
        "%b %d, %Y %I:%M %p",
        "%B %d, %Y, %I:%M %p",
        "%b %d, %Y",
        "%d %b %Y, %I:%M %p",
    )

    def extract_stock_symbols(self, text: str) -> List[str]:
        return generic_stock_symbols(text)

    def is_stock_relevant(self, text: str) -> bool:
        return generic_is_stock_relevant(text, ET_KEYWORDS)
