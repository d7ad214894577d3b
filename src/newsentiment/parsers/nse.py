from __future__ import annotations

from typing import List

from newsentiment.parsers.base import (
    FINANCE_KEYWORDS,
    AnnouncementParser,
    SelectorSet,
    generic_is_stock_relevant,
    generic_stock_symbols,
)

NSE_KEYWORDS = FINANCE_KEYWORDS + (
    "announcement", "circular", "notice", "regulation", "compliance",
    "listing", "delisting", "suspension", "resumption",
)


class NSEParser(AnnouncementParser):
    """nseindia.com corporate announcements and circulars ("Date: 15/01/2024")."""

    name = "nse"
    selectors = SelectorSet(
        search_results=".search-result, .news-item, .announcement-item, .circular-item",
        search_title="h1, h2, h3, .title, .headline, .announcement-title",
        search_link="a",
        search_summary=".summary, .description, .excerpt, .announcement-summary, p",
        search_date=".date, .release-date",
        title="h1.announcement_title, .announcement_title h1, .circular-title, .main-title",
        content=".announcement_content, .announcement-body, .circular-content, .content-body",
        meta=".announcement_meta, .announcement-meta, .circular-meta, .meta-info",
        date=".announcement_date, .date, .published-date, .release-date",
        author="",
        tags="",
        document_type=".announcement_type, .type, .category, .announcement-category",
        document_number=".announcement_number, .number, .circular-number, .ref-number",
        stock_symbol=".stock-symbol, .symbol, .ticker, .scrip-code, .security-code",
        stock_price=".stock-price, .price, .current-price, .last-traded-price",
        stock_change=".stock-change, .change, .price-change, .change-value",
        stock_volume=".stock-volume, .volume, .traded-volume, .quantity",
    )
    date_prefixes = (r"^date\s*:?\s*", r"^dated\s*:?\s*")
    date_formats = (
        "%d/%m/%Y",
        "%d-%m-%Y",
        "%d-%b-%Y %H:%M:%S",
        "%d-%b-%Y %H:%M",
        "%d-%b-%Y",
        "%d %b %Y",
    )

    def extract_stock_symbols(self, text: str) -> List[str]:
        return generic_stock_symbols(text)

    def is_stock_relevant(self, text: str) -> bool:
        return generic_is_stock_relevant(text, NSE_KEYWORDS)
