from __future__ import annotations

from newsentiment.parsers.base import AnnouncementParser, SelectorSet


class BSEParser(AnnouncementParser):
    """bseindia.com corporate announcements ("15 Jan 2024", "15-01-2024 18:30:00")."""

    name = "bse"
    selectors = SelectorSet(
        search_results=".announcement-item, .ann-row, .news-item, .search-result",
        search_title=".ann-title, .announcement-title, h3, h4, .title",
        search_link="a",
        search_summary=".ann-summary, .summary, p",
        search_date=".ann-date, .date",
        title="h1.announcement-title, .ann-title h1, .main-title, h1",
        content=".announcement-content, .ann-body, .content-body, #ContentPlaceHolder1_lblann",
        meta=".announcement-meta, .ann-meta, .meta-info",
        date=".ann-date, .announcement-date, .date, .published-date",
        author="",
        tags="",
        document_type=".ann-category, .category, .announcement-type",
        document_number=".ann-ref, .ref-number, .scrip-code",
        stock_symbol=".scrip-id, .security-id, .stock-symbol, .symbol",
        stock_price=".ltp, .stock-price, .price",
        stock_change=".chg, .stock-change, .change",
        stock_volume=".volume, .traded-volume",
    )
    date_prefixes = (r"^(exchange\s+)?(received|disseminat\w+)\s+time\s*:?\s*", r"^date\s*:?\s*")
    date_formats = (
        "%d-%m-%Y %H:%M:%S",
        "%d/%m/%Y %H:%M:%S",
        "%d-%m-%Y",
        "%d/%m/%Y",
        "%A, %d %b %Y",
        "%d %b %Y",
        "%d %B %Y",
    )
