from __future__ import annotations

from newsentiment.parsers.base import NewsArticleParser, SelectorSet


class MoneyControlParser(NewsArticleParser):
    """moneycontrol.com news search and article pages.

    Dates read either "2 hours ago" on listings or
    "January 15, 2024 / 10:30 AM IST" on article pages.
    """

    name = "moneycontrol"
    selectors = SelectorSet(
        search_results=".search-result, .clearfix.newslist, li.clearfix, .news-list li",
        search_title=".search-result-title a, h2, h3, .title",
        search_link=".search-result-title a, h2 a, h3 a, a",
        search_summary=".search-result-desc, p, .desc",
        search_date=".search-result-date, .date, span.list_dt",
        title="h1.article_title, h1.artTitle, .article_title h1, h1",
        content=".content_wrapper, #contentdata, .arti-flow, .article_content, .article-body",
        meta=".article_schedule, .article-meta, .tags_first_line",
        date=".article_schedule, .schedule, .published-date, .date",
        author=".article_author, .author, .byline",
        tags=".tags_first_line a, .tag_wrap a, .tags",
        stock_symbol=".stock-symbol, .nse_bse_sec, .symbol",
        stock_price=".inprice1, .stock-price, .price",
        stock_change=".pricupdn, .stock-change, .change",
    )
    date_prefixes = (r"^(last\s+)?updated\s*:?\s*", r"^published\s*:?\s*")
    date_formats = (
        "%B %d, %Y / %I:%M %p",
        "%B %d, %Y %I:%M %p",
        "%b %d, %Y / %I:%M %p",
        "%b %d, %Y %I:%M %p",
        "%B %d, %Y",
        "%b %d, %Y",
    )
