"""Tests for per-source parsers and the parser registry."""
from datetime import datetime, timedelta, timezone

import pytest

from newsentiment.config import Settings
from newsentiment.core.errors import ParserNotFound
from newsentiment.core.models import Article
from newsentiment.core.timeutils import IST
from newsentiment.parsers.base import (
    generic_is_stock_relevant,
    generic_stock_symbols,
    parse_relative_date,
)
from newsentiment.parsers.registry import PARSER_CLASSES, ParserRegistry, create_default_registry


@pytest.fixture
def registry() -> ParserRegistry:
    return create_default_registry(Settings().source_configs())


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class TestDateNormalization:
    """Tests for each site's date formats."""

    def test_moneycontrol(self, registry):
        """Test MoneyControl article dates."""
        parser = registry.get("moneycontrol")

        assert parser.normalize_date("January 15, 2024 / 10:30 AM IST") == datetime(
            2024, 1, 15, 10, 30, tzinfo=IST
        )
        assert parser.normalize_date("Updated: Jan 15, 2024") == datetime(2024, 1, 15, tzinfo=IST)

    def test_economic_times(self, registry):
        """Test Economic Times 'Updated:' dates."""
        parser = registry.get("economic_times")

        assert parser.normalize_date("Updated: Jan 15, 2024, 10:30 AM IST") == datetime(
            2024, 1, 15, 10, 30, tzinfo=IST
        )

    def test_business_standard(self, registry):
        """Test Business Standard 'Last Updated at' dates."""
        parser = registry.get("business_standard")

        assert parser.normalize_date("Last Updated at : Jan 15, 2024 10:30 AM IST") == datetime(
            2024, 1, 15, 10, 30, tzinfo=IST
        )

    def test_nse_day_first(self, registry):
        """Test that NSE numeric dates are day first."""
        parser = registry.get("nse")

        assert parser.normalize_date("Date: 05/01/2024") == datetime(2024, 1, 5, tzinfo=IST)
        assert parser.normalize_date("15-Jan-2024 18:30") == datetime(2024, 1, 15, 18, 30, tzinfo=IST)

    def test_numeric_dates_month_first(self, registry):
        """Test that news sites read numeric dates month first."""
        parser = registry.get("moneycontrol")

        assert parser.normalize_date("05/06/2024") == datetime(2024, 5, 6, tzinfo=IST)
        assert parser.normalize_date("25/06/2024") == datetime(2024, 6, 25, tzinfo=IST)
        assert registry.get("nse").normalize_date("05/06/2024") == datetime(2024, 6, 5, tzinfo=IST)

    def test_bse(self, registry):
        """Test BSE announcement dates."""
        parser = registry.get("bse")

        assert parser.normalize_date("15 Jan 2024") == datetime(2024, 1, 15, tzinfo=IST)
        assert parser.normalize_date("15-01-2024 18:30:00") == datetime(2024, 1, 15, 18, 30, tzinfo=IST)

    def test_relative_dates(self, registry, fixed_now):
        """Test '... ago' and 'yesterday' forms on any site."""
        parser = registry.get("moneycontrol")

        assert parser.normalize_date("3 hours ago", fixed_now) == fixed_now - timedelta(hours=3)
        assert parser.normalize_date("10 mins ago", fixed_now) == fixed_now - timedelta(minutes=10)
        assert parser.normalize_date("Yesterday", fixed_now) == fixed_now - timedelta(days=1)
        assert parse_relative_date("2 weeks ago", fixed_now) == fixed_now - timedelta(weeks=2)

    def test_unparseable(self, registry):
        """Test that junk and empty input give None."""
        parser = registry.get("economic_times")

        assert parser.normalize_date("") is None
        assert parser.normalize_date("breaking news") is None


class TestSearchResults:
    """Tests for search page parsing."""

    def test_moneycontrol_search(self, registry, site_pages, urls):
        """Test MoneyControl listing items with relative dates."""
        results = registry.parse_search_results("moneycontrol", site_pages[urls["mc_search"]], urls["mc_search"])

        assert len(results) == 1
        result = results[0]
        assert result.url == urls["mc_article"]
        assert result.title == "Reliance shares surge on record profit"
        assert result.summary == "Retail and telecom lift the quarter."
        assert result.source == "moneycontrol"
        assert result.published_at is not None

    def test_nse_search(self, registry, site_pages, urls):
        """Test NSE announcement listings."""
        results = registry.parse_search_results("nse", site_pages[urls["nse_search"]], urls["nse_search"])

        assert [r.url for r in results] == [urls["nse_announcement"]]
        assert results[0].title == "Reliance Industries Ltd - Outcome of Board Meeting"
        assert results[0].summary == "Board approves results"

    def test_items_without_links_skipped(self, registry):
        """Test that unlinked items are ignored."""
        html = """
        <div class="search-result"><h3>No link here</h3></div>
        <div class="search-result"><h3><a href="/x">Linked story</a></h3></div>
        """

        results = registry.parse_search_results("business_standard", html, "https://www.business-standard.com/search")

        assert [r.title for r in results] == ["Linked story"]
        assert results[0].url == "https://www.business-standard.com/x"

    def test_at_most_ten(self, registry):
        """Test the per-page result cap."""
        html = "".join(
            f'<div class="news-item"><h2><a href="/story/{i}">Story number {i}</a></h2></div>'
            for i in range(15)
        )

        results = registry.parse_search_results("economic_times", html, "https://economictimes.indiatimes.com/search")

        assert len(results) == 10

    def test_empty_page(self, registry):
        """Test that a page without results gives an empty list."""
        assert registry.parse_search_results("nse", "<html><body>No results</body></html>", "https://x") == []

    def test_search_url(self, registry):
        """Test query encoding and per-site parameter names."""
        assert registry.get("moneycontrol").build_search_url("M&M") == (
            "https://www.moneycontrol.com/search?query=M%26M"
        )
        assert registry.get("bse").build_search_url("TCS") == "https://www.bseindia.com/search?q=TCS"


class TestDocuments:
    """Tests for article and announcement pages."""

    def test_moneycontrol_article(self, registry, site_pages, urls):
        """Test MoneyControl article fields."""
        article = registry.parse_document("moneycontrol", site_pages[urls["mc_article"]], urls["mc_article"])

        assert article.title == "Reliance shares surge on record profit"
        assert article.content.startswith("RELIANCE Industries shares surge")
        assert article.author == "Staff Reporter"
        assert article.summary == "Retail and telecom lift the quarter."
        assert article.published_at is not None
        assert article.source == "moneycontrol"

    def test_nse_announcement(self, registry, announcement_html, urls):
        """Test NSE announcement fields, tags and symbol."""
        day = datetime(2024, 1, 15, tzinfo=IST)
        article = registry.parse_document("nse", announcement_html(day), urls["nse_announcement"])

        assert article.title == "Reliance Industries Ltd - Outcome of Board Meeting"
        assert article.published_at == day
        assert article.tags == ("Board Meeting", "Ref: NSE/CML/2024/0042")
        assert article.stock_symbols == ("RELIANCE",)
        assert "interim dividend" in article.content

    def test_empty_document(self, registry):
        """Test that a page with neither title nor body gives None."""
        assert registry.parse_document("bse", "<html><body></body></html>", "https://x") is None

    def test_validate_data(self, registry):
        """Test per-site minimums and the relevance warning."""
        parser = registry.get("nse")
        short = Article(title="Tiny", content="too short", url="", source="nse")
        ok = Article(
            title="Board meeting outcome",
            content="The company informed the exchange about its quarterly results and a dividend.",
            url="https://www.nseindia.com/a",
            source="nse",
        )

        bad = parser.validate_data(short)
        good = parser.validate_data(ok)

        assert bad.errors == (
            "Title is too short or missing",
            "Content is too short or missing",
            "URL is missing",
        )
        assert good.is_valid is True
        assert good.warnings == ("Published date not found",)

    def test_config(self, registry):
        """Test parser config reporting."""
        config = registry.get_config("bse")

        assert config["sourceName"] == "bse"
        assert config["documentKind"] == "announcement"
        assert config["minContentLength"] == 50
        assert "stock_volume" in config["selectors"]


class TestRegistry:
    """Tests for ParserRegistry."""

    def test_all_sources_registered(self, registry):
        """Test that every known source has a parser."""
        assert registry.sources() == sorted(PARSER_CLASSES)

    def test_unknown_source(self, registry):
        """Test ParserNotFound."""
        with pytest.raises(ParserNotFound, match="Parser not found for source: reuters"):
            registry.get("reuters")

        assert registry.has("reuters") is False

    def test_generic_fallbacks(self, registry):
        """Test that parsers without their own symbol or relevance logic get the generic one."""
        text = "RELIANCE and TCS shares rose; THE market closed higher"

        assert hasattr(registry.get("moneycontrol"), "extract_stock_symbols") is False
        assert registry.extract_stock_symbols("moneycontrol", text) == ["RELIANCE", "TCS"]
        assert registry.is_stock_relevant("moneycontrol", text) is True

    def test_native_capabilities(self, registry):
        """Test the NSE-specific relevance vocabulary."""
        assert registry.is_stock_relevant("nse", "circular on listing norms") is True
        assert registry.is_stock_relevant("moneycontrol", "circular on listing norms") is False

    def test_health(self, registry):
        """Test the readiness report."""
        health = registry.health()

        assert all(entry["healthy"] for entry in health.values())
        assert health["nse"]["nativeRelevanceCheck"] is True
        assert health["bse"]["nativeSymbolExtraction"] is False

    def test_register_requires_name(self, registry):
        """Test that nameless parsers are rejected."""
        parser = registry.get("bse")
        parser.name = ""

        with pytest.raises(ValueError, match="has no source name"):
            registry.register(parser)


class TestGenericHelpers:
    """Tests for the generic symbol and relevance helpers."""

    def test_symbols_skip_stop_words_and_duplicates(self):
        assert generic_stock_symbols("THE INFY INFY AND HDFC") == ["INFY", "HDFC"]

    def test_symbol_limit(self):
        assert len(generic_stock_symbols("AAA BBB CCC DDD EEE FFF GGG")) == 5

    def test_relevance_needs_two_keywords(self):
        assert generic_is_stock_relevant("stock split announced") is True
        assert generic_is_stock_relevant("weather report") is False
        assert generic_is_stock_relevant(None) is False
