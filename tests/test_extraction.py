"""Tests for generic page extraction and validation."""
from datetime import datetime

import pytest

from newsentiment.core.models import ExtractedContent
from newsentiment.core.timeutils import IST
from newsentiment.crawler.extraction import (
    ContentExtractor,
    ValidationRules,
    normalize_text,
    parse_date,
)

ARTICLE_HTML = """
<html><head>
<title>  Infosys
   wins large   deal </title>
<meta name="description" content="Five year contract">
<meta name="keywords" content="Infosys, IT, deals">
<meta property="article:published_time" content="2024-01-15T10:30:00+05:30">
<meta name="author" content="Markets Desk">
<style>.x { color: red }</style>
</head><body>
<nav>Home | Markets</nav>
<article>
  Infosys has signed a five year digital transformation contract with a European bank,
  its largest deal this fiscal year, lifting revenue visibility for the next quarters.
  <script>trackView()</script>
</article>
</body></html>
"""


@pytest.fixture
def extractor() -> ContentExtractor:
    return ContentExtractor()


def _content(**overrides) -> ExtractedContent:
    fields = {
        "url": "https://example.com/a",
        "title": "Infosys wins large deal",
        "content": "x" * 150,
        "published_at": datetime(2024, 1, 15, tzinfo=IST),
        "author": "Desk",
    }
    fields.update(overrides)
    return ExtractedContent(**fields)


class TestExtract:
    """Tests for ContentExtractor.extract."""

    def test_fields(self, extractor: ContentExtractor):
        """Test title, body, meta and date extraction from a typical article."""
        extracted = extractor.extract(ARTICLE_HTML, "https://example.com/infosys")

        assert extracted.title == "Infosys wins large deal"
        assert extracted.content.startswith("Infosys has signed a five year")
        assert "trackView" not in extracted.content
        assert extracted.description == "Five year contract"
        assert extracted.keywords == ("Infosys", "IT", "deals")
        assert extracted.author == "Markets Desk"
        assert extracted.published_at == datetime(2024, 1, 15, 10, 30, tzinfo=IST)
        assert extracted.validation.is_valid is True

    def test_body_fallback(self, extractor: ContentExtractor):
        """Test that the whole body is used when no content container matches."""
        html = "<html><body><h1>Heading here</h1><div>Plain body text</div></body></html>"

        extracted = extractor.extract(html, "https://example.com")

        assert extracted.title == "Heading here"
        assert extracted.content == "Heading here Plain body text"

    def test_access_denied_page(self, extractor: ContentExtractor):
        """Test that a blocked page fails validation."""
        html = "<html><head><title>Access Denied</title></head><body><main>Access Denied</main></body></html>"

        extracted = extractor.extract(html, "https://example.com")

        assert extracted.validation.is_valid is False
        assert "Access denied to content" in extracted.validation.errors

    def test_marker_in_script_ignored(self, extractor: ContentExtractor, site_pages, urls):
        """Test that failure markers inside stripped scripts do not count."""
        html = site_pages[urls["mc_article"]]

        extracted = extractor.extract(html, urls["mc_article"])

        assert "Access denied to content" not in extracted.validation.errors

    def test_selectors_and_links(self, extractor: ContentExtractor):
        """Test selector maps and absolute link extraction."""
        html = """
        <div class="price">2,450.10</div>
        <a href="/news/1">One</a><a href="#top">Top</a>
        <a href="javascript:void(0)">JS</a><a href="/news/1">Again</a>
        """

        values = extractor.extract_with_selectors(html, {"price": ".price", "change": ".change"})
        links = extractor.extract_links(html, "https://example.com/list")

        assert values == {"price": "2,450.10", "change": ""}
        assert links == [("https://example.com/news/1", "One")]


class TestValidate:
    """Tests for ContentExtractor.validate."""

    def test_valid(self, extractor: ContentExtractor):
        """Test that complete content has no errors or warnings."""
        result = extractor.validate(_content())

        assert result.is_valid is True
        assert result.errors == ()
        assert result.warnings == ()

    def test_missing_title(self, extractor: ContentExtractor):
        """Test the required-title rule."""
        result = extractor.validate(_content(title=""))

        assert result.is_valid is False
        assert "Title is required" in result.errors

    def test_short_title_and_content(self, extractor: ContentExtractor):
        """Test minimum length rules."""
        result = extractor.validate(_content(title="Short", content="tiny"))

        assert "Title too short (minimum 10 characters)" in result.errors
        assert "Content too short (minimum 100 characters)" in result.errors

    def test_missing_url(self, extractor: ContentExtractor):
        """Test the required-URL rule."""
        result = extractor.validate(_content(url=""))

        assert result.errors == ("Source URL is required",)

    def test_warnings_do_not_invalidate(self, extractor: ContentExtractor):
        """Test that date, author and length overruns only warn."""
        rules = ValidationRules(require_author=True, max_content_length=120)
        result = extractor.validate(_content(published_at=None, author=None), rules)

        assert result.is_valid is True
        assert "Published date not found" in result.warnings
        assert "Author not found" in result.warnings
        assert "Content exceeds 120 characters" in result.warnings

    def test_rules_override(self, extractor: ContentExtractor):
        """Test that per-call rules replace the extractor defaults."""
        content = _content(content="y" * 60)

        assert extractor.validate(content).is_valid is False
        assert extractor.validate(content, ValidationRules(min_content_length=50)).is_valid is True

    def test_rules_from_settings(self, crawl_settings):
        """Test that settings map onto rules."""
        rules = ValidationRules.from_settings(crawl_settings)

        assert rules.min_title_length == 10
        assert rules.min_content_length == 100
        assert rules.require_author is False


class TestHelpers:
    """Tests for text and date helpers."""

    def test_normalize_text(self):
        """Test whitespace collapsing."""
        assert normalize_text("  a\n\t b   c ") == "a b c"
        assert normalize_text(None) == ""

    def test_parse_date_naive_is_ist(self):
        """Test that dates without a zone are read as IST."""
        assert parse_date("2024-01-15 09:15") == datetime(2024, 1, 15, 9, 15, tzinfo=IST)

    def test_parse_date_garbage(self):
        """Test that unparseable text gives None."""
        assert parse_date("no date here") is None
        assert parse_date("") is None
