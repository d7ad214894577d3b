"""Tests for the command line interface."""
from contextlib import contextmanager
from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from newsentiment.app import cli_app
from newsentiment.core.errors import PoolInitError
from newsentiment.core.models import (
    AggregateResult,
    DateRange,
    SentimentBreakdown,
    SentimentScore,
    SourceStatus,
)
from newsentiment.core.timeutils import utcnow
from newsentiment.data.cache import MemoryCache, cache_key
from newsentiment.engine import open_engine

runner = CliRunner()


def _result() -> AggregateResult:
    return AggregateResult(
        ticker="RELIANCE",
        overall_sentiment=SentimentScore(label="positive", score=0.71, confidence=0.62, method="aggregate"),
        articles=(),
        total_articles=0,
        breakdown=SentimentBreakdown(),
        last_updated=utcnow(),
        message="No news articles found from any source",
        per_source_status={"moneycontrol": SourceStatus("moneycontrol", "empty")},
    )


def _patched_engine(get_sentiment):
    engine = MagicMock()
    engine.orchestrator.get_sentiment.side_effect = get_sentiment

    @contextmanager
    def _open(settings=None):
        yield engine

    return engine, patch("newsentiment.app.open_engine", _open)


class TestSentimentCommand:
    """Tests for the sentiment command."""

    def test_json_output(self):
        """Test that --json prints the result dictionary."""
        engine, patcher = _patched_engine(lambda *a: _result())
        with patcher:
            result = runner.invoke(cli_app, ["sentiment", "RELIANCE", "--json"])

        assert result.exit_code == 0
        assert '"ticker": "RELIANCE"' in result.output
        assert '"label": "positive"' in result.output
        ticker, date_range, limit = engine.orchestrator.get_sentiment.call_args[0]
        assert ticker == "RELIANCE"
        assert date_range.start is None
        assert limit == 20

    def test_table_output(self):
        """Test the human readable rendering."""
        _, patcher = _patched_engine(lambda *a: _result())
        with patcher:
            result = runner.invoke(cli_app, ["sentiment", "RELIANCE", "--limit", "5"])

        assert result.exit_code == 0
        assert "RELIANCE" in result.output
        assert "positive" in result.output

    def test_date_bounds(self):
        """Test that --to covers the whole day."""
        engine, patcher = _patched_engine(lambda *a: _result())
        with patcher:
            runner.invoke(cli_app, ["sentiment", "TCS", "--from", "2024-01-01", "--to", "2024-01-31"])

        date_range = engine.orchestrator.get_sentiment.call_args[0][1]
        assert date_range.start.day == 1
        assert (date_range.end.day, date_range.end.hour, date_range.end.minute) == (31, 23, 59)

    def test_invalid_ticker_exit_code(self):
        """Test that a rejected ticker exits with code 2."""

        def _reject(*args):
            raise ValueError("ticker must not be empty")

        _, patcher = _patched_engine(_reject)
        with patcher:
            result = runner.invoke(cli_app, ["sentiment", " "])

        assert result.exit_code == 2
        assert "ticker must not be empty" in result.output

    def test_setup_failure_exit_code(self):
        """Test that a pool that cannot start exits with code 1."""

        def _fail(*args):
            raise PoolInitError("browser failed to launch")

        _, patcher = _patched_engine(_fail)
        with patcher:
            result = runner.invoke(cli_app, ["sentiment", "RELIANCE"])

        assert result.exit_code == 1

    def test_cache_hit_needs_no_browser(self, make_factory):
        """Test that a cached answer is printed even when browsers cannot start."""
        factory = make_factory(fail_on_create=True)
        cache = MemoryCache()
        cache.set(cache_key("RELIANCE", DateRange(), 20), _result().to_dict())

        def _open(settings=None):
            return open_engine(settings, session_factory=factory, cache=cache)

        with patch("newsentiment.app.open_engine", _open):
            result = runner.invoke(cli_app, ["sentiment", "RELIANCE", "--json"])

        assert result.exit_code == 0
        assert '"ticker": "RELIANCE"' in result.output
        assert factory.created == []
        assert factory.closed is True


class TestOtherCommands:
    """Tests for sources, validate and health."""

    def test_sources(self):
        result = runner.invoke(cli_app, ["sources"])

        assert result.exit_code == 0
        assert "News sources" in result.output

    def test_validate(self):
        """Test that the default configuration validates."""
        result = runner.invoke(cli_app, ["validate"])

        assert result.exit_code == 0

    def test_health_json(self):
        """Test the health report without starting browsers."""
        factory = MagicMock()
        with patch("newsentiment.engine.PlaywrightSessionFactory", return_value=factory):
            result = runner.invoke(cli_app, ["health", "--json"])

        assert result.exit_code == 0
        assert '"status": "operational"' in result.output
        factory.create.assert_not_called()
