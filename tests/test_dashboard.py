"""
Tests for dashboard view-model assembly.
"""

from datetime import datetime, timedelta

import pytest

from conftest import make_event
from copilot_usage.config.loader import AnalyzerConfig, DashboardConfig
from copilot_usage.core.dashboard import build_dashboard, build_record_table
from copilot_usage.core.pipeline import ingest


class TestBuildDashboard:
    """Test the full dashboard for a collection."""

    def test_stat_cards(self, sample_csv):
        events = ingest(sample_csv).events

        stats = build_dashboard(events).stats

        assert stats.total_users == 3
        assert stats.total_requests == 415
        assert stats.total_models == 3
        assert stats.avg_requests_per_user == pytest.approx(415 / 3)
        assert stats.daily_average == pytest.approx(415 / 6)
        assert stats.most_popular_model == "gpt-4o"
        assert stats.peak_hour.hour == 14

    def test_growth_uses_configured_period(self, sample_csv):
        events = ingest(sample_csv).events

        growth = build_dashboard(events).stats.growth

        # Windows end at the 06-28 11:00 event; the 06-20 row falls in the previous week
        assert growth.period_days == 7
        assert growth.current == 5
        assert growth.previous == 100
        assert growth.growth_percentage == pytest.approx(-95.0)

    def test_chart_view_models(self, sample_csv):
        events = ingest(sample_csv).events
        config = AnalyzerConfig(dashboard=DashboardConfig(top_models=2, top_users=1, trend_days=7))

        dashboard = build_dashboard(events, config)

        assert dashboard.top_models == [("gpt-4o", 255), ("claude-sonnet-4", 120)]
        assert dashboard.top_users == [("alice", 350)]
        assert dashboard.daily[0] == ("2025-06-01", 100)
        assert dashboard.cumulative[-1] == ("2025-06-28", 415)
        assert sum(dashboard.hourly) == 415
        assert sum(dashboard.weekday) == 415
        assert set(dashboard.model_trends) == {"gpt-4o"}

    def test_empty_collection_is_zeroed(self):
        """Test that an empty filtered view yields zeroed view-models."""
        dashboard = build_dashboard([])
        stats = dashboard.stats

        assert stats.total_users == 0
        assert stats.total_requests == 0
        assert stats.avg_requests_per_user == 0
        assert stats.daily_average == 0
        assert stats.most_popular_model is None
        assert stats.peak_hour.hour is None
        assert stats.growth.growth_percentage == 0.0
        assert dashboard.daily == []
        assert dashboard.top_models == []
        assert dashboard.model_trends == {}
        assert dashboard.hourly == [0.0] * 24


class TestRecordTable:
    """Test record table formatting."""

    def test_rows_are_formatted(self):
        event = make_event(datetime(2025, 6, 1, 9, 5), requests=1234, exceeds=True)

        table = build_record_table([event])

        row = table.rows[0]
        assert row.timestamp == "2025-06-01 09:05:00"
        assert row.requests == "1,234"
        assert row.exceeds_quota == "TRUE"
        assert row.monthly_quota == "300"
        assert not table.truncated
        assert table.note == ""

    def test_fractional_requests(self):
        table = build_record_table([make_event(datetime(2025, 6, 1), requests=2.5)])
        assert table.rows[0].requests == "2.50"

    def test_truncated_note(self):
        start = datetime(2025, 6, 1)
        events = [make_event(start + timedelta(minutes=i)) for i in range(150)]

        table = build_record_table(events)

        assert len(table.rows) == 100
        assert table.total == 150
        assert table.truncated
        assert table.note == "Showing first 100 rows of 150 total rows"
