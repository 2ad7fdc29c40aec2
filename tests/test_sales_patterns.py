"""Tests for sales pattern analysis."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

from boutiqueflow.services.sales_patterns import (
    TOP_GROUPS,
    SalesLine,
    build_sales_analysis,
    refresh_sales_analysis,
)


def make_lines() -> list[SalesLine]:
    """Two Saturday tickets and one Monday ticket."""
    return [
        SalesLine("T1", 5, 10, 2, 140.0, "Dresses", "Free People"),
        SalesLine("T1", 5, 10, 1, 30.0, "Jewelry", "Local Maker"),
        SalesLine("T2", 5, 14, 1, 70.0, "Dresses", "Free People"),
        SalesLine("T3", 0, 11, 3, 60.0, "Tops", None),
    ]


class TestBuildSalesAnalysis:
    """Tests for build_sales_analysis."""

    def test_totals(self) -> None:
        """Test transaction, unit and revenue totals."""
        analysis = build_sales_analysis(make_lines(), 365)

        assert analysis.window_days == 365
        assert analysis.totals.transactions == 3
        assert analysis.totals.units == 7
        assert analysis.totals.revenue == 300.0
        assert analysis.totals.avg_ticket == 100.0

    def test_every_weekday_present(self) -> None:
        """Test that weekdays with no sales report zeros."""
        analysis = build_sales_analysis(make_lines(), 365)
        days = {day.name: day for day in analysis.by_day_of_week}

        assert list(days) == [
            "Monday",
            "Tuesday",
            "Wednesday",
            "Thursday",
            "Friday",
            "Saturday",
            "Sunday",
        ]
        assert days["Saturday"].revenue == 240.0
        assert days["Saturday"].transactions == 2
        assert days["Monday"].units == 3
        assert days["Sunday"].revenue == 0.0

    def test_every_hour_present(self) -> None:
        """Test the 24 hour buckets."""
        analysis = build_sales_analysis(make_lines(), 365)

        assert len(analysis.by_hour) == 24
        assert analysis.by_hour[0].name == "00:00"
        assert analysis.by_hour[10].revenue == 170.0
        assert analysis.by_hour[23].transactions == 0

    def test_top_groups_by_revenue(self) -> None:
        """Test that categories and vendors are ranked by revenue."""
        analysis = build_sales_analysis(make_lines(), 365)

        assert [group.name for group in analysis.top_categories] == ["Dresses", "Tops", "Jewelry"]
        assert analysis.top_categories[0].revenue == 210.0
        # Lines without a vendor are not ranked
        assert [group.name for group in analysis.top_vendors] == ["Free People", "Local Maker"]

    def test_top_groups_capped(self) -> None:
        """Test that only the top groups are kept."""
        lines = [
            SalesLine(f"T{i}", 1, 12, 1, float(i + 1), f"Category {i}", "Vendor")
            for i in range(TOP_GROUPS + 5)
        ]
        analysis = build_sales_analysis(lines, 30)

        assert len(analysis.top_categories) == TOP_GROUPS
        assert analysis.top_categories[0].name == f"Category {TOP_GROUPS + 4}"

    def test_no_sales(self) -> None:
        """Test the zeroed snapshot when nothing sold."""
        analysis = build_sales_analysis([], 365)

        assert analysis.totals.transactions == 0
        assert analysis.totals.avg_ticket == 0.0
        assert len(analysis.by_day_of_week) == 7
        assert len(analysis.by_hour) == 24
        assert analysis.top_categories == []

    def test_wire_format(self) -> None:
        """Test the camelCase snapshot keys."""
        data = build_sales_analysis(make_lines(), 365).model_dump(by_alias=True)
        assert set(data) == {
            "windowDays",
            "totals",
            "byDayOfWeek",
            "byHour",
            "topCategories",
            "topVendors",
        }
        assert "avgTicket" in data["totals"]


class TestRefreshSalesAnalysis:
    """Tests for refresh_sales_analysis."""

    async def test_writes_snapshot(self) -> None:
        """Test that the computed snapshot is saved under its cache key."""
        mock_result = MagicMock()
        mock_result.__iter__.return_value = iter([])
        mock_session = AsyncMock()
        mock_session.execute.return_value = mock_result
        now = datetime(2026, 6, 1, tzinfo=UTC)

        with patch(
            "boutiqueflow.services.sales_patterns.save_snapshot", new_callable=AsyncMock
        ) as mock_save:
            analysis = await refresh_sales_analysis(mock_session, window_days=90, now=now)

        assert analysis.window_days == 90
        mock_save.assert_called_once()
        assert mock_save.call_args[0][1] == "sales_analysis"
        assert mock_save.call_args[1]["synced_at"] == now
