"""Sales pattern analysis over sale_events.

Aggregates revenue, units and ticket counts by weekday, by hour of day and
by category/vendor into the sales_analysis snapshot.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pandas as pd
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.config import settings
from boutiqueflow.models.analysis_cache import SALES_ANALYSIS_KEY
from boutiqueflow.models.sale_event import SaleEvent
from boutiqueflow.services.snapshots import (
    SalesAnalysis,
    SalesBreakdown,
    SalesTotals,
    save_snapshot,
)

logger = logging.getLogger(__name__)

TOP_GROUPS = 10


@dataclass(frozen=True)
class SalesLine:
    """The sale_events columns the sales analysis reads."""

    ticket_id: str
    day_of_week: int
    hour_of_day: int
    quantity: int
    total_amount: float
    category: str | None = None
    vendor: str | None = None


def _breakdown(frame: pd.DataFrame, column: str) -> pd.DataFrame:
    """Revenue, units and distinct tickets per value of ``column``."""
    return frame.groupby(column).agg(
        revenue=("total_amount", "sum"),
        units=("quantity", "sum"),
        transactions=("ticket_id", "nunique"),
    )


def _to_breakdowns(grouped: pd.DataFrame, labels: dict | None = None) -> list[SalesBreakdown]:
    return [
        SalesBreakdown(
            name=labels[key] if labels else str(key),
            revenue=round(float(row["revenue"]), 2),
            units=int(row["units"]),
            transactions=int(row["transactions"]),
        )
        for key, row in grouped.iterrows()
    ]


def build_sales_analysis(lines: list[SalesLine], window_days: int) -> SalesAnalysis:
    """Compute the sales_analysis snapshot from sale lines.

    Every weekday and every hour appears in the output, with zeros where
    nothing sold. Category and vendor rankings keep the top TOP_GROUPS by
    revenue.
    """
    weekday_labels = dict(enumerate(calendar.day_name))
    hour_labels = {hour: f"{hour:02d}:00" for hour in range(24)}

    if not lines:
        empty = {"revenue": 0.0, "units": 0, "transactions": 0}
        return SalesAnalysis(
            window_days=window_days,
            totals=SalesTotals(transactions=0, units=0, revenue=0.0, avg_ticket=0.0),
            by_day_of_week=[
                SalesBreakdown(name=label, **empty) for label in weekday_labels.values()
            ],
            by_hour=[SalesBreakdown(name=label, **empty) for label in hour_labels.values()],
            top_categories=[],
            top_vendors=[],
        )

    frame = pd.DataFrame.from_records([line.__dict__ for line in lines])

    by_day = (
        _breakdown(frame, "day_of_week")
        .reindex(range(7), fill_value=0)
    )
    by_hour = (
        _breakdown(frame, "hour_of_day")
        .reindex(range(24), fill_value=0)
    )

    categories = _breakdown(frame[frame["category"].notna()], "category")
    categories = categories.sort_values("revenue", ascending=False, kind="mergesort").head(TOP_GROUPS)
    vendors = _breakdown(frame[frame["vendor"].notna()], "vendor")
    vendors = vendors.sort_values("revenue", ascending=False, kind="mergesort").head(TOP_GROUPS)

    transactions = int(frame["ticket_id"].nunique())
    revenue = float(frame["total_amount"].sum())

    return SalesAnalysis(
        window_days=window_days,
        totals=SalesTotals(
            transactions=transactions,
            units=int(frame["quantity"].sum()),
            revenue=round(revenue, 2),
            avg_ticket=round(revenue / transactions, 2) if transactions else 0.0,
        ),
        by_day_of_week=_to_breakdowns(by_day, weekday_labels),
        by_hour=_to_breakdowns(by_hour, hour_labels),
        top_categories=_to_breakdowns(categories),
        top_vendors=_to_breakdowns(vendors),
    )


async def load_sales_lines(session: AsyncSession, since: datetime) -> list[SalesLine]:
    """Read sale events on or after ``since``."""
    result = await session.execute(
        select(
            SaleEvent.ticket_id,
            SaleEvent.day_of_week,
            SaleEvent.hour_of_day,
            SaleEvent.quantity,
            SaleEvent.total_amount,
            SaleEvent.category,
            SaleEvent.vendor,
        ).where(SaleEvent.sold_at >= since)
    )
    return [
        SalesLine(
            ticket_id=row.ticket_id,
            day_of_week=row.day_of_week,
            hour_of_day=row.hour_of_day,
            quantity=row.quantity or 0,
            total_amount=float(row.total_amount or Decimal("0")),
            category=row.category,
            vendor=row.vendor,
        )
        for row in result
    ]


async def refresh_sales_analysis(
    session: AsyncSession,
    window_days: int | None = None,
    now: datetime | None = None,
) -> SalesAnalysis:
    """Recompute and store the sales_analysis snapshot."""
    if window_days is None:
        window_days = settings.sales_lookback_days
    if now is None:
        now = datetime.now(UTC)

    lines = await load_sales_lines(session, now - timedelta(days=window_days))
    analysis = build_sales_analysis(lines, window_days)
    await save_snapshot(session, SALES_ANALYSIS_KEY, analysis, synced_at=now)

    logger.info(
        "Sales analysis: %d transactions, $%.2f revenue over %d days",
        analysis.totals.transactions,
        analysis.totals.revenue,
        window_days,
    )
    return analysis
