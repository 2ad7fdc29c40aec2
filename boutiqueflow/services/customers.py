"""Filtered customer views over customer_profiles."""

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import cast, select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.models.customer_profile import CustomerProfile


async def find_lapsed_customers(
    session: AsyncSession,
    days: int,
    min_lifetime_value: Decimal | float = 0,
    limit: int = 100,
    as_of: datetime | None = None,
) -> Sequence[CustomerProfile]:
    """Customers whose last purchase is more than ``days`` days old.

    Highest lifetime value first, so the most valuable lapsed customers are
    contacted first.
    """
    if as_of is None:
        as_of = datetime.now(UTC)
    cutoff = as_of - timedelta(days=days)

    result = await session.execute(
        select(CustomerProfile)
        .where(CustomerProfile.last_purchase_at.is_not(None))
        .where(CustomerProfile.last_purchase_at < cutoff)
        .where(CustomerProfile.lifetime_value >= min_lifetime_value)
        .order_by(CustomerProfile.lifetime_value.desc(), CustomerProfile.customer_id)
        .limit(limit)
    )
    return result.scalars().all()


async def find_matching_customers(
    session: AsyncSession,
    brand: str | None = None,
    category: str | None = None,
    size: str | None = None,
    limit: int = 100,
) -> Sequence[CustomerProfile]:
    """Customers whose preferences include every given brand, category and size.

    Raises:
        ValueError: If no filter is given.
    """
    filters = [
        (CustomerProfile.preferred_brands, brand),
        (CustomerProfile.preferred_categories, category),
        (CustomerProfile.preferred_sizes, size),
    ]
    active = [(column, value) for column, value in filters if value]
    if not active:
        raise ValueError("At least one of brand, category or size is required")

    query = select(CustomerProfile)
    for column, value in active:
        query = query.where(cast(column, JSONB).contains([value]))
    query = query.order_by(
        CustomerProfile.lifetime_value.desc(),
        CustomerProfile.customer_id,
    ).limit(limit)

    result = await session.execute(query)
    return result.scalars().all()


async def get_customer_profile(
    session: AsyncSession,
    customer_id: str,
) -> CustomerProfile | None:
    """Fetch a single customer profile."""
    result = await session.execute(
        select(CustomerProfile).where(CustomerProfile.customer_id == customer_id)
    )
    return result.scalar_one_or_none()
