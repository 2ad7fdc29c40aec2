"""FastAPI routes for customer outreach lists."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.database import get_db
from boutiqueflow.services.customers import (
    find_lapsed_customers,
    find_matching_customers,
    get_customer_profile,
)

router = APIRouter(prefix="/customers", tags=["customers"])


class CustomerResponse(BaseModel):
    """Customer purchase profile."""

    customer_id: str = Field(description="Heartland customer ID")
    first_name: str | None = Field(description="First name")
    last_name: str | None = Field(description="Last name")
    email: str | None = Field(description="Email address")
    phone: str | None = Field(description="Phone number")
    total_purchases: int = Field(description="Number of distinct tickets")
    lifetime_value: float = Field(description="Total spend")
    avg_purchase_value: float | None = Field(description="Average ticket value")
    first_purchase_at: datetime | None = Field(description="First purchase")
    last_purchase_at: datetime | None = Field(description="Most recent purchase")
    preferred_brands: list[str] | None = Field(description="Top brands by units")
    preferred_sizes: list[str] | None = Field(description="Top sizes by units")
    preferred_categories: list[str] | None = Field(description="Top categories by units")

    model_config = {"from_attributes": True}


class CustomerListResponse(BaseModel):
    """A filtered list of customers."""

    customers: list[CustomerResponse] = Field(description="Matching customers")
    total: int = Field(description="Number of customers returned")


def _to_list(profiles: list) -> CustomerListResponse:
    customers = [CustomerResponse.model_validate(profile) for profile in profiles]
    return CustomerListResponse(customers=customers, total=len(customers))


@router.get("/lapsed", response_model=CustomerListResponse)
async def get_lapsed_customers(
    db: Annotated[AsyncSession, Depends(get_db)],
    days: Annotated[int, Query(ge=1, description="Days since last purchase")] = 90,
    min_value: Annotated[
        float, Query(ge=0, description="Minimum lifetime value")
    ] = 0,
    limit: Annotated[int, Query(ge=1, le=500, description="Maximum customers")] = 100,
) -> CustomerListResponse:
    """Get customers who have not purchased in the last ``days`` days.

    Sorted by lifetime value descending.
    """
    profiles = await find_lapsed_customers(db, days, min_lifetime_value=min_value, limit=limit)
    return _to_list(list(profiles))


@router.get("/matches", response_model=CustomerListResponse)
async def get_matching_customers(
    db: Annotated[AsyncSession, Depends(get_db)],
    brand: Annotated[str | None, Query(description="Preferred brand")] = None,
    category: Annotated[str | None, Query(description="Preferred category")] = None,
    size: Annotated[str | None, Query(description="Preferred size")] = None,
    limit: Annotated[int, Query(ge=1, le=500, description="Maximum customers")] = 100,
) -> CustomerListResponse:
    """Get customers whose purchase preferences match the given filters."""
    try:
        profiles = await find_matching_customers(
            db, brand=brand, category=category, size=size, limit=limit
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _to_list(list(profiles))


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CustomerResponse:
    """Get a single customer's purchase profile."""
    profile = await get_customer_profile(db, customer_id)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Customer '{customer_id}' not found")
    return CustomerResponse.model_validate(profile)
