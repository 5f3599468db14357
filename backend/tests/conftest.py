"""Shared test infrastructure for the LeaseHub matching test suite.

Provides:
- session_factory: async sessionmaker over a fresh SQLite file database
- db_session: one session from that factory with all tables created
- make_user / make_business / make_metrics: factories for the account side
- make_demand / make_property: factories for listings
- auth_header: builds a Bearer header for a user
"""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from leasehub.infra.database import Base

import leasehub.domain.models  # noqa: F401

from leasehub.domain.models import (
    Business,
    BusinessMetrics,
    DemandListing,
    PropertyListing,
    User,
)
from leasehub.services.auth_service import create_access_token


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_engine(tmp_path):
    """Async SQLite engine on a per-test file.

    A file (rather than ``:memory:``) lets several sessions run side by
    side, the way the orchestrator and the routes open their own.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'leasehub_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Session with all tables created; rolled back after the test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Account factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory that creates a User row.

    Usage:
        user = await make_user(subscription_tier="starter")
    """
    async def _factory(
        role: str = "tenant",
        subscription_tier: str = "professional",
        name: str = "Test Tenant",
        is_active: bool = True,
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=f"{uuid.uuid4().hex[:8]}@test.com",
            name=name,
            role=role,
            subscription_tier=subscription_tier,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _factory


@pytest.fixture
def make_business(db_session):
    async def _factory(user: User, status: str = "active", name: str = "Corner Cafe") -> Business:
        business = Business(
            id=str(uuid.uuid4()),
            user_id=user.id,
            name=name,
            category="restaurant",
            status=status,
        )
        db_session.add(business)
        await db_session.flush()
        return business

    return _factory


@pytest.fixture
def make_metrics(db_session):
    async def _factory(
        business: Business,
        views_count: int = 0,
        messages_count: int = 0,
        property_invites_count: int = 0,
    ) -> BusinessMetrics:
        metrics = BusinessMetrics(
            id=str(uuid.uuid4()),
            business_id=business.id,
            views_count=views_count,
            messages_count=messages_count,
            property_invites_count=property_invites_count,
        )
        db_session.add(metrics)
        await db_session.flush()
        return metrics

    return _factory


# ---------------------------------------------------------------------------
# Listing factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_demand(db_session):
    """Factory that creates a DemandListing.

    Usage:
        demand = await make_demand(business, city="Austin", sqft_min=1000)
    """
    async def _factory(
        business: Business,
        city: str = "Austin",
        state: str = "TX",
        asset_type: str = "retail",
        sqft_min: int | None = 1000,
        sqft_max: int | None = 2000,
        budget_min: float | None = 2000,
        budget_max: float | None = 5000,
        amenities: list | None = None,
        locations_of_interest: list | None = None,
        status: str = "active",
    ) -> DemandListing:
        demand = DemandListing(
            id=str(uuid.uuid4()),
            business_id=business.id,
            title="Looking for space",
            city=city,
            state=state,
            asset_type=asset_type,
            sqft_min=sqft_min,
            sqft_max=sqft_max,
            budget_min=budget_min,
            budget_max=budget_max,
            amenities=amenities or [],
            locations_of_interest=locations_of_interest or [],
            status=status,
        )
        db_session.add(demand)
        await db_session.flush()
        return demand

    return _factory


@pytest.fixture
def make_property(db_session):
    """Factory that creates a PropertyListing owned by *owner*.

    Usage:
        prop = await make_property(landlord, sqft=1500, asking_price=3500)
    """
    async def _factory(
        owner: User,
        city: str = "Austin",
        state: str = "TX",
        property_type: str = "retail",
        sqft: int | None = 1500,
        asking_price: float | None = 3500,
        amenities: list | None = None,
        status: str = "active",
    ) -> PropertyListing:
        prop = PropertyListing(
            id=str(uuid.uuid4()),
            user_id=owner.id,
            title="Storefront",
            address="100 Congress Ave",
            city=city,
            state=state,
            property_type=property_type,
            sqft=sqft,
            asking_price=asking_price,
            amenities=amenities or [],
            status=status,
        )
        db_session.add(prop)
        await db_session.flush()
        return prop

    return _factory


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

@pytest.fixture
def auth_header():
    def _factory(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}

    return _factory
