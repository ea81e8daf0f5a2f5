"""Shared test infrastructure for the Property Workflows test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- now / clock: a fixed reference instant, never the wall clock
- actors: landlord, tenant, agency and two maintenance providers
- make_tenancy / make_request / make_deal: factories for fresh instances
- lifecycles: one of each workflow bound to the default policy
"""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Import Base first, then models to register all tables
from property_workflows.infra.database import Base, build_engine, init_db

import property_workflows.domain.models  # noqa: F401

from property_workflows.domain.enums import ActorRole, DealType
from property_workflows.domain.instances import Actor
from property_workflows.services.clock import FixedClock
from property_workflows.services.commission_ledger import CommissionLedger, record_deal
from property_workflows.services.deadline_policy import DeadlinePolicy
from property_workflows.services.maintenance_workflow import MaintenanceWorkflow, submit_request
from property_workflows.services.tenancy_lifecycle import TenancyLifecycle, open_tenancy

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

LANDLORD = Actor(ActorRole.LANDLORD, "landlord-1")
TENANT = Actor(ActorRole.TENANT, "tenant-1")
AGENCY = Actor(ActorRole.AGENCY, "agency-1")
PROVIDER_A = Actor(ActorRole.MAINTENANCE, "provider-a")
PROVIDER_B = Actor(ActorRole.MAINTENANCE, "provider-b")


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = build_engine("sqlite+aiosqlite://")
    await init_db(engine)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Clock, policy and lifecycles
# ---------------------------------------------------------------------------

@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def policy():
    return DeadlinePolicy()


@pytest.fixture
def tenancy_lifecycle(policy):
    return TenancyLifecycle(policy)


@pytest.fixture
def maintenance(policy):
    return MaintenanceWorkflow(policy)


@pytest.fixture
def ledger():
    return CommissionLedger()


# ---------------------------------------------------------------------------
# Instance factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_tenancy():
    """Factory for an active tenancy owned by LANDLORD and managed by AGENCY.

    Usage:
        tenancy = make_tenancy(rent_amount="1800")
    """
    def _factory(**overrides):
        fields = {
            "tenant_id": TENANT.id,
            "property_id": "property-1",
            "landlord_id": LANDLORD.id,
            "agency_id": AGENCY.id,
            "lease_start": date(2025, 9, 1),
            "lease_end": date(2026, 8, 31),
            "rent_amount": "1500",
            "actor": LANDLORD,
            "now": NOW,
        }
        fields.update(overrides)
        return open_tenancy(**fields)

    return _factory


@pytest.fixture
def make_request():
    """Factory for a submitted maintenance request raised by TENANT."""
    def _factory(**overrides):
        fields = {
            "property_id": "property-1",
            "tenant_id": TENANT.id,
            "landlord_id": LANDLORD.id,
            "title": "Leaking kitchen tap",
            "description": "Drips constantly under the sink",
            "category": "Plumbing",
            "actor": TENANT,
            "now": NOW,
        }
        fields.update(overrides)
        return submit_request(**fields)

    return _factory


@pytest.fixture
def make_deal():
    """Factory for a pending lease commission deal recorded by AGENCY."""
    def _factory(**overrides):
        fields = {
            "agency_id": AGENCY.id,
            "deal_type": DealType.LEASE,
            "deal_value": "24000",
            "commission_rate": "8",
            "closing_date": date(2026, 2, 15),
            "due_date": date(2026, 3, 15),
            "client_name": "J. Smith",
            "actor": AGENCY,
            "now": NOW,
        }
        fields.update(overrides)
        return record_deal(**fields)

    return _factory
