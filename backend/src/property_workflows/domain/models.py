"""SQLAlchemy ORM models for persisted workflow instances.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- Numeric for money, Date/DateTime for deadlines
- ``version`` is the optimistic-concurrency counter checked on every save
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from property_workflows.infra.database import Base


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


class TenancyRecord(Base):
    """A lease between a tenant and a landlord's property."""

    __tablename__ = "tenancies"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False, index=True)
    property_id = Column(String(36), nullable=False, index=True)
    landlord_id = Column(String(36), nullable=False, index=True)
    agency_id = Column(String(36), nullable=True)

    status = Column(String(30), nullable=False, default="active", index=True)  # TenancyStatus
    version = Column(Integer, nullable=False, default=1)

    lease_start = Column(Date, nullable=False)
    lease_end = Column(Date, nullable=False)
    rent_amount = Column(Numeric(12, 2), nullable=False)

    # Notice
    notice_reason = Column(String(30), nullable=True)  # NoticeReason
    notice_issued_at = Column(DateTime(timezone=True), nullable=True)
    notice_expires_at = Column(DateTime(timezone=True), nullable=True)
    legal_notes = Column(Text, nullable=False, default="")
    court_filing_required = Column(Boolean, nullable=False, default=False)

    # Termination
    voluntary = Column(Boolean, nullable=True)
    terminated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class MaintenanceRequestRecord(Base):
    """A repair job posted to the provider marketplace."""

    __tablename__ = "maintenance_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    property_id = Column(String(36), nullable=False, index=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    landlord_id = Column(String(36), nullable=True, index=True)

    status = Column(String(30), nullable=False, default="submitted", index=True)  # MaintenanceStatus
    version = Column(Integer, nullable=False, default=1)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False, default="General Repair")
    priority = Column(String(20), nullable=False, default="medium")  # MaintenancePriority
    is_emergency = Column(Boolean, nullable=False, default=False)
    estimated_cost = Column(Numeric(12, 2), nullable=True)
    payment_preference = Column(String(20), nullable=False, default="landlord")  # PaymentPreference
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Tenant review of the accepted provider, once completed
    provider_rating = Column(Integer, nullable=True)
    review = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    bids = relationship(
        "MaintenanceBidRecord",
        back_populates="request",
        order_by="MaintenanceBidRecord.submitted_at",
    )


class MaintenanceBidRecord(Base):
    """A provider's bid on a maintenance request. One per provider per request."""

    __tablename__ = "maintenance_bids"
    __table_args__ = (UniqueConstraint("request_id", "provider_id", name="uq_bid_provider"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(String(36), ForeignKey("maintenance_requests.id"), nullable=False, index=True)
    provider_id = Column(String(36), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    message = Column(Text, nullable=False, default="")
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    accepted = Column(Boolean, nullable=False, default=False)

    request = relationship("MaintenanceRequestRecord", back_populates="bids")


# ---------------------------------------------------------------------------
# Commission
# ---------------------------------------------------------------------------


class CommissionDealRecord(Base):
    """An agency deal tracked until its commission is paid.

    ``status`` is only ever 'pending' or 'paid'; overdue is derived on read.
    """

    __tablename__ = "commission_deals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agency_id = Column(String(36), nullable=False, index=True)

    status = Column(String(20), nullable=False, default="pending", index=True)  # CommissionStatus
    version = Column(Integer, nullable=False, default=1)

    deal_type = Column(String(20), nullable=False)  # DealType
    deal_value = Column(Numeric(14, 2), nullable=False)
    commission_rate = Column(Numeric(6, 3), nullable=False)
    closing_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False, index=True)

    property_address = Column(String(500), nullable=False, default="")
    property_type = Column(String(100), nullable=False, default="")
    client_name = Column(String(255), nullable=False, default="")

    payment_date = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class WorkflowEventRecord(Base):
    """Immutable audit trail entry for any workflow instance."""

    __tablename__ = "workflow_events"
    __table_args__ = (
        UniqueConstraint("workflow_kind", "instance_id", "sequence", name="uq_event_sequence"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    workflow_kind = Column(String(30), nullable=False)  # WorkflowKind
    instance_id = Column(String(36), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    action = Column(String(50), nullable=False)
    state = Column(String(30), nullable=False)
    actor_role = Column(String(20), nullable=False)  # ActorRole
    actor_id = Column(String(36), nullable=False)
    reason = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
