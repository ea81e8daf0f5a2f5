"""Workflow store — persistence for workflow instances with optimistic concurrency.

Each saved instance carries the ``version`` it was loaded at. ``save`` only
succeeds when the stored version still matches (compare-and-swap); otherwise
it reports a conflict and the caller must reload. This is what keeps two
racing ``accept_bid`` requests from both succeeding.

Two implementations share the interface:
- InMemoryWorkflowStore for tests and single-process tools
- SqlWorkflowStore over an async SQLAlchemy session
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from property_workflows.domain.enums import (
    ActorRole,
    CommissionStatus,
    DealType,
    MaintenancePriority,
    MaintenanceStatus,
    NoticeReason,
    PaymentPreference,
    TenancyStatus,
    WorkflowKind,
)
from property_workflows.domain.instances import (
    Actor,
    Bid,
    CommissionDeal,
    HistoryEntry,
    MaintenanceRequest,
    Tenancy,
    WorkflowInstance,
)
from property_workflows.domain.models import (
    CommissionDealRecord,
    MaintenanceBidRecord,
    MaintenanceRequestRecord,
    TenancyRecord,
    WorkflowEventRecord,
)
from property_workflows.services.clock import ensure_utc

logger = logging.getLogger(__name__)

STATE_ENUMS = {
    WorkflowKind.TENANCY: TenancyStatus,
    WorkflowKind.MAINTENANCE_REQUEST: MaintenanceStatus,
    WorkflowKind.COMMISSION_DEAL: CommissionStatus,
}


class DuplicateInstanceError(ValueError):
    """Raised when creating an instance whose id is already stored."""


@dataclass(frozen=True)
class SaveResult:
    """Outcome of a save: the stored instance (new version) or a conflict."""

    instance: Optional[WorkflowInstance] = None
    conflict: bool = False

    @property
    def ok(self) -> bool:
        return not self.conflict


class WorkflowStore(ABC):
    """Persistence interface consumed by the transition service."""

    @abstractmethod
    async def load(self, kind: WorkflowKind, instance_id: str) -> Optional[WorkflowInstance]:
        """Return the stored instance or None."""

    @abstractmethod
    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Store a new instance at version 1."""

    @abstractmethod
    async def save(self, instance: WorkflowInstance) -> SaveResult:
        """Store ``instance`` if nobody else saved since it was loaded."""

    @abstractmethod
    async def list(self, kind: WorkflowKind) -> list[WorkflowInstance]:
        """All stored instances of a kind."""


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryWorkflowStore(WorkflowStore):
    """Dictionary-backed store. Compare-and-swap is serialized by a lock."""

    def __init__(self):
        self._items: dict[tuple[WorkflowKind, str], WorkflowInstance] = {}
        self._lock = asyncio.Lock()

    async def load(self, kind: WorkflowKind, instance_id: str) -> Optional[WorkflowInstance]:
        return self._items.get((kind, instance_id))

    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        key = (instance.kind, instance.id)
        async with self._lock:
            if key in self._items:
                raise DuplicateInstanceError(f"{instance.kind.value} {instance.id} already exists")
            stored = replace(instance, version=1)
            self._items[key] = stored
        return stored

    async def save(self, instance: WorkflowInstance) -> SaveResult:
        key = (instance.kind, instance.id)
        async with self._lock:
            current = self._items.get(key)
            if current is None or current.version != instance.version:
                logger.warning(
                    "Save conflict: %s %s (expected version %s, stored %s)",
                    instance.kind.value, instance.id, instance.version,
                    current.version if current else None,
                )
                return SaveResult(conflict=True)
            stored = replace(instance, version=instance.version + 1)
            self._items[key] = stored
        return SaveResult(instance=stored)

    async def list(self, kind: WorkflowKind) -> list[WorkflowInstance]:
        return [item for (k, _), item in self._items.items() if k == kind]


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


def _tenancy_columns(t: Tenancy) -> dict:
    return {
        "tenant_id": t.tenant_id,
        "property_id": t.property_id,
        "landlord_id": t.landlord_id,
        "agency_id": t.agency_id,
        "status": t.state.value,
        "lease_start": t.lease_start,
        "lease_end": t.lease_end,
        "rent_amount": t.rent_amount,
        "notice_reason": t.notice_reason.value if t.notice_reason else None,
        "notice_issued_at": t.notice_issued_at,
        "notice_expires_at": t.notice_expires_at,
        "legal_notes": t.legal_notes,
        "court_filing_required": t.court_filing_required,
        "voluntary": t.voluntary,
        "terminated_at": t.terminated_at,
    }


def _maintenance_columns(r: MaintenanceRequest) -> dict:
    return {
        "property_id": r.property_id,
        "tenant_id": r.tenant_id,
        "landlord_id": r.landlord_id,
        "status": r.state.value,
        "title": r.title,
        "description": r.description,
        "category": r.category,
        "priority": r.priority.value,
        "is_emergency": r.is_emergency,
        "estimated_cost": r.estimated_cost,
        "payment_preference": r.payment_preference.value,
        "completed_at": r.completed_at,
        "provider_rating": r.provider_rating,
        "review": r.review,
    }


def _commission_columns(d: CommissionDeal) -> dict:
    return {
        "agency_id": d.agency_id,
        "status": d.state.value,
        "deal_type": d.deal_type.value,
        "deal_value": d.deal_value,
        "commission_rate": d.commission_rate,
        "closing_date": d.closing_date,
        "due_date": d.due_date,
        "property_address": d.property_address,
        "property_type": d.property_type,
        "client_name": d.client_name,
        "payment_date": d.payment_date,
        "payment_method": d.payment_method,
        "payment_reference": d.payment_reference,
    }


RECORDS = {
    WorkflowKind.TENANCY: (TenancyRecord, _tenancy_columns),
    WorkflowKind.MAINTENANCE_REQUEST: (MaintenanceRequestRecord, _maintenance_columns),
    WorkflowKind.COMMISSION_DEAL: (CommissionDealRecord, _commission_columns),
}


def _optional_utc(value):
    return ensure_utc(value) if value is not None else None


class SqlWorkflowStore(WorkflowStore):
    """Store over an AsyncSession.

    ``create`` and successful ``save`` calls commit; a conflicting save rolls
    the session back so the caller can reload cleanly.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _history(self, kind: WorkflowKind, instance_id: str) -> tuple[HistoryEntry, ...]:
        result = await self.db.execute(
            select(WorkflowEventRecord)
            .where(
                WorkflowEventRecord.workflow_kind == kind.value,
                WorkflowEventRecord.instance_id == instance_id,
            )
            .order_by(WorkflowEventRecord.sequence.asc())
        )
        states = STATE_ENUMS[kind]
        return tuple(
            HistoryEntry(
                state=states(e.state),
                action=e.action,
                actor=Actor(ActorRole(e.actor_role), e.actor_id),
                timestamp=ensure_utc(e.created_at),
                reason=e.reason,
            )
            for e in result.scalars().all()
        )

    async def _bids(self, request_id: str) -> tuple[Bid, ...]:
        result = await self.db.execute(
            select(MaintenanceBidRecord)
            .where(MaintenanceBidRecord.request_id == request_id)
            .order_by(MaintenanceBidRecord.submitted_at.asc())
        )
        return tuple(
            Bid(
                provider_id=b.provider_id,
                amount=b.amount,
                message=b.message,
                submitted_at=ensure_utc(b.submitted_at),
                accepted=b.accepted,
            )
            for b in result.scalars().all()
        )

    async def _to_instance(self, kind: WorkflowKind, row) -> WorkflowInstance:
        history = await self._history(kind, row.id)
        common = {
            "id": row.id,
            "history": history,
            "created_at": ensure_utc(row.created_at),
            "version": row.version,
        }

        if kind == WorkflowKind.TENANCY:
            return Tenancy(
                **common,
                state=TenancyStatus(row.status),
                tenant_id=row.tenant_id,
                property_id=row.property_id,
                landlord_id=row.landlord_id,
                agency_id=row.agency_id,
                lease_start=row.lease_start,
                lease_end=row.lease_end,
                rent_amount=row.rent_amount,
                notice_reason=NoticeReason(row.notice_reason) if row.notice_reason else None,
                notice_issued_at=_optional_utc(row.notice_issued_at),
                notice_expires_at=_optional_utc(row.notice_expires_at),
                legal_notes=row.legal_notes or "",
                court_filing_required=bool(row.court_filing_required),
                voluntary=row.voluntary,
                terminated_at=_optional_utc(row.terminated_at),
            )

        if kind == WorkflowKind.MAINTENANCE_REQUEST:
            return MaintenanceRequest(
                **common,
                state=MaintenanceStatus(row.status),
                property_id=row.property_id,
                tenant_id=row.tenant_id,
                landlord_id=row.landlord_id,
                title=row.title,
                description=row.description or "",
                category=row.category,
                priority=MaintenancePriority(row.priority),
                is_emergency=bool(row.is_emergency),
                estimated_cost=row.estimated_cost,
                payment_preference=PaymentPreference(row.payment_preference),
                bids=await self._bids(row.id),
                completed_at=_optional_utc(row.completed_at),
                provider_rating=row.provider_rating,
                review=row.review or "",
            )

        return CommissionDeal(
            **common,
            state=CommissionStatus(row.status),
            agency_id=row.agency_id,
            deal_type=DealType(row.deal_type),
            deal_value=row.deal_value,
            commission_rate=row.commission_rate,
            closing_date=row.closing_date,
            due_date=row.due_date,
            property_address=row.property_address or "",
            property_type=row.property_type or "",
            client_name=row.client_name or "",
            payment_date=_optional_utc(row.payment_date),
            payment_method=row.payment_method,
            payment_reference=row.payment_reference,
        )

    async def load(self, kind: WorkflowKind, instance_id: str) -> Optional[WorkflowInstance]:
        record_cls, _ = RECORDS[kind]
        # populate_existing: a reload after a conflict must see the winner's row.
        result = await self.db.execute(
            select(record_cls)
            .where(record_cls.id == instance_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return await self._to_instance(kind, row)

    async def list(self, kind: WorkflowKind) -> list[WorkflowInstance]:
        record_cls, _ = RECORDS[kind]
        result = await self.db.execute(
            select(record_cls)
            .order_by(record_cls.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return [await self._to_instance(kind, row) for row in result.scalars().all()]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _write_history(self, instance: WorkflowInstance) -> None:
        stored = await self.db.scalar(
            select(func.count(WorkflowEventRecord.id)).where(
                WorkflowEventRecord.workflow_kind == instance.kind.value,
                WorkflowEventRecord.instance_id == instance.id,
            )
        )
        for sequence, entry in enumerate(instance.history[stored:], start=stored):
            self.db.add(
                WorkflowEventRecord(
                    id=str(uuid.uuid4()),
                    workflow_kind=instance.kind.value,
                    instance_id=instance.id,
                    sequence=sequence,
                    action=entry.action,
                    state=entry.state.value,
                    actor_role=entry.actor.role.value,
                    actor_id=entry.actor.id,
                    reason=entry.reason,
                    created_at=entry.timestamp,
                )
            )

    async def _write_bids(self, request: MaintenanceRequest) -> None:
        result = await self.db.execute(
            select(MaintenanceBidRecord).where(MaintenanceBidRecord.request_id == request.id)
        )
        existing = {b.provider_id: b for b in result.scalars().all()}
        for bid in request.bids:
            row = existing.get(bid.provider_id)
            if row is None:
                self.db.add(
                    MaintenanceBidRecord(
                        id=str(uuid.uuid4()),
                        request_id=request.id,
                        provider_id=bid.provider_id,
                        amount=bid.amount,
                        message=bid.message,
                        submitted_at=bid.submitted_at,
                        accepted=bid.accepted,
                    )
                )
            elif row.accepted != bid.accepted:
                row.accepted = bid.accepted

    async def _write_children(self, instance: WorkflowInstance) -> None:
        if isinstance(instance, MaintenanceRequest):
            await self._write_bids(instance)
        await self._write_history(instance)

    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        record_cls, columns = RECORDS[instance.kind]
        if await self.db.get(record_cls, instance.id) is not None:
            raise DuplicateInstanceError(f"{instance.kind.value} {instance.id} already exists")

        self.db.add(
            record_cls(
                id=instance.id,
                version=1,
                created_at=instance.created_at,
                **columns(instance),
            )
        )
        await self.db.flush()
        await self._write_children(instance)
        await self.db.commit()

        logger.info("Created %s %s", instance.kind.value, instance.id)
        return replace(instance, version=1)

    async def save(self, instance: WorkflowInstance) -> SaveResult:
        record_cls, columns = RECORDS[instance.kind]
        result = await self.db.execute(
            update(record_cls)
            .where(record_cls.id == instance.id, record_cls.version == instance.version)
            .values(version=instance.version + 1, **columns(instance))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            logger.warning(
                "Save conflict: %s %s (expected version %s)",
                instance.kind.value, instance.id, instance.version,
            )
            return SaveResult(conflict=True)

        await self._write_children(instance)
        await self.db.commit()
        return SaveResult(instance=replace(instance, version=instance.version + 1))
