"""Shared route dependencies: actor resolution, clock, policy and the
transition service, plus the mapping from transition errors to HTTP."""

from datetime import date, datetime
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from property_workflows.app.config import get_settings
from property_workflows.domain.enums import ActorRole, TransitionErrorCode
from property_workflows.domain.instances import Actor, HistoryEntry
from property_workflows.domain.schemas import HistoryEntryView
from property_workflows.infra.database import get_db
from property_workflows.services.clock import Clock, SystemClock
from property_workflows.services.deadline_policy import DeadlinePolicy
from property_workflows.services.transition_service import TransitionService
from property_workflows.services.workflow_engine import TransitionRejected
from property_workflows.services.workflow_store import SqlWorkflowStore

STATUS_BY_CODE = {
    TransitionErrorCode.FORBIDDEN: 403,
    TransitionErrorCode.NOT_FOUND: 404,
    TransitionErrorCode.CONFLICT: 409,
}


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


async def get_actor(
    x_actor_role: Optional[str] = Header(default=None),
    x_actor_id: Optional[str] = Header(default=None),
) -> Actor:
    """Resolve the acting party from headers set by the auth gateway."""
    if not x_actor_role or not x_actor_id:
        raise HTTPException(status_code=401, detail="X-Actor-Role and X-Actor-Id headers are required")
    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown actor role: {x_actor_role}")
    return Actor(role=role, id=x_actor_id.strip())


_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock


@lru_cache
def get_policy() -> DeadlinePolicy:
    """Policy built once from settings; a malformed table fails at first use."""
    return DeadlinePolicy.from_settings(get_settings())


async def get_service(
    db: AsyncSession = Depends(get_db),
    policy: DeadlinePolicy = Depends(get_policy),
) -> TransitionService:
    return TransitionService.with_policy(SqlWorkflowStore(db), policy)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def status_for(code: TransitionErrorCode) -> int:
    return STATUS_BY_CODE.get(code, 400)


async def transition_rejected_handler(request, exc: TransitionRejected) -> JSONResponse:
    """Registered on the app: rejected transitions become ``{code, reason, message}``."""
    return JSONResponse(status_code=status_for(exc.error.code), content=exc.error.to_dict())


def not_found(kind_label: str, instance_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{kind_label} {instance_id} not found")


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _dt(value) -> Optional[str]:
    """ISO-format a date/datetime, passing None through."""
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _num(value) -> Optional[float]:
    return float(value) if value is not None else None


def serialize_history(history: tuple[HistoryEntry, ...]) -> list[HistoryEntryView]:
    return [
        HistoryEntryView(
            state=entry.state.value,
            action=entry.action,
            actor_role=entry.actor.role.value,
            actor_id=entry.actor.id,
            timestamp=entry.timestamp.isoformat(),
            reason=entry.reason,
        )
        for entry in history
    ]
