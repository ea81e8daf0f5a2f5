"""Transition service — load, attempt, save with a single conflict retry.

This is the one seam every caller (HTTP routes, scripts, tests) goes through
to change a workflow instance:

    1. load the instance from the store          (missing -> NOT_FOUND)
    2. run the lifecycle's engine                (pure, returns a result)
    3. save with the loaded version              (stale -> reload, retry once)

A second conflict in a row surfaces as CONFLICT.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from property_workflows.domain.enums import TransitionErrorCode, WorkflowKind
from property_workflows.domain.instances import Actor, WorkflowInstance
from property_workflows.services.commission_ledger import CommissionLedger
from property_workflows.services.deadline_policy import DeadlinePolicy
from property_workflows.services.maintenance_workflow import MaintenanceWorkflow
from property_workflows.services.tenancy_lifecycle import TenancyLifecycle
from property_workflows.services.workflow_engine import TransitionResult, WorkflowLifecycle
from property_workflows.services.workflow_store import WorkflowStore

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


def build_lifecycles(policy: DeadlinePolicy) -> dict[WorkflowKind, WorkflowLifecycle]:
    """One lifecycle per workflow kind, sharing a policy."""
    lifecycles: Iterable[WorkflowLifecycle] = (
        TenancyLifecycle(policy),
        MaintenanceWorkflow(policy),
        CommissionLedger(),
    )
    return {lc.kind: lc for lc in lifecycles}


class TransitionService:
    """Applies actions to stored workflow instances."""

    def __init__(self, store: WorkflowStore, lifecycles: Mapping[WorkflowKind, WorkflowLifecycle]):
        self.store = store
        self.lifecycles = dict(lifecycles)

    @classmethod
    def with_policy(cls, store: WorkflowStore, policy: DeadlinePolicy) -> "TransitionService":
        return cls(store, build_lifecycles(policy))

    def lifecycle(self, kind: WorkflowKind) -> WorkflowLifecycle:
        return self.lifecycles[WorkflowKind(kind)]

    async def get(self, kind: WorkflowKind, instance_id: str) -> Optional[WorkflowInstance]:
        return await self.store.load(WorkflowKind(kind), instance_id)

    async def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        created = await self.store.create(instance)
        logger.info(
            "%s %s: created in %s (actor=%s)",
            created.kind.value, created.id, created.state.value, created.last_entry.actor,
        )
        return created

    async def allowed_actions(self, kind: WorkflowKind, instance_id: str, actor: Actor) -> Optional[list[str]]:
        instance = await self.get(kind, instance_id)
        if instance is None:
            return None
        return self.lifecycle(kind).allowed_actions(instance, actor)

    async def attempt_transition(
        self,
        kind: WorkflowKind,
        instance_id: str,
        action: str,
        payload: Optional[Mapping[str, Any]],
        actor: Actor,
        now: datetime,
    ) -> TransitionResult:
        """Apply ``action`` to the stored instance and persist the result."""
        kind = WorkflowKind(kind)
        lifecycle = self.lifecycle(kind)

        for attempt in range(1, MAX_ATTEMPTS + 1):
            instance = await self.store.load(kind, instance_id)
            if instance is None:
                return TransitionResult.failure(
                    TransitionErrorCode.NOT_FOUND,
                    f"{kind.value} {instance_id} not found",
                )

            result = lifecycle.attempt(instance, action, actor, now, payload)
            if not result.ok:
                logger.info(
                    "%s %s: %s rejected in %s (%s, actor=%s)",
                    kind.value, instance_id, action, instance.state.value,
                    result.error.code.value, actor,
                )
                return result

            saved = await self.store.save(result.instance)
            if saved.ok:
                logger.info(
                    "%s %s: %s → %s (action=%s, actor=%s)",
                    kind.value, instance_id, instance.state.value,
                    saved.instance.state.value, action, actor,
                )
                return TransitionResult.success(saved.instance)

            logger.warning(
                "%s %s: version conflict on %s (attempt %d/%d)",
                kind.value, instance_id, action, attempt, MAX_ATTEMPTS,
            )

        return TransitionResult.failure(
            TransitionErrorCode.CONFLICT,
            f"{kind.value} {instance_id} was modified concurrently; reload and retry",
        )
