"""Endpoints every workflow kind shares: read, history, allowed actions and
the generic transition call."""

from typing import Callable

from fastapi import APIRouter, Depends

from property_workflows.app.routes.deps import (
    get_actor,
    get_clock,
    get_service,
    not_found,
    serialize_history,
)
from property_workflows.domain.enums import WorkflowKind
from property_workflows.domain.instances import Actor
from property_workflows.domain.schemas import (
    AllowedActionsResponse,
    HistoryEntryView,
    TransitionErrorResponse,
    TransitionRequest,
)
from property_workflows.services.clock import Clock
from property_workflows.services.transition_service import TransitionService


def add_workflow_routes(
    router: APIRouter,
    kind: WorkflowKind,
    label: str,
    serialize: Callable,
) -> APIRouter:
    """Attach the shared endpoints to a workflow's router.

    ``serialize(instance, now)`` renders one instance for responses.
    """

    @router.get("/{instance_id}")
    async def get_instance(
        instance_id: str,
        actor: Actor = Depends(get_actor),
        clock: Clock = Depends(get_clock),
        service: TransitionService = Depends(get_service),
    ):
        instance = await service.get(kind, instance_id)
        if instance is None:
            raise not_found(label, instance_id)
        return serialize(instance, clock.now())

    @router.get("/{instance_id}/history", response_model=list[HistoryEntryView])
    async def get_history(
        instance_id: str,
        actor: Actor = Depends(get_actor),
        service: TransitionService = Depends(get_service),
    ):
        instance = await service.get(kind, instance_id)
        if instance is None:
            raise not_found(label, instance_id)
        return serialize_history(instance.history)

    @router.get("/{instance_id}/allowed-actions", response_model=AllowedActionsResponse)
    async def get_allowed_actions(
        instance_id: str,
        actor: Actor = Depends(get_actor),
        service: TransitionService = Depends(get_service),
    ):
        instance = await service.get(kind, instance_id)
        if instance is None:
            raise not_found(label, instance_id)
        return AllowedActionsResponse(
            id=instance.id,
            state=instance.state.value,
            allowed_actions=service.lifecycle(kind).allowed_actions(instance, actor),
        )

    @router.post(
        "/{instance_id}/transitions",
        responses={
            400: {"model": TransitionErrorResponse},
            403: {"model": TransitionErrorResponse},
            404: {"model": TransitionErrorResponse},
            409: {"model": TransitionErrorResponse},
        },
    )
    async def post_transition(
        instance_id: str,
        body: TransitionRequest,
        actor: Actor = Depends(get_actor),
        clock: Clock = Depends(get_clock),
        service: TransitionService = Depends(get_service),
    ):
        now = clock.now()
        result = await service.attempt_transition(kind, instance_id, body.action, body.payload, actor, now)
        return serialize(result.unwrap(), now)

    return router
