"""Workflow engine — validates role-gated transitions and applies them.

A WorkflowDefinition is a finite transition table keyed by (state, action).
The engine evaluates a requested action against it and returns a
TransitionResult: either the new instance or a typed TransitionError.
Expected domain outcomes are returned, never raised. Only a malformed
definition or a missing clock raises.

Validation order for ``attempt``:
    0. current state is terminal and the action
       is not one of its follow-ups       -> TERMINAL_STATE
    1. action not defined for the state   -> INVALID_ACTION
    2. role or ownership check fails      -> FORBIDDEN
    3. first failing guard                -> GUARD_FAILED (or the guard's code)

A follow-up is a transition from a terminal state back to itself, such as
rating a finished job. It records history without leaving the state.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, TypeVar

from property_workflows.domain.enums import (
    ActorRole,
    GuardReason,
    TransitionErrorCode,
    WorkflowKind,
)
from property_workflows.domain.instances import Actor, HistoryEntry, WorkflowInstance

logger = logging.getLogger(__name__)

I = TypeVar("I", bound=WorkflowInstance)

CREATE_ACTION = "create"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransitionError:
    """Why a transition was rejected."""

    code: TransitionErrorCode
    message: str
    reason: Optional[GuardReason] = None

    @classmethod
    def guard_failed(cls, reason: GuardReason, message: str) -> "TransitionError":
        return cls(TransitionErrorCode.GUARD_FAILED, message, reason)

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
        }


class TransitionRejected(Exception):
    """Raised by ``TransitionResult.unwrap`` when the result is an error."""

    def __init__(self, error: TransitionError):
        self.error = error
        super().__init__(error.message)


@dataclass(frozen=True)
class TransitionResult(Generic[I]):
    """Tagged result: exactly one of ``instance`` or ``error`` is set."""

    instance: Optional[I] = None
    error: Optional[TransitionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, instance: I) -> "TransitionResult[I]":
        return cls(instance=instance)

    @classmethod
    def failure(
        cls,
        code: TransitionErrorCode,
        message: str,
        reason: Optional[GuardReason] = None,
    ) -> "TransitionResult[I]":
        return cls(error=TransitionError(code, message, reason))

    def unwrap(self) -> I:
        if self.error is not None:
            raise TransitionRejected(self.error)
        return self.instance


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransitionContext:
    """Inputs a guard or effect may read besides the instance itself."""

    actor: Actor
    now: datetime
    payload: Mapping[str, Any] = field(default_factory=dict)


Guard = Callable[[Any, TransitionContext], Optional[TransitionError]]
Effect = Callable[[Any, TransitionContext], Mapping[str, Any]]
Authorize = Callable[[Any, Actor], bool]
Describe = Callable[[Any, TransitionContext], Optional[str]]


@dataclass(frozen=True)
class Transition:
    """One edge of a workflow: ``source --action--> target``.

    ``effect`` returns the field updates to apply alongside the state change.
    ``describe`` produces the optional reason stored on the history entry.
    """

    action: str
    source: Enum
    target: Enum
    roles: frozenset[ActorRole]
    authorize: Optional[Authorize] = None
    guards: tuple[Guard, ...] = ()
    effect: Optional[Effect] = None
    describe: Optional[Describe] = None


class WorkflowDefinition:
    """Finite state set, terminal states and the transition table."""

    def __init__(
        self,
        name: str,
        states: Iterable[Enum],
        initial: Enum,
        terminal: Iterable[Enum],
        transitions: Iterable[Transition],
    ):
        self.name = name
        self.states = frozenset(states)
        self.initial = initial
        self.terminal = frozenset(terminal)
        self._table: dict[tuple[Enum, str], Transition] = {}

        if initial not in self.states:
            raise ValueError(f"{name}: initial state {initial!r} is not a declared state")
        if not self.terminal <= self.states:
            raise ValueError(f"{name}: terminal states must be declared states")

        for t in transitions:
            if t.source not in self.states or t.target not in self.states:
                raise ValueError(f"{name}: transition {t.action!r} uses an undeclared state")
            if t.source in self.terminal and t.target != t.source:
                raise ValueError(
                    f"{name}: transition {t.action!r} leaves terminal state {t.source.value}"
                )
            if not t.roles:
                raise ValueError(f"{name}: transition {t.action!r} permits no roles")
            key = (t.source, t.action)
            if key in self._table:
                raise ValueError(
                    f"{name}: duplicate transition {t.action!r} from {t.source.value}"
                )
            self._table[key] = t

    def transition_for(self, state: Enum, action: str) -> Optional[Transition]:
        return self._table.get((state, action))

    def transitions_from(self, state: Enum) -> list[Transition]:
        return [t for (source, _), t in self._table.items() if source == state]

    @property
    def actions(self) -> frozenset[str]:
        return frozenset(action for _, action in self._table)

    def is_terminal(self, state: Enum) -> bool:
        return state in self.terminal


def creation_history(state: Enum, actor: Actor, now: datetime) -> tuple[HistoryEntry, ...]:
    """History for a freshly created instance."""
    if now is None:
        raise ValueError("A clock reading is required to create a workflow instance")
    return (HistoryEntry(state=state, action=CREATE_ACTION, actor=actor, timestamp=now),)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class WorkflowEngine(Generic[I]):
    """Evaluates requested actions against a WorkflowDefinition."""

    def __init__(self, definition: WorkflowDefinition):
        self.definition = definition

    def _is_permitted(self, transition: Transition, instance: I, actor: Actor) -> bool:
        if actor.role not in transition.roles:
            return False
        if transition.authorize is not None and not transition.authorize(instance, actor):
            return False
        return True

    def attempt(
        self,
        instance: I,
        action: str,
        actor: Actor,
        now: datetime,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> TransitionResult[I]:
        """Validate ``action`` for ``instance`` and return the resulting instance.

        The input instance is never modified.
        """
        if now is None:
            raise ValueError("A clock reading is required to attempt a transition")
        current = instance.state
        if current not in self.definition.states:
            raise ValueError(
                f"{self.definition.name}: instance {instance.id} is in undeclared state {current!r}"
            )

        transition = self.definition.transition_for(current, action)
        if transition is None and self.definition.is_terminal(current):
            return TransitionResult.failure(
                TransitionErrorCode.TERMINAL_STATE,
                f"No transitions allowed from {current.value}",
            )
        if transition is None:
            return TransitionResult.failure(
                TransitionErrorCode.INVALID_ACTION,
                f"Action {action!r} is not allowed from {current.value}",
            )

        if not self._is_permitted(transition, instance, actor):
            return TransitionResult.failure(
                TransitionErrorCode.FORBIDDEN,
                f"Actor {actor} is not permitted to {action} "
                f"(allowed roles: {', '.join(sorted(r.value for r in transition.roles))})",
            )

        ctx = TransitionContext(actor=actor, now=now, payload=dict(payload or {}))
        for guard in transition.guards:
            error = guard(instance, ctx)
            if error is not None:
                logger.debug(
                    "%s %s: %s rejected (%s)",
                    self.definition.name, instance.id, action, error.message,
                )
                return TransitionResult(error=error)

        updates = dict(transition.effect(instance, ctx)) if transition.effect else {}
        entry = HistoryEntry(
            state=transition.target,
            action=action,
            actor=actor,
            timestamp=now,
            reason=transition.describe(instance, ctx) if transition.describe else None,
        )
        updated = replace(
            instance,
            **updates,
            state=transition.target,
            history=instance.history + (entry,),
        )

        logger.debug(
            "%s %s: %s → %s via %s (actor=%s)",
            self.definition.name, instance.id, current.value,
            transition.target.value, action, actor,
        )
        return TransitionResult.success(updated)

    def allowed_actions(self, instance: I, actor: Actor) -> list[str]:
        """Actions the actor may request from the instance's current state.

        Guards are not evaluated, so an allowed action can still be rejected
        with GUARD_FAILED. Terminal states only offer their follow-ups.
        """
        return [
            t.action
            for t in self.definition.transitions_from(instance.state)
            if self._is_permitted(t, instance, actor)
        ]


class WorkflowLifecycle(ABC, Generic[I]):
    """Base for a concrete lifecycle: builds its definition once and exposes
    the generic ``attempt`` seam next to its named operations."""

    kind: WorkflowKind

    def __init__(self):
        self.definition = self.build_definition()
        self.engine: WorkflowEngine[I] = WorkflowEngine(self.definition)

    @abstractmethod
    def build_definition(self) -> WorkflowDefinition:
        """The transition table this lifecycle runs on."""

    def attempt(
        self,
        instance: I,
        action: str,
        actor: Actor,
        now: datetime,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> TransitionResult[I]:
        return self.engine.attempt(instance, action, actor, now, payload)

    def allowed_actions(self, instance: I, actor: Actor) -> list[str]:
        return self.engine.allowed_actions(instance, actor)
