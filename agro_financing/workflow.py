"""
Financing Workflow Module

Single source of truth for which financing status changes are legal and
which roles may perform them. The rule table is immutable and built once at
import time; ``FinancingWorkflow`` wraps a table so the service layer can be
given an alternative one in tests.

Lookups never raise. An unknown status has no outgoing rules and a missing
role may not move anything, so every doubtful case fails closed.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Set, Tuple, Union


class FinancingStatus(Enum):
    """Financing lifecycle states"""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"          # terminal
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"        # may be reopened by an admin
    CANCELLED = "cancelled"        # terminal


class Role(Enum):
    """Back-office roles"""
    ADMIN = "admin"
    OPERADOR = "operador"
    PRODUCTOR = "productor"


StatusLike = Union[FinancingStatus, str]
RoleLike = Union[Role, str, None]


@dataclass(frozen=True)
class WorkflowTransition:
    """A legal move to ``target`` from any of ``sources``; ``roles=None`` allows every role"""
    sources: FrozenSet[FinancingStatus]
    target: FinancingStatus
    roles: Optional[FrozenSet[str]] = None

    def permits(self, role: str) -> bool:
        return not self.roles or role in self.roles


def _rule(source: FinancingStatus, target: FinancingStatus, *roles: Role) -> WorkflowTransition:
    return WorkflowTransition(
        sources=frozenset({source}),
        target=target,
        roles=frozenset(r.value for r in roles) if roles else None
    )


S = FinancingStatus

DEFAULT_TRANSITIONS: Mapping[FinancingStatus, Tuple[WorkflowTransition, ...]] = MappingProxyType({
    S.DRAFT: (
        _rule(S.DRAFT, S.PENDING_APPROVAL, Role.ADMIN, Role.OPERADOR),
        _rule(S.DRAFT, S.CANCELLED, Role.ADMIN, Role.OPERADOR),
    ),
    S.PENDING_APPROVAL: (
        _rule(S.PENDING_APPROVAL, S.APPROVED, Role.ADMIN),
        _rule(S.PENDING_APPROVAL, S.REJECTED, Role.ADMIN),
        _rule(S.PENDING_APPROVAL, S.CANCELLED, Role.ADMIN, Role.OPERADOR),
    ),
    S.APPROVED: (
        _rule(S.APPROVED, S.IN_PROGRESS, Role.ADMIN, Role.OPERADOR),
        _rule(S.APPROVED, S.CANCELLED, Role.ADMIN),
    ),
    S.IN_PROGRESS: (
        _rule(S.IN_PROGRESS, S.COMPLETED, Role.ADMIN, Role.OPERADOR),
        _rule(S.IN_PROGRESS, S.ON_HOLD, Role.ADMIN, Role.OPERADOR),
        _rule(S.IN_PROGRESS, S.CANCELLED, Role.ADMIN),
    ),
    S.ON_HOLD: (
        _rule(S.ON_HOLD, S.IN_PROGRESS, Role.ADMIN, Role.OPERADOR),
        _rule(S.ON_HOLD, S.CANCELLED, Role.ADMIN),
    ),
    S.COMPLETED: (
        _rule(S.COMPLETED, S.IN_PROGRESS, Role.ADMIN),
    ),
    S.REJECTED: (),
    S.CANCELLED: (),
})

del S


def parse_status(value: StatusLike) -> Optional[FinancingStatus]:
    """Status from enum or its exact string value; None when unrecognised"""
    if isinstance(value, FinancingStatus):
        return value
    try:
        return FinancingStatus(value)
    except ValueError:
        return None


def _role_name(role: RoleLike) -> Optional[str]:
    if isinstance(role, Role):
        return role.value
    if role is None or not str(role).strip():
        return None
    return str(role)


class FinancingWorkflow:
    """Role-aware lookups over an immutable transition table"""

    def __init__(self, transitions: Optional[Mapping[FinancingStatus, Tuple[WorkflowTransition, ...]]] = None):
        table = DEFAULT_TRANSITIONS if transitions is None else transitions
        self.transitions = MappingProxyType({status: tuple(rules) for status, rules in table.items()})

    def rules_from(self, current_status: StatusLike) -> Tuple[WorkflowTransition, ...]:
        status = parse_status(current_status)
        if status is None:
            return ()
        return tuple(rule for rule in self.transitions.get(status, ()) if status in rule.sources)

    def list_allowed_destinations(self, current_status: StatusLike, role: RoleLike = None) -> Set[FinancingStatus]:
        """Every status ``role`` may move a financing to from ``current_status``"""
        role_name = _role_name(role)
        if role_name is None:
            return set()
        return {rule.target for rule in self.rules_from(current_status) if rule.permits(role_name)}

    def can_transition(self, current_status: StatusLike, target_status: StatusLike, role: RoleLike = None) -> bool:
        """Whether ``role`` may move a financing from ``current_status`` to ``target_status``"""
        role_name = _role_name(role)
        target = parse_status(target_status)
        if role_name is None or target is None:
            return False
        return any(
            rule.target == target and rule.permits(role_name)
            for rule in self.rules_from(current_status)
        )

    def is_terminal(self, status: StatusLike) -> bool:
        """No rule leaves this status, for any role"""
        return not self.rules_from(status)


default_workflow = FinancingWorkflow()


def list_allowed_destinations(current_status: StatusLike, role: RoleLike = None) -> Set[FinancingStatus]:
    return default_workflow.list_allowed_destinations(current_status, role)


def can_transition(current_status: StatusLike, target_status: StatusLike, role: RoleLike = None) -> bool:
    return default_workflow.can_transition(current_status, target_status, role)
