"""Work order status machine.

Every permitted change is one row of ``TRANSITIONS``: ``(status, action)`` maps
to the target status and the actor relations that may drive it. Anything not
in the table is an ``InvalidTransitionError``; the machine never no-ops.

Relations:
    creator   the user who created the order
    assignee  the user the order is assigned to
    manager   any admin or manager of the company
"""

from __future__ import annotations

from dataclasses import dataclass

from ..auth import check_permission
from ..domain_errors import AuthorizationError, InvalidTransitionError
from ..models import User, WorkOrder, WORK_ORDER_STATUSES
from ..security import is_assignee, is_manager

DELETED = "__deleted__"

CREATOR = "creator"
ASSIGNEE = "assignee"
MANAGER = "manager"

ACTIONS: tuple[str, ...] = ("submit", "approve", "reject", "start", "complete", "delete")
# Permission gate applied before the status check.
ACTION_PERMISSIONS: dict[str, str] = {
    "approve": "canReviewWorkOrders",
    "reject": "canReviewWorkOrders",
    "delete": "canDeleteWorkOrders",
}
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed"})


@dataclass(frozen=True)
class Transition:
    target: str
    allowed: frozenset[str]


def _t(target: str, *allowed: str) -> Transition:
    return Transition(target=target, allowed=frozenset(allowed))


TRANSITIONS: dict[tuple[str, str], Transition] = {
    ("draft", "submit"): _t("pending_approval", CREATOR),
    ("pending_approval", "approve"): _t("open", MANAGER),
    ("pending_approval", "reject"): _t("draft", MANAGER),
    ("open", "start"): _t("in_progress", ASSIGNEE),
    ("open", "complete"): _t("completed", ASSIGNEE, MANAGER),
    ("in_progress", "complete"): _t("completed", ASSIGNEE, MANAGER),
    **{
        (status, "delete"): _t(DELETED, MANAGER)
        for status in WORK_ORDER_STATUSES
        if status not in TERMINAL_STATUSES
    },
}


def actor_relations(work_order: WorkOrder, user: User) -> set[str]:
    relations: set[str] = set()
    if work_order.created_by_id == user.id:
        relations.add(CREATOR)
    if is_assignee(work_order, user):
        relations.add(ASSIGNEE)
    if is_manager(user):
        relations.add(MANAGER)
    return relations


def resolve_transition(*, work_order: WorkOrder, action: str, actor: User) -> Transition:
    """Return the transition for ``action`` or raise; does not mutate the order."""
    permission = ACTION_PERMISSIONS.get(action)
    if permission is not None and not check_permission(actor, permission):
        raise AuthorizationError()

    transition = TRANSITIONS.get((work_order.status, action))
    if transition is None:
        raise InvalidTransitionError(work_order.status, action)

    if not transition.allowed & actor_relations(work_order, actor):
        raise AuthorizationError()
    return transition


def is_permitted(status: str, action: str) -> bool:
    return (status, action) in TRANSITIONS
