"""Security helpers (RBAC and company scoping)."""

from __future__ import annotations

from sqlalchemy.orm import Query

from .auth import check_permission
from .domain_errors import AuthorizationError
from .models import User, WorkOrder


def is_manager(user: User) -> bool:
    return check_permission(user, "canManageWorkOrders")


def require_permission(user: User, permission: str) -> None:
    """Enforce a role permission server-side."""
    if not check_permission(user, permission):
        raise AuthorizationError()


def is_assignee(work_order: WorkOrder, user: User) -> bool:
    return work_order.assigned_to_id is not None and work_order.assigned_to_id == user.id


def can_view_work_order(work_order: WorkOrder, user: User) -> bool:
    """Techs see orders assigned to them or created by them; managers see the company."""
    if work_order.company_id != user.company_id:
        return False
    if check_permission(user, "canViewAllWorkOrders"):
        return True
    return bool(is_assignee(work_order, user) or work_order.created_by_id == user.id)


def can_time_work_order(work_order: WorkOrder, user: User) -> bool:
    """Only the assignee, or a manager covering for them, may run a timer on an order."""
    return is_assignee(work_order, user) or is_manager(user)


def apply_work_order_visibility_scope(query: Query, user: User) -> Query:
    query = query.filter(WorkOrder.company_id == user.company_id)
    if check_permission(user, "canViewAllWorkOrders"):
        return query
    return query.filter(
        (WorkOrder.assigned_to_id == user.id) | (WorkOrder.created_by_id == user.id)
    )
