"""Work order lifecycle use-cases used by work order router endpoints."""
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..database import unit_of_work
from ..domain_errors import AuthorizationError, DomainError, NotFoundError
from ..models import User, WorkOrder
from ..schemas import WorkOrderCreate, WorkOrderUpdate
from ..security import can_view_work_order, is_assignee, is_manager, require_permission
from ..services.audit import record_work_order_event
from ..services.time_entry_store import lock_actors, open_entry_owner_ids
from ..services.timer_rules import now_utc
from ..services.work_order_lifecycle import DELETED, Transition, resolve_transition
from ..services.work_order_store import (
    delete_work_order_cascade,
    get_work_order_or_404,
    list_work_orders,
    lock_work_order,
    next_work_order_number,
)

logger = logging.getLogger(__name__)

_AUDIT_ACTIONS = {
    "submit": "work_order_submitted",
    "approve": "work_order_approved",
    "reject": "work_order_rejected",
    "start": "work_order_started",
    "complete": "work_order_completed",
    "delete": "work_order_deleted",
}


def get_visible_work_order(db: Session, *, work_order_id: UUID, current_user: User) -> WorkOrder:
    """Load an order the user may see; invisible orders are reported as missing."""
    work_order = get_work_order_or_404(db, work_order_id=work_order_id, company_id=current_user.company_id)
    if not can_view_work_order(work_order, current_user):
        raise NotFoundError("work_order")
    return work_order


def apply_transition(
    db: Session,
    *,
    work_order: WorkOrder,
    action: str,
    actor: User,
    now: datetime,
    details: dict[str, Any] | None = None,
) -> Transition:
    """Check the table, move the order, stamp side fields and audit. Does not commit."""
    transition = resolve_transition(work_order=work_order, action=action, actor=actor)
    old_status = work_order.status

    if transition.target != DELETED:
        work_order.status = transition.target
    if action == "submit":
        work_order.submitted_by_id = actor.id
    elif action == "approve":
        work_order.approved_by_id = actor.id
        work_order.approved_at = now
    elif action == "complete":
        work_order.completed_at = now

    audit_details = {"oldStatus": old_status, "newStatus": transition.target if transition.target != DELETED else None}
    audit_details.update(details or {})
    record_work_order_event(db, actor=actor, work_order=work_order, action=_AUDIT_ACTIONS[action], details=audit_details)
    logger.info(
        "work_order.%s id=%s by=%s %s->%s",
        action,
        work_order.id,
        actor.id,
        old_status,
        transition.target,
    )
    return transition


def _resolve_assignee(db: Session, *, company_id: UUID, assignee_id: UUID | None) -> UUID | None:
    if assignee_id is None:
        return None
    assignee = db.query(User).filter(
        User.id == assignee_id,
        User.company_id == company_id,
        User.is_active == True,  # noqa: E712
    ).first()
    if not assignee:
        raise NotFoundError("user", "Assignee user not found")
    return assignee.id


def create_work_order_use_case(*, db: Session, current_user: User, payload: WorkOrderCreate) -> WorkOrder:
    """Techs create drafts assigned to themselves; managers create open orders."""
    if is_manager(current_user):
        status = payload.status or "open"
        assigned_to_id = _resolve_assignee(
            db,
            company_id=current_user.company_id,
            assignee_id=payload.assigned_to_id,
        )
    else:
        status = "draft"
        assigned_to_id = current_user.id

    with unit_of_work(db):
        work_order = WorkOrder(
            company_id=current_user.company_id,
            work_order_number=next_work_order_number(db, current_user.company_id),
            title=payload.title,
            description=payload.description,
            equipment_id=payload.equipment_id,
            priority=payload.priority,
            type=payload.type,
            status=status,
            assigned_to_id=assigned_to_id,
            created_by_id=current_user.id,
            due_date=payload.due_date,
            notes=payload.notes,
            total_time_minutes=0.0,
        )
        db.add(work_order)
        db.flush()
        record_work_order_event(
            db,
            actor=current_user,
            work_order=work_order,
            action="work_order_created",
            details={"status": status},
        )
    logger.info("work_order.create id=%s number=%s status=%s", work_order.id, work_order.work_order_number, status)
    return work_order


def submit_work_order_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    clock: Callable[[], datetime] = now_utc,
) -> WorkOrder:
    """Send a draft for manager approval (creator only)."""
    with unit_of_work(db):
        work_order = get_visible_work_order(db, work_order_id=work_order_id, current_user=current_user)
        work_order = lock_work_order(db, work_order)
        apply_transition(db, work_order=work_order, action="submit", actor=current_user, now=clock())
    return work_order


def approve_work_order_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    clock: Callable[[], datetime] = now_utc,
) -> WorkOrder:
    with unit_of_work(db):
        work_order = get_visible_work_order(db, work_order_id=work_order_id, current_user=current_user)
        work_order = lock_work_order(db, work_order)
        apply_transition(db, work_order=work_order, action="approve", actor=current_user, now=clock())
    return work_order


def delete_work_order_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    clock: Callable[[], datetime] = now_utc,
) -> None:
    """Privileged delete; time entries go with the order, audit rows stay."""
    with unit_of_work(db):
        work_order = get_visible_work_order(db, work_order_id=work_order_id, current_user=current_user)
        work_order = lock_work_order(db, work_order)
        apply_transition(db, work_order=work_order, action="delete", actor=current_user, now=clock())
        removed = delete_work_order_cascade(db, work_order)
    logger.info("work_order.delete id=%s time_entries_removed=%s", work_order_id, removed)


_EDITABLE_FIELDS = ("title", "description", "equipment_id", "priority", "type", "due_date", "notes")

CompleteHook = Callable[..., WorkOrder]


def update_work_order_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    payload: WorkOrderUpdate,
    complete_work_order: CompleteHook | None = None,
    clock: Callable[[], datetime] = now_utc,
) -> WorkOrder:
    """Edit fields; ``status="completed"`` hands over to the completion hook in the same transaction."""
    changes = payload.model_dump(exclude_unset=True)
    wants_completion = changes.pop("status", None) == "completed"

    with unit_of_work(db):
        owners = open_entry_owner_ids(db, work_order_id) if wants_completion else []
        lock_actors(db, [current_user.id, *owners])
        work_order = get_visible_work_order(db, work_order_id=work_order_id, current_user=current_user)
        if not (is_manager(current_user) or is_assignee(work_order, current_user)):
            raise AuthorizationError()
        if "assigned_to_id" in changes and not is_manager(current_user):
            raise AuthorizationError()

        work_order = lock_work_order(db, work_order)
        if work_order.status == "completed" and changes:
            raise DomainError(
                code="WORK_ORDER_COMPLETED",
                http_status=409,
                message="Completed work orders cannot be edited",
            )

        if "assigned_to_id" in changes:
            work_order.assigned_to_id = _resolve_assignee(
                db,
                company_id=current_user.company_id,
                assignee_id=changes.pop("assigned_to_id"),
            )
        for field in _EDITABLE_FIELDS:
            if field in changes:
                setattr(work_order, field, changes[field])

        if changes or "assigned_to_id" in payload.model_fields_set:
            record_work_order_event(
                db,
                actor=current_user,
                work_order=work_order,
                action="work_order_updated",
                details={"fields": sorted(payload.model_fields_set - {"status"})},
            )

        if wants_completion:
            if complete_work_order is None:
                raise RuntimeError("Missing work order use-case hook: complete_work_order")
            work_order = complete_work_order(db, actor=current_user, work_order=work_order, now=clock())
    return work_order


def get_work_order_use_case(*, db: Session, work_order_id: UUID, current_user: User) -> WorkOrder:
    return get_visible_work_order(db, work_order_id=work_order_id, current_user=current_user)


def list_work_orders_use_case(
    *,
    db: Session,
    current_user: User,
    statuses: list[str] | None = None,
) -> list[WorkOrder]:
    return list_work_orders(db, current_user=current_user, statuses=statuses)


def list_pending_approval_use_case(*, db: Session, current_user: User) -> list[WorkOrder]:
    require_permission(current_user, "canReviewWorkOrders")
    return list_work_orders(db, current_user=current_user, statuses=["pending_approval"])
