"""Work order persistence helpers shared by lifecycle and timer use-cases."""
from __future__ import annotations

from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..domain_errors import NotFoundError
from ..models import TimeEntry, User, WorkOrder
from ..security import apply_work_order_visibility_scope
from .timer_rules import seconds_to_minutes


def get_work_order_or_404(
    db: Session,
    *,
    work_order_id: UUID,
    company_id: UUID,
    for_update: bool = False,
) -> WorkOrder:
    """Load a work order of the company; optionally take its row lock."""
    query = db.query(WorkOrder).filter(
        WorkOrder.id == work_order_id,
        WorkOrder.company_id == company_id,
    )
    if for_update:
        query = query.with_for_update().populate_existing()
    work_order = query.first()
    if not work_order:
        raise NotFoundError("work_order")
    return work_order


def lock_work_order(db: Session, work_order: WorkOrder) -> WorkOrder:
    """Re-read the row under FOR UPDATE so concurrent edits cannot be lost."""
    # populate_existing would discard unflushed changes on the instance.
    db.flush()
    return get_work_order_or_404(
        db,
        work_order_id=work_order.id,
        company_id=work_order.company_id,
        for_update=True,
    )


def next_work_order_number(db: Session, company_id: UUID) -> int:
    current_max = db.query(func.coalesce(func.max(WorkOrder.work_order_number), 0)).filter(
        WorkOrder.company_id == company_id,
    ).scalar()
    return int(current_max or 0) + 1


def add_work_time(db: Session, *, work_order: WorkOrder, seconds: float) -> WorkOrder:
    """Accumulate a closed work segment into the order's ledger under its row lock."""
    locked = lock_work_order(db, work_order)
    locked.total_time_minutes = float(locked.total_time_minutes or 0.0) + seconds_to_minutes(seconds)
    return locked


def list_work_orders(db: Session, *, current_user: User, statuses: list[str] | None = None) -> list[WorkOrder]:
    query = apply_work_order_visibility_scope(db.query(WorkOrder), current_user)
    if statuses:
        query = query.filter(WorkOrder.status.in_(statuses))
    return query.order_by(WorkOrder.created_at.desc(), WorkOrder.work_order_number.desc()).all()


def delete_work_order_cascade(db: Session, work_order: WorkOrder) -> int:
    """Delete the order and its time entries; audit rows are kept. Returns entries removed."""
    removed = db.query(TimeEntry).filter(TimeEntry.work_order_id == work_order.id).delete(
        synchronize_session=False,
    )
    db.delete(work_order)
    return int(removed or 0)


def sum_closed_work_seconds(db: Session, work_order_id: UUID) -> float:
    total = db.query(func.coalesce(func.sum(TimeEntry.duration_seconds), 0.0)).filter(
        TimeEntry.work_order_id == work_order_id,
        TimeEntry.entry_type == "work",
        TimeEntry.end_time.isnot(None),
    ).scalar()
    return float(total or 0.0)

