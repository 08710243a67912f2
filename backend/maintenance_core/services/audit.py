"""Audit trail writer; rows are added to the caller's transaction."""
from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from ..models import AuditEvent, TimeEntry, User, WorkOrder


def record_work_order_event(
    db: Session,
    *,
    actor: User,
    work_order: WorkOrder,
    action: str,
    details: dict[str, Any] | None = None,
) -> AuditEvent:
    event = AuditEvent(
        company_id=work_order.company_id,
        action=action,
        entity_type="work_order",
        entity_id=work_order.id,
        entity_name=f"WO-{work_order.work_order_number}: {work_order.title}"[:255],
        user_id=actor.id,
        user_name=actor.initials,
        details=details or {},
    )
    db.add(event)
    return event


def record_timer_event(
    db: Session,
    *,
    actor: User,
    entry: TimeEntry,
    action: str,
    details: dict[str, Any] | None = None,
) -> AuditEvent:
    payload = {"workOrderId": str(entry.work_order_id), "entryType": entry.entry_type}
    payload.update(details or {})
    event = AuditEvent(
        company_id=entry.company_id,
        action=action,
        entity_type="time_entry",
        entity_id=entry.id,
        user_id=actor.id,
        user_name=actor.initials,
        details=payload,
    )
    db.add(event)
    return event
