"""Compound actions spanning the timer and the work order lifecycle.

``start_work``, ``complete`` and ``reject`` are single units of work. Switching
the active timer is two: the old entry is stopped and committed first, then
the new one is started. Step failures are reported as ``SwitchFailed``; a
failed start leaves the actor with no active timer.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Union
from uuid import UUID

from sqlalchemy.orm import Session

from ..database import unit_of_work
from ..domain_errors import ConflictError, DataIntegrityError, DomainError
from ..models import TimeEntry, User, WorkOrder
from ..services.time_entry_store import (
    get_open_entries_for_work_order,
    get_open_entry,
    lock_actor,
    lock_actors,
    open_entry_owner_ids,
)
from ..services.timer_rules import ensure_no_active_entry, now_utc
from ..services.work_order_lifecycle import resolve_transition
from ..services.work_order_store import lock_work_order, sum_closed_work_seconds
from .timer_use_cases import (
    force_stop_entry,
    load_timeable_work_order,
    start_timer,
    stop_timer,
    stop_timer_use_case,
)
from .work_order_transitions import apply_transition, get_visible_work_order

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class TimerStarted:
    opened: TimeEntry


@dataclass(frozen=True)
class TimerSwitched:
    closed: TimeEntry
    opened: TimeEntry


@dataclass(frozen=True)
class SwitchFailed:
    """A switch step failed.

    At ``stop`` nothing changed. At ``start`` the old entry is already closed
    and committed, so the actor has no active timer.
    """

    stage: str
    cause: DomainError
    closed: TimeEntry | None = None

    def as_error(self) -> DomainError:
        details = dict(self.cause.details or {})
        details["stage"] = self.stage
        if self.closed is not None:
            details["closedEntryId"] = str(self.closed.id)
        return DomainError(
            code=self.cause.code,
            http_status=self.cause.http_status,
            message=f"Switch failed at {self.stage}: {self.cause.message}",
            details=details,
        )


SwitchResult = Union[TimerStarted, TimerSwitched, SwitchFailed]


def _start_in_tx(db: Session, *, actor: User, work_order_id: UUID, now: datetime) -> TimeEntry:
    """Start a timer, moving an open order to in_progress first. Caller owns the transaction."""
    lock_actor(db, actor.id)
    work_order = load_timeable_work_order(db, actor=actor, work_order_id=work_order_id)
    work_order = lock_work_order(db, work_order)
    ensure_no_active_entry(get_open_entry(db, actor.id))
    if work_order.status == "open":
        apply_transition(db, work_order=work_order, action="start", actor=actor, now=now)
    return start_timer(db, actor=actor, work_order=work_order, now=now)


def start_work_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    clock: Clock = now_utc,
) -> TimeEntry:
    """Start a timer; rejected with ConflictError while any other timer is open."""
    with unit_of_work(db):
        entry = _start_in_tx(db, actor=current_user, work_order_id=work_order_id, now=clock())
    return entry


def switch_active_timer_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    clock: Clock = now_utc,
) -> SwitchResult:
    """Stop whatever the actor is timing and start on ``work_order_id``."""
    # Target problems are reported before anything is stopped.
    load_timeable_work_order(db, actor=current_user, work_order_id=work_order_id)
    active = get_open_entry(db, current_user.id)
    if active is not None and active.work_order_id == work_order_id:
        raise ConflictError("Timer already running on this work order", work_order_id)

    if active is None:
        opened = start_work_use_case(db=db, work_order_id=work_order_id, current_user=current_user, clock=clock)
        return TimerStarted(opened=opened)

    try:
        change = stop_timer_use_case(
            db=db,
            work_order_id=active.work_order_id,
            current_user=current_user,
            clock=clock,
        )
    except DomainError as exc:
        logger.warning(
            "timer.switch_failed user=%s stage=stop target=%s code=%s",
            current_user.id,
            work_order_id,
            exc.code,
        )
        return SwitchFailed(stage="stop", cause=exc)
    closed = change.closed

    try:
        opened = start_work_use_case(db=db, work_order_id=work_order_id, current_user=current_user, clock=clock)
    except DomainError as exc:
        logger.warning(
            "timer.switch_failed user=%s stage=start closed_entry=%s target=%s code=%s",
            current_user.id,
            closed.id,
            work_order_id,
            exc.code,
        )
        return SwitchFailed(stage="start", cause=exc, closed=closed)

    logger.info(
        "timer.switch user=%s from=%s to=%s",
        current_user.id,
        closed.work_order_id,
        work_order_id,
    )
    return TimerSwitched(closed=closed, opened=opened)


def complete_work_order_in_tx(db: Session, *, actor: User, work_order: WorkOrder, now: datetime) -> WorkOrder:
    """Stop timers on the order, freeze its total and complete it.

    Caller owns the transaction and already holds the locks of ``actor`` and of
    every timer owner on the order, taken before the work order row.
    """
    work_order = lock_work_order(db, work_order)
    # Nothing is stopped for an order that cannot complete.
    resolve_transition(work_order=work_order, action="complete", actor=actor)

    own = get_open_entry(db, actor.id)
    if own is not None and own.work_order_id == work_order.id:
        stop_timer(db, actor=actor, work_order_id=work_order.id, now=now)

    for entry in get_open_entries_for_work_order(db, work_order.id):
        force_stop_entry(db, actor=actor, entry=entry, now=now)

    work_order = lock_work_order(db, work_order)
    work_order.total_time_minutes = sum_closed_work_seconds(db, work_order.id) / 60.0
    apply_transition(
        db,
        work_order=work_order,
        action="complete",
        actor=actor,
        now=now,
        details={"totalTimeMinutes": work_order.total_time_minutes},
    )
    return work_order


def complete_work_order_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    clock: Clock = now_utc,
) -> WorkOrder:
    with unit_of_work(db):
        lock_actors(db, [current_user.id, *open_entry_owner_ids(db, work_order_id)])
        work_order = get_visible_work_order(db, work_order_id=work_order_id, current_user=current_user)
        work_order = complete_work_order_in_tx(db, actor=current_user, work_order=work_order, now=clock())
    return work_order


def reject_work_order_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    reason: str | None = None,
    clock: Clock = now_utc,
) -> WorkOrder:
    """Send a pending order back to draft with the reviewer's reason in notes."""
    with unit_of_work(db):
        work_order = get_visible_work_order(db, work_order_id=work_order_id, current_user=current_user)
        work_order = lock_work_order(db, work_order)
        open_entries = get_open_entries_for_work_order(db, work_order.id)
        apply_transition(
            db,
            work_order=work_order,
            action="reject",
            actor=current_user,
            now=clock(),
            details={"reason": reason},
        )
        if open_entries:
            logger.error(
                "work_order.integrity open_entries_on_reject work_order=%s entries=%s",
                work_order.id,
                [str(entry.id) for entry in open_entries],
            )
            raise DataIntegrityError(
                "Work order awaiting approval has open time entries",
                details={
                    "workOrderId": str(work_order.id),
                    "entryIds": [str(entry.id) for entry in open_entries],
                },
            )
        work_order.notes = f"[Rejected by {current_user.name}]: {reason}" if reason else None
    return work_order
