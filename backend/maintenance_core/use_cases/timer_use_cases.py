"""Timer use-cases: one active session per actor, break time never accumulates.

Each public ``*_use_case`` is one unit of work. The in-transaction helpers
(``start_timer``, ``stop_timer``) do not commit and are composed by the
orchestration layer.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from ..database import unit_of_work
from ..domain_errors import AuthorizationError, DomainError, InvalidTransitionError, NotFoundError
from ..models import BREAK_REASONS, TimeEntry, User, WorkOrder
from ..security import can_time_work_order, can_view_work_order
from ..services.audit import record_timer_event
from ..services.time_entry_store import (
    close_entry,
    get_entry_or_none,
    get_open_entry,
    list_entries_for_work_order,
    lock_actor,
    lock_open_entry,
    open_entry,
)
from ..services.timer_rules import (
    BREAK,
    WORK,
    elapsed_seconds,
    ensure_active_entry_on,
    ensure_active_entry_type,
    ensure_no_active_entry,
    now_utc,
)
from ..services.work_order_lifecycle import TERMINAL_STATUSES
from ..services.work_order_store import add_work_time, get_work_order_or_404, lock_work_order

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
TIMEABLE_STATUSES: frozenset[str] = frozenset({"open", "in_progress"})


@dataclass(frozen=True)
class TimerChange:
    """Result of a timer action: the entry it closed and the one it opened."""

    closed: TimeEntry | None
    opened: TimeEntry | None
    work_order: WorkOrder


@dataclass(frozen=True)
class ActiveTimer:
    entry: TimeEntry
    work_order: WorkOrder
    elapsed_seconds: float


def load_timeable_work_order(db: Session, *, actor: User, work_order_id: UUID) -> WorkOrder:
    """Resolve a work order the actor may run a timer on."""
    work_order = get_work_order_or_404(db, work_order_id=work_order_id, company_id=actor.company_id)
    if not can_view_work_order(work_order, actor):
        raise NotFoundError("work_order")
    if work_order.status not in TIMEABLE_STATUSES:
        raise InvalidTransitionError(work_order.status, "start_timer")
    if not can_time_work_order(work_order, actor):
        raise AuthorizationError()
    return work_order


def start_timer(db: Session, *, actor: User, work_order: WorkOrder, now: datetime) -> TimeEntry:
    """Open a work entry. Caller holds the actor lock and owns the transaction."""
    ensure_no_active_entry(get_open_entry(db, actor.id))
    if work_order.status not in TIMEABLE_STATUSES:
        raise InvalidTransitionError(work_order.status, "start_timer")

    entry = open_entry(db, actor=actor, work_order=work_order, entry_type=WORK, now=now)
    record_timer_event(db, actor=actor, entry=entry, action="timer_started")
    logger.info("timer.start user=%s work_order=%s entry=%s", actor.id, work_order.id, entry.id)
    return entry


def _close_active(
    db: Session,
    *,
    actor: User,
    entry: TimeEntry,
    now: datetime,
    action: str,
) -> tuple[TimeEntry, WorkOrder]:
    """Close ``entry``; work segments are added to the order's ledger."""
    work_order = lock_work_order(db, entry.work_order)
    if work_order.status in TERMINAL_STATUSES:
        raise InvalidTransitionError(work_order.status, "stop_timer")
    close_entry(db, entry, now=now)
    if entry.entry_type == WORK:
        work_order = add_work_time(db, work_order=work_order, seconds=entry.duration_seconds or 0.0)
    record_timer_event(
        db,
        actor=actor,
        entry=entry,
        action=action,
        details={"durationSeconds": entry.duration_seconds},
    )
    return entry, work_order


def _lock_active_entry(db: Session, actor: User) -> TimeEntry | None:
    """Lock the actor's open entry behind its work order row; None once it was closed elsewhere."""
    active = get_open_entry(db, actor.id)
    if active is None:
        return None
    lock_work_order(db, active.work_order)
    return lock_open_entry(db, active)


def stop_timer(db: Session, *, actor: User, work_order_id: UUID, now: datetime) -> tuple[TimeEntry, WorkOrder]:
    """Close the actor's open entry on ``work_order_id``. Caller owns the transaction."""
    active = _lock_active_entry(db, actor)
    ensure_active_entry_on(active, work_order_id=work_order_id)
    closed, work_order = _close_active(db, actor=actor, entry=active, now=now, action="timer_stopped")
    logger.info(
        "timer.stop user=%s work_order=%s entry=%s type=%s seconds=%.1f",
        actor.id,
        work_order_id,
        closed.id,
        closed.entry_type,
        closed.duration_seconds or 0.0,
    )
    return closed, work_order


def force_stop_entry(db: Session, *, actor: User, entry: TimeEntry, now: datetime) -> tuple[TimeEntry, WorkOrder]:
    """Close another actor's entry on behalf of ``actor`` (work order completion)."""
    closed, work_order = _close_active(db, actor=actor, entry=entry, now=now, action="timer_force_stopped")
    logger.info(
        "timer.force_stop by=%s owner=%s work_order=%s entry=%s",
        actor.id,
        entry.user_id,
        entry.work_order_id,
        entry.id,
    )
    return closed, work_order


def pause_timer_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    break_reason: str,
    notes: str | None = None,
    clock: Clock = now_utc,
) -> TimerChange:
    """Close the active work entry and open a break entry, atomically."""
    if break_reason not in BREAK_REASONS:
        raise DomainError(
            code="TIMER_INVALID_BREAK_REASON",
            http_status=422,
            message="Unknown break reason",
            details={"allowed": list(BREAK_REASONS)},
        )

    with unit_of_work(db):
        lock_actor(db, current_user.id)
        active = _lock_active_entry(db, current_user)
        ensure_active_entry_type(active, work_order_id=work_order_id, entry_type=WORK)

        now = clock()
        closed, work_order = _close_active(db, actor=current_user, entry=active, now=now, action="timer_paused")
        opened = open_entry(
            db,
            actor=current_user,
            work_order=work_order,
            entry_type=BREAK,
            now=now,
            break_reason=break_reason,
            notes=notes,
        )
        logger.info(
            "timer.pause user=%s work_order=%s reason=%s worked_seconds=%.1f",
            current_user.id,
            work_order_id,
            break_reason,
            closed.duration_seconds or 0.0,
        )
    return TimerChange(closed=closed, opened=opened, work_order=work_order)


def resume_timer_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    clock: Clock = now_utc,
) -> TimerChange:
    """Close the active break entry and open a new work entry, atomically."""
    with unit_of_work(db):
        lock_actor(db, current_user.id)
        active = _lock_active_entry(db, current_user)
        ensure_active_entry_type(active, work_order_id=work_order_id, entry_type=BREAK)

        now = clock()
        closed, work_order = _close_active(db, actor=current_user, entry=active, now=now, action="timer_resumed")
        opened = open_entry(db, actor=current_user, work_order=work_order, entry_type=WORK, now=now)
        logger.info(
            "timer.resume user=%s work_order=%s break_seconds=%.1f",
            current_user.id,
            work_order_id,
            closed.duration_seconds or 0.0,
        )
    return TimerChange(closed=closed, opened=opened, work_order=work_order)


def stop_timer_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
    clock: Clock = now_utc,
) -> TimerChange:
    """Close the active entry on the order; a second stop fails with ConflictError."""
    with unit_of_work(db):
        lock_actor(db, current_user.id)
        closed, work_order = stop_timer(db, actor=current_user, work_order_id=work_order_id, now=clock())
    return TimerChange(closed=closed, opened=None, work_order=work_order)


def get_active_timer_use_case(
    *,
    db: Session,
    current_user: User,
    clock: Clock = now_utc,
) -> ActiveTimer | None:
    """Read the actor's open entry straight from the database."""
    entry = get_open_entry(db, current_user.id)
    if entry is None:
        return None
    return ActiveTimer(
        entry=entry,
        work_order=entry.work_order,
        elapsed_seconds=elapsed_seconds(entry, now=clock()),
    )


def list_time_entries_use_case(
    *,
    db: Session,
    work_order_id: UUID,
    current_user: User,
) -> list[TimeEntry]:
    work_order = get_work_order_or_404(db, work_order_id=work_order_id, company_id=current_user.company_id)
    if not can_view_work_order(work_order, current_user):
        raise NotFoundError("work_order")
    return list_entries_for_work_order(db, work_order.id)


def update_time_entry_notes_use_case(
    *,
    db: Session,
    entry_id: UUID,
    current_user: User,
    notes: str | None,
) -> TimeEntry:
    """Notes are the only field that may change once an entry exists."""
    entry = get_entry_or_none(db, entry_id=entry_id, company_id=current_user.company_id)
    if entry is None:
        raise NotFoundError("time_entry")
    if entry.user_id != current_user.id:
        raise AuthorizationError()

    with unit_of_work(db):
        entry.notes = notes
    return entry
