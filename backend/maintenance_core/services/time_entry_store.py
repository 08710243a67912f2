"""Time entry persistence helpers.

The partial unique index ``uq_time_entries_open_per_user`` is the authority
for "one open entry per actor"; the read-side checks here only produce a
friendlier error and detect rows written around the index.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..domain_errors import ConflictError, DataIntegrityError, InvalidTransitionError
from ..models import TimeEntry, User, WorkOrder
from .timer_rules import close_time, duration_seconds, next_start_time
from .work_order_lifecycle import TERMINAL_STATUSES

logger = logging.getLogger(__name__)

OPEN_ENTRY_INDEX = "uq_time_entries_open_per_user"


def lock_actor(db: Session, user_id: UUID) -> None:
    """Serialize timer operations of one actor on their user row."""
    db.query(User.id).filter(User.id == user_id).with_for_update().first()


def lock_actors(db: Session, user_ids: Iterable[UUID]) -> None:
    """Lock several actors in id order so concurrent callers cannot deadlock."""
    for user_id in sorted(set(user_ids)):
        lock_actor(db, user_id)


def open_entry_owner_ids(db: Session, work_order_id: UUID) -> list[UUID]:
    rows = db.query(TimeEntry.user_id).filter(
        TimeEntry.work_order_id == work_order_id,
        TimeEntry.end_time.is_(None),
    ).distinct().all()
    return [row.user_id for row in rows]


def get_open_entries(db: Session, user_id: UUID) -> list[TimeEntry]:
    return db.query(TimeEntry).filter(
        TimeEntry.user_id == user_id,
        TimeEntry.end_time.is_(None),
    ).order_by(TimeEntry.start_time).limit(2).populate_existing().all()


def get_open_entry(db: Session, user_id: UUID) -> TimeEntry | None:
    """Return the actor's single open entry, or None."""
    entries = get_open_entries(db, user_id)
    if len(entries) > 1:
        logger.error(
            "timer.integrity multiple_open_entries user=%s entries=%s",
            user_id,
            [str(entry.id) for entry in entries],
        )
        raise DataIntegrityError(
            "Multiple open time entries found for actor",
            details={"userId": str(user_id), "entryIds": [str(entry.id) for entry in entries]},
        )
    return entries[0] if entries else None


def get_open_entries_for_work_order(db: Session, work_order_id: UUID) -> list[TimeEntry]:
    return db.query(TimeEntry).filter(
        TimeEntry.work_order_id == work_order_id,
        TimeEntry.end_time.is_(None),
    ).order_by(TimeEntry.user_id).populate_existing().all()


def lock_open_entry(db: Session, entry: TimeEntry | None) -> TimeEntry | None:
    """Re-read ``entry`` under FOR UPDATE; None once another transaction has closed it."""
    if entry is None:
        return None
    return db.query(TimeEntry).filter(
        TimeEntry.id == entry.id,
        TimeEntry.end_time.is_(None),
    ).with_for_update().populate_existing().first()


def latest_end_time(db: Session, user_id: UUID) -> datetime | None:
    return db.query(func.max(TimeEntry.end_time)).filter(TimeEntry.user_id == user_id).scalar()


def _is_open_entry_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig)
    return OPEN_ENTRY_INDEX in text or "time_entries.user_id" in text


def open_entry(
    db: Session,
    *,
    actor: User,
    work_order: WorkOrder,
    entry_type: str,
    now: datetime,
    break_reason: str | None = None,
    notes: str | None = None,
) -> TimeEntry:
    """Insert an open entry; a lost race on the unique index becomes ConflictError."""
    if work_order.status in TERMINAL_STATUSES:
        raise InvalidTransitionError(work_order.status, "start_timer")
    entry = TimeEntry(
        user_id=actor.id,
        work_order_id=work_order.id,
        company_id=work_order.company_id,
        entry_type=entry_type,
        break_reason=break_reason,
        notes=notes,
        start_time=next_start_time(now=now, last_end_time=latest_end_time(db, actor.id)),
    )
    db.add(entry)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        if not _is_open_entry_violation(exc):
            raise
        winner = get_open_entry(db, actor.id)
        logger.info("timer.race_lost user=%s work_order=%s", actor.id, work_order.id)
        raise ConflictError(
            "active timer exists",
            winner.work_order_id if winner is not None else None,
        ) from exc
    return entry


def close_entry(db: Session, entry: TimeEntry, *, now: datetime) -> TimeEntry:
    end_time = close_time(now=now, start_time=entry.start_time)
    entry.end_time = end_time
    entry.duration_seconds = duration_seconds(start_time=entry.start_time, end_time=end_time)
    db.flush()
    return entry


def list_entries_for_work_order(db: Session, work_order_id: UUID) -> list[TimeEntry]:
    return db.query(TimeEntry).filter(
        TimeEntry.work_order_id == work_order_id,
    ).order_by(TimeEntry.start_time, TimeEntry.created_at).all()


def get_entry_or_none(db: Session, *, entry_id: UUID, company_id: UUID) -> TimeEntry | None:
    return db.query(TimeEntry).filter(
        TimeEntry.id == entry_id,
        TimeEntry.company_id == company_id,
    ).first()
