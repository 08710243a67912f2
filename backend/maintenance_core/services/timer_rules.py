"""Timer invariant helpers: clock, durations, rounding and precondition checks."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from ..domain_errors import ConflictError, InvalidStateError

WORK = "work"
BREAK = "break"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values read back from backends that drop tzinfo."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_start_time(*, now: datetime, last_end_time: datetime | None) -> datetime:
    """New entries never start before the actor's latest closed entry ended."""
    now = as_utc(now)
    if last_end_time is None:
        return now
    return max(now, as_utc(last_end_time))


def close_time(*, now: datetime, start_time: datetime) -> datetime:
    return max(as_utc(now), as_utc(start_time))


def duration_seconds(*, start_time: datetime, end_time: datetime) -> float:
    return max((as_utc(end_time) - as_utc(start_time)).total_seconds(), 0.0)


def elapsed_seconds(entry, *, now: datetime | None = None) -> float:
    """Live elapsed time for display. Closed entries report their stored duration."""
    if entry.end_time is not None:
        if entry.duration_seconds is not None:
            return float(entry.duration_seconds)
        return duration_seconds(start_time=entry.start_time, end_time=entry.end_time)
    return duration_seconds(start_time=entry.start_time, end_time=now or now_utc())


def seconds_to_minutes(seconds: float) -> float:
    return seconds / 60.0


def round_minutes(minutes: float | None) -> int:
    """Whole minutes for display and reports only; the ledger keeps the float."""
    if not minutes:
        return 0
    return int(Decimal(str(minutes)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def ensure_no_active_entry(active_entry) -> None:
    if active_entry is not None:
        raise ConflictError("active timer exists", active_entry.work_order_id)


def ensure_active_entry_on(active_entry, *, work_order_id: UUID) -> None:
    if active_entry is None:
        raise ConflictError("No active timer", code="TIMER_NOT_ACTIVE")
    if active_entry.work_order_id != work_order_id:
        raise InvalidStateError(
            "Active timer belongs to another work order",
            details={"activeWorkOrderId": str(active_entry.work_order_id)},
        )


def ensure_active_entry_type(active_entry, *, work_order_id: UUID, entry_type: str) -> None:
    if active_entry is None:
        raise InvalidStateError(f"No active {entry_type} entry for this work order")
    ensure_active_entry_on(active_entry, work_order_id=work_order_id)
    if active_entry.entry_type != entry_type:
        raise InvalidStateError(
            f"Active entry is a {active_entry.entry_type} entry, expected {entry_type}",
            details={"activeEntryType": active_entry.entry_type},
        )
