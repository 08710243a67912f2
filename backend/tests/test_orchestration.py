from __future__ import annotations

import pytest
from sqlalchemy.orm import sessionmaker

from maintenance_core.domain_errors import (
    AuthorizationError,
    ConflictError,
    DataIntegrityError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
)
from maintenance_core.models import AuditEvent, TimeEntry, User
from maintenance_core.schemas import WorkOrderUpdate
from maintenance_core.services.time_entry_store import get_open_entry
from maintenance_core.use_cases import orchestration, timer_use_cases, work_order_transitions
from maintenance_core.use_cases.orchestration import (
    SwitchFailed,
    TimerStarted,
    TimerSwitched,
    complete_work_order_in_tx,
    complete_work_order_use_case,
    reject_work_order_use_case,
    start_work_use_case,
    switch_active_timer_use_case,
)
from maintenance_core.use_cases.timer_use_cases import (
    get_active_timer_use_case,
    pause_timer_use_case,
    stop_timer_use_case,
)
from maintenance_core.use_cases.work_order_transitions import update_work_order_use_case


def test_switch_closes_old_entry_and_opens_new_one(db, tech, make_work_order, clock) -> None:
    first = make_work_order(assigned_to=tech)
    second = make_work_order(assigned_to=tech)
    start_work_use_case(db=db, work_order_id=first.id, current_user=tech, clock=clock.at(0))

    result = switch_active_timer_use_case(db=db, work_order_id=second.id, current_user=tech, clock=clock.at(600))

    assert isinstance(result, TimerSwitched)
    assert result.closed.work_order_id == first.id
    assert result.closed.end_time is not None
    assert result.opened.work_order_id == second.id

    active = get_active_timer_use_case(db=db, current_user=tech, clock=clock)
    assert active.entry.id == result.opened.id
    db.refresh(first)
    db.refresh(second)
    assert first.total_time_minutes == pytest.approx(10.0)
    assert second.status == "in_progress"


def test_switch_without_active_timer_just_starts(db, tech, make_work_order, clock) -> None:
    work_order = make_work_order(assigned_to=tech)

    result = switch_active_timer_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock)

    assert isinstance(result, TimerStarted)
    assert result.opened.work_order_id == work_order.id


def test_switch_onto_same_order_is_conflict(db, tech, make_work_order, clock) -> None:
    work_order = make_work_order(assigned_to=tech)
    start_work_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock)

    with pytest.raises(ConflictError):
        switch_active_timer_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock)


def test_switch_to_unusable_order_leaves_active_timer_untouched(
    db, tech, other_tech, make_work_order, clock
) -> None:
    first = make_work_order(assigned_to=tech)
    foreign = make_work_order(assigned_to=other_tech)
    entry = start_work_use_case(db=db, work_order_id=first.id, current_user=tech, clock=clock)

    with pytest.raises(NotFoundError):
        switch_active_timer_use_case(db=db, work_order_id=foreign.id, current_user=tech, clock=clock)

    assert get_active_timer_use_case(db=db, current_user=tech, clock=clock).entry.id == entry.id


def test_switch_fails_forward_when_start_step_fails(db, tech, make_work_order, clock, monkeypatch) -> None:
    first = make_work_order(assigned_to=tech)
    second = make_work_order(assigned_to=tech)
    start_work_use_case(db=db, work_order_id=first.id, current_user=tech, clock=clock.at(0))

    def _failing_start(**_kwargs):
        raise InvalidTransitionError("completed", "start_timer")

    monkeypatch.setattr(orchestration, "start_work_use_case", _failing_start)

    result = switch_active_timer_use_case(db=db, work_order_id=second.id, current_user=tech, clock=clock.at(300))

    assert isinstance(result, SwitchFailed)
    assert result.stage == "start"
    assert result.closed.work_order_id == first.id
    # The stop step stays committed and no timer is left running.
    assert get_active_timer_use_case(db=db, current_user=tech, clock=clock) is None
    db.refresh(first)
    assert first.total_time_minutes == pytest.approx(5.0)

    error = result.as_error()
    assert error.code == "WORK_ORDER_INVALID_TRANSITION"
    assert error.details["stage"] == "start"
    assert error.details["closedEntryId"] == str(result.closed.id)


def test_switch_reports_stop_stage_and_keeps_timer(db, tech, make_work_order, clock, monkeypatch) -> None:
    first = make_work_order(assigned_to=tech)
    second = make_work_order(assigned_to=tech)
    entry = start_work_use_case(db=db, work_order_id=first.id, current_user=tech, clock=clock)

    def _failing_stop(**_kwargs):
        raise ConflictError("No active timer", code="TIMER_NOT_ACTIVE")

    monkeypatch.setattr(orchestration, "stop_timer_use_case", _failing_stop)

    result = switch_active_timer_use_case(db=db, work_order_id=second.id, current_user=tech, clock=clock)

    assert isinstance(result, SwitchFailed)
    assert result.stage == "stop"
    assert result.closed is None
    assert result.as_error().details == {"stage": "stop"}
    assert get_active_timer_use_case(db=db, current_user=tech, clock=clock).entry.id == entry.id


def test_complete_while_timing_force_closes_entry_and_freezes_total(db, tech, make_work_order, clock) -> None:
    work_order = make_work_order(assigned_to=tech)
    start_work_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock.at(0))

    completed = complete_work_order_use_case(
        db=db,
        work_order_id=work_order.id,
        current_user=tech,
        clock=clock.at(1200),
    )

    assert completed.status == "completed"
    assert completed.completed_at is not None
    assert completed.total_time_minutes == pytest.approx(20.0)
    assert get_active_timer_use_case(db=db, current_user=tech, clock=clock) is None


def test_complete_leaves_entries_on_other_orders_untouched(db, tech, make_work_order, clock) -> None:
    timed = make_work_order(assigned_to=tech)
    finished = make_work_order(assigned_to=tech)
    entry = start_work_use_case(db=db, work_order_id=timed.id, current_user=tech, clock=clock.at(0))

    complete_work_order_use_case(db=db, work_order_id=finished.id, current_user=tech, clock=clock.at(60))

    db.refresh(entry)
    assert entry.end_time is None


def test_manager_completion_force_stops_assignee_timer(db, tech, manager, make_work_order, clock) -> None:
    work_order = make_work_order(assigned_to=tech)
    entry = start_work_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock.at(0))

    completed = complete_work_order_use_case(
        db=db,
        work_order_id=work_order.id,
        current_user=manager,
        clock=clock.at(900),
    )

    db.refresh(entry)
    assert entry.end_time is not None
    assert completed.total_time_minutes == pytest.approx(15.0)
    force_stops = db.query(AuditEvent).filter(AuditEvent.action == "timer_force_stopped").all()
    assert [event.entity_id for event in force_stops] == [entry.id]


def test_completing_twice_is_rejected(db, tech, make_work_order, clock) -> None:
    work_order = make_work_order(assigned_to=tech)
    complete_work_order_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock)

    with pytest.raises(InvalidTransitionError):
        complete_work_order_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock)


def test_failed_completion_does_not_stop_timer(db, tech, other_tech, make_work_order, clock) -> None:
    work_order = make_work_order(assigned_to=tech, created_by=tech)
    entry = start_work_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock)
    work_order.assigned_to_id = other_tech.id
    db.commit()

    # The creator can still see the order but is no longer its assignee.
    with pytest.raises(AuthorizationError):
        complete_work_order_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock)

    db.refresh(entry)
    assert entry.end_time is None


def test_patch_status_completed_runs_completion(db, tech, make_work_order, clock) -> None:
    work_order = make_work_order(assigned_to=tech)
    start_work_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock.at(0))

    updated = update_work_order_use_case(
        db=db,
        work_order_id=work_order.id,
        current_user=tech,
        payload=WorkOrderUpdate(status="completed", notes="Belt replaced"),
        complete_work_order=complete_work_order_in_tx,
        clock=clock.at(3000),
    )

    assert updated.status == "completed"
    assert updated.notes == "Belt replaced"
    assert updated.total_time_minutes == pytest.approx(50.0)


def test_reject_sends_order_back_to_draft_with_reason(db, tech, manager, make_work_order, clock) -> None:
    work_order = make_work_order(status="pending_approval", assigned_to=tech, created_by=tech)

    rejected = reject_work_order_use_case(
        db=db,
        work_order_id=work_order.id,
        current_user=manager,
        reason="Add photos of the leak",
        clock=clock,
    )

    assert rejected.status == "draft"
    assert rejected.notes == "[Rejected by Maria Lopez]: Add photos of the leak"


def test_reject_with_open_timer_is_data_integrity_violation(
    db, tech, manager, company, make_work_order, clock
) -> None:
    work_order = make_work_order(status="pending_approval", assigned_to=tech, created_by=tech)
    db.add(TimeEntry(
        user_id=tech.id,
        work_order_id=work_order.id,
        company_id=company.id,
        entry_type="work",
        start_time=clock(),
    ))
    db.commit()

    with pytest.raises(DataIntegrityError):
        reject_work_order_use_case(db=db, work_order_id=work_order.id, current_user=manager, reason="no", clock=clock)

    db.refresh(work_order)
    assert work_order.status == "pending_approval"


def test_timer_request_racing_completion_cannot_reopen_frozen_total(
    db, tech, manager, make_work_order, clock, monkeypatch
) -> None:
    work_order = make_work_order(assigned_to=tech)
    start_work_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock.at(0))

    tech_db = sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())()
    try:
        tech_in_request = tech_db.get(User, tech.id)
        # The tech's request read its entry before the manager's completion committed.
        stale_entry = get_open_entry(tech_db, tech.id)

        completed = complete_work_order_use_case(
            db=db,
            work_order_id=work_order.id,
            current_user=manager,
            clock=clock.at(900),
        )
        assert completed.total_time_minutes == pytest.approx(15.0)

        monkeypatch.setattr(timer_use_cases, "get_open_entry", lambda _db, _user_id: stale_entry)
        with pytest.raises(InvalidStateError):
            pause_timer_use_case(
                db=tech_db,
                work_order_id=work_order.id,
                current_user=tech_in_request,
                break_reason="lunch",
                clock=clock.at(1800),
            )
        with pytest.raises(ConflictError) as exc_info:
            stop_timer_use_case(
                db=tech_db,
                work_order_id=work_order.id,
                current_user=tech_in_request,
                clock=clock.at(1800),
            )
        assert exc_info.value.code == "TIMER_NOT_ACTIVE"
    finally:
        tech_db.close()

    db.refresh(work_order)
    assert work_order.status == "completed"
    assert work_order.total_time_minutes == pytest.approx(15.0)
    open_on_order = db.query(TimeEntry).filter(
        TimeEntry.work_order_id == work_order.id,
        TimeEntry.end_time.is_(None),
    ).count()
    assert open_on_order == 0


def test_entry_left_open_on_completed_order_is_not_closed_into_ledger(
    db, tech, company, make_work_order, clock
) -> None:
    work_order = make_work_order(status="completed", assigned_to=tech)
    db.add(TimeEntry(
        user_id=tech.id,
        work_order_id=work_order.id,
        company_id=company.id,
        entry_type="work",
        start_time=clock.at(0)(),
    ))
    db.commit()

    with pytest.raises(InvalidTransitionError):
        stop_timer_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock.at(600))

    db.refresh(work_order)
    assert work_order.total_time_minutes == 0.0


def test_completion_locks_actors_before_work_order(db, tech, manager, make_work_order, clock, monkeypatch) -> None:
    work_order = make_work_order(assigned_to=tech)
    start_work_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock.at(0))
    calls = []
    real_lock_actors = work_order_transitions.lock_actors
    real_lock_work_order = work_order_transitions.lock_work_order

    def _lock_actors(session, user_ids):
        user_ids = list(user_ids)
        calls.append(("actors", sorted(set(user_ids))))
        real_lock_actors(session, user_ids)

    def _lock_work_order(session, locked):
        calls.append(("work_order", locked.id))
        return real_lock_work_order(session, locked)

    monkeypatch.setattr(work_order_transitions, "lock_actors", _lock_actors)
    monkeypatch.setattr(work_order_transitions, "lock_work_order", _lock_work_order)

    update_work_order_use_case(
        db=db,
        work_order_id=work_order.id,
        current_user=manager,
        payload=WorkOrderUpdate(status="completed"),
        complete_work_order=complete_work_order_in_tx,
        clock=clock.at(600),
    )

    assert calls[:2] == [
        ("actors", sorted({manager.id, tech.id})),
        ("work_order", work_order.id),
    ]


def test_complete_use_case_locks_every_timer_owner(db, tech, manager, make_work_order, clock, monkeypatch) -> None:
    work_order = make_work_order(assigned_to=tech)
    start_work_use_case(db=db, work_order_id=work_order.id, current_user=tech, clock=clock.at(0))
    locked = []
    real_lock_actors = orchestration.lock_actors

    def _lock_actors(session, user_ids):
        user_ids = list(user_ids)
        locked.extend(user_ids)
        real_lock_actors(session, user_ids)

    monkeypatch.setattr(orchestration, "lock_actors", _lock_actors)

    complete_work_order_use_case(db=db, work_order_id=work_order.id, current_user=manager, clock=clock.at(600))

    assert set(locked) == {manager.id, tech.id}
