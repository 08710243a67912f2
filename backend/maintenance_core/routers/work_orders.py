"""Work order endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..schemas import WorkOrderCreate, WorkOrderRejectRequest, WorkOrderResponse, WorkOrderUpdate
from ..use_cases.orchestration import (
    complete_work_order_in_tx,
    complete_work_order_use_case,
    reject_work_order_use_case,
)
from ..use_cases.work_order_transitions import (
    approve_work_order_use_case,
    create_work_order_use_case,
    delete_work_order_use_case,
    get_work_order_use_case,
    list_pending_approval_use_case,
    list_work_orders_use_case,
    submit_work_order_use_case,
    update_work_order_use_case,
)

router = APIRouter(prefix="/work-orders", tags=["work-orders"])


@router.get("", response_model=list[WorkOrderResponse])
def list_work_orders(
    status_filter: Optional[list[str]] = Query(default=None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List work orders visible to the caller."""
    return list_work_orders_use_case(db=db, current_user=current_user, statuses=status_filter)


@router.get("/pending-approval", response_model=list[WorkOrderResponse])
def list_pending_approval(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Review queue for managers."""
    return list_pending_approval_use_case(db=db, current_user=current_user)


@router.get("/{work_order_id}", response_model=WorkOrderResponse)
def get_work_order(
    work_order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return get_work_order_use_case(db=db, work_order_id=work_order_id, current_user=current_user)


@router.post("", response_model=WorkOrderResponse, status_code=status.HTTP_201_CREATED)
def create_work_order(
    data: WorkOrderCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a work order: draft for techs, open (or draft) for managers."""
    return create_work_order_use_case(db=db, current_user=current_user, payload=data)


@router.patch("/{work_order_id}", response_model=WorkOrderResponse)
def update_work_order(
    work_order_id: UUID,
    data: WorkOrderUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Edit fields. ``status: "completed"`` stops timers and completes the order."""
    return update_work_order_use_case(
        db=db,
        work_order_id=work_order_id,
        current_user=current_user,
        payload=data,
        complete_work_order=complete_work_order_in_tx,
    )


@router.delete("/{work_order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_work_order(
    work_order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    delete_work_order_use_case(db=db, work_order_id=work_order_id, current_user=current_user)


@router.post("/{work_order_id}/submit", response_model=WorkOrderResponse)
def submit_work_order(
    work_order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Send draft for approval."""
    return submit_work_order_use_case(db=db, work_order_id=work_order_id, current_user=current_user)


@router.post("/{work_order_id}/approve", response_model=WorkOrderResponse)
def approve_work_order(
    work_order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return approve_work_order_use_case(db=db, work_order_id=work_order_id, current_user=current_user)


@router.post("/{work_order_id}/reject", response_model=WorkOrderResponse)
def reject_work_order(
    work_order_id: UUID,
    data: Optional[WorkOrderRejectRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Return to draft with reviewer feedback."""
    return reject_work_order_use_case(
        db=db,
        work_order_id=work_order_id,
        current_user=current_user,
        reason=data.reason if data else None,
    )


@router.post("/{work_order_id}/complete", response_model=WorkOrderResponse)
def complete_work_order(
    work_order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Force-stop timers on the order and complete it."""
    return complete_work_order_use_case(db=db, work_order_id=work_order_id, current_user=current_user)
