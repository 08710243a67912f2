"""SQLAlchemy models for work orders, timer sessions and their audit trail."""
from sqlalchemy import (
    JSON, Boolean, Column, String, Integer, Float, DateTime, Text, Uuid,
    ForeignKey, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from .database import Base


USER_ROLES = ("admin", "manager", "tech")
WORK_ORDER_STATUSES = ("draft", "pending_approval", "open", "in_progress", "completed")
WORK_ORDER_PRIORITIES = ("low", "medium", "high", "critical")
WORK_ORDER_TYPES = ("corrective", "preventive", "inspection")
TIME_ENTRY_TYPES = ("work", "break")
BREAK_REASONS = ("lunch", "parts_wait", "meeting", "personal", "other")
AUDIT_ACTIONS = (
    "work_order_created", "work_order_updated", "work_order_submitted", "work_order_approved",
    "work_order_rejected", "work_order_started", "work_order_completed", "work_order_deleted",
    "timer_started", "timer_paused", "timer_resumed", "timer_stopped", "timer_force_stopped",
)


class Company(Base):
    """Company model (tenant)."""
    __tablename__ = "companies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    code = Column(String(50), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    users = relationship("User", back_populates="company")
    work_orders = relationship("WorkOrder", back_populates="company")


class User(Base):
    """User model. Every actor is a user of exactly one company."""
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id"), index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    # Monotonically increasing version used to revoke previously issued tokens.
    token_version = Column(Integer, nullable=False, default=0)
    name = Column(String(255), nullable=False)
    initials = Column(String(50), nullable=False)
    role = Column(String(50), nullable=False, index=True, default="tech")
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(role.in_(USER_ROLES), name="chk_user_role"),
    )

    # Relationships
    company = relationship("Company", back_populates="users")


class WorkOrder(Base):
    """Work order model."""
    __tablename__ = "work_orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)
    work_order_number = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # Equipment registry lives outside this service; kept as an opaque reference.
    equipment_id = Column(String(64), nullable=True, index=True)
    priority = Column(String(20), nullable=False, default="medium")
    type = Column(String(20), nullable=False, default="corrective")
    status = Column(String(20), nullable=False, default="draft", index=True)
    assigned_to_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    created_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    submitted_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    approved_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # Unrounded ledger: sum of closed work entry durations / 60.
    total_time_minutes = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(WORK_ORDER_STATUSES), name="chk_work_order_status"),
        CheckConstraint(priority.in_(WORK_ORDER_PRIORITIES), name="chk_work_order_priority"),
        CheckConstraint(type.in_(WORK_ORDER_TYPES), name="chk_work_order_type"),
        CheckConstraint("total_time_minutes >= 0", name="chk_work_order_total_time"),
        UniqueConstraint("company_id", "work_order_number", name="uq_work_order_number_per_company"),
    )

    # Relationships
    company = relationship("Company", back_populates="work_orders")
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    created_by = relationship("User", foreign_keys=[created_by_id])
    time_entries = relationship("TimeEntry", back_populates="work_order", passive_deletes=True)


class TimeEntry(Base):
    """One contiguous work or break interval of one actor on one work order."""
    __tablename__ = "time_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    work_order_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("work_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)
    entry_type = Column(String(20), nullable=False, default="work")
    break_reason = Column(String(50), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(entry_type.in_(TIME_ENTRY_TYPES), name="chk_time_entry_type"),
        CheckConstraint(
            "(entry_type = 'break' AND break_reason IS NOT NULL) "
            "OR (entry_type = 'work' AND break_reason IS NULL)",
            name="chk_time_entry_break_reason",
        ),
        CheckConstraint(
            break_reason.in_(BREAK_REASONS) | (break_reason == None),  # noqa: E711
            name="chk_time_entry_break_reason_value",
        ),
        CheckConstraint("end_time IS NULL OR end_time >= start_time", name="chk_time_entry_interval"),
        # At most one open entry per actor, across all work orders.
        Index(
            "uq_time_entries_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=(end_time == None),  # noqa: E711
            sqlite_where=(end_time == None),  # noqa: E711
        ),
        Index("idx_time_entries_user_start", "user_id", "start_time"),
    )

    # Relationships
    work_order = relationship("WorkOrder", back_populates="time_entries")
    user = relationship("User")

class AuditEvent(Base):
    """Audit event model."""
    __tablename__ = "audit_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), ForeignKey("companies.id"), index=True)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(Uuid(as_uuid=True), nullable=False)
    entity_name = Column(String(255), nullable=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    user_name = Column(String(100), nullable=True)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        CheckConstraint(action.in_(AUDIT_ACTIONS), name="chk_audit_action"),
        CheckConstraint(entity_type.in_(["work_order", "time_entry"]), name="chk_audit_entity_type"),
        Index("idx_audit_events_entity", "entity_type", "entity_id"),
    )
