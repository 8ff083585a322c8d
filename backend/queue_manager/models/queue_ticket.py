from __future__ import annotations
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, DateTime, Index, text
from queue_manager.models.authz import Base

class QueueTicket(Base):
    __tablename__ = 'queue_tickets'
    # Status constants
    STATUS_WAITING = 'waiting'
    STATUS_SERVING = 'serving'
    STATUS_COMPLETED = 'completed'
    STATUS_NO_SHOW = 'no-show'
    STATUS_CANCELLED = 'cancelled'
    # Legacy documents may carry this; never written by the service
    STATUS_IN_PROGRESS = 'in-progress'
    ALL_STATUSES = (STATUS_WAITING, STATUS_SERVING, STATUS_COMPLETED, STATUS_NO_SHOW, STATUS_CANCELLED)
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_NO_SHOW, STATUS_CANCELLED)
    # Statuses counted ahead of a newly joining customer
    POSITION_STATUSES = (STATUS_WAITING, STATUS_IN_PROGRESS)
    ACTIVE_STATUSES = (STATUS_WAITING, STATUS_IN_PROGRESS, STATUS_SERVING)
    HISTORY_STATUSES = TERMINAL_STATUSES

    ticket_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    customer_name: Mapped[str] = mapped_column(String(128), nullable=False, default='Customer')
    location_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    location_name: Mapped[str] = mapped_column(String(160), nullable=False)
    service: Mapped[str] = mapped_column(String(120), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_WAITING, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_wait: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_first_queue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_at: Mapped[Optional[str]] = mapped_column(DateTime(timezone=True), nullable=True)
    served_at: Mapped[Optional[str]] = mapped_column(DateTime(timezone=True), nullable=True)
    served_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    completed_at: Mapped[Optional[str]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    # Notification outcomes (advisory only)
    welcome_email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    welcome_email_sent_at: Mapped[Optional[str]] = mapped_column(DateTime(timezone=True), nullable=True)
    welcome_email_error: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email_simulated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    thank_you_email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    thank_you_email_sent_at: Mapped[Optional[str]] = mapped_column(DateTime(timezone=True), nullable=True)
    thank_you_email_error: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index('ix_queue_tickets_location_status_created', 'location_id', 'status', 'created_at'),
        # At most one serving ticket per location, enforced by the store
        Index(
            'uq_queue_tickets_serving_slot', 'location_id', unique=True,
            sqlite_where=text("status = 'serving'"),
            postgresql_where=text("status = 'serving'"),
        ),
    )

# Status flow: waiting -> serving -> completed | no-show; waiting -> cancelled (customer leaves)
