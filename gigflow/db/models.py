"""ORM models for application persistence."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from gigflow.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobModel(Base):
    """A posted gig offered to workers."""

    __tablename__ = "jobs"

    id = Column(String(64), primary_key=True)
    employer_id = Column(String(64), nullable=False, index=True)
    title = Column(String(256), nullable=False, default="")
    hourly_rate = Column(Numeric(12, 2), nullable=False, default=0)
    district = Column(String(128), nullable=False, default="")
    state = Column(String(128), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ApplicationModel(Base):
    """Database representation of one worker's application to one job."""

    __tablename__ = "applications"

    id = Column(String(64), primary_key=True)
    job_id = Column(String(64), nullable=False, index=True)
    worker_id = Column(String(64), nullable=False, index=True)
    employer_id = Column(String(64), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    applied_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, index=True)
    work_start_time = Column(DateTime(timezone=True), nullable=True)
    work_end_time = Column(DateTime(timezone=True), nullable=True)
    start_otp = Column(String(16), nullable=True)
    start_otp_expires_at = Column(DateTime(timezone=True), nullable=True)
    completion_otp = Column(String(16), nullable=True)
    completion_otp_expires_at = Column(DateTime(timezone=True), nullable=True)
    work_duration_minutes = Column(Integer, nullable=True)
    wage_amount = Column(Numeric(12, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("job_id", "worker_id", name="uq_applications_job_worker"),
        Index("idx_applications_worker_status", "worker_id", "status"),
    )


class StatusChangeModel(Base):
    """Audit trail entry written for every committed status change."""

    __tablename__ = "application_status_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        String(64), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    job_id = Column(String(64), nullable=False)
    worker_id = Column(String(64), nullable=False)
    employer_id = Column(String(64), nullable=False)
    old_status = Column(String(32), nullable=True)
    new_status = Column(String(32), nullable=False)
    event = Column(String(32), nullable=True)
    reason = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ReconsideredJobModel(Base):
    """Jobs a worker has already been shown once for reconsideration."""

    __tablename__ = "reconsidered_jobs"

    worker_id = Column(String(64), primary_key=True)
    job_id = Column(String(64), primary_key=True)
    reconsidered_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
