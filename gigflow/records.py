"""Shared record and value types for the application lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ApplicationStatus(str, Enum):
    APPLIED = "APPLIED"
    SELECTED = "SELECTED"
    ACCEPTED = "ACCEPTED"
    WORK_IN_PROGRESS = "WORK_IN_PROGRESS"
    COMPLETION_PENDING = "COMPLETION_PENDING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    DECLINED = "DECLINED"
    NOT_INTERESTED = "NOT_INTERESTED"


class StatusEvent(str, Enum):
    SELECT = "SELECT"
    REJECT = "REJECT"
    MARK_NOT_INTERESTED = "MARK_NOT_INTERESTED"
    ACCEPT = "ACCEPT"
    DECLINE = "DECLINE"
    START_WORK = "START_WORK"
    COMPLETE_WORK = "COMPLETE_WORK"
    CONFIRM_COMPLETION = "CONFIRM_COMPLETION"
    RECONSIDER = "RECONSIDER"


class StatusCategory(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class SwipeDirection(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class FeedMode(str, Enum):
    NORMAL = "NORMAL"
    RECONSIDERING_REJECTED = "RECONSIDERING_REJECTED"


# Statuses that carry a work session sub-record.
WORK_SESSION_STATUSES = frozenset(
    {
        ApplicationStatus.WORK_IN_PROGRESS,
        ApplicationStatus.COMPLETION_PENDING,
        ApplicationStatus.COMPLETED,
    }
)


def utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class OtpChallenge:
    """A one-time passcode bound to a single application."""

    code: str
    expires_at: datetime
    subject_application_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "expires_at": _iso(self.expires_at),
            "subject_application_id": self.subject_application_id,
        }


@dataclass(frozen=True)
class WorkSession:
    """Timestamps and completion code for a started piece of work."""

    work_start_time: datetime
    work_end_time: Optional[datetime] = None
    completion_otp: Optional[str] = None
    completion_otp_expires_at: Optional[datetime] = None

    def completion_challenge(self, application_id: str) -> Optional[OtpChallenge]:
        if self.completion_otp is None or self.completion_otp_expires_at is None:
            return None
        return OtpChallenge(
            code=self.completion_otp,
            expires_at=self.completion_otp_expires_at,
            subject_application_id=application_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "work_start_time": _iso(self.work_start_time),
            "work_end_time": _iso(self.work_end_time),
            "completion_otp": self.completion_otp,
            "completion_otp_expires_at": _iso(self.completion_otp_expires_at),
        }


@dataclass(frozen=True)
class ApplicationRecord:
    """The persisted unit of work linking one worker to one job.

    Records are immutable values; every status change produces a new
    record through :class:`gigflow.services.status_machine.StatusMachine`.
    """

    id: str
    job_id: str
    worker_id: str
    employer_id: str
    status: ApplicationStatus
    applied_at: datetime
    updated_at: datetime
    work_session: Optional[WorkSession] = None
    work_duration_minutes: Optional[int] = None
    wage_amount: Optional[Decimal] = None

    @property
    def completion_otp(self) -> Optional[str]:
        return self.work_session.completion_otp if self.work_session else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "worker_id": self.worker_id,
            "employer_id": self.employer_id,
            "status": self.status.value,
            "applied_at": _iso(self.applied_at),
            "updated_at": _iso(self.updated_at),
            "work_session": self.work_session.to_dict() if self.work_session else None,
            "work_duration_minutes": self.work_duration_minutes,
            "wage_amount": str(self.wage_amount) if self.wage_amount is not None else None,
        }


@dataclass(frozen=True)
class StatusChange:
    """One entry of an application's audit trail."""

    application_id: str
    job_id: str
    worker_id: str
    employer_id: str
    old_status: Optional[ApplicationStatus]
    new_status: ApplicationStatus
    event: Optional[StatusEvent]
    reason: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "application_id": self.application_id,
            "job_id": self.job_id,
            "worker_id": self.worker_id,
            "employer_id": self.employer_id,
            "old_status": self.old_status.value if self.old_status else None,
            "new_status": self.new_status.value,
            "event": self.event.value if self.event else None,
            "reason": self.reason,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class CompletionResult:
    """Summary handed back when an employer confirms completed work."""

    application_id: str
    job_title: str
    work_duration_minutes: int
    total_wages: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "application_id": self.application_id,
            "job_title": self.job_title,
            "work_duration_minutes": self.work_duration_minutes,
            "total_wages": str(self.total_wages),
        }


class JobParameters(BaseModel):
    """Job attributes a wage calculation depends on."""

    job_id: str = Field(description="Job identifier")
    title: str = Field(default="", description="Job title")
    hourly_rate: Decimal = Field(default=Decimal("0"), description="Wage per hour of work")


class Job(BaseModel):
    """A job offer as shown in the worker's swipe feed."""

    id: str = Field(description="Job identifier")
    employer_id: str = Field(description="Employer who posted the job")
    title: str = Field(default="", description="Job title")
    hourly_rate: Decimal = Field(default=Decimal("0"), description="Wage per hour of work")
    district: str = Field(default="", description="District the job is located in")
    state: str = Field(default="", description="State the job is located in")
    is_active: bool = Field(default=True, description="Whether the job accepts applications")

    def parameters(self) -> JobParameters:
        return JobParameters(job_id=self.id, title=self.title, hourly_rate=self.hourly_rate)


@dataclass
class SwipeSessionState:
    """Snapshot of one worker's feed deduplication state."""

    mode: FeedMode = FeedMode.NORMAL
    processed_job_ids: set = field(default_factory=set)
    in_flight_job_ids: set = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "processed_job_ids": sorted(self.processed_job_ids),
            "in_flight_job_ids": sorted(self.in_flight_job_ids),
        }
