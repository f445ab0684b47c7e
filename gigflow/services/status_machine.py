"""Transition table and validation for application statuses."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from gigflow.errors import ClockSkewError, InvalidTransition
from gigflow.records import (
    WORK_SESSION_STATUSES,
    ApplicationRecord,
    ApplicationStatus,
    StatusCategory,
    StatusEvent,
    WorkSession,
)

S = ApplicationStatus
E = StatusEvent

TRANSITIONS: Dict[ApplicationStatus, Dict[StatusEvent, ApplicationStatus]] = {
    S.APPLIED: {
        E.SELECT: S.SELECTED,
        E.REJECT: S.REJECTED,
        E.MARK_NOT_INTERESTED: S.NOT_INTERESTED,
    },
    S.SELECTED: {
        E.ACCEPT: S.ACCEPTED,
        E.DECLINE: S.DECLINED,
        E.REJECT: S.REJECTED,
    },
    S.ACCEPTED: {
        E.START_WORK: S.WORK_IN_PROGRESS,
        E.DECLINE: S.DECLINED,
    },
    S.WORK_IN_PROGRESS: {
        E.COMPLETE_WORK: S.COMPLETION_PENDING,
    },
    S.COMPLETION_PENDING: {
        E.COMPLETE_WORK: S.COMPLETION_PENDING,
        E.CONFIRM_COMPLETION: S.COMPLETED,
    },
    S.NOT_INTERESTED: {
        E.RECONSIDER: S.APPLIED,
    },
    S.COMPLETED: {},
    S.REJECTED: {},
    S.DECLINED: {},
}

TERMINAL_STATUSES: FrozenSet[ApplicationStatus] = frozenset(
    {S.COMPLETED, S.REJECTED, S.DECLINED, S.NOT_INTERESTED}
)

# Statuses listed among a worker's active jobs.
ACTIVE_STATUSES: FrozenSet[ApplicationStatus] = frozenset(
    {S.APPLIED, S.SELECTED, S.ACCEPTED, S.WORK_IN_PROGRESS, S.COMPLETION_PENDING}
)

_PRIORITY = {
    S.WORK_IN_PROGRESS: 6,
    S.COMPLETION_PENDING: 5,
    S.ACCEPTED: 4,
    S.SELECTED: 3,
    S.APPLIED: 2,
    S.COMPLETED: 1,
    S.REJECTED: 0,
    S.DECLINED: 0,
    S.NOT_INTERESTED: 0,
}

_CATEGORY = {
    S.APPLIED: StatusCategory.PENDING,
    S.SELECTED: StatusCategory.ACTIVE,
    S.ACCEPTED: StatusCategory.ACTIVE,
    S.WORK_IN_PROGRESS: StatusCategory.ACTIVE,
    S.COMPLETION_PENDING: StatusCategory.ACTIVE,
    S.COMPLETED: StatusCategory.COMPLETED,
    S.REJECTED: StatusCategory.REJECTED,
    S.DECLINED: StatusCategory.REJECTED,
    S.NOT_INTERESTED: StatusCategory.REJECTED,
}


@dataclass(frozen=True)
class TransitionContext:
    """Caller-supplied values a transition may stamp onto the record.

    ``at`` is always required and becomes the record's ``updated_at``.
    The remaining fields are only read by the events that need them:
    ``work_start_time`` by START_WORK, ``work_end_time`` plus the
    completion code and expiry by COMPLETE_WORK.
    """

    at: datetime
    work_start_time: Optional[datetime] = None
    work_end_time: Optional[datetime] = None
    completion_otp: Optional[str] = None
    completion_otp_expires_at: Optional[datetime] = None


class StatusMachine:
    """Pure validator/applier of status events on application records.

    ``transition`` never mutates its input and never reads a clock or a
    random source; the same record, event and context always produce the
    same result.
    """

    @staticmethod
    def is_terminal(status: ApplicationStatus) -> bool:
        return status in TERMINAL_STATUSES

    @staticmethod
    def is_active(status: ApplicationStatus) -> bool:
        return status in ACTIVE_STATUSES

    @staticmethod
    def possible_events(status: ApplicationStatus) -> FrozenSet[StatusEvent]:
        return frozenset(TRANSITIONS.get(status, {}))

    @staticmethod
    def status_priority(status: ApplicationStatus) -> int:
        return _PRIORITY[status]

    @staticmethod
    def category(status: ApplicationStatus) -> StatusCategory:
        return _CATEGORY[status]

    @staticmethod
    def can_apply(record: ApplicationRecord, event: StatusEvent) -> bool:
        return event in TRANSITIONS.get(record.status, {})

    def transition(
        self,
        record: ApplicationRecord,
        event: StatusEvent,
        context: TransitionContext,
    ) -> ApplicationRecord:
        """Apply ``event`` to ``record`` and return the resulting record.

        Raises:
            InvalidTransition: ``event`` is not legal from ``record.status``
                or the context lacks a value the event requires.
            ClockSkewError: COMPLETE_WORK would end work before it started.
        """
        target = TRANSITIONS.get(record.status, {}).get(event)
        if target is None:
            raise InvalidTransition(record.status, event)

        session = record.work_session

        if event is E.START_WORK:
            if context.work_start_time is None:
                raise InvalidTransition(record.status, event, "work start time is required")
            session = WorkSession(work_start_time=context.work_start_time)

        elif event is E.COMPLETE_WORK:
            session = self._completion_session(record, event, context)

        elif event is E.CONFIRM_COMPLETION:
            if session is None or session.work_end_time is None:
                raise InvalidTransition(record.status, event, "work end time is missing")
            session = replace(session, completion_otp=None, completion_otp_expires_at=None)

        elif event is E.RECONSIDER:
            # A reconsidered application counts as a fresh application.
            return replace(record, status=target, applied_at=context.at, updated_at=context.at)

        if target not in WORK_SESSION_STATUSES:
            session = None

        return replace(record, status=target, work_session=session, updated_at=context.at)

    @staticmethod
    def _completion_session(
        record: ApplicationRecord,
        event: StatusEvent,
        context: TransitionContext,
    ) -> WorkSession:
        session = record.work_session
        if session is None:
            raise InvalidTransition(record.status, event, "no work session has been started")
        if context.completion_otp is None or context.completion_otp_expires_at is None:
            raise InvalidTransition(record.status, event, "completion code and expiry are required")

        if record.status is S.COMPLETION_PENDING:
            # Regeneration keeps the original end time.
            end_time = session.work_end_time
        else:
            if context.work_end_time is None:
                raise InvalidTransition(record.status, event, "work end time is required")
            end_time = context.work_end_time

        if end_time is not None and end_time < session.work_start_time:
            raise ClockSkewError(record.id, session.work_start_time, end_time)

        return replace(
            session,
            work_end_time=end_time,
            completion_otp=context.completion_otp,
            completion_otp_expires_at=context.completion_otp_expires_at,
        )


status_machine = StatusMachine()
