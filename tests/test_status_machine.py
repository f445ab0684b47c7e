from datetime import datetime, timedelta, timezone

import pytest

from gigflow.errors import ClockSkewError, InvalidTransition
from gigflow.records import (
    ApplicationRecord,
    ApplicationStatus,
    StatusCategory,
    StatusEvent,
    WorkSession,
)
from gigflow.services.status_machine import TRANSITIONS, StatusMachine, TransitionContext

S = ApplicationStatus
E = StatusEvent

APPLIED_AT = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)
START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
END = datetime(2026, 3, 2, 13, 30, tzinfo=timezone.utc)
NOW = datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)

EXPECTED = {
    (S.APPLIED, E.SELECT): S.SELECTED,
    (S.APPLIED, E.REJECT): S.REJECTED,
    (S.APPLIED, E.MARK_NOT_INTERESTED): S.NOT_INTERESTED,
    (S.SELECTED, E.ACCEPT): S.ACCEPTED,
    (S.SELECTED, E.DECLINE): S.DECLINED,
    (S.SELECTED, E.REJECT): S.REJECTED,
    (S.ACCEPTED, E.START_WORK): S.WORK_IN_PROGRESS,
    (S.ACCEPTED, E.DECLINE): S.DECLINED,
    (S.WORK_IN_PROGRESS, E.COMPLETE_WORK): S.COMPLETION_PENDING,
    (S.COMPLETION_PENDING, E.COMPLETE_WORK): S.COMPLETION_PENDING,
    (S.COMPLETION_PENDING, E.CONFIRM_COMPLETION): S.COMPLETED,
    (S.NOT_INTERESTED, E.RECONSIDER): S.APPLIED,
}


def make_record(status: ApplicationStatus) -> ApplicationRecord:
    session = None
    if status is S.WORK_IN_PROGRESS:
        session = WorkSession(work_start_time=START)
    elif status is S.COMPLETION_PENDING:
        session = WorkSession(
            work_start_time=START,
            work_end_time=END,
            completion_otp="117734",
            completion_otp_expires_at=END + timedelta(minutes=30),
        )
    elif status is S.COMPLETED:
        session = WorkSession(work_start_time=START, work_end_time=END)
    return ApplicationRecord(
        id="app-1",
        job_id="J1",
        worker_id="W1",
        employer_id="E1",
        status=status,
        applied_at=APPLIED_AT,
        updated_at=APPLIED_AT,
        work_session=session,
    )


def full_context() -> TransitionContext:
    return TransitionContext(
        at=NOW,
        work_start_time=START,
        work_end_time=NOW,
        completion_otp="550221",
        completion_otp_expires_at=NOW + timedelta(minutes=30),
    )


def test_transition_table_matches_documented_lifecycle():
    actual = {
        (status, event): target
        for status, events in TRANSITIONS.items()
        for event, target in events.items()
    }
    assert actual == EXPECTED


@pytest.mark.parametrize("pair,target", list(EXPECTED.items()))
def test_valid_pairs_reach_documented_status(pair, target):
    status, event = pair
    record = make_record(status)

    result = StatusMachine().transition(record, event, full_context())

    assert result.status is target
    assert result.updated_at == NOW
    assert result.id == record.id
    assert result.job_id == record.job_id


@pytest.mark.parametrize(
    "status,event",
    [(status, event) for status in S for event in E if (status, event) not in EXPECTED],
)
def test_invalid_pairs_raise_and_leave_record_unchanged(status, event):
    record = make_record(status)
    snapshot = make_record(status)

    with pytest.raises(InvalidTransition):
        StatusMachine().transition(record, event, full_context())

    assert record == snapshot


def test_transition_is_deterministic():
    machine = StatusMachine()
    record = make_record(S.ACCEPTED)

    first = machine.transition(record, E.START_WORK, full_context())
    second = machine.transition(record, E.START_WORK, full_context())

    assert first == second
    assert record.status is S.ACCEPTED


def test_start_work_creates_work_session():
    result = StatusMachine().transition(
        make_record(S.ACCEPTED), E.START_WORK, TransitionContext(at=NOW, work_start_time=START)
    )

    assert result.work_session == WorkSession(work_start_time=START)


def test_start_work_requires_start_time():
    with pytest.raises(InvalidTransition):
        StatusMachine().transition(make_record(S.ACCEPTED), E.START_WORK, TransitionContext(at=NOW))


def test_complete_work_stamps_end_time_and_code():
    result = StatusMachine().transition(make_record(S.WORK_IN_PROGRESS), E.COMPLETE_WORK, full_context())

    assert result.work_session.work_start_time == START
    assert result.work_session.work_end_time == NOW
    assert result.work_session.completion_otp == "550221"
    assert result.work_session.completion_otp_expires_at == NOW + timedelta(minutes=30)


def test_regenerating_completion_code_keeps_status_and_times():
    record = make_record(S.COMPLETION_PENDING)
    later = NOW + timedelta(hours=1)

    result = StatusMachine().transition(
        record,
        E.COMPLETE_WORK,
        TransitionContext(
            at=later,
            work_end_time=later,
            completion_otp="550221",
            completion_otp_expires_at=later + timedelta(minutes=30),
        ),
    )

    assert result.status is S.COMPLETION_PENDING
    assert result.work_session.work_start_time == START
    assert result.work_session.work_end_time == END
    assert result.work_session.completion_otp == "550221"
    assert result.work_session.completion_otp_expires_at == later + timedelta(minutes=30)


def test_complete_work_before_start_is_clock_skew():
    record = make_record(S.WORK_IN_PROGRESS)
    context = TransitionContext(
        at=NOW,
        work_end_time=START - timedelta(minutes=5),
        completion_otp="550221",
        completion_otp_expires_at=NOW,
    )

    with pytest.raises(ClockSkewError):
        StatusMachine().transition(record, E.COMPLETE_WORK, context)


def test_complete_work_requires_code():
    with pytest.raises(InvalidTransition):
        StatusMachine().transition(
            make_record(S.WORK_IN_PROGRESS), E.COMPLETE_WORK, TransitionContext(at=NOW, work_end_time=NOW)
        )


def test_confirm_completion_clears_code_but_keeps_times():
    result = StatusMachine().transition(make_record(S.COMPLETION_PENDING), E.CONFIRM_COMPLETION, full_context())

    assert result.status is S.COMPLETED
    assert result.completion_otp is None
    assert result.work_session.completion_otp_expires_at is None
    assert result.work_session.work_start_time == START
    assert result.work_session.work_end_time == END


def test_reconsider_refreshes_applied_at():
    result = StatusMachine().transition(make_record(S.NOT_INTERESTED), E.RECONSIDER, TransitionContext(at=NOW))

    assert result.status is S.APPLIED
    assert result.applied_at == NOW
    assert result.work_session is None


@pytest.mark.parametrize("status", list(S))
def test_work_session_present_only_for_work_statuses(status):
    for event, target in TRANSITIONS[status].items():
        result = StatusMachine().transition(make_record(status), event, full_context())
        has_session = result.work_session is not None
        assert has_session == (target in {S.WORK_IN_PROGRESS, S.COMPLETION_PENDING, S.COMPLETED})
        if result.completion_otp is not None:
            assert target is S.COMPLETION_PENDING


def test_read_model_helpers():
    machine = StatusMachine()

    assert machine.is_terminal(S.NOT_INTERESTED)
    assert not machine.is_terminal(S.COMPLETION_PENDING)
    assert machine.possible_events(S.ACCEPTED) == {E.START_WORK, E.DECLINE}
    assert machine.possible_events(S.COMPLETED) == frozenset()
    assert machine.status_priority(S.WORK_IN_PROGRESS) > machine.status_priority(S.ACCEPTED)
    assert machine.status_priority(S.APPLIED) > machine.status_priority(S.COMPLETED)
    assert machine.category(S.DECLINED) is StatusCategory.REJECTED
    assert machine.category(S.APPLIED) is StatusCategory.PENDING
    assert machine.is_active(S.COMPLETION_PENDING)
    assert not machine.is_active(S.COMPLETED)
