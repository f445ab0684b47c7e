from datetime import timedelta
from decimal import Decimal

import pytest

from gigflow.errors import ClockSkewError, InvalidTransition, OtpExpired, OtpMismatch
from gigflow.records import ApplicationStatus, StatusEvent
from gigflow.services.otp_generator import OtpGenerator
from gigflow.services.work_session import WorkSessionController


@pytest.fixture
def accepted(service, job):
    record = service.apply_to_job(job.id, "W1")
    service.select(record.id)
    return service.accept(record.id)


@pytest.fixture
def working(accepted, controller, codes):
    codes.push("482913")
    controller.request_start_otp(accepted.id)
    return controller.submit_start_otp(accepted.id, "482913")


def test_full_start_scenario(service, controller, codes, clock, job):
    record = service.apply_to_job(job.id, "W1")
    assert record.status is ApplicationStatus.APPLIED
    assert service.select(record.id).status is ApplicationStatus.SELECTED
    assert service.accept(record.id).status is ApplicationStatus.ACCEPTED

    codes.push("482913")
    challenge = controller.request_start_otp(record.id)
    assert challenge.code == "482913"

    clock.advance(minutes=12)
    started = controller.submit_start_otp(record.id, "482913")

    assert started.status is ApplicationStatus.WORK_IN_PROGRESS
    assert started.work_session.work_start_time == clock.now()
    assert service.get(record.id).work_session.work_start_time == clock.now()


def test_wrong_start_code_leaves_record_accepted(accepted, controller, codes, service):
    codes.push("482913")
    controller.request_start_otp(accepted.id)

    with pytest.raises(OtpMismatch):
        controller.submit_start_otp(accepted.id, "000000")

    stored = service.get(accepted.id)
    assert stored.status is ApplicationStatus.ACCEPTED
    assert stored.work_session is None


def test_expired_start_code(accepted, controller, codes, clock, service):
    codes.push("482913")
    controller.request_start_otp(accepted.id)
    clock.advance(minutes=30)

    with pytest.raises(OtpExpired):
        controller.submit_start_otp(accepted.id, "482913")
    assert service.get(accepted.id).status is ApplicationStatus.ACCEPTED


def test_start_code_only_issued_for_accepted(service, controller, job):
    record = service.apply_to_job(job.id, "W1")

    with pytest.raises(InvalidTransition):
        controller.request_start_otp(record.id)


def test_start_code_cannot_start_twice(working, controller):
    with pytest.raises(InvalidTransition):
        controller.submit_start_otp(working.id, "482913")


def test_new_start_code_replaces_old(accepted, controller, codes):
    codes.push("111111", "222222")
    controller.request_start_otp(accepted.id)
    controller.request_start_otp(accepted.id)

    with pytest.raises(OtpMismatch):
        controller.submit_start_otp(accepted.id, "111111")
    assert controller.submit_start_otp(accepted.id, "222222").status is ApplicationStatus.WORK_IN_PROGRESS


def test_completion_scenario_with_expiry_and_regeneration(working, controller, codes, clock, service):
    start_time = working.work_session.work_start_time

    clock.advance(hours=4)
    end_time = clock.now()
    codes.push("117734")
    pending = controller.initiate_completion(working.id)

    assert pending.status is ApplicationStatus.COMPLETION_PENDING
    assert pending.completion_otp == "117734"
    assert pending.work_session.work_end_time == end_time

    clock.advance(minutes=31)
    with pytest.raises(OtpExpired):
        controller.confirm_completion(working.id, "117734")

    codes.push("550221")
    regenerated = controller.initiate_completion(working.id)
    assert regenerated.status is ApplicationStatus.COMPLETION_PENDING
    assert regenerated.completion_otp == "550221"
    assert regenerated.work_session.work_start_time == start_time
    assert regenerated.work_session.work_end_time == end_time
    assert regenerated.work_session.completion_otp_expires_at == clock.now() + timedelta(minutes=30)

    clock.advance(minutes=5)
    completed = controller.confirm_completion(working.id, "550221")

    assert completed.status is ApplicationStatus.COMPLETED
    assert completed.completion_otp is None
    assert completed.work_session.work_end_time == end_time
    assert completed.work_duration_minutes == 240
    assert completed.wage_amount == Decimal("480.00")

    stored = service.get(working.id)
    assert stored.status is ApplicationStatus.COMPLETED
    assert stored.wage_amount == Decimal("480.00")

    summary = controller.completion_summary(completed)
    assert summary.job_title == "Warehouse loading"
    assert summary.total_wages == Decimal("480.00")


def test_old_completion_code_rejected_after_regeneration(working, controller, codes):
    codes.push("117734", "550221")
    controller.initiate_completion(working.id)
    controller.initiate_completion(working.id)

    with pytest.raises(OtpMismatch):
        controller.confirm_completion(working.id, "117734")


def test_wrong_completion_code_allows_retry(working, controller, codes):
    codes.push("117734")
    controller.initiate_completion(working.id)

    with pytest.raises(OtpMismatch):
        controller.confirm_completion(working.id, "000000")
    assert controller.confirm_completion(working.id, "117734").status is ApplicationStatus.COMPLETED


def test_confirm_requires_completion_pending(working, controller):
    with pytest.raises(InvalidTransition):
        controller.confirm_completion(working.id, "117734")


def test_completion_not_allowed_before_work_starts(accepted, controller):
    with pytest.raises(InvalidTransition):
        controller.initiate_completion(accepted.id)


def test_completed_application_cannot_regenerate(working, controller, codes):
    codes.push("117734")
    controller.initiate_completion(working.id)
    controller.confirm_completion(working.id, "117734")

    with pytest.raises(InvalidTransition):
        controller.initiate_completion(working.id)


def test_clock_going_backwards_is_reported(working, controller, clock, service):
    clock.advance(minutes=-10)

    with pytest.raises(ClockSkewError):
        controller.initiate_completion(working.id)
    assert service.get(working.id).status is ApplicationStatus.WORK_IN_PROGRESS


def test_history_records_each_gated_transition(working, controller, codes, service):
    codes.push("117734")
    controller.initiate_completion(working.id)
    controller.confirm_completion(working.id, "117734")

    events = [change.event for change in service.history(working.id)]
    assert events == [
        None,
        StatusEvent.SELECT,
        StatusEvent.ACCEPT,
        StatusEvent.START_WORK,
        StatusEvent.COMPLETE_WORK,
        StatusEvent.CONFIRM_COMPLETION,
    ]


def test_start_code_can_be_shown_again(accepted, controller, codes, clock):
    codes.push("482913")
    issued = controller.request_start_otp(accepted.id)

    clock.advance(minutes=10)
    assert controller.current_start_otp(accepted.id) == issued

    clock.advance(minutes=20)
    assert controller.current_start_otp(accepted.id) is None


def test_start_code_survives_restart(accepted, controller, codes, service):
    codes.push("482913")
    controller.request_start_otp(accepted.id)

    restarted = WorkSessionController(service, OtpGenerator(code_factory=codes))
    assert restarted.current_start_otp(accepted.id).code == "482913"

    started = restarted.submit_start_otp(accepted.id, "482913")
    assert started.status is ApplicationStatus.WORK_IN_PROGRESS
    assert service.repository.start_challenge(accepted.id) is None


def test_start_code_issued_elsewhere_supersedes_local_one(accepted, controller, codes, service):
    codes.push("111111", "222222")
    controller.request_start_otp(accepted.id)
    other = WorkSessionController(service, OtpGenerator(code_factory=codes))
    other.request_start_otp(accepted.id)

    with pytest.raises(OtpMismatch):
        controller.submit_start_otp(accepted.id, "111111")
    assert controller.submit_start_otp(accepted.id, "222222").status is ApplicationStatus.WORK_IN_PROGRESS
