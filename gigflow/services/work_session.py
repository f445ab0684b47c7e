"""OTP-gated start and completion of work sessions."""

import logging
from dataclasses import replace
from typing import Optional

from gigflow.errors import ClockSkewError, InvalidTransition, OtpError
from gigflow.records import (
    ApplicationRecord,
    ApplicationStatus,
    CompletionResult,
    JobParameters,
    OtpChallenge,
    StatusEvent,
)
from gigflow.services.application_service import ApplicationService
from gigflow.services.otp_generator import OtpGenerator
from gigflow.services.status_machine import TransitionContext
from gigflow.services.wage_calculator import HourlyWageCalculator, WageCalculator

logger = logging.getLogger(__name__)


class WorkSessionController:
    """Run the one-time-passcode protocol around starting and finishing work.

    Start work: the employer requests a code, the worker relays it back,
    and only a verified code moves ACCEPTED to WORK_IN_PROGRESS.
    Completion: the worker initiates completion (stamping the end time and
    issuing a code), the employer confirms with that code, and the wage
    for the session is computed.
    """

    def __init__(
        self,
        service: ApplicationService,
        otp_generator: Optional[OtpGenerator] = None,
        wage_calculator: Optional[WageCalculator] = None,
    ) -> None:
        self.service = service
        self.otp = otp_generator or OtpGenerator()
        self.wages = wage_calculator or HourlyWageCalculator()

    @property
    def clock(self):
        return self.service.clock

    def _require(self, record: ApplicationRecord, event: StatusEvent, reason: str = "") -> None:
        if not self.service.machine.can_apply(record, event):
            raise InvalidTransition(record.status, event, reason)

    def request_start_otp(self, application_id: str) -> OtpChallenge:
        """Issue the code the employer shows to the worker on site."""
        with self.service.lock:
            record = self.service.get(application_id)
            self._require(record, StatusEvent.START_WORK, "start codes are issued for accepted applications only")
            challenge = self.otp.generate(application_id, self.clock.now())
            self.service.repository.save_start_challenge(challenge)
            return challenge

    def current_start_otp(self, application_id: str) -> Optional[OtpChallenge]:
        """Return the live start code so the employer can show it again, if any."""
        with self.service.lock:
            record = self.service.get(application_id)
            self._require(record, StatusEvent.START_WORK)
            challenge = self._start_challenge(application_id)
            if challenge is None or not self.clock.now() < challenge.expires_at:
                return None
            return challenge

    def _start_challenge(self, application_id: str) -> Optional[OtpChallenge]:
        # The store holds the newest code, possibly issued by another process.
        stored = self.service.repository.start_challenge(application_id)
        if stored is not None:
            self.otp.restore(stored)
        return stored

    def submit_start_otp(self, application_id: str, code: str) -> ApplicationRecord:
        """Start work if ``code`` matches the live start challenge.

        Raises:
            InvalidTransition: the application is no longer ACCEPTED.
            OtpExpired, OtpMismatch: the code was refused; the record is untouched.
        """
        with self.service.lock:
            record = self.service.get(application_id)
            self._require(record, StatusEvent.START_WORK)

            now = self.clock.now()
            try:
                self.otp.check(self._start_challenge(application_id), code, now)
            except OtpError as error:
                logger.warning("Start code refused for application %s: %s", application_id, error)
                raise

            updated = self.service.commit(
                record,
                StatusEvent.START_WORK,
                TransitionContext(at=now, work_start_time=now),
                reason="Start code verified",
            )
            self.otp.discard(application_id)
            return updated

    def initiate_completion(self, application_id: str) -> ApplicationRecord:
        """Move to COMPLETION_PENDING, or issue a fresh code if already there.

        The first call stamps ``work_end_time``; later calls only replace the
        completion code and its expiry.
        """
        with self.service.lock:
            record = self.service.get(application_id)
            self._require(record, StatusEvent.COMPLETE_WORK)

            now = self.clock.now()
            regenerate = record.status is ApplicationStatus.COMPLETION_PENDING
            challenge = self.otp.generate(application_id, now)
            context = TransitionContext(
                at=now,
                work_end_time=None if regenerate else now,
                completion_otp=challenge.code,
                completion_otp_expires_at=challenge.expires_at,
            )
            try:
                updated = self.service.commit(
                    record,
                    StatusEvent.COMPLETE_WORK,
                    context,
                    reason="Completion code regenerated" if regenerate else "Worker finished work",
                )
            except ClockSkewError as error:
                self.otp.discard(application_id)
                logger.error("Refusing completion of application %s: %s", application_id, error)
                raise
            except Exception:
                self.otp.discard(application_id)
                raise
            return updated

    def confirm_completion(self, application_id: str, code: str) -> ApplicationRecord:
        """Complete the application once the employer submits the live completion code.

        Raises:
            InvalidTransition: the application is not COMPLETION_PENDING.
            OtpExpired: the code matched but has expired; regenerate it.
            OtpMismatch: the code is wrong; the employer may retry.
        """
        with self.service.lock:
            record = self.service.get(application_id)
            self._require(record, StatusEvent.CONFIRM_COMPLETION)

            now = self.clock.now()
            challenge = record.work_session.completion_challenge(application_id) if record.work_session else None
            try:
                self.otp.check(challenge, code, now)
            except OtpError as error:
                logger.warning("Completion code refused for application %s: %s", application_id, error)
                raise

            completed = self.service.machine.transition(
                record, StatusEvent.CONFIRM_COMPLETION, TransitionContext(at=now)
            )
            session = completed.work_session
            minutes = int((session.work_end_time - session.work_start_time).total_seconds() // 60)
            wage = self.wages.estimate(session.work_start_time, session.work_end_time, self._job_parameters(record))
            completed = replace(completed, work_duration_minutes=minutes, wage_amount=wage)

            updated = self.service.persist(record, completed, StatusEvent.CONFIRM_COMPLETION, "Completion code verified")
            self.otp.discard(application_id)
            logger.info("Application %s completed: %d minutes, wage %s", application_id, minutes, wage)
            return updated

    def completion_summary(self, record: ApplicationRecord) -> CompletionResult:
        if record.status is not ApplicationStatus.COMPLETED:
            raise InvalidTransition(record.status, StatusEvent.CONFIRM_COMPLETION, "work is not completed")
        return CompletionResult(
            application_id=record.id,
            job_title=self._job_parameters(record).title,
            work_duration_minutes=record.work_duration_minutes or 0,
            total_wages=record.wage_amount,
        )

    def _job_parameters(self, record: ApplicationRecord) -> JobParameters:
        job = self.service.repository.get_job(record.job_id)
        if job is None:
            return JobParameters(job_id=record.job_id)
        return job.parameters()
