"""Database repository for application records."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import DATABASE_URL
from gigflow.db.base import Base, get_engine, get_session_factory
from gigflow.db.models import ApplicationModel, JobModel, ReconsideredJobModel, StatusChangeModel
from gigflow.errors import InvalidTransition, RemoteFailure
from gigflow.records import (
    ApplicationRecord,
    ApplicationStatus,
    Job,
    OtpChallenge,
    StatusChange,
    StatusEvent,
    WorkSession,
    utc,
)

logger = logging.getLogger(__name__)


class ApplicationRepository:
    """Encapsulates persistence logic for applications, jobs and their history.

    Timestamps are normalised to aware UTC datetimes here, once, as rows
    are read; nothing above this layer parses dates.
    """

    def __init__(self, database_url: str = DATABASE_URL) -> None:
        self._engine = get_engine(database_url)
        self._session_factory = get_session_factory(database_url)

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self._engine)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session: Session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as error:
            session.rollback()
            logger.error("Application store operation failed: %s", error)
            raise RemoteFailure(str(error)) from error
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Applications

    def get(self, application_id: str) -> Optional[ApplicationRecord]:
        with self.session_scope() as session:
            model = session.get(ApplicationModel, application_id)
            return self._model_to_record(model)

    def get_by_job_and_worker(self, job_id: str, worker_id: str) -> Optional[ApplicationRecord]:
        stmt = select(ApplicationModel).where(
            ApplicationModel.job_id == job_id,
            ApplicationModel.worker_id == worker_id,
        )
        with self.session_scope() as session:
            return self._model_to_record(session.scalars(stmt).first())

    def list_for_worker(
        self,
        worker_id: str,
        statuses: Optional[Iterable[ApplicationStatus]] = None,
    ) -> List[ApplicationRecord]:
        stmt = (
            select(ApplicationModel)
            .where(ApplicationModel.worker_id == worker_id)
            .order_by(ApplicationModel.updated_at.desc())
        )
        if statuses is not None:
            stmt = stmt.where(ApplicationModel.status.in_([s.value for s in statuses]))

        with self.session_scope() as session:
            models = session.scalars(stmt).all()
            return [record for record in map(self._model_to_record, models) if record is not None]

    def job_statuses_for_worker(self, worker_id: str) -> Dict[str, ApplicationStatus]:
        stmt = select(ApplicationModel.job_id, ApplicationModel.status).where(
            ApplicationModel.worker_id == worker_id
        )
        with self.session_scope() as session:
            return {job_id: ApplicationStatus(status) for job_id, status in session.execute(stmt)}

    def insert(self, record: ApplicationRecord, event: Optional[StatusEvent] = None, reason: str = "") -> None:
        with self.session_scope() as session:
            model = ApplicationModel(id=record.id)
            self._apply_record(model, record)
            session.add(model)
            session.flush()
            session.add(self._change_row(record, None, event, reason))

    def save_transition(
        self,
        before: ApplicationRecord,
        after: ApplicationRecord,
        event: StatusEvent,
        reason: str = "",
    ) -> None:
        """Persist ``after`` only if the stored status still equals ``before.status``.

        A mismatch means another writer moved the record first; the stored
        record wins and the transition is refused.
        """
        with self.session_scope() as session:
            model = session.get(ApplicationModel, before.id, with_for_update=True)
            if model is None:
                raise RemoteFailure(f"Application {before.id} disappeared from the store")
            stored = ApplicationStatus(model.status)
            if stored is not before.status:
                raise InvalidTransition(stored, event, f"stored status changed from {before.status.value}")
            self._apply_record(model, after)
            # Start codes only live while the application waits in ACCEPTED.
            if after.status is not ApplicationStatus.ACCEPTED:
                model.start_otp = None
                model.start_otp_expires_at = None
            session.add(self._change_row(after, before.status, event, reason))

    def save_start_challenge(self, challenge: OtpChallenge) -> None:
        """Store the latest start code so any process can verify or redisplay it."""
        with self.session_scope() as session:
            model = session.get(ApplicationModel, challenge.subject_application_id)
            if model is None:
                raise RemoteFailure(f"Application {challenge.subject_application_id} disappeared from the store")
            model.start_otp = challenge.code
            model.start_otp_expires_at = utc(challenge.expires_at)

    def start_challenge(self, application_id: str) -> Optional[OtpChallenge]:
        with self.session_scope() as session:
            model = session.get(ApplicationModel, application_id)
            if model is None or model.start_otp is None:
                return None
            return OtpChallenge(
                code=model.start_otp,
                expires_at=utc(model.start_otp_expires_at),
                subject_application_id=model.id,
            )

    def history(self, application_id: str) -> List[StatusChange]:
        stmt = (
            select(StatusChangeModel)
            .where(StatusChangeModel.application_id == application_id)
            .order_by(StatusChangeModel.id.asc())
        )
        with self.session_scope() as session:
            return [self._model_to_change(model) for model in session.scalars(stmt).all()]

    # Jobs

    def upsert_job(self, job: Job) -> None:
        with self.session_scope() as session:
            model = session.get(JobModel, job.id) or JobModel(id=job.id)
            model.employer_id = job.employer_id
            model.title = job.title
            model.hourly_rate = job.hourly_rate
            model.district = job.district
            model.state = job.state
            model.is_active = job.is_active
            session.add(model)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self.session_scope() as session:
            return self._model_to_job(session.get(JobModel, job_id))

    def list_active_jobs(self) -> List[Job]:
        stmt = (
            select(JobModel)
            .where(JobModel.is_active.is_(True))
            .order_by(JobModel.created_at.asc(), JobModel.id.asc())
        )
        with self.session_scope() as session:
            return [self._model_to_job(model) for model in session.scalars(stmt).all()]

    # Reconsideration

    def mark_reconsidered(self, worker_id: str, job_id: str, at: datetime) -> None:
        with self.session_scope() as session:
            if session.get(ReconsideredJobModel, (worker_id, job_id)) is None:
                session.add(ReconsideredJobModel(worker_id=worker_id, job_id=job_id, reconsidered_at=at))

    def reconsidered_job_ids(self, worker_id: str) -> Set[str]:
        stmt = select(ReconsideredJobModel.job_id).where(ReconsideredJobModel.worker_id == worker_id)
        with self.session_scope() as session:
            return set(session.scalars(stmt).all())

    # Mapping

    @staticmethod
    def _apply_record(model: ApplicationModel, record: ApplicationRecord) -> None:
        session = record.work_session
        model.job_id = record.job_id
        model.worker_id = record.worker_id
        model.employer_id = record.employer_id
        model.status = record.status.value
        model.applied_at = utc(record.applied_at)
        model.updated_at = utc(record.updated_at)
        model.work_start_time = utc(session.work_start_time) if session else None
        model.work_end_time = utc(session.work_end_time) if session else None
        model.completion_otp = session.completion_otp if session else None
        model.completion_otp_expires_at = utc(session.completion_otp_expires_at) if session else None
        model.work_duration_minutes = record.work_duration_minutes
        model.wage_amount = record.wage_amount

    @staticmethod
    def _change_row(
        record: ApplicationRecord,
        old_status: Optional[ApplicationStatus],
        event: Optional[StatusEvent],
        reason: str,
    ) -> StatusChangeModel:
        return StatusChangeModel(
            application_id=record.id,
            job_id=record.job_id,
            worker_id=record.worker_id,
            employer_id=record.employer_id,
            old_status=old_status.value if old_status else None,
            new_status=record.status.value,
            event=event.value if event else None,
            reason=reason,
            created_at=utc(record.updated_at),
        )

    @staticmethod
    def _model_to_record(model: Optional[ApplicationModel]) -> Optional[ApplicationRecord]:
        if model is None:
            return None

        work_session = None
        if model.work_start_time is not None:
            work_session = WorkSession(
                work_start_time=utc(model.work_start_time),
                work_end_time=utc(model.work_end_time),
                completion_otp=model.completion_otp,
                completion_otp_expires_at=utc(model.completion_otp_expires_at),
            )
        wage = Decimal(model.wage_amount) if model.wage_amount is not None else None
        return ApplicationRecord(
            id=model.id,
            job_id=model.job_id,
            worker_id=model.worker_id,
            employer_id=model.employer_id,
            status=ApplicationStatus(model.status),
            applied_at=utc(model.applied_at),
            updated_at=utc(model.updated_at),
            work_session=work_session,
            work_duration_minutes=model.work_duration_minutes,
            wage_amount=wage,
        )

    @staticmethod
    def _model_to_change(model: StatusChangeModel) -> StatusChange:
        return StatusChange(
            application_id=model.application_id,
            job_id=model.job_id,
            worker_id=model.worker_id,
            employer_id=model.employer_id,
            old_status=ApplicationStatus(model.old_status) if model.old_status else None,
            new_status=ApplicationStatus(model.new_status),
            event=StatusEvent(model.event) if model.event else None,
            reason=model.reason or "",
            created_at=utc(model.created_at),
        )

    @staticmethod
    def _model_to_job(model: Optional[JobModel]) -> Optional[Job]:
        if model is None:
            return None
        return Job(
            id=model.id,
            employer_id=model.employer_id,
            title=model.title or "",
            hourly_rate=Decimal(model.hourly_rate or 0),
            district=model.district or "",
            state=model.state or "",
            is_active=bool(model.is_active),
        )
