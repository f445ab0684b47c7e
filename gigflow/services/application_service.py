"""Worker and employer actions on application records."""

import logging
import threading
import uuid
from typing import Dict, List, Optional, Set

from gigflow.errors import ApplicationNotFound, InvalidTransition
from gigflow.records import (
    ApplicationRecord,
    ApplicationStatus,
    StatusChange,
    StatusEvent,
)
from gigflow.services.application_repository import ApplicationRepository
from gigflow.services.clock import Clock, SystemClock
from gigflow.services.events import ApplicationEvent, EventPublisher
from gigflow.services.status_machine import StatusMachine, TransitionContext

logger = logging.getLogger(__name__)


class ApplicationService:
    """Drive application records through the status machine.

    The store is the single source of truth: every action re-reads the
    record, validates the event, and writes back only if nobody changed
    the record in between. Mutations are serialized per service instance.
    """

    def __init__(
        self,
        repository: Optional[ApplicationRepository] = None,
        clock: Optional[Clock] = None,
        machine: Optional[StatusMachine] = None,
        publisher: Optional[EventPublisher] = None,
    ) -> None:
        self._repository = repository or ApplicationRepository()
        self.clock = clock or SystemClock()
        self.machine = machine or StatusMachine()
        self.publisher = publisher or EventPublisher()
        self.lock = threading.RLock()

    @property
    def repository(self) -> ApplicationRepository:
        return self._repository

    # Lookups

    def get(self, application_id: str) -> ApplicationRecord:
        record = self._repository.get(application_id)
        if record is None:
            raise ApplicationNotFound(application_id)
        return record

    def find(self, job_id: str, worker_id: str) -> Optional[ApplicationRecord]:
        return self._repository.get_by_job_and_worker(job_id, worker_id)

    def history(self, application_id: str) -> List[StatusChange]:
        self.get(application_id)
        return self._repository.history(application_id)

    def active_applications(self, worker_id: str) -> List[ApplicationRecord]:
        records = [
            record
            for record in self._repository.list_for_worker(worker_id)
            if self.machine.is_active(record.status)
        ]
        # Highest priority first, most recently updated first within a priority.
        records.sort(key=lambda record: record.updated_at, reverse=True)
        records.sort(key=lambda record: self.machine.status_priority(record.status), reverse=True)
        return records

    def job_statuses(self, worker_id: str) -> Dict[str, ApplicationStatus]:
        return self._repository.job_statuses_for_worker(worker_id)

    def reconsideration_pool(self, worker_id: str) -> List[str]:
        """Job ids the worker marked not interested and has not yet reconsidered."""
        already_seen = self._repository.reconsidered_job_ids(worker_id)
        records = self._repository.list_for_worker(worker_id, statuses=[ApplicationStatus.NOT_INTERESTED])
        return [record.job_id for record in records if record.job_id not in already_seen]

    def reconsidered_job_ids(self, worker_id: str) -> Set[str]:
        return self._repository.reconsidered_job_ids(worker_id)

    # Worker feed actions

    def apply_to_job(self, job_id: str, worker_id: str, employer_id: Optional[str] = None) -> ApplicationRecord:
        """Create an APPLIED record, or return the worker's existing live one."""
        with self.lock:
            existing = self.find(job_id, worker_id)
            if existing is not None:
                if existing.status is ApplicationStatus.NOT_INTERESTED:
                    raise InvalidTransition(
                        existing.status, "APPLY", "job was marked not interested; reconsider it instead"
                    )
                logger.info("Worker %s already applied to job %s (%s)", worker_id, job_id, existing.status.value)
                return existing

            record = self._new_record(job_id, worker_id, employer_id)
            self._repository.insert(record, reason="Worker applied")
            logger.info("Worker %s applied to job %s as application %s", worker_id, job_id, record.id)
            self._publish(record, "APPLY")
            return record

    def mark_not_interested(
        self, job_id: str, worker_id: str, employer_id: Optional[str] = None
    ) -> ApplicationRecord:
        with self.lock:
            existing = self.find(job_id, worker_id)
            if existing is not None:
                if existing.status is ApplicationStatus.NOT_INTERESTED:
                    return existing
                return self.commit(existing, StatusEvent.MARK_NOT_INTERESTED, reason="Worker not interested")

            fresh = self._new_record(job_id, worker_id, employer_id)
            record = self.machine.transition(
                fresh, StatusEvent.MARK_NOT_INTERESTED, TransitionContext(at=fresh.applied_at)
            )
            self._repository.insert(record, StatusEvent.MARK_NOT_INTERESTED, reason="Worker not interested")
            logger.info("Worker %s marked job %s not interested", worker_id, job_id)
            self._publish(record, StatusEvent.MARK_NOT_INTERESTED.value)
            return record

    def reconsider(self, job_id: str, worker_id: str) -> ApplicationRecord:
        """Turn a NOT_INTERESTED record back into an application (once per job)."""
        with self.lock:
            existing = self.find(job_id, worker_id)
            if existing is None:
                raise ApplicationNotFound(f"{worker_id}/{job_id}")
            record = self.commit(existing, StatusEvent.RECONSIDER, reason="Worker reconsidered")
            self._repository.mark_reconsidered(worker_id, job_id, record.updated_at)
            return record

    def keep_not_interested(self, job_id: str, worker_id: str) -> ApplicationRecord:
        """Record that a rejected job was reviewed again and still declined."""
        with self.lock:
            existing = self.find(job_id, worker_id)
            if existing is None:
                raise ApplicationNotFound(f"{worker_id}/{job_id}")
            if existing.status is not ApplicationStatus.NOT_INTERESTED:
                raise InvalidTransition(existing.status, "KEEP_NOT_INTERESTED", "job is no longer marked not interested")
            self._repository.mark_reconsidered(worker_id, job_id, self.clock.now())
            return existing

    # Progression

    def select(self, application_id: str) -> ApplicationRecord:
        return self._act(application_id, StatusEvent.SELECT, "Employer selected worker")

    def reject(self, application_id: str) -> ApplicationRecord:
        return self._act(application_id, StatusEvent.REJECT, "Employer rejected application")

    def accept(self, application_id: str) -> ApplicationRecord:
        return self._act(application_id, StatusEvent.ACCEPT, "Worker accepted job")

    def decline(self, application_id: str) -> ApplicationRecord:
        return self._act(application_id, StatusEvent.DECLINE, "Worker declined job")

    def _act(self, application_id: str, event: StatusEvent, reason: str) -> ApplicationRecord:
        with self.lock:
            return self.commit(self.get(application_id), event, reason=reason)

    def commit(
        self,
        record: ApplicationRecord,
        event: StatusEvent,
        context: Optional[TransitionContext] = None,
        reason: str = "",
    ) -> ApplicationRecord:
        """Validate ``event`` on ``record``, persist the result and publish it."""
        context = context or TransitionContext(at=self.clock.now())
        updated = self.machine.transition(record, event, context)
        return self.persist(record, updated, event, reason)

    def persist(
        self,
        record: ApplicationRecord,
        updated: ApplicationRecord,
        event: StatusEvent,
        reason: str = "",
    ) -> ApplicationRecord:
        """Write an already-validated transition of ``record`` to the store."""
        self._repository.save_transition(record, updated, event, reason)
        logger.info(
            "Application %s: %s -> %s via %s",
            record.id,
            record.status.value,
            updated.status.value,
            event.value,
        )
        self._publish(updated, event.value)
        return updated

    def _new_record(self, job_id: str, worker_id: str, employer_id: Optional[str]) -> ApplicationRecord:
        if employer_id is None:
            job = self._repository.get_job(job_id)
            if job is None:
                raise ValueError(f"Unknown job {job_id}; employer_id is required")
            employer_id = job.employer_id
        now = self.clock.now()
        return ApplicationRecord(
            id=uuid.uuid4().hex,
            job_id=job_id,
            worker_id=worker_id,
            employer_id=employer_id,
            status=ApplicationStatus.APPLIED,
            applied_at=now,
            updated_at=now,
        )

    def _publish(self, record: ApplicationRecord, event: str) -> None:
        self.publisher.publish(
            ApplicationEvent(
                application_id=record.id,
                status=record.status.value,
                event=event,
                payload=record.to_dict(),
            )
        )
