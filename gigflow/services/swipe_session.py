"""Per-session deduplication of the worker's job feed."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple, Union

from gigflow.errors import AlreadyProcessed, InvalidTransition, RemoteFailure
from gigflow.records import ApplicationRecord, FeedMode, Job, SwipeDirection, SwipeSessionState
from gigflow.services.application_service import ApplicationService
from gigflow.services.events import EventPublisher, SessionEvent

logger = logging.getLogger(__name__)

JobLike = Union[Job, str]


class SwipeResult(str, Enum):
    COMMITTED = "committed"
    ALREADY_PROCESSED = "already_processed"
    IN_FLIGHT = "in_flight"
    ROLLED_BACK = "rolled_back"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class SwipeOutcome:
    job_id: str
    direction: SwipeDirection
    result: SwipeResult
    record: Optional[ApplicationRecord] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.result is SwipeResult.COMMITTED

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "direction": self.direction.value,
            "result": self.result.value,
            "record": self.record.to_dict() if self.record else None,
            "error": self.error,
        }


class SwipeDispatcher(Protocol):
    def dispatch(self, job_id: str, direction: SwipeDirection, mode: FeedMode) -> Optional[ApplicationRecord]:
        ...


class ServiceSwipeDispatcher:
    """Send swipes for one worker to the application service."""

    def __init__(self, service: ApplicationService, worker_id: str) -> None:
        self.service = service
        self.worker_id = worker_id

    def dispatch(self, job_id: str, direction: SwipeDirection, mode: FeedMode) -> Optional[ApplicationRecord]:
        if mode is FeedMode.RECONSIDERING_REJECTED:
            if direction is SwipeDirection.ACCEPT:
                return self.service.reconsider(job_id, self.worker_id)
            return self.service.keep_not_interested(job_id, self.worker_id)
        if direction is SwipeDirection.ACCEPT:
            return self.service.apply_to_job(job_id, self.worker_id)
        return self.service.mark_not_interested(job_id, self.worker_id)


def _job_id(job: JobLike) -> str:
    return job if isinstance(job, str) else job.id


class SwipeSessionTracker:
    """Guarantee each job yields at most one outcome per feed session.

    A swipe first moves the job into ``in_flight`` (hiding it from the
    feed), then dispatches the remote mutation outside the lock. Success
    moves the job to ``processed``; a remote failure drops it from
    ``in_flight`` so the next feed projection shows it again. Both sets and
    the feed projection are read and written under one lock, so a job can
    never be visible while its mutation is outstanding.

    Instances are scoped to one worker and constructed fresh for each feed
    session; nothing here is persisted.
    """

    def __init__(
        self,
        worker_id: str,
        dispatcher: SwipeDispatcher,
        mode: FeedMode = FeedMode.NORMAL,
        publisher: Optional[EventPublisher] = None,
    ) -> None:
        self.worker_id = worker_id
        self.dispatcher = dispatcher
        self.publisher = publisher or EventPublisher()
        self._lock = threading.RLock()
        self._mode = mode
        self._processed: set = set()
        self._in_flight: set = set()
        self._feed: List[JobLike] = []
        # Bumped on every reset; late results only count for the pool they came from.
        self._epoch = 0

    @property
    def mode(self) -> FeedMode:
        return self._mode

    def state(self) -> SwipeSessionState:
        with self._lock:
            return SwipeSessionState(
                mode=self._mode,
                processed_job_ids=set(self._processed),
                in_flight_job_ids=set(self._in_flight),
            )

    def next_batch(self, all_jobs: Iterable[JobLike]) -> List[JobLike]:
        """Project ``all_jobs`` onto what the worker may still swipe.

        Keeps upstream order, drops processed and in-flight jobs and repeated
        ids. Call again whenever the upstream list changes.
        """
        with self._lock:
            self._feed = list(all_jobs)
            return self._project()

    def visible(self) -> List[JobLike]:
        with self._lock:
            return self._project()

    def _project(self) -> List[JobLike]:
        seen = set()
        batch = []
        for job in self._feed:
            job_id = _job_id(job)
            if job_id in seen or job_id in self._processed or job_id in self._in_flight:
                continue
            seen.add(job_id)
            batch.append(job)
        return batch

    def begin_swipe(self, job_id: str) -> Tuple[int, FeedMode]:
        """Reserve ``job_id`` for a swipe and return the session epoch and mode.

        Raises:
            AlreadyProcessed: the job already has an outcome or one in flight.
        """
        with self._lock:
            if job_id in self._processed:
                raise AlreadyProcessed(job_id)
            if job_id in self._in_flight:
                raise AlreadyProcessed(job_id, in_flight=True)
            self._in_flight.add(job_id)
            return self._epoch, self._mode

    def complete_swipe(self, job_id: str, epoch: int, mode: Optional[FeedMode] = None) -> bool:
        """Mark ``job_id`` processed; return False if the result is from an earlier session.

        A late result is still recorded when it belongs to the pool now
        shown, since the store already holds it.
        """
        with self._lock:
            if epoch != self._epoch:
                if mode is self._mode:
                    self._processed.add(job_id)
                    logger.info("Recording late result for job %s from an earlier %s session", job_id, mode.value)
                else:
                    logger.info("Ignoring result for job %s from a previous feed session", job_id)
                return False
            self._in_flight.discard(job_id)
            self._processed.add(job_id)
            return True

    def rollback_swipe(self, job_id: str, epoch: int) -> bool:
        with self._lock:
            if epoch != self._epoch:
                return False
            self._in_flight.discard(job_id)
            return True

    def on_swipe(self, job_id: str, direction: SwipeDirection) -> SwipeOutcome:
        try:
            epoch, mode = self.begin_swipe(job_id)
        except AlreadyProcessed as error:
            logger.warning("Ignoring repeated swipe for job %s: %s", job_id, error)
            result = SwipeResult.IN_FLIGHT if error.in_flight else SwipeResult.ALREADY_PROCESSED
            return SwipeOutcome(job_id, direction, result, error=str(error))

        self._emit("swipe_dispatched", job_id, direction=direction.value)

        try:
            record = self.dispatcher.dispatch(job_id, direction, mode)
        except RemoteFailure as error:
            self.rollback_swipe(job_id, epoch)
            logger.warning("Swipe for job %s failed remotely, returning it to the feed: %s", job_id, error)
            self._emit("swipe_rolled_back", job_id, error=str(error))
            return SwipeOutcome(job_id, direction, SwipeResult.ROLLED_BACK, error=str(error))
        except InvalidTransition as error:
            # The store already holds a conflicting status; it wins.
            self.complete_swipe(job_id, epoch, mode)
            logger.warning("Swipe for job %s conflicts with stored status: %s", job_id, error)
            self._emit("swipe_conflict", job_id, error=str(error))
            return SwipeOutcome(job_id, direction, SwipeResult.CONFLICT, error=str(error))
        except Exception:
            self.rollback_swipe(job_id, epoch)
            raise

        self.complete_swipe(job_id, epoch, mode)
        self._emit("swipe_committed", job_id, direction=direction.value)
        return SwipeOutcome(job_id, direction, SwipeResult.COMMITTED, record=record)

    def reset_for_mode(self, new_mode: FeedMode) -> None:
        """Switch pools; the two pools never share deduplication state."""
        with self._lock:
            previous = self._mode
            self._mode = new_mode
            self._processed.clear()
            self._in_flight.clear()
            self._feed = []
            self._epoch += 1
        logger.info("Feed for worker %s reset from %s to %s", self.worker_id, previous.value, new_mode.value)
        self._emit("mode_reset", None, mode=new_mode.value)

    def reconcile(self, settled_job_ids: Iterable[str]) -> None:
        """Align ``processed`` with the store's view of the current pool.

        ``settled_job_ids`` are the jobs the store already has an outcome for.
        Jobs settled remotely become processed; locally processed jobs the
        store does not know about are released back to the feed. In-flight
        jobs are left to their pending dispatch.
        """
        settled = set(settled_job_ids)
        with self._lock:
            released = self._processed - settled
            self._processed = settled - self._in_flight
        if released:
            logger.warning("Releasing %d unsynced jobs back to the feed: %s", len(released), sorted(released))
        self._emit("reconciled", None, released=sorted(released))

    def _emit(self, kind: str, job_id: Optional[str], **payload) -> None:
        self.publisher.publish(SessionEvent(worker_id=self.worker_id, kind=kind, job_id=job_id, payload=payload))


def new_session(
    service: ApplicationService,
    worker_id: str,
    mode: FeedMode = FeedMode.NORMAL,
    publisher: Optional[EventPublisher] = None,
) -> SwipeSessionTracker:
    """Build a tracker for ``worker_id`` seeded with what the store already settled."""
    tracker = SwipeSessionTracker(worker_id, ServiceSwipeDispatcher(service, worker_id), mode, publisher)
    tracker.reconcile(settled_job_ids(service, worker_id, mode))
    return tracker


def settled_job_ids(service: ApplicationService, worker_id: str, mode: FeedMode) -> Sequence[str]:
    if mode is FeedMode.RECONSIDERING_REJECTED:
        return sorted(service.reconsidered_job_ids(worker_id))
    return sorted(service.job_statuses(worker_id))
