from collections import deque
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from gigflow.db import dispose_engine
from gigflow.records import Job
from gigflow.services.application_repository import ApplicationRepository
from gigflow.services.application_service import ApplicationService
from gigflow.services.otp_generator import OtpGenerator
from gigflow.services.work_session import WorkSessionController

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current += timedelta(**delta)
        return self.current


class ScriptedCodes:
    """OTP code factory that hands out queued codes, then a fallback."""

    def __init__(self, fallback: str = "999999") -> None:
        self.queue = deque()
        self.fallback = fallback

    def push(self, *codes: str) -> None:
        self.queue.extend(codes)

    def __call__(self) -> str:
        return self.queue.popleft() if self.queue else self.fallback


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codes():
    return ScriptedCodes()


@pytest.fixture
def repo(tmp_path):
    db_url = f"sqlite:///{tmp_path/'gigflow.db'}"
    repository = ApplicationRepository(database_url=db_url)
    repository.create_schema()
    yield repository
    dispose_engine(db_url)


@pytest.fixture
def service(repo, clock):
    return ApplicationService(repository=repo, clock=clock)


@pytest.fixture
def controller(service, codes):
    return WorkSessionController(service, otp_generator=OtpGenerator(code_factory=codes))


@pytest.fixture
def job(repo):
    job = Job(id="J1", employer_id="E1", title="Warehouse loading", hourly_rate=Decimal("120.00"))
    repo.upsert_job(job)
    return job
