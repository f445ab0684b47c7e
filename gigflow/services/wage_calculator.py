"""Wage calculation collaborator."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from config.settings import DEFAULT_HOURLY_RATE
from gigflow.records import JobParameters


class WageCalculator(Protocol):
    def estimate(self, start: datetime, end: datetime, job: JobParameters) -> Decimal:
        ...


class HourlyWageCalculator:
    """Pay the job's hourly rate for the elapsed time, rounded to cents."""

    def __init__(self, default_rate: Decimal = Decimal(DEFAULT_HOURLY_RATE)) -> None:
        self.default_rate = default_rate

    def estimate(self, start: datetime, end: datetime, job: JobParameters) -> Decimal:
        rate = job.hourly_rate or self.default_rate
        hours = Decimal(str((end - start).total_seconds())) / Decimal(3600)
        return (hours * rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
