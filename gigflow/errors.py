"""Exception hierarchy for the application lifecycle engine."""

from typing import Optional


class GigflowError(Exception):
    """Base class for every error raised by the lifecycle engine."""


class InvalidTransition(GigflowError):
    """An event was submitted that is not legal for the record's status."""

    def __init__(self, status, event, reason: str = "") -> None:
        self.status = status
        self.event = event
        self.reason = reason
        message = f"Event {getattr(event, 'value', event)} is not allowed from status {getattr(status, 'value', status)}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class OtpError(GigflowError):
    """A submitted one-time passcode was not accepted."""

    kind = "otp"

    def __init__(self, application_id: str, message: Optional[str] = None) -> None:
        self.application_id = application_id
        super().__init__(message or f"OTP {self.kind} for application {application_id}")


class OtpExpired(OtpError):
    """The code matched an expired challenge; a fresh code must be requested."""

    kind = "expired"


class OtpMismatch(OtpError):
    """The code does not match the active challenge; the caller may retry."""

    kind = "mismatch"


class AlreadyProcessed(GigflowError):
    """A job was swiped again after its outcome was recorded or dispatched."""

    def __init__(self, job_id: str, in_flight: bool = False) -> None:
        self.job_id = job_id
        self.in_flight = in_flight
        state = "in flight" if in_flight else "already processed"
        super().__init__(f"Job {job_id} is {state} in this session")


class ClockSkewError(GigflowError):
    """Work end time precedes work start time."""

    def __init__(self, application_id: str, start, end) -> None:
        self.application_id = application_id
        self.start = start
        self.end = end
        super().__init__(
            f"Work end time {end.isoformat()} precedes start time {start.isoformat()} "
            f"for application {application_id}"
        )


class RemoteFailure(GigflowError):
    """The persistence store could not complete a read or mutation."""


class ApplicationNotFound(GigflowError):
    """No application record exists for the requested key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Application {key} not found")
