"""Services module exports."""

from .application_repository import ApplicationRepository
from .application_service import ApplicationService
from .otp_generator import OtpGenerator
from .status_machine import StatusMachine, TransitionContext
from .swipe_session import SwipeOutcome, SwipeResult, SwipeSessionTracker
from .work_session import WorkSessionController

__all__ = [
    "ApplicationRepository",
    "ApplicationService",
    "OtpGenerator",
    "StatusMachine",
    "SwipeOutcome",
    "SwipeResult",
    "SwipeSessionTracker",
    "TransitionContext",
    "WorkSessionController",
]
