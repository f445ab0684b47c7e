"""One-time passcode issuance and verification."""

import logging
import secrets
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from config.settings import OTP_LENGTH, OTP_VALIDITY_MINUTES
from gigflow.errors import OtpExpired, OtpMismatch
from gigflow.records import OtpChallenge

logger = logging.getLogger(__name__)


class OtpGenerator:
    """Issue numeric codes with a fixed validity window.

    The generator remembers the latest challenge per subject so that
    issuing a new code immediately invalidates the previous one. Expiry is
    a predicate evaluated at verification time; nothing is evicted in the
    background.
    """

    def __init__(
        self,
        validity: timedelta = timedelta(minutes=OTP_VALIDITY_MINUTES),
        length: int = OTP_LENGTH,
        code_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.validity = validity
        self.length = length
        self._code_factory = code_factory or self._random_code
        self._active: Dict[str, OtpChallenge] = {}
        self._lock = threading.Lock()

    def _random_code(self) -> str:
        return f"{secrets.randbelow(10 ** self.length):0{self.length}d}"

    def is_well_formed(self, code: Optional[str]) -> bool:
        return bool(code) and len(code) == self.length and code.isascii() and code.isdigit()

    def generate(self, subject_id: str, now: datetime) -> OtpChallenge:
        code = self._code_factory()
        if not self.is_well_formed(code):
            raise ValueError(f"OTP code factory produced a malformed code for {subject_id}")

        challenge = OtpChallenge(
            code=code,
            expires_at=now + self.validity,
            subject_application_id=subject_id,
        )
        with self._lock:
            self._active[subject_id] = challenge
        logger.info("Issued OTP for application %s (expires %s)", subject_id, challenge.expires_at.isoformat())
        return challenge

    def current(self, subject_id: str) -> Optional[OtpChallenge]:
        with self._lock:
            return self._active.get(subject_id)

    def restore(self, challenge: OtpChallenge) -> None:
        """Adopt a stored challenge as the latest one for its subject."""
        with self._lock:
            self._active[challenge.subject_application_id] = challenge

    def discard(self, subject_id: str) -> None:
        with self._lock:
            self._active.pop(subject_id, None)

    def _superseded(self, challenge: OtpChallenge) -> bool:
        # Challenges restored from storage after a restart have no entry and are trusted.
        latest = self.current(challenge.subject_application_id)
        return latest is not None and latest != challenge

    def verify(self, challenge: Optional[OtpChallenge], submitted_code: Optional[str], now: datetime) -> bool:
        """Return True iff the code matches a live, unexpired challenge."""
        if challenge is None or not self.is_well_formed(submitted_code):
            return False
        if self._superseded(challenge):
            return False
        return secrets.compare_digest(submitted_code, challenge.code) and now < challenge.expires_at

    def check(self, challenge: Optional[OtpChallenge], submitted_code: Optional[str], now: datetime) -> None:
        """Like :meth:`verify` but raise the reason a code was refused.

        Raises:
            OtpMismatch: no live challenge, malformed code, or a different code.
            OtpExpired: the code matches but the challenge has expired.
        """
        if self.verify(challenge, submitted_code, now):
            return

        subject = challenge.subject_application_id if challenge else ""
        if challenge is None or self._superseded(challenge):
            raise OtpMismatch(subject, f"No active OTP for application {subject}")
        if not self.is_well_formed(submitted_code):
            raise OtpMismatch(subject, f"OTP must be {self.length} digits")
        if not secrets.compare_digest(submitted_code, challenge.code):
            raise OtpMismatch(subject, f"OTP does not match for application {subject}")
        raise OtpExpired(subject, f"OTP for application {subject} expired at {challenge.expires_at.isoformat()}")
