"""Session tokens and the global rotating password.

Both live only in process memory. Validity is always decided by comparing
``expires_at`` against the clock at read time; the periodic sweep only frees
memory held by sessions nobody will be able to use again.
"""

import secrets
import string
import threading
import time
from enum import Enum
from typing import Callable

from rawhost.logging_config import get_logger
from rawhost.models import RotatingPassword, Session

logger = get_logger(__name__)

ALPHABET = string.ascii_letters + string.digits

Clock = Callable[[], float]


class CredentialStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"


def generate_password(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


class SessionStore:
    def __init__(self, ttl_seconds: int, clock: Clock = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, file_id: str) -> Session:
        session = Session(
            token=secrets.token_hex(16),
            file_id=file_id,
            expires_at=self.clock() + self.ttl_seconds,
        )
        with self._lock:
            self._sessions[session.token] = session
        return session

    def check(self, token: str | None, file_id: str) -> CredentialStatus:
        if not token:
            return CredentialStatus.INVALID
        session = self._sessions.get(token)
        if session is None or session.file_id != file_id:
            return CredentialStatus.INVALID
        if self.clock() >= session.expires_at:
            return CredentialStatus.EXPIRED
        return CredentialStatus.VALID

    def sweep(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [token for token, session in self._sessions.items() if now >= session.expires_at]
            for token in expired:
                del self._sessions[token]
        if expired:
            logger.debug("Swept %d expired sessions", len(expired))
        return len(expired)


class PasswordRotator:
    """Holds the single password shared by every resource."""

    def __init__(self, length: int, ttl_seconds: int, clock: Clock = time.time):
        self.length = length
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.current: RotatingPassword | None = None

    @property
    def expires_at(self) -> float | None:
        return self.current.expires_at if self.current else None

    def rotate(self) -> RotatingPassword:
        self.current = RotatingPassword(
            value=generate_password(self.length),
            expires_at=self.clock() + self.ttl_seconds,
        )
        logger.info("Password rotated, valid until %s", self.current.expires_at)
        return self.current

    def verify(self, candidate: str | None) -> CredentialStatus:
        current = self.current
        if current is None or not candidate:
            return CredentialStatus.INVALID
        if not secrets.compare_digest(candidate.encode("utf-8"), current.value.encode("utf-8")):
            return CredentialStatus.INVALID
        if self.clock() >= current.expires_at:
            return CredentialStatus.EXPIRED
        return CredentialStatus.VALID
