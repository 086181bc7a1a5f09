"""Access policies for the raw-fetch routes.

A deployment runs exactly one policy. Each returns a ``Decision`` for a
record and the caller's credentials; ``after_evaluate`` lets a policy change
stored state as a consequence of being asked.
"""

import secrets
from dataclasses import dataclass, field
from typing import Mapping, Union

from rawhost.auth import CredentialStatus, SessionStore
from rawhost.config import Settings
from rawhost.logging_config import get_logger
from rawhost.models import FileRecord
from rawhost.repository import FileRepository

logger = get_logger(__name__)

DENIAL_PAGE = """<!doctype html>
<html>
<head><title>Access denied</title></head>
<body><h1>Access denied</h1><p>Raw access to this file is disabled.</p></body>
</html>
"""


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class Deny:
    reason: str
    status_code: int = 403
    message: str = "forbidden"
    media_type: str = "text/plain"
    # Serve the real bytes with the denial status instead of ``message``.
    decoy: bool = False


Decision = Union[Allow, Deny]


@dataclass(frozen=True)
class Credentials:
    user_agent: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    token: str | None = None

    def header(self, name: str) -> str | None:
        for key, value in self.headers.items():
            if key.lower() == name.lower():
                return value
        return None


class AccessPolicy:
    name = "base"

    def evaluate(self, record: FileRecord, credentials: Credentials) -> Decision:
        raise NotImplementedError

    def after_evaluate(self, record: FileRecord, decision: Decision, repository: FileRepository) -> None:
        pass


class UserAgentPolicy(AccessPolicy):
    """Serve raw bytes to known game clients; browsers get a plain-text brush-off.

    An empty user agent counts as a client.
    """

    name = "user_agent"

    def __init__(self, markers: list[str], blocked_message: str):
        self.markers = markers
        self.blocked_message = blocked_message

    def evaluate(self, record: FileRecord, credentials: Credentials) -> Decision:
        user_agent = credentials.user_agent or ""
        if user_agent == "" or any(marker in user_agent for marker in self.markers):
            return Allow()
        return Deny(reason="browser", status_code=200, message=self.blocked_message)


class HeaderPasswordPolicy(AccessPolicy):
    name = "header_password"

    def __init__(self, sentinel_header: str, sentinel_value: str, password_header: str):
        self.sentinel_header = sentinel_header
        self.sentinel_value = sentinel_value
        self.password_header = password_header

    def evaluate(self, record: FileRecord, credentials: Credentials) -> Decision:
        if credentials.header(self.sentinel_header) != self.sentinel_value:
            return Deny(reason="missing sentinel header")
        supplied = credentials.header(self.password_header)
        if not supplied or not record.access_password:
            return Deny(reason="missing password")
        if not secrets.compare_digest(supplied.encode("utf-8"), record.access_password.encode("utf-8")):
            return Deny(reason="wrong password")
        return Allow()


class RotatingPasswordPolicy(AccessPolicy):
    """Raw fetch is always refused; the rotating password is checked elsewhere."""

    name = "rotating_password"

    def evaluate(self, record: FileRecord, credentials: Credentials) -> Decision:
        return Deny(reason="raw access disabled", message=DENIAL_PAGE, media_type="text/html")


class SessionPolicy(AccessPolicy):
    name = "session"

    def __init__(self, sessions: SessionStore):
        self.sessions = sessions

    def evaluate(self, record: FileRecord, credentials: Credentials) -> Decision:
        status = self.sessions.check(credentials.token, record.id)
        if status is CredentialStatus.VALID:
            return Allow()
        return Deny(reason=status.value, status_code=401, message=status.value)


class LockPolicy(AccessPolicy):
    name = "lock"

    def evaluate(self, record: FileRecord, credentials: Credentials) -> Decision:
        if record.locked:
            return Deny(reason="locked", message="locked")
        return Allow()


class DecoyLockPolicy(AccessPolicy):
    """Every raw fetch answers 403 but still carries the real bytes.

    The first attempt also marks the record locked. Status, body and stored
    state disagree on purpose.
    """

    name = "decoy_lock"

    def evaluate(self, record: FileRecord, credentials: Credentials) -> Decision:
        return Deny(reason="decoy", decoy=True)

    def after_evaluate(self, record: FileRecord, decision: Decision, repository: FileRepository) -> None:
        if not record.locked:
            repository.set_locked(record.id, True)
            logger.info("File %s locked after raw fetch", record.id)


def build_policy(settings: Settings, sessions: SessionStore) -> AccessPolicy:
    name = settings.access_policy
    if name == "user_agent":
        return UserAgentPolicy(settings.allowed_user_agents, settings.blocked_message)
    if name == "header_password":
        return HeaderPasswordPolicy(settings.sentinel_header, settings.sentinel_value, settings.password_header)
    if name == "rotating_password":
        return RotatingPasswordPolicy()
    if name == "session":
        return SessionPolicy(sessions)
    if name == "lock":
        return LockPolicy()
    if name == "decoy_lock":
        return DecoyLockPolicy()
    raise ValueError(f"unknown access policy: {name}")
