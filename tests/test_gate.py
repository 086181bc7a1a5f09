from datetime import datetime, timezone

import pytest

from rawhost.auth import SessionStore
from rawhost.config import Settings
from rawhost.gate import (
    Allow,
    Credentials,
    DecoyLockPolicy,
    Deny,
    HeaderPasswordPolicy,
    LockPolicy,
    RotatingPasswordPolicy,
    SessionPolicy,
    UserAgentPolicy,
    build_policy,
)
from rawhost.models import FileRecord
from rawhost.repository import FileRepository


def make_record(**overrides) -> FileRecord:
    values = {
        "id": "abc123",
        "original_name": "script.lua",
        "stored_name": "abc123.lua",
        "mime_type": "text/plain",
        "size": 4,
        "uploaded_at": datetime.now(timezone.utc),
    }
    values.update(overrides)
    return FileRecord(**values)


@pytest.mark.parametrize(
    "user_agent, allowed",
    [
        ("", True),
        ("Roblox/WinInet", True),
        ("RobloxStudio HttpService", True),
        ("Game", True),
        ("Mozilla/5.0", False),
        ("curl/8.0", False),
    ],
)
def test_user_agent_policy(user_agent, allowed):
    policy = UserAgentPolicy(["Roblox", "HttpService", "Game"], "blocked")
    decision = policy.evaluate(make_record(), Credentials(user_agent=user_agent))
    assert isinstance(decision, Allow) is allowed
    if not allowed:
        assert decision.message == "blocked"


def test_header_password_policy_requires_both_headers():
    policy = HeaderPasswordPolicy("X-Raw-Client", "rawhost", "X-Raw-Password")
    record = make_record(access_password="pw123")

    both = Credentials(headers={"x-raw-client": "rawhost", "x-raw-password": "pw123"})
    assert isinstance(policy.evaluate(record, both), Allow)

    wrong_sentinel = Credentials(headers={"x-raw-client": "other", "x-raw-password": "pw123"})
    assert isinstance(policy.evaluate(record, wrong_sentinel), Deny)

    prefix_only = Credentials(headers={"x-raw-client": "rawhost", "x-raw-password": "pw12"})
    assert isinstance(policy.evaluate(record, prefix_only), Deny)


def test_header_password_policy_denies_records_without_password():
    policy = HeaderPasswordPolicy("X-Raw-Client", "rawhost", "X-Raw-Password")
    creds = Credentials(headers={"x-raw-client": "rawhost", "x-raw-password": ""})
    assert isinstance(policy.evaluate(make_record(), creds), Deny)


def test_rotating_password_policy_always_denies():
    decision = RotatingPasswordPolicy().evaluate(make_record(), Credentials(user_agent="Roblox"))
    assert isinstance(decision, Deny)
    assert decision.media_type == "text/html"


def test_session_policy_matches_bound_file():
    sessions = SessionStore(ttl_seconds=60)
    policy = SessionPolicy(sessions)
    session = sessions.create("abc123")

    assert isinstance(policy.evaluate(make_record(), Credentials(token=session.token)), Allow)

    other = policy.evaluate(make_record(id="zzz"), Credentials(token=session.token))
    assert isinstance(other, Deny)
    assert other.status_code == 401

    assert isinstance(policy.evaluate(make_record(), Credentials()), Deny)


def test_lock_policy():
    policy = LockPolicy()
    assert isinstance(policy.evaluate(make_record(locked=False), Credentials()), Allow)
    assert isinstance(policy.evaluate(make_record(locked=True), Credentials()), Deny)


def test_decoy_lock_policy_locks_record(tmp_path):
    repository = FileRepository(str(tmp_path / "metadata.json"))
    repository.init()
    record = repository.put(make_record())
    policy = DecoyLockPolicy()

    decision = policy.evaluate(record, Credentials())
    policy.after_evaluate(record, decision, repository)

    assert isinstance(decision, Deny)
    assert decision.decoy is True
    assert decision.status_code == 403
    assert repository.get(record.id).locked is True


@pytest.mark.parametrize(
    "name, policy_type",
    [
        ("user_agent", UserAgentPolicy),
        ("header_password", HeaderPasswordPolicy),
        ("rotating_password", RotatingPasswordPolicy),
        ("session", SessionPolicy),
        ("lock", LockPolicy),
        ("decoy_lock", DecoyLockPolicy),
    ],
)
def test_build_policy(name, policy_type):
    policy = build_policy(Settings(access_policy=name), SessionStore(ttl_seconds=60))
    assert isinstance(policy, policy_type)
