"""Per-user throttle: hourly quota, window reset, session cooldown, fail-open."""
import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from careconnect.core.database import engine, init_db
from careconnect.core.errors import QuotaExceeded
from careconnect.core.throttle import (
    ChatSession,
    HourlyQuota,
    RequestThrottle,
    SessionRegistry,
    ThrottleDecision,
    format_reset_time,
    raise_if_denied,
)

T0 = datetime(2025, 3, 1, 10, 0, 0)


@pytest.fixture
def db():
    init_db()
    with Session(engine) as session:
        yield session


@pytest.fixture
def feature():
    # Own counter per test; the in-memory DB is shared by the whole run
    return f"test-{uuid.uuid4().hex[:8]}"


def test_quota_allows_up_to_limit(db, feature):
    quota = HourlyQuota(feature, limit=3)
    counts = [quota.check_and_consume(db, 1, T0 + timedelta(minutes=i)).count for i in range(3)]
    assert counts == [1, 2, 3]
    denied = quota.check_and_consume(db, 1, T0 + timedelta(minutes=10))
    assert not denied.allowed
    assert denied.reason == "quota"
    assert denied.reset_at == T0 + timedelta(hours=1)
    assert denied.retry_after == timedelta(minutes=50)
    assert denied.limit == 3


def test_denied_request_does_not_count(db, feature):
    quota = HourlyQuota(feature, limit=1)
    quota.check_and_consume(db, 1, T0)
    for i in range(3):
        assert not quota.check_and_consume(db, 1, T0 + timedelta(seconds=i + 1)).allowed
    assert quota.usage(db, 1, T0 + timedelta(seconds=10)).count == 1


def test_window_resets_after_an_hour(db, feature):
    quota = HourlyQuota(feature, limit=2)
    quota.check_and_consume(db, 1, T0)
    quota.check_and_consume(db, 1, T0)
    assert not quota.check_and_consume(db, 1, T0 + timedelta(minutes=59)).allowed
    later = T0 + timedelta(hours=1, seconds=1)
    decision = quota.check_and_consume(db, 1, later)
    assert decision.allowed
    assert decision.count == 1
    assert decision.reset_at == later + timedelta(hours=1)


def test_users_have_separate_quotas(db, feature):
    quota = HourlyQuota(feature, limit=1)
    assert quota.check_and_consume(db, 1, T0).allowed
    assert quota.check_and_consume(db, 2, T0).allowed
    assert not quota.check_and_consume(db, 1, T0).allowed


def test_usage_does_not_consume(db, feature):
    quota = HourlyQuota(feature, limit=5)
    empty = quota.usage(db, 7, T0)
    assert (empty.count, empty.remaining, empty.resets_at) == (0, 5, None)
    quota.check_and_consume(db, 7, T0)
    usage = quota.usage(db, 7, T0 + timedelta(minutes=1))
    assert (usage.count, usage.remaining) == (1, 4)
    assert usage.resets_at == T0 + timedelta(hours=1)
    assert quota.usage(db, 7, T0 + timedelta(hours=2)).count == 0


class BrokenSession:
    """Stands in for a DB session whose backing store is down."""

    def __init__(self):
        self.rolled_back = False

    def exec(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    def rollback(self):
        self.rolled_back = True


def test_store_failure_fails_open(caplog):
    broken = BrokenSession()
    decision = HourlyQuota("ai_request", limit=1).check_and_consume(broken, 1, T0)
    assert decision.allowed
    assert decision.fail_open
    assert broken.rolled_back
    assert "allowing request" in caplog.text


def test_cooldown_blocks_quick_second_request(db, feature):
    throttle = RequestThrottle(HourlyQuota(feature, limit=20), cooldown=timedelta(seconds=5))
    session = ChatSession("s1")
    assert throttle.check_and_consume(db, 1, session, T0).allowed
    denied = throttle.check_and_consume(db, 1, session, T0 + timedelta(seconds=2))
    assert not denied.allowed
    assert denied.reason == "cooldown"
    assert denied.retry_after_seconds == 3
    assert throttle.check_and_consume(db, 1, session, T0 + timedelta(seconds=5)).allowed


def test_cooldown_denial_does_not_consume_quota(db, feature):
    throttle = RequestThrottle(HourlyQuota(feature, limit=20), cooldown=timedelta(seconds=5))
    session = ChatSession("s1")
    throttle.check_and_consume(db, 1, session, T0)
    throttle.check_and_consume(db, 1, session, T0 + timedelta(seconds=1))
    assert throttle.quota.usage(db, 1, T0 + timedelta(seconds=2)).count == 1


def test_quota_denial_does_not_move_cooldown(db, feature):
    throttle = RequestThrottle(HourlyQuota(feature, limit=1), cooldown=timedelta(seconds=5))
    session = ChatSession("s1")
    throttle.check_and_consume(db, 1, session, T0)
    assert throttle.check_and_consume(db, 1, session, T0 + timedelta(seconds=10)).reason == "quota"
    assert session.last_request_at == T0


def test_cooldown_is_per_session(db, feature):
    throttle = RequestThrottle(HourlyQuota(feature, limit=20), cooldown=timedelta(seconds=5))
    assert throttle.check_and_consume(db, 1, ChatSession("a"), T0).allowed
    assert throttle.check_and_consume(db, 1, ChatSession("b"), T0 + timedelta(seconds=1)).allowed


def test_session_registry_returns_same_session():
    registry = SessionRegistry()
    assert registry.get("x") is registry.get("x")
    assert registry.get("x") is not registry.get("y")
    registry.clear()


def test_session_registry_drops_idle_sessions():
    registry = SessionRegistry(idle_ttl=timedelta(minutes=10))
    idle = registry.get("idle", now=T0)
    idle.last_request_at = T0
    active = registry.get("active", now=T0)
    active.last_request_at = T0 + timedelta(minutes=8)
    registry.get("new", now=T0 + timedelta(minutes=11))
    assert len(registry) == 2
    assert registry.get("active", now=T0 + timedelta(minutes=11)) is active
    assert registry.get("idle", now=T0 + timedelta(minutes=11)) is not idle


def test_session_registry_prunes_at_most_once_per_ttl():
    registry = SessionRegistry(idle_ttl=timedelta(minutes=10))
    registry.get("a", now=T0)
    registry.get("b", now=T0 + timedelta(minutes=11))
    assert len(registry) == 1
    registry.get("c", now=T0 + timedelta(minutes=15))
    # b is idle only 4 minutes and a prune ran 4 minutes ago
    assert len(registry) == 2


def test_retry_after_rounds_up():
    assert ThrottleDecision(allowed=False, retry_after=timedelta(seconds=4.2)).retry_after_seconds == 5
    assert ThrottleDecision(allowed=True).retry_after_seconds == 0


def test_format_reset_time():
    assert format_reset_time(datetime(2025, 3, 1, 14, 5)) == "14:05 UTC"
    assert format_reset_time(None) == "soon"


def test_raise_if_denied_messages():
    raise_if_denied(ThrottleDecision(allowed=True), "AI requests")
    with pytest.raises(QuotaExceeded) as exc:
        raise_if_denied(
            ThrottleDecision(allowed=False, reason="cooldown", retry_after=timedelta(seconds=3)), "AI requests"
        )
    assert exc.value.message == "Please wait 3 seconds before making another request"
    assert exc.value.reason == "cooldown"
    with pytest.raises(QuotaExceeded) as exc:
        raise_if_denied(
            ThrottleDecision(
                allowed=False,
                reason="quota",
                retry_after=timedelta(minutes=20),
                reset_at=datetime(2025, 3, 1, 11, 0),
                limit=20,
            ),
            "AI requests",
        )
    assert exc.value.message == "You can make up to 20 AI requests per hour. Try again after 11:00 UTC"
    assert exc.value.retry_after == 1200
