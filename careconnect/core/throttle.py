"""
Per-user request throttling.

HourlyQuota is a counter persisted in RateLimitRecord: the window is anchored at
the first request (not the clock hour) and lasts `window`; inside it at most
`limit` requests pass. RequestThrottle adds an optional cooldown between two
requests of the same login session, held in memory on a ChatSession object.

The quota read-increment-write is not locked: two tabs of the same user can
both read a stale count and both pass. Quota enforcement is approximate.

Store failures are fail-open: the request is allowed and the error is logged.
"""
import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from careconnect.core.clock import utcnow
from careconnect.core.config import settings
from careconnect.core.errors import QuotaExceeded
from careconnect.models import RateLimitRecord, SecurityLog

logger = logging.getLogger(__name__)

HOUR = timedelta(hours=1)

FEATURE_AI_REQUEST = "ai_request"
FEATURE_UPLOAD = "upload"

REASON_COOLDOWN = "cooldown"
REASON_QUOTA = "quota"


@dataclass
class ThrottleDecision:
    allowed: bool
    reason: str | None = None
    retry_after: timedelta | None = None
    reset_at: datetime | None = None
    count: int | None = None
    limit: int | None = None
    fail_open: bool = False

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds, rounded up (a 4.2 s wait is shown as 5)."""
        if self.retry_after is None:
            return 0
        return max(0, math.ceil(self.retry_after.total_seconds()))


@dataclass
class QuotaUsage:
    count: int
    limit: int
    resets_at: datetime | None

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class HourlyQuota:
    def __init__(self, feature: str, limit: int, window: timedelta = HOUR, track_last_request: bool = False):
        self.feature = feature
        self.limit = limit
        self.window = window
        self.track_last_request = track_last_request

    def _load(self, db: Session, user_id: int) -> RateLimitRecord | None:
        stmt = select(RateLimitRecord).where(
            RateLimitRecord.user_id == user_id,
            RateLimitRecord.feature == self.feature,
        )
        return db.exec(stmt).first()

    def check_and_consume(self, db: Session, user_id: int, now: datetime | None = None) -> ThrottleDecision:
        now = now or utcnow()
        try:
            record = self._load(db, user_id)
            if record is None:
                record = RateLimitRecord(user_id=user_id, feature=self.feature, count=1, hour_start=now)
            elif now - record.hour_start >= self.window:
                record.count = 1
                record.hour_start = now
            elif record.count >= self.limit:
                reset_at = record.hour_start + self.window
                return ThrottleDecision(
                    allowed=False,
                    reason=REASON_QUOTA,
                    retry_after=reset_at - now,
                    reset_at=reset_at,
                    count=record.count,
                    limit=self.limit,
                )
            else:
                record.count += 1
            if self.track_last_request:
                record.last_request = now
            db.add(record)
            db.commit()
            return ThrottleDecision(allowed=True, reset_at=record.hour_start + self.window, count=record.count)
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Rate limit store failed (feature=%s user_id=%s); allowing request",
                self.feature,
                user_id,
            )
            return ThrottleDecision(allowed=True, fail_open=True)

    def usage(self, db: Session, user_id: int, now: datetime | None = None) -> QuotaUsage:
        """Current window without consuming; an elapsed window reads as empty."""
        now = now or utcnow()
        record = self._load(db, user_id)
        if record is None or now - record.hour_start >= self.window:
            return QuotaUsage(count=0, limit=self.limit, resets_at=None)
        return QuotaUsage(count=record.count, limit=self.limit, resets_at=record.hour_start + self.window)


class ChatSession:
    """Volatile state of one login session; lost when the session (or the process) ends."""

    def __init__(self, session_id: str, created_at: datetime | None = None):
        self.session_id = session_id
        self.created_at = created_at or utcnow()
        self.last_request_at: datetime | None = None

    @property
    def last_seen(self) -> datetime:
        return self.last_request_at or self.created_at


class SessionRegistry:
    """
    In-process ChatSession map. Sessions idle for longer than `idle_ttl` carry
    no cooldown state any more and are dropped, at most once per `idle_ttl`.
    """

    def __init__(self, idle_ttl: timedelta = timedelta(minutes=10)):
        self.idle_ttl = idle_ttl
        self._sessions: dict[str, ChatSession] = {}
        self._lock = threading.Lock()
        self._last_prune: datetime | None = None

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str, now: datetime | None = None) -> ChatSession:
        now = now or utcnow()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                self._prune(now)
                session = ChatSession(session_id, created_at=now)
                self._sessions[session_id] = session
            return session

    def _prune(self, now: datetime) -> None:
        # Caller holds the lock
        if self._last_prune is not None and now - self._last_prune < self.idle_ttl:
            return
        cutoff = now - self.idle_ttl
        for session_id in [sid for sid, s in self._sessions.items() if s.last_seen < cutoff]:
            del self._sessions[session_id]
        self._last_prune = now

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


class RequestThrottle:
    def __init__(self, quota: HourlyQuota, cooldown: timedelta | None = None):
        self.quota = quota
        self.cooldown = cooldown

    def check_and_consume(
        self,
        db: Session,
        user_id: int,
        session: ChatSession | None = None,
        now: datetime | None = None,
    ) -> ThrottleDecision:
        now = now or utcnow()
        if self.cooldown and session is not None and session.last_request_at is not None:
            elapsed = now - session.last_request_at
            if elapsed < self.cooldown:
                return ThrottleDecision(allowed=False, reason=REASON_COOLDOWN, retry_after=self.cooldown - elapsed)
        decision = self.quota.check_and_consume(db, user_id, now)
        if decision.allowed and session is not None:
            session.last_request_at = now
        return decision


def ai_request_throttle() -> RequestThrottle:
    quota = HourlyQuota(FEATURE_AI_REQUEST, settings.ai_requests_per_hour, track_last_request=True)
    return RequestThrottle(quota, cooldown=timedelta(seconds=settings.ai_request_cooldown_seconds))


def upload_throttle() -> RequestThrottle:
    return RequestThrottle(HourlyQuota(FEATURE_UPLOAD, settings.uploads_per_hour))


def format_reset_time(reset_at: datetime | None) -> str:
    if reset_at is None:
        return "soon"
    return reset_at.strftime("%H:%M") + " UTC"


def raise_if_denied(decision: ThrottleDecision, what: str) -> None:
    """
    Turns a denial into QuotaExceeded with a short actionable message.
    `what` names the quota for the user, e.g. "AI requests" or "file uploads".
    """
    if decision.allowed:
        return
    if decision.reason == REASON_COOLDOWN:
        seconds = decision.retry_after_seconds
        message = f"Please wait {seconds} seconds before making another request"
    else:
        message = f"You can make up to {decision.limit} {what} per hour. Try again after {format_reset_time(decision.reset_at)}"
    raise QuotaExceeded(
        message,
        retry_after=decision.retry_after.total_seconds() if decision.retry_after else 0.0,
        reset_at=decision.reset_at,
        reason=decision.reason or REASON_QUOTA,
    )


def log_quota_denial(db: Session, user_id: int | None, endpoint: str, decision: ThrottleDecision) -> None:
    """SecurityLog row for a denied request; a failed write is only logged."""
    if decision.allowed:
        return
    try:
        db.add(
            SecurityLog(
                event="quota_exceeded",
                user_id=user_id,
                endpoint=endpoint,
                detail=f"{decision.reason}; retry_after={decision.retry_after_seconds}s",
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("SecurityLog quota write failed: %s", e)
