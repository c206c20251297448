"""
IP based rate limiting (SlowAPI), in front of the per-user quotas of
careconnect.core.throttle. Keys on the client IP, X-Forwarded-For first.
"""
from fastapi import Request

from slowapi import Limiter

from .config import settings

# Limit strings shared by the routers
AI_RATE_LIMIT = f"{settings.rate_limit_per_minute}/minute"
REGISTER_RATE_LIMIT = f"{settings.rate_limit_register_per_minute}/minute;100/hour"
LOGIN_RATE_LIMIT = "5/minute;20/hour"


def _get_client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


# RATE_LIMIT_ENABLED=false turns every decorator into a no-op (tests, local dev)
limiter = Limiter(key_func=_get_client_ip, enabled=settings.rate_limit_enabled)
