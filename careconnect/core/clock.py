from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time, naive (matches what SQLite hands back from DATETIME columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
