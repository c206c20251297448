"""
Logging configuration.
One stdout handler for the app and uvicorn. HTTP client libraries are kept at
WARNING so that gateway calls show up once, through careconnect.services.diagnosis.
"""
import logging
import sys

from careconnect.core.config import settings

APP_LOGGERS = ("careconnect",)
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
# openai logs every retry decision, httpx every request line
QUIET_LOGGERS = ("httpx", "httpcore", "openai")


def setup_logging(
    level: int | str | None = None,
    format_string: str | None = None,
) -> None:
    if level is None:
        level = settings.log_level.upper()
    if format_string is None:
        format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=format_string,
        stream=sys.stdout,
        force=True,
    )
    for name in UVICORN_LOGGERS + APP_LOGGERS:
        logging.getLogger(name).setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
