"""Structured logging configuration with JSON formatting and job ids."""

import contextvars
import logging
import sys
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, the job id follows a job through every await it makes. When
# someone says "my import hung at 40%", grep for their job_id and you get the
# matcher, the repositories and the back-end calls for that job only.
# contextvars (not threading.local) because each asyncio task gets its own
# copy of the context - the runner starts one task per job.
job_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("job_id", default="")


def get_job_id() -> str:
    """Get the job id bound to the current context, "" outside a job."""
    return job_id_var.get()


@contextmanager
def job_context(job_id: str) -> Iterator[str]:
    """Bind a job id to every log record emitted inside the block."""
    token = job_id_var.set(job_id)
    try:
        yield job_id
    finally:
        job_id_var.reset(token)


class JobIdFilter(logging.Filter):
    """Add job_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Attach the current job id. Never drops records."""
        record.job_id = get_job_id()
        return True


class CompactExceptionFormatter(logging.Formatter):
    """Human formatter with compact exception chains.

    Prints the chain root cause first, one ``╰─►`` line per exception, and
    only frames from our own package:

    ERROR   │ playbridge.application.services.song_matcher:88 │ Adapter search failed
    ╰─► httpx.ConnectError: All connection attempts failed
        File "navidrome_client.py", line 120, in _request
    """

    def format(self, record: logging.LogRecord) -> str:
        job_id = getattr(record, "job_id", "")
        record.job_tag = f"[{job_id[:8]}] " if job_id else ""
        return super().format(record)

    def formatException(self, ei: Any) -> str:
        _, exc_value, _ = ei
        if exc_value is None:
            return ""

        chain: list[BaseException] = []
        current: BaseException | None = exc_value
        while current is not None and current not in chain:
            chain.append(current)
            current = current.__cause__ or current.__context__
        chain.reverse()

        lines: list[str] = []
        for exc in chain:
            lines.append(f"╰─► {exc.__class__.__name__}: {exc}")
            if exc.__traceback__ is None:
                continue
            for frame in traceback.extract_tb(exc.__traceback__):
                if "/site-packages/" in frame.filename or "playbridge" not in frame.filename:
                    continue
                lines.append(
                    f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
                )
                if frame.line:
                    lines.append(f"      {frame.line.strip()}")
        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """JSON formatter adding service and job id fields."""

    def __init__(self, *args: Any, service: str = "playbridge", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.service = service

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add custom fields to log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = self.service
        log_record["line"] = record.lineno

        job_id = getattr(record, "job_id", "")
        if job_id:
            log_record["job_id"] = job_id

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)


# Listen future me, call this ONCE at startup (the API lifespan does). It
# replaces the root handlers, so calling it again in tests is safe.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "playbridge",
) -> None:
    """Configure structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format for logs (recommended for production)
        app_name: Service name stamped on JSON records
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(JobIdFilter())

    if json_format:
        formatter: logging.Formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            service=app_name,
        )
    else:
        formatter = CompactExceptionFormatter(
            fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(job_tag)s%(message)s",
            datefmt="%H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # HTTP client chatter drowns out our own logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={"app_name": app_name, "log_level": log_level, "json_format": json_format},
    )
