"""Observability infrastructure for structured logging."""

from playbridge.infrastructure.observability.log_messages import LogMessages
from playbridge.infrastructure.observability.logging import (
    configure_logging,
    get_job_id,
    job_context,
)

__all__ = [
    "LogMessages",
    "configure_logging",
    "get_job_id",
    "job_context",
]
