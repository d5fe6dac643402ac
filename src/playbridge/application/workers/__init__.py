"""Worker system - background job processing."""

from playbridge.application.workers.job_runner import BackgroundJobRunner

__all__ = ["BackgroundJobRunner"]
