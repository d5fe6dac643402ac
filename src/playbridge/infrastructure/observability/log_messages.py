"""Structured log message templates.

Instead of "Error: All connection attempts failed" the logs read:

    🔴 navidrome Connection Failed
    ├─ Target: http://navidrome:4533/api/song
    ├─ Reason: All connection attempts failed
    └─ 💡 Check if navidrome is running and NAVIDROME_URL is correct

Usage:
    from playbridge.infrastructure.observability.log_messages import LogMessages

    logger.warning(LogMessages.adapter_failed("spotify", "Artist - Title", str(e)))
"""

from dataclasses import dataclass


@dataclass
class LogTemplate:
    """Icon + title line followed by a tree of fields and an optional hint."""

    icon: str
    title: str
    fields: dict[str, str]
    hint: str | None = None

    def format(self) -> str:
        """Render the multi-line message."""
        lines = [f"{self.icon} {self.title}"]
        items = list(self.fields.items())
        for i, (key, value) in enumerate(items):
            prefix = "└─" if i == len(items) - 1 and not self.hint else "├─"
            lines.append(f"{prefix} {key}: {value}")
        if self.hint:
            lines.append(f"└─ 💡 {self.hint}")
        return "\n".join(lines)


class LogMessages:
    """Collection of standardized log message templates."""

    # === Connections ===

    @staticmethod
    def connection_failed(
        service: str,
        target: str,
        error: str | None = None,
        hint: str | None = None,
    ) -> str:
        """External service could not be reached."""
        fields = {"Target": target}
        if error:
            fields["Reason"] = error
        return LogTemplate(
            icon="🔴",
            title=f"{service} Connection Failed",
            fields=fields,
            hint=hint or f"Check if {service} is running and its URL is correct",
        ).format()

    @staticmethod
    def credential_refreshed(service: str, waiters: int) -> str:
        """A single-flight login finished."""
        return LogTemplate(
            icon="🔑",
            title=f"{service} Credential Refreshed",
            fields={"Waiters": str(waiters)},
        ).format()

    # === Matching ===

    @staticmethod
    def adapter_failed(platform: str, song: str, error: str, hint: str | None = None) -> str:
        """One catalog adapter failed while looking up one song."""
        return LogTemplate(
            icon="⚠️",
            title="Catalog Search Failed",
            fields={"Platform": platform, "Song": song, "Reason": error},
            hint=hint,
        ).format()

    # === Jobs ===

    @staticmethod
    def job_transition(job_type: str, job_id: str, old: str, new: str) -> str:
        """Job moved between lifecycle states."""
        return LogTemplate(
            icon="🔄",
            title=f"{job_type} Job {new.title()}",
            fields={"Job": job_id, "Transition": f"{old} → {new}"},
        ).format()

    @staticmethod
    def import_summary(
        job_id: str,
        total: int,
        matched: int,
        unmatched: int,
        pending: int,
    ) -> str:
        """Match pass finished."""
        icon = "✅" if pending == 0 else "⏸️"
        return LogTemplate(
            icon=icon,
            title="Playlist Match Pass Complete",
            fields={
                "Job": job_id,
                "Songs": str(total),
                "Matched": str(matched),
                "Unmatched": str(unmatched),
                "Pending Review": str(pending),
            },
        ).format()

    @staticmethod
    def job_failed(job_type: str, job_id: str, error: str) -> str:
        """Job failed for good."""
        return LogTemplate(
            icon="❌",
            title=f"{job_type} Job Failed",
            fields={"Job": job_id, "Reason": error},
            hint="Partial results were kept on the job record",
        ).format()

    # === Downloads ===

    @staticmethod
    def backend_failed(service: str, item: str, error: str, hint: str | None = None) -> str:
        """A download back-end refused or lost one queue item."""
        return LogTemplate(
            icon="❌",
            title=f"{service} Download Failed",
            fields={"Item": item, "Reason": error},
            hint=hint,
        ).format()

    @staticmethod
    def batch_queued(job_id: str, by_service: dict[str, int], failed: int) -> str:
        """Download batch submitted."""
        fields = {"Job": job_id}
        for service, count in by_service.items():
            fields[service] = str(count)
        if failed:
            fields["Failed"] = str(failed)
        return LogTemplate(
            icon="✅" if not failed else "⚠️",
            title="Download Batch Queued",
            fields=fields,
        ).format()
