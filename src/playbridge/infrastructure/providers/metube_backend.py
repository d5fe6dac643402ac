"""MeTube implementation of ISingleTrackFetcherBackend.

MeTube keys everything by URL, so the job id we return is the submitted URL
(or the ``ytsearch1:`` term for songs without a known video).
"""

import posixpath
from typing import Any

from playbridge.domain.entities.download_queue import DownloadService, QueueItemStatus
from playbridge.domain.ports.download_backend import (
    BackendQueueEntry,
    ISingleTrackFetcherBackend,
)
from playbridge.infrastructure.integrations.metube_client import MeTubeClient


def _looks_like_url(value: str) -> bool:
    return value.startswith(("http://", "https://", "ytsearch"))


def _entry_id(entry: dict[str, Any]) -> str:
    return str(entry.get("url") or entry.get("id") or "")


class MeTubeFetcherBackend(ISingleTrackFetcherBackend):
    """Routes single tracks to MeTube."""

    def __init__(self, client: MeTubeClient) -> None:
        self._client = client
        self.batch_size = client.settings.batch_size

    def is_configured(self) -> bool:
        return self._client.settings.is_configured

    async def enqueue(
        self,
        url_or_term: str,
        media_format: str,
        quality: str,
        name_prefix: str | None = None,
    ) -> str:
        url = url_or_term if _looks_like_url(url_or_term) else self._client.search_url(url_or_term)
        await self._client.add(
            url,
            quality=quality,
            media_format=media_format,
            custom_name_prefix=name_prefix,
        )
        return url

    async def cancel(self, job_id: str) -> bool:
        history = await self._client.get_history()
        waiting = {_entry_id(e) for e in history["queue"] + history["pending"]}
        if job_id not in waiting:
            # finished or never known: nothing to stop
            return False
        await self._client.delete([job_id], where="queue")
        return True

    async def get_queue(self) -> list[BackendQueueEntry]:
        history = await self._client.get_history()
        entries = [
            self._to_entry(e, QueueItemStatus.DOWNLOADING) for e in history["queue"]
        ]
        entries += [self._to_entry(e, QueueItemStatus.QUEUED) for e in history["pending"]]
        return entries

    async def get_done(self) -> list[BackendQueueEntry]:
        history = await self._client.get_history()
        entries: list[BackendQueueEntry] = []
        for raw in history["done"]:
            if raw.get("status") == "finished":
                entries.append(self._to_entry(raw, QueueItemStatus.COMPLETED))
            elif raw.get("status") == "error":
                entries.append(self._to_entry(raw, QueueItemStatus.FAILED))
        return entries

    def _to_entry(self, raw: dict[str, Any], status: QueueItemStatus) -> BackendQueueEntry:
        path = None
        if status == QueueItemStatus.COMPLETED and raw.get("filename"):
            path = posixpath.join(raw.get("folder") or "", raw["filename"])
        percent = raw.get("percent")
        return BackendQueueEntry(
            service=DownloadService.SINGLE_TRACK_FETCHER,
            service_job_id=_entry_id(raw),
            title=raw.get("title") or _entry_id(raw),
            status=status,
            progress=float(percent) if isinstance(percent, int | float) else None,
            path=path,
            error=(raw.get("msg") or raw.get("error")) if status == QueueItemStatus.FAILED else None,
            raw_data=raw,
        )
