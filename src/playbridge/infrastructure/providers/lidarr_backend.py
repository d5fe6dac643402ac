"""Lidarr implementation of ICatalogManagerBackend.

Job ids handed back to the orchestrator:
- ``album:<albumId>`` when a specific album was monitored and searched
- ``artist:<artistId>`` when only the artist could be resolved

Lidarr's queue and history records carry both albumId and artistId, so every
entry answers to its album id and lists the artist id as related.
"""

import logging
from typing import Any

from rapidfuzz import fuzz

from playbridge.domain.entities.download_queue import DownloadService, QueueItemStatus
from playbridge.domain.exceptions import ExternalServiceError
from playbridge.domain.ports.download_backend import (
    BackendQueueEntry,
    CatalogArtist,
    CatalogDownloadRequest,
    ICatalogManagerBackend,
)
from playbridge.domain.value_objects.text_normalization import normalize_title
from playbridge.infrastructure.integrations.lidarr_client import LidarrClient

logger = logging.getLogger(__name__)

ALBUM_MATCH_THRESHOLD = 85.0

# Hey future me - Lidarr history eventType strings. Anything not listed here
# (renames, deletes, retags) is not a download outcome and gets ignored.
LIDARR_HISTORY_MAPPING: dict[str, QueueItemStatus] = {
    "grabbed": QueueItemStatus.DOWNLOADING,
    "downloadImported": QueueItemStatus.COMPLETED,
    "trackFileImported": QueueItemStatus.COMPLETED,
    "downloadFailed": QueueItemStatus.FAILED,
    "albumImportIncomplete": QueueItemStatus.FAILED,
}


def _parse_job_id(job_id: str) -> tuple[str, int] | None:
    kind, _, raw_id = job_id.partition(":")
    if kind not in ("album", "artist") or not raw_id.isdigit():
        return None
    return kind, int(raw_id)


def _record_title(record: dict[str, Any]) -> str:
    album = record.get("album") or {}
    return album.get("title") or record.get("title") or record.get("sourceTitle") or ""


class LidarrCatalogBackend(ICatalogManagerBackend):
    """Routes album/artist requests to Lidarr."""

    def __init__(self, client: LidarrClient) -> None:
        self._client = client
        self.batch_size = client.settings.batch_size

    def is_configured(self) -> bool:
        return self._client.settings.is_configured

    async def search_artist(self, term: str) -> list[CatalogArtist]:
        raw_artists = await self._client.search_artist(term)
        return [
            CatalogArtist(
                foreign_artist_id=str(raw["foreignArtistId"]),
                name=raw.get("artistName") or "",
                artist_id=raw.get("id"),
            )
            for raw in raw_artists
            if raw.get("foreignArtistId")
        ]

    async def enqueue_download(self, request: CatalogDownloadRequest) -> str:
        artist_id = await self._ensure_artist(request)

        if request.album_title:
            album = await self._find_album(artist_id, request.album_title)
            if album is not None:
                album_id = int(album["id"])
                await self._client.monitor_album([album_id], monitored=True)
                if request.search_now:
                    await self._client.search_album([album_id])
                return f"album:{album_id}"
            logger.info(
                "Album '%s' not known to Lidarr yet, searching artist %s instead",
                request.album_title,
                request.artist.name,
            )

        if request.search_now:
            await self._client.search_artist_albums(artist_id)
        return f"artist:{artist_id}"

    async def _ensure_artist(self, request: CatalogDownloadRequest) -> int:
        """Library id of the requested artist, adding it when missing."""
        if request.artist.artist_id is not None:
            return request.artist.artist_id

        foreign_id = request.artist.foreign_artist_id
        existing = await self._client.get_artist_by_foreign_id(foreign_id)
        if existing:
            return int(existing["id"])

        lookup = await self._client.search_artist(f"lidarr:{foreign_id}", limit=1)
        if not lookup:
            raise ExternalServiceError(
                "lidarr", f"Artist {request.artist.name} ({foreign_id}) vanished from lookup"
            )
        added = await self._client.add_artist(
            lookup[0],
            monitored=True,
            # without a specific album the artist search has to pick up everything
            search_for_missing_albums=request.album_title is None and request.search_now,
        )
        logger.info("Added artist %s to Lidarr (id=%s)", request.artist.name, added.get("id"))
        return int(added["id"])

    async def _find_album(self, artist_id: int, album_title: str) -> dict[str, Any] | None:
        wanted = normalize_title(album_title)
        best: dict[str, Any] | None = None
        best_score = 0.0
        for album in await self._client.get_albums(artist_id):
            score = fuzz.ratio(wanted, normalize_title(album.get("title")))
            if score > best_score:
                best, best_score = album, score
        return best if best_score >= ALBUM_MATCH_THRESHOLD else None

    async def cancel(self, job_id: str) -> bool:
        parsed = _parse_job_id(job_id)
        if parsed is None:
            return False
        kind, target_id = parsed
        key = "albumId" if kind == "album" else "artistId"

        cancelled = False
        for record in await self._client.get_queue():
            if record.get(key) == target_id and record.get("id") is not None:
                cancelled = await self._client.cancel(int(record["id"])) or cancelled
        return cancelled

    async def get_queue(self) -> list[BackendQueueEntry]:
        entries: list[BackendQueueEntry] = []
        for record in await self._client.get_queue():
            if record.get("albumId") is None:
                continue
            size = record.get("size") or 0
            sizeleft = record.get("sizeleft") or 0
            progress = round((size - sizeleft) / size * 100, 1) if size else None
            failed = str(record.get("status", "")).lower() == "failed"
            entries.append(
                BackendQueueEntry(
                    service=DownloadService.CATALOG_MANAGER,
                    service_job_id=f"album:{record['albumId']}",
                    title=_record_title(record),
                    status=QueueItemStatus.FAILED if failed else QueueItemStatus.DOWNLOADING,
                    progress=progress,
                    error=record.get("errorMessage") if failed else None,
                    related_job_ids=[f"artist:{record['artistId']}"]
                    if record.get("artistId") is not None
                    else [],
                    raw_data=record,
                )
            )
        return entries

    async def get_history(self) -> list[BackendQueueEntry]:
        entries: list[BackendQueueEntry] = []
        for record in await self._client.get_history():
            status = LIDARR_HISTORY_MAPPING.get(record.get("eventType", ""))
            if status is None or record.get("albumId") is None:
                continue
            data = record.get("data") or {}
            entries.append(
                BackendQueueEntry(
                    service=DownloadService.CATALOG_MANAGER,
                    service_job_id=f"album:{record['albumId']}",
                    title=_record_title(record),
                    status=status,
                    path=data.get("importedPath"),
                    error=data.get("message") if status == QueueItemStatus.FAILED else None,
                    related_job_ids=[f"artist:{record['artistId']}"]
                    if record.get("artistId") is not None
                    else [],
                    raw_data=record,
                )
            )
        return entries
