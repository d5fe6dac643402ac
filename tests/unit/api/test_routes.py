"""Tests for the HTTP surface: owner header, error mapping and a full round trip."""

from collections.abc import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from playbridge.api.app import create_app
from playbridge.application.services import ImportService, JobLockRegistry, SongMatcher
from playbridge.infrastructure.providers import CatalogAdapterRegistry

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def app(settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


class TestBasics:
    """Health, owner header and exception mapping."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_owner_header_required(self, client: TestClient) -> None:
        response = client.get("/api/playlists/import")
        assert response.status_code == 401

    def test_validate_reports_problems_as_data(self, client: TestClient) -> None:
        response = client.post("/api/playlists/import/validate", json={"content": ""})

        assert response.status_code == 200
        assert response.json()["valid"] is False
        assert response.json()["errors"] == ["Playlist content is empty"]

    def test_no_catalog_is_service_unavailable(self, client: TestClient) -> None:
        """Test an import with no usable catalog adapter answers 503 and creates nothing."""
        response = client.post(
            "/api/playlists/import",
            json={"content": "Oasis - Wonderwall", "format": "m3u", "playlist_name": "Mix"},
            headers=HEADERS,
        )

        assert response.status_code == 503
        assert response.json()["error_type"] == "ConfigurationError"
        assert client.get("/api/playlists/import", headers=HEADERS).json() == []

    def test_unknown_job_is_not_found(self, client: TestClient) -> None:
        response = client.get("/api/playlists/downloads/nope", headers=HEADERS)
        assert response.status_code == 404

    def test_download_batch_without_backends(self, client: TestClient) -> None:
        response = client.post(
            "/api/playlists/downloads/batch",
            json={"songs": [{"title": "Wonderwall", "artist": "Oasis"}]},
            headers=HEADERS,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "failed"
        assert body["download_queue"][0]["error"] == "No download back-end is configured"


class TestImportExportRoundTrip:
    """Import into a playlist, then export it again."""

    def test_round_trip(self, app: FastAPI, client: TestClient, fake_adapter_cls, make_catalog_song) -> None:
        adapter = fake_adapter_cls(
            search_results={"wonderwall": [make_catalog_song("nd-1", "Wonderwall", "Oasis")]}
        )
        app.state.import_service = ImportService(
            app.state.db.session_scope,
            CatalogAdapterRegistry(navidrome_adapter=adapter),
            SongMatcher(),
            JobLockRegistry(),
        )

        started = client.post(
            "/api/playlists/import",
            json={"content": "Oasis - Wonderwall", "format": "m3u", "playlist_name": "Nineties"},
            headers=HEADERS,
        )
        assert started.status_code == 202
        job = started.json()
        assert job["status"] == "completed"
        assert job["added_songs"] == 1

        exported = client.post(
            "/api/playlists/export",
            json={"playlist_id": job["playlist_id"], "format": "m3u"},
            headers=HEADERS,
        )
        assert exported.status_code == 201

        download = client.get(f"/api/playlists/export/{exported.json()['id']}/download", headers=HEADERS)
        assert download.status_code == 200
        assert download.headers["content-type"].startswith("audio/x-mpegurl")
        assert "Oasis - Wonderwall" in download.text

        other_owner = client.get(
            f"/api/playlists/export/{exported.json()['id']}", headers={"X-User-Id": "user-2"}
        )
        assert other_owner.status_code == 404
