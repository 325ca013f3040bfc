"""Tests for the remote catalog HTTP client."""

import json
import re
from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest
from pytest_httpx import HTTPXMock

from tunesync.config import RemoteSettings
from tunesync.domain.exceptions import RemoteServiceError
from tunesync.infrastructure.integrations.remote_catalog_client import (
    UPLOADED_ARTISTS_BROWSE_ID,
    UPLOADS_SEARCH_PARAMS,
    RemoteCatalogClient,
    parse_artist_names,
    parse_continuation,
    sapisid_authorization,
    sapisid_from_cookie,
)

SESSION = "SID=one; SAPISID=abc123; HSID=two"
SEARCH_URL = re.compile(r"https://music\.youtube\.com/youtubei/v1/search\?.*")
BROWSE_URL = re.compile(r"https://music\.youtube\.com/youtubei/v1/browse\?.*")
UPLOAD_URL = "https://upload.youtube.com/upload/usermusic/http"


def _artist_page(names: list[str], continuation: str | None = None) -> dict:
    shelf: dict = {
        "contents": [
            {
                "musicResponsiveListItemRenderer": {
                    "flexColumns": [
                        {
                            "musicResponsiveListItemFlexColumnRenderer": {
                                "text": {"runs": [{"text": name}]}
                            }
                        }
                    ]
                }
            }
            for name in names
        ]
    }
    if continuation:
        shelf["continuations"] = [{"nextContinuationData": {"continuation": continuation}}]
    return {"contents": {"musicShelfRenderer": shelf}}


@pytest.fixture
async def client() -> AsyncGenerator[RemoteCatalogClient, None]:
    remote = RemoteCatalogClient(RemoteSettings(api_key="test-key"))
    yield remote
    await remote.close()


class TestSapisid:
    """Test cookie parsing and the Authorization header."""

    def test_extracts_sapisid(self) -> None:
        assert sapisid_from_cookie(SESSION) == "abc123"

    def test_falls_back_to_secure_variant(self) -> None:
        assert sapisid_from_cookie("__Secure-3PAPISID=xyz; SID=1") == "xyz"

    def test_missing_sapisid(self) -> None:
        assert sapisid_from_cookie("SID=1") is None
        assert sapisid_from_cookie("") is None

    def test_authorization_value(self) -> None:
        header = sapisid_authorization("abc123", "https://music.youtube.com", 1700000000)

        assert header == "SAPISIDHASH 1700000000_597a8411c1c01f9c14cea84b6ec377b76d93be6e"


class TestParsers:
    """Test browse payload parsing."""

    def test_artist_names_and_continuation(self) -> None:
        page = _artist_page(["Muse", "Radiohead"], continuation="next-1")

        assert parse_artist_names(page) == ["Muse", "Radiohead"]
        assert parse_continuation(page) == "next-1"

    def test_last_page_has_no_continuation(self) -> None:
        assert parse_continuation(_artist_page(["Muse"])) is None


class TestSearch:
    """Test the uploads search call."""

    async def test_search_posts_query_with_auth(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(method="POST", url=SEARCH_URL, json={"contents": {}})

        payload = await client.search("Muse Origin Hysteria", SESSION)

        assert payload == {"contents": {}}
        request = httpx_mock.get_request()
        assert request is not None
        body = json.loads(request.content)
        assert body["query"] == "Muse Origin Hysteria"
        assert body["params"] == UPLOADS_SEARCH_PARAMS
        assert request.url.params["key"] == "test-key"
        assert request.url.params["alt"] == "json"
        assert request.headers["Cookie"] == SESSION
        assert request.headers["Authorization"].startswith("SAPISIDHASH ")

    async def test_error_status_raises_remote_service_error(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(method="POST", url=SEARCH_URL, status_code=503)

        with pytest.raises(RemoteServiceError) as exc_info:
            await client.search("anything", SESSION)

        assert exc_info.value.http_status == 503

    async def test_non_object_payload_rejected(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(method="POST", url=SEARCH_URL, json=["not", "a", "dict"])

        with pytest.raises(RemoteServiceError):
            await client.search("anything", SESSION)

    async def test_transport_error_propagates(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_exception(httpx.ConnectError("offline"), url=SEARCH_URL)

        with pytest.raises(httpx.ConnectError):
            await client.search("anything", SESSION)


class TestUploadedArtists:
    """Test paging through the uploaded-artists shelf."""

    async def test_follows_continuations(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            method="POST", url=BROWSE_URL, json=_artist_page(["Muse"], continuation="c1")
        )
        httpx_mock.add_response(
            method="POST", url=BROWSE_URL, json=_artist_page(["Radiohead"], continuation="c2")
        )
        httpx_mock.add_response(method="POST", url=BROWSE_URL, json=_artist_page(["Björk"]))

        artists = await client.list_uploaded_artists(SESSION)

        assert artists == ["Muse", "Radiohead", "Björk"]
        requests = httpx_mock.get_requests()
        assert json.loads(requests[0].content)["browseId"] == UPLOADED_ARTISTS_BROWSE_ID
        assert requests[1].url.params["ctoken"] == "c1"
        assert requests[2].url.params["continuation"] == "c2"


class TestAuthentication:
    """Test session validation."""

    async def test_empty_session_is_not_authenticated(self, client: RemoteCatalogClient) -> None:
        assert await client.check_authenticated("") is False

    async def test_valid_session(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(method="POST", url=BROWSE_URL, json=_artist_page([]))

        assert await client.check_authenticated(SESSION) is True

    async def test_rejected_session(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(method="POST", url=BROWSE_URL, status_code=401)

        assert await client.check_authenticated(SESSION) is False


class TestUpload:
    """Test the two-step resumable upload."""

    async def test_start_then_finalize(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock, tmp_path: Path
    ) -> None:
        track = tmp_path / "song.mp3"
        track.write_bytes(b"x" * 1000)
        httpx_mock.add_response(
            method="POST",
            url=UPLOAD_URL,
            headers={"X-Goog-Upload-URL": "https://upload.youtube.com/session/42"},
        )
        httpx_mock.add_response(
            method="POST", url="https://upload.youtube.com/session/42", status_code=200
        )

        assert await client.upload_file(str(track), SESSION) is None

        start, finalize = httpx_mock.get_requests()
        assert start.headers["X-Goog-Upload-Command"] == "start"
        assert start.headers["X-Goog-Upload-Header-Content-Length"] == "1000"
        assert start.content == b"filename=song.mp3"
        assert finalize.headers["X-Goog-Upload-Command"] == "upload, finalize"
        assert finalize.headers["X-Goog-Upload-Offset"] == "0"

    async def test_start_failure_returns_error_string(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock, tmp_path: Path
    ) -> None:
        track = tmp_path / "song.mp3"
        track.write_bytes(b"x")
        httpx_mock.add_response(method="POST", url=UPLOAD_URL, status_code=403)

        assert await client.upload_file(str(track), SESSION) == "Upload start failed with HTTP 403"

    async def test_missing_upload_url(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock, tmp_path: Path
    ) -> None:
        track = tmp_path / "song.mp3"
        track.write_bytes(b"x")
        httpx_mock.add_response(method="POST", url=UPLOAD_URL)

        error = await client.upload_file(str(track), SESSION)

        assert error == "Upload start response did not contain an upload URL"

    async def test_finalize_failure(
        self, client: RemoteCatalogClient, httpx_mock: HTTPXMock, tmp_path: Path
    ) -> None:
        track = tmp_path / "song.mp3"
        track.write_bytes(b"x")
        httpx_mock.add_response(
            method="POST",
            url=UPLOAD_URL,
            headers={"X-Goog-Upload-URL": "https://upload.youtube.com/session/42"},
        )
        httpx_mock.add_response(
            method="POST", url="https://upload.youtube.com/session/42", status_code=500
        )

        assert await client.upload_file(str(track), SESSION) == "Upload failed with HTTP 500"

    async def test_missing_file_never_hits_network(
        self, client: RemoteCatalogClient, tmp_path: Path
    ) -> None:
        error = await client.upload_file(str(tmp_path / "gone.mp3"), SESSION)

        assert error is not None
        assert error.startswith("Could not read file")


class TestNetworkAvailability:
    """Test connectivity detection."""

    async def test_online(self, client: RemoteCatalogClient, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            method="GET", url="https://www.google.com/generate_204", status_code=204
        )

        assert await client.is_network_available() is True

    async def test_offline(self, client: RemoteCatalogClient, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("no route"))

        assert await client.is_network_available() is False
