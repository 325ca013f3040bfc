"""HTTP client for the remote music library (YouTube-Music-style internal JSON API)."""

import asyncio
import hashlib
import logging
import time
from collections.abc import AsyncIterator
from http.cookies import CookieError, SimpleCookie
from pathlib import Path
from typing import Any

import httpx

from tunesync.config.settings import RemoteSettings
from tunesync.domain.exceptions import RemoteServiceError
from tunesync.domain.ports import IRemoteCatalogClient

logger = logging.getLogger(__name__)

CLIENT_CONTEXT: dict[str, Any] = {
    "context": {
        "client": {
            "clientName": "WEB_REMIX",
            "clientVersion": "1.20240101.01.00",
            "hl": "en",
        },
        "user": {},
    }
}
# Search filter limiting results to the user's own uploads.
UPLOADS_SEARCH_PARAMS = "agIYAw%3D%3D"
UPLOADED_ARTISTS_BROWSE_ID = "FEmusic_library_privately_owned_artists"
UPLOAD_CHUNK_SIZE = 256 * 1024
MAX_BROWSE_PAGES = 200


def sapisid_from_cookie(cookie: str) -> str | None:
    """Extract the SAPISID value (or its __Secure-3PAPISID twin) from a cookie header."""
    jar = SimpleCookie()
    try:
        jar.load(cookie)
    except CookieError:
        return None
    for name in ("SAPISID", "__Secure-3PAPISID"):
        if name in jar:
            return jar[name].value
    return None


def sapisid_authorization(sapisid: str, origin: str, timestamp: int | None = None) -> str:
    """Build the "SAPISIDHASH <ts>_<sha1>" Authorization header value."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hashlib.sha1(f"{ts} {sapisid} {origin}".encode()).hexdigest()
    return f"SAPISIDHASH {ts}_{digest}"


def _first_run_text(node: Any) -> str | None:
    if isinstance(node, dict):
        runs = node.get("runs")
        if isinstance(runs, list) and runs and isinstance(runs[0], dict):
            text = runs[0].get("text")
            if isinstance(text, str):
                return text
        for value in node.values():
            found = _first_run_text(value)
            if found:
                return found
    elif isinstance(node, list):
        for value in node:
            found = _first_run_text(value)
            if found:
                return found
    return None


def _iter_key(node: Any, key: str) -> list[Any]:
    """All values stored under ``key`` anywhere in a JSON tree."""
    found: list[Any] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            for k, v in current.items():
                if k == key:
                    found.append(v)
                else:
                    stack.append(v)
        elif isinstance(current, list):
            stack.extend(reversed(current))
    return found


def parse_artist_names(payload: dict[str, Any]) -> list[str]:
    """Artist names from a browse page of the uploaded-artists shelf."""
    names: list[str] = []
    for item in _iter_key(payload, "musicResponsiveListItemRenderer"):
        columns = item.get("flexColumns") if isinstance(item, dict) else None
        name = _first_run_text(columns[0]) if columns else None
        if name:
            names.append(name)
    return names


def parse_continuation(payload: dict[str, Any]) -> str | None:
    for data in _iter_key(payload, "nextContinuationData"):
        if isinstance(data, dict) and data.get("continuation"):
            return str(data["continuation"])
    return None


class RemoteCatalogClient(IRemoteCatalogClient):
    """httpx implementation of the remote catalog port.

    Every call takes the session cookie explicitly; the client holds no auth state.
    """

    def __init__(self, settings: RemoteSettings) -> None:
        """Initialize remote client.

        Args:
            settings: Remote endpoint configuration
        """
        self.settings = settings
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        async with self._lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=self.settings.timeout,
                    follow_redirects=True,
                    headers={
                        "User-Agent": (
                            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
                            "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
                        ),
                        "Accept": "*/*",
                        "Origin": self.settings.origin,
                    },
                )
            return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RemoteCatalogClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _auth_headers(self, session: str) -> dict[str, str]:
        headers = {
            "Cookie": session,
            "X-Goog-AuthUser": "0",
            "X-Origin": self.settings.origin,
        }
        sapisid = sapisid_from_cookie(session)
        if sapisid:
            headers["Authorization"] = sapisid_authorization(sapisid, self.settings.origin)
        return headers

    async def _post_json(
        self,
        endpoint: str,
        body: dict[str, Any],
        session: str,
        extra_params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST to an internal API endpoint and decode the JSON response.

        Raises:
            httpx.HTTPError: On transport errors
            RemoteServiceError: On non-2xx responses or a non-object body
        """
        client = await self._get_client()
        params = {"alt": "json"}
        if self.settings.api_key:
            params["key"] = self.settings.api_key
        if extra_params:
            params.update(extra_params)

        response = await client.post(
            self.settings.base_url.rstrip("/") + "/" + endpoint,
            params=params,
            json=body,
            headers=self._auth_headers(session),
        )
        if response.status_code >= 400:
            raise RemoteServiceError(
                f"{endpoint} failed with HTTP {response.status_code}",
                http_status=response.status_code,
            )
        data = response.json()
        if not isinstance(data, dict):
            raise RemoteServiceError(f"{endpoint} returned an unexpected payload")
        return data

    async def check_authenticated(self, session: str) -> bool:
        """A browse of the uploads library only succeeds with a valid session."""
        if not session:
            return False
        try:
            await self._post_json(
                "browse", {**CLIENT_CONTEXT, "browseId": UPLOADED_ARTISTS_BROWSE_ID}, session
            )
        except (httpx.HTTPError, RemoteServiceError, ValueError) as e:
            logger.info("Remote session not authenticated: %s", e)
            return False
        return True

    async def search(self, query: str, session: str) -> dict[str, Any]:
        """Search the user's uploads.

        Raises:
            httpx.HTTPError: On transport errors
            RemoteServiceError: On error responses
        """
        body = {**CLIENT_CONTEXT, "query": query, "params": UPLOADS_SEARCH_PARAMS}
        return await self._post_json("search", body, session)

    async def list_uploaded_artists(self, session: str) -> list[str]:
        """Page through the uploaded-artists shelf and collect every artist name.

        Raises:
            httpx.HTTPError: On transport errors
            RemoteServiceError: On error responses
        """
        payload = await self._post_json(
            "browse", {**CLIENT_CONTEXT, "browseId": UPLOADED_ARTISTS_BROWSE_ID}, session
        )
        artists = parse_artist_names(payload)
        continuation = parse_continuation(payload)
        pages = 1
        while continuation and pages < MAX_BROWSE_PAGES:
            payload = await self._post_json(
                "browse",
                CLIENT_CONTEXT,
                session,
                extra_params={
                    "ctoken": continuation,
                    "continuation": continuation,
                    "type": "next",
                },
            )
            artists.extend(parse_artist_names(payload))
            continuation = parse_continuation(payload)
            pages += 1
        return artists

    async def upload_file(self, path: str, session: str, throttle: int = 0) -> str | None:
        """Upload a file with the two-step resumable protocol.

        Returns:
            None on success, otherwise a human-readable error string
        """
        file_path = Path(path)
        try:
            size = file_path.stat().st_size
            client = await self._get_client()
            headers = self._auth_headers(session)

            start = await client.post(
                self.settings.upload_url,
                content=f"filename={file_path.name}".encode(),
                headers={
                    **headers,
                    "Content-Type": "application/x-www-form-urlencoded;charset=utf-8",
                    "X-Goog-Upload-Command": "start",
                    "X-Goog-Upload-Header-Content-Length": str(size),
                    "X-Goog-Upload-Protocol": "resumable",
                },
            )
            if start.status_code >= 400:
                return f"Upload start failed with HTTP {start.status_code}"
            upload_url = start.headers.get("X-Goog-Upload-URL")
            if not upload_url:
                return "Upload start response did not contain an upload URL"

            response = await client.post(
                upload_url,
                content=self._read_chunks(file_path, throttle),
                headers={
                    **headers,
                    "Content-Type": "application/x-www-form-urlencoded;charset=utf-8",
                    "Content-Length": str(size),
                    "X-Goog-Upload-Command": "upload, finalize",
                    "X-Goog-Upload-Offset": "0",
                },
            )
        except httpx.HTTPError as e:
            return f"Upload request failed: {e}"
        except OSError as e:
            return f"Could not read file: {e}"

        if response.status_code >= 400:
            return f"Upload failed with HTTP {response.status_code}"
        return None

    async def _read_chunks(self, file_path: Path, throttle: int) -> AsyncIterator[bytes]:
        """Yield the file in chunks, pacing to ``throttle`` bytes/second when set."""
        with open(file_path, "rb") as f:
            while True:
                chunk = await asyncio.to_thread(f.read, UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
                if throttle > 0:
                    await asyncio.sleep(len(chunk) / throttle)

    async def is_network_available(self) -> bool:
        """Request the connectivity URL; any transport error means offline."""
        try:
            client = await self._get_client()
            response = await client.get(self.settings.connectivity_url, timeout=5.0)
        except httpx.HTTPError:
            return False
        return response.status_code < 500
