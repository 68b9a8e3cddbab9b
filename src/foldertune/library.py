"""Remote music library: folders and songs served over HTTP.

Expected server endpoints::

    GET /folders?dir=<relative-path>   -> [{"name": ..., "path": ...}, ...]
    GET /list?dir=<relative-path>      -> [{"name": ..., "path": ...}, ...]
    GET /stream?file=<relative-path>   -> audio bytes

An empty ``dir`` addresses the server's base folder.  Payloads that are not
JSON arrays are treated as empty listings.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import requests

from foldertune.errors import ListingError
from foldertune.models import Folder, Song, parse_listing

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class RemoteLibrary:
    """Read-only view on a music collection exposed by a directory server."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session if session is not None else requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def session(self) -> requests.Session:
        return self._session

    def list_folders(self, directory: str = "") -> tuple[Folder, ...]:
        """Return the sub-folders of *directory*."""
        return parse_listing(self._get_json("/folders", directory), Folder)

    def list_songs(self, directory: str = "") -> tuple[Song, ...]:
        """Return the playable songs inside *directory*."""
        return parse_listing(self._get_json("/list", directory), Song)

    def stream_url(self, path: str) -> str:
        """Return the URL that streams the song at *path*."""
        return f"{self._base_url}/stream?{urlencode({'file': path})}"

    # -- internal ------------------------------------------------------------

    def _get_json(self, endpoint: str, directory: str) -> Any:
        url = f"{self._base_url}{endpoint}"
        logger.debug("GET %s dir=%r", url, directory)
        try:
            response = self._session.get(
                url, params={"dir": directory}, timeout=self._timeout
            )
        except requests.exceptions.RequestException as exc:
            logger.error("Request to %s failed: %s", url, exc)
            raise ListingError(str(exc)) from exc

        if not response.ok:
            message = f"HTTP {response.status_code}: {response.reason}"
            logger.error("%s answered %s", url, message)
            raise ListingError(message)

        try:
            return response.json()
        except ValueError as exc:
            logger.error("%s returned invalid JSON: %s", url, exc)
            raise ListingError(f"Invalid JSON from {endpoint}: {exc}") from exc
