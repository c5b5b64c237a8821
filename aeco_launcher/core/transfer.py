"""HTTP transfer client for patch server downloads."""

from __future__ import annotations

import json
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

import httpx
import structlog

from aeco_launcher.core.config import ServerConfig
from aeco_launcher.core.errors import FilesystemError, NetworkError, ParseError
from aeco_launcher.core.types import ServerStatus

logger = structlog.get_logger()

# (downloaded bytes, total bytes if the server declared a length)
ProgressCallback = Callable[[int, int | None], None]


def _no_progress(downloaded: int, total: int | None) -> None:
    pass


def declared_length(response: httpx.Response) -> int | None:
    """Get the Content-Length declared by a response, if any.

    A compressed body declares its encoded length while ``iter_bytes``
    yields decoded bytes, so encoded responses report no length.
    """
    if response.headers.get("content-encoding", "identity").lower() != "identity":
        return None
    value = response.headers.get("content-length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None


class TransferClient:
    """Streaming HTTP client used by the patch worker.

    One HTTP client is kept for the worker's whole lifetime. Downloads are
    strictly sequential; each one streams the response body in chunks and
    reports progress after every chunk.
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        temp_dir: Path | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize transfer client.

        Args:
            config: Optional server configuration
            temp_dir: Directory for temporary download files
            transport: Optional httpx transport, mainly for tests
        """
        self.config = config or ServerConfig()
        self.temp_dir = temp_dir
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create sync HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.config.timeout,
                verify=self.config.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def _stream(
        self,
        url: str | httpx.URL,
        sink: Callable[[bytes, int, int | None], None],
        on_progress: ProgressCallback,
    ) -> int:
        """Stream a URL into a sink, reporting progress per chunk.

        Args:
            url: URL to download
            sink: Called with (chunk, offset, declared total) for every chunk
            on_progress: Progress callback

        Returns:
            Number of bytes received

        Raises:
            NetworkError: On transport failure or a non-success status
        """
        downloaded = 0
        try:
            with self.client.stream("GET", url) as response:
                if not response.is_success:
                    raise NetworkError(
                        f"URL request failed: {response.status_code} {response.reason_phrase}",
                        url=str(url),
                        status_code=response.status_code,
                    )

                total = declared_length(response)
                for chunk in response.iter_bytes():
                    if not chunk:
                        continue
                    sink(chunk, downloaded, total)
                    downloaded += len(chunk)
                    on_progress(downloaded, total)
        except httpx.HTTPError as e:
            logger.debug("transfer_failed", url=str(url), error=str(e))
            raise NetworkError(f"Request to {url} failed: {e}", url=str(url)) from e

        logger.debug("transfer_complete", url=str(url), size=downloaded)
        return downloaded

    def fetch_to_memory(
        self, url: str | httpx.URL, on_progress: ProgressCallback | None = None
    ) -> bytearray:
        """Download a URL into memory.

        When the server declares a length the buffer is allocated once up
        front and filled in place.

        Args:
            url: URL to download
            on_progress: Optional progress callback

        Returns:
            Downloaded bytes
        """
        buffer = bytearray()

        def sink(chunk: bytes, offset: int, total: int | None) -> None:
            nonlocal buffer
            if offset == 0 and total:
                buffer = bytearray(total)
            end = offset + len(chunk)
            buffer[offset:end] = chunk

        received = self._stream(url, sink, on_progress or _no_progress)

        # A short body leaves the tail of a pre-sized buffer unfilled
        del buffer[received:]
        return buffer

    def fetch_to_temp_file(
        self, url: str | httpx.URL, on_progress: ProgressCallback | None = None
    ) -> BinaryIO:
        """Download a URL into an anonymous temporary file.

        Args:
            url: URL to download
            on_progress: Optional progress callback

        Returns:
            Temporary file positioned at the start; deleted once closed
        """
        try:
            file = tempfile.TemporaryFile(dir=self.temp_dir)
        except OSError as e:
            raise FilesystemError(f"Could not create temporary file for {url}: {e}") from e

        def sink(chunk: bytes, offset: int, total: int | None) -> None:
            file.write(chunk)

        try:
            self._stream(url, sink, on_progress or _no_progress)
        except BaseException:
            file.close()
            raise

        file.seek(0)
        return file

    def fetch_server_status(self, url: str | httpx.URL) -> ServerStatus:
        """Download and parse the server status document.

        Raises:
            NetworkError: If the status cannot be fetched
            ParseError: If the document is not a known status
        """
        data = self.fetch_to_memory(url)
        try:
            return ServerStatus(json.loads(data))
        except (ValueError, TypeError) as e:
            raise ParseError(f"Malformed server status: {bytes(data[:64])!r}") from e

    def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> TransferClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
