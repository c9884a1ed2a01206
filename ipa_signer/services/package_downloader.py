"""Remote package download for ``ipa_url`` intake."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from urllib.parse import urlsplit

import httpx

from ipa_signer.config import SignerConfig
from ipa_signer.services.errors import DownloadError

logger = logging.getLogger(__name__)

_SUPPORTED_SCHEMES = ("http", "https")


class PackageDownloader:
    """Streams a remote package to disk over HTTP(S).

    A failed download never leaves a partial file behind.
    """

    def __init__(
        self,
        config: SignerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the downloader.

        Args:
            config: Service configuration (timeouts, chunk size).
            transport: Optional httpx transport (tests inject a mock).
        """
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(self.config.download_timeout_seconds),
            transport=self._transport,
        )

    async def download(self, url: str, dest_path: Path, *, suffix: str | None = None) -> int:
        """Download ``url`` into ``dest_path``.

        Returns:
            Number of bytes written.

        Raises:
            DownloadError: On unsupported scheme, HTTP error status, network
                failure, or a body larger than the upload limit.
        """
        scheme = urlsplit(url).scheme.lower()
        if scheme not in _SUPPORTED_SCHEMES:
            raise DownloadError(
                f"Failed to download IPA: unsupported URL scheme '{scheme or url}'",
                suffix=suffix,
            )

        written = 0
        try:
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    with dest_path.open("wb") as f:
                        async for chunk in response.aiter_bytes(self.config.download_chunk_bytes):
                            written += len(chunk)
                            if written > self.config.max_upload_bytes:
                                raise DownloadError(
                                    "Failed to download IPA: file exceeds the size limit",
                                    suffix=suffix,
                                )
                            await asyncio.to_thread(f.write, chunk)
        except DownloadError:
            dest_path.unlink(missing_ok=True)
            raise
        except (httpx.HTTPError, OSError) as e:
            dest_path.unlink(missing_ok=True)
            raise DownloadError(f"Failed to download IPA: {e}", suffix=suffix) from e

        logger.info("Downloaded %d bytes from %s", written, urlsplit(url).netloc)
        return written
