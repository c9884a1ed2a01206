"""Tests for remote package download."""

import asyncio

import httpx
import pytest

from ipa_signer.enums import SigningStage
from ipa_signer.services import package_downloader
from ipa_signer.services.errors import DownloadError
from ipa_signer.services.package_downloader import PackageDownloader


def _downloader(config, handler):
    return PackageDownloader(config, transport=httpx.MockTransport(handler))


async def test_streams_body_to_disk(config, tmp_path):
    body = b"P" * 50_000
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(200, content=body)

    dest = tmp_path / "input.ipa"
    written = await _downloader(config, handler).download("https://cdn.test/app.ipa", dest)

    assert written == len(body)
    assert dest.read_bytes() == body
    assert seen["url"] == "https://cdn.test/app.ipa"


async def test_follows_redirects(config, tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old.ipa":
            return httpx.Response(302, headers={"location": "https://cdn.test/new.ipa"})
        return httpx.Response(200, content=b"moved")

    dest = tmp_path / "input.ipa"
    await _downloader(config, handler).download("https://cdn.test/old.ipa", dest)

    assert dest.read_bytes() == b"moved"


async def test_http_error_status_fails_and_removes_file(config, tmp_path):
    dest = tmp_path / "input.ipa"

    with pytest.raises(DownloadError) as exc_info:
        await _downloader(config, lambda r: httpx.Response(404)).download(
            "https://cdn.test/missing.ipa", dest, suffix="1700000000000_abc123"
        )

    assert exc_info.value.stage == SigningStage.STAGING
    assert exc_info.value.suffix == "1700000000000_abc123"
    assert exc_info.value.message.startswith("Failed to download IPA")
    assert not dest.exists()


async def test_network_error_fails_and_removes_file(config, tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    dest = tmp_path / "input.ipa"
    with pytest.raises(DownloadError) as exc_info:
        await _downloader(config, handler).download("https://cdn.test/app.ipa", dest)

    assert "connection refused" in exc_info.value.message
    assert not dest.exists()


async def test_size_limit(config, tmp_path):
    config.max_upload_bytes = 10
    dest = tmp_path / "input.ipa"

    with pytest.raises(DownloadError):
        await _downloader(config, lambda r: httpx.Response(200, content=b"x" * 100)).download(
            "https://cdn.test/big.ipa", dest
        )

    assert not dest.exists()


@pytest.mark.parametrize("url", ["file:///etc/passwd", "ftp://host/app.ipa", "not a url"])
async def test_rejects_unsupported_schemes(config, tmp_path, url):
    dest = tmp_path / "input.ipa"
    with pytest.raises(DownloadError):
        await _downloader(config, lambda r: httpx.Response(200)).download(url, dest)
    assert not dest.exists()


async def test_chunks_are_written_off_the_event_loop(config, tmp_path, monkeypatch):
    config.download_chunk_bytes = 1000
    body = b"C" * 5000
    offloaded = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(package_downloader.asyncio, "to_thread", recording_to_thread)
    dest = tmp_path / "input.ipa"

    await _downloader(config, lambda r: httpx.Response(200, content=body)).download(
        "https://cdn.test/app.ipa", dest
    )

    assert offloaded == ["write"] * 5
    assert dest.read_bytes() == body
