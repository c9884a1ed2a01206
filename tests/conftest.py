"""Pytest configuration and fixtures."""

import io
import plistlib
import stat
import sys
import zipfile
from pathlib import Path

import pytest

from ipa_signer.config import SignerConfig
from ipa_signer.dao import InstallRecordDAO
from ipa_signer.services.ephemeral_store import EphemeralStore

# Name that is never on PATH, so only the bundled test tool is found.
TEST_TOOL_NAME = "ipa-signer-test-tool"

# Copies the input package (last argument) to the ``-o`` path.
COPYING_TOOL = """#!/bin/sh
out=""
while [ $# -gt 1 ]; do
  case "$1" in
    -o) out="$2"; shift 2 ;;
    -k|-m|-p) shift 2 ;;
    *) shift ;;
  esac
done
cp "$1" "$out"
"""


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend."""
    return "asyncio"


@pytest.fixture
def config(tmp_path: Path) -> SignerConfig:
    """Configuration rooted in a per-test temporary directory."""
    return SignerConfig(
        public_base_url="https://signer.test",
        work_dir=str(tmp_path / "uploads"),
        bundled_tool_dir=str(tmp_path / "bin"),
        signing_tool_name=TEST_TOOL_NAME,
        error_log_file_enabled=False,
        trace_enabled=True,
        max_concurrent_signings=2,
    )


@pytest.fixture
def store(config: SignerConfig) -> EphemeralStore:
    store = EphemeralStore(config)
    store.ensure_directories()
    return store


@pytest.fixture
def record_dao(store: EphemeralStore) -> InstallRecordDAO:
    return InstallRecordDAO(store)


@pytest.fixture
def fake_tool(config: SignerConfig):
    """Factory writing an executable shell script as the bundled signing tool."""
    if sys.platform == "win32":
        pytest.skip("shell-script signing tool requires a POSIX shell")

    def _make(script: str = COPYING_TOOL) -> Path:
        path = config.bundled_tool_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(script, encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


def build_ipa_bytes(
    info: dict | None = None,
    *,
    bundle_dir: str = "Payload/Demo.app",
    fmt: plistlib.PlistFormat = plistlib.FMT_XML,
    raw_info: bytes | None = None,
    include_info: bool = True,
) -> bytes:
    """In-memory package archive with one bundle."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(f"{bundle_dir}/Demo", b"\x00binary")
        if include_info:
            data = raw_info if raw_info is not None else plistlib.dumps(info or {}, fmt=fmt)
            archive.writestr(f"{bundle_dir}/Info.plist", data)
    return buf.getvalue()


@pytest.fixture
def make_ipa(tmp_path: Path):
    """Factory writing a package archive to disk and returning its path."""

    def _make(name: str = "app.ipa", **kwargs) -> Path:
        path = tmp_path / name
        path.write_bytes(build_ipa_bytes(**kwargs))
        return path

    return _make


@pytest.fixture
def ipa_bytes():
    """Factory for in-memory package archives."""
    return build_ipa_bytes
