"""Pydantic domain models.

These models flow between the services of the signing pipeline. Paths are
always absolute and live inside the ephemeral store.
"""

from datetime import UTC, datetime
from pathlib import Path

from ipa_signer.enums import PackageSource, PlistFormat
from ipa_signer.models.base import JsonModel


DEFAULT_BUNDLE_ID = "com.example.app"
DEFAULT_BUNDLE_VERSION = "1.0.0"
DEFAULT_DISPLAY_NAME = "App"


class SigningRequest(JsonModel):
    """One signing operation with its staged inputs.

    The three input paths are single-use: they are removed when the
    request finishes, whatever the outcome.
    """

    suffix: str
    package_path: Path
    certificate_path: Path
    profile_path: Path
    certificate_password: str | None = None
    package_source: PackageSource
    package_url: str | None = None


class SignResult(JsonModel):
    """Terminal success message of one signing invocation."""

    output_path: Path
    output: str = ""


class SignedArtifact(JsonModel):
    """A signed package plus the metadata read from its bundle."""

    path: Path
    bundle_identifier: str = DEFAULT_BUNDLE_ID
    bundle_version: str = DEFAULT_BUNDLE_VERSION
    display_name: str = DEFAULT_DISPLAY_NAME
    plist_format: PlistFormat = PlistFormat.XML


class InstallMetadataRecord(JsonModel):
    """Persisted lookup record behind ``GET /install/{suffix}``.

    ``signed_file`` and ``manifest_file`` are basenames inside their
    category directories; they let the expiry sweep delete published
    artifacts even after a restart.
    """

    display_name: str
    bundle_id: str
    bundle_version: str
    install_link: str
    expires_at: datetime
    signed_file: str | None = None
    manifest_file: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        current = now or datetime.now(UTC)
        return current > self.expires_at


class InstallLinks(JsonModel):
    """Response body of a successful ``POST /sign``."""

    install_link: str
    direct_install_link: str


class PublishedArtifacts(JsonModel):
    """Everything a successful request published, for deferred cleanup."""

    suffix: str
    signed_path: Path
    manifest_path: Path
    record_path: Path
    record: InstallMetadataRecord
    links: InstallLinks
