"""Signing request orchestration.

Drives one request through its stages, strictly in order:

    received -> validating -> staging -> signing -> inspecting
             -> publishing -> responded -> cleanup_scheduled
                                  (any stage) -> failed

Staged inputs (package, certificate, profile) are removed when the request
ends, whatever the outcome. Published outputs (signed package, manifest,
install record) outlive the request until the retention window passes.
An install record is written last, so a failed request never leaves one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from ipa_signer.config import SignerConfig
from ipa_signer.enums import PackageSource, SigningStage, StoreCategory
from ipa_signer.models.domain import (
    InstallLinks,
    InstallMetadataRecord,
    PublishedArtifacts,
    SignedArtifact,
    SigningRequest,
)
from ipa_signer.observability.error_log_file import log_stage_error
from ipa_signer.observability.health_state import inflight_dec, inflight_inc, mark_progress
from ipa_signer.observability.trace_context import set_stage, set_trace
from ipa_signer.observability.trace_logging import trace_event
from ipa_signer.services.errors import (
    IntakeValidationError,
    PublishError,
    SigningPipelineError,
)
from ipa_signer.services.manifest_builder import build_deep_link, build_manifest
from ipa_signer.services.resource_namer import new_suffix

if TYPE_CHECKING:
    from ipa_signer.dao.install_record_dao import InstallRecordDAO
    from ipa_signer.services.artifact_inspector import ArtifactInspector
    from ipa_signer.services.ephemeral_store import EphemeralStore, StagedFiles
    from ipa_signer.services.package_downloader import PackageDownloader
    from ipa_signer.services.signing_executor import SigningExecutor

logger = logging.getLogger(__name__)

_COPY_CHUNK_BYTES = 1024 * 1024


@dataclass
class UploadedFile:
    """One multipart file part.

    Attributes:
        filename: Client-supplied file name (only its extension is trusted).
        file: Readable binary stream with the part's content.
    """

    filename: str
    file: BinaryIO


@dataclass
class SigningIntake:
    """Raw inputs of ``POST /sign`` after multipart parsing."""

    ipa: UploadedFile | None = None
    p12: UploadedFile | None = None
    mobileprovision: UploadedFile | None = None
    ipa_url: str | None = None
    p12_password: str | None = None

    @property
    def package_source(self) -> PackageSource:
        """Uploaded package wins when both an upload and a URL are given."""
        if self.ipa is None and self.ipa_url:
            return PackageSource.REMOTE_URL
        return PackageSource.UPLOAD


def _copy_stream(src: BinaryIO, dest: Path, limit: int) -> int:
    """Copy ``src`` to ``dest``; raises ValueError past ``limit`` bytes."""
    total = 0
    if hasattr(src, "seek"):
        src.seek(0)
    with dest.open("wb") as out:
        while chunk := src.read(_COPY_CHUNK_BYTES):
            total += len(chunk)
            if total > limit:
                raise ValueError(f"upload exceeds {limit} bytes")
            out.write(chunk)
    return total


class SigningService:
    """Top-level coordinator of signing requests.

    All collaborators are injected; the service holds no per-request state.
    """

    def __init__(
        self,
        config: SignerConfig,
        store: "EphemeralStore",
        executor: "SigningExecutor",
        inspector: "ArtifactInspector",
        downloader: "PackageDownloader",
        record_dao: "InstallRecordDAO",
    ) -> None:
        self.config = config
        self.store = store
        self.executor = executor
        self.inspector = inspector
        self.downloader = downloader
        self.record_dao = record_dao

    # ---------------------------
    # Public API
    # ---------------------------

    async def sign(self, intake: SigningIntake) -> PublishedArtifacts:
        """Run a signing request up to (and including) publishing.

        The caller sends ``result.links`` to the client and only then calls
        :meth:`schedule_cleanup`, so the client never waits on cleanup.

        Raises:
            IntakeValidationError: Missing or malformed parts (HTTP 400).
            SigningPipelineError: Any later stage failure (HTTP 500).
        """
        set_trace(suffix=None, stage=SigningStage.RECEIVED)
        trace_event("sign.received", has_upload=intake.ipa is not None, has_url=bool(intake.ipa_url))
        logger.info("Sign request received")

        suffix: str | None = None
        try:
            self._enter(SigningStage.VALIDATING)
            self.validate(intake)

            suffix = new_suffix()
            set_trace(suffix=suffix)
            inflight_inc(suffix)

            with self.store.staging() as staged:
                self._enter(SigningStage.STAGING)
                request = await self._stage(intake, suffix, staged)

                self._enter(SigningStage.SIGNING)
                result = await self.executor.sign(
                    certificate_path=request.certificate_path,
                    profile_path=request.profile_path,
                    package_path=request.package_path,
                    output_path=self.store.allocate(StoreCategory.SIGNED, suffix),
                    certificate_password=request.certificate_password,
                    suffix=suffix,
                )
                logger.info("Signed IPA created: %s", result.output_path)

                self._enter(SigningStage.INSPECTING)
                artifact = await asyncio.to_thread(
                    self.inspector.inspect, result.output_path, suffix=suffix
                )

                self._enter(SigningStage.PUBLISHING)
                published = await self._publish(artifact, suffix)
        except SigningPipelineError as e:
            e.suffix = e.suffix or suffix
            self._fail(e.stage, e, suffix)
            raise
        except Exception as e:
            logger.exception("Unexpected signing error (suffix=%s)", suffix)
            self._fail(SigningStage.FAILED, e, suffix)
            raise
        finally:
            if suffix is not None:
                inflight_dec(suffix)

        self._enter(SigningStage.RESPONDED)
        return published

    async def schedule_cleanup(self, published: PublishedArtifacts) -> None:
        """Register deletion of everything ``published`` at its expiry time."""
        ttl = (published.record.expires_at - datetime.now(UTC)).total_seconds()
        self.store.schedule_expiry(
            [published.signed_path, published.manifest_path, published.record_path],
            ttl,
        )
        set_trace(suffix=published.suffix, stage=SigningStage.CLEANUP_SCHEDULED)
        trace_event("sign.stage", stage=SigningStage.CLEANUP_SCHEDULED, ttl_seconds=round(ttl))

    def validate(self, intake: SigningIntake) -> None:
        """Check required parts and file types.

        Raises:
            IntakeValidationError: On the first problem found.
        """
        if intake.p12 is None or intake.mobileprovision is None:
            raise IntakeValidationError("P12 and MobileProvision required")
        if intake.ipa is None and not (intake.ipa_url or "").strip():
            raise IntakeValidationError("IPA file or ipa_url required")

        for field_name, upload in (
            ("ipa", intake.ipa),
            ("p12", intake.p12),
            ("mobileprovision", intake.mobileprovision),
        ):
            if upload is None:
                continue
            expected = self.config.allowed_upload_extensions.get(field_name)
            if expected and not (upload.filename or "").lower().endswith(expected):
                raise IntakeValidationError(
                    f"Invalid file type for '{field_name}': expected {expected}"
                )

        if intake.ipa is not None and intake.ipa_url:
            logger.warning("Both ipa upload and ipa_url given; using the uploaded file")
            trace_event("sign.intake.both_sources", chosen=PackageSource.UPLOAD)

    # ---------------------------
    # Stages
    # ---------------------------

    async def _stage(
        self,
        intake: SigningIntake,
        suffix: str,
        staged: "StagedFiles",
    ) -> SigningRequest:
        """Put the package, certificate and profile at their suffix paths."""
        source = intake.package_source
        package_path = staged.add(self.store.allocate(StoreCategory.TEMP, suffix))

        if source is PackageSource.REMOTE_URL:
            await self.downloader.download(intake.ipa_url.strip(), package_path, suffix=suffix)
        else:
            await self._store_upload(intake.ipa, package_path, "ipa")

        certificate_path = staged.add(self.store.allocate(StoreCategory.CERTIFICATE, suffix))
        await self._store_upload(intake.p12, certificate_path, "p12")

        profile_path = staged.add(self.store.allocate(StoreCategory.PROFILE, suffix))
        await self._store_upload(intake.mobileprovision, profile_path, "mobileprovision")

        password = (intake.p12_password or "").strip() or None
        return SigningRequest(
            suffix=suffix,
            package_path=package_path,
            certificate_path=certificate_path,
            profile_path=profile_path,
            certificate_password=password,
            package_source=source,
            package_url=intake.ipa_url if source is PackageSource.REMOTE_URL else None,
        )

    async def _store_upload(self, upload: UploadedFile, dest: Path, field_name: str) -> None:
        try:
            size = await asyncio.to_thread(
                _copy_stream, upload.file, dest, self.config.max_upload_bytes
            )
        except ValueError as e:
            raise IntakeValidationError(
                f"'{field_name}' is too large: {e}", stage=SigningStage.STAGING
            ) from e
        logger.debug("Staged %s (%d bytes) at %s", field_name, size, dest.name)

    async def _publish(self, artifact: SignedArtifact, suffix: str) -> PublishedArtifacts:
        """Write the manifest and the install record; build the links."""
        base = self.config.public_base_url
        signed_path = artifact.path
        ipa_url = f"{base}{StoreCategory.SIGNED.value}/{signed_path.name}"

        manifest = build_manifest(
            ipa_url,
            artifact.bundle_identifier,
            artifact.bundle_version,
            artifact.display_name,
        )
        manifest_path = self.store.allocate(
            StoreCategory.MANIFEST, suffix, name=artifact.display_name
        )
        manifest_url = f"{base}{StoreCategory.MANIFEST.value}/{manifest_path.name}"
        direct_install_link = build_deep_link(manifest_url)
        install_page_url = f"{base}install/{suffix}"

        record = InstallMetadataRecord(
            display_name=artifact.display_name,
            bundle_id=artifact.bundle_identifier,
            bundle_version=artifact.bundle_version,
            install_link=direct_install_link,
            expires_at=datetime.now(UTC) + timedelta(seconds=self.config.retention_seconds),
            signed_file=signed_path.name,
            manifest_file=manifest_path.name,
        )

        try:
            await asyncio.to_thread(manifest_path.write_text, manifest, encoding="utf-8")
            record_path = await asyncio.to_thread(self.record_dao.create, suffix, record)
        except OSError as e:
            self.store.cleanup_now([manifest_path])
            raise PublishError(f"Failed to publish install files: {e}", suffix=suffix) from e

        trace_event(
            "sign.published",
            bundle_id=record.bundle_id,
            bundle_version=record.bundle_version,
            manifest_file=manifest_path.name,
            expires_at=record.expires_at.isoformat(),
        )
        return PublishedArtifacts(
            suffix=suffix,
            signed_path=signed_path,
            manifest_path=manifest_path,
            record_path=record_path,
            record=record,
            links=InstallLinks(
                install_link=install_page_url,
                direct_install_link=direct_install_link,
            ),
        )

    # ---------------------------
    # Stage bookkeeping
    # ---------------------------

    def _enter(self, stage: SigningStage) -> None:
        set_stage(stage)
        mark_progress(stage)
        trace_event("sign.stage", stage=stage)

    def _fail(self, stage: SigningStage, error: Exception, suffix: str | None) -> None:
        set_stage(SigningStage.FAILED)
        log_stage_error(stage.value, error, suffix=suffix)
        trace_event(
            "sign.error",
            failed_stage=stage,
            error_type=type(error).__name__,
            error=str(error),
        )
