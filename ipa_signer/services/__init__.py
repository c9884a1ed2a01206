"""Business logic services package."""

from .artifact_inspector import ArtifactInspector, InspectionError
from .ephemeral_store import EphemeralStore, StagedFiles
from .errors import (
    DownloadError,
    IntakeValidationError,
    PublishError,
    SigningPipelineError,
)
from .install_service import (
    ExpiredLinkError,
    InstallRecordNotFoundError,
    InstallService,
)
from .package_downloader import PackageDownloader
from .signing_executor import SignFailure, SigningExecutor
from .signing_service import SigningIntake, SigningService, UploadedFile

__all__ = [
    "ArtifactInspector",
    "DownloadError",
    "EphemeralStore",
    "ExpiredLinkError",
    "InspectionError",
    "InstallRecordNotFoundError",
    "InstallService",
    "IntakeValidationError",
    "PackageDownloader",
    "PublishError",
    "SignFailure",
    "SigningExecutor",
    "SigningIntake",
    "SigningPipelineError",
    "SigningService",
    "StagedFiles",
    "UploadedFile",
]
