"""Base exception for failures of the signing pipeline."""

from ipa_signer.enums import SigningStage


class SigningPipelineError(Exception):
    """Raised when a signing request cannot complete.

    Attributes:
        stage: Pipeline stage the failure happened in.
        suffix: Suffix of the failing request, once one was allocated.
    """

    default_stage = SigningStage.FAILED

    def __init__(
        self,
        message: str,
        *,
        stage: SigningStage | None = None,
        suffix: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.suffix = suffix


class IntakeValidationError(SigningPipelineError):
    """Raised when required multipart parts are missing or malformed."""

    default_stage = SigningStage.VALIDATING


class DownloadError(SigningPipelineError):
    """Raised when a remote package cannot be fetched."""

    default_stage = SigningStage.STAGING


class PublishError(SigningPipelineError):
    """Raised when the manifest or install record cannot be written."""

    default_stage = SigningStage.PUBLISHING
