"""StrEnum definitions for type-safe constants."""

from enum import StrEnum


class StoreCategory(StrEnum):
    """Working directories under the ephemeral store root.

    Values are the on-disk directory names.
    """

    CERTIFICATE = "p12"
    PROFILE = "mp"
    TEMP = "temp"
    SIGNED = "signed"
    MANIFEST = "plist"


class SigningStage(StrEnum):
    """Stages of a signing request, in execution order."""

    RECEIVED = "received"
    VALIDATING = "validating"
    STAGING = "staging"
    SIGNING = "signing"
    INSPECTING = "inspecting"
    PUBLISHING = "publishing"
    RESPONDED = "responded"
    CLEANUP_SCHEDULED = "cleanup_scheduled"
    FAILED = "failed"


class PackageSource(StrEnum):
    """Where the application package of a request came from."""

    UPLOAD = "upload"
    REMOTE_URL = "remote_url"


class SignFailureKind(StrEnum):
    """Ways the external signing operation can fail."""

    TOOL_NOT_FOUND = "tool_not_found"
    PROCESS_ERROR = "process_error"
    NON_ZERO_EXIT = "non_zero_exit"
    CHANNEL_ERROR = "channel_error"
    TIMEOUT = "timeout"


class InspectionFailureKind(StrEnum):
    """Ways inspecting a signed package can fail."""

    ARCHIVE_UNREADABLE = "archive_unreadable"
    NO_BUNDLE_FOUND = "no_bundle_found"
    METADATA_MISSING = "metadata_missing"
    METADATA_PARSE_ERROR = "metadata_parse_error"


class PlistFormat(StrEnum):
    """Serialization of an embedded metadata document."""

    XML = "xml"
    BINARY = "binary"
