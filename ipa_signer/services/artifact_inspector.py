"""Artifact inspector: bundle metadata from a signed package.

A package is a zip archive laid out as ``<container>/<Name>.app/...``
(``Payload/Name.app/Info.plist`` in practice). The first entry whose second
path segment ends in ``.app`` names the bundle; archives are expected to
hold exactly one.

The metadata document may be an XML or a binary property list depending
on the build toolchain. Parsing tries XML first and falls back to binary;
only when both parsers reject the bytes is the package rejected.
"""

from __future__ import annotations

import logging
import plistlib
import zipfile
import zlib
from pathlib import Path
from typing import Any

from ipa_signer.enums import InspectionFailureKind, PlistFormat, SigningStage
from ipa_signer.models.domain import (
    DEFAULT_BUNDLE_ID,
    DEFAULT_BUNDLE_VERSION,
    DEFAULT_DISPLAY_NAME,
    SignedArtifact,
)
from ipa_signer.services.errors import SigningPipelineError

logger = logging.getLogger(__name__)

BUNDLE_EXTENSION = ".app"
METADATA_DOCUMENT = "Info.plist"


class InspectionError(SigningPipelineError):
    """Raised when a signed package cannot be inspected.

    Attributes:
        kind: Which inspection step failed.
    """

    default_stage = SigningStage.INSPECTING

    def __init__(
        self,
        kind: InspectionFailureKind,
        message: str,
        *,
        suffix: str | None = None,
    ) -> None:
        super().__init__(message, suffix=suffix)
        self.kind = kind


def find_bundle_dir(names: list[str]) -> str | None:
    """Return ``<container>/<Name>.app`` for the first bundle entry, if any."""
    for name in names:
        parts = name.split("/")
        if len(parts) > 1 and parts[1].endswith(BUNDLE_EXTENSION):
            return f"{parts[0]}/{parts[1]}"
    return None


def parse_metadata_document(data: bytes) -> tuple[dict[str, Any], PlistFormat]:
    """Parse a property list, XML first, binary second.

    Returns:
        The top-level dictionary and the format that parsed it.

    Raises:
        InspectionError: METADATA_PARSE_ERROR when neither format parses.
    """
    try:
        text = data.decode("utf-8")
        parsed: Any = plistlib.loads(text.encode("utf-8"), fmt=plistlib.FMT_XML)
        return _as_mapping(parsed), PlistFormat.XML
    except Exception as xml_error:
        logger.debug("XML property list parse failed, trying binary: %s", xml_error)

    try:
        parsed = plistlib.loads(data, fmt=plistlib.FMT_BINARY)
    except Exception as binary_error:
        raise InspectionError(
            InspectionFailureKind.METADATA_PARSE_ERROR,
            f"Failed to parse {METADATA_DOCUMENT}: {binary_error}",
        ) from binary_error

    if isinstance(parsed, (list, tuple)):
        parsed = parsed[0] if parsed else {}
    return _as_mapping(parsed), PlistFormat.BINARY


def _as_mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _string_field(data: dict[str, Any], *keys: str, default: str) -> str:
    for key in keys:
        value = data.get(key)
        if value:
            return str(value)
    return default


class ArtifactInspector:
    """Extracts bundle identifier, version and display name from a package."""

    def inspect(self, package_path: Path, *, suffix: str | None = None) -> SignedArtifact:
        """Inspect a signed package.

        Args:
            package_path: Path to the signed archive.
            suffix: Request suffix, attached to failures.

        Returns:
            SignedArtifact with extracted (or default) metadata.

        Raises:
            InspectionError: ARCHIVE_UNREADABLE, NO_BUNDLE_FOUND,
                METADATA_MISSING or METADATA_PARSE_ERROR.
        """
        try:
            with zipfile.ZipFile(package_path) as archive:
                bundle_dir = find_bundle_dir(archive.namelist())
                if bundle_dir is None:
                    raise InspectionError(
                        InspectionFailureKind.NO_BUNDLE_FOUND,
                        f"No {BUNDLE_EXTENSION} found in IPA",
                        suffix=suffix,
                    )

                entry = f"{bundle_dir}/{METADATA_DOCUMENT}"
                try:
                    data = archive.read(entry)
                except KeyError:
                    raise InspectionError(
                        InspectionFailureKind.METADATA_MISSING,
                        f"{METADATA_DOCUMENT} not found",
                        suffix=suffix,
                    ) from None
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, OSError) as e:
            raise InspectionError(
                InspectionFailureKind.ARCHIVE_UNREADABLE,
                f"Signed package is not a readable archive: {e}",
                suffix=suffix,
            ) from e

        try:
            info, plist_format = parse_metadata_document(data)
        except InspectionError as e:
            e.suffix = suffix
            raise

        artifact = SignedArtifact(
            path=package_path,
            bundle_identifier=_string_field(info, "CFBundleIdentifier", default=DEFAULT_BUNDLE_ID),
            bundle_version=_string_field(info, "CFBundleVersion", default=DEFAULT_BUNDLE_VERSION),
            display_name=_string_field(
                info, "CFBundleDisplayName", "CFBundleName", default=DEFAULT_DISPLAY_NAME
            ),
            plist_format=plist_format,
        )
        logger.info(
            "Inspected %s: %s %s (%s, %s plist)",
            package_path.name,
            artifact.bundle_identifier,
            artifact.bundle_version,
            artifact.display_name,
            plist_format.value,
        )
        return artifact
