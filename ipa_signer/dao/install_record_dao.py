"""Install metadata record data access operations."""

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from ipa_signer.dao.base import BaseDAO
from ipa_signer.enums import StoreCategory
from ipa_signer.models.domain import InstallMetadataRecord
from ipa_signer.services.resource_namer import is_valid_suffix

logger = logging.getLogger(__name__)


class InstallRecordDAO(BaseDAO[InstallMetadataRecord]):
    """Data access object for install metadata records.

    Records live at ``<work_dir>/temp/<suffix>.json``. Suffixes are checked
    against the suffix grammar before a path is built, so an id taken from
    a URL can never escape the temp directory.
    """

    def path_for(self, suffix: str) -> Path:
        """Record path for ``suffix``.

        Raises:
            ValueError: If ``suffix`` is not a well-formed request suffix.
        """
        if not is_valid_suffix(suffix):
            raise ValueError(f"Invalid request suffix: {suffix!r}")
        return self._store.record_path(suffix)

    def create(self, suffix: str, record: InstallMetadataRecord) -> Path:
        """Persist ``record`` atomically.

        Args:
            suffix: Request suffix keying the record.
            record: Metadata to store.

        Returns:
            Path of the written record file.
        """
        path = self.path_for(suffix)
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_text(record.to_json(), encoding="utf-8")
        os.replace(tmp_path, path)
        return path

    def get(self, suffix: str) -> InstallMetadataRecord | None:
        """Load the record for ``suffix``.

        Returns:
            The record, or None if it is absent, unreadable or malformed.
        """
        try:
            path = self.path_for(suffix)
        except ValueError:
            return None

        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            return InstallMetadataRecord.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Discarding malformed install record %s: %s", path.name, e)
            return None

    def delete(self, suffix: str) -> bool:
        """Remove the record for ``suffix``; True if a file was deleted."""
        try:
            path = self.path_for(suffix)
        except ValueError:
            return False
        return self._store.cleanup_now([path]) > 0

    def list_suffixes(self) -> list[str]:
        """Suffixes of all records currently on disk."""
        directory = self._store.category_dir(StoreCategory.TEMP)
        if not directory.is_dir():
            return []
        return sorted(
            p.stem
            for p in directory.glob("*.json")
            if is_valid_suffix(p.stem)
        )
