"""Install page lookup and expiry enforcement."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from ipa_signer.enums import StoreCategory
from ipa_signer.models.domain import InstallMetadataRecord
from ipa_signer.observability.trace_logging import trace_event
from ipa_signer.services.manifest_builder import build_install_page

if TYPE_CHECKING:
    from ipa_signer.dao.install_record_dao import InstallRecordDAO
    from ipa_signer.services.ephemeral_store import EphemeralStore

logger = logging.getLogger(__name__)


class InstallRecordNotFoundError(Exception):
    """Raised when no install record exists for a suffix."""

    def __init__(self, suffix: str):
        self.suffix = suffix
        super().__init__("Install link expired or not found.")


class ExpiredLinkError(Exception):
    """Raised when an install record exists but its window has passed."""

    def __init__(self, suffix: str):
        self.suffix = suffix
        super().__init__("This install link has expired.")


class InstallService:
    """Serves install pages while their records are live.

    An expired record is deleted together with the artifacts it references
    the first time it is looked up.
    """

    def __init__(self, store: "EphemeralStore", record_dao: "InstallRecordDAO") -> None:
        self.store = store
        self.record_dao = record_dao

    def get_live_record(
        self,
        suffix: str,
        *,
        now: datetime | None = None,
    ) -> InstallMetadataRecord:
        """Return the live record for ``suffix``.

        Raises:
            InstallRecordNotFoundError: No (readable) record exists.
            ExpiredLinkError: The record expired; it is removed as a side effect.
        """
        record = self.record_dao.get(suffix)
        if record is None:
            raise InstallRecordNotFoundError(suffix)

        if record.is_expired(now):
            self.expire(suffix, record)
            raise ExpiredLinkError(suffix)

        return record

    def get_install_page(self, suffix: str) -> str:
        """HTML install page for ``suffix``."""
        record = self.get_live_record(suffix)
        trace_event("install.page", suffix=suffix, bundle_id=record.bundle_id)
        return build_install_page(record)

    def expire(self, suffix: str, record: InstallMetadataRecord | None = None) -> int:
        """Delete the record for ``suffix`` and the artifacts it references.

        Returns:
            Number of files removed.
        """
        record = record or self.record_dao.get(suffix)
        targets = []
        if record is not None:
            if record.signed_file:
                targets.append(self.store.category_dir(StoreCategory.SIGNED) / record.signed_file)
            if record.manifest_file:
                targets.append(
                    self.store.category_dir(StoreCategory.MANIFEST) / record.manifest_file
                )
        removed = self.store.cleanup_now(targets)
        if self.record_dao.delete(suffix):
            removed += 1
        logger.info("Expired install link %s (%d files removed)", suffix, removed)
        return removed
