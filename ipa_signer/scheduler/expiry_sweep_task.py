"""Expiry sweep task for scheduled execution.

Runs periodically to enforce the retention window independently of the
in-process expiry timers, which are lost when the process restarts:

- expired install records are deleted together with the signed package
  and manifest they reference;
- files no live record owns (staging leftovers of crashed requests,
  outputs of failed signings) are deleted once they are older than the
  retention window.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ipa_signer.observability.trace_logging import trace_event

if TYPE_CHECKING:
    from ipa_signer.config import SignerConfig
    from ipa_signer.services.ephemeral_store import EphemeralStore
    from ipa_signer.services.install_service import InstallService

logger = logging.getLogger(__name__)


def _sweep(
    install_service: "InstallService",
    store: "EphemeralStore",
    config: "SignerConfig",
) -> tuple[int, int]:
    record_dao = install_service.record_dao
    expired = 0
    live: set[str] = set()

    for suffix in record_dao.list_suffixes():
        record = record_dao.get(suffix)
        if record is None:
            continue
        if record.is_expired():
            install_service.expire(suffix, record)
            expired += 1
        else:
            live.add(suffix)

    orphans = store.remove_stale_files(
        config.retention_seconds,
        keep_suffixes=frozenset(live),
    )
    return expired, orphans


async def expiry_sweep_task(
    install_service: "InstallService",
    store: "EphemeralStore",
    config: "SignerConfig",
) -> int:
    """Execute one expiry sweep.

    Args:
        install_service: InstallService owning record expiry.
        store: EphemeralStore for orphan cleanup.
        config: Service configuration with the retention window.

    Returns:
        Number of install links expired plus orphan files deleted.
    """
    logger.info(
        "Starting expiry sweep (retention: %d seconds)",
        config.retention_seconds,
    )

    try:
        expired, orphans = await asyncio.to_thread(_sweep, install_service, store, config)
    except Exception as e:
        logger.error("Expiry sweep failed: %s", e)
        raise

    trace_event("sweep.done", expired_links=expired, orphan_files=orphans)
    logger.info(
        "Expiry sweep completed: %d links expired, %d orphan files deleted",
        expired,
        orphans,
    )
    return expired + orphans
