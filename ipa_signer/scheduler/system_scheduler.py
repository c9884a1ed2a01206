"""System scheduler for background system tasks.

Runs the expiry sweep on a fixed interval and owns shutdown of the
in-process expiry timers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ipa_signer.scheduler.expiry_sweep_task import expiry_sweep_task

if TYPE_CHECKING:
    from ipa_signer.config import SignerConfig
    from ipa_signer.services.ephemeral_store import EphemeralStore
    from ipa_signer.services.install_service import InstallService

logger = logging.getLogger(__name__)


class SystemScheduler:
    """Scheduler for system-level periodic tasks.

    The first sweep runs immediately on start, which collects whatever a
    previous process left behind.
    """

    def __init__(
        self,
        config: "SignerConfig",
        store: "EphemeralStore",
        install_service: "InstallService",
    ) -> None:
        """Initialize the system scheduler.

        Args:
            config: Service configuration (sweep interval, retention).
            store: EphemeralStore holding the published files.
            install_service: InstallService for record expiry.
        """
        self.config = config
        self.store = store
        self.install_service = install_service
        self._running = False
        self._sweep_task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

        logger.info("SystemScheduler initialized")

    @property
    def interval_seconds(self) -> int:
        return max(1, int(self.config.expiry_sweep_interval_seconds))

    async def start(self) -> None:
        """Start the expiry sweep background task."""
        if self._running:
            logger.warning("SystemScheduler is already running")
            return

        self._running = True
        self._stop_event.clear()
        self._sweep_task = asyncio.create_task(self._run_sweep_loop())

        logger.info(
            "SystemScheduler started, expiry sweep every %d seconds",
            self.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the sweep loop and cancel pending expiry timers."""
        if not self._running:
            logger.warning("SystemScheduler is not running")
            return

        logger.info("Stopping SystemScheduler...")
        self._running = False
        self._stop_event.set()

        if self._sweep_task:
            try:
                await asyncio.wait_for(self._sweep_task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning(
                    "SystemScheduler task did not stop gracefully, cancelling"
                )
                self._sweep_task.cancel()
                try:
                    await self._sweep_task
                except asyncio.CancelledError:
                    pass
            except asyncio.CancelledError:
                pass
            finally:
                self._sweep_task = None

        cancelled = self.store.cancel_pending()
        logger.info("SystemScheduler stopped (%d expiry timers cancelled)", cancelled)

    async def _run_sweep_loop(self) -> None:
        """Main loop: sweep, then wait for the interval or a stop signal."""
        logger.info("Expiry sweep loop started")

        while self._running:
            await self.run_once()

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.interval_seconds,
                )
                # If we get here, stop was signaled
                break
            except asyncio.TimeoutError:
                continue

        logger.info("Expiry sweep loop ended")

    async def run_once(self) -> int:
        """Execute a single sweep; failures are logged, never raised.

        Returns:
            Number of items removed (0 on failure).
        """
        try:
            return await expiry_sweep_task(
                install_service=self.install_service,
                store=self.store,
                config=self.config,
            )
        except Exception as e:
            logger.exception("Error in expiry sweep loop: %s", e)
            return 0

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is currently running."""
        return self._running
