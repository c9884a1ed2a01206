"""Application entry point and bootstrap.

This module initializes all application components, wires dependencies,
and provides the main entry point for running the signing service.
"""

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException

from ipa_signer.config import SignerConfig
from ipa_signer.dao import InstallRecordDAO
from ipa_signer.enums import StoreCategory
from ipa_signer.logging_filters import configure_logging, install_uvicorn_access_log_filters
from ipa_signer.observability import configure_tracing, setup_error_log_file
from ipa_signer.observability.health_state import snapshot as health_snapshot
from ipa_signer.routers import create_install_router, create_sign_router
from ipa_signer.scheduler import SystemScheduler
from ipa_signer.services import (
    ArtifactInspector,
    EphemeralStore,
    InstallService,
    PackageDownloader,
    SigningExecutor,
    SigningService,
)
from ipa_signer.static_files import ExpiringStaticFiles

logger = logging.getLogger(__name__)


class Application:
    """Main application container.

    Manages all application components and their lifecycle.
    Provides dependency injection and graceful shutdown.
    """

    def __init__(self, config: SignerConfig) -> None:
        """Initialize the application with configuration.

        Args:
            config: Service configuration.
        """
        self.config = config
        self.fastapi_app: FastAPI | None = None

        self.store: EphemeralStore | None = None
        self.record_dao: InstallRecordDAO | None = None

        self.executor: SigningExecutor | None = None
        self.signing_service: SigningService | None = None
        self.install_service: InstallService | None = None

        self.system_scheduler: SystemScheduler | None = None

    async def setup(self) -> None:
        """Initialize all application components with dependency injection."""
        logger.info("Setting up application components...")

        # Initialize error log file handler early to capture setup errors
        setup_error_log_file(self.config)
        configure_tracing(
            enabled=self.config.trace_enabled,
            max_chars=self.config.trace_max_chars,
        )

        self.store = EphemeralStore(self.config)
        self.store.ensure_directories()
        self.record_dao = InstallRecordDAO(self.store)

        self.executor = SigningExecutor(self.config)
        self.install_service = InstallService(self.store, self.record_dao)
        self.signing_service = SigningService(
            config=self.config,
            store=self.store,
            executor=self.executor,
            inspector=ArtifactInspector(),
            downloader=PackageDownloader(self.config),
            record_dao=self.record_dao,
        )
        logger.info("Services initialized")

        self.system_scheduler = SystemScheduler(
            config=self.config,
            store=self.store,
            install_service=self.install_service,
        )
        logger.info("Application setup complete")

    def register_routes(self, fastapi_app: FastAPI) -> None:
        """Attach routers, published static paths and the health check."""
        if self.signing_service:
            fastapi_app.include_router(create_sign_router(self.signing_service))
            logger.info("Sign router registered")

        if self.install_service and self.store:
            fastapi_app.include_router(create_install_router(self.install_service))
            for category in (StoreCategory.SIGNED, StoreCategory.MANIFEST):
                fastapi_app.mount(
                    f"/{category.value}",
                    ExpiringStaticFiles(
                        directory=str(self.store.category_dir(category)),
                        install_service=self.install_service,
                    ),
                    name=category.value,
                )
            logger.info("Install router and published paths registered")

        stall_seconds = self.config.health_stall_seconds

        @fastapi_app.get("/health")
        async def health_check():
            """Health check endpoint."""
            snap = health_snapshot(stall_seconds=stall_seconds)
            if snap.status != "healthy":
                raise HTTPException(status_code=503, detail=snap.to_dict(mode="json"))
            return snap.to_dict(mode="json")

    def create_fastapi_app(self) -> FastAPI:
        """Create and configure the FastAPI application.

        Returns:
            Configured FastAPI application.
        """

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
            """Manage application lifespan."""
            logger.info("FastAPI application starting...")
            yield
            logger.info("FastAPI application shutting down...")

        self.fastapi_app = FastAPI(
            title="IPA Signer",
            description="Re-signs iOS application packages and serves time-limited install links",
            version="1.0.0",
            lifespan=lifespan,
        )
        self.register_routes(self.fastapi_app)
        return self.fastapi_app

    async def start_background_services(self) -> None:
        """Start the expiry sweep."""
        logger.info("Starting background services...")

        if self.system_scheduler:
            await self.system_scheduler.start()
            logger.info("System scheduler started")

    async def shutdown(self) -> None:
        """Gracefully shutdown all application components."""
        logger.info("Initiating graceful shutdown...")

        if self.system_scheduler and self.system_scheduler.is_running:
            await self.system_scheduler.stop()
            logger.info("System scheduler stopped")

        if self.executor:
            self.executor.shutdown()
            logger.info("Signing executor stopped")

        logger.info("Graceful shutdown complete")


async def create_app(config: SignerConfig | None = None) -> Application:
    """Create and setup the application.

    Args:
        config: Optional configuration. If not provided, loads from
                config.json with environment variable overrides.

    Returns:
        Initialized Application instance.
    """
    if config is None:
        config = SignerConfig.from_json_file()

    app = Application(config)
    await app.setup()
    app.create_fastapi_app()
    return app


async def main(reload: bool = False) -> None:
    """Main entry point for running the service.

    Args:
        reload: Enable hot reload during development.
    """
    import uvicorn

    config = SignerConfig.from_json_file()
    configure_logging(config.log_level)
    logger.info("Starting IPA signer...")

    app: Application | None = None
    try:
        app = await create_app(config)
        await app.start_background_services()

        logger.info(
            "Application running. API available at http://%s:%d",
            config.api_host,
            config.api_port,
        )

        uvicorn_config = uvicorn.Config(
            app.fastapi_app,
            host=config.api_host,
            port=config.api_port,
            log_level=config.log_level.lower(),
            reload=reload,
        )

        # Ensure Uvicorn logging is configured, then suppress noisy healthcheck access logs.
        uvicorn_config.load()
        install_uvicorn_access_log_filters()

        server = uvicorn.Server(uvicorn_config)
        await server.serve()

    except Exception as e:
        logger.exception("Application error: %s", e)
        raise
    finally:
        if app:
            await app.shutdown()


def cli() -> None:
    """Console script entry point (``ipa-signer``)."""
    parser = argparse.ArgumentParser(description="Run the IPA signing service")
    parser.add_argument("--reload", action="store_true", help="Enable hot reload")
    args = parser.parse_args()

    asyncio.run(main(reload=args.reload))


if __name__ == "__main__":
    cli()
