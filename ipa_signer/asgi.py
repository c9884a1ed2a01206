"""ASGI entry point for uvicorn with hot reload support.

Usage:
    uvicorn ipa_signer.asgi:app --reload --host 0.0.0.0 --port 3000
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from ipa_signer.config import SignerConfig
from ipa_signer.logging_filters import configure_logging, install_uvicorn_access_log_filters
from ipa_signer.main import Application

# Global application instance for lifespan management
_application: Application | None = None


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan for ASGI server."""
    global _application

    config = SignerConfig.from_json_file()
    configure_logging(config.log_level)
    install_uvicorn_access_log_filters()
    _application = Application(config)
    await _application.setup()

    _application.register_routes(fastapi_app)

    await _application.start_background_services()

    yield

    await _application.shutdown()
    _application = None


app = FastAPI(
    title="IPA Signer",
    description="Re-signs iOS application packages and serves time-limited install links",
    version="1.0.0",
    lifespan=lifespan,
)
