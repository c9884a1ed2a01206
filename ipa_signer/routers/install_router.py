"""Install page endpoint.

Routers handle HTTP concerns only - no business logic.
All business logic is delegated to InstallService.
"""

from typing import TYPE_CHECKING

from fastapi import APIRouter
from fastapi.responses import HTMLResponse, PlainTextResponse

from ipa_signer.services.install_service import (
    ExpiredLinkError,
    InstallRecordNotFoundError,
)

if TYPE_CHECKING:
    from ipa_signer.services.install_service import InstallService


def create_install_router(install_service: "InstallService") -> APIRouter:
    """Create install router with injected service.

    Args:
        install_service: InstallService instance for record lookup

    Returns:
        APIRouter with the ``GET /install/{suffix}`` endpoint configured
    """
    router = APIRouter(prefix="/install", tags=["install"])

    # Record lookup is blocking file I/O; FastAPI runs sync handlers in its threadpool.
    @router.get("/{suffix}", response_class=HTMLResponse)
    def install_page(suffix: str):
        """Render the install page for a live install link.

        Responses:
            404 when no record exists, 410 when the link expired.
        """
        try:
            return HTMLResponse(install_service.get_install_page(suffix))
        except InstallRecordNotFoundError as e:
            return PlainTextResponse(str(e), status_code=404)
        except ExpiredLinkError as e:
            return PlainTextResponse(str(e), status_code=410)

    return router
