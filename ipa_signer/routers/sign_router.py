"""Signing API endpoint.

Routers handle HTTP concerns only - no business logic.
All business logic is delegated to SigningService.
"""

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, BackgroundTasks, File, Form, UploadFile
from fastapi.responses import JSONResponse

from ipa_signer.models.domain import InstallLinks
from ipa_signer.services.errors import IntakeValidationError, SigningPipelineError
from ipa_signer.services.signing_service import SigningIntake, UploadedFile

if TYPE_CHECKING:
    from ipa_signer.services.signing_service import SigningService

logger = logging.getLogger(__name__)


def _uploaded(upload: UploadFile | None) -> UploadedFile | None:
    if upload is None:
        return None
    return UploadedFile(filename=upload.filename or "", file=upload.file)


def create_sign_router(signing_service: "SigningService") -> APIRouter:
    """Create sign router with injected service.

    Args:
        signing_service: SigningService instance for business logic

    Returns:
        APIRouter with the ``POST /sign`` endpoint configured
    """
    router = APIRouter(tags=["signing"])

    async def schedule_cleanup(published) -> None:
        await signing_service.schedule_cleanup(published)

    @router.post("/sign", response_model=InstallLinks)
    async def sign(
        background_tasks: BackgroundTasks,
        ipa: UploadFile | None = File(None),
        p12: UploadFile | None = File(None),
        mobileprovision: UploadFile | None = File(None),
        ipa_url: str | None = Form(None),
        p12_password: str | None = Form(None),
    ):
        """Sign an uploaded (or remote) package.

        Returns:
            ``{installLink, directInstallLink}``; published files are
            scheduled for deletion after the response is sent.

        Responses:
            400 ``{"error": ...}`` for missing or malformed parts,
            500 ``{"error": "Signing failed", "details": ...}`` otherwise.
        """
        intake = SigningIntake(
            ipa=_uploaded(ipa),
            p12=_uploaded(p12),
            mobileprovision=_uploaded(mobileprovision),
            ipa_url=ipa_url,
            p12_password=p12_password,
        )
        try:
            published = await signing_service.sign(intake)
        except IntakeValidationError as e:
            return JSONResponse(status_code=400, content={"error": e.message})
        except SigningPipelineError as e:
            return JSONResponse(
                status_code=500,
                content={"error": "Signing failed", "details": e.message},
            )
        except Exception as e:
            logger.exception("Unhandled signing failure: %s", e)
            return JSONResponse(
                status_code=500,
                content={"error": "Signing failed", "details": str(e)},
            )

        background_tasks.add_task(schedule_cleanup, published)
        return published.links

    return router
