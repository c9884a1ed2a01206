"""Static file serving for published artifacts.

``/signed`` and ``/plist`` are backed by their category directories, but a
file is only served while the install record of the request that produced
it is live. Outputs of failed signings never get a record, so they are
never served.
"""

from __future__ import annotations

import asyncio
import posixpath
from typing import TYPE_CHECKING

from starlette.exceptions import HTTPException
from starlette.responses import Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

from ipa_signer.services.install_service import (
    ExpiredLinkError,
    InstallRecordNotFoundError,
)
from ipa_signer.services.resource_namer import extract_suffix

if TYPE_CHECKING:
    from ipa_signer.services.install_service import InstallService


class ExpiringStaticFiles(StaticFiles):
    """StaticFiles that checks the owning install record before serving."""

    def __init__(self, *, directory: str, install_service: "InstallService") -> None:
        super().__init__(directory=directory, html=False, check_dir=False)
        self.install_service = install_service

    async def get_response(self, path: str, scope: Scope) -> Response:
        suffix = extract_suffix(posixpath.basename(path))
        if suffix is None:
            raise HTTPException(status_code=404)

        try:
            await asyncio.to_thread(self.install_service.get_live_record, suffix)
        except InstallRecordNotFoundError:
            raise HTTPException(status_code=404) from None
        except ExpiredLinkError:
            raise HTTPException(status_code=410) from None

        return await super().get_response(path, scope)
