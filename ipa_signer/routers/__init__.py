"""HTTP routers package."""

from .install_router import create_install_router
from .sign_router import create_sign_router

__all__ = [
    "create_install_router",
    "create_sign_router",
]
