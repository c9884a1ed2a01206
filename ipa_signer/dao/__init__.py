"""Data Access Objects package."""

from .base import BaseDAO
from .install_record_dao import InstallRecordDAO

__all__ = [
    "BaseDAO",
    "InstallRecordDAO",
]
