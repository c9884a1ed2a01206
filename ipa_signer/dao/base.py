"""Base DAO abstract class."""

from abc import ABC
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from ipa_signer.services.ephemeral_store import EphemeralStore

# Type variable for Pydantic domain models
T = TypeVar("T")


class BaseDAO(ABC, Generic[T]):
    """Abstract base class for Data Access Objects.

    There is no database: every record is one JSON file inside the
    ephemeral store, and the file *is* the record. DAOs MUST return
    Pydantic domain models, never raw dicts, and own the file format.
    """

    def __init__(self, store: "EphemeralStore"):
        """Initialize DAO with the store that owns the record files.

        Args:
            store: EphemeralStore providing record paths.
        """
        self._store = store

    @property
    def store(self) -> "EphemeralStore":
        """Get the backing store."""
        return self._store
