"""
Payment proof storage interface.
The lifecycle code only needs "store these bytes, give me a reference back";
where the bytes end up is a deployment choice.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class StoredProof:
    reference: str
    # Set by backends that keep the body in the database row itself
    inline_payload: Optional[str] = None


class ProofStorage(ABC):
    """
    Interface for payment proof storage.

    Implementations:
    - InlineProofStorage: base64 body kept in the booking row
    - LocalProofStorage: files on a local or mounted volume

    All methods raise StorageError on failure.
    """

    name: str = "abstract"

    @abstractmethod
    async def save(self, key: str, data: bytes, content_type: str) -> StoredProof:
        """
        Persist an artifact.

        Args:
            key: Unique file name for the artifact
            data: Raw bytes as uploaded
            content_type: MIME type reported by the client

        Returns:
            StoredProof whose reference is written to the row
        """
        pass

    @abstractmethod
    async def load(self, reference: str, inline_payload: Optional[str] = None) -> bytes:
        """Return the artifact bytes for a reference produced by save()."""
        pass

    @abstractmethod
    async def delete(self, reference: str) -> None:
        """Remove an artifact whose status write did not go through."""
        pass
