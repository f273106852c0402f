"""
Payment proof storage backends.
Separated from business logic for clean architecture.
"""

import asyncio
import base64
import binascii
from pathlib import Path
from typing import Optional

from cinema_booking.core.exceptions import StorageError
from cinema_booking.core.logging import get_logger
from cinema_booking.services.interfaces.storage import ProofStorage, StoredProof

logger = get_logger(__name__)

INLINE_PREFIX = "inline:"
FILE_PREFIX = "file:"


class InlineProofStorage(ProofStorage):
    """
    Base64 body stored next to the booking.

    Works on read-only or ephemeral filesystems (serverless hosts) at the
    cost of row size; proofs are capped by MAX_PAYMENT_PROOF_BYTES.
    """

    name = "inline"

    async def save(self, key: str, data: bytes, content_type: str) -> StoredProof:
        return StoredProof(
            reference=f"{INLINE_PREFIX}{key}",
            inline_payload=base64.b64encode(data).decode("ascii"),
        )

    async def load(self, reference: str, inline_payload: Optional[str] = None) -> bytes:
        if not inline_payload:
            raise StorageError(f"No inline payload stored for {reference}")
        try:
            return base64.b64decode(inline_payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise StorageError(f"Corrupt inline payload for {reference}") from e

    async def delete(self, reference: str) -> None:
        # Nothing outside the row to clean up
        return None


class LocalProofStorage(ProofStorage):
    """Files under a base directory. Blocking I/O runs in a worker thread."""

    name = "local"

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)

    def _path_for(self, reference: str) -> Path:
        name = reference[len(FILE_PREFIX):] if reference.startswith(FILE_PREFIX) else reference
        path = (self.base_dir / name).resolve()
        if self.base_dir.resolve() not in path.parents:
            raise StorageError(f"Refusing path outside storage root: {reference}")
        return path

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def save(self, key: str, data: bytes, content_type: str) -> StoredProof:
        reference = f"{FILE_PREFIX}{key}"
        path = self._path_for(reference)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            logger.error("proof_write_failed", path=str(path), error=str(e))
            raise StorageError(f"Could not write payment proof {key}") from e
        return StoredProof(reference=reference)

    async def load(self, reference: str, inline_payload: Optional[str] = None) -> bytes:
        path = self._path_for(reference)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StorageError(f"Could not read payment proof {reference}") from e

    async def delete(self, reference: str) -> None:
        path = self._path_for(reference)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            logger.warning("proof_delete_failed", path=str(path), error=str(e))
