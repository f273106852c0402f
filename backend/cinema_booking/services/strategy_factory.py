"""
Collaborator factory.
Configures which broadcast channel and proof storage backend to use.
Both getters double as FastAPI dependencies so tests can override them.
"""

from typing import Optional

from cinema_booking.core.config import get_settings
from cinema_booking.infrastructure.proof_storage import InlineProofStorage, LocalProofStorage
from cinema_booking.services.broadcast_service import RedisSeatBroadcaster
from cinema_booking.services.interfaces.broadcast import SeatBroadcaster
from cinema_booking.services.interfaces.memory_broadcast import InMemorySeatBroadcaster
from cinema_booking.services.interfaces.storage import ProofStorage

settings = get_settings()


def build_seat_broadcaster(backend: str) -> SeatBroadcaster:
    """
    Strategy selection:
    - redis: pub/sub for multi-worker deployments (default)
    - memory: single process, handlers registered at startup or by tests
    """
    if backend == "redis":
        return RedisSeatBroadcaster()
    if backend == "memory":
        return InMemorySeatBroadcaster()
    raise ValueError(f"Unknown SEAT_BROADCAST_BACKEND: {backend!r}")


def build_proof_storage(backend: str) -> ProofStorage:
    if backend == "local":
        return LocalProofStorage(settings.PAYMENT_PROOF_DIR)
    if backend == "inline":
        return InlineProofStorage()
    raise ValueError(f"Unknown PAYMENT_STORAGE_BACKEND: {backend!r}")


# Singleton instances
_broadcaster: Optional[SeatBroadcaster] = None
_storage: Optional[ProofStorage] = None


def get_seat_broadcaster() -> SeatBroadcaster:
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = build_seat_broadcaster(settings.SEAT_BROADCAST_BACKEND)
    return _broadcaster


def get_proof_storage() -> ProofStorage:
    global _storage
    if _storage is None:
        _storage = build_proof_storage(settings.PAYMENT_STORAGE_BACKEND)
    return _storage
