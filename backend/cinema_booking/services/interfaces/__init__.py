"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .broadcast import SeatBroadcaster, SeatUpdate
from .memory_broadcast import InMemorySeatBroadcaster
from .storage import ProofStorage, StoredProof

__all__ = ['SeatBroadcaster', 'SeatUpdate', 'InMemorySeatBroadcaster', 'ProofStorage', 'StoredProof']
