"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .proof_storage import InlineProofStorage, LocalProofStorage

__all__ = ['InlineProofStorage', 'LocalProofStorage']
