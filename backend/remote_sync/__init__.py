"""
Remote Sync Package

Best-effort mirror of local records to a remote REST backend.
"""

from .client import RemoteMirror, RemoteSyncError
from .models import QuantumKeyMetadataDto, TransactionDto

__all__ = [
    "RemoteMirror",
    "RemoteSyncError",
    "QuantumKeyMetadataDto",
    "TransactionDto",
]
