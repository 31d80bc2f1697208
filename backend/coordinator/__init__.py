"""
Coordinator Package

Transaction and vote pipelines over the key generator, detector and store.
"""

from .transaction import StepEmitter, TransactionCoordinator, TransactionRun
from .validator import validate_transaction_request
from .vote import VoteCoordinator, default_elections

__all__ = [
    "StepEmitter",
    "TransactionCoordinator",
    "TransactionRun",
    "validate_transaction_request",
    "VoteCoordinator",
    "default_elections",
]
