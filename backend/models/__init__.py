"""
Domain Models Package

Data types shared by the key pipeline, the coordinators, storage and the API.
"""

from .election import Election, ElectionType, Vote, VoteOption, VoteReceipt
from .quantum import QBER_THRESHOLD, DetectionResult, KeyMaterial, KeyProvider
from .result import (
    ErrorKind,
    NetworkError,
    PipelineError,
    ProviderError,
    Result,
    SecurityAbortError,
    UnknownPipelineError,
    ValidationError,
)
from .transaction import (
    STAGE_PROGRESS,
    PipelineStage,
    ProcessStep,
    QuantumStats,
    TransactionMode,
    TransactionRecord,
    TransactionRequest,
    TransactionScenario,
    TransactionStatus,
)

__all__ = [
    "Election",
    "ElectionType",
    "Vote",
    "VoteOption",
    "VoteReceipt",
    "QBER_THRESHOLD",
    "DetectionResult",
    "KeyMaterial",
    "KeyProvider",
    "ErrorKind",
    "NetworkError",
    "PipelineError",
    "ProviderError",
    "Result",
    "SecurityAbortError",
    "UnknownPipelineError",
    "ValidationError",
    "STAGE_PROGRESS",
    "PipelineStage",
    "ProcessStep",
    "QuantumStats",
    "TransactionMode",
    "TransactionRecord",
    "TransactionRequest",
    "TransactionScenario",
    "TransactionStatus",
]
