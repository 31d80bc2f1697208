"""
Transaction Data Models
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class TransactionScenario(str, Enum):
    BANKING_PAYMENT = "BANKING_PAYMENT"
    MEDICAL_RECORD_ACCESS = "MEDICAL_RECORD_ACCESS"


class TransactionMode(str, Enum):
    NORMAL = "NORMAL"
    QUANTUM = "QUANTUM"


class TransactionStatus(str, Enum):
    SUCCESS = "SUCCESS"
    ABORTED = "ABORTED"
    FAILED = "FAILED"


class PipelineStage(str, Enum):
    """
    Transaction pipeline stages.

    INIT → KEY_GEN → EVE_CHECK → ABORT
                              ↓
                           ENCRYPT → PERSIST_RECORD → PERSIST_KEY → SYNC → DONE

    NORMAL mode skips KEY_GEN, EVE_CHECK and PERSIST_KEY.
    FAILED is the terminal stage for provider and unexpected errors.
    """
    INIT = "INIT"
    KEY_GEN = "KEY_GEN"
    EVE_CHECK = "EVE_CHECK"
    ABORT = "ABORT"
    ENCRYPT = "ENCRYPT"
    PERSIST_RECORD = "PERSIST_RECORD"
    PERSIST_KEY = "PERSIST_KEY"
    SYNC = "SYNC"
    DONE = "DONE"
    FAILED = "FAILED"


STAGE_PROGRESS = {
    PipelineStage.INIT: 0.10,
    PipelineStage.KEY_GEN: 0.25,
    PipelineStage.EVE_CHECK: 0.45,
    PipelineStage.ABORT: 0.60,
    PipelineStage.ENCRYPT: 0.60,
    PipelineStage.PERSIST_RECORD: 0.70,
    PipelineStage.PERSIST_KEY: 0.80,
    PipelineStage.SYNC: 0.90,
    PipelineStage.DONE: 1.00,
    PipelineStage.FAILED: 1.00,
}


@dataclass(frozen=True)
class TransactionRequest:
    """A sensitive operation submitted by the presentation layer."""
    scenario: TransactionScenario
    mode: TransactionMode = TransactionMode.QUANTUM
    amount: Optional[float] = None
    beneficiary: Optional[str] = None
    patient_id: Optional[str] = None
    access_reason: Optional[str] = None
    simulate_attack: bool = False
    user_id: str = "local"

    @property
    def is_medical(self) -> bool:
        return self.scenario is TransactionScenario.MEDICAL_RECORD_ACCESS

    @property
    def counterparty(self) -> str:
        """Display label for the other side of the operation."""
        if not self.is_medical:
            return self.beneficiary or "Unknown"
        parts = []
        if self.patient_id:
            parts.append(f"Patient: {self.patient_id}")
        if self.access_reason:
            parts.append(f"Reason: {self.access_reason}")
        return " | ".join(parts) or "Medical Access"


@dataclass(frozen=True)
class TransactionRecord:
    """Persisted outcome of one pipeline run."""
    transaction_id: str
    user_id: str
    scenario: TransactionScenario
    mode: TransactionMode
    status: TransactionStatus
    intercepted: bool
    created_at: datetime
    last_updated: datetime
    amount: Optional[float] = None
    beneficiary: Optional[str] = None
    patient_id: Optional[str] = None
    access_reason: Optional[str] = None
    qber: Optional[float] = None


@dataclass(frozen=True)
class ProcessStep:
    """One progress notification emitted during a pipeline run."""
    stage: PipelineStage
    progress: float
    status: str
    detail: str
    is_terminal: bool = False

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "progress": self.progress,
            "status": self.status,
            "detail": self.detail,
            "is_terminal": self.is_terminal,
        }


@dataclass(frozen=True)
class QuantumStats:
    total_quantum_transactions: int
    real_qkd_transactions: int
    average_quantum_entropy: float
    provider: str
