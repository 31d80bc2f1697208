"""
Remote Mirror Payloads

Wire shapes for the PostgREST tables of the remote mirror. Field names are
the mirror's column names.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from models import KeyMaterial, TransactionRecord


class TransactionDto(BaseModel):
    transaction_id: str
    user_id: str
    amount: Optional[float] = None
    type: str
    status: str
    interception_detected: bool
    beneficiary_name: Optional[str] = None
    scenario: str
    patient_id: Optional[str] = None
    access_reason: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: TransactionRecord) -> "TransactionDto":
        return cls(
            transaction_id=record.transaction_id,
            user_id=record.user_id,
            amount=record.amount,
            type=record.mode.value,
            status=record.status.value,
            interception_detected=record.intercepted,
            beneficiary_name=record.beneficiary,
            scenario=record.scenario.value,
            patient_id=record.patient_id,
            access_reason=record.access_reason,
            created_at=record.created_at,
        )


class QuantumKeyMetadataDto(BaseModel):
    """Key metadata only; key bytes never leave the device."""
    key_id: str
    transaction_id: str
    key_size: int
    algorithm: str
    provider: str
    quantum_entropy: float
    is_real: bool
    generated_at: datetime

    @classmethod
    def from_key(cls, key: KeyMaterial, transaction_id: str) -> "QuantumKeyMetadataDto":
        return cls(
            key_id=key.key_id,
            transaction_id=transaction_id,
            key_size=key.size_bits,
            algorithm=key.algorithm,
            provider=key.provider.value,
            quantum_entropy=key.quantum_entropy,
            is_real=key.is_real,
            generated_at=key.generated_at,
        )
