"""
Quantum Key Data Models
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

QBER_THRESHOLD = 0.11


class KeyProvider(str, Enum):
    """Source of key material. Only the external providers yield real keys."""
    SIMULATION = "SIMULATION"
    QRYPT = "QRYPT"
    QBITSHIELD = "QBITSHIELD"

    @property
    def is_external(self) -> bool:
        return self is not KeyProvider.SIMULATION


@dataclass(frozen=True)
class KeyMaterial:
    """A generated symmetric key and its quality metadata."""
    key_id: str
    size_bits: int
    algorithm: str
    provider: KeyProvider
    generated_at: datetime
    quantum_entropy: float
    is_real: bool
    correlation_id: str = ""
    key_bytes: bytes = field(default=b"", repr=False)

    @property
    def material_hash(self) -> str:
        """SHA-256 of the raw key; the only form of the key that is stored."""
        return hashlib.sha256(self.key_bytes).hexdigest()


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of an eavesdropping check."""
    qber: float
    is_intercepted: bool
    message: str
    confidence: float = 0.0
    detection_method: str = "BB84-QBER-Analysis"

    @property
    def qber_percent(self) -> str:
        return f"{self.qber * 100:.1f}%"
