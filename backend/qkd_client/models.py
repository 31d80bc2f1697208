"""
QKD Provider Data Models
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class ProviderKeyResponse:
    """Key material as issued by an external QKD provider."""
    key_material: bytes
    algorithm: str
    provider: str
    quantum_entropy: float
    key_id: Optional[str] = None
