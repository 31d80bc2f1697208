"""
Quantum Engine Package

Key generation, eavesdropper detection and ballot sealing.
"""

from .eve_detector import (
    DisturbanceModel,
    EveDetector,
    SampledDisturbanceModel,
    calculate_confidence,
    is_intercepted,
)
from .key_generator import (
    KeyGenerator,
    ProviderKeyGenerator,
    SimulatedKeyGenerator,
    create_key_generator,
)
from .sealing import open_ballot, seal_ballot

__all__ = [
    "DisturbanceModel",
    "EveDetector",
    "SampledDisturbanceModel",
    "calculate_confidence",
    "is_intercepted",
    "KeyGenerator",
    "ProviderKeyGenerator",
    "SimulatedKeyGenerator",
    "create_key_generator",
    "open_ballot",
    "seal_ballot",
]
