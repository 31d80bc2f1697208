"""
QKD Client Package

Client for external quantum key providers.
"""

from .client import DEFAULT_KEY_PURPOSE, QKDProviderClient
from .exceptions import (
    KeyExhaustedError,
    KeyRequestError,
    ProviderResponseError,
    ProviderUnavailableError,
)
from .models import ProviderKeyResponse

__all__ = [
    "DEFAULT_KEY_PURPOSE",
    "QKDProviderClient",
    "ProviderKeyResponse",
    "KeyRequestError",
    "KeyExhaustedError",
    "ProviderResponseError",
    "ProviderUnavailableError",
]
