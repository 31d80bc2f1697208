"""
Key Generation Strategies

Produces KeyMaterial for a requested size either from a local simulated
channel or from an external QKD provider. Generation never persists anything
and never raises for expected failures: callers get a Result.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from config import Settings
from models import (
    KeyMaterial,
    KeyProvider,
    NetworkError,
    ProviderError,
    Result,
    ValidationError,
)
from qkd_client import (
    DEFAULT_KEY_PURPOSE,
    KeyRequestError,
    ProviderUnavailableError,
    QKDProviderClient,
)
from .secure_random import generate_key_id, secure_random_bytes, secure_uniform

logger = logging.getLogger(__name__)

SIMULATED_ENTROPY_RANGE = (0.90, 0.99)
SIMULATION_ALGORITHM = "CSPRNG-SIM"


class KeyGenerator(ABC):
    """Base strategy: validates the request, delegates generation."""

    provider: KeyProvider

    async def generate_key(
        self,
        size_bits: int,
        correlation_id: str,
        purpose: str = DEFAULT_KEY_PURPOSE,
    ) -> Result[KeyMaterial]:
        if not isinstance(size_bits, int) or size_bits <= 0:
            return Result.failure(
                ValidationError(f"Key size must be a positive number of bits, got {size_bits!r}")
            )
        return await self._generate(size_bits, correlation_id, purpose)

    @abstractmethod
    async def _generate(self, size_bits: int, correlation_id: str, purpose: str) -> Result[KeyMaterial]:
        ...


class SimulatedKeyGenerator(KeyGenerator):
    """Local CSPRNG keys over a well-behaved simulated channel."""

    provider = KeyProvider.SIMULATION

    async def _generate(self, size_bits: int, correlation_id: str, purpose: str) -> Result[KeyMaterial]:
        key = KeyMaterial(
            key_id=generate_key_id(),
            size_bits=size_bits,
            algorithm=SIMULATION_ALGORITHM,
            provider=self.provider,
            generated_at=datetime.now(timezone.utc),
            quantum_entropy=secure_uniform(*SIMULATED_ENTROPY_RANGE),
            is_real=False,
            correlation_id=correlation_id,
            key_bytes=secure_random_bytes((size_bits + 7) // 8),
        )
        logger.debug("Simulated %d-bit key %s for %s", size_bits, key.key_id, correlation_id)
        return Result.success(key)


class ProviderKeyGenerator(KeyGenerator):
    """Keys issued by an external QKD provider, bounded by a timeout."""

    def __init__(self, client: QKDProviderClient, timeout: Optional[float] = None):
        self._client = client
        self._timeout = timeout
        self.provider = client.provider

    async def _generate(self, size_bits: int, correlation_id: str, purpose: str) -> Result[KeyMaterial]:
        try:
            response = await asyncio.wait_for(
                self._client.request_key(size_bits, correlation_id, purpose),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.error("%s key request for %s timed out", self.provider.value, correlation_id)
            return Result.failure(NetworkError(f"{self.provider.value} key request timed out"))
        except ProviderUnavailableError as e:
            return Result.failure(NetworkError(str(e)))
        except KeyRequestError as e:
            return Result.failure(ProviderError(str(e)))

        return Result.success(
            KeyMaterial(
                key_id=response.key_id or generate_key_id(),
                size_bits=size_bits,
                algorithm=response.algorithm,
                provider=self.provider,
                generated_at=datetime.now(timezone.utc),
                quantum_entropy=response.quantum_entropy,
                is_real=True,
                correlation_id=correlation_id,
                key_bytes=response.key_material,
            )
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def create_key_generator(settings: Settings) -> KeyGenerator:
    """Build the configured key generation strategy."""
    provider = KeyProvider(settings.qkd_provider)

    if provider is KeyProvider.SIMULATION:
        return SimulatedKeyGenerator()

    if not settings.qkd_api_key:
        logger.warning("QKD provider %s selected without an API key", provider.value)

    client = QKDProviderClient(
        provider,
        api_key=settings.qkd_api_key,
        timeout=settings.qkd_timeout,
    )
    return ProviderKeyGenerator(client, timeout=settings.qkd_timeout)
