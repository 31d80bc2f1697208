"""
QKD Provider Client

REST client for external quantum key providers (Qrypt DQKD and QbitShield).
Each call is a single attempt: retry policy belongs to the caller.
"""

import logging
import math
from typing import Any, Dict, Optional

import httpx

from config import settings
from models import KeyProvider
from .exceptions import (
    KeyExhaustedError,
    KeyRequestError,
    ProviderResponseError,
    ProviderUnavailableError,
)
from .models import ProviderKeyResponse

logger = logging.getLogger(__name__)

QRYPT_ENTROPY_PATH = "/api/v1/quantum-entropy"
QBITSHIELD_KEY_PATH = "/v1/qkd/key"

DEFAULT_QRYPT_ENTROPY = 0.95
DEFAULT_QBITSHIELD_FIDELITY = 0.98
DEFAULT_KEY_PURPOSE = "transaction_encryption"


def _default_base_url(provider: KeyProvider) -> str:
    if provider is KeyProvider.QRYPT:
        return settings.qrypt_url
    return settings.qbitshield_url


def _decode_hex(value: Any, expected_bytes: int, field: str) -> bytes:
    if not isinstance(value, str) or not value:
        raise ProviderResponseError(f"Provider response missing {field}")
    try:
        material = bytes.fromhex(value)
    except ValueError:
        raise ProviderResponseError(f"Provider returned non-hex {field}")
    if len(material) < expected_bytes:
        raise ProviderResponseError(
            f"Provider returned {len(material)} bytes, expected {expected_bytes}"
        )
    return material[:expected_bytes]


def _entropy(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        entropy = float(value)
    except (TypeError, ValueError):
        raise ProviderResponseError(f"Provider returned invalid entropy: {value!r}")
    if not math.isfinite(entropy):
        raise ProviderResponseError(f"Provider returned non-finite entropy: {value!r}")
    return min(max(entropy, 0.0), 1.0)


class QKDProviderClient:
    """
    Issues keys from one external QKD provider.

    Raises:
        ProviderUnavailableError: connection failure or timeout
        KeyExhaustedError: provider has no entropy available (HTTP 503)
        ProviderResponseError: any other error status or malformed body
    """

    def __init__(
        self,
        provider: KeyProvider,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not provider.is_external:
            raise ValueError("QKDProviderClient requires an external provider")

        self.provider = provider
        self._api_key = api_key if api_key is not None else settings.qkd_api_key
        self._base_url = (base_url or _default_base_url(provider)).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.qkd_timeout
        self._http_client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
            )
        return self._http_client

    async def request_key(
        self,
        size_bits: int,
        transaction_id: str,
        purpose: str = DEFAULT_KEY_PURPOSE,
    ) -> ProviderKeyResponse:
        """
        Request fresh key material for one transaction.

        Args:
            size_bits: Requested key size in bits
            transaction_id: Correlation id forwarded to the provider
            purpose: What the key will protect, reported to providers that ask

        Returns:
            ProviderKeyResponse with decoded key bytes and entropy metadata
        """
        size_bytes = (size_bits + 7) // 8

        try:
            if self.provider is KeyProvider.QRYPT:
                response = await self._get_client().post(
                    f"{self._base_url}{QRYPT_ENTROPY_PATH}",
                    json={
                        "size": size_bytes,
                        "metadata": {
                            "transaction_id": transaction_id,
                            "purpose": purpose,
                        },
                    },
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
            else:
                response = await self._get_client().post(
                    f"{self._base_url}{QBITSHIELD_KEY_PATH}",
                    json={
                        "key_size": size_bits,
                        "algorithm": "BB84",
                        "transaction_id": transaction_id,
                    },
                    headers={"X-API-Key": self._api_key},
                )
        except httpx.TimeoutException as e:
            logger.error("%s request timeout: %s", self.provider.value, e)
            raise ProviderUnavailableError(f"{self.provider.value} request timed out")
        except httpx.TransportError as e:
            logger.error("Cannot connect to %s: %s", self.provider.value, e)
            raise ProviderUnavailableError(f"{self.provider.value} not reachable")

        data = self._check_response(response)

        if self.provider is KeyProvider.QRYPT:
            parsed = ProviderKeyResponse(
                key_material=_decode_hex(data.get("random"), size_bytes, "random"),
                algorithm="QRYPT-DQKD",
                provider="Qrypt",
                quantum_entropy=_entropy(data.get("entropy_level"), DEFAULT_QRYPT_ENTROPY),
            )
        else:
            parsed = ProviderKeyResponse(
                key_material=_decode_hex(data.get("key_material"), size_bytes, "key_material"),
                algorithm="BB84-QKD",
                provider="QbitShield",
                quantum_entropy=_entropy(data.get("quantum_fidelity"), DEFAULT_QBITSHIELD_FIDELITY),
                key_id=data.get("key_id"),
            )

        logger.info(
            "Received %d-bit key from %s for %s",
            size_bits, parsed.provider, transaction_id
        )
        return parsed

    def _check_response(self, response: httpx.Response) -> Dict[str, Any]:
        if response.status_code == 503:
            raise KeyExhaustedError(f"{self.provider.value} has insufficient quantum entropy")

        if response.status_code != 200:
            logger.error("%s key request failed: %s", self.provider.value, response.text)
            raise ProviderResponseError(
                f"{self.provider.value} key request failed: {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError:
            raise ProviderResponseError(f"{self.provider.value} returned invalid JSON")

        if not isinstance(data, dict):
            raise ProviderResponseError(f"{self.provider.value} returned unexpected payload")
        return data

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()

