"""
Remote Mirror Client

Best-effort replication of committed transactions and key metadata to a
PostgREST-style backend. Failures raise RemoteSyncError; whether they matter
is the caller's decision.
"""

import logging
from typing import Optional

import httpx
from pydantic import BaseModel

from .models import QuantumKeyMetadataDto, TransactionDto

logger = logging.getLogger(__name__)

TRANSACTIONS_PATH = "/rest/v1/transactions"
QUANTUM_KEYS_PATH = "/rest/v1/quantum_keys"


class RemoteSyncError(Exception):
    """Mirror unreachable or rejected the row."""
    pass


class RemoteMirror:

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._http_client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def _headers(self) -> dict:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Prefer": "return=minimal",
        }

    async def _post(self, path: str, row: BaseModel) -> None:
        try:
            response = await self._get_client().post(
                f"{self._base_url}{path}",
                json=row.model_dump(mode="json"),
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise RemoteSyncError(f"Mirror request to {path} failed: {e}")

        if response.status_code not in (200, 201, 204):
            raise RemoteSyncError(
                f"Mirror rejected {path}: {response.status_code} {response.text}"
            )

    async def create_transaction(self, dto: TransactionDto) -> None:
        await self._post(TRANSACTIONS_PATH, dto)
        logger.debug("Mirrored transaction %s", dto.transaction_id)

    async def create_key_metadata(self, dto: QuantumKeyMetadataDto) -> None:
        await self._post(QUANTUM_KEYS_PATH, dto)
        logger.debug("Mirrored key metadata %s", dto.key_id)

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
