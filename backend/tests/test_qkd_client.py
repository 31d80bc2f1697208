import json

import httpx
import pytest

from models import KeyProvider
from qkd_client import (
    KeyExhaustedError,
    ProviderResponseError,
    ProviderUnavailableError,
    QKDProviderClient,
)


def make_client(provider, handler, api_key="test-key"):
    base_url = "https://qrypt.test" if provider is KeyProvider.QRYPT else "https://qbitshield.test"
    return QKDProviderClient(
        provider,
        api_key=api_key,
        base_url=base_url,
        timeout=5.0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestQryptClient:

    @pytest.mark.asyncio
    async def test_request_shape_and_parsing(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"random": "ab" * 32, "entropy_level": 0.97})

        client = make_client(KeyProvider.QRYPT, handler)
        response = await client.request_key(256, "tx-1")

        assert seen["url"] == "https://qrypt.test/api/v1/quantum-entropy"
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["size"] == 32
        assert seen["body"]["metadata"]["transaction_id"] == "tx-1"
        assert response.key_material == bytes.fromhex("ab" * 32)
        assert response.quantum_entropy == 0.97
        assert response.algorithm == "QRYPT-DQKD"
        assert response.key_id is None

    @pytest.mark.asyncio
    async def test_missing_entropy_uses_default(self):
        def handler(request):
            return httpx.Response(200, json={"random": "00" * 32})

        response = await make_client(KeyProvider.QRYPT, handler).request_key(256, "tx-2")
        assert response.quantum_entropy == 0.95

    @pytest.mark.asyncio
    async def test_longer_material_is_truncated(self):
        def handler(request):
            return httpx.Response(200, json={"random": "11" * 64})

        response = await make_client(KeyProvider.QRYPT, handler).request_key(256, "tx-3")
        assert len(response.key_material) == 32


class TestQbitShieldClient:

    @pytest.mark.asyncio
    async def test_request_shape_and_parsing(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["api_key"] = request.headers.get("X-API-Key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "key_id": "qbs-key-1",
                "key_material": "cd" * 32,
                "quantum_fidelity": 0.991,
            })

        client = make_client(KeyProvider.QBITSHIELD, handler)
        response = await client.request_key(256, "tx-4")

        assert seen["url"] == "https://qbitshield.test/v1/qkd/key"
        assert seen["api_key"] == "test-key"
        assert seen["body"] == {"key_size": 256, "algorithm": "BB84", "transaction_id": "tx-4"}
        assert response.key_id == "qbs-key-1"
        assert response.quantum_entropy == 0.991
        assert response.algorithm == "BB84-QKD"


class TestClientErrors:

    def test_simulation_is_rejected(self):
        with pytest.raises(ValueError):
            QKDProviderClient(KeyProvider.SIMULATION)

    @pytest.mark.asyncio
    async def test_503_is_key_exhausted(self):
        client = make_client(KeyProvider.QRYPT, lambda r: httpx.Response(503))
        with pytest.raises(KeyExhaustedError):
            await client.request_key(256, "tx")

    @pytest.mark.asyncio
    async def test_error_status(self):
        client = make_client(KeyProvider.QBITSHIELD, lambda r: httpx.Response(401, text="bad key"))
        with pytest.raises(ProviderResponseError, match="401"):
            await client.request_key(256, "tx")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = make_client(KeyProvider.QRYPT, lambda r: httpx.Response(200, text="not json"))
        with pytest.raises(ProviderResponseError, match="invalid JSON"):
            await client.request_key(256, "tx")

    @pytest.mark.asyncio
    async def test_missing_material(self):
        client = make_client(KeyProvider.QBITSHIELD, lambda r: httpx.Response(200, json={"key_id": "k"}))
        with pytest.raises(ProviderResponseError, match="missing key_material"):
            await client.request_key(256, "tx")

    @pytest.mark.asyncio
    async def test_non_hex_material(self):
        client = make_client(KeyProvider.QRYPT, lambda r: httpx.Response(200, json={"random": "zz" * 32}))
        with pytest.raises(ProviderResponseError, match="non-hex"):
            await client.request_key(256, "tx")

    @pytest.mark.asyncio
    async def test_short_material(self):
        client = make_client(KeyProvider.QRYPT, lambda r: httpx.Response(200, json={"random": "ab" * 8}))
        with pytest.raises(ProviderResponseError, match="expected 32"):
            await client.request_key(256, "tx")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(KeyProvider.QRYPT, handler)
        with pytest.raises(ProviderUnavailableError, match="not reachable"):
            await client.request_key(256, "tx")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        client = make_client(KeyProvider.QBITSHIELD, handler)
        with pytest.raises(ProviderUnavailableError, match="timed out"):
            await client.request_key(256, "tx")


class TestUntrustedValues:

    @pytest.mark.asyncio
    async def test_purpose_is_forwarded(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"random": "ab" * 32})

        client = make_client(KeyProvider.QRYPT, handler)
        await client.request_key(256, "tx-5", "medical_record_access_encryption")

        assert seen["body"]["metadata"]["purpose"] == "medical_record_access_encryption"

    @pytest.mark.asyncio
    async def test_default_purpose(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"random": "ab" * 32})

        await make_client(KeyProvider.QRYPT, handler).request_key(256, "tx-6")

        assert seen["body"]["metadata"]["purpose"] == "transaction_encryption"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
    async def test_non_finite_fidelity_rejected(self, value):
        body = '{"key_id": "k", "key_material": "%s", "quantum_fidelity": %s}' % ("cd" * 32, value)

        def handler(request):
            return httpx.Response(
                200, content=body.encode(), headers={"content-type": "application/json"}
            )

        client = make_client(KeyProvider.QBITSHIELD, handler)
        with pytest.raises(ProviderResponseError, match="non-finite"):
            await client.request_key(256, "tx")

    @pytest.mark.asyncio
    async def test_non_finite_entropy_level_rejected(self):
        body = '{"random": "%s", "entropy_level": NaN}' % ("ab" * 32)

        def handler(request):
            return httpx.Response(
                200, content=body.encode(), headers={"content-type": "application/json"}
            )

        with pytest.raises(ProviderResponseError, match="non-finite"):
            await make_client(KeyProvider.QRYPT, handler).request_key(256, "tx")
