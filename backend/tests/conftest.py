import os
import sys
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="quantumaccess-test-"))
os.environ.setdefault("QKD_PROVIDER", "SIMULATION")
os.environ.setdefault("REMOTE_SYNC_ENABLED", "false")
os.environ.setdefault("EVE_SIMULATION_ENABLED", "false")


@pytest.fixture
def sample_plaintext():
    return b"Transfer 100.00 RON to Alice, reference QA-2024-0001"


@pytest.fixture
def large_plaintext():
    return os.urandom(10000)


@pytest.fixture
def aes_key():
    return os.urandom(32)


@pytest.fixture
def banking_request():
    from models import TransactionRequest, TransactionScenario

    return TransactionRequest(
        scenario=TransactionScenario.BANKING_PAYMENT,
        amount=100.0,
        beneficiary="Alice",
    )


@pytest.fixture
def medical_request():
    from models import TransactionRequest, TransactionScenario

    return TransactionRequest(
        scenario=TransactionScenario.MEDICAL_RECORD_ACCESS,
        patient_id="P-1042",
        access_reason="Emergency consult",
    )


@pytest_asyncio.fixture
async def store(tmp_path):
    from storage import Database

    db = Database(tmp_path / "test.db")
    await db.init_database()
    return db
