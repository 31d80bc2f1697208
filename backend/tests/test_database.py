import hashlib
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from models import (
    Election,
    ElectionType,
    KeyMaterial,
    KeyProvider,
    TransactionMode,
    TransactionRecord,
    TransactionScenario,
    TransactionStatus,
    Vote,
    VoteOption,
)


def make_record(transaction_id="tx-1", mode=TransactionMode.QUANTUM, user_id="local",
                status=TransactionStatus.SUCCESS):
    now = datetime.now(timezone.utc)
    return TransactionRecord(
        transaction_id=transaction_id,
        user_id=user_id,
        scenario=TransactionScenario.BANKING_PAYMENT,
        mode=mode,
        status=status,
        intercepted=False,
        created_at=now,
        last_updated=now,
        amount=100.0,
        beneficiary="Alice",
        qber=0.02,
    )


def make_key(key_id="key-1", entropy=0.95, is_real=False):
    return KeyMaterial(
        key_id=key_id,
        size_bits=256,
        algorithm="CSPRNG-SIM",
        provider=KeyProvider.SIMULATION,
        generated_at=datetime.now(timezone.utc),
        quantum_entropy=entropy,
        is_real=is_real,
        key_bytes=b"\x42" * 32,
    )


def make_election(election_id="el-1", is_active=True, days_left=10):
    now = datetime.now(timezone.utc)
    return Election(
        id=election_id,
        type=ElectionType.LOCAL,
        name="Test Election",
        name_ro="Alegeri Test",
        starts_at=now - timedelta(days=1),
        ends_at=now + timedelta(days=days_left),
        options=[VoteOption("a", "Option A", "A"), VoteOption("b", "Option B")],
        is_active=is_active,
    )


def make_vote(vote_id="vote-1", election_id="el-1", token="#QV-0000AAAA"):
    return Vote(
        id=vote_id,
        election_id=election_id,
        election_name="Test Election",
        option_id="a",
        option_label="Option A",
        encrypted_payload="QKD:key-1:AAAA",
        quantum_key_id="key-1",
        receipt_token=token,
        created_at=datetime.now(timezone.utc),
        is_real_qkd=False,
        qber=0.03,
    )


class TestSchema:

    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, store):
        await store.init_database()
        assert await store.count_transactions() == 0

    @pytest.mark.asyncio
    async def test_foreign_keys_enforced(self, store):
        with pytest.raises(sqlite3.IntegrityError):
            async with store.transaction() as uow:
                await uow.insert_key(make_key(), "missing-transaction")
        assert await store.count_keys() == 0


class TestTransactions:

    @pytest.mark.asyncio
    async def test_insert_and_get(self, store):
        record = make_record()
        async with store.transaction() as uow:
            await uow.insert_transaction(record)

        loaded = await store.get_transaction("tx-1")
        assert loaded == record

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get_transaction("nope") is None

    @pytest.mark.asyncio
    async def test_list_and_count_by_mode(self, store):
        async with store.transaction() as uow:
            await uow.insert_transaction(make_record("q1"))
            await uow.insert_transaction(make_record("q2"))
            await uow.insert_transaction(make_record("n1", mode=TransactionMode.NORMAL))

        assert await store.count_transactions() == 3
        assert await store.count_transactions(TransactionMode.QUANTUM) == 2
        normal = await store.list_transactions(mode=TransactionMode.NORMAL)
        assert [r.transaction_id for r in normal] == ["n1"]

    @pytest.mark.asyncio
    async def test_list_by_user(self, store):
        async with store.transaction() as uow:
            await uow.insert_transaction(make_record("t1", user_id="u1"))
            await uow.insert_transaction(make_record("t2", user_id="u2"))

        records = await store.list_transactions(user_id="u2")
        assert [r.transaction_id for r in records] == ["t2"]

    @pytest.mark.asyncio
    async def test_failed_unit_rolls_back(self, store):
        with pytest.raises(RuntimeError):
            async with store.transaction() as uow:
                await uow.insert_transaction(make_record())
                raise RuntimeError("crash between writes")

        assert await store.get_transaction("tx-1") is None


class TestKeys:

    @pytest.mark.asyncio
    async def test_key_stored_as_hash(self, store):
        key = make_key()
        async with store.transaction() as uow:
            await uow.insert_transaction(make_record())
            await uow.insert_key(key, "tx-1")

        row = await store.get_key_by_transaction("tx-1")
        assert row["key_id"] == "key-1"
        assert row["key_material_hash"] == hashlib.sha256(b"\x42" * 32).hexdigest()
        assert row["provider"] == "SIMULATION"
        assert row["is_real"] is False
        assert row["used_at"] is not None
        assert "key_bytes" not in row

    @pytest.mark.asyncio
    async def test_cascade_delete(self, store):
        async with store.transaction() as uow:
            await uow.insert_transaction(make_record())
            await uow.insert_key(make_key(), "tx-1")

        async with store.connect() as db:
            await db.execute("DELETE FROM transactions WHERE transaction_id = ?", ("tx-1",))
            await db.commit()

        assert await store.get_key("key-1") is None

    @pytest.mark.asyncio
    async def test_key_statistics(self, store):
        async with store.transaction() as uow:
            await uow.insert_transaction(make_record("t1"))
            await uow.insert_transaction(make_record("t2"))
            await uow.insert_key(make_key("k1", entropy=0.90, is_real=True), "t1")
            await uow.insert_key(make_key("k2", entropy=0.96), "t2")

        assert await store.count_keys() == 2
        assert await store.count_keys(real_only=True) == 1
        assert await store.average_quantum_entropy() == pytest.approx(0.93)

    @pytest.mark.asyncio
    async def test_average_entropy_empty(self, store):
        assert await store.average_quantum_entropy() is None


class TestElectionsAndVotes:

    @pytest.mark.asyncio
    async def test_election_roundtrip(self, store):
        election = make_election()
        async with store.transaction() as uow:
            await uow.upsert_election(election)

        loaded = await store.get_election("el-1")
        assert loaded == election
        assert loaded.find_option("b").label == "Option B"

    @pytest.mark.asyncio
    async def test_upsert_replaces(self, store):
        async with store.transaction() as uow:
            await uow.upsert_election(make_election())
            await uow.upsert_election(make_election(is_active=False))

        assert await store.count_elections() == 1
        assert await store.list_elections(active_only=True) == []
        assert len(await store.list_elections(active_only=False)) == 1

    @pytest.mark.asyncio
    async def test_votes(self, store):
        async with store.transaction() as uow:
            await uow.insert_vote(make_vote("v1", "el-1", "#QV-00000001"))
            await uow.insert_vote(make_vote("v2", "el-2", "#QV-00000002"))

        assert await store.count_votes() == 2
        assert await store.count_votes("el-1") == 1
        assert [v.id for v in await store.list_votes("el-2")] == ["v2"]
        assert (await store.get_vote("v1")).receipt_token == "#QV-00000001"

    @pytest.mark.asyncio
    async def test_receipt_tokens_unique(self, store):
        with pytest.raises(sqlite3.IntegrityError):
            async with store.transaction() as uow:
                await uow.insert_vote(make_vote("v1", token="#QV-DEADBEEF"))
                await uow.insert_vote(make_vote("v2", token="#QV-DEADBEEF"))
        assert await store.count_votes() == 0


class TestAuditLog:

    @pytest.mark.asyncio
    async def test_events_filtered_by_type(self, store):
        async with store.transaction() as uow:
            await uow.log_audit_event("eavesdrop_detected", {"qber": 0.2})
            await uow.log_audit_event("key_generation_failed", {"kind": "NETWORK"})

        events = await store.list_audit_events("eavesdrop_detected")
        assert len(events) == 1
        assert events[0]["event_data"] == {"qber": 0.2}
        assert len(await store.list_audit_events()) == 2
