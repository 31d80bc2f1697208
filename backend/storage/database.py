import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import aiosqlite

from models import (
    Election,
    ElectionType,
    KeyMaterial,
    TransactionMode,
    TransactionRecord,
    TransactionScenario,
    TransactionStatus,
    Vote,
    VoteOption,
)

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 30.0


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_transaction(row: aiosqlite.Row) -> TransactionRecord:
    return TransactionRecord(
        transaction_id=row["transaction_id"],
        user_id=row["user_id"],
        scenario=TransactionScenario(row["scenario"]),
        mode=TransactionMode(row["mode"]),
        status=TransactionStatus(row["status"]),
        intercepted=bool(row["intercepted"]),
        created_at=_parse_ts(row["created_at"]),
        last_updated=_parse_ts(row["last_updated"]),
        amount=row["amount"],
        beneficiary=row["beneficiary"],
        patient_id=row["patient_id"],
        access_reason=row["access_reason"],
        qber=row["qber"],
    )


def _row_to_key(row: aiosqlite.Row) -> Dict[str, Any]:
    return {
        "key_id": row["key_id"],
        "transaction_id": row["transaction_id"],
        "key_material_hash": row["key_material_hash"],
        "key_size": row["key_size"],
        "algorithm": row["algorithm"],
        "provider": row["provider"],
        "generated_at": _parse_ts(row["generated_at"]),
        "quantum_entropy": row["quantum_entropy"],
        "is_real": bool(row["is_real"]),
        "used_at": _parse_ts(row["used_at"]),
    }


def _row_to_election(row: aiosqlite.Row) -> Election:
    return Election(
        id=row["id"],
        type=ElectionType(row["type"]),
        name=row["name"],
        name_ro=row["name_ro"],
        starts_at=_parse_ts(row["starts_at"]),
        ends_at=_parse_ts(row["ends_at"]),
        options=[
            VoteOption(
                id=option["id"],
                label=option["label"],
                short_label=option.get("short_label"),
            )
            for option in json.loads(row["options_json"])
        ],
        is_active=bool(row["is_active"]),
    )


def _row_to_vote(row: aiosqlite.Row) -> Vote:
    return Vote(
        id=row["id"],
        election_id=row["election_id"],
        election_name=row["election_name"],
        option_id=row["option_id"],
        option_label=row["option_label"],
        encrypted_payload=row["encrypted_payload"],
        quantum_key_id=row["quantum_key_id"],
        receipt_token=row["receipt_token"],
        created_at=_parse_ts(row["created_at"]),
        is_real_qkd=bool(row["is_real_qkd"]),
        eve_detected=bool(row["eve_detected"]),
        qber=row["qber"],
    )


class UnitOfWork:
    """
    Writes bound to one connection and one SQLite transaction.

    Nothing written here is visible to other connections until the enclosing
    Database.transaction() block exits cleanly.
    """

    def __init__(self, connection: aiosqlite.Connection):
        self._db = connection

    async def insert_transaction(self, record: TransactionRecord) -> None:
        await self._db.execute("""
            INSERT INTO transactions (
                transaction_id, user_id, scenario, mode, status, intercepted,
                amount, beneficiary, patient_id, access_reason, qber,
                created_at, last_updated
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.transaction_id,
            record.user_id,
            record.scenario.value,
            record.mode.value,
            record.status.value,
            int(record.intercepted),
            record.amount,
            record.beneficiary,
            record.patient_id,
            record.access_reason,
            record.qber,
            _ts(record.created_at),
            _ts(record.last_updated),
        ))

    async def insert_key(
        self,
        key: KeyMaterial,
        transaction_id: str,
        used_at: Optional[datetime] = None,
    ) -> None:
        await self._db.execute("""
            INSERT INTO quantum_keys (
                key_id, transaction_id, key_material_hash, key_size, algorithm,
                provider, generated_at, quantum_entropy, is_real, used_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            key.key_id,
            transaction_id,
            key.material_hash,
            key.size_bits,
            key.algorithm,
            key.provider.value,
            _ts(key.generated_at),
            key.quantum_entropy,
            int(key.is_real),
            _ts(used_at or datetime.now(timezone.utc)),
        ))

    async def insert_vote(self, vote: Vote) -> None:
        await self._db.execute("""
            INSERT INTO votes (
                id, election_id, election_name, option_id, option_label,
                encrypted_payload, quantum_key_id, receipt_token, created_at,
                is_real_qkd, eve_detected, qber
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            vote.id,
            vote.election_id,
            vote.election_name,
            vote.option_id,
            vote.option_label,
            vote.encrypted_payload,
            vote.quantum_key_id,
            vote.receipt_token,
            _ts(vote.created_at),
            int(vote.is_real_qkd),
            int(vote.eve_detected),
            vote.qber,
        ))

    async def upsert_election(self, election: Election) -> None:
        options = [
            {"id": o.id, "label": o.label, "short_label": o.short_label}
            for o in election.options
        ]
        await self._db.execute("""
            INSERT INTO elections (id, type, name, name_ro, starts_at, ends_at, options_json, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                type = excluded.type,
                name = excluded.name,
                name_ro = excluded.name_ro,
                starts_at = excluded.starts_at,
                ends_at = excluded.ends_at,
                options_json = excluded.options_json,
                is_active = excluded.is_active
        """, (
            election.id,
            election.type.value,
            election.name,
            election.name_ro,
            _ts(election.starts_at),
            _ts(election.ends_at),
            json.dumps(options),
            int(election.is_active),
        ))

    async def log_audit_event(self, event_type: str, event_data: Dict[str, Any]) -> None:
        await self._db.execute(
            "INSERT INTO audit_log (event_type, event_data) VALUES (?, ?)",
            (event_type, json.dumps(event_data))
        )


class Database:
    """
    Local durable store.

    Each unit of work gets its own connection, so concurrent pipelines never
    share a SQLite transaction.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        db = await aiosqlite.connect(self._path, timeout=BUSY_TIMEOUT_SECONDS)
        db.row_factory = aiosqlite.Row
        try:
            await db.execute("PRAGMA foreign_keys = ON")
            yield db
        finally:
            await db.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[UnitOfWork]:
        """Commit every write in the block together, or none of them."""
        async with self.connect() as db:
            try:
                yield UnitOfWork(db)
            except BaseException:
                await db.rollback()
                raise
            await db.commit()

    async def init_database(self) -> None:
        async with self.connect() as db:
            await db.execute("PRAGMA journal_mode = WAL")

            await db.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    transaction_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    scenario TEXT NOT NULL,
                    mode TEXT NOT NULL,
                    status TEXT NOT NULL,
                    intercepted BOOLEAN NOT NULL DEFAULT 0,
                    amount REAL,
                    beneficiary TEXT,
                    patient_id TEXT,
                    access_reason TEXT,
                    qber REAL,
                    created_at TIMESTAMP NOT NULL,
                    last_updated TIMESTAMP NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS quantum_keys (
                    key_id TEXT PRIMARY KEY,
                    transaction_id TEXT NOT NULL
                        REFERENCES transactions(transaction_id) ON DELETE CASCADE,
                    key_material_hash TEXT NOT NULL,
                    key_size INTEGER NOT NULL,
                    algorithm TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    generated_at TIMESTAMP NOT NULL,
                    quantum_entropy REAL NOT NULL,
                    is_real BOOLEAN NOT NULL DEFAULT 0,
                    used_at TIMESTAMP
                )
            """)

            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_quantum_keys_transaction ON quantum_keys(transaction_id)"
            )
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_quantum_keys_is_real ON quantum_keys(is_real)"
            )

            await db.execute("""
                CREATE TABLE IF NOT EXISTS elections (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    name_ro TEXT,
                    starts_at TIMESTAMP NOT NULL,
                    ends_at TIMESTAMP NOT NULL,
                    options_json TEXT NOT NULL DEFAULT '[]',
                    is_active BOOLEAN NOT NULL DEFAULT 1
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS votes (
                    id TEXT PRIMARY KEY,
                    election_id TEXT NOT NULL,
                    election_name TEXT NOT NULL,
                    option_id TEXT NOT NULL,
                    option_label TEXT NOT NULL,
                    encrypted_payload TEXT NOT NULL,
                    quantum_key_id TEXT NOT NULL,
                    receipt_token TEXT UNIQUE NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    is_real_qkd BOOLEAN NOT NULL DEFAULT 0,
                    eve_detected BOOLEAN NOT NULL DEFAULT 0,
                    qber REAL
                )
            """)

            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_votes_election ON votes(election_id)"
            )

            await db.execute("""
                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_type TEXT NOT NULL,
                    event_data TEXT,
                    timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await db.commit()
        logger.info("Database schema initialized at %s", self._path)

    async def _fetchone(self, query: str, params: tuple = ()) -> Optional[aiosqlite.Row]:
        async with self.connect() as db:
            cursor = await db.execute(query, params)
            return await cursor.fetchone()

    async def _fetchall(self, query: str, params: tuple = ()) -> List[aiosqlite.Row]:
        async with self.connect() as db:
            cursor = await db.execute(query, params)
            return list(await cursor.fetchall())

    async def get_transaction(self, transaction_id: str) -> Optional[TransactionRecord]:
        row = await self._fetchone(
            "SELECT * FROM transactions WHERE transaction_id = ?",
            (transaction_id,)
        )
        return _row_to_transaction(row) if row else None

    async def list_transactions(
        self,
        mode: Optional[TransactionMode] = None,
        user_id: Optional[str] = None,
    ) -> List[TransactionRecord]:
        clauses, params = [], []
        if mode is not None:
            clauses.append("mode = ?")
            params.append(mode.value)
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self._fetchall(
            f"SELECT * FROM transactions {where} ORDER BY created_at DESC",
            tuple(params)
        )
        return [_row_to_transaction(row) for row in rows]

    async def count_transactions(self, mode: Optional[TransactionMode] = None) -> int:
        if mode is None:
            row = await self._fetchone("SELECT COUNT(*) FROM transactions")
        else:
            row = await self._fetchone(
                "SELECT COUNT(*) FROM transactions WHERE mode = ?",
                (mode.value,)
            )
        return row[0]

    async def get_key(self, key_id: str) -> Optional[Dict[str, Any]]:
        row = await self._fetchone("SELECT * FROM quantum_keys WHERE key_id = ?", (key_id,))
        return _row_to_key(row) if row else None

    async def get_key_by_transaction(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        row = await self._fetchone(
            "SELECT * FROM quantum_keys WHERE transaction_id = ?",
            (transaction_id,)
        )
        return _row_to_key(row) if row else None

    async def count_keys(self, real_only: bool = False) -> int:
        query = "SELECT COUNT(*) FROM quantum_keys"
        if real_only:
            query += " WHERE is_real = 1"
        row = await self._fetchone(query)
        return row[0]

    async def average_quantum_entropy(self) -> Optional[float]:
        row = await self._fetchone("SELECT AVG(quantum_entropy) FROM quantum_keys")
        return row[0]

    async def get_election(self, election_id: str) -> Optional[Election]:
        row = await self._fetchone("SELECT * FROM elections WHERE id = ?", (election_id,))
        return _row_to_election(row) if row else None

    async def list_elections(self, active_only: bool = True) -> List[Election]:
        query = "SELECT * FROM elections"
        if active_only:
            query += " WHERE is_active = 1"
        rows = await self._fetchall(query + " ORDER BY ends_at DESC")
        return [_row_to_election(row) for row in rows]

    async def count_elections(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) FROM elections")
        return row[0]

    async def get_vote(self, vote_id: str) -> Optional[Vote]:
        row = await self._fetchone("SELECT * FROM votes WHERE id = ?", (vote_id,))
        return _row_to_vote(row) if row else None

    async def list_votes(self, election_id: Optional[str] = None) -> List[Vote]:
        if election_id is None:
            rows = await self._fetchall("SELECT * FROM votes ORDER BY created_at DESC")
        else:
            rows = await self._fetchall(
                "SELECT * FROM votes WHERE election_id = ? ORDER BY created_at DESC",
                (election_id,)
            )
        return [_row_to_vote(row) for row in rows]

    async def count_votes(self, election_id: Optional[str] = None) -> int:
        if election_id is None:
            row = await self._fetchone("SELECT COUNT(*) FROM votes")
        else:
            row = await self._fetchone(
                "SELECT COUNT(*) FROM votes WHERE election_id = ?",
                (election_id,)
            )
        return row[0]

    async def list_audit_events(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        if event_type is None:
            rows = await self._fetchall("SELECT * FROM audit_log ORDER BY id")
        else:
            rows = await self._fetchall(
                "SELECT * FROM audit_log WHERE event_type = ? ORDER BY id",
                (event_type,)
            )
        return [
            {
                "event_type": row["event_type"],
                "event_data": json.loads(row["event_data"]) if row["event_data"] else {},
                "timestamp": row["timestamp"],
            }
            for row in rows
        ]
