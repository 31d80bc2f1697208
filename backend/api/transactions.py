"""
Transaction API Routes

Submits banking payments and medical record access requests to the quantum
pipeline and streams its progress back as NDJSON.
"""

import json
import logging
from datetime import datetime
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies import TransactionsDep, raise_for_error
from coordinator import TransactionRun, validate_transaction_request
from models import (
    TransactionMode,
    TransactionRequest,
    TransactionScenario,
    TransactionStatus,
    ValidationError,
)

logger = logging.getLogger(__name__)
router = APIRouter()


class TransactionCreate(BaseModel):
    """Request to run one transaction through the pipeline."""
    scenario: TransactionScenario
    mode: TransactionMode = TransactionMode.QUANTUM
    amount: Optional[float] = None
    beneficiary: Optional[str] = None
    patient_id: Optional[str] = None
    access_reason: Optional[str] = None
    simulate_attack: bool = False
    user_id: str = Field(default="local", min_length=1)

    def to_request(self) -> TransactionRequest:
        return TransactionRequest(**self.model_dump())


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    user_id: str
    scenario: TransactionScenario
    mode: TransactionMode
    status: TransactionStatus
    intercepted: bool
    created_at: datetime
    last_updated: datetime
    amount: Optional[float] = None
    beneficiary: Optional[str] = None
    patient_id: Optional[str] = None
    access_reason: Optional[str] = None
    qber: Optional[float] = None


class TransactionListResponse(BaseModel):
    transactions: List[TransactionOut]
    total: int


class QuantumStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_quantum_transactions: int
    real_qkd_transactions: int
    average_quantum_entropy: float
    provider: str


def _line(payload: dict) -> str:
    return json.dumps(payload) + "\n"


async def _ndjson(run: TransactionRun) -> AsyncIterator[str]:
    async for step in run:
        yield _line({"type": "step", **step.to_dict()})

    result = run.result
    if result is None:
        return
    if result.ok:
        record = TransactionOut.model_validate(result.value)
        yield _line({"type": "result", "ok": True, "transaction": record.model_dump(mode="json")})
    else:
        yield _line({"type": "result", "ok": False, "error": result.error.to_dict()})


@router.post("")
async def create_transaction(body: TransactionCreate, coordinator: TransactionsDep):
    """
    Run a transaction and stream its progress.

    Each line of the response is a JSON object: one ``step`` line per pipeline
    stage, then a single ``result`` line. Invalid requests are rejected with
    422 before the stream starts.
    """
    request = body.to_request()
    try:
        validate_transaction_request(request)
    except ValidationError as e:
        raise_for_error(e)

    run = coordinator.stream_transaction(request)
    return StreamingResponse(_ndjson(run), media_type="application/x-ndjson")


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    coordinator: TransactionsDep,
    mode: Optional[TransactionMode] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
):
    records = await coordinator.list_transactions(mode=mode, user_id=user_id)
    return TransactionListResponse(
        transactions=[TransactionOut.model_validate(r) for r in records],
        total=len(records),
    )


@router.get("/stats", response_model=QuantumStatsOut)
async def get_quantum_stats(coordinator: TransactionsDep):
    """Quantum transaction counts and key quality for the dashboard."""
    stats = await coordinator.get_quantum_stats()
    return QuantumStatsOut.model_validate(stats)


@router.get("/{transaction_id}", response_model=TransactionOut)
async def get_transaction(transaction_id: str, coordinator: TransactionsDep):
    record = await coordinator.get_transaction(transaction_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transaction not found",
        )
    return TransactionOut.model_validate(record)
