"""
Election and Vote API Routes
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict

from api.dependencies import VotesDep, raise_for_error
from models import ElectionType

logger = logging.getLogger(__name__)
router = APIRouter()
votes_router = APIRouter()


class VoteOptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    short_label: Optional[str] = None


class ElectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: ElectionType
    name: str
    name_ro: Optional[str] = None
    starts_at: datetime
    ends_at: datetime
    options: List[VoteOptionOut]
    is_active: bool


class CastVoteRequest(BaseModel):
    option_id: str
    simulate_eve: bool = False


class VoteReceiptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    vote_id: str
    election_id: str
    election_name: str
    receipt_token: str
    created_at: datetime
    quantum_secured: bool


class VoteOut(BaseModel):
    """A stored ballot; the sealed payload is not returned."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    election_id: str
    election_name: str
    option_id: str
    option_label: str
    quantum_key_id: str
    receipt_token: str
    created_at: datetime
    is_real_qkd: bool
    eve_detected: bool
    qber: Optional[float] = None


@router.get("", response_model=List[ElectionOut])
async def list_elections(coordinator: VotesDep):
    elections = await coordinator.get_active_elections()
    return [ElectionOut.model_validate(e) for e in elections]


@router.get("/{election_id}", response_model=ElectionOut)
async def get_election(election_id: str, coordinator: VotesDep):
    election = await coordinator.get_election(election_id)
    if election is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Election not found",
        )
    return ElectionOut.model_validate(election)


@router.post(
    "/{election_id}/votes",
    response_model=VoteReceiptOut,
    status_code=status.HTTP_201_CREATED,
)
async def cast_vote(election_id: str, body: CastVoteRequest, coordinator: VotesDep):
    """
    Cast a ballot over a fresh quantum key.

    Responds 409 when an eavesdropper is detected; the vote is not recorded.
    """
    result = await coordinator.cast_vote(election_id, body.option_id, body.simulate_eve)
    if not result.ok:
        raise_for_error(result.error)
    return VoteReceiptOut.model_validate(result.value)


@votes_router.get("", response_model=List[VoteOut])
async def get_vote_history(
    coordinator: VotesDep,
    election_id: Optional[str] = Query(default=None),
):
    votes = await coordinator.get_vote_history(election_id)
    return [VoteOut.model_validate(v) for v in votes]
