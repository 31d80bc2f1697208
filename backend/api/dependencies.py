import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from coordinator import TransactionCoordinator, VoteCoordinator
from models import ErrorKind, PipelineError

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NETWORK: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.PROVIDER: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.SECURITY_ABORT: status.HTTP_409_CONFLICT,
    ErrorKind.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_transaction_coordinator(request: Request) -> TransactionCoordinator:
    return request.app.state.transaction_coordinator


def get_vote_coordinator(request: Request) -> VoteCoordinator:
    return request.app.state.vote_coordinator


TransactionsDep = Annotated[TransactionCoordinator, Depends(get_transaction_coordinator)]
VotesDep = Annotated[VoteCoordinator, Depends(get_vote_coordinator)]


def status_for(error: PipelineError) -> int:
    return ERROR_STATUS.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def raise_for_error(error: PipelineError) -> None:
    """Translate a pipeline failure into an HTTP error response."""
    code = status_for(error)
    if code >= 500:
        logger.error("Request failed with %s: %s", error.kind.value, error.message)
    raise HTTPException(status_code=code, detail=error.to_dict())
