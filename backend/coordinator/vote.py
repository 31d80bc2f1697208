"""
Vote Coordinator

Casts a ballot only over a clean quantum channel. A detected eavesdropper
stops the vote before anything is written.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from models import (
    Election,
    ElectionType,
    PipelineError,
    Result,
    SecurityAbortError,
    UnknownPipelineError,
    ValidationError,
    Vote,
    VoteOption,
    VoteReceipt,
)
from quantum_engine import EveDetector, KeyGenerator, seal_ballot
from quantum_engine.secure_random import generate_key_id, generate_receipt_token
from storage import Database

logger = logging.getLogger(__name__)

BALLOT_KEY_PURPOSE = "ballot_encryption"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_elections(now: datetime) -> List[Election]:
    """The catalogue installed on an empty store."""
    day = timedelta(days=1)
    return [
        Election(
            id="pres-2024",
            type=ElectionType.PRESIDENTIAL,
            name="Presidential Election 2024",
            name_ro="Alegeri Prezidențiale 2024",
            starts_at=now - 30 * day,
            ends_at=now + 60 * day,
            options=[
                VoteOption("cand-a", "Maria Popescu", "Popescu"),
                VoteOption("cand-b", "Ion Ionescu", "Ionescu"),
                VoteOption("cand-c", "Ana Maria Vasilescu", "Vasilescu"),
            ],
        ),
        Election(
            id="parl-2024",
            type=ElectionType.PARLIAMENTARY,
            name="Parliamentary Election 2024",
            name_ro="Alegeri Parlamentare 2024",
            starts_at=now - 15 * day,
            ends_at=now + 90 * day,
            options=[
                VoteOption("party-x", "Partidul Verde", "Verde"),
                VoteOption("party-y", "Alianța pentru Dezvoltare", "APD"),
                VoteOption("party-z", "Mișcarea Civică", "MC"),
            ],
        ),
        Election(
            id="local-2024",
            type=ElectionType.LOCAL,
            name="Local Elections 2024",
            name_ro="Alegeri Locale 2024",
            starts_at=now - 7 * day,
            ends_at=now + 30 * day,
            options=[
                VoteOption("mayor-1", "Primar Sector 1 - Lista A", "Lista A"),
                VoteOption("mayor-2", "Primar Sector 1 - Lista B", "Lista B"),
            ],
        ),
    ]


class VoteCoordinator:

    def __init__(
        self,
        store: Database,
        key_generator: KeyGenerator,
        detector: EveDetector,
        key_size_bits: int = 256,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._key_generator = key_generator
        self._detector = detector
        self._key_size_bits = key_size_bits
        self._clock = clock

    async def cast_vote(
        self,
        election_id: str,
        option_id: str,
        simulate_eve: bool = False,
    ) -> Result[VoteReceipt]:
        """
        Cast one ballot.

        Args:
            election_id: Election to vote in
            option_id: Chosen option of that election
            simulate_eve: Inject an eavesdropper on the key exchange

        Returns:
            Result holding the VoteReceipt, or the PipelineError that stopped
            the vote. Nothing is stored unless the result is a success.
        """
        now = self._clock()

        election = await self._store.get_election(election_id)
        if election is None:
            return Result.failure(ValidationError(f"Unknown election: {election_id}"))
        if not election.is_open(now):
            return Result.failure(
                ValidationError(f"Election {election_id} is not open for voting")
            )
        option = election.find_option(option_id)
        if option is None:
            return Result.failure(
                ValidationError(f"Option {option_id} is not on the ballot of {election_id}")
            )

        vote_id = generate_key_id()
        correlation_id = f"vote-{election_id}-{vote_id}"

        try:
            key_result = await self._key_generator.generate_key(
                self._key_size_bits, correlation_id, BALLOT_KEY_PURPOSE
            )
            if not key_result.ok:
                logger.error("Key generation for %s failed: %s", correlation_id, key_result.error.message)
                return Result.failure(key_result.error)
            key = key_result.value

            detection = self._detector.detect(key.quantum_entropy, key.size_bits, simulate_eve)
            if detection.is_intercepted:
                logger.warning("Vote %s aborted, QBER %s", correlation_id, detection.qber_percent)
                return Result.failure(
                    SecurityAbortError(
                        detection.qber,
                        f"Eavesdropping detected (QBER: {detection.qber_percent}). "
                        "Vote aborted for your security.",
                    )
                )

            vote = Vote(
                id=vote_id,
                election_id=election.id,
                election_name=election.name,
                option_id=option.id,
                option_label=option.label,
                encrypted_payload=seal_ballot(key, vote_id, election.id, option.id),
                quantum_key_id=key.key_id,
                receipt_token=generate_receipt_token(),
                created_at=now,
                is_real_qkd=key.is_real,
                eve_detected=False,
                qber=detection.qber,
            )

            async with self._store.transaction() as uow:
                await uow.insert_vote(vote)
        except PipelineError as e:
            return Result.failure(e)
        except Exception as e:
            logger.exception("Vote %s failed unexpectedly", correlation_id)
            return Result.failure(UnknownPipelineError(str(e) or type(e).__name__))

        logger.info("Vote %s recorded for %s", vote.id, election.id)
        return Result.success(
            VoteReceipt(
                vote_id=vote.id,
                election_id=election.id,
                election_name=election.name,
                receipt_token=vote.receipt_token,
                created_at=vote.created_at,
                quantum_secured=key.is_real,
            )
        )

    async def seed_elections_if_needed(self) -> int:
        """Install the default catalogue into an empty store. Returns the count added."""
        if await self._store.count_elections() > 0:
            return 0

        elections = default_elections(self._clock())
        async with self._store.transaction() as uow:
            for election in elections:
                await uow.upsert_election(election)

        logger.info("Seeded %d elections", len(elections))
        return len(elections)

    async def get_active_elections(self) -> List[Election]:
        return await self._store.list_elections(active_only=True)

    async def get_election(self, election_id: str) -> Optional[Election]:
        return await self._store.get_election(election_id)

    async def get_vote_history(self, election_id: Optional[str] = None) -> List[Vote]:
        return await self._store.list_votes(election_id)
