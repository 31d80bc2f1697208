"""
Transaction Coordinator

Runs one sensitive operation through the quantum key pipeline:

    INIT → KEY_GEN → EVE_CHECK → ABORT
                              ↓
                           ENCRYPT → PERSIST_RECORD → PERSIST_KEY → SYNC → DONE

Every run reports its progress as a sequence of ProcessSteps ending in exactly
one terminal step, and returns a Result. The transaction record and its key
are committed together; remote sync afterwards is best effort.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from models import (
    STAGE_PROGRESS,
    DetectionResult,
    ErrorKind,
    KeyMaterial,
    PipelineError,
    PipelineStage,
    ProcessStep,
    QuantumStats,
    Result,
    SecurityAbortError,
    TransactionMode,
    TransactionRecord,
    TransactionRequest,
    TransactionStatus,
    UnknownPipelineError,
    ValidationError,
)
from quantum_engine import EveDetector, KeyGenerator
from quantum_engine.secure_random import generate_key_id
from remote_sync import QuantumKeyMetadataDto, RemoteMirror, TransactionDto
from storage import Database
from .validator import validate_transaction_request

logger = logging.getLogger(__name__)

StepSink = Callable[[ProcessStep], Union[None, Awaitable[None]]]

_FALLBACK_KINDS = (ErrorKind.NETWORK, ErrorKind.PROVIDER)


def key_purpose(request: TransactionRequest) -> str:
    """Purpose reported to the key provider, e.g. "banking_payment_encryption"."""
    return f"{request.scenario.value.lower()}_encryption"


class StepEmitter:
    """Delivers the steps of one run to its sink, in order."""

    def __init__(self, sink: Optional[StepSink] = None, delay: float = 0.0):
        self._sink = sink
        self._delay = delay
        self.last_progress = 0.0
        self.finished = False

    async def emit(
        self,
        stage: PipelineStage,
        status: str,
        detail: str,
        terminal: bool = False,
    ) -> None:
        if self.finished:
            raise RuntimeError("Run already reported its terminal step")

        progress = STAGE_PROGRESS[stage]
        step = ProcessStep(
            stage=stage,
            progress=max(progress, self.last_progress),
            status=status,
            detail=detail,
            is_terminal=terminal,
        )
        self.last_progress = step.progress
        self.finished = terminal

        if self._sink is not None:
            delivered = self._sink(step)
            if inspect.isawaitable(delivered):
                await delivered

        if self._delay and not terminal:
            await asyncio.sleep(self._delay)

    async def fail(self, detail: str) -> None:
        await self.emit(PipelineStage.FAILED, "Failed", detail, terminal=True)


class TransactionCoordinator:
    """
    Orchestrates key generation, eavesdropper detection and persistence for
    banking payments and medical record access.
    """

    def __init__(
        self,
        store: Database,
        key_generator: KeyGenerator,
        detector: EveDetector,
        remote: Optional[RemoteMirror] = None,
        key_size_bits: int = 256,
        eve_simulation_enabled: bool = False,
        step_delay: float = 0.0,
        remote_timeout: float = 10.0,
        fallback_generator: Optional[KeyGenerator] = None,
    ):
        self._store = store
        self._key_generator = key_generator
        self._detector = detector
        self._remote = remote
        self._key_size_bits = key_size_bits
        self._eve_simulation_enabled = eve_simulation_enabled
        self._step_delay = step_delay
        self._remote_timeout = remote_timeout
        self._fallback_generator = fallback_generator

    async def process_transaction(
        self,
        request: TransactionRequest,
        on_step: Optional[StepSink] = None,
    ) -> Result[TransactionRecord]:
        """
        Run one transaction end to end.

        Args:
            request: The operation to secure
            on_step: Optional callback, sync or async, receiving each ProcessStep

        Returns:
            Result holding the committed TransactionRecord, or the PipelineError
            that stopped the run
        """
        try:
            validate_transaction_request(request)
        except ValidationError as e:
            logger.info("Rejected transaction request: %s", e.message)
            return Result.failure(e)

        transaction_id = generate_key_id()
        steps = StepEmitter(on_step, self._step_delay)

        try:
            if request.mode is TransactionMode.NORMAL:
                return await self._run_normal(request, transaction_id, steps)
            return await self._run_quantum(request, transaction_id, steps)
        except Exception as e:
            logger.exception("Transaction %s failed unexpectedly", transaction_id)
            if isinstance(e, PipelineError):
                error = e
            else:
                error = UnknownPipelineError(str(e) or type(e).__name__)

            if not steps.finished:
                try:
                    await steps.fail(error.message)
                except Exception:
                    logger.exception("Could not report failure of %s", transaction_id)
            return Result.failure(error)

    def stream_transaction(self, request: TransactionRequest) -> "TransactionRun":
        """Start a run whose steps are consumed by iterating the returned object."""
        return TransactionRun(self, request)

    async def _run_quantum(
        self,
        request: TransactionRequest,
        transaction_id: str,
        steps: StepEmitter,
    ) -> Result[TransactionRecord]:
        attack_enabled = request.simulate_attack or self._eve_simulation_enabled

        await steps.emit(
            PipelineStage.INIT,
            "Initializing secure channel",
            f"Preparing {request.scenario.value} for {request.counterparty}",
        )

        await steps.emit(
            PipelineStage.KEY_GEN,
            "Generating quantum key",
            f"Requesting {self._key_size_bits}-bit key from {self._key_generator.provider.value}",
        )
        key_result = await self._generate_key(transaction_id, key_purpose(request))
        if not key_result.ok:
            return await self._fail_key_generation(request, transaction_id, key_result.error, steps)
        key = key_result.value

        await steps.emit(
            PipelineStage.EVE_CHECK,
            "Checking for eavesdroppers",
            f"Measuring QBER on the {key.size_bits}-bit exchange",
        )
        detection = self._detector.detect(key.quantum_entropy, key.size_bits, attack_enabled)

        if detection.is_intercepted:
            return await self._abort(request, transaction_id, detection, steps)

        await steps.emit(
            PipelineStage.ENCRYPT,
            "Encrypting",
            f"{detection.message}. Securing payload with key {key.key_id}",
        )

        record = self._build_record(
            request, transaction_id, TransactionStatus.SUCCESS,
            intercepted=False, qber=detection.qber,
        )
        await steps.emit(
            PipelineStage.PERSIST_RECORD,
            "Saving transaction",
            f"Recording transaction {transaction_id}",
        )
        async with self._store.transaction() as uow:
            await uow.insert_transaction(record)
            await uow.insert_key(key, transaction_id)

        await steps.emit(
            PipelineStage.PERSIST_KEY,
            "Quantum key stored",
            f"Key {key.key_id} linked to transaction {transaction_id}",
        )

        await steps.emit(PipelineStage.SYNC, "Syncing", "Mirroring transaction to remote backend")
        await self._sync(record, key)

        await steps.emit(
            PipelineStage.DONE,
            "Completed",
            "Transaction secured with quantum key",
            terminal=True,
        )
        logger.info(
            "Transaction %s committed (QBER %s, key %s)",
            transaction_id, detection.qber_percent, key.key_id
        )
        return Result.success(record)

    async def _run_normal(
        self,
        request: TransactionRequest,
        transaction_id: str,
        steps: StepEmitter,
    ) -> Result[TransactionRecord]:
        await steps.emit(
            PipelineStage.INIT,
            "Initializing",
            f"Preparing {request.scenario.value} for {request.counterparty}",
        )
        await steps.emit(PipelineStage.ENCRYPT, "Encrypting", "Using standard channel encryption")

        record = self._build_record(
            request, transaction_id, TransactionStatus.SUCCESS, intercepted=False,
        )
        await steps.emit(
            PipelineStage.PERSIST_RECORD,
            "Saving transaction",
            f"Recording transaction {transaction_id}",
        )
        async with self._store.transaction() as uow:
            await uow.insert_transaction(record)

        await steps.emit(PipelineStage.SYNC, "Syncing", "Mirroring transaction to remote backend")
        await self._sync(record)

        await steps.emit(PipelineStage.DONE, "Completed", "Transaction completed", terminal=True)
        logger.info("Transaction %s committed without quantum protection", transaction_id)
        return Result.success(record)

    async def _generate_key(self, transaction_id: str, purpose: str) -> Result[KeyMaterial]:
        result = await self._key_generator.generate_key(self._key_size_bits, transaction_id, purpose)
        if result.ok or self._fallback_generator is None:
            return result
        if result.error.kind not in _FALLBACK_KINDS:
            return result

        logger.warning(
            "%s key generation failed for %s (%s), falling back to simulation",
            self._key_generator.provider.value, transaction_id, result.error.message
        )
        return await self._fallback_generator.generate_key(self._key_size_bits, transaction_id, purpose)

    async def _abort(
        self,
        request: TransactionRequest,
        transaction_id: str,
        detection: DetectionResult,
        steps: StepEmitter,
    ) -> Result[TransactionRecord]:
        error = SecurityAbortError(detection.qber)
        record = self._build_record(
            request, transaction_id, TransactionStatus.ABORTED,
            intercepted=True, qber=detection.qber,
        )

        async with self._store.transaction() as uow:
            await uow.insert_transaction(record)
            await uow.log_audit_event("eavesdrop_detected", {
                "transaction_id": transaction_id,
                "scenario": request.scenario.value,
                "qber": detection.qber,
                "confidence": detection.confidence,
                "detection_method": detection.detection_method,
            })

        await steps.emit(PipelineStage.ABORT, "Aborted", error.message, terminal=True)
        logger.warning("Transaction %s aborted: %s", transaction_id, error.message)
        return Result.failure(error)

    async def _fail_key_generation(
        self,
        request: TransactionRequest,
        transaction_id: str,
        error: PipelineError,
        steps: StepEmitter,
    ) -> Result[TransactionRecord]:
        record = self._build_record(
            request, transaction_id, TransactionStatus.FAILED, intercepted=False,
        )

        async with self._store.transaction() as uow:
            await uow.insert_transaction(record)
            await uow.log_audit_event("key_generation_failed", {
                "transaction_id": transaction_id,
                "provider": self._key_generator.provider.value,
                "kind": error.kind.value,
                "message": error.message,
            })

        await steps.fail(error.message)
        logger.error("Transaction %s failed: %s", transaction_id, error.message)
        return Result.failure(error)

    async def _sync(self, record: TransactionRecord, key: Optional[KeyMaterial] = None) -> None:
        if self._remote is None:
            return

        try:
            await asyncio.wait_for(self._push(record, key), timeout=self._remote_timeout)
        except asyncio.TimeoutError:
            logger.warning("Remote sync of %s timed out", record.transaction_id)
        except Exception as e:
            logger.warning("Remote sync of %s failed: %s", record.transaction_id, e)

    async def _push(self, record: TransactionRecord, key: Optional[KeyMaterial]) -> None:
        await self._remote.create_transaction(TransactionDto.from_record(record))
        if key is not None:
            await self._remote.create_key_metadata(
                QuantumKeyMetadataDto.from_key(key, record.transaction_id)
            )

    @staticmethod
    def _build_record(
        request: TransactionRequest,
        transaction_id: str,
        status: TransactionStatus,
        intercepted: bool,
        qber: Optional[float] = None,
    ) -> TransactionRecord:
        now = datetime.now(timezone.utc)
        return TransactionRecord(
            transaction_id=transaction_id,
            user_id=request.user_id,
            scenario=request.scenario,
            mode=request.mode,
            status=status,
            intercepted=intercepted,
            created_at=now,
            last_updated=now,
            amount=request.amount,
            beneficiary=request.beneficiary,
            patient_id=request.patient_id,
            access_reason=request.access_reason,
            qber=qber,
        )

    async def get_transaction(self, transaction_id: str) -> Optional[TransactionRecord]:
        return await self._store.get_transaction(transaction_id)

    async def list_transactions(
        self,
        mode: Optional[TransactionMode] = None,
        user_id: Optional[str] = None,
    ):
        return await self._store.list_transactions(mode=mode, user_id=user_id)

    async def get_quantum_stats(self) -> QuantumStats:
        total = await self._store.count_transactions(TransactionMode.QUANTUM)
        real = await self._store.count_keys(real_only=True)
        average = await self._store.average_quantum_entropy()
        return QuantumStats(
            total_quantum_transactions=total,
            real_qkd_transactions=real,
            average_quantum_entropy=average or 0.0,
            provider=self._key_generator.provider.value,
        )


_END_OF_RUN = object()


class TransactionRun:
    """
    One pipeline run consumed as an async iterator of ProcessSteps.

    The run starts when iteration starts and the outcome is available as
    ``result`` once iteration ends. A run can be iterated only once; call
    ``stream_transaction`` again for a new run.
    """

    def __init__(self, coordinator: TransactionCoordinator, request: TransactionRequest):
        self._coordinator = coordinator
        self._request = request
        self._started = False
        self.result: Optional[Result[TransactionRecord]] = None

    def __aiter__(self) -> AsyncIterator[ProcessStep]:
        if self._started:
            raise RuntimeError("TransactionRun can only be iterated once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProcessStep]:
        queue: asyncio.Queue = asyncio.Queue()

        async def run() -> None:
            try:
                self.result = await self._coordinator.process_transaction(
                    self._request, on_step=queue.put
                )
            finally:
                queue.put_nowait(_END_OF_RUN)

        task = asyncio.create_task(run())
        try:
            while True:
                step = await queue.get()
                if step is _END_OF_RUN:
                    break
                yield step
            await task
        finally:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
