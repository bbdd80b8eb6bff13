# app/services/launch_orchestrator.py
import inspect
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Union

from app.config import settings
from app.exceptions import LaunchCancelled, LaunchError, PersistenceError, ValidationError
from app.schemas.creators.tokencreate import (
    LaunchFailure, LaunchOutcome, LaunchPhase, LaunchProgress, LaunchRecord, LaunchRequest,
    LaunchStage, LaunchSuccess, MetadataReference, SequencerPhase, SequencerState,
    TransactionBatch
)
from app.services.launch_validation import validate_launch_request
from app.services.ledger import LedgerClient
from app.services.metadata_preparer import MetadataPreparer
from app.services.pool_service import PoolRequestBuilder
from app.services.record_store import LaunchRecordWriter
from app.services.token_identity import TokenIdentity
from app.services.transaction_sequencer import Ledger, TransactionSequencer
from app.services.wallet_signer import WalletSigner

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[LaunchProgress], Union[None, Awaitable[None]]]

STAGE_LABELS = {
    LaunchStage.VALIDATION: "validating the request",
    LaunchStage.METADATA: "preparing token metadata",
    LaunchStage.POOL: "creating the pool",
    LaunchStage.SEQUENCER: "submitting transactions",
    LaunchStage.PERSISTENCE: "saving the token record",
}

PHASE_STAGES = {
    LaunchPhase.IDLE: LaunchStage.VALIDATION,
    LaunchPhase.PREPARING_METADATA: LaunchStage.METADATA,
    LaunchPhase.BUILDING_POOL: LaunchStage.POOL,
    LaunchPhase.SEQUENCING: LaunchStage.SEQUENCER,
    LaunchPhase.PERSISTING: LaunchStage.PERSISTENCE,
}

TERMINAL_PHASES = (LaunchPhase.COMPLETED, LaunchPhase.FAILED, LaunchPhase.CANCELLED)


def describe_failure(
    stage: LaunchStage,
    message: str,
    confirmed: int = 0,
    total: int = 0,
    contract_address: Optional[str] = None
) -> str:
    """User-facing text for a failed launch."""
    if stage == LaunchStage.PERSISTENCE:
        return (
            f"Token is live on-chain at {contract_address} but saving its record failed "
            f"({message}). Manual recovery required."
        )
    text = f"Launch failed while {STAGE_LABELS[stage]}: {message}"
    if stage == LaunchStage.SEQUENCER and confirmed > 0:
        text += f". {confirmed} of {total} transactions already confirmed; on-chain state may already exist."
    return text


class LaunchOrchestrator:
    """
    Runs one launch attempt: metadata, pool batch, ordered submission, record.
    Single-use. ``launch`` always returns a LaunchOutcome; stage errors become
    LaunchFailure values.
    """

    def __init__(
        self,
        preparer: MetadataPreparer,
        pool_builder: PoolRequestBuilder,
        signer: WalletSigner,
        ledger: Ledger,
        writer: LaunchRecordWriter,
        creator: str,
        launch_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        commitment: Optional[str] = None,
        cleanup: Optional[List[Callable[[], Awaitable[None]]]] = None
    ):
        self.preparer = preparer
        self.pool_builder = pool_builder
        self.signer = signer
        self.ledger = ledger
        self.writer = writer
        self.creator = creator
        self.commitment = commitment
        self.launch_id = launch_id or f"launch_{int(datetime.now(timezone.utc).timestamp())}_{uuid.uuid4().hex[:8]}"

        self._listeners: List[ProgressCallback] = []
        if on_progress is not None:
            self._listeners.append(on_progress)

        self._progress = LaunchProgress(launch_id=self.launch_id, creator=creator)
        self._started = False
        self._cancel_requested = False
        self._identity: Optional[TokenIdentity] = None
        self._sequencer_state: Optional[SequencerState] = None
        # Closers for clients owned by this attempt, run once it ends
        self._cleanup = list(cleanup or [])

    # ============================================
    # PROGRESS
    # ============================================

    @property
    def progress(self) -> LaunchProgress:
        return self._progress.model_copy(deep=True)

    @property
    def phase(self) -> LaunchPhase:
        return self._progress.phase

    def subscribe(self, callback: ProgressCallback):
        self._listeners.append(callback)

    async def _update(self, phase: Optional[LaunchPhase] = None, message: Optional[str] = None, **fields):
        updates = dict(fields)
        if phase is not None:
            updates["phase"] = phase
        if message is not None:
            updates["message"] = message
        updates["updated_at"] = datetime.now(timezone.utc)
        self._progress = self._progress.model_copy(update=updates)

        snapshot = self.progress
        for listener in list(self._listeners):
            try:
                result = listener(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Progress listener failed for {self.launch_id}: {e}")

    async def _on_sequencer_transition(self, state: SequencerState):
        confirmed = state.confirmed_count
        if confirmed > self._progress.confirmed:
            await self._update(
                message=f"Transaction {confirmed}/{state.total} confirmed",
                confirmed=confirmed,
                progress=40 + int(50 * confirmed / max(state.total, 1)),
            )

    # ============================================
    # CANCELLATION
    # ============================================

    def cancel(self) -> bool:
        """Request cancellation. Refused once transactions may be in flight."""
        if self.phase in TERMINAL_PHASES or self.phase in (LaunchPhase.SEQUENCING, LaunchPhase.PERSISTING):
            return False
        self._cancel_requested = True
        logger.info(f"Cancellation requested for {self.launch_id}")
        return True

    def _check_cancelled(self):
        if self._cancel_requested:
            raise LaunchCancelled(PHASE_STAGES.get(self.phase, LaunchStage.VALIDATION))

    # ============================================
    # PIPELINE
    # ============================================

    async def launch(self, request: LaunchRequest) -> LaunchOutcome:
        if self._started:
            raise RuntimeError("LaunchOrchestrator instances are single-use; start a new attempt")
        self._started = True

        batch: Optional[TransactionBatch] = None
        metadata: Optional[MetadataReference] = None
        try:
            validate_launch_request(request)
            self._check_cancelled()

            # 1. Metadata
            await self._update(LaunchPhase.PREPARING_METADATA, "Preparing token metadata...", progress=10)
            self._identity, metadata = await self.preparer.prepare(request)
            self._check_cancelled()

            # 2. Pool transactions
            await self._update(LaunchPhase.BUILDING_POOL, "Creating pool...", progress=25)
            batch = await self.pool_builder.build_pool(
                self._identity,
                metadata,
                self.creator,
                request.initial_buy_amount,
                name=request.name,
                symbol=request.ticker,
                description=request.description,
            )
            self._check_cancelled()

            # 3. Sign, submit, confirm (no cancellation from here on)
            await self._update(
                LaunchPhase.SEQUENCING,
                f"Signing {len(batch)} transactions...",
                progress=40,
                total_transactions=len(batch),
                contract_address=batch.resulting_address,
            )
            sequencer = TransactionSequencer(
                self.signer, self.ledger, self.commitment, on_transition=self._on_sequencer_transition
            )
            state = await sequencer.run(batch, self._identity)
            self._sequencer_state = state
            if state.phase != SequencerPhase.COMPLETED:
                return await self._fail_sequencing(state, batch)

            # 4. Record
            await self._update(LaunchPhase.PERSISTING, "Saving token data...", progress=92)
            record = await self.writer.persist(request, metadata, batch.resulting_address, self.creator)

        except PersistenceError as e:
            pending = self.writer.build_record(request, metadata, batch.resulting_address, self.creator)
            logger.critical(
                f"🚨 Launch {self.launch_id}: token {batch.resulting_address} is live but its record "
                f"was not saved ({e.message}). Manual recovery required."
            )
            return await self._fail(
                e,
                contract_address=batch.resulting_address,
                manual_recovery_required=True,
                onchain_state_may_exist=True,
                pending_record=pending,
                confirmed_count=len(batch),
                total_transactions=len(batch),
                confirmed_signatures=self._confirmed_signatures(),
            )
        except LaunchCancelled as e:
            return await self._fail(e, phase=LaunchPhase.CANCELLED)
        except LaunchError as e:
            return await self._fail(e)
        except Exception as e:
            logger.exception(f"Unexpected error in launch {self.launch_id}: {e}")
            error = LaunchError(str(e) or type(e).__name__)
            error.stage = PHASE_STAGES.get(self.phase, LaunchStage.VALIDATION)
            error.code = type(e).__name__
            return await self._fail(error, contract_address=batch.resulting_address if batch else None)
        finally:
            if self._identity is not None:
                self._identity.discard()
            await self._release_clients()

        logger.info(f"🎉 Launch {self.launch_id} complete: {record.ticker} at {record.contract_address}")
        outcome = LaunchSuccess(record=record)
        await self._update(
            LaunchPhase.COMPLETED,
            "Token created successfully!",
            progress=100,
            outcome=outcome,
        )
        return outcome

    async def _release_clients(self):
        while self._cleanup:
            close = self._cleanup.pop()
            try:
                await close()
            except Exception as e:
                logger.warning(f"Closing a client for {self.launch_id} failed: {e}")

    def _confirmed_signatures(self) -> List[str]:
        return self._sequencer_state.confirmed_signatures if self._sequencer_state else []

    async def _fail_sequencing(self, state: SequencerState, batch: TransactionBatch) -> LaunchFailure:
        error = LaunchError(state.detail or "transaction failed")
        error.stage = LaunchStage.SEQUENCER
        error.code = state.reason or "SequencerError"
        return await self._fail(
            error,
            failed_index=state.index,
            confirmed_count=state.confirmed_count,
            total_transactions=state.total,
            confirmed_signatures=state.confirmed_signatures,
            contract_address=batch.resulting_address,
            onchain_state_may_exist=state.confirmed_count > 0,
        )

    async def _fail(self, error: LaunchError, phase: LaunchPhase = LaunchPhase.FAILED, **fields) -> LaunchFailure:
        stage = error.stage
        if isinstance(error, ValidationError):
            message = error.message
        elif isinstance(error, LaunchCancelled):
            message = error.message
        else:
            message = describe_failure(
                stage,
                error.message,
                fields.get("confirmed_count", 0),
                fields.get("total_transactions", 0),
                fields.get("contract_address"),
            )

        failure = LaunchFailure(stage=stage, reason=error.code, message=message, **fields)
        if phase == LaunchPhase.CANCELLED:
            logger.info(f"Launch {self.launch_id} cancelled during {stage.value}")
        else:
            logger.error(f"❌ Launch {self.launch_id} failed at {stage.value} ({error.code}): {error.message}")

        await self._update(phase, message, outcome=failure)
        return failure


# ============================================
# WIRING
# ============================================

def create_launch_orchestrator(
    creator: str,
    wallet_id: Optional[str] = None,
    launch_id: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    session_factory=None
) -> LaunchOrchestrator:
    """Build an orchestrator backed by the configured services."""
    from app.services.cloudflare_r2 import CloudflareR2Service
    from app.services.ipfs_service import IPFSService
    from app.services.pool_service import PoolServiceClient
    from app.services.record_store import RecordStore
    from app.services.wallet_signer import LocalKeypairSigner, PrivyWalletSigner

    ipfs = IPFSService()
    asset_store = CloudflareR2Service() if settings.ASSET_STORE_BACKEND == "r2" else ipfs

    if settings.SIGNER_BACKEND == "local":
        if not settings.LOCAL_SIGNER_PRIVATE_KEY:
            raise RuntimeError("SIGNER_BACKEND=local requires LOCAL_SIGNER_PRIVATE_KEY")
        signer = LocalKeypairSigner.from_base58(settings.LOCAL_SIGNER_PRIVATE_KEY)
    else:
        if not wallet_id:
            raise RuntimeError("Privy signer requires the creator's wallet id")
        signer = PrivyWalletSigner(wallet_id)

    ledger = LedgerClient()
    cleanup = [ledger.close]
    if isinstance(signer, LocalKeypairSigner):
        cleanup.append(signer.close)

    if session_factory is None:
        from app.database import AsyncSessionLocal
        session_factory = AsyncSessionLocal

    return LaunchOrchestrator(
        preparer=MetadataPreparer(asset_store, ipfs),
        pool_builder=PoolRequestBuilder(PoolServiceClient()),
        signer=signer,
        ledger=ledger,
        writer=LaunchRecordWriter(RecordStore(session_factory)),
        creator=creator,
        launch_id=launch_id,
        on_progress=on_progress,
        cleanup=cleanup,
    )
