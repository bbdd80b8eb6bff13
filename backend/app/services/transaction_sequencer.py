# app/services/transaction_sequencer.py
import inspect
import logging
from typing import Awaitable, Callable, Optional, Protocol, Union

from app.config import settings
from app.exceptions import (
    ConfirmationFailed, SequencerError, SubmissionError
)
from app.schemas.creators.tokencreate import (
    ConfirmationStatus, SequencerPhase, SequencerState, SubmissionResult, TransactionBatch
)
from app.services.token_identity import TokenIdentity
from app.services.wallet_signer import WalletSigner
from app.utils.transactions import normalize_signature

logger = logging.getLogger(__name__)

TransitionCallback = Callable[[SequencerState], Union[None, Awaitable[None]]]


class Ledger(Protocol):
    async def confirm(self, signature: str, commitment: Optional[str] = None) -> ConfirmationStatus: ...


class TransactionSequencer:
    """
    Signs, submits and confirms a batch strictly in order. Transaction i+1 is
    dispatched only after transaction i is confirmed; the first failure stops
    the run and nothing is rolled back.
    """

    def __init__(
        self,
        signer: WalletSigner,
        ledger: Ledger,
        commitment: Optional[str] = None,
        on_transition: Optional[TransitionCallback] = None
    ):
        self.signer = signer
        self.ledger = ledger
        self.commitment = commitment or settings.CONFIRMATION_COMMITMENT
        self.on_transition = on_transition
        self.state = SequencerState()

    async def _enter(self, phase: SequencerPhase, index: Optional[int] = None):
        self.state.phase = phase
        if index is not None:
            self.state.index = index
        if self.on_transition is None:
            return
        try:
            result = self.on_transition(self.state.model_copy(deep=True))
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Sequencer transition listener failed: {e}")

    async def _fail(self, index: int, error: SequencerError) -> SequencerState:
        error.index = index
        self.state.results[index].status = ConfirmationStatus.FAILED
        self.state.reason = error.code
        self.state.detail = error.message
        logger.error(f"❌ Transaction {index + 1}/{self.state.total} failed ({error.code}): {error.message}")
        await self._enter(SequencerPhase.FAILED, index)
        return self.state

    async def run(self, batch: TransactionBatch, identity: Optional[TokenIdentity] = None) -> SequencerState:
        """Process ``batch``. Returns the final state, either completed or failed."""
        if self.state.phase != SequencerPhase.IDLE:
            raise RuntimeError("TransactionSequencer instances are single-use")

        total = len(batch)
        self.state.total = total
        self.state.results = [SubmissionResult(index=i) for i in range(total)]
        identity_used = False

        for i, raw in enumerate(batch.transactions):
            phase = SequencerPhase.SIGNING
            try:
                await self._enter(SequencerPhase.SIGNING, i)
                if identity is not None and identity.is_signer_of(raw):
                    if identity_used or identity.discarded:
                        raise SubmissionError("Token identity required by more than one transaction")
                    raw = identity.co_sign(raw)
                    identity_used = True

                phase = SequencerPhase.SUBMITTING
                await self._enter(SequencerPhase.SUBMITTING, i)
                logger.info(f"Submitting transaction {i + 1}/{total}")
                returned = await self.signer.sign_and_submit(raw)
                try:
                    signature = normalize_signature(returned)
                except ValueError as e:
                    raise SubmissionError(f"Wallet returned an invalid signature: {e}") from e
                self.state.results[i].signature = signature

                phase = SequencerPhase.CONFIRMING
                await self._enter(SequencerPhase.CONFIRMING, i)
                await self.ledger.confirm(signature, self.commitment)
            except SequencerError as e:
                return await self._fail(i, e)
            except Exception as e:
                wrapped = ConfirmationFailed(str(e)) if phase == SequencerPhase.CONFIRMING else SubmissionError(str(e))
                return await self._fail(i, wrapped)

            self.state.results[i].status = ConfirmationStatus.CONFIRMED
            logger.info(f"✓ Transaction {i + 1}/{total} confirmed: {signature}")

        await self._enter(SequencerPhase.COMPLETED, total)
        return self.state
