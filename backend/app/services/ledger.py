import asyncio
import logging
from typing import Optional

from solana.rpc.async_api import AsyncClient
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from app.config import settings
from app.exceptions import ConfirmationFailed, ConfirmationTimeout
from app.schemas.creators.tokencreate import ConfirmationStatus

logger = logging.getLogger(__name__)

# Ordered weakest to strongest
COMMITMENT_LEVELS = [
    TransactionConfirmationStatus.Processed,
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
]
COMMITMENT_NAMES = ["processed", "confirmed", "finalized"]


def commitment_rank(status: Optional[TransactionConfirmationStatus]) -> int:
    # Old nodes report no status once a transaction is rooted
    if status is None:
        return len(COMMITMENT_LEVELS) - 1
    return COMMITMENT_LEVELS.index(status)


class LedgerClient:
    """Waits for a submitted transaction to reach a commitment level"""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        client: Optional[AsyncClient] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None
    ):
        self.client = client or AsyncClient(rpc_url or settings.SOLANA_RPC_URL)
        self.timeout = timeout if timeout is not None else settings.CONFIRMATION_TIMEOUT_SECONDS
        self.poll_interval = poll_interval if poll_interval is not None else settings.CONFIRMATION_POLL_INTERVAL_SECONDS

    async def confirm(self, signature: str, commitment: Optional[str] = None) -> ConfirmationStatus:
        commitment = (commitment or settings.CONFIRMATION_COMMITMENT).lower()
        if commitment not in COMMITMENT_NAMES:
            raise ValueError(f"Unknown commitment level: {commitment}")
        target_rank = COMMITMENT_NAMES.index(commitment)

        sig = Signature.from_string(signature)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while True:
            try:
                resp = await self.client.get_signature_statuses([sig])
                status = resp.value[0] if resp.value else None
            except Exception as e:
                # Transient RPC trouble; the deadline still bounds the wait
                logger.warning(f"Signature status lookup failed for {signature[:16]}...: {e}")
                status = None
            else:
                if status is not None:
                    if status.err is not None:
                        logger.warning(f"Transaction {signature} failed on-chain: {status.err}")
                        raise ConfirmationFailed(f"Transaction failed on-chain: {status.err}")
                    if commitment_rank(status.confirmation_status) >= target_rank:
                        logger.info(f"Transaction {signature} CONFIRMED ({commitment})")
                        return ConfirmationStatus.CONFIRMED

            if loop.time() >= deadline:
                raise ConfirmationTimeout(
                    f"Transaction {signature} not {commitment} within {self.timeout:g}s"
                )
            await asyncio.sleep(self.poll_interval)

    async def close(self):
        await self.client.close()
