# app/services/wallet_signer.py
import base64
import logging
from typing import Optional, Protocol, Union

import base58
import httpx
from solana.rpc.async_api import AsyncClient
from solana.rpc.types import TxOpts
from solders.keypair import Keypair

from app.config import settings
from app.exceptions import SigningRejected, SubmissionError
from app.utils.transactions import sign_transaction

logger = logging.getLogger(__name__)


class WalletSigner(Protocol):
    async def sign_and_submit(self, raw_transaction: bytes) -> Union[str, bytes]: ...


# ===================================================================
# Privy delegated server wallet
# ===================================================================
class PrivyWalletSigner:
    """
    Signs and broadcasts through the creator's Privy server wallet.
    The session layer has already granted us delegated access to ``wallet_id``.
    """

    def __init__(
        self,
        wallet_id: str,
        app_id: Optional[str] = None,
        app_secret: Optional[str] = None,
        api_url: Optional[str] = None,
        caip2: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.wallet_id = wallet_id
        self.app_id = app_id or settings.PRIVY_APP_ID or ""
        self.app_secret = app_secret or settings.PRIVY_APP_SECRET or ""
        self.api_url = (api_url or settings.PRIVY_API_URL).rstrip("/")
        self.caip2 = caip2 or settings.SOLANA_CAIP2
        self.timeout = timeout
        self._transport = transport

    async def sign_and_submit(self, raw_transaction: bytes) -> str:
        payload = {
            "method": "signAndSendTransaction",
            "caip2": self.caip2,
            "params": {
                "transaction": base64.b64encode(raw_transaction).decode("utf-8"),
                "encoding": "base64",
            },
        }
        url = f"{self.api_url}/v1/wallets/{self.wallet_id}/rpc"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=payload,
                    auth=(self.app_id, self.app_secret),
                    headers={"privy-app-id": self.app_id},
                )
        except httpx.HTTPError as e:
            logger.error(f"Privy RPC request failed: {e}")
            raise SubmissionError(f"Wallet service unreachable: {e}") from e

        if response.status_code in (401, 403):
            logger.warning(f"Privy refused to sign for wallet {self.wallet_id}: {response.text[:200]}")
            raise SigningRejected("Wallet refused to sign the transaction")
        if response.status_code != 200:
            logger.error(f"Privy RPC HTTP {response.status_code}: {response.text[:300]}")
            raise SubmissionError(f"Wallet service returned HTTP {response.status_code}")

        try:
            signature = response.json().get("data", {}).get("hash")
        except (ValueError, AttributeError):
            signature = None
        if not signature:
            raise SubmissionError("Wallet service returned no transaction signature")

        logger.info(f"Submitted via Privy wallet {self.wallet_id}: {signature}")
        return signature


# ===================================================================
# Local keypair (development / devnet)
# ===================================================================
class LocalKeypairSigner:
    """Signs with a key held in process and submits through the RPC node."""

    def __init__(self, keypair: Keypair, client: Optional[AsyncClient] = None, rpc_url: Optional[str] = None):
        self.keypair = keypair
        self.client = client or AsyncClient(rpc_url or settings.SOLANA_RPC_URL)

    @classmethod
    def from_base58(cls, private_key: str, **kwargs) -> "LocalKeypairSigner":
        return cls(Keypair.from_bytes(base58.b58decode(private_key)), **kwargs)

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    async def sign_and_submit(self, raw_transaction: bytes) -> bytes:
        try:
            signed = sign_transaction(raw_transaction, self.keypair)
        except ValueError as e:
            raise SigningRejected(f"Local wallet cannot sign: {e}") from e

        try:
            resp = await self.client.send_raw_transaction(signed, opts=TxOpts(skip_preflight=False))
        except Exception as e:
            logger.error(f"send_raw_transaction failed: {e}")
            raise SubmissionError(f"Transaction submission failed: {e}") from e

        return bytes(resp.value)

    async def close(self):
        await self.client.close()
