import binascii
import logging
from typing import Any, Dict, List, Optional

import httpx
from solders.pubkey import Pubkey

from app.config import settings
from app.exceptions import PoolCreationError
from app.schemas.creators.tokencreate import MetadataReference, TransactionBatch
from app.services.token_identity import TokenIdentity
from app.utils.transactions import decode_base64_transaction

logger = logging.getLogger(__name__)


class PoolServiceClient:
    """Client for the pool creation service (builds the unsigned launch transactions)"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.POOL_SERVICE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.POOL_SERVICE_API_KEY
        self.client_timeout = timeout or settings.POOL_SERVICE_TIMEOUT
        self._transport = transport

    async def _make_request(self, endpoint: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """POST to the pool service. Exactly one attempt; the caller decides about retries."""
        url = f"{self.base_url}{endpoint}"
        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key or ""
        }

        try:
            async with httpx.AsyncClient(timeout=self.client_timeout, transport=self._transport) as client:
                response = await client.post(url, json=data, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Pool service request failed: {e}")
            raise PoolCreationError(f"Pool service unreachable: {e}") from e

        if response.status_code == 401:
            logger.error(f"Authentication failed for pool service: {response.text}")
            raise PoolCreationError("Pool service authentication failed")

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code != 200:
            error = body.get("error") if isinstance(body, dict) else None
            logger.error(f"Pool service HTTP {response.status_code}: {response.text[:300]}")
            raise PoolCreationError(error or f"Pool service returned HTTP {response.status_code}")

        if not isinstance(body, dict):
            raise PoolCreationError("Pool service returned a non-JSON response")
        return body

    async def create_pool(
        self,
        base_mint: str,
        metadata_uri: str,
        name: str,
        symbol: str,
        description: str,
        payer: str,
        initial_buy_amount: Optional[float] = None
    ) -> Dict[str, Any]:
        payload = {
            "base_mint": base_mint,
            "metadata_uri": metadata_uri,
            "name": name,
            "symbol": symbol,
            "description": description,
            "payer": payer,
        }
        if initial_buy_amount is not None:
            payload["initial_buy_amount"] = initial_buy_amount

        return await self._make_request("/api/pool/create", payload)


class PoolRequestBuilder:
    """Turns a prepared token into the ordered batch of launch transactions."""

    def __init__(self, client: PoolServiceClient):
        self.client = client

    async def build_pool(
        self,
        identity: TokenIdentity,
        metadata: MetadataReference,
        payer: str,
        liquidity_amount: Optional[float] = None,
        *,
        name: str,
        symbol: str,
        description: str = ""
    ) -> TransactionBatch:
        logger.info(f"🏊 Requesting pool for {symbol} (mint {identity.public_key}, payer {payer[:8]}...)")

        # Only the public half of the identity goes out
        result = await self.client.create_pool(
            base_mint=identity.public_key,
            metadata_uri=metadata.metadata_uri,
            name=name,
            symbol=symbol,
            description=description,
            payer=payer,
            initial_buy_amount=liquidity_amount,
        )

        if not result.get("success"):
            raise PoolCreationError(result.get("error") or "Pool service reported failure")

        batch = self._parse_batch(result)
        logger.info(f"✅ Pool service returned {len(batch)} transactions for {batch.resulting_address}")
        return batch

    @staticmethod
    def _parse_batch(result: Dict[str, Any]) -> TransactionBatch:
        payloads = result.get("transactions")
        if not isinstance(payloads, list):
            raise PoolCreationError("Pool service response has no transaction list")

        # Optional slots come back as null
        transactions: List[bytes] = []
        for position, payload in enumerate(p for p in payloads if p is not None):
            if not isinstance(payload, str):
                raise PoolCreationError(f"Transaction {position} is not a base64 string")
            try:
                transactions.append(decode_base64_transaction(payload))
            except (binascii.Error, ValueError) as e:
                raise PoolCreationError(f"Transaction {position} is malformed: {e}") from e

        if not transactions:
            raise PoolCreationError("Pool service returned no transactions")

        address = result.get("contract_address")
        if not isinstance(address, str) or not address:
            raise PoolCreationError("Pool service response has no contract address")
        try:
            Pubkey.from_string(address)
        except ValueError as e:
            raise PoolCreationError(f"Invalid contract address: {address}") from e

        return TransactionBatch(transactions=tuple(transactions), resulting_address=address)
