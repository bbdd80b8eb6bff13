import base64
import time
from typing import Any, Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.exceptions import PersistenceError, SigningRejected
from app.models import Base
from app.schemas.creators.tokencreate import (
    ConfirmationStatus, ImageAsset, LaunchRecord, LaunchRequest, SocialLinks, TransactionBatch
)
from app.services.launch_orchestrator import LaunchOrchestrator
from app.services.metadata_preparer import MetadataPreparer
from app.services.record_store import LaunchRecordWriter, RecordStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


# ============================================
# TRANSACTIONS
# ============================================

def make_unsigned_tx(payer: Pubkey, *co_signers: Pubkey) -> bytes:
    """Unsigned legacy transaction paid by ``payer`` that also needs ``co_signers``."""
    accounts = [AccountMeta(signer, is_signer=True, is_writable=True) for signer in co_signers]
    ix = Instruction(Pubkey.new_unique(), bytes([len(co_signers)]), accounts)
    message = Message.new_with_blockhash([ix], payer, Hash.default())
    placeholders = [Signature.default()] * message.header.num_required_signatures
    return bytes(VersionedTransaction.populate(message, placeholders))


def b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("utf-8")


# ============================================
# FAKE COLLABORATORS
# ============================================

class FakeAssetStore:
    def __init__(self, events: List[str], fail: Optional[Exception] = None):
        self.events = events
        self.fail = fail
        self.uploads: List[bytes] = []

    async def upload(self, data: bytes, content_type: str) -> str:
        self.events.append("upload_image")
        if self.fail:
            raise self.fail
        self.uploads.append(data)
        return "https://cdn.example/tokens/logo.png"


class FakeMetadataStore:
    def __init__(self, events: List[str], fail: Optional[Exception] = None):
        self.events = events
        self.fail = fail
        self.documents: List[Dict[str, Any]] = []

    async def publish(self, document: Dict[str, Any]) -> str:
        self.events.append("publish_metadata")
        if self.fail:
            raise self.fail
        self.documents.append(document)
        return "https://ipfs.io/ipfs/QmMetadata"


class FakePoolBuilder:
    """Stands in for PoolRequestBuilder; batch is built per identity."""

    def __init__(self, events: List[str], payer: Pubkey, size: int = 3, fail: Optional[Exception] = None):
        self.events = events
        self.payer = payer
        self.size = size
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []
        self.on_call = None

    async def build_pool(self, identity, metadata, payer, liquidity_amount=None, *, name, symbol, description=""):
        self.events.append("build_pool")
        self.calls.append({
            "base_mint": identity.public_key,
            "metadata_uri": metadata.metadata_uri,
            "payer": payer,
            "liquidity_amount": liquidity_amount,
            "name": name,
            "symbol": symbol,
        })
        if self.on_call:
            self.on_call()
        if self.fail:
            raise self.fail
        txs = [make_unsigned_tx(self.payer, identity.pubkey)]
        txs += [make_unsigned_tx(self.payer) for _ in range(self.size - 1)]
        return TransactionBatch(transactions=tuple(txs), resulting_address=identity.public_key)


class FakeSigner:
    def __init__(self, events: List[str], fail_at: Optional[int] = None, error: Optional[Exception] = None):
        self.events = events
        self.fail_at = fail_at
        self.error = error or SigningRejected("User rejected the request")
        self.submitted: List[bytes] = []

    async def sign_and_submit(self, raw_transaction: bytes) -> str:
        index = len(self.submitted)
        self.events.append(f"submit:{index}")
        self.submitted.append(raw_transaction)
        if self.fail_at == index:
            raise self.error
        return str(Signature.new_unique())


class FakeLedger:
    def __init__(self, events: List[str], fail_at: Optional[int] = None, error: Optional[Exception] = None):
        self.events = events
        self.fail_at = fail_at
        self.error = error
        self.confirmed: List[str] = []
        self.confirmed_at: List[float] = []

    async def confirm(self, signature: str, commitment: Optional[str] = None) -> ConfirmationStatus:
        index = len(self.confirmed)
        self.events.append(f"confirm:{index}")
        if self.fail_at == index:
            raise self.error
        self.confirmed.append(signature)
        self.confirmed_at.append(time.monotonic())
        return ConfirmationStatus.CONFIRMED


class FakeRecordStore:
    def __init__(self, events: List[str], fail: bool = False):
        self.events = events
        self.fail = fail
        self.inserted: List[LaunchRecord] = []

    async def insert(self, record: LaunchRecord) -> LaunchRecord:
        self.events.append("persist")
        if self.fail:
            raise PersistenceError("database is unavailable")
        self.inserted.append(record)
        return record


class FakeRedis:
    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    async def set(self, key, value):
        self.data[key] = value

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, key):
        self.data.pop(key, None)


# ============================================
# FIXTURES
# ============================================

@pytest.fixture
def image():
    return ImageAsset(data=PNG_BYTES, content_type="image/png", filename="logo.png")


@pytest.fixture
def launch_request(image):
    return LaunchRequest(
        name="Agent Meme",
        ticker="ABCD",
        description="test",
        links=SocialLinks(x_link="https://x.com/agentmeme"),
        initial_buy_amount=0.5,
        image=image,
    )


@pytest.fixture
def payer():
    return Keypair().pubkey()


@pytest.fixture
def events():
    return []


class Pipeline:
    """Fakes for every stage plus a factory for orchestrators wired to them."""

    def __init__(self, events: List[str], payer: Pubkey):
        self.events = events
        self.payer = payer
        self.asset_store = FakeAssetStore(events)
        self.metadata_store = FakeMetadataStore(events)
        self.pool = FakePoolBuilder(events, payer)
        self.signer = FakeSigner(events)
        self.ledger = FakeLedger(events)
        self.store = FakeRecordStore(events)

    def orchestrator(self, **kwargs) -> LaunchOrchestrator:
        kwargs.setdefault("creator", str(self.payer))
        return LaunchOrchestrator(
            preparer=MetadataPreparer(self.asset_store, self.metadata_store, created_on="https://launchpad.test"),
            pool_builder=self.pool,
            signer=self.signer,
            ledger=self.ledger,
            writer=LaunchRecordWriter(self.store),
            **kwargs,
        )


@pytest.fixture
def pipeline(events, payer):
    return Pipeline(events, payer)


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'coins.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def record_store(session_factory):
    return RecordStore(session_factory)

