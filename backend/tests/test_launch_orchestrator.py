import pytest
from solders.keypair import Keypair

from app.config import settings
from app.exceptions import AssetUploadError, PoolCreationError
from app.schemas.creators.tokencreate import (
    CoinStatus, LaunchFailure, LaunchPhase, LaunchStage, LaunchSuccess
)
from app.services.launch_orchestrator import create_launch_orchestrator
from conftest import FakeLedger, FakeSigner


# ============================================
# END-TO-END SCENARIOS
# ============================================

async def test_all_transactions_confirm_then_record_is_written(pipeline, launch_request):
    progress = []
    orchestrator = pipeline.orchestrator(on_progress=progress.append)

    outcome = await orchestrator.launch(launch_request)

    assert isinstance(outcome, LaunchSuccess)
    record = outcome.record
    assert record.status == CoinStatus.ACTIVE
    assert (record.market_cap, record.holders, record.volume_24h, record.price_change_24h) == (0, 0, 0, 0)
    assert record.verified is False
    assert record.category == "meme"
    assert record.initial_buy_amount == 0.5
    assert record.created_by == str(pipeline.payer)
    assert record.ipfs_metadata == "https://ipfs.io/ipfs/QmMetadata"
    assert record.x_link == "https://x.com/agentmeme"
    assert pipeline.store.inserted == [record]

    assert pipeline.events == [
        "upload_image", "publish_metadata", "build_pool",
        "submit:0", "confirm:0", "submit:1", "confirm:1", "submit:2", "confirm:2",
        "persist",
    ]
    assert orchestrator.phase == LaunchPhase.COMPLETED
    assert progress[-1].progress == 100
    assert progress[-1].outcome == outcome
    assert [p.confirmed for p in progress if p.message.startswith("Transaction")] == [1, 2, 3]


async def test_second_transaction_rejected_by_wallet(pipeline, launch_request):
    pipeline.signer = FakeSigner(pipeline.events, fail_at=1)

    outcome = await pipeline.orchestrator().launch(launch_request)

    assert isinstance(outcome, LaunchFailure)
    assert outcome.stage == LaunchStage.SEQUENCER
    assert outcome.reason == "SigningRejected"
    assert outcome.failed_index == 1
    assert outcome.confirmed_count == 1
    assert outcome.total_transactions == 3
    assert outcome.confirmed_signatures == pipeline.ledger.confirmed
    assert outcome.onchain_state_may_exist is True
    assert "on-chain state may already exist" in outcome.message
    assert pipeline.store.inserted == []
    assert "persist" not in pipeline.events
    assert "submit:2" not in pipeline.events


async def test_ticker_too_long_rejected_before_any_stage(pipeline, launch_request):
    bad = launch_request.model_copy(update={"ticker": "ABCDEFGHIJK"})

    outcome = await pipeline.orchestrator().launch(bad)

    assert isinstance(outcome, LaunchFailure)
    assert outcome.stage == LaunchStage.VALIDATION
    assert outcome.reason == "ValidationError"
    assert pipeline.events == []


async def test_record_store_failure_requires_manual_recovery(pipeline, launch_request):
    pipeline.store.fail = True

    outcome = await pipeline.orchestrator().launch(launch_request)

    assert isinstance(outcome, LaunchFailure)
    assert outcome.stage == LaunchStage.PERSISTENCE
    assert outcome.reason == "PersistenceError"
    assert outcome.manual_recovery_required is True
    assert outcome.contract_address == pipeline.pool.calls[0]["base_mint"]
    assert outcome.pending_record.contract_address == outcome.contract_address
    assert outcome.confirmed_count == 3
    assert len(outcome.confirmed_signatures) == 3
    assert pipeline.events.count("persist") == 1


# ============================================
# STAGE FAILURES
# ============================================

async def test_first_transaction_fails_nothing_on_chain(pipeline, launch_request):
    pipeline.ledger = FakeLedger(pipeline.events, fail_at=0, error=RuntimeError("blockhash expired"))

    outcome = await pipeline.orchestrator().launch(launch_request)

    assert outcome.stage == LaunchStage.SEQUENCER
    assert outcome.failed_index == 0
    assert outcome.onchain_state_may_exist is False


async def test_upload_failure_stops_before_pool(pipeline, launch_request):
    pipeline.asset_store.fail = AssetUploadError("R2 upload failed: AccessDenied")

    outcome = await pipeline.orchestrator().launch(launch_request)

    assert outcome.stage == LaunchStage.METADATA
    assert outcome.reason == "AssetUploadError"
    assert "build_pool" not in pipeline.events


async def test_pool_failure_sends_nothing_to_the_wallet(pipeline, launch_request):
    pipeline.pool.fail = PoolCreationError("Pool service returned no transactions")

    outcome = await pipeline.orchestrator().launch(launch_request)

    assert outcome.stage == LaunchStage.POOL
    assert outcome.reason == "PoolCreationError"
    assert pipeline.signer.submitted == []


async def test_pool_request_carries_metadata_and_amount(pipeline, launch_request):
    await pipeline.orchestrator().launch(launch_request)

    call = pipeline.pool.calls[0]
    assert call["metadata_uri"] == "https://ipfs.io/ipfs/QmMetadata"
    assert call["liquidity_amount"] == 0.5
    assert call["payer"] == str(pipeline.payer)
    assert (call["name"], call["symbol"]) == ("Agent Meme", "ABCD")


# ============================================
# LIFECYCLE
# ============================================

@pytest.mark.parametrize("store_fails,signer_fail_at", [(False, None), (True, None), (False, 0)])
async def test_persist_called_at_most_once(pipeline, launch_request, store_fails, signer_fail_at):
    pipeline.store.fail = store_fails
    pipeline.signer = FakeSigner(pipeline.events, fail_at=signer_fail_at)

    await pipeline.orchestrator().launch(launch_request)

    assert pipeline.events.count("persist") <= 1


@pytest.mark.parametrize("signer_fail_at", [None, 1])
async def test_identity_discarded_whatever_the_outcome(pipeline, launch_request, signer_fail_at):
    pipeline.signer = FakeSigner(pipeline.events, fail_at=signer_fail_at)
    orchestrator = pipeline.orchestrator()

    await orchestrator.launch(launch_request)

    assert orchestrator._identity.discarded


async def test_orchestrator_is_single_use(pipeline, launch_request):
    orchestrator = pipeline.orchestrator()
    await orchestrator.launch(launch_request)
    with pytest.raises(RuntimeError):
        await orchestrator.launch(launch_request)


async def test_cancel_before_sequencing(pipeline, launch_request):
    orchestrator = pipeline.orchestrator()
    pipeline.pool.on_call = lambda: results.append(orchestrator.cancel())
    results = []

    outcome = await orchestrator.launch(launch_request)

    assert results == [True]
    assert isinstance(outcome, LaunchFailure)
    assert outcome.reason == "LaunchCancelled"
    assert outcome.stage == LaunchStage.POOL
    assert orchestrator.phase == LaunchPhase.CANCELLED
    assert pipeline.signer.submitted == []


async def test_cancel_refused_once_sequencing(pipeline, launch_request):
    orchestrator = pipeline.orchestrator()
    answers = []

    def try_cancel(progress):
        if progress.phase == LaunchPhase.SEQUENCING and not answers:
            answers.append(orchestrator.cancel())

    orchestrator.subscribe(try_cancel)
    outcome = await orchestrator.launch(launch_request)

    assert answers == [False]
    assert isinstance(outcome, LaunchSuccess)
    assert orchestrator.cancel() is False


async def test_progress_listener_failures_are_ignored(pipeline, launch_request):
    async def broken(progress):
        raise RuntimeError("websocket gone")

    outcome = await pipeline.orchestrator(on_progress=broken).launch(launch_request)
    assert isinstance(outcome, LaunchSuccess)


async def test_unexpected_error_becomes_failure(pipeline, launch_request):
    pipeline.pool.fail = KeyError("contract_address")

    outcome = await pipeline.orchestrator().launch(launch_request)

    assert isinstance(outcome, LaunchFailure)
    assert outcome.stage == LaunchStage.POOL
    assert outcome.reason == "KeyError"


# ============================================
# CLIENT LIFETIME
# ============================================

@pytest.mark.parametrize("signer_fail_at", [None, 0])
async def test_owned_clients_closed_once_attempt_ends(pipeline, launch_request, signer_fail_at):
    pipeline.signer = FakeSigner(pipeline.events, fail_at=signer_fail_at)
    closed = []

    async def close_ledger():
        closed.append("ledger")

    async def close_signer():
        raise RuntimeError("already closed")

    orchestrator = pipeline.orchestrator(cleanup=[close_ledger, close_signer])
    await orchestrator.launch(launch_request)

    assert closed == ["ledger"]
    assert orchestrator._cleanup == []


async def test_factory_hands_rpc_clients_to_the_attempt(monkeypatch):
    monkeypatch.setattr(settings, "SIGNER_BACKEND", "local")
    monkeypatch.setattr(settings, "LOCAL_SIGNER_PRIVATE_KEY", str(Keypair()))
    monkeypatch.setattr(settings, "ASSET_STORE_BACKEND", "ipfs")

    orchestrator = create_launch_orchestrator(creator=str(Keypair().pubkey()), session_factory=object())

    assert orchestrator.ledger.close in orchestrator._cleanup
    assert orchestrator.signer.close in orchestrator._cleanup
    await orchestrator._release_clients()
    assert orchestrator._cleanup == []
