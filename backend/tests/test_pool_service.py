import json

import httpx
import pytest
from solders.keypair import Keypair

from app.exceptions import PoolCreationError
from app.schemas.creators.tokencreate import MetadataReference
from app.services.pool_service import PoolRequestBuilder, PoolServiceClient
from app.services.token_identity import TokenIdentity
from conftest import b64, make_unsigned_tx

METADATA = MetadataReference(image_uri="https://img", metadata_uri="https://ipfs.io/ipfs/QmMeta")


def builder_for(handler) -> PoolRequestBuilder:
    client = PoolServiceClient(
        base_url="http://pool.test",
        api_key="secret-key",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )
    return PoolRequestBuilder(client)


async def build(builder, identity, payer, amount=0.5):
    return await builder.build_pool(
        identity, METADATA, str(payer), amount, name="Agent Meme", symbol="ABCD", description="test"
    )


async def test_batch_keeps_service_order_and_drops_null_slots():
    payer, identity = Keypair().pubkey(), TokenIdentity.generate()
    txs = [make_unsigned_tx(payer, identity.pubkey), make_unsigned_tx(payer), make_unsigned_tx(payer)]
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={
            "success": True,
            "transactions": [b64(txs[0]), None, b64(txs[1]), b64(txs[2])],
            "contract_address": identity.public_key,
        })

    batch = await build(builder_for(handler), identity, payer)

    assert batch.transactions == tuple(txs)
    assert batch.resulting_address == identity.public_key
    assert len(seen) == 1
    request = seen[0]
    assert request.url == "http://pool.test/api/pool/create"
    assert request.headers["X-API-Key"] == "secret-key"
    body = json.loads(request.content)
    assert body == {
        "base_mint": identity.public_key,
        "metadata_uri": "https://ipfs.io/ipfs/QmMeta",
        "name": "Agent Meme",
        "symbol": "ABCD",
        "description": "test",
        "payer": str(payer),
        "initial_buy_amount": 0.5,
    }


async def test_amount_left_out_when_not_given():
    payer, identity = Keypair().pubkey(), TokenIdentity.generate()
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={
            "success": True,
            "transactions": [b64(make_unsigned_tx(payer))],
            "contract_address": identity.public_key,
        })

    await build(builder_for(handler), identity, payer, amount=None)
    assert "initial_buy_amount" not in bodies[0]


@pytest.mark.parametrize("response", [
    httpx.Response(200, json={"success": False, "error": "insufficient SOL"}),
    httpx.Response(500, json={"error": "boom"}),
    httpx.Response(401, text="bad key"),
    httpx.Response(200, text="<html>"),
    httpx.Response(200, json={"success": True, "transactions": [], "contract_address": "x"}),
    httpx.Response(200, json={"success": True, "transactions": [None, None], "contract_address": "x"}),
    httpx.Response(200, json={"success": True, "transactions": ["%%%"], "contract_address": "x"}),
    httpx.Response(200, json={"success": True, "transactions": [b64(b"garbage")], "contract_address": "x"}),
])
async def test_bad_responses_raise_pool_creation_error(response):
    payer, identity = Keypair().pubkey(), TokenIdentity.generate()
    calls = []

    def handler(request):
        calls.append(request)
        return response

    with pytest.raises(PoolCreationError):
        await build(builder_for(handler), identity, payer)
    # no retries
    assert len(calls) == 1


async def test_invalid_contract_address():
    payer, identity = Keypair().pubkey(), TokenIdentity.generate()

    def handler(request):
        return httpx.Response(200, json={
            "success": True,
            "transactions": [b64(make_unsigned_tx(payer))],
            "contract_address": "not-a-pubkey",
        })

    with pytest.raises(PoolCreationError):
        await build(builder_for(handler), identity, payer)


async def test_transport_error_is_pool_creation_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    with pytest.raises(PoolCreationError):
        await build(builder_for(handler), TokenIdentity.generate(), Keypair().pubkey())
