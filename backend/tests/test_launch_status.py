import json

from app.schemas.creators.tokencreate import LaunchFailure, LaunchPhase, LaunchProgress, LaunchRecord, LaunchStage
from app.services.launch_status import LaunchStatusPublisher
from app.services.websocket_manager import ConnectionManager
from conftest import FakeRedis


class FakeSocket:
    def __init__(self, broken=False):
        self.sent = []
        self.broken = broken

    async def send_text(self, message):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(message))


class DeadRedis:
    async def setex(self, *args):
        raise ConnectionError("redis down")

    async def get(self, *args):
        raise ConnectionError("redis down")


def progress(**fields):
    return LaunchProgress(launch_id="launch_1", phase=LaunchPhase.SEQUENCING, message="Signing 3 transactions...", **fields)


async def test_publish_writes_redis_and_websocket():
    redis, manager = FakeRedis(), ConnectionManager()
    socket, broken = FakeSocket(), FakeSocket(broken=True)
    manager.active_connections["launch_1"] = [socket, broken]
    publisher = LaunchStatusPublisher(redis, manager, ttl=60)

    await publisher.publish(progress(total_transactions=3))

    assert redis.ttls["launch_status:launch_1"] == 60
    stored = await publisher.get("launch_1")
    assert stored.phase == LaunchPhase.SEQUENCING
    assert stored.total_transactions == 3
    assert socket.sent[0]["type"] == "status_update"
    assert socket.sent[0]["launch_id"] == "launch_1"
    # dead sockets are dropped
    assert manager.subscriber_count("launch_1") == 1


async def test_publish_survives_redis_outage():
    publisher = LaunchStatusPublisher(DeadRedis(), ConnectionManager())
    await publisher.publish(progress())
    assert await publisher.get("launch_1") is None


async def test_recovery_entry_round_trip():
    redis = FakeRedis()
    publisher = LaunchStatusPublisher(redis)
    record = LaunchRecord(
        name="Agent Meme", ticker="ABCD", image="https://img", ipfs_metadata="https://meta",
        contract_address="Mint111", created_by="Creator111",
    )
    failure = LaunchFailure(
        stage=LaunchStage.PERSISTENCE, reason="PersistenceError", message="db down",
        contract_address="Mint111", manual_recovery_required=True, pending_record=record,
    )

    assert await publisher.save_recovery(failure) is True
    assert "launch_recovery:Mint111" in redis.data
    assert await publisher.load_recovery("Mint111") == record

    await publisher.delete_recovery("Mint111")
    assert await publisher.load_recovery("Mint111") is None


async def test_nothing_to_recover_without_pending_record():
    failure = LaunchFailure(stage=LaunchStage.SEQUENCER, reason="SigningRejected", message="no")
    assert await LaunchStatusPublisher(FakeRedis()).save_recovery(failure) is False
