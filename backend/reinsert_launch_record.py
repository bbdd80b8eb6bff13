# reinsert_launch_record.py
import asyncio
import sys

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.exceptions import PersistenceError
from app.services.launch_status import LaunchStatusPublisher
from app.services.record_store import RecordStore


async def reinsert_launch_record(contract_address: str, publisher: LaunchStatusPublisher, store: RecordStore) -> bool:
    record = await publisher.load_recovery(contract_address)
    if record is None:
        print(f"No recovery entry for {contract_address}")
        return False

    existing = await store.query_by_address(contract_address)
    if existing is None:
        try:
            await store.insert(record)
        except PersistenceError as e:
            print(f"Re-insert failed for {contract_address}: {e.message}")
            return False
        print(f"Re-inserted {record.ticker} ({contract_address}) for {record.created_by}")
    else:
        print(f"{contract_address} is already recorded, dropping the recovery entry")

    await publisher.delete_recovery(contract_address)
    return True


async def main(contract_address: str) -> int:
    engine = create_async_engine(settings.DATABASE_URL)
    AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    client = redis.Redis(host=settings.REDIS_HOST, port=settings.REDIS_PORT, db=settings.REDIS_DB, decode_responses=True)

    try:
        ok = await reinsert_launch_record(
            contract_address,
            LaunchStatusPublisher(client),
            RecordStore(AsyncSessionLocal),
        )
    finally:
        await client.close()
        await engine.dispose()
    return 0 if ok else 1


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python reinsert_launch_record.py <contract_address>")
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1])))
