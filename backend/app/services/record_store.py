# app/services/record_store.py
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import PersistenceError
from app.models import Coin
from app.schemas.creators.tokencreate import (
    LaunchRecord, LaunchRequest, MetadataReference
)

logger = logging.getLogger(__name__)


class RecordStore:
    """Coin table access. Every storage failure surfaces as PersistenceError."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert(self, record: LaunchRecord) -> LaunchRecord:
        async with self.session_factory() as db:
            coin = Coin(**record.model_dump())
            db.add(coin)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                logger.error(f"Coin {record.contract_address} already exists: {e.orig}")
                raise PersistenceError(f"Coin {record.contract_address} already recorded") from e
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Failed to save coin {record.contract_address}: {e}")
                raise PersistenceError(f"Failed to save coin: {e}") from e

        logger.info(f"💾 Saved coin {record.ticker} at {record.contract_address}")
        return record

    async def query_by_creator(self, creator: str) -> List[LaunchRecord]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Coin).where(Coin.created_by == creator).order_by(Coin.created_at.desc())
                )
                coins = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load coins for {creator}: {e}") from e
        return [LaunchRecord.model_validate(c) for c in coins]

    async def query_by_address(self, address: str) -> Optional[LaunchRecord]:
        try:
            async with self.session_factory() as db:
                coin = await db.get(Coin, address)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load coin {address}: {e}") from e
        return LaunchRecord.model_validate(coin) if coin else None


class LaunchRecordWriter:
    def __init__(self, store: RecordStore):
        self.store = store

    @staticmethod
    def build_record(
        request: LaunchRequest,
        metadata: MetadataReference,
        on_chain_address: str,
        creator: str
    ) -> LaunchRecord:
        return LaunchRecord(
            name=request.name,
            ticker=request.ticker,
            description=request.description,
            image=metadata.image_uri,
            ipfs_metadata=metadata.metadata_uri,
            x_link=request.links.x_link or None,
            website_link=request.links.website_link or None,
            telegram_link=request.links.telegram_link or None,
            initial_buy_amount=request.initial_buy_amount,
            contract_address=on_chain_address,
            created_by=creator,
        )

    async def persist(
        self,
        request: LaunchRequest,
        metadata: MetadataReference,
        on_chain_address: str,
        creator: str
    ) -> LaunchRecord:
        record = self.build_record(request, metadata, on_chain_address, creator)
        return await self.store.insert(record)
