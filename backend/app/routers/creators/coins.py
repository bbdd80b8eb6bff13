# app/routers/creators/coins.py
import logging

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_record_store
from app.schemas.creators.tokencreate import CoinListResponse, LaunchRecord
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/creators/coins",
    tags=['coins']
)


@router.get("/creator/{address}", response_model=CoinListResponse)
async def get_coins_by_creator(address: str, store: RecordStore = Depends(get_record_store)):
    coins = await store.query_by_creator(address)
    return CoinListResponse(coins=coins, total=len(coins))


@router.get("/{address}", response_model=LaunchRecord)
async def get_coin(address: str, store: RecordStore = Depends(get_record_store)):
    coin = await store.query_by_address(address)
    if coin is None:
        raise HTTPException(status_code=404, detail="Coin not found")
    return coin
