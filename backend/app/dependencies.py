# app/dependencies.py
from typing import Callable, Optional

from fastapi import Header, HTTPException
from pydantic import BaseModel
from solders.pubkey import Pubkey

from app.database import AsyncSessionLocal
from app.services.websocket_manager import manager as websocket_manager
from app.services.launch_orchestrator import LaunchOrchestrator, create_launch_orchestrator
from app.services.launch_status import LaunchStatusPublisher
from app.services.record_store import RecordStore
from app.utils import redis_client


class CreatorWallet(BaseModel):
    """Wallet of the authenticated creator, as forwarded by the session layer"""
    address: str
    wallet_id: Optional[str] = None


async def get_current_creator(
    x_wallet_address: Optional[str] = Header(None),
    x_wallet_id: Optional[str] = Header(None)
) -> CreatorWallet:
    if not x_wallet_address:
        raise HTTPException(status_code=401, detail="Wallet not connected")
    try:
        Pubkey.from_string(x_wallet_address)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid wallet address")
    return CreatorWallet(address=x_wallet_address, wallet_id=x_wallet_id)


def get_record_store() -> RecordStore:
    return RecordStore(AsyncSessionLocal)


def get_status_publisher() -> LaunchStatusPublisher:
    return LaunchStatusPublisher(redis_client, websocket_manager)


OrchestratorFactory = Callable[..., LaunchOrchestrator]


def get_orchestrator_factory() -> OrchestratorFactory:
    return create_launch_orchestrator
