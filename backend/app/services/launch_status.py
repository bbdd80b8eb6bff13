# app/services/launch_status.py
import logging
from typing import Optional

from redis.asyncio import Redis

from app.config import settings
from app.services.websocket_manager import ConnectionManager
from app.schemas.creators.tokencreate import LaunchFailure, LaunchProgress, LaunchRecord

logger = logging.getLogger(__name__)

STATUS_KEY = "launch_status:{launch_id}"
RECOVERY_KEY = "launch_recovery:{address}"


class LaunchStatusPublisher:
    """
    Mirrors orchestrator progress into Redis and out to WebSocket subscribers.
    Publishing never raises: a dead Redis must not break a launch.
    """

    def __init__(self, redis: Redis, ws_manager: Optional[ConnectionManager] = None, ttl: Optional[int] = None):
        self.redis = redis
        self.ws_manager = ws_manager
        self.ttl = ttl or settings.LAUNCH_STATUS_TTL_SECONDS

    async def publish(self, progress: LaunchProgress):
        try:
            await self.redis.setex(
                STATUS_KEY.format(launch_id=progress.launch_id),
                self.ttl,
                progress.model_dump_json()
            )
        except Exception as redis_error:
            logger.error(f"Redis error: {redis_error}")

        if self.ws_manager is not None:
            try:
                await self.ws_manager.send_status(progress)
            except Exception as ws_error:
                logger.error(f"WebSocket error: {ws_error}")

    async def get(self, launch_id: str) -> Optional[LaunchProgress]:
        try:
            cached = await self.redis.get(STATUS_KEY.format(launch_id=launch_id))
        except Exception as redis_error:
            logger.error(f"Redis error: {redis_error}")
            return None
        return LaunchProgress.model_validate_json(cached) if cached else None

    # ============================================
    # MANUAL RECOVERY
    # ============================================

    async def save_recovery(self, failure: LaunchFailure) -> bool:
        """Keep the unsaved record of a fully confirmed launch for re-insertion."""
        if failure.pending_record is None:
            return False
        address = failure.pending_record.contract_address
        try:
            # No TTL: the entry lives until someone re-inserts it
            await self.redis.set(RECOVERY_KEY.format(address=address), failure.pending_record.model_dump_json())
        except Exception as redis_error:
            logger.critical(
                f"Could not store recovery entry for {address}: {redis_error}. "
                f"Record: {failure.pending_record.model_dump_json()}"
            )
            return False
        logger.warning(f"Stored recovery entry for {address}")
        return True

    async def load_recovery(self, address: str) -> Optional[LaunchRecord]:
        cached = await self.redis.get(RECOVERY_KEY.format(address=address))
        return LaunchRecord.model_validate_json(cached) if cached else None

    async def delete_recovery(self, address: str):
        await self.redis.delete(RECOVERY_KEY.format(address=address))
