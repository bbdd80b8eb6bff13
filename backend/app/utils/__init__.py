import redis.asyncio as redis

from app.config import settings

# Connection is lazy; nothing touches the network until the first command
redis_client = redis.Redis(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    db=settings.REDIS_DB,
    decode_responses=True,
)
