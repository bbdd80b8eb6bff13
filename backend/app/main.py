# app/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import models
from app.config import settings
from app.database import engine
from app.exceptions import LaunchError, PersistenceError, ValidationError
from app.logging_config import setup_logging
from app.routers.creators import coins_router, terminal_router, tokencreate_router, websocket_router
from app.utils import redis_client

setup_logging()
logger = logging.getLogger(__name__)


# ===================================================================
# LIFESPAN
# ===================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        async with engine.begin() as conn:
            await conn.run_sync(models.Base.metadata.create_all)
        logger.info("🚀 Launchpad API STARTED")
        yield
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise
    finally:
        await redis_client.close()
        await engine.dispose()


# FastAPI app
app = FastAPI(
    title="Launchpad API",
    description="Token launch backend: metadata, pool creation, ordered submission and launch records.",
    version="0.1.0",
    lifespan=lifespan,
)

if settings.ENVIRONMENT == "development":
    allowed_origins = ["*"]
else:
    allowed_origins = settings.ALLOWED_ORIGINS

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600
)


@app.exception_handler(LaunchError)
async def launch_error_handler(request: Request, exc: LaunchError):
    if isinstance(exc, ValidationError):
        status_code = 422
    elif isinstance(exc, PersistenceError):
        status_code = 503
    else:
        status_code = 502
    logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


# Include routers
app.include_router(tokencreate_router)
app.include_router(terminal_router)
app.include_router(coins_router)
app.include_router(websocket_router)


@app.get("/ping")
async def ping():
    logger.info("Ping received.")
    return {"message": "pong", "status": "ok"}
