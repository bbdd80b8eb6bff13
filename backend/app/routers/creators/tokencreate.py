# app/routers/creators/tokencreate.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile

from app.config import settings
from app.dependencies import (
    CreatorWallet, OrchestratorFactory, get_current_creator, get_orchestrator_factory, get_status_publisher
)
from app.exceptions import ValidationError
from app.schemas.creators.tokencreate import (
    CancelLaunchResponse, ImageAsset, LaunchFailure, LaunchProgress, LaunchRequest,
    LaunchStartedResponse, SocialLinks
)
from app.services.launch_orchestrator import TERMINAL_PHASES, LaunchOrchestrator
from app.services.launch_status import LaunchStatusPublisher
from app.services.launch_validation import parse_initial_buy_amount, validate_launch_request


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/creators/token",
    tags=['token']
)

# Attempts started by this process, by launch id
active_launches: Dict[str, LaunchOrchestrator] = {}


def prune_launches(now: Optional[datetime] = None) -> int:
    """Forget finished attempts older than the status TTL. Redis keeps their last status."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=settings.LAUNCH_STATUS_TTL_SECONDS)
    expired = [
        launch_id for launch_id, orchestrator in active_launches.items()
        if orchestrator.phase in TERMINAL_PHASES and orchestrator.progress.updated_at < cutoff
    ]
    for launch_id in expired:
        del active_launches[launch_id]
    if expired:
        logger.info(f"Pruned {len(expired)} finished launch(es) from the registry")
    return len(expired)


async def run_launch(orchestrator: LaunchOrchestrator, request: LaunchRequest, publisher: LaunchStatusPublisher):
    """Background task: one launch attempt from start to terminal outcome"""
    outcome = await orchestrator.launch(request)
    if isinstance(outcome, LaunchFailure) and outcome.manual_recovery_required:
        await publisher.save_recovery(outcome)


# ============================================
# API ENDPOINTS
# ============================================

@router.post("/launch", response_model=LaunchStartedResponse)
async def create_token_launch(
    background_tasks: BackgroundTasks,
    name: str = Form(...),
    ticker: str = Form(...),
    description: str = Form(""),
    x_link: Optional[str] = Form(None),
    website_link: Optional[str] = Form(None),
    telegram_link: Optional[str] = Form(None),
    initial_buy_amount: Optional[str] = Form(None),
    image: UploadFile = File(...),
    creator: CreatorWallet = Depends(get_current_creator),
    publisher: LaunchStatusPublisher = Depends(get_status_publisher),
    orchestrator_factory: OrchestratorFactory = Depends(get_orchestrator_factory)
):
    """
    Validate a launch request and start it in the background.
    Poll /launch/{launch_id}/status or subscribe to /ws/launch/{launch_id} for progress.
    """
    prune_launches()
    contents = await image.read()
    try:
        request = LaunchRequest(
            name=name.strip(),
            ticker=ticker.strip(),
            description=description.strip(),
            links=SocialLinks(
                x_link=x_link or None,
                website_link=website_link or None,
                telegram_link=telegram_link or None,
            ),
            initial_buy_amount=parse_initial_buy_amount(initial_buy_amount),
            image=ImageAsset(data=contents, content_type=image.content_type or "", filename=image.filename),
        )
        validate_launch_request(request)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"message": e.message, "errors": e.errors})

    try:
        orchestrator = orchestrator_factory(
            creator=creator.address,
            wallet_id=creator.wallet_id,
            on_progress=publisher.publish,
        )
    except RuntimeError as e:
        logger.error(f"Cannot start launch for {creator.address}: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    launch_id = orchestrator.launch_id
    active_launches[launch_id] = orchestrator
    await publisher.publish(orchestrator.progress)

    logger.info(f"🚀 Launch {launch_id} queued: {request.name} (${request.ticker}) by {creator.address}")
    background_tasks.add_task(run_launch, orchestrator, request, publisher)

    return LaunchStartedResponse(launch_id=launch_id)


@router.get("/launch/{launch_id}/status", response_model=LaunchProgress)
async def get_launch_status(
    launch_id: str,
    creator: CreatorWallet = Depends(get_current_creator),
    publisher: LaunchStatusPublisher = Depends(get_status_publisher)
):
    """
    Get status of a specific launch
    """
    prune_launches()
    orchestrator = active_launches.get(launch_id)
    if orchestrator is not None and orchestrator.creator != creator.address:
        raise HTTPException(status_code=404, detail="Launch not found")

    # Try Redis first
    cached = await publisher.get(launch_id)
    if cached is not None:
        if cached.creator != creator.address:
            raise HTTPException(status_code=404, detail="Launch not found")
        return cached

    if orchestrator is None:
        raise HTTPException(status_code=404, detail="Launch not found")
    return orchestrator.progress


@router.post("/cancel-launch/{launch_id}", response_model=CancelLaunchResponse)
async def cancel_launch(
    launch_id: str,
    creator: CreatorWallet = Depends(get_current_creator)
):
    """
    Cancel a launch that has not started submitting transactions
    """
    orchestrator = active_launches.get(launch_id)
    if orchestrator is None or orchestrator.creator != creator.address:
        raise HTTPException(status_code=404, detail="Launch not found")

    if not orchestrator.cancel():
        raise HTTPException(
            status_code=409,
            detail=f"Launch is {orchestrator.phase.value} and can no longer be cancelled"
        )

    return CancelLaunchResponse(
        success=True,
        launch_id=launch_id,
        message=f"Launch {launch_id} cancelled successfully"
    )
