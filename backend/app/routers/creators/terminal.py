# app/routers/creators/terminal.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile

from app.config import settings
from app.dependencies import (
    CreatorWallet, OrchestratorFactory, get_current_creator, get_orchestrator_factory, get_status_publisher
)
from app.schemas.creators.tokencreate import LaunchFailure, TerminalInput
from app.services.launch_status import LaunchStatusPublisher
from app.services.launch_steps import LaunchConversation, TerminalState, TerminalStep

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/creators/terminal",
    tags=['terminal']
)

# (creator address, session id) -> conversation
terminal_sessions: Dict[tuple, LaunchConversation] = {}


def prune_sessions(now: Optional[datetime] = None) -> int:
    """Drop conversations idle longer than the session TTL. Running launches are kept."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=settings.TERMINAL_SESSION_TTL_SECONDS)
    expired = [
        key for key, conversation in terminal_sessions.items()
        if conversation.step != TerminalStep.EXECUTING and conversation.last_active < cutoff
    ]
    for key in expired:
        del terminal_sessions[key]
    return len(expired)


def _session(creator: CreatorWallet, session_id: str) -> LaunchConversation:
    prune_sessions()
    key = (creator.address, session_id)
    if key not in terminal_sessions:
        terminal_sessions[key] = LaunchConversation()
    return terminal_sessions[key]


async def _execute(conversation: LaunchConversation, orchestrator, publisher: LaunchStatusPublisher):
    outcome = await conversation.execute(orchestrator)
    if isinstance(outcome, LaunchFailure) and outcome.manual_recovery_required:
        await publisher.save_recovery(outcome)


@router.get("/{session_id}", response_model=TerminalState)
async def get_terminal(session_id: str, creator: CreatorWallet = Depends(get_current_creator)):
    return _session(creator, session_id).state


@router.post("/{session_id}/image", response_model=TerminalState)
async def upload_terminal_image(
    session_id: str,
    image: UploadFile = File(...),
    creator: CreatorWallet = Depends(get_current_creator)
):
    contents = await image.read()
    return _session(creator, session_id).attach_image(contents, image.content_type or "", image.filename)


@router.post("/{session_id}/input", response_model=TerminalState)
async def terminal_input(
    session_id: str,
    payload: TerminalInput,
    background_tasks: BackgroundTasks,
    creator: CreatorWallet = Depends(get_current_creator),
    publisher: LaunchStatusPublisher = Depends(get_status_publisher),
    orchestrator_factory: OrchestratorFactory = Depends(get_orchestrator_factory)
):
    conversation = _session(creator, session_id)
    # Only the answer that moves the session into EXECUTING starts a launch
    collecting = conversation.step != TerminalStep.EXECUTING
    state = conversation.handle_input(payload.input)

    if collecting and state.ready and state.step == TerminalStep.EXECUTING:
        try:
            orchestrator = orchestrator_factory(
                creator=creator.address,
                wallet_id=creator.wallet_id,
                on_progress=publisher.publish,
            )
        except RuntimeError as e:
            conversation.abandon(str(e))
            raise HTTPException(status_code=503, detail=str(e))

        logger.info(f"Terminal session {session_id} launching as {orchestrator.launch_id}")
        background_tasks.add_task(_execute, conversation, orchestrator, publisher)
        state = state.model_copy(update={"launch_id": orchestrator.launch_id})

    return state
