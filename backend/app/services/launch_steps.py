# app/services/launch_steps.py
import enum
import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from app.exceptions import ValidationError
from app.schemas.creators.tokencreate import (
    ImageAsset, LaunchFailure, LaunchOutcome, LaunchPhase, LaunchProgress, LaunchRequest, LaunchSuccess
)
from app.services.launch_orchestrator import LaunchOrchestrator
from app.services.launch_validation import (
    check_description, check_image, check_name, check_ticker, parse_initial_buy_amount
)

logger = logging.getLogger(__name__)


class TerminalStep(int, enum.Enum):
    IDLE = 0
    NAME = 1
    TICKER = 2
    DESCRIPTION = 3
    IMAGE_AND_AMOUNT = 4
    EXECUTING = 5


PROMPTS = {
    TerminalStep.IDLE: "",
    TerminalStep.NAME: "Enter token name (max 32 characters):",
    TerminalStep.TICKER: "Enter token ticker/symbol (max 10 characters):",
    TerminalStep.DESCRIPTION: "Enter description (max 100 characters):",
    TerminalStep.IMAGE_AND_AMOUNT: "Upload token image below. Then enter initial buy amount (0.1-5 SOL) or press Enter to skip:",
    TerminalStep.EXECUTING: "Creating your token...",
}


class TerminalState(BaseModel):
    step: TerminalStep = TerminalStep.IDLE
    prompt: str = ""
    history: List[str] = Field(default_factory=list)
    name: str = ""
    ticker: str = ""
    description: str = ""
    initial_buy_amount: Optional[float] = None
    has_image: bool = False
    launch_id: Optional[str] = None
    ready: bool = Field(False, description="All answers collected; the launch can run")


class LaunchConversation:
    """
    Stepwise launch entry: /create, name, ticker, description, image + amount.
    An invalid answer re-prompts the same step with the error in front.
    """

    def __init__(self):
        self._state = TerminalState()
        self._image: Optional[ImageAsset] = None
        self._running = False
        self.last_active = datetime.now(timezone.utc)

    @property
    def state(self) -> TerminalState:
        return self._state.model_copy(deep=True)

    @property
    def step(self) -> TerminalStep:
        return self._state.step

    def _go(self, step: TerminalStep, prompt: Optional[str] = None):
        self._state.step = step
        self._state.prompt = prompt if prompt is not None else PROMPTS[step]

    def _reprompt(self, error: str):
        self._state.prompt = f"Error: {error}. {PROMPTS[self._state.step]}"

    def reset(self):
        if self._state.step == TerminalStep.EXECUTING:
            return
        self._state = TerminalState()
        self._image = None

    def attach_image(self, data: bytes, content_type: str, filename: Optional[str] = None) -> TerminalState:
        """Image upload happens out of band; only accepted while collecting answers."""
        self.last_active = datetime.now(timezone.utc)
        if self._state.step in (TerminalStep.IDLE, TerminalStep.EXECUTING):
            return self.state
        image = ImageAsset(data=data, content_type=content_type, filename=filename)
        error = check_image(image)
        if error:
            self._state.history.append(f"✗ {error}")
            return self.state
        self._image = image
        self._state.has_image = True
        return self.state

    def handle_input(self, text: str) -> TerminalState:
        self.last_active = datetime.now(timezone.utc)
        value = (text or "").strip()
        step = self._state.step

        if step == TerminalStep.EXECUTING:
            return self.state

        if value == "/reset":
            self.reset()
            return self.state

        if step == TerminalStep.IDLE:
            if value == "/create":
                self._state.history = []
                self._go(TerminalStep.NAME)
            return self.state

        if step == TerminalStep.NAME:
            error = check_name(value)
            if error:
                self._reprompt(error)
            else:
                self._state.name = value
                self._go(TerminalStep.TICKER)

        elif step == TerminalStep.TICKER:
            error = check_ticker(value)
            if error:
                self._reprompt(error)
            else:
                self._state.ticker = value
                self._go(TerminalStep.DESCRIPTION)

        elif step == TerminalStep.DESCRIPTION:
            error = check_description(value)
            if error:
                self._reprompt(error)
            else:
                self._state.description = value
                self._go(TerminalStep.IMAGE_AND_AMOUNT)

        elif step == TerminalStep.IMAGE_AND_AMOUNT:
            try:
                amount = parse_initial_buy_amount(value)
            except ValidationError as e:
                self._reprompt(e.errors["initial_buy_amount"])
                return self.state
            if self._image is None:
                self._reprompt("Upload token image first")
                return self.state
            self._state.initial_buy_amount = amount
            self._state.history = []
            self._state.ready = True
            self._go(TerminalStep.EXECUTING)

        return self.state

    def abandon(self, error: str):
        """Drop collected answers whose launch could not be started."""
        self._state.ready = False
        self._image = None
        self._state.has_image = False
        self._state.history.append(f"✗ Error: {error}")
        self._go(TerminalStep.IDLE)

    def build_request(self) -> LaunchRequest:
        if not self._state.ready:
            raise RuntimeError("Launch answers are not complete")
        return LaunchRequest(
            name=self._state.name,
            ticker=self._state.ticker,
            description=self._state.description,
            initial_buy_amount=self._state.initial_buy_amount,
            image=self._image,
        )

    async def execute(self, orchestrator: LaunchOrchestrator) -> LaunchOutcome:
        """Run the launch, narrating progress into the history. Ends back at idle."""
        if self._running:
            raise RuntimeError("A launch is already running for this session")
        request = self.build_request()
        self._running = True
        history = self._state.history
        self._state.launch_id = orchestrator.launch_id
        seen = {"phase": None, "confirmed": 0}

        def narrate(progress: LaunchProgress):
            if progress.phase != seen["phase"]:
                seen["phase"] = progress.phase
                if progress.phase == LaunchPhase.PREPARING_METADATA:
                    history.append("Preparing token metadata...")
                elif progress.phase == LaunchPhase.BUILDING_POOL:
                    history.append("Creating pool...")
                elif progress.phase == LaunchPhase.SEQUENCING:
                    history.append(f"Signing {progress.total_transactions} transactions...")
                elif progress.phase == LaunchPhase.PERSISTING:
                    history.append("Saving token data...")
            if progress.confirmed > seen["confirmed"]:
                seen["confirmed"] = progress.confirmed
                history.append(f"✓ Transaction {progress.confirmed}/{progress.total_transactions} confirmed")

        orchestrator.subscribe(narrate)
        try:
            outcome = await orchestrator.launch(request)
        finally:
            self._running = False
            self.last_active = datetime.now(timezone.utc)
            self._state.ready = False
            self._image = None
            self._state.has_image = False
            self._go(TerminalStep.IDLE)

        if isinstance(outcome, LaunchSuccess):
            history.extend(["✓ Token created successfully!", f"Contract: {outcome.record.contract_address}"])
        elif isinstance(outcome, LaunchFailure):
            history.append(f"✗ Error: {outcome.message}")
        return outcome
