# app/schemas/creators/tokencreate.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, List, Literal, Optional, Tuple, Union
from datetime import datetime, timezone
import enum


# ============================================
# ENUMS
# ============================================
class CoinStatus(str, enum.Enum):
    ACTIVE = "active"


class LaunchStage(str, enum.Enum):
    VALIDATION = "validation"
    METADATA = "metadata"
    POOL = "pool"
    SEQUENCER = "sequencer"
    PERSISTENCE = "persistence"


class LaunchPhase(str, enum.Enum):
    IDLE = "idle"
    PREPARING_METADATA = "preparing_metadata"
    BUILDING_POOL = "building_pool"
    SEQUENCING = "sequencing"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SequencerPhase(str, enum.Enum):
    IDLE = "idle"
    SIGNING = "signing"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    COMPLETED = "completed"
    FAILED = "failed"


class ConfirmationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# LAUNCH REQUEST
# ============================================

class ImageAsset(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., repr=False, description="Raw image bytes")
    content_type: str = Field(..., description="MIME type of the image")
    filename: Optional[str] = Field(None, description="Original file name")


class SocialLinks(BaseModel):
    model_config = ConfigDict(frozen=True)

    x_link: Optional[str] = Field(None, description="X / Twitter profile URL")
    website_link: Optional[str] = Field(None, description="Project website URL")
    telegram_link: Optional[str] = Field(None, description="Telegram chat URL")


class LaunchRequest(BaseModel):
    """User parameters for one launch attempt. Limits are enforced by the metadata preparer."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Token name (max 32 characters)")
    ticker: str = Field(..., description="Token symbol (max 10 characters)")
    description: str = Field(default="", description="Token description (max 100 characters)")
    links: SocialLinks = Field(default_factory=SocialLinks)
    initial_buy_amount: Optional[float] = Field(None, description="Initial liquidity in SOL (0.1-5.0)")
    image: Optional[ImageAsset] = Field(None, description="Token image")


# ============================================
# PIPELINE ARTIFACTS
# ============================================

class MetadataReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    image_uri: str = Field(..., description="Public URI of the uploaded image")
    metadata_uri: str = Field(..., description="Public URI of the metadata document")


class TransactionBatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    transactions: Tuple[bytes, ...] = Field(..., repr=False, description="Unsigned transactions, in submission order")
    resulting_address: str = Field(..., description="Token / pool address created by the batch")

    def __len__(self) -> int:
        return len(self.transactions)


class SubmissionResult(BaseModel):
    index: int
    signature: Optional[str] = None
    status: ConfirmationStatus = ConfirmationStatus.PENDING


class SequencerState(BaseModel):
    phase: SequencerPhase = SequencerPhase.IDLE
    index: int = 0
    total: int = 0
    results: List[SubmissionResult] = Field(default_factory=list)
    reason: Optional[str] = Field(None, description="Error code when phase is failed")
    detail: Optional[str] = None

    @property
    def confirmed_count(self) -> int:
        return sum(1 for r in self.results if r.status == ConfirmationStatus.CONFIRMED)

    @property
    def confirmed_signatures(self) -> List[str]:
        return [r.signature for r in self.results if r.status == ConfirmationStatus.CONFIRMED and r.signature]


# ============================================
# LAUNCH RECORD
# ============================================

class LaunchRecord(BaseModel):
    name: str
    ticker: str
    description: str = ""
    image: str = Field(..., description="Image URI")
    ipfs_metadata: str = Field(..., description="Metadata document URI")
    x_link: Optional[str] = None
    website_link: Optional[str] = None
    telegram_link: Optional[str] = None
    initial_buy_amount: Optional[float] = None
    contract_address: str
    created_by: str
    verified: bool = False
    category: str = "meme"
    status: CoinStatus = CoinStatus.ACTIVE

    # Owned by market data collectors after creation
    market_cap: float = 0.0
    holders: int = 0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0

    created_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(from_attributes=True)


# ============================================
# OUTCOME + PROGRESS
# ============================================

class LaunchSuccess(BaseModel):
    kind: Literal["success"] = "success"
    record: LaunchRecord


class LaunchFailure(BaseModel):
    kind: Literal["failure"] = "failure"
    stage: LaunchStage
    reason: str = Field(..., description="Error code, e.g. SigningRejected")
    message: str
    failed_index: Optional[int] = None
    confirmed_count: int = 0
    total_transactions: int = 0
    confirmed_signatures: List[str] = Field(default_factory=list)
    contract_address: Optional[str] = None
    onchain_state_may_exist: bool = False
    manual_recovery_required: bool = False
    pending_record: Optional[LaunchRecord] = None


LaunchOutcome = Annotated[Union[LaunchSuccess, LaunchFailure], Field(discriminator="kind")]


class LaunchProgress(BaseModel):
    launch_id: str
    creator: Optional[str] = None
    phase: LaunchPhase = LaunchPhase.IDLE
    message: str = ""
    confirmed: int = 0
    total_transactions: int = 0
    progress: int = Field(default=0, ge=0, le=100)
    contract_address: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utcnow)
    outcome: Optional[LaunchOutcome] = None


# ============================================
# API RESPONSES
# ============================================

class LaunchStartedResponse(BaseModel):
    success: bool = True
    launch_id: str
    message: str = "Launch started in background"


class CancelLaunchResponse(BaseModel):
    success: bool
    launch_id: str
    message: str


class TerminalInput(BaseModel):
    input: str = Field(default="", description="Raw terminal line")


class CoinListResponse(BaseModel):
    coins: List[LaunchRecord]
    total: int
