# app/services/launch_validation.py
import math
from typing import Dict, Optional

from app.exceptions import ValidationError
from app.schemas.creators.tokencreate import ImageAsset, LaunchRequest

MAX_NAME_LENGTH = 32
MAX_TICKER_LENGTH = 10
MAX_DESCRIPTION_LENGTH = 100
MIN_INITIAL_BUY_SOL = 0.1
MAX_INITIAL_BUY_SOL = 5.0

# Allowed file types
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp"
}

# Maximum file size (5MB)
MAX_IMAGE_BYTES = 5 * 1024 * 1024


# ============================================
# SINGLE FIELD CHECKS (return an error message or None)
# ============================================

def check_name(value: str) -> Optional[str]:
    if not value or not value.strip():
        return "Name is required"
    if len(value) > MAX_NAME_LENGTH:
        return f"Name too long (max {MAX_NAME_LENGTH} characters)"
    return None


def check_ticker(value: str) -> Optional[str]:
    if not value or not value.strip():
        return "Ticker is required"
    if len(value) > MAX_TICKER_LENGTH:
        return f"Ticker too long (max {MAX_TICKER_LENGTH} characters)"
    return None


def check_description(value: str) -> Optional[str]:
    if value is not None and len(value) > MAX_DESCRIPTION_LENGTH:
        return f"Description too long (max {MAX_DESCRIPTION_LENGTH} characters)"
    return None


def check_initial_buy_amount(value: Optional[float]) -> Optional[str]:
    """None means no initial liquidity and is always accepted."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return "Amount must be a number"
    if value < MIN_INITIAL_BUY_SOL or value > MAX_INITIAL_BUY_SOL:
        return f"Amount must be {MIN_INITIAL_BUY_SOL}-{MAX_INITIAL_BUY_SOL:g} SOL"
    return None


def check_link(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if not (value.startswith("https://") or value.startswith("http://")) or len(value) <= len("https://"):
        return "Link must be an http(s) URL"
    return None


def check_image(image: Optional[ImageAsset]) -> Optional[str]:
    if image is None or not image.data:
        return "Token image is required"
    if image.content_type not in ALLOWED_IMAGE_TYPES:
        return f"Unsupported file type. Allowed: {', '.join(ALLOWED_IMAGE_TYPES.keys())}"
    if len(image.data) > MAX_IMAGE_BYTES:
        return f"File too large. Maximum size is {MAX_IMAGE_BYTES // 1024 // 1024}MB"
    return None


# ============================================
# RAISING VARIANTS
# ============================================

def _raise_if(field: str, error: Optional[str]):
    if error:
        raise ValidationError({field: error})


def validate_name(value: str) -> str:
    _raise_if("name", check_name(value))
    return value


def validate_ticker(value: str) -> str:
    _raise_if("ticker", check_ticker(value))
    return value


def validate_description(value: str) -> str:
    _raise_if("description", check_description(value))
    return value


def validate_image(image: Optional[ImageAsset]) -> ImageAsset:
    _raise_if("image", check_image(image))
    return image


def parse_initial_buy_amount(raw: Optional[str]) -> Optional[float]:
    """Parse a typed amount; blank input skips the initial buy."""
    if raw is None or not raw.strip():
        return None
    try:
        amount = float(raw.strip())
    except ValueError:
        raise ValidationError({"initial_buy_amount": "Amount must be a number"})
    _raise_if("initial_buy_amount", check_initial_buy_amount(amount))
    return amount


def validate_launch_request(request: LaunchRequest) -> None:
    """Check every field of the request, reporting all problems at once."""
    checks = {
        "name": check_name(request.name),
        "ticker": check_ticker(request.ticker),
        "description": check_description(request.description),
        "initial_buy_amount": check_initial_buy_amount(request.initial_buy_amount),
        "x_link": check_link(request.links.x_link),
        "website_link": check_link(request.links.website_link),
        "telegram_link": check_link(request.links.telegram_link),
        "image": check_image(request.image),
    }
    errors: Dict[str, str] = {field: msg for field, msg in checks.items() if msg}
    if errors:
        raise ValidationError(errors)
