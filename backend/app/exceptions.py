# app/exceptions.py
from typing import Dict, Optional

from app.schemas.creators.tokencreate import LaunchStage


class LaunchError(Exception):
    """Base class for every failure a launch attempt can report."""
    stage: LaunchStage = LaunchStage.VALIDATION
    code: str = "LaunchError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(LaunchError):
    stage = LaunchStage.VALIDATION
    code = "ValidationError"

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        summary = "; ".join(f"{field}: {msg}" for field, msg in self.errors.items())
        super().__init__(summary or "invalid launch request")


class AssetUploadError(LaunchError):
    stage = LaunchStage.METADATA
    code = "AssetUploadError"


class PoolCreationError(LaunchError):
    stage = LaunchStage.POOL
    code = "PoolCreationError"


class SequencerError(LaunchError):
    """Failure of a single transaction; the sequencer fills in the batch index."""
    stage = LaunchStage.SEQUENCER
    code = "SequencerError"

    def __init__(self, message: str = "", index: Optional[int] = None):
        super().__init__(message)
        self.index = index


class SigningRejected(SequencerError):
    code = "SigningRejected"


class SubmissionError(SequencerError):
    code = "SubmissionError"


class ConfirmationTimeout(SequencerError):
    code = "ConfirmationTimeout"


class ConfirmationFailed(SequencerError):
    code = "ConfirmationFailed"


class PersistenceError(LaunchError):
    stage = LaunchStage.PERSISTENCE
    code = "PersistenceError"


class LaunchCancelled(LaunchError):
    code = "LaunchCancelled"

    def __init__(self, stage: LaunchStage, message: str = "Launch cancelled by user"):
        super().__init__(message)
        self.stage = stage
