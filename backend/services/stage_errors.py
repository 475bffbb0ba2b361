"""Terminal errors reported by the generation and refinement stages."""
from enum import Enum
from typing import Any, Dict, Optional


class StageErrorKind(str, Enum):
    INSUFFICIENT_TRANSCRIPT = "INSUFFICIENT_TRANSCRIPT"
    EXHAUSTED_RETRIES = "EXHAUSTED_RETRIES"
    MISSING_SEPARATOR = "MISSING_SEPARATOR"
    EMPTY_ARTIFACT = "EMPTY_ARTIFACT"
    NO_ARTIFACTS = "NO_ARTIFACTS"
    STALE_RESPONSE = "STALE_RESPONSE"


class StageError(Exception):
    """A stage action failed; nothing was committed."""

    def __init__(self, kind: StageErrorKind, message: str, details: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.kind.value, "message": self.message, "details": self.details}


class GenerationError(StageError):
    """Raised by the generation stage."""


class RefinementError(StageError):
    """Raised by the refinement stage."""
