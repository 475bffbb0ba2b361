"""Data models for Telegram Bot Forge."""
from .conversation import Sender, Turn, Transcript, TranscriptFrozenError
from .artifacts import ArtifactPair
from .session import SessionConfiguration, SessionState, StageBusyError, ONBOARDING_PROMPT
from .api import (
    RefineMode,
    CreateSessionRequest,
    SessionResponse,
    ModelInfo,
    TurnModel,
    TranscriptResponse,
    MessageRequest,
    MessageResponse,
    ArtifactPairModel,
    ArtifactsResponse,
    OverlayEditRequest,
    RefineRequest,
    RefineResponse,
    StageResponse,
    ErrorBody,
)

__all__ = [
    "Sender",
    "Turn",
    "Transcript",
    "TranscriptFrozenError",
    "ArtifactPair",
    "SessionConfiguration",
    "SessionState",
    "StageBusyError",
    "ONBOARDING_PROMPT",
    "RefineMode",
    "CreateSessionRequest",
    "SessionResponse",
    "ModelInfo",
    "TurnModel",
    "TranscriptResponse",
    "MessageRequest",
    "MessageResponse",
    "ArtifactPairModel",
    "ArtifactsResponse",
    "OverlayEditRequest",
    "RefineRequest",
    "RefineResponse",
    "StageResponse",
    "ErrorBody",
]
