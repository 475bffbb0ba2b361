"""API request and response models."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RefineMode(str, Enum):
    """Which refinement sub-flow handles the input box."""
    MODIFY = "modify"
    DISCUSS = "discuss"


class CreateSessionRequest(BaseModel):
    """ModelSelection submission."""
    model_id: str = Field(..., min_length=1, description="Completion model identifier")
    api_key: str = Field(..., min_length=1, description="Completion service credential")
    replaces: Optional[str] = Field(None, description="Session to discard in favour of this one")


class SessionResponse(BaseModel):
    session_id: str
    model_id: str
    created_at: float


class ModelInfo(BaseModel):
    """One entry of the model picker."""
    id: str
    name: str
    provider: str = ""
    description: str = ""
    default: bool = False


class TurnModel(BaseModel):
    id: str
    content: str
    sender: str
    timestamp: datetime


class TranscriptResponse(BaseModel):
    session_id: str
    turns: List[TurnModel]
    frozen: bool = False


class MessageRequest(BaseModel):
    content: str = Field(..., description="User message text")


class MessageResponse(BaseModel):
    """Reply appended to a transcript; `failed` marks the fixed apology turn."""
    reply: TurnModel
    failed: bool = False


class ArtifactPairModel(BaseModel):
    source: str
    manifest: str


class ArtifactsResponse(BaseModel):
    session_id: str
    canonical: ArtifactPairModel
    overlay: Optional[ArtifactPairModel] = None
    current: ArtifactPairModel
    editing: bool = False
    revision: int


class OverlayEditRequest(BaseModel):
    source: str
    manifest: str


class RefineRequest(BaseModel):
    mode: RefineMode
    content: str = Field(..., description="Modification request or question")


class RefineResponse(BaseModel):
    mode: RefineMode
    artifacts: Optional[ArtifactsResponse] = None
    reply: Optional[TurnModel] = None
    failed: bool = False


class StageResponse(BaseModel):
    requested: str
    stage: str
    redirected: bool


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
