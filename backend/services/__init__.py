"""Services for Telegram Bot Forge."""
from .llm_client import (
    ResilientCompletionClient,
    CompletionRequest,
    LLMResponse,
    LLMError,
    LLMClientError,
    ExhaustedRetriesError,
)
from .artifact_parser import parse_artifacts, MissingSeparatorError, SENTINEL
from .completion_logger import CompletionLogger
from .session_store import SessionStore
from .conversation_orchestrator import ConversationOrchestrator, ConversationReply, EmptyMessageError
from .generation_stage import GenerationStage, DEFAULT_MANIFEST
from .refinement_stage import RefinementStage, RefinementResult
from .stage_guard import Stage, StageDecision, resolve_stage
from .stage_errors import StageError, StageErrorKind, GenerationError, RefinementError

__all__ = [
    'ResilientCompletionClient', 'CompletionRequest', 'LLMResponse', 'LLMError', 'LLMClientError',
    'ExhaustedRetriesError', 'parse_artifacts', 'MissingSeparatorError', 'SENTINEL', 'CompletionLogger',
    'SessionStore', 'ConversationOrchestrator', 'ConversationReply', 'EmptyMessageError',
    'GenerationStage', 'DEFAULT_MANIFEST', 'RefinementStage', 'RefinementResult',
    'Stage', 'StageDecision', 'resolve_stage',
    'StageError', 'StageErrorKind', 'GenerationError', 'RefinementError',
]
