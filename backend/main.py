"""Main entry point for the Telegram Bot Forge API."""
import logging
import tiktoken
from typing import List, Optional
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware

from config import (
    PORT,
    LOG_LEVEL,
    LOG_FORMAT,
    CORS_ORIGINS,
    AVAILABLE_MODELS,
    DEFAULT_MODEL,
    MODEL_CATALOG,
    COMPLETION_LOG_PATH,
    SOURCE_FILENAME,
    MANIFEST_FILENAME,
)
from logger import setup_logging
from models.api import (
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
)
from models.artifacts import ArtifactPair
from models.conversation import Turn, Transcript, TranscriptFrozenError
from models.session import SessionConfiguration, SessionState, StageBusyError
from services.llm_client import ResilientCompletionClient
from services.completion_logger import CompletionLogger
from services.session_store import SessionStore
from services.conversation_orchestrator import ConversationOrchestrator, EmptyMessageError
from services.generation_stage import GenerationStage
from services.refinement_stage import RefinementStage
from services.stage_guard import Stage, resolve_stage
from services.stage_errors import StageError, StageErrorKind

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Telegram Bot Forge",
    description="Describe a Telegram bot in plain language and get a runnable script plus requirements.txt",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
session_store: SessionStore = None
completion_client: ResilientCompletionClient = None
completion_logger: Optional[CompletionLogger] = None
conversation_orchestrator: ConversationOrchestrator = None
generation_stage: GenerationStage = None
refinement_stage: RefinementStage = None
tiktoken_encoder = None

STAGE_ERROR_STATUS = {
    StageErrorKind.INSUFFICIENT_TRANSCRIPT: 400,
    StageErrorKind.EXHAUSTED_RETRIES: 503,
    StageErrorKind.MISSING_SEPARATOR: 502,
    StageErrorKind.EMPTY_ARTIFACT: 502,
    StageErrorKind.NO_ARTIFACTS: 409,
    StageErrorKind.STALE_RESPONSE: 409,
}


def init_services(client, store: Optional[SessionStore] = None) -> None:
    """Wire the stages around one completion client."""
    global session_store, completion_client
    global conversation_orchestrator, generation_stage, refinement_stage

    completion_client = client
    # SDK clients are shared per credential and closed with the last session using them
    session_store = store or SessionStore(
        on_create=lambda state: completion_client.acquire(state.config.credential),
        on_discard=lambda state: completion_client.release(state.config.credential)
    )
    conversation_orchestrator = ConversationOrchestrator(completion_client)
    generation_stage = GenerationStage(completion_client)
    refinement_stage = RefinementStage(completion_client)


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global completion_logger, tiktoken_encoder

    if LOG_FORMAT == "json":
        setup_logging(LOG_LEVEL)

    logger.info("Initializing Telegram Bot Forge services...")

    try:
        # Prompt size estimates for the completion audit log
        tiktoken_encoder = tiktoken.get_encoding("o200k_base")
        logger.info("Initialized tiktoken encoder (o200k_base)")
    except Exception as e:
        logger.warning(f"tiktoken encoder unavailable, prompt sizes will not be estimated: {e}")
        tiktoken_encoder = None

    try:
        if COMPLETION_LOG_PATH:
            completion_logger = CompletionLogger(log_file_path=COMPLETION_LOG_PATH)

        init_services(ResilientCompletionClient(
            completion_logger=completion_logger,
            token_encoder=tiktoken_encoder
        ))
        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    if completion_client is not None:
        await completion_client.close()
    if completion_logger is not None:
        completion_logger.close()


def _error_detail(code: str, message: str, **details) -> dict:
    return {"error": {"code": code, "message": message, "details": details}}


def _require_stage(session_id: str, stage: Stage) -> SessionState:
    """Return the session if `stage` may be entered, else answer with a redirect."""
    state = session_store.get(session_id)
    decision = resolve_stage(state, stage)
    if decision.redirected:
        raise HTTPException(
            status_code=409,
            detail={
                "error": {
                    "code": "PRECONDITION_MISSING",
                    "message": f"Cannot enter {stage.value} yet",
                    "redirect_to": decision.stage.value,
                }
            }
        )
    return state


def _turn_model(turn: Turn) -> TurnModel:
    return TurnModel(
        id=turn.turn_id,
        content=turn.content,
        sender=turn.sender.value,
        timestamp=turn.timestamp
    )


def _transcript_response(session_id: str, transcript: Transcript) -> TranscriptResponse:
    return TranscriptResponse(
        session_id=session_id,
        turns=[_turn_model(turn) for turn in transcript.turns],
        frozen=transcript.frozen
    )


def _pair_model(pair: ArtifactPair) -> ArtifactPairModel:
    return ArtifactPairModel(source=pair.source, manifest=pair.manifest)


def _artifacts_response(state: SessionState) -> ArtifactsResponse:
    return ArtifactsResponse(
        session_id=state.session_id,
        canonical=_pair_model(state.artifacts),
        overlay=_pair_model(state.overlay) if state.overlay is not None else None,
        current=_pair_model(state.current_artifacts()),
        editing=state.editing,
        revision=state.revision
    )


def _stage_error(e: StageError) -> HTTPException:
    return HTTPException(
        status_code=STAGE_ERROR_STATUS.get(e.kind, 500),
        detail={"error": e.to_dict()}
    )


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Telegram Bot Forge API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "telegram-bot-forge",
        "version": "1.0.0",
        "active_sessions": len(session_store) if session_store is not None else 0
    }


@app.get("/models", response_model=List[ModelInfo])
async def list_models() -> List[ModelInfo]:
    """Models offered at model selection."""
    models = []
    for model in AVAILABLE_MODELS:
        entry = MODEL_CATALOG.get(model, {})
        models.append(ModelInfo(
            id=model,
            name=entry.get("name", model),
            provider=entry.get("provider", ""),
            description=entry.get("description", ""),
            default=(model == DEFAULT_MODEL)
        ))
    return models


@app.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(request: CreateSessionRequest) -> SessionResponse:
    """
    Start a guided session with a model and credential.

    The configuration cannot change afterwards; choosing another model or key
    means creating a new session, optionally discarding the old one via
    `replaces`.
    """
    if AVAILABLE_MODELS and request.model_id not in AVAILABLE_MODELS:
        raise HTTPException(
            status_code=400,
            detail=_error_detail("UNKNOWN_MODEL", f"Model '{request.model_id}' is not available",
                                 available=AVAILABLE_MODELS)
        )

    try:
        config = SessionConfiguration(model_id=request.model_id, credential=request.api_key)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=_error_detail("INVALID_CONFIGURATION", str(e)))

    state = session_store.create(config, replaces=request.replaces)
    return SessionResponse(
        session_id=state.session_id,
        model_id=config.model_id,
        created_at=state.created_at
    )


@app.delete("/sessions/{session_id}", status_code=204)
async def end_session(session_id: str) -> Response:
    """End a session; its transcript and artifacts are dropped."""
    session_store.discard(session_id)
    return Response(status_code=204)


@app.get("/sessions/{session_id}/stages/{stage}", response_model=StageResponse)
async def enter_stage(session_id: str, stage: Stage) -> StageResponse:
    """Evaluate the entry guard of a navigation stage."""
    decision = resolve_stage(session_store.get(session_id), stage)
    return StageResponse(
        requested=decision.requested.value,
        stage=decision.stage.value,
        redirected=decision.redirected
    )


@app.get("/sessions/{session_id}/transcript", response_model=TranscriptResponse)
async def get_transcript(session_id: str) -> TranscriptResponse:
    state = _require_stage(session_id, Stage.CHAT)
    return _transcript_response(session_id, state.transcript)


@app.post("/sessions/{session_id}/messages", response_model=MessageResponse)
async def send_message(session_id: str, request: MessageRequest) -> MessageResponse:
    """
    Send one requirements-gathering message.

    A completion failure does not fail the request: the reply is an apology
    turn flagged with `failed`, and the user can send another message.
    """
    state = _require_stage(session_id, Stage.CHAT)

    try:
        reply = await conversation_orchestrator.send(state, request.content)
    except EmptyMessageError as e:
        raise HTTPException(status_code=400, detail=_error_detail("EMPTY_MESSAGE", str(e)))
    except TranscriptFrozenError as e:
        raise HTTPException(status_code=409, detail=_error_detail("TRANSCRIPT_FROZEN", str(e)))
    except StageBusyError as e:
        raise HTTPException(status_code=409, detail=_error_detail("STAGE_BUSY", str(e)))

    return MessageResponse(reply=_turn_model(reply.turn), failed=reply.failed)


@app.post("/sessions/{session_id}/generate", response_model=ArtifactsResponse)
async def generate_bot(session_id: str) -> ArtifactsResponse:
    """Generate the bot script and requirements from the conversation so far."""
    state = _require_stage(session_id, Stage.CHAT)

    try:
        await generation_stage.generate(state)
    except StageError as e:
        raise _stage_error(e)
    except TranscriptFrozenError as e:
        raise HTTPException(status_code=409, detail=_error_detail("TRANSCRIPT_FROZEN", str(e)))
    except StageBusyError as e:
        raise HTTPException(status_code=409, detail=_error_detail("STAGE_BUSY", str(e)))

    return _artifacts_response(state)


@app.get("/sessions/{session_id}/artifacts", response_model=ArtifactsResponse)
async def get_artifacts(session_id: str) -> ArtifactsResponse:
    state = _require_stage(session_id, Stage.CODE_EDITOR)
    return _artifacts_response(state)


@app.put("/sessions/{session_id}/artifacts/overlay", response_model=ArtifactsResponse)
async def edit_overlay(session_id: str, request: OverlayEditRequest) -> ArtifactsResponse:
    """Replace the draft copy with hand-edited code and requirements."""
    state = _require_stage(session_id, Stage.CODE_EDITOR)
    state.write_overlay(ArtifactPair(source=request.source, manifest=request.manifest))
    return _artifacts_response(state)


@app.delete("/sessions/{session_id}/artifacts/overlay", response_model=ArtifactsResponse)
async def discard_overlay(session_id: str) -> ArtifactsResponse:
    state = _require_stage(session_id, Stage.CODE_EDITOR)
    state.discard_overlay()
    return _artifacts_response(state)


@app.post("/sessions/{session_id}/artifacts/commit", response_model=ArtifactsResponse)
async def commit_overlay(session_id: str) -> ArtifactsResponse:
    """Make the draft copy the canonical artifacts."""
    state = _require_stage(session_id, Stage.CODE_EDITOR)
    state.commit_overlay()
    return _artifacts_response(state)


def _download(content: str, filename: str) -> Response:
    return Response(
        content=content.encode("utf-8"),
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@app.get("/sessions/{session_id}/artifacts/source")
async def download_source(session_id: str) -> Response:
    state = _require_stage(session_id, Stage.CODE_EDITOR)
    return _download(state.current_artifacts().source, SOURCE_FILENAME)


@app.get("/sessions/{session_id}/artifacts/manifest")
async def download_manifest(session_id: str) -> Response:
    state = _require_stage(session_id, Stage.CODE_EDITOR)
    return _download(state.current_artifacts().manifest, MANIFEST_FILENAME)


@app.post("/sessions/{session_id}/refine", response_model=RefineResponse)
async def refine(session_id: str, request: RefineRequest) -> RefineResponse:
    """
    Modify the current artifacts or discuss them.

    `modify` rewrites the draft copy; a failed round leaves every artifact as
    it was. `discuss` only appends to the discussion transcript.
    """
    state = _require_stage(session_id, Stage.CODE_EDITOR)

    try:
        result = await refinement_stage.submit(state, request.mode, request.content)
    except EmptyMessageError as e:
        raise HTTPException(status_code=400, detail=_error_detail("EMPTY_MESSAGE", str(e)))
    except StageBusyError as e:
        raise HTTPException(status_code=409, detail=_error_detail("STAGE_BUSY", str(e)))
    except StageError as e:
        raise _stage_error(e)

    return RefineResponse(
        mode=result.mode,
        artifacts=_artifacts_response(state) if result.artifacts is not None else None,
        reply=_turn_model(result.reply) if result.reply is not None else None,
        failed=result.failed
    )


@app.get("/sessions/{session_id}/discussion", response_model=TranscriptResponse)
async def get_discussion(session_id: str) -> TranscriptResponse:
    state = _require_stage(session_id, Stage.CODE_EDITOR)
    return _transcript_response(session_id, state.discussion)


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Telegram Bot Forge API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
