"""One-shot generation of the bot program and its requirements."""
import logging

from config import GENERATION_MAX_TOKENS, GENERATION_TEMPERATURE
from models.artifacts import ArtifactPair
from models.conversation import TranscriptFrozenError
from models.session import SessionState, StageBusyError, GENERATION_ACTION, GUIDANCE_ACTION
from services.artifact_parser import parse_artifacts, MissingSeparatorError
from services.llm_client import CompletionRequest, ExhaustedRetriesError
from services.prompts import build_generation_messages
from services.stage_errors import GenerationError, StageErrorKind

logger = logging.getLogger(__name__)

# Used when the model returns code but an empty requirements section
DEFAULT_MANIFEST = "python-telegram-bot==20.0"

# Seed turn plus at least one user message
MIN_TRANSCRIPT_TURNS = 2


class GenerationStage:
    """Turns the guidance transcript into the first ArtifactPair."""

    def __init__(self, completion_client):
        self.completion_client = completion_client

    async def generate(self, state: SessionState) -> ArtifactPair:
        """
        Generate the program and manifest from the guidance transcript.

        The pair, the serialized transcript and the frozen flag are committed
        together after the response parses; on any failure nothing changes.

        Args:
            state: Session whose transcript describes the bot

        Returns:
            The committed ArtifactPair

        Raises:
            TranscriptFrozenError: If the session already has generated artifacts
            StageBusyError: If a generation or guidance request is already in flight
            GenerationError: On a short transcript, retry exhaustion or a malformed response
        """
        if state.transcript.frozen:
            raise TranscriptFrozenError("Bot has already been generated for this session")
        if len(state.transcript) < MIN_TRANSCRIPT_TURNS:
            raise GenerationError(
                StageErrorKind.INSUFFICIENT_TRANSCRIPT,
                "Describe your bot in at least one message before generating it.",
                {"turns": len(state.transcript)}
            )

        # A guidance reply still in flight would land in a frozen transcript
        if GUIDANCE_ACTION in state.pending:
            raise StageBusyError(GUIDANCE_ACTION)

        with state.busy(GENERATION_ACTION):
            base_turns = len(state.transcript)
            conversation_context = state.transcript.serialize()
            request = CompletionRequest(
                model_id=state.config.model_id,
                credential=state.config.credential,
                messages=build_generation_messages(conversation_context),
                max_tokens=GENERATION_MAX_TOKENS,
                temperature=GENERATION_TEMPERATURE,
                purpose="generation"
            )

            logger.info(
                f"Generating bot for session {state.session_id} from {len(state.transcript)} turns",
                extra={"session_id": state.session_id, "stage": "generation"}
            )

            try:
                response = await self.completion_client.complete(request)
            except ExhaustedRetriesError as e:
                logger.error(
                    f"Generation failed for session {state.session_id}: {e.error.message}",
                    extra={"session_id": state.session_id, "error_code": e.last_error.code}
                )
                raise GenerationError(
                    StageErrorKind.EXHAUSTED_RETRIES,
                    "I ran into an issue generating your bot code after several tries. Please try again.",
                    e.error.details
                ) from e

            try:
                pair = parse_artifacts(response.text)
            except MissingSeparatorError as e:
                logger.error(
                    f"Generation response for session {state.session_id} has no separator",
                    extra={"session_id": state.session_id, "error_code": StageErrorKind.MISSING_SEPARATOR.value}
                )
                raise GenerationError(
                    StageErrorKind.MISSING_SEPARATOR,
                    "The generated response was not in the expected format. Please try again.",
                    {"response_length": e.text_length}
                ) from e

            if not pair.source:
                raise GenerationError(
                    StageErrorKind.EMPTY_ARTIFACT,
                    "The generated response did not contain any code. Please try again."
                )
            if not pair.manifest:
                logger.warning(f"Empty requirements for session {state.session_id}; using default manifest")
                pair = ArtifactPair(source=pair.source, manifest=DEFAULT_MANIFEST)

            if state.closed or state.transcript.frozen or len(state.transcript) != base_turns:
                logger.info(
                    f"Discarding stale generation for session {state.session_id} "
                    f"(built from {base_turns} turns, now {len(state.transcript)})",
                    extra={"session_id": state.session_id, "stage": "generation"}
                )
                raise GenerationError(
                    StageErrorKind.STALE_RESPONSE,
                    "The session changed while the bot was being generated.",
                    {"base_turns": base_turns, "turns": len(state.transcript)}
                )

            state.commit_generation(pair, conversation_context)
            logger.info(
                f"Committed generated artifacts for session {state.session_id}: "
                f"source={len(pair.source)} chars, manifest={len(pair.manifest)} chars",
                extra={"session_id": state.session_id, "stage": "generation"}
            )
            return pair
