"""Requirements-gathering conversation."""
import logging
from dataclasses import dataclass

from config import CONVERSATION_MAX_TOKENS, CONVERSATION_TEMPERATURE
from models.conversation import Sender, Turn, TranscriptFrozenError
from models.session import SessionState, StageBusyError, GUIDANCE_ACTION, GENERATION_ACTION
from services.llm_client import CompletionRequest, ExhaustedRetriesError
from services.prompts import build_guidance_messages, CONVERSATION_APOLOGY

logger = logging.getLogger(__name__)


class EmptyMessageError(ValueError):
    """Raised for empty or whitespace-only user input."""


@dataclass
class ConversationReply:
    """Assistant turn produced by one exchange; `failed` when it is an apology or was not stored."""
    turn: Turn
    failed: bool = False


class ConversationOrchestrator:
    """Drives the guidance dialogue that converges on the bot's requirements."""

    def __init__(self, completion_client):
        self.completion_client = completion_client

    async def send(self, state: SessionState, content: str) -> ConversationReply:
        """
        Append a user message and the assistant's reply to the guidance transcript.

        Retry exhaustion is absorbed: the reply becomes a fixed apology turn and
        the user may simply send another message.

        Args:
            state: Session to converse in
            content: User message

        Returns:
            ConversationReply with the appended assistant turn

        Raises:
            EmptyMessageError: If `content` is blank
            TranscriptFrozenError: If generation already froze the transcript
            StageBusyError: If a guidance or generation request is already in flight
        """
        if not content or not content.strip():
            raise EmptyMessageError("Message cannot be empty")
        if state.transcript.frozen:
            raise TranscriptFrozenError("Requirements conversation has ended; the bot was already generated")
        # Generation works from the transcript as it stood when it started
        if GENERATION_ACTION in state.pending:
            raise StageBusyError(GENERATION_ACTION)

        with state.busy(GUIDANCE_ACTION):
            messages = build_guidance_messages(state.transcript, content)
            state.transcript.append(Sender.USER, content)

            request = CompletionRequest(
                model_id=state.config.model_id,
                credential=state.config.credential,
                messages=messages,
                max_tokens=CONVERSATION_MAX_TOKENS,
                temperature=CONVERSATION_TEMPERATURE,
                purpose="conversation"
            )

            failed = False
            try:
                response = await self.completion_client.complete(request)
                reply_text = response.text
            except ExhaustedRetriesError as e:
                logger.error(
                    f"Guidance reply failed for session {state.session_id}: {e.error.message}",
                    extra={"session_id": state.session_id, "error_code": e.last_error.code}
                )
                reply_text = CONVERSATION_APOLOGY
                failed = True

            # Late reply: the session ended or generation froze the transcript meanwhile
            if state.closed or state.transcript.frozen:
                logger.info(
                    f"Session {state.session_id} moved on while awaiting a reply; dropping it",
                    extra={"session_id": state.session_id}
                )
                return ConversationReply(turn=Turn.create(Sender.ASSISTANT, reply_text), failed=True)

            turn = state.transcript.append(Sender.ASSISTANT, reply_text)
            logger.debug(f"Session {state.session_id} transcript now has {len(state.transcript)} turns")
            return ConversationReply(turn=turn, failed=failed)
