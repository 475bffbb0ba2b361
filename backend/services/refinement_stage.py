"""Refinement of generated artifacts and the discussion side-channel."""
import logging
from dataclasses import dataclass
from typing import Optional

from config import MODIFY_MAX_TOKENS, MODIFY_TEMPERATURE, DISCUSS_MAX_TOKENS, DISCUSS_TEMPERATURE
from models.api import RefineMode
from models.artifacts import ArtifactPair
from models.conversation import Sender, Turn
from models.session import SessionState, REFINEMENT_ACTION
from services.artifact_parser import parse_artifacts, MissingSeparatorError, SENTINEL
from services.conversation_orchestrator import EmptyMessageError
from services.llm_client import CompletionRequest, ExhaustedRetriesError
from services.prompts import (
    build_modify_messages,
    build_discuss_messages,
    DISCUSS_APOLOGY,
    EMPTY_DISCUSS_REPLY,
)
from services.stage_errors import RefinementError, StageErrorKind

logger = logging.getLogger(__name__)


@dataclass
class RefinementResult:
    """Outcome of one refinement submission."""
    mode: RefineMode
    artifacts: Optional[ArtifactPair] = None
    reply: Optional[Turn] = None
    failed: bool = False


class ModifyFlow:
    """Rewrites the current artifact pair according to a change request."""

    def __init__(self, completion_client):
        self.completion_client = completion_client

    async def run(self, state: SessionState, text: str) -> RefinementResult:
        current = state.current_artifacts()
        if current is None:
            raise RefinementError(StageErrorKind.NO_ARTIFACTS, "There is no generated code to refine yet.")

        base_revision = state.revision
        request = CompletionRequest(
            model_id=state.config.model_id,
            credential=state.config.credential,
            messages=build_modify_messages(current, text),
            max_tokens=MODIFY_MAX_TOKENS,
            temperature=MODIFY_TEMPERATURE,
            purpose="modify"
        )

        try:
            response = await self.completion_client.complete(request)
        except ExhaustedRetriesError as e:
            logger.error(
                f"Refinement failed for session {state.session_id}: {e.error.message}",
                extra={"session_id": state.session_id, "error_code": e.last_error.code}
            )
            raise RefinementError(
                StageErrorKind.EXHAUSTED_RETRIES,
                f"Failed to refine code after {e.attempts} attempts. Please try again later.",
                e.error.details
            ) from e

        try:
            pair = parse_artifacts(response.text)
        except MissingSeparatorError as e:
            raise RefinementError(
                StageErrorKind.MISSING_SEPARATOR,
                f"Invalid response format: Missing {SENTINEL} separator. Try rephrasing your request.",
                {"response_length": e.text_length}
            ) from e

        # Both halves are replaced together or not at all
        if not pair.is_complete:
            raise RefinementError(
                StageErrorKind.EMPTY_ARTIFACT,
                "The refined response is missing the code or the requirements. Try rephrasing your request.",
                {"source_empty": not pair.source, "manifest_empty": not pair.manifest}
            )

        if state.closed or state.revision != base_revision:
            logger.info(
                f"Discarding stale refinement for session {state.session_id} "
                f"(base revision {base_revision}, now {state.revision})",
                extra={"session_id": state.session_id, "stage": "refinement"}
            )
            raise RefinementError(
                StageErrorKind.STALE_RESPONSE,
                "The code changed while this refinement was running; the result was discarded.",
                {"base_revision": base_revision, "revision": state.revision}
            )

        state.write_overlay(pair)
        logger.info(
            f"Applied refinement to session {state.session_id} (revision {state.revision})",
            extra={"session_id": state.session_id, "stage": "refinement"}
        )
        return RefinementResult(mode=RefineMode.MODIFY, artifacts=pair)


class DiscussFlow:
    """Answers questions about the generated bot without changing it."""

    def __init__(self, completion_client):
        self.completion_client = completion_client

    async def run(self, state: SessionState, text: str) -> RefinementResult:
        messages = build_discuss_messages(state.discussion, state.design_context or "", text)
        state.discussion.append(Sender.USER, text)

        request = CompletionRequest(
            model_id=state.config.model_id,
            credential=state.config.credential,
            messages=messages,
            max_tokens=DISCUSS_MAX_TOKENS,
            temperature=DISCUSS_TEMPERATURE,
            purpose="discuss"
        )

        failed = False
        try:
            response = await self.completion_client.complete(request)
            reply_text = response.text if response.text.strip() else EMPTY_DISCUSS_REPLY
        except ExhaustedRetriesError as e:
            logger.error(
                f"Discussion reply failed for session {state.session_id}: {e.error.message}",
                extra={"session_id": state.session_id, "error_code": e.last_error.code}
            )
            reply_text = DISCUSS_APOLOGY
            failed = True

        if state.closed:
            return RefinementResult(
                mode=RefineMode.DISCUSS,
                reply=Turn.create(Sender.ASSISTANT, reply_text),
                failed=failed
            )

        turn = state.discussion.append(Sender.ASSISTANT, reply_text)
        return RefinementResult(mode=RefineMode.DISCUSS, reply=turn, failed=failed)


class RefinementStage:
    """Dispatches refinement input to the modify or discuss flow."""

    def __init__(self, completion_client):
        self.flows = {
            RefineMode.MODIFY: ModifyFlow(completion_client),
            RefineMode.DISCUSS: DiscussFlow(completion_client),
        }

    async def submit(self, state: SessionState, mode: RefineMode, text: str) -> RefinementResult:
        """
        Handle one refinement submission.

        Raises:
            EmptyMessageError: If `text` is blank
            StageBusyError: If a refinement request is already in flight
            RefinementError: When a modify round fails; artifacts are left untouched
        """
        if not text or not text.strip():
            raise EmptyMessageError("Message cannot be empty")

        flow = self.flows[RefineMode(mode)]
        with state.busy(REFINEMENT_ACTION):
            return await flow.run(state, text)
