"""Navigation stages and their entry preconditions."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models.session import SessionState

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    LANDING = "landing"
    MODEL_SELECTION = "model_selection"
    CHAT = "chat"
    CODE_EDITOR = "code_editor"


@dataclass
class StageDecision:
    """Where a request to enter `requested` actually lands."""
    requested: Stage
    stage: Stage

    @property
    def redirected(self) -> bool:
        return self.stage != self.requested


def resolve_stage(state: Optional[SessionState], requested: Stage) -> StageDecision:
    """
    Check the entry precondition of `requested`.

    Chat needs a session configuration; the code editor also needs committed
    artifacts. Unmet preconditions send the user back to model selection.
    A missing, expired or closed session has no configuration.
    """
    requested = Stage(requested)
    has_config = state is not None and not state.closed and state.has_configuration

    if requested == Stage.CHAT and not has_config:
        decision = StageDecision(requested, Stage.MODEL_SELECTION)
    elif requested == Stage.CODE_EDITOR and not (has_config and state.has_artifacts):
        decision = StageDecision(requested, Stage.MODEL_SELECTION)
    else:
        decision = StageDecision(requested, requested)

    if decision.redirected:
        logger.info(
            f"Redirecting {requested.value} to {decision.stage.value}",
            extra={"session_id": state.session_id if state else None, "stage": requested.value}
        )
    return decision
