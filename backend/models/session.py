"""Session state models."""
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from typing import Any, Iterator, Optional, Set

from models.artifacts import ArtifactPair
from models.conversation import Transcript

ONBOARDING_PROMPT = (
    "Hello! I'm your AI assistant for building Telegram bots. Let's create something amazing! "
    "What kind of bot would you like to build? For example:\n\n"
    "• A daily reminder bot\n"
    "• A command-based bot\n"
    "• A group chat manager\n"
    "• An API-integrated bot\n\n"
    "Share your vision, and I'll guide you step-by-step!"
)

# Names used in SessionState.pending
GUIDANCE_ACTION = "guidance"
GENERATION_ACTION = "generation"
REFINEMENT_ACTION = "refinement"


class StageBusyError(Exception):
    """Raised when an action is triggered while the same action is outstanding."""

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"A {action} request is already in progress for this session")


@dataclass(frozen=True)
class SessionConfiguration:
    """Model and credential chosen at ModelSelection; immutable for the session."""
    model_id: str
    credential: str = field(repr=False)

    def __post_init__(self):
        if not self.model_id or not self.model_id.strip():
            raise ValueError("model_id must be a non-empty string")
        if not self.credential or not self.credential.strip():
            raise ValueError("credential must be a non-empty string")


@dataclass
class SessionState:
    """
    In-memory state of one guided session.

    Every stage reads and writes through this object instead of keeping
    private copies. Fields are typed; `get` and `set` exist for callers that
    address a field by name and reject names that are not fields.

    Attributes:
        session_id: Opaque session identifier
        config: Model id and credential, fixed at creation
        transcript: Guidance transcript, seeded with the onboarding turn
        artifacts: Canonical artifact pair, present once generation succeeds
        overlay: Draft pair; authoritative over `artifacts` while present
        design_context: Serialized guidance transcript frozen at generation
        discussion: Side-channel transcript of the refinement stage
        revision: Incremented on every artifact mutation
        pending: Actions with a request in flight
    """
    session_id: str
    config: SessionConfiguration
    transcript: Transcript = field(default_factory=lambda: Transcript.seeded(ONBOARDING_PROMPT))
    artifacts: Optional[ArtifactPair] = None
    overlay: Optional[ArtifactPair] = None
    design_context: Optional[str] = None
    discussion: Transcript = field(default_factory=Transcript)
    revision: int = 0
    pending: Set[str] = field(default_factory=set)
    created_at: float = field(default_factory=time.time)
    last_accessed: float = field(default_factory=time.time)
    closed: bool = False

    @classmethod
    def field_names(cls) -> Set[str]:
        return {f.name for f in fields(cls)}

    def get(self, name: str) -> Any:
        """Return a field value, or None when it has not been set."""
        if name not in self.field_names():
            raise KeyError(f"Unknown session field: {name}")
        return getattr(self, name)

    def set(self, name: str, value: Any) -> None:
        if name not in self.field_names():
            raise KeyError(f"Unknown session field: {name}")
        if name in ("session_id", "config"):
            raise AttributeError(f"Session field '{name}' is immutable; start a new session instead")
        setattr(self, name, value)

    @property
    def has_configuration(self) -> bool:
        return self.config is not None

    @property
    def has_artifacts(self) -> bool:
        return self.artifacts is not None

    @property
    def editing(self) -> bool:
        return self.overlay is not None

    def current_artifacts(self) -> Optional[ArtifactPair]:
        """The pair shown, downloaded and refined: overlay if active, else canonical."""
        return self.overlay if self.overlay is not None else self.artifacts

    def commit_generation(self, pair: ArtifactPair, design_context: str) -> None:
        """Store the first generated pair and freeze the guidance transcript."""
        self.artifacts = pair
        self.overlay = None
        self.design_context = design_context
        self.transcript.freeze()
        self.revision += 1

    def write_overlay(self, pair: ArtifactPair) -> None:
        self.overlay = pair
        self.revision += 1

    def commit_overlay(self) -> ArtifactPair:
        """Collapse the overlay into the canonical pair."""
        if self.overlay is not None:
            self.artifacts = self.overlay
            self.overlay = None
            self.revision += 1
        return self.artifacts

    def discard_overlay(self) -> None:
        if self.overlay is not None:
            self.overlay = None
            self.revision += 1

    def touch(self) -> None:
        self.last_accessed = time.time()

    @contextmanager
    def busy(self, action: str) -> Iterator[None]:
        """Mark `action` as in flight for the duration of the block."""
        if action in self.pending:
            raise StageBusyError(action)
        self.pending.add(action)
        try:
            yield
        finally:
            self.pending.discard(action)
