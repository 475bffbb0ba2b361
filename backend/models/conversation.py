"""Conversation data models."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Sender(str, Enum):
    """Author of a turn; values double as chat-completion roles."""
    USER = "user"
    ASSISTANT = "assistant"


# Speaker labels in the plain-text conversation context
CONTEXT_LABELS = {
    Sender.USER: "user",
    Sender.ASSISTANT: "ai",
}


class TranscriptFrozenError(Exception):
    """Raised when appending to a transcript that has been frozen."""


@dataclass(frozen=True)
class Turn:
    """Represents a single utterance in a conversation."""
    turn_id: str
    content: str
    sender: Sender
    timestamp: datetime

    @classmethod
    def create(cls, sender: Sender, content: str) -> "Turn":
        return cls(
            turn_id=f"turn_{uuid.uuid4().hex[:12]}",
            content=content,
            sender=sender,
            timestamp=datetime.now(timezone.utc),
        )


@dataclass
class Transcript:
    """
    Append-only ordered log of turns.

    Turns are never edited or removed. `to_messages` and `serialize` are pure
    projections, so a request built from a transcript is unaffected by turns
    appended while that request is in flight.
    """
    _turns: List[Turn] = field(default_factory=list)
    frozen: bool = False

    @classmethod
    def seeded(cls, greeting: str) -> "Transcript":
        """Create a transcript that opens with an assistant turn."""
        transcript = cls()
        transcript.append(Sender.ASSISTANT, greeting)
        return transcript

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    def append(self, sender: Sender, content: str) -> Turn:
        if self.frozen:
            raise TranscriptFrozenError("Transcript is frozen and can no longer be extended")
        turn = Turn.create(sender, content)
        self._turns.append(turn)
        return turn

    def freeze(self) -> None:
        self.frozen = True

    def to_messages(self) -> List[Dict[str, str]]:
        """Project turns onto chat-completion messages."""
        return [
            {"role": turn.sender.value, "content": turn.content}
            for turn in self._turns
        ]

    def serialize(self) -> str:
        """Render the transcript as plain text for embedding in a prompt."""
        return "\n\n".join(
            f"{CONTEXT_LABELS[turn.sender]}: {turn.content}" for turn in self._turns
        )
