"""
Conversation Data Model

Dataclasses shared by the conversation layer and the front ends:
memory records, the personality profile, and the request/response shapes
exchanged with the agent.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

SELF_AUTHOR = "Self"

DEFAULT_PERSONALITY = "Rimuru"
DEFAULT_GENDER = "male"
DEFAULT_SOURCE_MATERIAL = "That Time I got Reincarnated as a Slime"


class MemoryKind(str, Enum):
    """What a stored record represents."""
    CHAT_HISTORY = "chatHistory"
    CHAT_SUMMARY = "chatSummary"


class Significance(str, Enum):
    """What makes a memory worth recalling."""
    EVENT = "Event"
    LOCATION = "Location"
    NONE = "None"


@dataclass
class MemoryRecord:
    """
    One stored utterance or summary.

    Attributes:
        kind: chatHistory or chatSummary
        author: Who wrote it; "Self" is the agent
        text: Utterance content
        importance: Reserved ranking score, always 0
        explicitness: Reserved ranking score, always 0
        significance: Event, Location or None
        id: Store-assigned identifier (empty until inserted)
        created_at: Insertion timestamp in nanoseconds
    """
    kind: MemoryKind
    author: str
    text: str
    importance: int = 0
    explicitness: int = 0
    significance: Significance = Significance.NONE
    id: str = ""
    created_at: int = 0

    @property
    def is_self(self) -> bool:
        return self.author == SELF_AUTHOR

    def to_metadata(self) -> Dict[str, Any]:
        """Flatten to the scalar metadata a vector store accepts."""
        return {
            "kind": self.kind.value,
            "author": self.author,
            "importance": self.importance,
            "explicitness": self.explicitness,
            "significance": self.significance.value,
            "created_at": self.created_at,
        }

    @classmethod
    def from_metadata(cls, record_id: str, text: str, metadata: Dict[str, Any]) -> "MemoryRecord":
        return cls(
            kind=MemoryKind(metadata["kind"]),
            author=str(metadata.get("author", "")),
            text=text,
            importance=int(metadata.get("importance", 0)),
            explicitness=int(metadata.get("explicitness", 0)),
            significance=Significance(metadata.get("significance", Significance.NONE.value)),
            id=record_id,
            created_at=int(metadata.get("created_at", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialise for the history endpoint."""
        return {
            "id": self.id,
            "type": self.kind.value,
            "importance": self.importance,
            "explicitness": self.explicitness,
            "significance": self.significance.value,
            "author": self.author,
            "text": self.text,
            "createdAt": self.created_at,
        }


def chat_message(author: str, text: str) -> MemoryRecord:
    """Build a chat-history record with the default tags."""
    return MemoryRecord(kind=MemoryKind.CHAT_HISTORY, author=author, text=text)


def summary_record(text: str) -> MemoryRecord:
    return MemoryRecord(kind=MemoryKind.CHAT_SUMMARY, author=SELF_AUTHOR, text=text)


@dataclass(frozen=True)
class Personality:
    """
    Templating input describing who the agent plays.

    Attributes:
        name: Character name, also selects the voice profile
        gender: Pronoun gender used in prompts ("male" or "female")
        source_material: Work the character comes from
        allow_action_narration: Permit *starred* role-play actions in replies
    """
    name: str = DEFAULT_PERSONALITY
    gender: str = DEFAULT_GENDER
    source_material: str = DEFAULT_SOURCE_MATERIAL
    allow_action_narration: bool = True

    @property
    def pronoun(self) -> str:
        return "her" if self.gender.lower() == "female" else "his"

    @classmethod
    def from_request(
        cls,
        name: Optional[str] = None,
        gender: Optional[str] = None,
        source_material: Optional[str] = None,
    ) -> "Personality":
        """Fill missing request fields with the documented defaults."""
        return cls(
            name=name or DEFAULT_PERSONALITY,
            gender=gender or DEFAULT_GENDER,
            source_material=source_material or DEFAULT_SOURCE_MATERIAL,
        )


@dataclass
class GroundedContext:
    """Retrieved memories for one prompt."""
    summary: Optional[MemoryRecord]
    recent: List[MemoryRecord]
    relevant: List[MemoryRecord]


@dataclass
class TurnResult:
    """Outcome of one orchestrated turn."""
    text: str
    grounded_prompt: str
    summary_updated: bool = True


@dataclass
class PromptRequest:
    prompt: str
    user_id: str
    personality: Optional[str] = None
    gender: Optional[str] = None
    source_material: Optional[str] = None

    def personality_profile(self) -> Personality:
        return Personality.from_request(self.personality, self.gender, self.source_material)


@dataclass
class HistoryRequest:
    user_id: str
    limit: int


@dataclass
class DeleteHistoryRequest:
    user_id: str


@dataclass
class PromptResponse:
    """
    A reply, or one streamed chunk of it.

    Streamed chunks carry either a raw text fragment in ``response`` or a
    completed ``sentence`` together with its synthesised ``audio`` (and an
    empty ``response``, so concatenating responses rebuilds the reply).
    """
    responding_to: str
    response: str
    audio: Optional[str] = None
    sentence: Optional[str] = None
    grounded_prompt: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"respondingTo": self.responding_to, "response": self.response}
        if self.audio is not None:
            data["audio"] = self.audio
        if self.sentence is not None:
            data["sentence"] = self.sentence
        if self.grounded_prompt is not None:
            data["groundedPrompt"] = self.grounded_prompt
        return data


@dataclass
class StatusResponse:
    status: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "message": self.message}


@dataclass
class HistoryResponse:
    messages: List[MemoryRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"messages": [m.to_dict() for m in self.messages]}
