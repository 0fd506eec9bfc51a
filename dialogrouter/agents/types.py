"""Shared types for turn routing."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from dialogrouter.agents.context import TurnContext


class ActivityType(str, Enum):
    """Kinds of inbound and outbound channel activities."""

    MESSAGE = "message"
    EVENT = "event"
    END_OF_CONVERSATION = "end_of_conversation"
    CONVERSATION_UPDATE = "conversation_update"
    TRACE = "trace"


# End-of-conversation code sent by a channel when *we* took too long to answer.
BOT_TIMED_OUT = "botTimedOut"


@dataclass
class Activity:
    """A single inbound or outbound channel activity."""

    type: ActivityType = ActivityType.MESSAGE
    text: str | None = None
    value: dict[str, Any] | None = None
    name: str | None = None
    code: str | None = None
    channel_id: str = ""
    conversation_id: str = ""
    from_id: str = ""
    recipient_id: str = ""
    service_url: str | None = None
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize the activity into a JSON friendly dictionary.

        Returns:
            dict[str, Any]: The serialized activity.
        """
        return {
            "type": self.type.value,
            "text": self.text,
            "value": self.value,
            "name": self.name,
            "code": self.code,
            "channel_id": self.channel_id,
            "conversation_id": self.conversation_id,
            "from_id": self.from_id,
            "recipient_id": self.recipient_id,
            "service_url": self.service_url,
            "id": self.id,
        }


@dataclass(frozen=True)
class ConversationReference:
    """Durable pointer used to reopen a conversation without an inbound turn."""

    conversation_id: str
    channel_id: str
    user_id: str = ""
    bot_id: str = ""
    service_url: str | None = None
    activity_id: str | None = None

    @classmethod
    def from_activity(cls, activity: Activity) -> "ConversationReference":
        """
        Build a reference from an inbound activity.

        Args:
            activity (Activity): The inbound activity.

        Returns:
            ConversationReference: The reference pointing back at the activity's conversation.
        """
        return cls(
            conversation_id=activity.conversation_id,
            channel_id=activity.channel_id,
            user_id=activity.from_id,
            bot_id=activity.recipient_id,
            service_url=activity.service_url,
            activity_id=activity.id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "channel_id": self.channel_id,
            "user_id": self.user_id,
            "bot_id": self.bot_id,
            "service_url": self.service_url,
            "activity_id": self.activity_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationReference":
        return cls(
            conversation_id=str(data.get("conversation_id") or ""),
            channel_id=str(data.get("channel_id") or ""),
            user_id=str(data.get("user_id") or ""),
            bot_id=str(data.get("bot_id") or ""),
            service_url=data.get("service_url"),
            activity_id=data.get("activity_id"),
        )


@dataclass(frozen=True)
class UserIdentity:
    """Authenticated caller."""

    user_id: str
    display_name: str | None = None
    roles: tuple[str, ...] = ()


class EntityKind(str, Enum):
    """Entity types the router understands."""

    APP_NAME = "app_name"
    COMMAND = "command"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class Entity:
    """
    A normalized recognizer entity.
    `raw_type` keeps the recognizer's own tag so unrecognized entities stay inspectable.
    """

    kind: EntityKind
    value: str
    raw_type: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "value": self.value, "raw_type": self.raw_type}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entity":
        try:
            kind = EntityKind(data.get("kind"))
        except ValueError:
            kind = EntityKind.UNRECOGNIZED
        return cls(
            kind=kind,
            value=str(data.get("value") or ""),
            raw_type=str(data.get("raw_type") or ""),
        )


@dataclass(frozen=True)
class RecognizerResult:
    """Intent, score/metadata bag and entities produced for one utterance."""

    intent: str
    score: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)
    entities: tuple[Entity, ...] = ()

    def first(self, kind: EntityKind) -> str | None:
        """
        Return the value of the first entity of the given kind.

        Args:
            kind (EntityKind): The entity kind to look for.

        Returns:
            str | None: The entity value, or None when absent.
        """
        for entity in self.entities:
            if entity.kind is kind:
                return entity.value
        return None

    def has_value(self, value: str) -> bool:
        """
        Check whether any entity, regardless of kind, resolved to `value`.

        Args:
            value (str): The normalized value to look for.

        Returns:
            bool: True if some entity carries the value.
        """
        return any(entity.value == value for entity in self.entities)

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "score": self.score,
            "metadata": self.metadata,
            "entities": [e.to_dict() for e in self.entities],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecognizerResult":
        return cls(
            intent=str(data.get("intent") or ""),
            score=float(data.get("score") or 0.0),
            metadata=dict(data.get("metadata") or {}),
            entities=tuple(Entity.from_dict(e) for e in data.get("entities") or []),
        )


class DialogTurnStatus(str, Enum):
    """Outcome of a begin/continue call on the dialog stack."""

    EMPTY = "empty"
    WAITING = "waiting"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass
class DialogTurnResult:
    """Status reported by the dialog stack, with an optional dialog result."""

    status: DialogTurnStatus
    result: Any = None


class InterruptionAction(str, Enum):
    """What the interruption check did with the turn."""

    NO_ACTION = "no_action"
    STARTED_DIALOG = "started_dialog"


class Recognizer(Protocol):
    """Interface for intent recognition."""

    def recognize(
        self, turn: "TurnContext"
    ) -> RecognizerResult:  # pragma: no cover - interface
        """Recognize the turn text. Must be free of side effects."""
        ...


class Authenticator(Protocol):
    """Interface for user authentication."""

    def authenticate(
        self, turn: "TurnContext"
    ) -> UserIdentity:  # pragma: no cover - interface
        """Fetch or establish the caller's identity, raising AuthenticationError on failure."""
        ...


class ChannelAdapter(Protocol):
    """Interface for the channel connection."""

    def send(
        self, turn: "TurnContext", activity: Activity
    ) -> None:  # pragma: no cover - interface
        """Deliver an outbound activity."""
        ...

    def reconnect(
        self, reference: ConversationReference
    ) -> "TurnContext":  # pragma: no cover - interface
        """Reopen a conversation without an inbound turn."""
        ...
