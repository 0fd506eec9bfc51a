"""Skill session context: transient routing state shared by the router and the active skill."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable

from dialogrouter.agents.types import RecognizerResult

if TYPE_CHECKING:
    from dialogrouter.core.session_manager import ConversationStore


@dataclass(frozen=True)
class SkillSessionContext:
    """
    Snapshot of the per-conversation skill session.
    Frozen so every change goes through a read-modify-write on the store.
    """

    active_skill_instance_id: str | None = None
    last_recognizer_result: RecognizerResult | None = None
    current_user_id: str | None = None
    variables: dict[str, Any] | None = field(default=None)

    @property
    def is_empty(self) -> bool:
        return (
            not self.active_skill_instance_id
            and self.last_recognizer_result is None
            and self.current_user_id is None
            and self.variables is None
        )

    def cleared(self) -> "SkillSessionContext":
        """
        Return a copy with every interaction-scoped field reset.

        Returns:
            SkillSessionContext: The cleared context.
        """
        return replace(
            self,
            active_skill_instance_id=None,
            last_recognizer_result=None,
            current_user_id=None,
            variables=None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_skill_instance_id": self.active_skill_instance_id,
            "last_recognizer_result": (
                self.last_recognizer_result.to_dict()
                if self.last_recognizer_result is not None
                else None
            ),
            "current_user_id": self.current_user_id,
            "variables": self.variables,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SkillSessionContext":
        if not data:
            return cls()
        raw_result = data.get("last_recognizer_result")
        return cls(
            active_skill_instance_id=data.get("active_skill_instance_id") or None,
            last_recognizer_result=(
                RecognizerResult.from_dict(raw_result) if raw_result else None
            ),
            current_user_id=data.get("current_user_id"),
            variables=data.get("variables"),
        )


class SkillContextAccessor:
    """
    Keyed accessor for the skill session context of a conversation.
    Reads always hit the latest persisted snapshot.
    """

    def __init__(self, store: "ConversationStore") -> None:
        """
        Initialize the SkillContextAccessor.

        Args:
            store (ConversationStore): The conversation store holding the snapshots.
        """
        self.store = store

    def get(self, conversation_id: str) -> SkillSessionContext:
        return self.store.load_skill_context(conversation_id)

    def update(
        self,
        conversation_id: str,
        fn: Callable[[SkillSessionContext], SkillSessionContext],
    ) -> SkillSessionContext:
        """
        Apply `fn` to the latest snapshot and persist the result.

        Args:
            conversation_id (str): The conversation id.
            fn (Callable[[SkillSessionContext], SkillSessionContext]): The modification.

        Returns:
            SkillSessionContext: The persisted context.
        """
        return self.store.update_skill_context(conversation_id, fn)

    def clear(self, conversation_id: str) -> SkillSessionContext:
        return self.update(conversation_id, lambda ctx: ctx.cleared())

    def get_skill_instance_id(self, conversation_id: str) -> str | None:
        return self.get(conversation_id).active_skill_instance_id
