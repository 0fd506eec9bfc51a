"""Analytics sink: user input, NLU snapshots, skill status and timeouts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, cast

from loguru import logger

from dialogrouter.agents.context import TurnContext
from dialogrouter.agents.types import RecognizerResult
from dialogrouter.core.session_manager import ConversationStore
from dialogrouter.core.state.analytics import AnalyticsRecord


class SkillCompletionFlag(str, Enum):
    """How an interaction ended, as reported in SkillStatus records."""

    CANCEL = "cancelled"
    COMPLETE = "completed"


class AnalyticsEvent(str, Enum):
    """Kinds of analytics records."""

    USER_INPUT = "UserInput"
    NLP_DATA = "NlpData"
    SKILL_STATUS = "SkillStatus"
    TIMEOUT = "Timeout"


@dataclass(frozen=True)
class TimeoutMsg:
    """
    Payload of a timeout record. Ids that are unknown carry the configured
    not-available marker rather than None.
    """

    conversation_id: str
    channel_id: str
    user_id: str | None
    skill_instance_id: str | None
    message: str


class AnalyticsService:
    """
    Writes analytics records to the conversation store's database.

    Every `save_*` call is fire-and-forget: failures are logged and swallowed so
    that analytics can never break a turn.
    """

    def __init__(self, store: ConversationStore) -> None:
        """
        Initialize the AnalyticsService.

        Args:
            store (ConversationStore): Store whose database receives the records.
        """
        self.store = store

    def _record(
        self,
        kind: AnalyticsEvent,
        conversation_id: str,
        channel_id: str | None,
        user_id: str | None,
        skill_instance_id: str | None,
        payload: dict[str, Any],
    ) -> None:
        try:
            with self.store.session_scope() as s:
                s.add(
                    AnalyticsRecord(
                        kind=kind.value,
                        conversation_id=conversation_id,
                        channel_id=channel_id,
                        user_id=user_id,
                        skill_instance_id=skill_instance_id or None,
                        payload=payload,
                    )
                )
                s.commit()
        except Exception as e:
            logger.warning(
                "Failed to record {} analytics for conversation {}: {}",
                kind.value,
                conversation_id,
                e,
            )

    def save_user_input(self, turn: TurnContext) -> None:
        """
        Record the user's utterance.

        Args:
            turn (TurnContext): The current turn.
        """
        self._record(
            AnalyticsEvent.USER_INPUT,
            turn.conversation_id,
            turn.channel_id,
            turn.user_id,
            turn.skill_instance_id,
            {
                "text": turn.activity.text,
                "value": turn.activity.value,
                "active_skill": turn.active_skill,
            },
        )

    def save_nlp_data(self, turn: TurnContext, result: RecognizerResult) -> None:
        """
        Record the recognizer result for the current utterance.

        Args:
            turn (TurnContext): The current turn.
            result (RecognizerResult): The recognizer output.
        """
        self._record(
            AnalyticsEvent.NLP_DATA,
            turn.conversation_id,
            turn.channel_id,
            turn.user_id,
            turn.skill_instance_id,
            {
                "result": result.to_dict(),
                "recorded_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    def save_skill_status(
        self,
        turn: TurnContext,
        text: str,
        label: str,
        flag: SkillCompletionFlag,
        intent: str,
    ) -> None:
        self._record(
            AnalyticsEvent.SKILL_STATUS,
            turn.conversation_id,
            turn.channel_id,
            turn.user_id,
            turn.skill_instance_id,
            {"text": text, "label": label, "status": flag.value, "intent": intent},
        )

    def save_timeout(self, msg: TimeoutMsg) -> None:
        self._record(
            AnalyticsEvent.TIMEOUT,
            msg.conversation_id,
            msg.channel_id,
            msg.user_id,
            msg.skill_instance_id,
            {"message": msg.message},
        )

    def list_events(
        self, conversation_id: str | None = None, kind: AnalyticsEvent | None = None
    ) -> list[dict[str, Any]]:
        """
        List recorded events in insertion order.

        Args:
            conversation_id (str | None, optional): Restrict to one conversation. Defaults to None.
            kind (AnalyticsEvent | None, optional): Restrict to one kind. Defaults to None.

        Returns:
            list[dict[str, Any]]: The matching events.
        """
        with self.store.session_scope() as s:
            query = s.query(AnalyticsRecord)
            if conversation_id is not None:
                query = query.filter(AnalyticsRecord.conversation_id == conversation_id)
            if kind is not None:
                query = query.filter(AnalyticsRecord.kind == kind.value)
            return [
                {
                    "kind": r.kind,
                    "conversation_id": r.conversation_id,
                    "channel_id": r.channel_id,
                    "user_id": r.user_id,
                    "skill_instance_id": r.skill_instance_id,
                    "payload": cast(dict, r.payload),
                }
                for r in query.order_by(AnalyticsRecord.id.asc()).all()
            ]
