"""Channel adapter that records outbound activities."""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Callable

from loguru import logger

from dialogrouter.agents.context import TurnContext
from dialogrouter.agents.types import Activity, ActivityType, ConversationReference

# Turn-state flag marking a turn opened by `reconnect` rather than an inbound request.
PROACTIVE_KEY = "proactive"


class OutboxAdapter:
    """
    Delivers replies in-process.

    Replies sent during an inbound turn are returned to the caller through
    `TurnContext.sent`. Proactive replies, which have no waiting caller, are
    queued per conversation until drained and are also handed to `on_send`.
    """

    def __init__(self, on_send: Callable[[Activity], None] | None = None) -> None:
        """
        Initialize the OutboxAdapter.

        Args:
            on_send (Callable[[Activity], None] | None, optional): Called with every
                proactive activity. Defaults to None.
        """
        self.on_send = on_send
        self._lock = threading.Lock()
        self._outbox: dict[str, list[Activity]] = defaultdict(list)

    def send(self, turn: TurnContext, activity: Activity) -> None:
        """
        Deliver an outbound activity.

        Args:
            turn (TurnContext): The turn the activity belongs to.
            activity (Activity): The activity.
        """
        logger.debug(
            "Outbound {} in conversation {}: {}",
            activity.type.value,
            activity.conversation_id,
            activity.text,
        )
        if not turn.turn_state.get(PROACTIVE_KEY):
            return
        with self._lock:
            self._outbox[activity.conversation_id].append(activity)
        if self.on_send is not None:
            self.on_send(activity)

    def drain(self, conversation_id: str) -> list[Activity]:
        """
        Remove and return the proactive activities queued for a conversation.

        Args:
            conversation_id (str): The conversation id.

        Returns:
            list[Activity]: The queued activities, oldest first.
        """
        with self._lock:
            return self._outbox.pop(conversation_id, [])

    def discard(self, conversation_id: str) -> None:
        with self._lock:
            self._outbox.pop(conversation_id, None)

    def reconnect(self, reference: ConversationReference) -> TurnContext:
        """
        Reopen a conversation from a stored reference.

        Args:
            reference (ConversationReference): The stored reference.

        Returns:
            TurnContext: A proactive turn whose replies go to the outbox.
        """
        activity = Activity(
            type=ActivityType.EVENT,
            channel_id=reference.channel_id,
            conversation_id=reference.conversation_id,
            from_id=reference.user_id,
            recipient_id=reference.bot_id,
            service_url=reference.service_url,
            id=reference.activity_id,
        )
        turn = TurnContext(activity=activity, adapter=self)
        turn.turn_state[PROACTIVE_KEY] = True
        return turn
