"""Turn context helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from dialogrouter.agents.types import (
    Activity,
    ActivityType,
    ChannelAdapter,
    UserIdentity,
)

# Turn-state key under which the dispatcher binds the dialog context.
DIALOG_CONTEXT_KEY = "dialog_context"


@dataclass
class TurnContext:
    """
    Carries one inbound activity and the state scoped to its processing.
    """

    activity: Activity
    adapter: ChannelAdapter
    user: UserIdentity | None = None
    skill_instance_id: str = ""
    active_skill: str | None = None
    turn_state: dict[str, Any] = field(default_factory=dict)
    sent: list[Activity] = field(default_factory=list)

    @property
    def conversation_id(self) -> str:
        return self.activity.conversation_id

    @property
    def channel_id(self) -> str:
        return self.activity.channel_id

    @property
    def user_id(self) -> str | None:
        """
        Return the authenticated user id, or None when authentication failed.
        """
        return self.user.user_id if self.user is not None else None

    def send_activity(self, message: str | Activity) -> Activity:
        """
        Send a reply on this turn's conversation.

        Args:
            message (str | Activity): Plain text or a prepared activity.

        Returns:
            Activity: The activity handed to the adapter.
        """
        if isinstance(message, str):
            activity = self._reply(ActivityType.MESSAGE, message)
        else:
            activity = message
        self.adapter.send(self, activity)
        self.sent.append(activity)
        return activity

    def send_trace(self, text: str) -> Activity:
        """
        Send a trace activity. Traces are observability only and never shown to users.

        Args:
            text (str): The trace text.

        Returns:
            Activity: The trace activity.
        """
        return self.send_activity(self._reply(ActivityType.TRACE, text))

    def _reply(self, kind: ActivityType, text: str) -> Activity:
        inbound = self.activity
        return Activity(
            type=kind,
            text=text,
            channel_id=inbound.channel_id,
            conversation_id=inbound.conversation_id,
            from_id=inbound.recipient_id,
            recipient_id=inbound.from_id,
            service_url=inbound.service_url,
        )
