"""Proactive timeout: ends interactions that went silent."""

from __future__ import annotations

from loguru import logger

from dialogrouter.agents.types import ChannelAdapter, ConversationReference
from dialogrouter.core.analytics import AnalyticsService, TimeoutMsg
from dialogrouter.core.dialog_stack import DialogContext, DialogSet
from dialogrouter.core.errors import TimeoutPathError
from dialogrouter.core.session_manager import ConversationStore
from dialogrouter.core.skill_context import SkillContextAccessor
from dialogrouter.utils.env_cfg import MessageConfig, load_message_env


class ProactiveTimeoutHandler:
    """
    Cancels a conversation's dialog stack on behalf of an external watchdog.
    """

    def __init__(
        self,
        store: ConversationStore,
        dialogs: DialogSet,
        adapter: ChannelAdapter,
        skill_context: SkillContextAccessor,
        analytics: AnalyticsService,
        messages: MessageConfig | None = None,
    ) -> None:
        self.store = store
        self.dialogs = dialogs
        self.adapter = adapter
        self.skill_context = skill_context
        self.analytics = analytics
        self.messages = messages or load_message_env()

    def on_timeout(
        self,
        reference: ConversationReference,
        user_id: str | None,
        skill_instance_id: str | None,
    ) -> None:
        """
        End the interaction in progress, if any, and tell the user.

        Nothing happens when the stack is already empty. Failures are logged and
        never raised, since no caller waits on this path.

        Args:
            reference (ConversationReference): Where the conversation lives.
            user_id (str | None): The user the watchdog tracked.
            skill_instance_id (str | None): The interaction the watchdog tracked.
        """
        cid = reference.conversation_id
        with logger.contextualize(conversation_id=cid or "-"):
            try:
                self._cancel_interaction(reference, user_id, skill_instance_id)
            except Exception as e:
                err = TimeoutPathError(f"Timeout handling failed for {cid}: {e}")
                logger.opt(exception=e).error("TimeoutPathError: {}", err)

    def _cancel_interaction(
        self,
        reference: ConversationReference,
        user_id: str | None,
        skill_instance_id: str | None,
    ) -> None:
        cid = reference.conversation_id
        turn = self.adapter.reconnect(reference)
        with self.store.lock(cid):
            stack = self.store.load_stack(cid)
            if not stack:
                logger.info("Timeout for idle conversation; nothing to cancel.")
                return

            na = self.messages.not_available
            self.analytics.save_timeout(
                TimeoutMsg(
                    conversation_id=cid or na,
                    channel_id=reference.channel_id or na,
                    user_id=user_id,
                    skill_instance_id=skill_instance_id,
                    message=self.messages.timeout_message,
                )
            )
            dc = DialogContext(self.dialogs, stack, turn)
            dc.cancel_all()
            cleared = self.skill_context.get(cid).cleared()
            self.store.save_stack(cid, dc.stack, skill_context=cleared)
            turn.send_activity(self.messages.timeout_message)
            logger.info("Timed out interaction {} was cancelled.", skill_instance_id)
