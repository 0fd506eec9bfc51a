"""Turn dispatcher: entry point for every inbound activity."""

from __future__ import annotations

from loguru import logger

from dialogrouter.agents.context import DIALOG_CONTEXT_KEY, TurnContext
from dialogrouter.agents.orchestrator import ConversationRouter
from dialogrouter.agents.types import (
    BOT_TIMED_OUT,
    Activity,
    ActivityType,
    Authenticator,
    ChannelAdapter,
    ConversationReference,
)
from dialogrouter.core.dialog_stack import DialogContext, DialogSet
from dialogrouter.core.errors import AuthenticationError
from dialogrouter.core.session_manager import ConversationStore
from dialogrouter.core.skill_context import SkillSessionContext
from dialogrouter.utils.env_cfg import MessageConfig, load_message_env


class TurnDispatcher:
    """
    Runs one inbound activity through authentication and the router, with the
    conversation's dialog stack loaded before and persisted after.
    """

    def __init__(
        self,
        store: ConversationStore,
        dialogs: DialogSet,
        router: ConversationRouter,
        authenticator: Authenticator,
        adapter: ChannelAdapter,
        messages: MessageConfig | None = None,
    ) -> None:
        """
        Initialize the TurnDispatcher.

        Args:
            store (ConversationStore): Persisted conversation state.
            dialogs (DialogSet): Every dialog the router can push.
            router (ConversationRouter): The router.
            authenticator (Authenticator): Identifies the caller.
            adapter (ChannelAdapter): Delivers replies.
            messages (MessageConfig | None, optional): Fixed replies. Defaults to the environment.
        """
        self.store = store
        self.dialogs = dialogs
        self.router = router
        self.authenticator = authenticator
        self.adapter = adapter
        self.messages = messages or load_message_env()

    def handle_turn(self, activity: Activity) -> TurnContext:
        """
        Process one inbound activity.

        Args:
            activity (Activity): The inbound activity.

        Returns:
            TurnContext: The processed turn; `sent` holds the replies.

        Raises:
            ValueError: If the activity has no conversation id.
            DialogRouterError: Routing failures are logged and re-raised.
        """
        if not activity.conversation_id:
            logger.error("ValueError: Activity has no conversation id.")
            raise ValueError("Activity has no conversation id.")

        turn = TurnContext(activity=activity, adapter=self.adapter)
        with logger.contextualize(conversation_id=activity.conversation_id):
            if (
                activity.type is ActivityType.END_OF_CONVERSATION
                and activity.code == BOT_TIMED_OUT
            ):
                logger.info("Channel reported that the bot timed out; skipping routing.")
                return turn

            if activity.type is ActivityType.MESSAGE:
                try:
                    self.store.save_reference(ConversationReference.from_activity(activity))
                except Exception as e:
                    logger.warning("Could not store conversation reference: {}", e)

            try:
                turn.user = self.authenticator.authenticate(turn)
            except AuthenticationError as e:
                logger.warning("AuthenticationError: {}", e)
                turn.send_activity(self.messages.auth_failure_message)

            cid = activity.conversation_id
            with self.store.lock(cid):
                stack = self.store.load_stack(cid)
                snapshot = self.store.load_skill_context(cid)
                dc = DialogContext(self.dialogs, stack, turn)
                turn.turn_state[DIALOG_CONTEXT_KEY] = dc
                try:
                    if stack:
                        self.router.continue_dialog(dc)
                    else:
                        self.router.begin_dialog(dc)
                    self.store.save_stack(cid, dc.stack)
                except Exception as e:
                    logger.exception("Turn failed: {}", e)
                    # The stack was not saved, so the context goes back to match it.
                    self._restore_skill_context(cid, snapshot)
                    raise
        return turn

    def _restore_skill_context(
        self, conversation_id: str, snapshot: SkillSessionContext
    ) -> None:
        try:
            self.store.save_skill_context(conversation_id, snapshot)
        except Exception as e:
            logger.error("Could not restore skill context after a failed turn: {}", e)
