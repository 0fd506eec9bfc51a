"""Conversation router: decides per turn whether to resume, hand off to a skill or re-route."""

import uuid
from dataclasses import replace
from enum import Enum
from typing import Any

from loguru import logger

from dialogrouter.agents.dialogs import NONE_INTENT_DIALOG_ID, SMART_INTENT_DIALOG_ID
from dialogrouter.agents.policies import ControlCommand, InterruptionPolicy
from dialogrouter.agents.skills import SkillManifest, SkillRegistry
from dialogrouter.agents.types import (
    ActivityType,
    DialogTurnResult,
    DialogTurnStatus,
    InterruptionAction,
    Recognizer,
    RecognizerResult,
)
from dialogrouter.core.analytics import AnalyticsService, SkillCompletionFlag
from dialogrouter.core.dialog_stack import DialogContext
from dialogrouter.core.errors import ConfigurationError, RoutingError
from dialogrouter.core.skill_context import SkillContextAccessor
from dialogrouter.utils.env_cfg import (
    MessageConfig,
    RouterConfig,
    load_message_env,
    load_router_env,
)


class RouterState(str, Enum):
    """
    Router states. ROUTING only exists while a turn is being decided, so
    `ConversationRouter.state_of` never reports it.
    """

    IDLE = "idle"
    ROUTING = "routing"
    IN_SKILL = "in_skill"
    IN_LOCAL_DIALOG = "in_local_dialog"


def new_skill_instance_id() -> str:
    return uuid.uuid4().hex


class ConversationRouter:
    """
    Top-level dialog state machine.

    Holds no per-conversation state: everything a turn needs lives on the
    `TurnContext`, the dialog stack or the persisted skill session context.
    """

    def __init__(
        self,
        recognizer: Recognizer,
        skills: SkillRegistry | None,
        skill_context: SkillContextAccessor,
        analytics: AnalyticsService,
        config: RouterConfig | None = None,
        messages: MessageConfig | None = None,
        policy: InterruptionPolicy | None = None,
    ) -> None:
        """
        Initialize the ConversationRouter.

        Args:
            recognizer (Recognizer): Produces intents and entities from turn text.
            skills (SkillRegistry | None): Registered skills. None makes every routed turn fail.
            skill_context (SkillContextAccessor): Access to the shared skill session context.
            analytics (AnalyticsService): Analytics sink.
            config (RouterConfig | None, optional): Routing vocabulary. Defaults to the environment.
            messages (MessageConfig | None, optional): Fixed replies. Defaults to the environment.
            policy (InterruptionPolicy | None, optional): Control command decoding. Defaults to None.
        """
        self.recognizer = recognizer
        self.skills = skills
        self.skill_context = skill_context
        self.analytics = analytics
        self.config = config or load_router_env()
        self.messages = messages or load_message_env()
        self.policy = policy or InterruptionPolicy(self.config)

    def state_of(self, dc: DialogContext) -> RouterState:
        """
        Derive the resting router state from the top of the stack.

        Args:
            dc (DialogContext): The dialog context.

        Returns:
            RouterState: IDLE, IN_SKILL or IN_LOCAL_DIALOG.
        """
        frame = dc.active_frame
        if frame is None:
            return RouterState.IDLE
        if self.skills is not None and self.skills.get(frame.id) is not None:
            return RouterState.IN_SKILL
        return RouterState.IN_LOCAL_DIALOG

    def begin_dialog(self, dc: DialogContext) -> None:
        """Handle a turn that arrived with an empty stack."""
        self._on_turn(dc)

    def continue_dialog(self, dc: DialogContext) -> None:
        """Handle a turn that arrived with an interaction in progress."""
        self._on_turn(dc)

    def _on_turn(self, dc: DialogContext) -> None:
        turn = dc.turn
        if not turn.skill_instance_id:
            turn.skill_instance_id = (
                self.skill_context.get_skill_instance_id(turn.conversation_id) or ""
            )
        if turn.active_skill is None and self.state_of(dc) is RouterState.IN_SKILL:
            turn.active_skill = dc.active_dialog_id

        if self.on_interrupt(dc) is InterruptionAction.STARTED_DIALOG:
            return

        activity = turn.activity
        if activity.type is ActivityType.MESSAGE and not activity.value:
            if not activity.text:
                logger.debug("Ignoring empty message in conversation {}", turn.conversation_id)
                return
            result = dc.continue_top()
            if result.status is DialogTurnStatus.EMPTY:
                self.route(dc)
            elif result.status is DialogTurnStatus.COMPLETE:
                self.complete(dc, result)
        elif activity.type in (ActivityType.MESSAGE, ActivityType.EVENT):
            self.on_event(dc)
        else:
            logger.debug(
                "Ignoring {} activity in conversation {}",
                activity.type.value,
                turn.conversation_id,
            )

    def on_interrupt(self, dc: DialogContext) -> InterruptionAction:
        """
        Check free text for control commands before the active frame sees it.

        Args:
            dc (DialogContext): The dialog context.

        Returns:
            InterruptionAction: STARTED_DIALOG if this check consumed the turn.

        Raises:
            ConfigurationError: If no skill registry is configured.
        """
        turn = dc.turn
        if not turn.activity.text:
            return InterruptionAction.NO_ACTION

        skills = self._require_skills()
        result = self.recognizer.recognize(turn)
        logger.info(
            "Interruption check: intent {} for {!r}", result.intent, turn.activity.text
        )

        identified = skills.is_skill(result.intent)
        decision = self.policy.decode(result)
        if decision.command is ControlCommand.LAUNCH:
            identified = skills.is_skill(decision.app_name)
            if identified is not None:
                logger.info("Launch of {} pre-empts the current stack", identified.id)
                self._cancel(dc)
        elif decision.command is ControlCommand.STOP:
            identified = None
            stopped = turn.skill_instance_id
            self._cancel(dc)
            # The cancelled status written by `route` belongs to the stopped interaction.
            turn.skill_instance_id = stopped

        if identified is not None and not dc.stack:
            self._enter_skill(dc, identified, result, new_skill_instance_id())
            self.analytics.save_user_input(turn)
            self.analytics.save_nlp_data(turn, result)
            status = self.run_dialog(dc, identified.id)
            if status.status is DialogTurnStatus.COMPLETE:
                self.complete(dc, status)
            return InterruptionAction.STARTED_DIALOG

        if result.intent == self.config.smart_intent and not dc.stack:
            sid = new_skill_instance_id()
            self._tag_instance(dc, sid, self.config.smart_intent)
            self.analytics.save_user_input(turn)
            self.analytics.save_nlp_data(turn, result)
            status = dc.begin(
                SMART_INTENT_DIALOG_ID,
                {"data": result.to_dict(), "skill_instance_id": sid},
            )
            if status.status is DialogTurnStatus.COMPLETE:
                self.complete(dc, status)
            return InterruptionAction.STARTED_DIALOG

        self._capture_analytics_if_skill(dc, result)
        return InterruptionAction.NO_ACTION

    def route(self, dc: DialogContext) -> None:
        """
        Top-level routing of a turn that found the stack empty.

        Args:
            dc (DialogContext): The dialog context.

        Raises:
            ConfigurationError: If no skill registry is configured.
        """
        turn = dc.turn
        skills = self._require_skills()
        result = self.recognizer.recognize(turn)
        logger.info("Route: intent {} for {!r}", result.intent, turn.activity.text)

        manifest = skills.is_skill(result.intent)
        if manifest is not None:
            self._enter_skill(
                dc, manifest, result, turn.skill_instance_id or new_skill_instance_id()
            )
            status = dc.begin(manifest.id)
            if status.status is DialogTurnStatus.COMPLETE:
                self.complete(dc, status)
            return

        if self.policy.is_stop_request(result):
            msgs = self.messages
            turn.send_activity(msgs.cancel_text)
            self.analytics.save_skill_status(
                turn,
                msgs.cancel_text,
                msgs.cancel_label,
                SkillCompletionFlag.CANCEL,
                result.intent,
            )
            self.complete(dc)
            return

        self._tag_instance(dc, new_skill_instance_id(), None)
        status = dc.begin(NONE_INTENT_DIALOG_ID)
        if status.status is DialogTurnStatus.COMPLETE:
            self.complete(dc, status)

    def on_event(self, dc: DialogContext) -> None:
        """
        Handle card submissions and named events.

        A card value whose `intent` names a registered skill runs that skill
        directly. Named events other than the token response are traced and
        dropped; everything else resumes the active frame.

        Args:
            dc (DialogContext): The dialog context.
        """
        turn = dc.turn
        activity = turn.activity
        value: dict[str, Any] = activity.value or {}

        if value.get("intent"):
            manifest = self._require_skills().is_skill(str(value["intent"]))
            if manifest is not None:
                sid = (
                    self.skill_context.get_skill_instance_id(turn.conversation_id)
                    or turn.skill_instance_id
                    or new_skill_instance_id()
                )
                self._tag_instance(dc, sid, manifest.id)
                self.analytics.save_user_input(turn)
                status = self.run_dialog(dc, manifest.id)
                if status.status is DialogTurnStatus.COMPLETE:
                    self.complete(dc, status)
                return

        name = (activity.name or "").strip()
        if name and name != self.config.token_response_event:
            turn.send_trace(f"Unknown Event {name} was received but not processed.")
            return

        status = dc.continue_top()
        if status.status is DialogTurnStatus.COMPLETE:
            self.complete(dc, status)

        if "cancel" in str(value.get("type") or "").lower():
            self._cancel(dc)

    def run_dialog(self, dc: DialogContext, dialog_id: str) -> DialogTurnResult:
        """
        Continue `dialog_id` if it is active, otherwise begin it.

        A WAITING status is reported as COMPLETE when `dialog_id` is no longer
        anywhere on the stack, since the waiting frame then belongs to someone else.

        Args:
            dc (DialogContext): The dialog context.
            dialog_id (str): The dialog to run.

        Returns:
            DialogTurnResult: The normalized result.

        Raises:
            RoutingError: If `dialog_id` is empty.
        """
        if not dialog_id:
            logger.error("RoutingError: run_dialog called without a dialog id.")
            raise RoutingError("run_dialog called without a dialog id.")

        if dc.active_dialog_id == dialog_id:
            result = dc.continue_top()
        else:
            result = dc.begin(dialog_id)

        if (
            result.status is DialogTurnStatus.WAITING
            and dc.active_dialog_id != dialog_id
            and dc.find(dialog_id) is None
        ):
            result = DialogTurnResult(DialogTurnStatus.COMPLETE, result.result)
        return result

    def complete(self, dc: DialogContext, result: DialogTurnResult | None = None) -> None:
        """
        Completion hook: clear the skill session context and the turn's skill
        instance id. Safe to call more than once.

        Args:
            dc (DialogContext): The dialog context.
            result (DialogTurnResult | None, optional): The completing result. Defaults to None.
        """
        turn = dc.turn
        skill = turn.active_skill
        if skill and self.skills is not None and self.skills.get(skill) is not None:
            self.analytics.save_skill_status(
                turn, "", SkillCompletionFlag.COMPLETE.value, SkillCompletionFlag.COMPLETE, skill
            )
        self.skill_context.clear(turn.conversation_id)
        turn.skill_instance_id = ""
        turn.active_skill = None
        logger.info(
            "Interaction complete in conversation {} (result={})",
            turn.conversation_id,
            result.result if result is not None else None,
        )

    def _cancel(self, dc: DialogContext) -> None:
        dc.cancel_all()
        self.skill_context.clear(dc.turn.conversation_id)
        dc.turn.skill_instance_id = ""
        dc.turn.active_skill = None

    def _enter_skill(
        self,
        dc: DialogContext,
        manifest: SkillManifest,
        result: RecognizerResult,
        skill_instance_id: str,
    ) -> None:
        turn = dc.turn
        user_id = turn.user_id
        self.skill_context.update(
            turn.conversation_id,
            lambda ctx: replace(
                ctx,
                active_skill_instance_id=skill_instance_id,
                last_recognizer_result=result,
                current_user_id=user_id,
            ),
        )
        turn.skill_instance_id = skill_instance_id
        turn.active_skill = manifest.id

    def _tag_instance(
        self, dc: DialogContext, skill_instance_id: str, active_skill: str | None
    ) -> None:
        turn = dc.turn
        if self.skill_context.get_skill_instance_id(turn.conversation_id) != skill_instance_id:
            self.skill_context.update(
                turn.conversation_id,
                lambda ctx: replace(ctx, active_skill_instance_id=skill_instance_id),
            )
        turn.skill_instance_id = skill_instance_id
        turn.active_skill = active_skill

    def _capture_analytics_if_skill(
        self, dc: DialogContext, result: RecognizerResult
    ) -> None:
        if not self.config.capture_skill_analytics:
            return
        frame = dc.active_frame
        if frame is None or self.skills is None or self.skills.get(frame.id) is None:
            return
        dc.turn.active_skill = frame.id
        self.analytics.save_user_input(dc.turn)
        self.analytics.save_nlp_data(dc.turn, result)

    def _require_skills(self) -> SkillRegistry:
        if self.skills is None:
            logger.error("ConfigurationError: No skill registry is configured.")
            raise ConfigurationError("No skill registry is configured.")
        return self.skills
