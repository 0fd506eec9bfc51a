"""Dialogs the router can push onto the stack."""

from dataclasses import replace
from typing import Any

from loguru import logger

from dialogrouter.agents.skills import SkillManifest, SkillRegistry
from dialogrouter.agents.types import DialogTurnResult, DialogTurnStatus
from dialogrouter.core.dialog_stack import Dialog, DialogContext, DialogFrame
from dialogrouter.core.skill_context import SkillContextAccessor, SkillSessionContext

NONE_INTENT_DIALOG_ID = "none_intent"
SMART_INTENT_DIALOG_ID = "smart_intent"


class NoneIntentDialog(Dialog):
    """
    Fallback for input no skill claimed: apologize and end.
    """

    def __init__(self, message: str) -> None:
        super().__init__(NONE_INTENT_DIALOG_ID)
        self.message = message

    def on_continue(self, dc: DialogContext) -> DialogTurnResult:
        dc.turn.send_activity(self.message)
        return dc.end()


class SmartIntentDialog(Dialog):
    """
    Answers "what can you do" style requests with the registered skills.
    """

    def __init__(self, skills: SkillRegistry) -> None:
        super().__init__(SMART_INTENT_DIALOG_ID)
        self.skills = skills

    def on_begin(
        self, dc: DialogContext, options: dict[str, Any] | None = None
    ) -> DialogTurnResult:
        """
        Describe the available skills and end.

        Args:
            dc (DialogContext): The dialog context.
            options (dict[str, Any] | None, optional): `data` (the recognizer result)
                and `skill_instance_id`. Defaults to None.

        Returns:
            DialogTurnResult: COMPLETE, carrying the skill instance id.
        """
        options = options or {}
        names = [manifest.name for manifest in self.skills]
        if names:
            dc.turn.send_activity("I can help with: " + ", ".join(names) + ".")
        else:
            dc.turn.send_activity("I don't have any skills available right now.")
        return dc.end({"skill_instance_id": options.get("skill_instance_id")})

    def on_continue(self, dc: DialogContext) -> DialogTurnResult:
        return dc.end()


class _SlotValues(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class ScriptedSkillDialog(Dialog):
    """
    Multi-turn skill driven by its manifest: asks each prompt in order, keeps the
    answers on its frame and in the skill session variables, then sends the
    closing message and ends.
    """

    def __init__(self, manifest: SkillManifest, skill_context: SkillContextAccessor) -> None:
        """
        Initialize the ScriptedSkillDialog.

        Args:
            manifest (SkillManifest): The skill to run; its id becomes the dialog id.
            skill_context (SkillContextAccessor): Access to the shared skill session context.
        """
        super().__init__(manifest.id)
        self.manifest = manifest
        self.skill_context = skill_context

    def on_begin(
        self, dc: DialogContext, options: dict[str, Any] | None = None
    ) -> DialogTurnResult:
        frame = self._frame(dc)
        frame.state.update({"step": 0, "answers": {}})
        if not self.manifest.prompts:
            return self._finish(dc, frame)
        dc.turn.send_activity(self.manifest.prompts[0].text)
        return DialogTurnResult(DialogTurnStatus.WAITING)

    def on_continue(self, dc: DialogContext) -> DialogTurnResult:
        """
        Record the answer to the pending prompt and ask the next one.

        Args:
            dc (DialogContext): The dialog context; this dialog's frame is active.

        Returns:
            DialogTurnResult: WAITING while prompts remain, otherwise the end result.
        """
        frame = self._frame(dc)
        step = int(frame.state.get("step", 0))
        prompts = self.manifest.prompts
        if step >= len(prompts):
            return self._finish(dc, frame)

        slot = prompts[step].slot
        answer = self._answer(dc, slot)
        if answer is None:
            dc.turn.send_activity(prompts[step].text)
            return DialogTurnResult(DialogTurnStatus.WAITING)

        answers = dict(frame.state.get("answers") or {})
        answers[slot] = answer
        frame.state.update({"step": step + 1, "answers": answers})
        self.skill_context.update(
            dc.turn.conversation_id,
            lambda ctx: self._with_variable(ctx, slot, answer),
        )

        if step + 1 < len(prompts):
            dc.turn.send_activity(prompts[step + 1].text)
            return DialogTurnResult(DialogTurnStatus.WAITING)
        return self._finish(dc, frame)

    def on_cancel(self, dc: DialogContext, frame: DialogFrame) -> None:
        logger.info(
            "Skill {} cancelled at step {} in conversation {}",
            self.id,
            frame.state.get("step", 0),
            dc.turn.conversation_id,
        )

    def _frame(self, dc: DialogContext) -> DialogFrame:
        frame = dc.active_frame
        if frame is None or frame.id != self.id:
            raise RuntimeError(f"Skill {self.id} is not the active dialog.")
        return frame

    def _answer(self, dc: DialogContext, slot: str) -> str | None:
        activity = dc.turn.activity
        if activity.text and activity.text.strip():
            return activity.text.strip()
        if activity.value:
            value = activity.value.get(slot) or activity.value.get("text")
            if value is not None:
                return str(value)
        return None

    @staticmethod
    def _with_variable(
        ctx: SkillSessionContext, slot: str, answer: str
    ) -> SkillSessionContext:
        variables = dict(ctx.variables or {})
        variables[slot] = answer
        return replace(ctx, variables=variables)

    def _finish(self, dc: DialogContext, frame: DialogFrame) -> DialogTurnResult:
        answers = dict(frame.state.get("answers") or {})
        if self.manifest.closing:
            dc.turn.send_activity(self.manifest.closing.format_map(_SlotValues(answers)))
        logger.info("Skill {} finished with slots {}", self.id, sorted(answers))
        return dc.end(
            {
                "skill": self.id,
                "skill_instance_id": dc.turn.skill_instance_id,
                "answers": answers,
            }
        )
