"""Wires collaborators into a ready-to-use dispatcher and timeout handler."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from dialogrouter.agents.context import TurnContext
from dialogrouter.agents.dialogs import NoneIntentDialog, ScriptedSkillDialog, SmartIntentDialog
from dialogrouter.agents.orchestrator import ConversationRouter
from dialogrouter.agents.skills import SkillRegistry, load_skill_registry
from dialogrouter.agents.types import Activity, Recognizer
from dialogrouter.agents.understanding import HttpRecognizer, KeywordRecognizer
from dialogrouter.core.adapter import OutboxAdapter
from dialogrouter.core.analytics import AnalyticsService
from dialogrouter.core.auth import DirectoryAuthenticator
from dialogrouter.core.dialog_stack import DialogContext, DialogSet
from dialogrouter.core.dispatcher import TurnDispatcher
from dialogrouter.core.session_manager import ConversationStore
from dialogrouter.core.skill_context import SkillContextAccessor
from dialogrouter.core.timeout import ProactiveTimeoutHandler
from dialogrouter.utils.env_cfg import load_message_env, load_path_env, load_router_env


@dataclass
class Runtime:
    """
    Everything a host needs to serve turns.
    """

    store: ConversationStore
    skills: SkillRegistry | None
    dialogs: DialogSet
    adapter: OutboxAdapter
    analytics: AnalyticsService
    skill_context: SkillContextAccessor
    router: ConversationRouter
    dispatcher: TurnDispatcher
    timeouts: ProactiveTimeoutHandler

    def describe(self, conversation_id: str) -> dict | None:
        """
        Describe a conversation's persisted state and derived router state.

        Args:
            conversation_id (str): The conversation id.

        Returns:
            dict | None: The state, or None if the conversation is unknown.
        """
        state = self.store.get_state(conversation_id)
        if state is None:
            return None
        turn = TurnContext(
            activity=Activity(conversation_id=conversation_id), adapter=self.adapter
        )
        dc = DialogContext(self.dialogs, self.store.load_stack(conversation_id), turn)
        return {**state, "router_state": self.router.state_of(dc).value}


def build_runtime(
    db_url: str | None = None,
    skills_path: str | Path | None = None,
    recognizer_url: str | None = None,
    recognizer: Recognizer | None = None,
) -> Runtime:
    """
    Build a runtime from configuration.

    Args:
        db_url (str | None, optional): Database URL. Defaults to DB_URL.
        skills_path (str | Path | None, optional): Skill manifest. Defaults to SKILLS_PATH.
        recognizer_url (str | None, optional): Remote recognizer endpoint. Defaults to RECOGNIZER_URL.
        recognizer (Recognizer | None, optional): Explicit recognizer, overriding the above. Defaults to None.

    Returns:
        Runtime: The wired runtime.
    """
    config = load_router_env()
    messages = load_message_env()

    store = ConversationStore()
    store.init_store(db_url)

    skills = load_skill_registry(skills_path or load_path_env().skills, required=False)
    skill_context = SkillContextAccessor(store)
    analytics = AnalyticsService(store)

    dialogs = DialogSet(
        [NoneIntentDialog(messages.none_intent_message)]
        + ([SmartIntentDialog(skills)] if skills is not None else [])
        + [ScriptedSkillDialog(m, skill_context) for m in skills or []]
    )

    if recognizer is None:
        url = recognizer_url or os.getenv("RECOGNIZER_URL")
        if url:
            logger.info("Using remote recognizer at {}", url)
            recognizer = HttpRecognizer(url, config)
        else:
            recognizer = KeywordRecognizer(skills, config)

    adapter = OutboxAdapter()
    router = ConversationRouter(
        recognizer=recognizer,
        skills=skills,
        skill_context=skill_context,
        analytics=analytics,
        config=config,
        messages=messages,
    )
    dispatcher = TurnDispatcher(
        store=store,
        dialogs=dialogs,
        router=router,
        authenticator=DirectoryAuthenticator(),
        adapter=adapter,
        messages=messages,
    )
    timeouts = ProactiveTimeoutHandler(
        store=store,
        dialogs=dialogs,
        adapter=adapter,
        skill_context=skill_context,
        analytics=analytics,
        messages=messages,
    )
    return Runtime(
        store=store,
        skills=skills,
        dialogs=dialogs,
        adapter=adapter,
        analytics=analytics,
        skill_context=skill_context,
        router=router,
        dispatcher=dispatcher,
        timeouts=timeouts,
    )
