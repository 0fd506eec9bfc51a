"""Agent routing package.

Provides the turn types, recognizers, interruption policy and skill registry the
conversation router is built from. The router and dialogs import the dialog
stack from `dialogrouter.core`, so they are imported from their own modules.
"""

from dialogrouter.agents.types import (
    Activity,
    ActivityType,
    ConversationReference,
    DialogTurnResult,
    DialogTurnStatus,
    Entity,
    EntityKind,
    InterruptionAction,
    RecognizerResult,
    UserIdentity,
)
from dialogrouter.agents.context import DIALOG_CONTEXT_KEY, TurnContext
from dialogrouter.agents.policies import (
    ControlCommand,
    ControlDecision,
    InterruptionPolicy,
)
from dialogrouter.agents.skills import (
    SkillManifest,
    SkillPrompt,
    SkillRegistry,
    load_skill_registry,
)
from dialogrouter.agents.understanding import (
    HttpRecognizer,
    KeywordRecognizer,
    normalize_entities,
)

__all__ = [
    "Activity",
    "ActivityType",
    "ControlCommand",
    "ControlDecision",
    "ConversationReference",
    "DIALOG_CONTEXT_KEY",
    "DialogTurnResult",
    "DialogTurnStatus",
    "Entity",
    "EntityKind",
    "HttpRecognizer",
    "InterruptionAction",
    "InterruptionPolicy",
    "KeywordRecognizer",
    "RecognizerResult",
    "SkillManifest",
    "SkillPrompt",
    "SkillRegistry",
    "TurnContext",
    "UserIdentity",
    "load_skill_registry",
    "normalize_entities",
]
