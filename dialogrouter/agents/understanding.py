"""Recognizer implementations and entity normalization."""

import re
from typing import Any, Iterable

import requests

from dialogrouter.agents.context import TurnContext
from dialogrouter.agents.skills import SkillRegistry
from dialogrouter.agents.types import Entity, EntityKind, Recognizer, RecognizerResult
from dialogrouter.utils.env_cfg import RouterConfig, load_router_env


def normalize_entities(
    raw_entities: Iterable[Any] | None, config: RouterConfig
) -> tuple[Entity, ...]:
    """
    Turn recognizer entities of the form `{"type": ..., "resolution": {"values": [...]}}`
    into tagged entities. Entries without a type or a resolved value are dropped.

    Args:
        raw_entities (Iterable[Any] | None): Entities as returned by the recognizer.
        config (RouterConfig): Supplies the APP_NAME and COMMAND tags.

    Returns:
        tuple[Entity, ...]: Normalized entities, in recognizer order.
    """
    kinds = {
        config.app_name_tag: EntityKind.APP_NAME,
        config.command_tag: EntityKind.COMMAND,
    }
    normalized: list[Entity] = []
    for raw in raw_entities or []:
        if not isinstance(raw, dict):
            continue
        raw_type = raw.get("type")
        resolution = raw.get("resolution")
        values = resolution.get("values") if isinstance(resolution, dict) else None
        if not raw_type or not values:
            continue
        value = values[0]
        if isinstance(value, dict):
            value = value.get("value")
        if value is None:
            continue
        normalized.append(
            Entity(
                kind=kinds.get(str(raw_type), EntityKind.UNRECOGNIZED),
                value=str(value),
                raw_type=str(raw_type),
            )
        )
    return tuple(normalized)


class KeywordRecognizer(Recognizer):
    """
    Deterministic keyword recognizer.
    Maps control phrases and skill keywords to intents; not a substitute for NLU.
    """

    LAUNCH_PATTERN = re.compile(r"^\s*(?:launch|open)\s+(?P<app>.+?)\s*[.!]?\s*$", re.I)

    def __init__(
        self,
        skills: SkillRegistry | None,
        config: RouterConfig | None = None,
        stop_words: Iterable[str] | None = None,
        help_phrases: Iterable[str] | None = None,
    ) -> None:
        """
        Initialize the KeywordRecognizer.

        Args:
            skills (SkillRegistry | None): Skills whose keywords map to their first intent.
            config (RouterConfig | None, optional): Routing vocabulary. Defaults to the environment.
            stop_words (Iterable[str] | None, optional): Utterances meaning "stop". Defaults to None.
            help_phrases (Iterable[str] | None, optional): Phrases mapped to the smart intent. Defaults to None.
        """
        self.skills = skills
        self.config = config or load_router_env()
        self.stop_words = tuple(
            stop_words or ("stop", "cancel", "quit", "never mind", "nevermind")
        )
        self.help_phrases = tuple(help_phrases or ("help", "what can you do"))

    def _raw_entity(self, tag: str, text: str, value: str) -> dict[str, Any]:
        return {"type": tag, "entity": text, "resolution": {"values": [value]}}

    def _detect(
        self, text: str
    ) -> tuple[str, float, list[dict[str, Any]], str | None]:
        """
        Detect intent and raw entities.

        Args:
            text (str): The utterance.

        Returns:
            tuple[str, float, list[dict[str, Any]], str | None]: Intent, score, raw entities and a reason.
        """
        cfg = self.config
        lowered = text.lower().strip().rstrip(".!")

        launch = self.LAUNCH_PATTERN.match(text)
        if launch:
            app = launch.group("app")
            return (
                cfg.control_intent,
                0.9,
                [
                    self._raw_entity(cfg.command_tag, text, cfg.launch_command),
                    self._raw_entity(cfg.app_name_tag, app, app),
                ],
                "launch command",
            )

        if any(lowered == w or lowered.startswith(w + " ") for w in self.stop_words):
            return (
                cfg.control_intent,
                0.9,
                [self._raw_entity(cfg.command_tag, text, cfg.stop_command)],
                "stop command",
            )

        if any(phrase in lowered for phrase in self.help_phrases):
            return cfg.smart_intent, 0.7, [], "help phrase"

        for manifest in self.skills or []:
            if manifest.intents and any(kw in lowered for kw in manifest.keywords):
                return manifest.intents[0], 0.8, [], f"matched keywords for {manifest.id}"

        return cfg.none_intent, 0.3, [], None

    def recognize(self, turn: TurnContext) -> RecognizerResult:
        """
        Recognize the turn text.

        Args:
            turn (TurnContext): The current turn.

        Returns:
            RecognizerResult: Intent, score, metadata and normalized entities.
        """
        text = turn.activity.text or ""
        intent, score, raw_entities, reason = self._detect(text)
        return RecognizerResult(
            intent=intent,
            score=score,
            metadata={"text": text, "reason": reason, "entities": raw_entities},
            entities=normalize_entities(raw_entities, self.config),
        )


class HttpRecognizer(Recognizer):
    """
    Calls a remote recognizer endpoint.

    The endpoint receives `{"query": text}` and answers with an intent (`intent`
    or `topIntent`), an optional `score` and a list of `entities`. Network and
    HTTP errors propagate to the caller.
    """

    def __init__(
        self,
        url: str,
        config: RouterConfig | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.config = config or load_router_env()
        self.timeout = timeout
        self.session = session or requests.Session()

    def recognize(self, turn: TurnContext) -> RecognizerResult:
        """
        Recognize the turn text remotely.

        Args:
            turn (TurnContext): The current turn.

        Returns:
            RecognizerResult: The parsed recognizer response.

        Raises:
            requests.RequestException: If the endpoint cannot be reached or errors.
        """
        text = turn.activity.text or ""
        resp = self.session.post(self.url, json={"query": text}, timeout=self.timeout)
        resp.raise_for_status()
        body: dict[str, Any] = resp.json() or {}
        intent = body.get("intent") or body.get("topIntent") or self.config.none_intent
        return RecognizerResult(
            intent=str(intent),
            score=float(body.get("score") or 0.0),
            metadata=body,
            entities=normalize_entities(body.get("entities"), self.config),
        )
