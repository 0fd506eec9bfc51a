import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from dialogrouter.agents import (
    ControlCommand,
    EntityKind,
    HttpRecognizer,
    InterruptionPolicy,
    KeywordRecognizer,
    RecognizerResult,
    SkillManifest,
    SkillRegistry,
    TurnContext,
    load_skill_registry,
    normalize_entities,
)
from dialogrouter.agents.types import Activity, Entity
from dialogrouter.core.errors import ConfigurationError
from dialogrouter.utils.env_cfg import load_router_env

CONFIG = load_router_env()


def _turn(text: str | None) -> TurnContext:
    return TurnContext(activity=Activity(text=text, conversation_id="c"), adapter=MagicMock())


@pytest.fixture
def registry() -> SkillRegistry:
    return SkillRegistry(
        [
            SkillManifest(id="calendar_skill", name="Calendar", intents=("l_Calendar",), keywords=("meeting",)),
            SkillManifest(id="weather_skill", name="Weather", intents=("l_Weather",), keywords=("weather",)),
        ]
    )


def test_normalize_entities_tags_and_filters() -> None:
    raw = [
        {"type": CONFIG.command_tag, "resolution": {"values": ["stop"]}},
        {"type": CONFIG.app_name_tag, "resolution": {"values": [{"value": "Calendar"}]}},
        {"type": "Date", "resolution": {"values": ["2024-01-01"]}},
        {"type": "NoValues", "resolution": {"values": []}},
        {"resolution": {"values": ["untyped"]}},
        "garbage",
    ]

    entities = normalize_entities(raw, CONFIG)

    assert entities == (
        Entity(EntityKind.COMMAND, "stop", CONFIG.command_tag),
        Entity(EntityKind.APP_NAME, "Calendar", CONFIG.app_name_tag),
        Entity(EntityKind.UNRECOGNIZED, "2024-01-01", "Date"),
    )
    assert normalize_entities(None, CONFIG) == ()


def test_keyword_recognizer_launch(registry: SkillRegistry) -> None:
    result = KeywordRecognizer(registry, CONFIG).recognize(_turn("Launch calendar"))

    assert result.intent == CONFIG.control_intent
    assert result.first(EntityKind.COMMAND) == CONFIG.launch_command
    assert result.first(EntityKind.APP_NAME) == "calendar"


def test_keyword_recognizer_stop_and_skills(registry: SkillRegistry) -> None:
    recognizer = KeywordRecognizer(registry, CONFIG)

    stop = recognizer.recognize(_turn("Never mind."))
    assert stop.intent == CONFIG.control_intent
    assert stop.has_value(CONFIG.stop_command)

    assert recognizer.recognize(_turn("book a meeting")).intent == "l_Calendar"
    assert recognizer.recognize(_turn("help")).intent == CONFIG.smart_intent
    assert recognizer.recognize(_turn("stopwatch")).intent == CONFIG.none_intent
    assert recognizer.recognize(_turn(None)).intent == CONFIG.none_intent


def test_http_recognizer_parses_response() -> None:
    session = MagicMock(spec=requests.Session)
    resp = MagicMock()
    resp.json.return_value = {
        "topIntent": "Control",
        "score": 0.93,
        "entities": [{"type": CONFIG.command_tag, "resolution": {"values": ["launch"]}}],
    }
    session.post.return_value = resp

    result = HttpRecognizer("http://nlu.local/parse", CONFIG, session=session).recognize(
        _turn("launch it")
    )

    session.post.assert_called_once_with(
        "http://nlu.local/parse", json={"query": "launch it"}, timeout=10.0
    )
    resp.raise_for_status.assert_called_once()
    assert result.intent == "Control"
    assert result.score == pytest.approx(0.93)
    assert result.first(EntityKind.COMMAND) == "launch"


def test_http_recognizer_propagates_http_errors() -> None:
    session = MagicMock(spec=requests.Session)
    session.post.return_value.raise_for_status.side_effect = requests.HTTPError("503")

    with pytest.raises(requests.HTTPError):
        HttpRecognizer("http://nlu.local", CONFIG, session=session).recognize(_turn("hi"))


def test_policy_decodes_control_commands() -> None:
    policy = InterruptionPolicy(CONFIG)
    launch = RecognizerResult(
        intent=CONFIG.control_intent,
        entities=(
            Entity(EntityKind.COMMAND, CONFIG.launch_command),
            Entity(EntityKind.APP_NAME, "weather"),
        ),
    )

    decision = policy.decode(launch)
    assert decision.command is ControlCommand.LAUNCH
    assert decision.app_name == "weather"

    stop = RecognizerResult(
        intent=CONFIG.control_intent, entities=(Entity(EntityKind.COMMAND, "stop"),)
    )
    assert policy.decode(stop).command is ControlCommand.STOP

    other_intent = RecognizerResult(intent="l_Weather", entities=launch.entities)
    assert policy.decode(other_intent).command is ControlCommand.NONE


def test_stop_request_matches_any_entity_kind() -> None:
    policy = InterruptionPolicy(CONFIG)
    result = RecognizerResult(
        intent=CONFIG.control_intent,
        entities=(Entity(EntityKind.UNRECOGNIZED, "stop", "Misc"),),
    )

    assert policy.is_stop_request(result)
    assert policy.decode(result).command is ControlCommand.NONE
    assert not policy.is_stop_request(RecognizerResult(intent=CONFIG.control_intent))


def test_registry_matches_intent_id_and_name(registry: SkillRegistry) -> None:
    assert registry.is_skill("l_Weather").id == "weather_skill"  # type: ignore[union-attr]
    assert registry.is_skill("calendar_skill").id == "calendar_skill"  # type: ignore[union-attr]
    assert registry.is_skill("  WEATHER ").id == "weather_skill"  # type: ignore[union-attr]
    assert registry.is_skill("None") is None
    assert registry.is_skill(None) is None
    assert registry.list_skills() == ["calendar_skill", "weather_skill"]


def test_load_skill_registry(tmp_path: Path) -> None:
    path = tmp_path / "skills.json"
    path.write_text(
        json.dumps(
            {
                "skills": [
                    {
                        "id": "notes",
                        "intents": ["l_Notes"],
                        "keywords": ["Note"],
                        "prompts": [{"slot": "body", "text": "What should it say?"}],
                    }
                ]
            }
        ),
        encoding="utf-8",
    )

    registry = load_skill_registry(path)

    assert registry is not None
    manifest = registry.get("notes")
    assert manifest is not None
    assert manifest.name == "notes"
    assert manifest.keywords == ("note",)
    assert manifest.prompts[0].slot == "body"


def test_load_skill_registry_missing(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_skill_registry(tmp_path / "absent.json")
    assert load_skill_registry(tmp_path / "absent.json", required=False) is None


def test_load_skill_registry_malformed(tmp_path: Path) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    no_id = tmp_path / "no_id.json"
    no_id.write_text(json.dumps({"skills": [{"name": "x"}]}), encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_skill_registry(bad)
    with pytest.raises(ConfigurationError):
        load_skill_registry(no_id)
