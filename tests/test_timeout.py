from typing import Callable
from unittest.mock import MagicMock

from dialogrouter.agents.context import TurnContext
from dialogrouter.agents.types import Activity, ActivityType, ConversationReference
from dialogrouter.core.analytics import AnalyticsEvent
from dialogrouter.core.runtime import Runtime
from dialogrouter.core.timeout import ProactiveTimeoutHandler
from dialogrouter.utils.env_cfg import load_message_env

Say = Callable[..., TurnContext]

MESSAGES = load_message_env()


def _reference(runtime: Runtime, cid: str = "conv-1") -> ConversationReference:
    ref = runtime.store.load_reference(cid)
    assert ref is not None
    return ref


def test_timeout_on_idle_conversation_is_noop(runtime: Runtime, say: Say) -> None:
    say("hello")

    runtime.timeouts.on_timeout(_reference(runtime), "user-1", None)

    assert runtime.adapter.drain("conv-1") == []
    assert runtime.analytics.list_events("conv-1", AnalyticsEvent.TIMEOUT) == []


def test_timeout_cancels_running_skill(runtime: Runtime, say: Say) -> None:
    """
    Test that a timeout mid-skill logs once, empties the stack and notifies the user once.

    Args:
        runtime (Runtime): The runtime fixture.
        say (Say): Dispatch helper.
    """
    say("schedule a meeting")
    sid = runtime.skill_context.get_skill_instance_id("conv-1")

    runtime.timeouts.on_timeout(_reference(runtime), "user-1", sid)

    assert runtime.store.load_stack("conv-1").ids() == []
    assert runtime.skill_context.get("conv-1").is_empty

    outbox = runtime.adapter.drain("conv-1")
    assert [(a.type, a.text) for a in outbox] == [
        (ActivityType.MESSAGE, MESSAGES.timeout_message)
    ]
    assert outbox[0].recipient_id == "user-1"

    events = runtime.analytics.list_events("conv-1", AnalyticsEvent.TIMEOUT)
    assert len(events) == 1
    assert events[0]["channel_id"] == "test"
    assert events[0]["user_id"] == "user-1"
    assert events[0]["skill_instance_id"] == sid
    assert events[0]["payload"] == {"message": MESSAGES.timeout_message}


def test_second_timeout_is_noop(runtime: Runtime, say: Say) -> None:
    say("schedule a meeting")
    ref = _reference(runtime)

    runtime.timeouts.on_timeout(ref, "user-1", None)
    runtime.timeouts.on_timeout(ref, "user-1", None)

    assert len(runtime.adapter.drain("conv-1")) == 1
    assert len(runtime.analytics.list_events("conv-1", AnalyticsEvent.TIMEOUT)) == 1


def test_conversation_restarts_after_timeout(runtime: Runtime, say: Say) -> None:
    say("schedule a meeting")
    runtime.timeouts.on_timeout(_reference(runtime), "user-1", None)

    turn = say("Standup")

    assert [a.text for a in turn.sent] == [MESSAGES.none_intent_message]


def test_missing_channel_is_reported_as_not_available(runtime: Runtime, say: Say) -> None:
    say("schedule a meeting")
    ref = ConversationReference(conversation_id="conv-1", channel_id="", user_id="user-1")

    runtime.timeouts.on_timeout(ref, None, None)

    events = runtime.analytics.list_events("conv-1", AnalyticsEvent.TIMEOUT)
    assert events[0]["channel_id"] == MESSAGES.not_available


def test_timeout_failures_are_absorbed(runtime: Runtime, say: Say) -> None:
    say("schedule a meeting")
    adapter = MagicMock()
    adapter.reconnect.side_effect = ConnectionError("channel unreachable")
    handler = ProactiveTimeoutHandler(
        store=runtime.store,
        dialogs=runtime.dialogs,
        adapter=adapter,
        skill_context=runtime.skill_context,
        analytics=runtime.analytics,
    )

    handler.on_timeout(_reference(runtime), "user-1", None)

    assert runtime.store.load_stack("conv-1").ids() == ["calendar_skill"]


def test_send_failure_leaves_state_consistent(runtime: Runtime, say: Say) -> None:
    say("schedule a meeting")
    adapter = MagicMock()
    adapter.reconnect.return_value = TurnContext(
        activity=Activity(conversation_id="conv-1", channel_id="test"), adapter=adapter
    )
    adapter.send.side_effect = ConnectionError("channel unreachable")
    handler = ProactiveTimeoutHandler(
        store=runtime.store,
        dialogs=runtime.dialogs,
        adapter=adapter,
        skill_context=runtime.skill_context,
        analytics=runtime.analytics,
    )

    handler.on_timeout(_reference(runtime), "user-1", None)

    adapter.send.assert_called_once()
    assert runtime.store.load_stack("conv-1").ids() == []
    assert runtime.skill_context.get("conv-1").is_empty
