import sys
import uuid

from loguru import logger

from dialogrouter.agents.types import Activity, ActivityType
from dialogrouter.core.runtime import Runtime, build_runtime
from dialogrouter.utils.logging_cfg import setup_logging

_EXIT = {"/exit", "/quit"}
_TIMEOUT = "/timeout"


def _print_replies(activities: list[Activity]) -> None:
    """
    Print user-visible replies. Trace activities are logged instead.

    Args:
        activities (list[Activity]): The activities sent by the bot.
    """
    for activity in activities:
        if activity.type is ActivityType.TRACE:
            logger.debug("trace: {}", activity.text)
            continue
        print(f"bot> {activity.text}")


def _trigger_timeout(rt: Runtime, conversation_id: str) -> None:
    """
    Run the proactive timeout for the REPL conversation, as a watchdog would.

    Args:
        rt (Runtime): The runtime.
        conversation_id (str): The REPL conversation id.
    """
    reference = rt.store.load_reference(conversation_id)
    if reference is None:
        print("(nothing to time out yet)")
        return
    rt.timeouts.on_timeout(
        reference,
        reference.user_id,
        rt.skill_context.get_skill_instance_id(conversation_id),
    )
    _print_replies(rt.adapter.drain(conversation_id))


def chat(rt: Runtime, conversation_id: str, user_id: str = "cli-user") -> None:
    """
    Read lines from stdin and feed them through the dispatcher.

    Args:
        rt (Runtime): The runtime.
        conversation_id (str): The conversation id for this session.
        user_id (str, optional): The channel user id. Defaults to "cli-user".
    """
    print("Type a message. /timeout simulates inactivity, /exit quits.")
    for line in sys.stdin:
        text = line.strip()
        if not text:
            continue
        if text in _EXIT:
            break
        if text == _TIMEOUT:
            _trigger_timeout(rt, conversation_id)
            continue
        turn = rt.dispatcher.handle_turn(
            Activity(
                type=ActivityType.MESSAGE,
                text=text,
                channel_id="cli",
                conversation_id=conversation_id,
                from_id=user_id,
                recipient_id="dialogrouter",
            )
        )
        _print_replies(turn.sent)


def main() -> None:
    setup_logging(level="WARNING")
    rt = build_runtime()
    conversation_id = f"cli-{uuid.uuid4().hex[:8]}"
    logger.info("Starting chat session {}", conversation_id)
    try:
        chat(rt, conversation_id)
    except KeyboardInterrupt:
        print()
    logger.info("Chat session {} ended", conversation_id)


if __name__ == "__main__":
    main()
