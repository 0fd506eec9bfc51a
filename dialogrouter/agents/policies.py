"""Interruption policy: decodes control commands from recognizer output."""

from dataclasses import dataclass
from enum import Enum

from dialogrouter.agents.types import EntityKind, RecognizerResult
from dialogrouter.utils.env_cfg import RouterConfig, load_router_env


class ControlCommand(str, Enum):
    """Control commands the router reacts to mid-conversation."""

    LAUNCH = "launch"
    STOP = "stop"
    NONE = "none"


@dataclass(frozen=True)
class ControlDecision:
    """
    Decoded control request. `app_name` is only meaningful for LAUNCH.
    """

    command: ControlCommand = ControlCommand.NONE
    app_name: str | None = None


class InterruptionPolicy:
    """
    Maps a recognizer result to a control decision.
    """

    def __init__(self, config: RouterConfig | None = None) -> None:
        """
        Initialize the InterruptionPolicy.

        Args:
            config (RouterConfig | None, optional): Routing vocabulary. Defaults to the environment.
        """
        self.config = config or load_router_env()

    def decode(self, result: RecognizerResult) -> ControlDecision:
        """
        Decode the COMMAND and APP_NAME entities of a control-intent result.

        Args:
            result (RecognizerResult): The recognizer output.

        Returns:
            ControlDecision: LAUNCH or STOP when the control intent carries that
            command, NONE otherwise.
        """
        cfg = self.config
        if result.intent != cfg.control_intent or not result.entities:
            return ControlDecision()

        command = result.first(EntityKind.COMMAND)
        if command == cfg.launch_command:
            return ControlDecision(
                ControlCommand.LAUNCH, app_name=result.first(EntityKind.APP_NAME)
            )
        if command == cfg.stop_command:
            return ControlDecision(ControlCommand.STOP)
        return ControlDecision()

    def is_stop_request(self, result: RecognizerResult) -> bool:
        """
        Check for an explicit stop at top level: the control intent with the stop
        value on any entity, whatever its tag.

        Args:
            result (RecognizerResult): The recognizer output.

        Returns:
            bool: True if the user asked to stop.
        """
        return result.intent == self.config.control_intent and result.has_value(
            self.config.stop_command
        )
