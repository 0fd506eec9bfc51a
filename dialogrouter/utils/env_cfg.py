import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class HostConfig:
    """
    Dataclass for host configuration.
    """

    backend_host: str
    cors_allowed_origins: str


@dataclass(frozen=True)
class RouterConfig:
    """
    Dataclass for routing vocabulary: control intents, command values and entity tags.
    """

    control_intent: str
    smart_intent: str
    none_intent: str
    stop_command: str
    launch_command: str
    app_name_tag: str
    command_tag: str
    token_response_event: str
    capture_skill_analytics: bool


@dataclass(frozen=True)
class MessageConfig:
    """
    Dataclass for the fixed user-visible replies.
    """

    cancel_text: str
    cancel_label: str
    timeout_message: str
    auth_failure_message: str
    none_intent_message: str
    not_available: str


@dataclass(frozen=True)
class StoreConfig:
    """
    Dataclass for persistence configuration.
    """

    db_url: str


@dataclass(frozen=True)
class PathConfig:
    """
    Dataclass for path configuration.
    """

    logs: Path
    skills: Path


def load_host_env() -> HostConfig:
    """
    Loads host configuration from environment variables or defaults.

    Returns:
        HostConfig: Dataclass containing host configuration.
        - backend_host (str): The backend host URL.
        - cors_allowed_origins (str): Comma-separated list of allowed CORS origins.
    """
    return HostConfig(
        backend_host=os.getenv("BACKEND_HOST", "http://localhost:8000"),
        cors_allowed_origins=os.getenv(
            "CORS_ALLOWED_ORIGINS", "http://localhost:3978,http://127.0.0.1:3978"
        ),
    )


def load_router_env() -> RouterConfig:
    """
    Loads the routing vocabulary from environment variables or defaults.

    Returns:
        RouterConfig: Dataclass containing routing configuration.
        - control_intent (str): Intent carrying stop/launch commands.
        - smart_intent (str): Intent that starts the smart-intent dialog.
        - none_intent (str): Intent reported when nothing matched.
        - stop_command (str): Normalized COMMAND value for "stop".
        - launch_command (str): Normalized COMMAND value for "launch".
        - app_name_tag (str): Recognizer tag of APP_NAME entities.
        - command_tag (str): Recognizer tag of COMMAND entities.
        - token_response_event (str): The only named event forwarded into the stack.
        - capture_skill_analytics (bool): Record input/NLU analytics for in-skill turns.
    """
    return RouterConfig(
        control_intent=os.getenv("CONTROL_INTENT", "Control"),
        smart_intent=os.getenv("SMART_INTENT", "SmartIntent"),
        none_intent=os.getenv("NONE_INTENT", "None"),
        stop_command=os.getenv("STOP_COMMAND", "stop"),
        launch_command=os.getenv("LAUNCH_COMMAND", "launch"),
        app_name_tag=os.getenv("APP_NAME_TAG", "AppName"),
        command_tag=os.getenv("COMMAND_TAG", "Command"),
        token_response_event=os.getenv("TOKEN_RESPONSE_EVENT", "tokens/response"),
        capture_skill_analytics=_as_bool(os.getenv("CAPTURE_SKILL_ANALYTICS"), True),
    )


def load_message_env() -> MessageConfig:
    """
    Loads the fixed replies from environment variables or defaults.

    Returns:
        MessageConfig: Dataclass containing message configuration.
    """
    return MessageConfig(
        cancel_text=os.getenv(
            "CANCEL_TEXT",
            "Okay, your request has been cancelled. Let me know if you need anything else.",
        ),
        cancel_label=os.getenv("CANCEL_TEXT_LABEL", "cancelled"),
        timeout_message=os.getenv(
            "TIMEOUT_MESSAGE",
            "Your session timed out due to inactivity. Let me know if you need anything else.",
        ),
        auth_failure_message=os.getenv(
            "AUTH_FAILURE_MESSAGE",
            "There was a problem during authentication. Contact system administrator",
        ),
        none_intent_message=os.getenv(
            "NONE_INTENT_MESSAGE",
            "Sorry, I didn't understand that. Could you rephrase your request?",
        ),
        not_available=os.getenv("NOT_AVAILABLE", "N/A"),
    )


def load_store_env() -> StoreConfig:
    """
    Loads persistence configuration from environment variables or defaults.

    Returns:
        StoreConfig: Dataclass containing persistence configuration.
        - db_url (str): SQLAlchemy database URL.
    """
    return StoreConfig(db_url=os.getenv("DB_URL", "sqlite:///dialogrouter.db"))


def load_path_env() -> PathConfig:
    """
    Loads path configuration from environment variables or defaults.

    Returns:
        PathConfig: Dataclass containing path configuration.
        - logs (Path): Path to the logs file.
        - skills (Path): Path to the skill manifest file.
    """
    project_root: Path = Path(__file__).parents[2].resolve()
    utils_dir: Path = project_root / "dialogrouter" / "utils"

    return PathConfig(
        logs=Path(
            os.getenv("LOG_PATH", project_root / ".logs" / "dialogrouter.log")
        ).expanduser(),
        skills=Path(os.getenv("SKILLS_PATH", utils_dir / "skills.json")).expanduser(),
    )
