from pathlib import Path
from typing import Any, Callable, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dialogrouter.agents.context import TurnContext
from dialogrouter.agents.types import Activity, ActivityType
from dialogrouter.core.runtime import Runtime, build_runtime
from dialogrouter.core.session_manager import ConversationStore
from dialogrouter.core.state.base import Base

SKILLS_PATH = Path(__file__).resolve().parents[1] / "dialogrouter" / "utils" / "skills.json"


@pytest.fixture
def store() -> Generator[ConversationStore, None, None]:
    """
    Fixture to create a ConversationStore with an in-memory SQLite database.

    Returns:
        Generator[ConversationStore, None, None]: The ConversationStore instance.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionMaker = sessionmaker(bind=engine, expire_on_commit=False)

    cs = ConversationStore(db_url="sqlite://")
    cs._SessionMaker = SessionMaker
    yield cs
    engine.dispose()


@pytest.fixture
def runtime(tmp_path: Path) -> Runtime:
    """
    Fixture to build a full runtime on a temporary SQLite file with the bundled skills.

    Args:
        tmp_path (Path): The pytest temporary directory.

    Returns:
        Runtime: The wired runtime.
    """
    return build_runtime(
        db_url=f"sqlite:///{tmp_path / 'router.db'}", skills_path=SKILLS_PATH
    )


@pytest.fixture
def say(runtime: Runtime) -> Callable[..., TurnContext]:
    """
    Fixture returning a helper that dispatches one activity from "user-1".

    Args:
        runtime (Runtime): The runtime fixture.

    Returns:
        Callable[..., TurnContext]: The helper.
    """

    def _say(
        text: str | None = None,
        conversation_id: str = "conv-1",
        type: ActivityType = ActivityType.MESSAGE,
        **kwargs: Any,
    ) -> TurnContext:
        return runtime.dispatcher.handle_turn(
            Activity(
                type=type,
                text=text,
                conversation_id=conversation_id,
                channel_id="test",
                from_id="user-1",
                recipient_id="bot",
                **kwargs,
            )
        )

    return _say


@pytest.fixture
def replies() -> Callable[[TurnContext], list[str | None]]:
    """
    Fixture returning a helper that lists the user-visible texts sent during a turn.

    Returns:
        Callable[[TurnContext], list[str | None]]: The helper.
    """

    def _replies(turn: TurnContext) -> list[str | None]:
        return [a.text for a in turn.sent if a.type is ActivityType.MESSAGE]

    return _replies
