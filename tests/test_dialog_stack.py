from typing import Any
from unittest.mock import MagicMock

import pytest

from dialogrouter.agents.context import TurnContext
from dialogrouter.agents.types import Activity, DialogTurnResult, DialogTurnStatus
from dialogrouter.core.dialog_stack import (
    Dialog,
    DialogContext,
    DialogFrame,
    DialogSet,
    DialogStack,
)
from dialogrouter.core.errors import RoutingError


class _Waiting(Dialog):
    def __init__(self, dialog_id: str) -> None:
        super().__init__(dialog_id)
        self.cancelled: list[str] = []
        self.resumed_with: list[Any] = []

    def on_continue(self, dc: DialogContext) -> DialogTurnResult:
        return DialogTurnResult(DialogTurnStatus.WAITING)

    def on_resume(self, dc: DialogContext, result: Any = None) -> DialogTurnResult:
        self.resumed_with.append(result)
        return DialogTurnResult(DialogTurnStatus.WAITING)

    def on_cancel(self, dc: DialogContext, frame: DialogFrame) -> None:
        self.cancelled.append(frame.id)


class _EndsImmediately(Dialog):
    def on_continue(self, dc: DialogContext) -> DialogTurnResult:
        return dc.end("done")


@pytest.fixture
def turn() -> TurnContext:
    return TurnContext(activity=Activity(conversation_id="c1"), adapter=MagicMock())


def _context(turn: TurnContext, *dialogs: Dialog, stack: DialogStack | None = None) -> DialogContext:
    return DialogContext(DialogSet(list(dialogs)), stack or DialogStack(), turn)


def test_stack_find_scans_below_top() -> None:
    stack = DialogStack([DialogFrame("a"), DialogFrame("b"), DialogFrame("c")])

    assert stack.top is not None and stack.top.id == "c"
    assert stack.find("a") is not None
    assert stack.find("zzz") is None
    assert stack.ids() == ["a", "b", "c"]


def test_stack_serialization_keeps_frame_state() -> None:
    stack = DialogStack([DialogFrame("skill", {"step": 1, "answers": {"title": "x"}})])

    restored = DialogStack.from_list(stack.to_list())

    assert restored.ids() == ["skill"]
    assert restored.top is not None
    assert restored.top.state == {"step": 1, "answers": {"title": "x"}}


def test_dialog_requires_id() -> None:
    with pytest.raises(ValueError):
        _Waiting("")


def test_begin_pushes_active_frame(turn: TurnContext) -> None:
    dc = _context(turn, _Waiting("w"))

    result = dc.begin("w")

    assert result.status is DialogTurnStatus.WAITING
    assert dc.active_dialog_id == "w"
    assert len(dc.stack) == 1


def test_begin_with_empty_id_raises(turn: TurnContext) -> None:
    dc = _context(turn, _Waiting("w"))

    with pytest.raises(RoutingError):
        dc.begin("")
    assert not dc.stack


def test_begin_unknown_dialog_raises(turn: TurnContext) -> None:
    dc = _context(turn, _Waiting("w"))

    with pytest.raises(RoutingError):
        dc.begin("missing")
    assert not dc.stack


def test_continue_top_on_empty_stack_is_empty(turn: TurnContext) -> None:
    dc = _context(turn, _Waiting("w"))

    assert dc.continue_top().status is DialogTurnStatus.EMPTY


def test_end_of_last_frame_completes(turn: TurnContext) -> None:
    dc = _context(turn, _EndsImmediately("e"))

    result = dc.begin("e")

    assert result.status is DialogTurnStatus.COMPLETE
    assert result.result == "done"
    assert not dc.stack


def test_end_resumes_parent(turn: TurnContext) -> None:
    parent = _Waiting("parent")
    dc = _context(turn, parent, _EndsImmediately("child"))
    dc.begin("parent")

    result = dc.begin("child")

    assert result.status is DialogTurnStatus.WAITING
    assert dc.stack.ids() == ["parent"]
    assert parent.resumed_with == ["done"]


def test_cancel_all_pops_every_frame_top_first(turn: TurnContext) -> None:
    a, b = _Waiting("a"), _Waiting("b")
    dc = _context(turn, a, b)
    dc.begin("a")
    dc.begin("b")
    dc.begin("a")

    result = dc.cancel_all()

    assert result.status is DialogTurnStatus.CANCELLED
    assert not dc.stack
    assert a.cancelled == ["a", "a"]
    assert b.cancelled == ["b"]


def test_cancel_all_on_empty_stack_is_noop(turn: TurnContext) -> None:
    dc = _context(turn, _Waiting("w"))

    assert dc.cancel_all().status is DialogTurnStatus.EMPTY
    assert not dc.stack


def test_cancel_all_skips_unregistered_frames(turn: TurnContext) -> None:
    dc = _context(turn, stack=DialogStack([DialogFrame("gone")]))

    assert dc.cancel_all().status is DialogTurnStatus.CANCELLED
    assert not dc.stack
