"""Dialog stack, dialog base class and the per-turn dialog context."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterator

from loguru import logger

from dialogrouter.agents.context import TurnContext
from dialogrouter.agents.types import DialogTurnResult, DialogTurnStatus
from dialogrouter.core.errors import RoutingError


@dataclass
class DialogFrame:
    """
    One entry of the dialog stack.

    `state` is owned by the frame's dialog and must stay JSON serializable.
    """

    id: str
    state: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "state": self.state}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DialogFrame":
        return cls(id=str(data["id"]), state=dict(data.get("state") or {}))


class DialogStack:
    """
    Ordered LIFO of dialog frames. The last element is the active frame.
    """

    def __init__(self, frames: list[DialogFrame] | None = None) -> None:
        self._frames: list[DialogFrame] = list(frames or [])

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[DialogFrame]:
        return iter(self._frames)

    def __bool__(self) -> bool:
        return bool(self._frames)

    @property
    def top(self) -> DialogFrame | None:
        return self._frames[-1] if self._frames else None

    def push(self, frame: DialogFrame) -> None:
        self._frames.append(frame)

    def pop(self) -> DialogFrame | None:
        return self._frames.pop() if self._frames else None

    def find(self, dialog_id: str) -> DialogFrame | None:
        """
        Scan the whole stack, not only the top, for a frame with the given id.

        Args:
            dialog_id (str): The dialog id to look for.

        Returns:
            DialogFrame | None: The topmost matching frame, or None.
        """
        for frame in reversed(self._frames):
            if frame.id == dialog_id:
                return frame
        return None

    def ids(self) -> list[str]:
        return [frame.id for frame in self._frames]

    def to_list(self) -> list[dict[str, Any]]:
        return [frame.to_dict() for frame in self._frames]

    @classmethod
    def from_list(cls, data: list[dict[str, Any]] | None) -> "DialogStack":
        return cls([DialogFrame.from_dict(item) for item in data or []])


class Dialog(ABC):
    """
    Base class for anything that can sit on the dialog stack.
    """

    def __init__(self, dialog_id: str) -> None:
        if not dialog_id:
            raise ValueError("Dialog id cannot be empty.")
        self.id = dialog_id

    def on_begin(
        self, dc: "DialogContext", options: dict[str, Any] | None = None
    ) -> DialogTurnResult:
        """
        Called when the dialog is pushed. Defaults to running the first continue step.

        Args:
            dc (DialogContext): The dialog context; the new frame is already active.
            options (dict[str, Any] | None, optional): Arguments passed to begin. Defaults to None.

        Returns:
            DialogTurnResult: The turn result.
        """
        _ = options
        return self.on_continue(dc)

    @abstractmethod
    def on_continue(self, dc: "DialogContext") -> DialogTurnResult:
        """Handle a turn while this dialog is active."""
        ...

    def on_resume(self, dc: "DialogContext", result: Any = None) -> DialogTurnResult:
        """
        Called when a child dialog ended and this dialog is active again.
        Ends this dialog with the child's result by default.
        """
        return dc.end(result)

    def on_cancel(self, dc: "DialogContext", frame: DialogFrame) -> None:
        """Teardown hook run while the stack is being cancelled."""
        _ = dc, frame


class DialogSet:
    """
    Registry of dialogs addressable by id.
    """

    def __init__(self, dialogs: list[Dialog] | None = None) -> None:
        self._dialogs: dict[str, Dialog] = {}
        for dialog in dialogs or []:
            self.add(dialog)

    def add(self, dialog: Dialog) -> None:
        self._dialogs[dialog.id] = dialog

    def find(self, dialog_id: str) -> Dialog | None:
        return self._dialogs.get(dialog_id)

    def ids(self) -> list[str]:
        return sorted(self._dialogs.keys())


class DialogContext:
    """
    Binds a conversation's dialog stack to one turn.
    Only this class mutates the stack; everything else reads `active_frame`.
    """

    def __init__(self, dialogs: DialogSet, stack: DialogStack, turn: TurnContext) -> None:
        self.dialogs = dialogs
        self.stack = stack
        self.turn = turn

    @property
    def active_frame(self) -> DialogFrame | None:
        return self.stack.top

    @property
    def active_dialog_id(self) -> str | None:
        frame = self.stack.top
        return frame.id if frame is not None else None

    def find(self, dialog_id: str) -> DialogFrame | None:
        return self.stack.find(dialog_id)

    def begin(
        self, dialog_id: str, options: dict[str, Any] | None = None
    ) -> DialogTurnResult:
        """
        Push a new active frame and run the dialog's begin step.

        Args:
            dialog_id (str): Id of a registered dialog.
            options (dict[str, Any] | None, optional): Arguments for the dialog. Defaults to None.

        Returns:
            DialogTurnResult: The turn result.

        Raises:
            RoutingError: If the id is empty or not registered.
        """
        if not dialog_id:
            logger.error("RoutingError: Cannot begin a dialog with an empty id.")
            raise RoutingError("Cannot begin a dialog with an empty id.")
        dialog = self._require(dialog_id)
        self.stack.push(DialogFrame(id=dialog_id))
        logger.debug(
            "Began dialog {} (depth={}) in conversation {}",
            dialog_id,
            len(self.stack),
            self.turn.conversation_id,
        )
        return dialog.on_begin(self, options)

    def continue_top(self) -> DialogTurnResult:
        """
        Resume the active frame.

        Returns:
            DialogTurnResult: EMPTY when nothing is on the stack, otherwise the dialog's result.
        """
        frame = self.stack.top
        if frame is None:
            return DialogTurnResult(DialogTurnStatus.EMPTY)
        return self._require(frame.id).on_continue(self)

    def end(self, result: Any = None) -> DialogTurnResult:
        """
        Pop the active frame and hand control back to its parent, if any.

        Args:
            result (Any, optional): Value returned to the parent. Defaults to None.

        Returns:
            DialogTurnResult: COMPLETE when the stack emptied, otherwise the parent's result.
        """
        ended = self.stack.pop()
        if ended is not None:
            logger.debug("Ended dialog {}", ended.id)
        parent = self.stack.top
        if parent is None:
            return DialogTurnResult(DialogTurnStatus.COMPLETE, result)
        return self._require(parent.id).on_resume(self, result)

    def cancel_all(self) -> DialogTurnResult:
        """
        Pop every frame, top first, running each dialog's teardown.
        Always succeeds; a no-op on an empty stack.

        Returns:
            DialogTurnResult: CANCELLED if anything was popped, EMPTY otherwise.
        """
        if not self.stack:
            return DialogTurnResult(DialogTurnStatus.EMPTY)
        while self.stack:
            frame = self.stack.pop()
            if frame is None:
                break
            dialog = self.dialogs.find(frame.id)
            if dialog is not None:
                dialog.on_cancel(self, frame)
        logger.info("Cancelled dialog stack in conversation {}", self.turn.conversation_id)
        return DialogTurnResult(DialogTurnStatus.CANCELLED)

    def _require(self, dialog_id: str) -> Dialog:
        dialog = self.dialogs.find(dialog_id)
        if dialog is None:
            logger.error("RoutingError: Dialog {} is not registered.", dialog_id)
            raise RoutingError(f"Dialog {dialog_id} is not registered.")
        return dialog
