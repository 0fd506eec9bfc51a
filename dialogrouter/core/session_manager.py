from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, cast

from loguru import logger
from sqlalchemy.orm import Session

from dialogrouter.agents.types import ConversationReference
from dialogrouter.core.dialog_stack import DialogStack
from dialogrouter.core.skill_context import SkillSessionContext
from dialogrouter.core.state.analytics import AnalyticsRecord  # noqa: F401  registers the table
from dialogrouter.core.state.base import _make_session_maker
from dialogrouter.core.state.conversation import ConversationRecord
from dialogrouter.utils.env_cfg import load_store_env


class ConversationLocks:
    """
    One lock per conversation id.

    A live turn and a proactive timeout for the same conversation must not
    interleave their state transitions; different conversations never contend.
    Locks nobody is holding or waiting on can be discarded.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    def get(self, conversation_id: str) -> threading.Lock:
        with self._guard:
            return self._get(conversation_id)

    def _get(self, conversation_id: str) -> threading.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = threading.Lock()
            self._locks[conversation_id] = lock
        return lock

    def discard(self, conversation_id: str) -> bool:
        """
        Drop the lock of a conversation unless someone holds or waits on it.

        Args:
            conversation_id (str): The conversation id.

        Returns:
            bool: True if the lock was dropped.
        """
        with self._guard:
            if conversation_id not in self._locks or self._users.get(conversation_id):
                return False
            del self._locks[conversation_id]
            return True

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, conversation_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._get(conversation_id)
            self._users[conversation_id] = self._users.get(conversation_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                remaining = self._users[conversation_id] - 1
                if remaining:
                    self._users[conversation_id] = remaining
                else:
                    del self._users[conversation_id]


@dataclass(slots=True)
class ConversationStore:
    """
    Owns persisted routing state: dialog stacks, skill session contexts and
    conversation references, all keyed by conversation id.
    """

    db_url: str = ""
    locks: ConversationLocks = field(default_factory=ConversationLocks)
    _SessionMaker: Any | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        """
        Post-initialization to resolve the database URL.
        """
        if not self.db_url:
            self.db_url = load_store_env().db_url

    def init_store(self, db_url: str | None = None) -> None:
        """
        Initialize the store.

        Args:
           db_url (str | None): Optional database URL to override default.
        """
        if db_url:
            self.db_url = db_url
        self._SessionMaker = _make_session_maker(self.db_url)
        logger.info("Conversation store ready at {}", self.db_url)

    def init_store_if_needed(self) -> None:
        """
        Initialize the store if it has not been initialized yet.
        """
        if self._SessionMaker is None:
            self.init_store()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional scope around a series of operations.

        Yields:
            Iterator[Session]: A new database session.

        Raises:
            RuntimeError: If the SessionMaker is not initialized.
        """
        self.init_store_if_needed()
        if self._SessionMaker is None:
            raise RuntimeError("SessionMaker is not initialized.")
        session = self._SessionMaker()
        try:
            yield session
        finally:
            session.close()

    @contextmanager
    def lock(self, conversation_id: str) -> Iterator[None]:
        """
        Hold the per-conversation lock for the duration of the block.

        Args:
            conversation_id (str): The conversation id.
        """
        with self.locks.hold(conversation_id):
            yield

    def _load_or_create(
        self, session: Session, conversation_id: str, channel_id: str | None = None
    ) -> ConversationRecord:
        """
        Load an existing conversation record or create a new one.

        Args:
            session (Session): The database session.
            conversation_id (str): The conversation id.
            channel_id (str | None, optional): Channel id stored on creation. Defaults to None.

        Returns:
            ConversationRecord: The loaded or created record.
        """
        if not conversation_id:
            logger.error("ValueError: Conversation ID cannot be empty.")
            raise ValueError("Conversation ID cannot be empty.")
        record = session.get(ConversationRecord, conversation_id)
        if record is None:
            record = ConversationRecord(
                id=conversation_id,
                channel_id=channel_id,
                dialog_stack=[],
                skill_context={},
            )
            session.add(record)
            session.flush()
        return record

    def load_stack(self, conversation_id: str) -> DialogStack:
        """
        Load the persisted dialog stack of a conversation.

        Args:
            conversation_id (str): The conversation id.

        Returns:
            DialogStack: The stack; empty when the conversation is unknown.
        """
        with self.session_scope() as s:
            record = s.get(ConversationRecord, conversation_id)
            if record is None:
                return DialogStack()
            return DialogStack.from_list(cast(list, record.dialog_stack))

    def save_stack(
        self,
        conversation_id: str,
        stack: DialogStack,
        skill_context: SkillSessionContext | None = None,
    ) -> None:
        """
        Persist the dialog stack of a conversation.

        Args:
            conversation_id (str): The conversation id.
            stack (DialogStack): The stack.
            skill_context (SkillSessionContext | None, optional): Written in the
                same transaction when given. Defaults to None.
        """
        with self.session_scope() as s:
            record = self._load_or_create(s, conversation_id)
            record.dialog_stack = cast(Any, stack.to_list())
            if skill_context is not None:
                record.skill_context = cast(Any, skill_context.to_dict())
            s.commit()
        logger.debug(
            "Saved dialog stack {} for conversation {}", stack.ids(), conversation_id
        )

    def load_skill_context(self, conversation_id: str) -> SkillSessionContext:
        with self.session_scope() as s:
            record = s.get(ConversationRecord, conversation_id)
            if record is None:
                return SkillSessionContext()
            return SkillSessionContext.from_dict(cast(dict, record.skill_context))

    def save_skill_context(
        self, conversation_id: str, context: SkillSessionContext
    ) -> None:
        with self.session_scope() as s:
            record = self._load_or_create(s, conversation_id)
            record.skill_context = cast(Any, context.to_dict())
            s.commit()

    def update_skill_context(
        self,
        conversation_id: str,
        fn: Callable[[SkillSessionContext], SkillSessionContext],
    ) -> SkillSessionContext:
        """
        Read-modify-write the skill session context inside one transaction.

        Args:
            conversation_id (str): The conversation id.
            fn (Callable[[SkillSessionContext], SkillSessionContext]): The modification.

        Returns:
            SkillSessionContext: The persisted context.
        """
        with self.session_scope() as s:
            record = self._load_or_create(s, conversation_id)
            current = SkillSessionContext.from_dict(cast(dict, record.skill_context))
            updated = fn(current)
            record.skill_context = cast(Any, updated.to_dict())
            s.commit()
            return updated

    def save_reference(self, reference: ConversationReference) -> None:
        """
        Persist the conversation reference used by the proactive timeout path.

        Args:
            reference (ConversationReference): The reference to store.
        """
        with self.session_scope() as s:
            record = self._load_or_create(
                s, reference.conversation_id, reference.channel_id
            )
            record.reference = cast(Any, reference.to_dict())
            if not record.channel_id:
                record.channel_id = cast(Any, reference.channel_id)
            s.commit()

    def load_reference(self, conversation_id: str) -> ConversationReference | None:
        with self.session_scope() as s:
            record = s.get(ConversationRecord, conversation_id)
            if record is None or not record.reference:
                return None
            return ConversationReference.from_dict(cast(dict, record.reference))

    def get_state(self, conversation_id: str) -> dict[str, Any] | None:
        """
        Return the raw persisted state of a conversation.

        Args:
            conversation_id (str): The conversation id.

        Returns:
            dict[str, Any] | None: The state, or None if unknown.
        """
        with self.session_scope() as s:
            record = s.get(ConversationRecord, conversation_id)
            if record is None:
                return None
            return {
                "id": record.id,
                "channel_id": record.channel_id,
                "dialog_stack": record.dialog_stack or [],
                "skill_context": record.skill_context or {},
                "reference": record.reference,
            }

    def list_conversations(self) -> list[dict[str, Any]]:
        """
        List all conversations ordered by last update (descending).

        Returns:
            list[dict[str, Any]]: A list of conversation summaries.
        """
        with self.session_scope() as s:
            records = (
                s.query(ConversationRecord)
                .order_by(ConversationRecord.updated_at.desc())
                .all()
            )
            return [
                {
                    "id": r.id,
                    "channel_id": r.channel_id,
                    "depth": len(r.dialog_stack or []),
                    "updated_at": r.updated_at.isoformat() if r.updated_at else None,
                }
                for r in records
            ]

    def delete_conversation(self, conversation_id: str) -> bool:
        """
        Delete a conversation's persisted state.

        Args:
            conversation_id (str): The conversation id.

        Returns:
            bool: True if deleted, False otherwise.
        """
        with self.lock(conversation_id):
            with self.session_scope() as s:
                record = s.get(ConversationRecord, conversation_id)
                if record is None:
                    return False
                s.delete(record)
                s.commit()
        self.locks.discard(conversation_id)
        return True
