"""Authentication collaborator."""

from __future__ import annotations

import threading
from typing import Callable

from loguru import logger

from dialogrouter.agents.context import TurnContext
from dialogrouter.agents.types import UserIdentity
from dialogrouter.core.errors import AuthenticationError


def channel_identity(user_id: str) -> UserIdentity:
    """
    Trust the id the channel put on the activity.

    Args:
        user_id (str): The channel user id.

    Returns:
        UserIdentity: The identity.
    """
    return UserIdentity(user_id=user_id)


class DirectoryAuthenticator:
    """
    Resolves the caller through a directory lookup and caches the result per user id.
    """

    def __init__(
        self,
        load_user: Callable[[str], UserIdentity | None] = channel_identity,
        max_cached: int = 1024,
    ) -> None:
        """
        Initialize the DirectoryAuthenticator.

        Args:
            load_user (Callable[[str], UserIdentity | None], optional): Directory
                lookup by channel user id. Defaults to trusting the channel.
            max_cached (int, optional): Identities kept before the oldest is evicted.
                Defaults to 1024.
        """
        self.load_user = load_user
        self.max_cached = max_cached
        self._lock = threading.Lock()
        self._cache: dict[str, UserIdentity] = {}

    def authenticate(self, turn: TurnContext) -> UserIdentity:
        """
        Fetch the caller's identity.

        Args:
            turn (TurnContext): The current turn.

        Returns:
            UserIdentity: The caller.

        Raises:
            AuthenticationError: If the activity has no sender or the lookup fails.
        """
        user_id = turn.activity.from_id
        if not user_id:
            raise AuthenticationError("Activity has no sender id.")

        with self._lock:
            cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        try:
            identity = self.load_user(user_id)
        except AuthenticationError:
            raise
        except Exception as e:
            logger.error("AuthenticationError: Directory lookup failed for {}: {}", user_id, e)
            raise AuthenticationError(f"Directory lookup failed for {user_id}") from e

        if identity is None:
            raise AuthenticationError(f"Unknown user {user_id}")

        with self._lock:
            self._cache[user_id] = identity
            while len(self._cache) > self.max_cached:
                # Insertion order, so the oldest lookup goes first.
                del self._cache[next(iter(self._cache))]
        return identity
