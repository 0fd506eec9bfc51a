"""Error taxonomy for the routing core."""


class DialogRouterError(Exception):
    """
    Base class for all routing core errors.
    """


class ConfigurationError(DialogRouterError):
    """
    Raised when required configuration (e.g. the skill registry) is missing.
    Fatal: aborts the turn by propagation.
    """


class AuthenticationError(DialogRouterError):
    """
    Raised by the auth collaborator when the caller cannot be identified.
    The dispatcher treats it as non-fatal.
    """


class RoutingError(DialogRouterError):
    """
    Raised on structural failures during a live turn (empty or unknown dialog id).
    """


class TimeoutPathError(DialogRouterError):
    """
    Wraps failures on the proactive timeout path. Logged, never propagated.
    """
