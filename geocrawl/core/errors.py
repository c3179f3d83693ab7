"""Exception hierarchy for geocrawl.

Unit-level failures (page fetches, engine calls) are never raised; they are
recorded as outcomes. Only the exceptions below cross a batch boundary.
"""


class ValidationError(ValueError):
    """Raised when request input has the wrong shape or range.

    Always raised before any network activity.
    """

    pass


class PolicyCheckError(Exception):
    """Raised when a robots.txt document cannot be retrieved.

    The policy checker converts this into a fail-open decision; it never
    reaches callers.
    """

    pass


class InternalError(RuntimeError):
    """Raised when batch orchestration fails unexpectedly."""

    pass


class ProgressOrderError(InternalError):
    """Raised when a progress update would move backwards."""

    pass


class GenerationError(Exception):
    """Raised when the query variation generator fails."""

    pass
