"""Error taxonomy shared by repositories, tools and resources.

Every failure surfaced to a client is one of these classes. The tool layer
turns them into ``{"success": False, "error": str(e)}`` results; the
resource layer turns them into ``ResourceError``.
"""


class LibraryError(Exception):
    """Base exception for library operations (also wraps store failures)."""


class NotFoundError(LibraryError):
    """Raised when an entity is not found."""


class CapacityError(LibraryError):
    """Raised when an item has no copy that can be lent."""


class LimitExceededError(CapacityError):
    """Raised when a patron already holds the maximum number of open loans."""


class ConflictError(LibraryError):
    """Raised when the current state forbids the operation."""


class DuplicateError(ConflictError):
    """Raised when attempting to create a duplicate entity."""


class AlreadyReturnedError(NotFoundError, ConflictError):
    """Raised when a loan is closed already.

    Classified both ways: there is no *open* transaction with the given id,
    and the request conflicts with the transaction's state.
    """


class ValidationError(LibraryError):
    """Raised on malformed input (negative amounts, unknown statuses...)."""
