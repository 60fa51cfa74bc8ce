"""
Error taxonomy for the knowledge base CMS.

Every error carries a user-facing ``message``. Storage errors additionally
carry the internal ``detail``, which is only shown when debug mode is on.
"""

from typing import Optional


class KnowledgeBaseError(Exception):
    """Base class for all business and storage errors."""

    default_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(KnowledgeBaseError):
    default_message = "Invalid input."


class DuplicateName(KnowledgeBaseError):
    default_message = "An item with this name already exists."


class DuplicateIdentity(KnowledgeBaseError):
    default_message = "Username or email already exists."


class NotFound(KnowledgeBaseError):
    default_message = "Not found."


class NotEmpty(KnowledgeBaseError):
    """Delete refused because other rows still reference the target."""

    default_message = "Item is still in use."

    def __init__(self, message: Optional[str] = None, count: int = 0):
        super().__init__(message)
        self.count = count


class InvalidToken(KnowledgeBaseError):
    default_message = "Invalid security token. Please try again."


class InvalidCredentials(KnowledgeBaseError):
    default_message = "Invalid credentials"


class NoSelection(KnowledgeBaseError):
    default_message = "No items selected."


class PersistenceError(KnowledgeBaseError):
    default_message = "A database error occurred."


class SaveError(PersistenceError):
    default_message = "Error saving changes."


def public_message(exc: KnowledgeBaseError, debug: bool = False) -> str:
    """Message safe to show to the user; internal detail only in debug mode."""
    if debug and exc.detail:
        return f"{exc.message}: {exc.detail}"
    return exc.message
