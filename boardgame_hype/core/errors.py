# ===== TYPES & INTERFACES =====

class CatalogError(Exception):
    """Base class for every failure talking to, or reading data from, the Catalog."""

    status = 502

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        if status is not None:
            self.status = status

    def is_retryable(self) -> bool:
        return False


class ClientInputError(CatalogError):
    """A required parameter is missing or invalid. Never retried."""
    status = 400


class UpstreamNotReady(CatalogError):
    """The Catalog is still preparing an export and asked us to come back later."""
    status = 202

    def is_retryable(self) -> bool:
        return True


class UpstreamError(CatalogError):
    """The Catalog answered with a non-success status; the status is forwarded."""


class ParseError(CatalogError):
    """Expected structure missing from an HTML/XML/JSON payload (layout change or blocked request)."""
    status = 502


class NotFound(CatalogError):
    """The response was well-formed but carried no item."""
    status = 404


def user_message(error: Exception) -> str:
    """Maps a failure to the text shown to the user: 'try again shortly' vs. 'failed'."""
    if isinstance(error, CatalogError) and error.is_retryable():
        return "BGG is still preparing the collection. Please try again in a moment."
    if isinstance(error, CatalogError):
        return f"Failed: {error}"
    return f"Failed: {type(error).__name__}: {error}"
