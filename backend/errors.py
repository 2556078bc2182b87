"""Error hierarchy for the site manager.

Stores and services raise these; the API layer maps them to HTTP responses.
"""


class SiteBuilderError(Exception):
    """Base error for all site manager operations."""

    status_code = 500


class NotFoundError(SiteBuilderError):
    """Record missing, or hidden from the requesting user."""

    status_code = 404


class UnauthorizedError(SiteBuilderError):
    """No known user attached to the request."""

    status_code = 401


class InvalidRequestError(SiteBuilderError):
    """Input rejected by a store or service."""

    status_code = 400


class ConflictError(InvalidRequestError):
    """Unique field (slug, email) already taken."""


class ExportError(SiteBuilderError):
    """Error while assembling a static bundle."""


class PublishError(SiteBuilderError):
    """Error while publishing a bundle to its hosting target."""
