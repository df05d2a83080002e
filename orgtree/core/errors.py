"""Domain errors carrying an HTTP-style status code.

These are business-rule rejections. They propagate to the caller unchanged and
are never retried.
"""


class OrgTreeError(Exception):
    """Base exception for access control and transfer errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrgTreeError):
    """Malformed input (reason too short, missing field)."""

    status_code = 400


class NotFoundError(OrgTreeError):
    """Transfer, organization or user does not exist."""

    status_code = 404


class ForbiddenError(OrgTreeError):
    """Actor is not the party required for this operation."""

    status_code = 403


class ConflictError(OrgTreeError):
    """Wrong transfer status, existing pending transfer, or expired transfer."""

    status_code = 400
