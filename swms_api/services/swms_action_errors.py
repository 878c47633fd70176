"""Error taxonomy for SWMS campaign actions.

Each error carries the HTTP status the dispatcher answers with. Anything
that is not a SwmsActionError is reported as an unexpected failure (500).
"""


class SwmsActionError(Exception):
    """Base class for errors the dispatcher turns into an envelope."""

    status_code = 500
    # Whether the store may have been touched (a failure audit is recorded)
    records_failure = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnauthorizedError(SwmsActionError):
    """No authenticated user."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ForbiddenError(SwmsActionError):
    """Authenticated but the request failed a CSRF or permission check."""

    status_code = 403


class ActionValidationError(SwmsActionError):
    """Missing or malformed action parameter."""

    status_code = 400


class UnknownActionError(SwmsActionError):
    """The action tag is missing or does not name a known action."""

    status_code = 400


class DependencyFailure(SwmsActionError):
    """A store read/write or a collaborator call failed."""

    status_code = 500
    records_failure = True


class ActionTimeout(SwmsActionError):
    """The action ran past its deadline."""

    status_code = 504
    records_failure = True
