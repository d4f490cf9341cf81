"""Domain errors raised by the service layer.

Each error carries the HTTP status and a sub-code. The envelope handler in
``main.py`` renders them as ``{"status": {"code": status*100+sub_code,
"message": ...}}``.
"""


class ServiceError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str | None = None, sub_code: int = 0):
        self.message = message or self.default_message
        self.sub_code = sub_code
        super().__init__(self.message)

    @property
    def code(self) -> int:
        return self.status_code * 100 + self.sub_code


class BadRequestError(ServiceError):
    status_code = 400
    default_message = "Bad Request"


class LastAdminError(BadRequestError):
    """Raised when an operation would leave a group without an admin."""

    default_message = "Cannot remove the last admin member."


class NoInvitesCreatedError(BadRequestError):
    """Raised after an invite batch that produced zero invitations."""

    default_message = (
        "No invites were created. Possibly because no valid userId-s "
        "(uuidv4s or emails) were provided."
    )

    def __init__(self, message: str | None = None, sub_code: int = 1):
        super().__init__(message, sub_code)


class ForbiddenError(ServiceError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not Found"


class GoneError(ServiceError):
    status_code = 410
    default_message = "Gone"
