"""
Error taxonomy for the Donation Hub.

Services raise these; the HTTP layer renders every one of them as
``{"success": false, "error": <code>, "detail": <message>}`` with the
class's status code.
"""


class DonationHubError(Exception):
    """Base class for every failure scoped to a single request."""

    status_code = 500
    code = "error"
    default_message = "Unexpected error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "detail": self.message}


class ValidationFailure(DonationHubError):
    status_code = 400
    code = "validation_failure"
    default_message = "Invalid or missing fields"


class InvalidCredentials(DonationHubError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Incorrect password"


class NotFound(DonationHubError):
    status_code = 404
    code = "not_found"
    default_message = "Record not found"


class AlreadyExists(DonationHubError):
    status_code = 409
    code = "already_exists"
    default_message = "Record already exists"


class StoreFailure(DonationHubError):
    status_code = 500
    code = "store_failure"
    default_message = "Database error occurred"


class StoreTimeout(StoreFailure):
    status_code = 503
    code = "store_timeout"
    default_message = "Database did not respond in time"
