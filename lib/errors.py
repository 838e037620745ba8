"""Domain errors for the attribution pipeline and their HTTP status codes"""


class ReferralError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(ReferralError):
    status_code = 401
    default_message = "Unauthorized"


class NotFound(ReferralError):
    status_code = 404
    default_message = "Not found"


class InvalidInput(ReferralError):
    status_code = 400
    default_message = "Invalid input"


class InvalidState(ReferralError):
    status_code = 400
    default_message = "Invalid state"


class CampaignInactive(InvalidState):
    default_message = "Campaign is not active"


class Conflict(ReferralError):
    status_code = 409
    default_message = "Conflict"
