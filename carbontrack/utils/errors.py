# carbontrack/utils/errors.py


class CarbonTrackError(Exception):
    """Base class for errors returned to API callers."""

    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": type(self).__name__, "message": self.message}


class InvalidQuantity(CarbonTrackError):
    """Negative, NaN or non-numeric quantity."""


class UnknownActivityType(CarbonTrackError):
    """Activity type missing from the emission factor table."""


class ValidationFailed(CarbonTrackError):
    """Goal constraints violated."""


class Forbidden(CarbonTrackError):
    status_code = 403


class NotFound(CarbonTrackError):
    status_code = 404
