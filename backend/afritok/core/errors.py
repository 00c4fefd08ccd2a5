"""Application errors mapped to the JSON error envelope by ``afritok.main``."""


class ConfigurationError(RuntimeError):
    """Startup configuration is unusable. Never turned into an HTTP response."""


class AppError(Exception):
    status_code = 400
    code = "bad_request"
    message = "Request failed"

    def __init__(self, message: str | None = None, *, details=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details


class InvalidInput(AppError):
    status_code = 400
    code = "invalid_input"
    message = "Invalid input"


class InvalidPhoneFormat(InvalidInput):
    code = "invalid_phone"
    message = "Invalid phone number"


class MalformedCode(InvalidInput):
    code = "malformed_code"
    message = "Code must be exactly 6 digits"


class ChallengeNotFound(AppError):
    status_code = 401
    code = "challenge_not_found"
    message = "No code was requested for this phone number"


class ChallengeExpired(AppError):
    status_code = 401
    code = "challenge_expired"
    message = "Code expired. Request a new one."


class CodeMismatch(AppError):
    status_code = 401
    code = "code_mismatch"
    message = "Invalid code"


class TooManyAttempts(AppError):
    status_code = 429
    code = "too_many_attempts"
    message = "Too many invalid attempts. Request a new code."


class RateLimited(AppError):
    status_code = 429
    code = "rate_limited"
    message = "Too many requests. Try again later."


class NotAuthenticated(AppError):
    status_code = 401
    code = "not_authenticated"
    message = "Not authenticated"


class ServiceUnavailable(AppError):
    status_code = 503
    code = "service_unavailable"
    message = "Service temporarily unavailable. Try again."
