"""
Error Taxonomy Module

Domain errors raised by the service layer. Each carries the HTTP status the
API layer answers with, so routers never translate errors themselves.
"""


class BankError(Exception):
    """Base class for all domain errors"""

    status_code = 500
    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(BankError, ValueError):
    """Malformed or policy-violating input"""

    status_code = 400
    code = "BAD_REQUEST"


class UnauthorizedError(BankError):
    """Bad credentials or missing/expired session"""

    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFoundError(BankError):
    """Resource absent or not owned by the caller"""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(BankError):
    """Duplicate email or duplicate account type"""

    status_code = 409
    code = "CONFLICT"


class InternalError(BankError):
    """Unexpected persistence failure after a successful precondition check"""

    status_code = 500
    code = "INTERNAL_SERVER_ERROR"


class ConfigurationError(Exception):
    """Raised at startup when required configuration is missing"""
