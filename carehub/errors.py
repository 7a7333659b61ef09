"""Domain exceptions raised by the service layer.

Each carries the HTTP status the API layer should answer with; the
handler in ``carehub.main`` turns them into JSON responses.
"""


class CareHubError(Exception):
    status_code = 400
    code = "bad_request"

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra


class BusinessRuleError(CareHubError):
    status_code = 400
    code = "business_rule_violation"


class SchemaValidationError(CareHubError):
    status_code = 422
    code = "validation_failed"

    def __init__(self, message: str, errors: list[str]):
        super().__init__(message, errors=errors)
        self.errors = errors


class AuthenticationError(CareHubError):
    status_code = 401
    code = "unauthorized"


class PermissionDeniedError(CareHubError):
    status_code = 403
    code = "forbidden"


class NotFoundError(CareHubError):
    status_code = 404
    code = "not_found"


class ConflictError(CareHubError):
    status_code = 409
    code = "conflict"
