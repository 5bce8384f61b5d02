"""Error taxonomy shared by the services and the API adapter.

Every error carries a message that is safe to hand back to a caller. Store
failures are wrapped in :class:`PersistenceError`, whose message never echoes
the underlying driver text; the original exception is chained and logged.
"""


class AppError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError, ValueError):
    status_code = 400


class NotFoundError(AppError, ValueError):
    status_code = 404


class AuthenticationError(AppError):
    status_code = 401


class PermissionDeniedError(AppError):
    status_code = 403


class PersistenceError(AppError):
    status_code = 500

    def __init__(self, message: str = "internal error") -> None:
        super().__init__(message)


class RecurringProcessingError(PersistenceError):
    def __init__(self, created: int, template_id: str) -> None:
        super().__init__()
        self.created = created
        self.template_id = template_id
