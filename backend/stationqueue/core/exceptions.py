class AppError(Exception):
    """Base class for errors scoped to a single queue entry or station."""

    default_detail = "Application error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(AppError):
    default_detail = "Resource not found"


class ConflictError(AppError):
    default_detail = "Resource conflict"


class ValidationError(AppError):
    default_detail = "Invalid data"


class InvalidTransitionError(ConflictError):
    default_detail = "Invalid state transition"


class ContentionError(ConflictError):
    """Lost a compare-and-set race; the caller should retry."""

    default_detail = "Concurrent update, retry"
