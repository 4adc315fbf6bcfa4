"""
Domain errors.

Handlers and domain modules raise these; ``main`` renders them as
``{"detail": message}`` with the class's status code, the same shape FastAPI
uses for ``HTTPException``.
"""


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(StoreError):
    status_code = 400


class Unauthorized(StoreError):
    status_code = 401


class Forbidden(StoreError):
    status_code = 403


class NotFound(StoreError):
    status_code = 404


class Conflict(StoreError):
    status_code = 409


class Gone(StoreError):
    status_code = 410


class InsufficientStock(ValidationFailed):
    pass
