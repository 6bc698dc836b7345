from typing import Optional


class AppError(ValueError):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFound(AppError):
    status_code = 404


class DuplicateName(AppError):
    status_code = 409


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class InvalidToken(AppError):
    status_code = 400


class CreationFailure(AppError):
    status_code = 500
