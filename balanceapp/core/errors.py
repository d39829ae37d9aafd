from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors raised by services and surfaced to API callers."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = 404


class BadRequestError(ServiceError):
    code = "BAD_REQUEST"
    status_code = 400
