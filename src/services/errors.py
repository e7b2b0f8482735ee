# src/services/errors.py
"""Errors raised by the service layer and mapped to HTTP statuses by the routes."""


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class DeliveryError(ServiceError):
    """An email that the operation depends on could not be delivered."""

    status_code = 500
