from __future__ import annotations

from typing import Any


class ProxyError(Exception):
    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        return error_payload(self.message, self.error_type)


class InvalidRequestError(ProxyError):
    status_code = 400
    error_type = "invalid_request"


class AuthenticationError(ProxyError):
    status_code = 401
    error_type = "authentication_error"


class RoutingError(ProxyError):
    """The routing oracle failed or answered with a model outside the catalog."""

    status_code = 500
    error_type = "routing_error"


def error_payload(message: str, error_type: str) -> dict[str, Any]:
    return {"error": {"message": message, "type": error_type}}
