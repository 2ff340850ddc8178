"""Domain errors raised by the store layer.

Each error carries the HTTP status the API answers with, so route handlers
can let them propagate to the exception handler in ``main``.
"""

from fastapi import status


class FoodNFunError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConstraintViolation(FoodNFunError):
    """Invalid value, missing field or duplicate unique key."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ReferentialViolation(FoodNFunError):
    """A referenced row (table, menu item, identity) does not exist."""

    status_code = status.HTTP_409_CONFLICT


class NotFound(FoodNFunError):
    status_code = status.HTTP_404_NOT_FOUND


class NotAuthenticated(FoodNFunError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationDenied(FoodNFunError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(FoodNFunError):
    """The row changed underneath a conditional update."""

    status_code = status.HTTP_409_CONFLICT


__all__ = [
    "AuthorizationDenied",
    "ConflictError",
    "ConstraintViolation",
    "FoodNFunError",
    "NotAuthenticated",
    "NotFound",
    "ReferentialViolation",
]
