# app/core/errors.py
from typing import Any

from fastapi import HTTPException, status


class OrderingError(HTTPException):
    """
    Base class for domain errors raised by the services.

    These are HTTPExceptions so a service error reaches the client with the
    right status code, while callers in Python can still catch the
    specific kind.
    """

    default_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Any = None):
        super().__init__(status_code=self.default_status, detail=detail)


class ValidationError(OrderingError):
    """Malformed input: empty item list, bad quantity, negative price..."""

    default_status = status.HTTP_400_BAD_REQUEST


class InsufficientStockError(OrderingError):
    default_status = status.HTTP_409_CONFLICT

    def __init__(self, product_id: Any, product_name: str, available: int, requested: int):
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            detail={
                "message": f"Insufficient stock for {product_name}",
                "product_id": str(product_id),
                "available": available,
                "requested": requested,
            }
        )


class NotFoundError(OrderingError):
    default_status = status.HTTP_404_NOT_FOUND


class InvalidStatusError(OrderingError):
    default_status = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(OrderingError):
    """Role lacks the permission, or a self-protection rule was violated."""

    default_status = status.HTTP_403_FORBIDDEN


class AlreadyExistsError(OrderingError):
    default_status = status.HTTP_409_CONFLICT
