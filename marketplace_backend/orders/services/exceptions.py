# orders/services/exceptions.py

"""
ORDER SERVICE ERRORS

Every error carries a stable `code` that API views render verbatim
(see backend/responses.py).
"""


class OrderServiceError(Exception):
    """Base order service exception"""

    code = "ORDER_ERROR"


class EmptyCartError(OrderServiceError):
    code = "EMPTY_CART"


class OrderNotFoundError(OrderServiceError):
    code = "NOT_FOUND"


class OrderAccessDeniedError(OrderServiceError):
    code = "FORBIDDEN"


class InvalidOrderStatusError(OrderServiceError):
    code = "INVALID_STATUS"
