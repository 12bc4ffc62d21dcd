# payments/services/exceptions.py

"""
Payment service errors. Each carries a stable `code` that the API layer
maps to an HTTP status (backend.responses).
"""


class PaymentServiceError(Exception):
    code = "PAYMENT_SERVICE_ERROR"


class PaymentNotFoundError(PaymentServiceError):
    code = "NOT_FOUND"


class PaymentAccessDeniedError(PaymentServiceError):
    code = "FORBIDDEN"


class AlreadyPaidError(PaymentServiceError):
    code = "ALREADY_PAID"


class InvalidSignatureError(PaymentServiceError):
    code = "INVALID_SIGNATURE"


class InvalidOrderError(PaymentServiceError):
    code = "INVALID_ORDER"


class InvalidPayloadError(PaymentServiceError):
    code = "INVALID_PAYLOAD"


class AmountMismatchError(PaymentServiceError):
    code = "AMOUNT_MISMATCH"


class PaymentProviderFailedError(PaymentServiceError):
    code = "PAYMENT_ERROR"


class InvalidPaymentStatusError(PaymentServiceError):
    code = "INVALID_STATUS"


class RefundFailedError(PaymentServiceError):
    code = "REFUND_FAILED"


class ManualRefundRequiredError(PaymentServiceError):
    """Provider has no refund API; the refund must be made by hand."""

    code = "MANUAL_REFUND_REQUIRED"
