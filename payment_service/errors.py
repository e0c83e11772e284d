class PaymentServiceError(Exception):
    """Base error rendered to callers as ``{"error": message}``."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict:
        return {"error": self.message}


class PaymentValidationError(PaymentServiceError):
    status_code = 400


class ChargeConflictError(PaymentServiceError):
    status_code = 409

    def to_body(self) -> dict:
        return {"error": self.message, "shouldRetry": True}


class PaymentProcessingError(PaymentServiceError):
    status_code = 500


class InconsistentStateError(PaymentServiceError):
    status_code = 500


class PaymentNotFoundError(PaymentServiceError):
    status_code = 404

    def __init__(self, message: str = "Payment record not found"):
        super().__init__(message)


class PersistenceError(PaymentServiceError):
    status_code = 500

    def __init__(self, message: str = "Database update failed"):
        super().__init__(message)


class WebhookVerificationError(PaymentServiceError):
    """Rejected webhook delivery. Rendered as plain text, never as JSON."""

    status_code = 400


class GatewayError(Exception):
    """A payment gateway call failed or timed out."""


class DuplicateOrderError(Exception):
    """A payment record for the order already exists."""

    def __init__(self, order_id: str):
        super().__init__(f"Payment record for order {order_id} already exists")
        self.order_id = order_id
