class PaymentError(Exception):
    """Base class for every failure the payment service reports."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(PaymentError):
    """Missing or out-of-range input on a payment request."""

    status_code = 400


class ConflictError(PaymentError):
    """Duplicate payment request id, or a transition out of a terminal status."""

    status_code = 400


class NotFoundError(PaymentError):
    status_code = 404


class TransportError(PaymentError):
    """The notification channel could not be reached or refused a publish."""


class PersistenceError(PaymentError):
    """A read or write against the record store failed."""


class DeserializationError(PaymentError):
    """A message body is not a valid payment notification."""

    status_code = 400
