class CheckoutError(Exception):
    def __init__(self, message: str, status_code: int):
        """
        Base error for the checkout flow.

        Args:
            message (str): Human-readable message returned to the client.
            status_code (int): HTTP status code the route answers with.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code

class ValidationFailure(CheckoutError):
    """Client input rejected before anything is written."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message, 400)
        self.field = field

class UpstreamError(CheckoutError):
    """Datastore or payment processor failed during checkout."""

    def __init__(self, message: str):
        super().__init__(message, 500)

class DatastoreError(Exception):
    """Raised by the datastore adapter when a query or write fails."""

class PaymentProviderError(Exception):
    """Raised by the payment gateway when the processor call fails."""

class SignatureVerificationFailed(Exception):
    """Notification could not be authenticated against the webhook secret."""
