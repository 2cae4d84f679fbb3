import stripe
from typing import Optional
from vokatra_checkout.application.errors import PaymentProviderError, SignatureVerificationFailed
from vokatra_checkout.application.schemas import CheckoutSession, PaymentEvent, SessionLineItem
from vokatra_checkout.core_settings import Settings

class StripeGateway:
    """Stripe Checkout sessions and webhook authentication.

    The API key is passed per request instead of being set on the
    ``stripe`` module, so several gateways can coexist in one process.
    """

    def __init__(self, secret_key: str, webhook_secret: str, currency: str = "eur", tolerance: int = 300):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.tolerance = tolerance

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            currency=settings.CURRENCY,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        )

    def _line_item(self, item: SessionLineItem) -> dict:
        product_data = {"name": item.name}
        if item.description:
            product_data["description"] = item.description
        return {
            "price_data": {
                "currency": self.currency,
                "unit_amount": item.unit_amount,
                "product_data": product_data,
            },
            "quantity": item.quantity,
        }

    def create_session(
        self,
        line_items: list[SessionLineItem],
        metadata: dict,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        expires_at: Optional[int] = None,
    ) -> CheckoutSession:
        params = {
            "api_key": self.secret_key,
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [self._line_item(i) for i in line_items],
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_email:
            params["customer_email"] = customer_email
        if expires_at:
            params["expires_at"] = expires_at
        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            raise PaymentProviderError(str(e)) from e
        return CheckoutSession(id=session.id, url=session.url)

    def verify_event(self, payload: bytes, signature: str) -> PaymentEvent:
        """Authenticate a webhook body and parse it into a PaymentEvent.

        Raises:
            SignatureVerificationFailed: bad, stale or missing signature.
        """
        if not signature:
            raise SignatureVerificationFailed("No signatures found matching the expected signature for payload")
        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, self.tolerance)
        except UnicodeDecodeError as e:
            raise SignatureVerificationFailed("Payload is not valid UTF-8") from e
        except stripe.SignatureVerificationError as e:
            raise SignatureVerificationFailed(str(e)) from e
        return PaymentEvent.model_validate_json(body)
