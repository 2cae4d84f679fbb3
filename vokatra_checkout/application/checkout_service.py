import time
from vokatra_checkout.core.logging_config import get_logger
from vokatra_checkout.core_settings import Settings
from vokatra_checkout.domain.models import OrderStatus, PaymentStatus
from .errors import DatastoreError, PaymentProviderError, UpstreamError
from .schemas import (
    CheckoutRequest,
    CheckoutResult,
    CheckoutSession,
    DonationRequest,
    LineSnapshot,
    OrderRequest,
    SessionLineItem,
)
from .validation import (
    snapshot_cart,
    validate_delivery_date,
    validate_donation_request,
    validate_order_request,
)

logger = get_logger(__name__)

class CheckoutService:
    """Turns a checkout request into a pending record and a payment redirect.

    Not idempotent: every call creates a new pending order or donation.
    """

    def __init__(self, datastore, gateway, settings: Settings):
        self.datastore = datastore
        self.gateway = gateway
        self.settings = settings

    def initiate_checkout(self, request: CheckoutRequest) -> CheckoutResult:
        if isinstance(request, DonationRequest):
            return self._checkout_donation(request)
        return self._checkout_order(request)

    @property
    def _success_url(self) -> str:
        return f"{self.settings.SITE_URL}/success?session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def _cancel_url(self) -> str:
        return f"{self.settings.SITE_URL}/cancel"

    # Orders

    def _checkout_order(self, req: OrderRequest) -> CheckoutResult:
        validate_order_request(req)

        try:
            delivery_date = self.datastore.get_delivery_date(req.delivery.date_id)
        except DatastoreError:
            logger.error("Delivery date lookup failed", exc_info=True)
            raise UpstreamError("Error while retrieving the delivery date")
        validate_delivery_date(delivery_date)

        try:
            products = self.datastore.get_products(line.product_id for line in req.cart)
        except DatastoreError:
            logger.error("Product lookup failed", exc_info=True)
            raise UpstreamError("Error while retrieving products")
        lines, total_cents = snapshot_cart(req.cart, products)

        order_id = self._create_order(req, lines, total_cents)
        session = self._open_order_session(order_id, req, lines)

        try:
            self.datastore.update_order(order_id, stripe_checkout_session_id=session.id)
        except DatastoreError:
            logger.error(
                f"Could not attach session to order {order_id}",
                exc_info=True,
                extra={'extra_fields': {'order_id': order_id, 'session_id': session.id}}
            )
            self._mark_order_failed(order_id)
            raise UpstreamError("Error while saving the payment session")

        logger.info(
            f"Checkout session opened for order {order_id}",
            extra={'extra_fields': {'order_id': order_id, 'session_id': session.id,
                                    'total_amount_cents': total_cents}}
        )
        return CheckoutResult(url=session.url, order_id=order_id)

    def _create_order(self, req: OrderRequest, lines: list[LineSnapshot], total_cents: int) -> str:
        """Insert the header, then its items; delete the header if the items fail."""
        customer, delivery = req.customer, req.delivery
        try:
            order = self.datastore.insert_order({
                "status": OrderStatus.NEW.value,
                "payment_status": PaymentStatus.PENDING.value,
                "payment_method": "stripe",
                "customer_first_name": customer.first_name,
                "customer_last_name": customer.last_name,
                "customer_address": customer.address,
                "customer_phone": customer.phone or None,
                "customer_email": customer.email or None,
                "church_name": customer.church_name,
                "section_name": customer.section_name,
                "delivery_address": delivery.address,
                "delivery_date_id": delivery.date_id,
                "currency": self.settings.CURRENCY.upper(),
                "total_amount_cents": total_cents,
            })
        except DatastoreError:
            logger.error("Order creation failed", exc_info=True)
            raise UpstreamError("Error while creating the order")

        order_id = order.id
        try:
            self.datastore.insert_order_items(order_id, lines)
        except Exception:
            logger.error(
                f"Order items insert failed, rolling back order {order_id}",
                exc_info=True,
                extra={'extra_fields': {'order_id': order_id}}
            )
            try:
                self.datastore.delete_order(order_id)
            except DatastoreError:
                logger.critical(
                    f"Rollback of order {order_id} failed, header left without items",
                    exc_info=True,
                    extra={'extra_fields': {'order_id': order_id, 'alert': 'orphan_order'}}
                )
            raise UpstreamError("Error while saving order items")
        return order_id

    def _open_order_session(self, order_id: str, req: OrderRequest, lines: list[LineSnapshot]) -> CheckoutSession:
        line_items = [
            SessionLineItem(
                name=line.product_name_snapshot,
                description=f"{line.product_emoji_snapshot or ''} {self.settings.STORE_NAME}".strip(),
                unit_amount=line.unit_price_cents_snapshot,
                quantity=line.qty,
            )
            for line in lines
        ]
        try:
            return self.gateway.create_session(
                line_items=line_items,
                metadata={"entity_id": order_id, "type": "order"},
                success_url=self._success_url,
                cancel_url=self._cancel_url,
                customer_email=req.customer.email or None,
                expires_at=int(time.time()) + self.settings.CHECKOUT_SESSION_TTL_SECONDS,
            )
        except PaymentProviderError:
            logger.error(
                f"Payment session creation failed for order {order_id}",
                exc_info=True,
                extra={'extra_fields': {'order_id': order_id}}
            )
            # Items are committed, so the order is kept and marked failed
            self._mark_order_failed(order_id)
            raise UpstreamError("Error while creating the payment session")

    def _mark_order_failed(self, order_id: str) -> None:
        try:
            self.datastore.update_order(
                order_id,
                payment_status=PaymentStatus.FAILED.value,
                status=OrderStatus.CANCELLED.value,
            )
        except DatastoreError:
            logger.error(f"Could not mark order {order_id} as failed", exc_info=True)

    # Donations

    def _checkout_donation(self, req: DonationRequest) -> CheckoutResult:
        validate_donation_request(req, self.settings.DONATION_MIN_CENTS)

        try:
            donation = self.datastore.insert_donation({
                "donor_first_name": req.first_name,
                "donor_last_name": req.last_name,
                "donor_email": req.email or None,
                "donor_phone": req.phone or None,
                "church_name": req.church or None,
                "section_name": req.section or None,
                "message": req.message or None,
                "amount_cents": req.amount_cents,
                "currency": self.settings.CURRENCY.upper(),
                "payment_status": PaymentStatus.PENDING.value,
            })
        except DatastoreError:
            logger.error("Donation creation failed", exc_info=True)
            raise UpstreamError("Error while creating the donation")
        donation_id = donation.id

        try:
            session = self.gateway.create_session(
                line_items=[SessionLineItem(
                    name=f"Donation – {self.settings.STORE_NAME}",
                    description="Thank you for your support",
                    unit_amount=req.amount_cents,
                    quantity=1,
                )],
                metadata={"entity_id": donation_id, "type": "donation"},
                success_url=self._success_url,
                cancel_url=self._cancel_url,
                customer_email=req.email or None,
            )
        except PaymentProviderError:
            logger.error(
                f"Payment session creation failed for donation {donation_id}",
                exc_info=True,
                extra={'extra_fields': {'donation_id': donation_id}}
            )
            # No child rows, plain delete is a complete rollback
            self._delete_donation(donation_id)
            raise UpstreamError("Error while creating the payment session")

        try:
            self.datastore.update_donation(donation_id, stripe_checkout_session_id=session.id)
        except DatastoreError:
            logger.error(f"Could not attach session to donation {donation_id}", exc_info=True)
            self._delete_donation(donation_id)
            raise UpstreamError("Error while saving the payment session")

        logger.info(
            f"Checkout session opened for donation {donation_id}",
            extra={'extra_fields': {'donation_id': donation_id, 'session_id': session.id,
                                    'amount_cents': req.amount_cents}}
        )
        return CheckoutResult(url=session.url, donation_id=donation_id)

    def _delete_donation(self, donation_id: str) -> None:
        try:
            self.datastore.delete_donation(donation_id)
        except DatastoreError:
            logger.error(f"Rollback of donation {donation_id} failed", exc_info=True)
