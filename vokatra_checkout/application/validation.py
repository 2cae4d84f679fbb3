"""Ordered checkout checks.

Each check raises ValidationFailure with the message shown to the customer;
the first failing check wins.
"""
from typing import Optional
from vokatra_checkout.domain.models import DeliveryDate, Product
from .errors import ValidationFailure
from .schemas import OrderRequest, DonationRequest, CartLine, LineSnapshot

CUSTOMER_FIELDS = [
    ("first_name", "First name is required"),
    ("last_name", "Last name is required"),
    ("address", "Address is required"),
    ("church_name", "Church name is required"),
    ("section_name", "Section name is required"),
]

def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()

def validate_order_request(req: OrderRequest) -> None:
    """Required customer and delivery fields, then a non-empty cart."""
    customer = req.customer
    for field, message in CUSTOMER_FIELDS:
        if customer is None or _blank(getattr(customer, field)):
            raise ValidationFailure(message, field=f"customer.{field}")
    delivery = req.delivery
    if delivery is None or _blank(delivery.address):
        raise ValidationFailure("Delivery address is required", field="delivery.address")
    if _blank(delivery.date_id):
        raise ValidationFailure("Delivery date is required", field="delivery.dateId")
    if not req.cart:
        raise ValidationFailure("Cart is empty", field="cart")

def validate_delivery_date(delivery_date: Optional[DeliveryDate]) -> None:
    if delivery_date is None:
        raise ValidationFailure("Delivery date not found", field="delivery.dateId")
    if not delivery_date.active:
        raise ValidationFailure("This delivery date is no longer available", field="delivery.dateId")

def _check_line(line: CartLine, product: Optional[Product]) -> None:
    if product is None:
        raise ValidationFailure(f"Product not found: {line.product_id}", field="cart")
    if not product.active:
        raise ValidationFailure(f"Product unavailable: {product.name}", field="cart")
    if product.stock_qty < line.qty:
        raise ValidationFailure(
            f'Insufficient stock for "{product.name}". '
            f"Available: {product.stock_qty}, requested: {line.qty}",
            field="cart",
        )
    if line.qty <= 0:
        raise ValidationFailure(f"Invalid quantity for: {product.name}", field="cart")

def snapshot_cart(cart: list[CartLine], products: dict[str, Product]) -> tuple[list[LineSnapshot], int]:
    """Validate every cart line against the product rows and price it.

    Prices come only from ``products``; the stock comparison is advisory,
    the authoritative decrement happens when the payment is confirmed.

    Returns:
        The line snapshots and the order total in cents.
    """
    lines = []
    total_cents = 0
    for line in cart:
        product = products.get(line.product_id)
        _check_line(line, product)
        line_total = product.unit_price_cents * line.qty
        total_cents += line_total
        lines.append(LineSnapshot(
            product_id=product.id,
            product_name_snapshot=product.name,
            product_emoji_snapshot=product.emoji,
            unit_price_cents_snapshot=product.unit_price_cents,
            qty=line.qty,
            line_total_cents=line_total,
        ))
    return lines, total_cents

def validate_donation_request(req: DonationRequest, min_cents: int) -> None:
    if _blank(req.first_name):
        raise ValidationFailure("First name is required", field="donation.firstName")
    if _blank(req.last_name):
        raise ValidationFailure("Last name is required", field="donation.lastName")
    if not req.amount_cents or req.amount_cents < min_cents:
        raise ValidationFailure(f"Minimum amount is {min_cents / 100:g} €", field="donation.amountCents")
