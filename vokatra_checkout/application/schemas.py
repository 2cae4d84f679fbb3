from pydantic import BaseModel, Field, ValidationError, field_validator
from typing import Any, Optional, Union
from .errors import ValidationFailure

class CartLine(BaseModel):
    product_id: Optional[str] = Field(None, alias="productId")
    qty: int = 0
    class Config:
        populate_by_name = True
        coerce_numbers_to_str = True

class CustomerIn(BaseModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    church_name: Optional[str] = Field(None, alias="churchName")
    section_name: Optional[str] = Field(None, alias="sectionName")
    class Config:
        populate_by_name = True

class DeliveryIn(BaseModel):
    address: Optional[str] = None
    date_id: Optional[str] = Field(None, alias="dateId")
    class Config:
        populate_by_name = True
        coerce_numbers_to_str = True

class OrderRequest(BaseModel):
    cart: Optional[list[CartLine]] = None
    customer: Optional[CustomerIn] = None
    delivery: Optional[DeliveryIn] = None

class DonationRequest(BaseModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    church: Optional[str] = None
    section: Optional[str] = None
    message: Optional[str] = None
    amount_cents: Optional[int] = Field(None, alias="amountCents")
    class Config:
        populate_by_name = True

CheckoutRequest = Union[OrderRequest, DonationRequest]

def parse_checkout_request(body: Any) -> CheckoutRequest:
    """Turn a decoded JSON body into the order or donation variant.

    A truthy ``donation`` key selects the donation variant, everything
    else is read as an order.
    """
    if not isinstance(body, dict):
        raise ValidationFailure("Invalid request body: object expected")
    try:
        if body.get("donation"):
            return DonationRequest.model_validate(body["donation"])
        return OrderRequest.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationFailure(f"Invalid request body: {field}", field=field)

class CheckoutResult(BaseModel):
    url: str
    order_id: Optional[str] = None
    donation_id: Optional[str] = None

class SessionLineItem(BaseModel):
    name: str
    description: Optional[str] = None
    unit_amount: int
    quantity: int

class CheckoutSession(BaseModel):
    id: str
    url: str

class ProcedureResult(BaseModel):
    """Outcome of an atomic datastore procedure.

    ``success=False`` means the guard refused the transition; ``reason``
    says why (``not_found``, ``already_processed``, ``not_pending``,
    ``not_paid``, ``insufficient_stock``).
    """
    success: bool
    entity_id: Optional[str] = None
    entity_type: Optional[str] = None
    reason: Optional[str] = None

class EventObject(BaseModel):
    id: Optional[str] = None
    object: Optional[str] = None
    payment_intent: Optional[str] = None
    payment_status: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    class Config:
        extra = "allow"

    @field_validator("payment_intent", mode="before")
    @classmethod
    def _intent_id(cls, value):
        # Expanded payment intents arrive as objects
        if isinstance(value, dict):
            return value.get("id")
        return value

class EventData(BaseModel):
    object: EventObject

class PaymentEvent(BaseModel):
    id: str
    type: str
    data: EventData
    class Config:
        extra = "allow"

class LineSnapshot(BaseModel):
    """Order line priced from the product row at checkout time."""
    product_id: str
    product_name_snapshot: str
    product_emoji_snapshot: Optional[str] = None
    unit_price_cents_snapshot: int
    qty: int
    line_total_cents: int
