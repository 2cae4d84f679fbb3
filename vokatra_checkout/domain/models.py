from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, ForeignKey, Integer, Boolean, Date, DateTime, Text, CheckConstraint, func
from enum import Enum
from typing import Optional
import datetime
import uuid

class Base(DeclarativeBase):
    pass

def _uuid() -> str:
    return str(uuid.uuid4())

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class OrderStatus(str, Enum):
    NEW = "new"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock_qty >= 0", name="ck_products_stock_non_negative"),)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    emoji: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    unit_price_cents: Mapped[int] = mapped_column(Integer)
    stock_qty: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

class DeliveryDate(Base):
    __tablename__ = "delivery_dates"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    delivery_date: Mapped[datetime.date] = mapped_column(Date)
    label: Mapped[str] = mapped_column(String(200))
    active: Mapped[bool] = mapped_column(Boolean, default=True)

class Order(Base):
    __tablename__ = "orders"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.NEW.value)
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value, index=True)
    payment_method: Mapped[str] = mapped_column(String(20), default="stripe")
    # Customer fields as submitted at checkout
    customer_first_name: Mapped[str] = mapped_column(String(100))
    customer_last_name: Mapped[str] = mapped_column(String(100))
    customer_address: Mapped[str] = mapped_column(Text)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    church_name: Mapped[str] = mapped_column(String(200))
    section_name: Mapped[str] = mapped_column(String(200))
    delivery_address: Mapped[str] = mapped_column(Text)
    # Checked against delivery_dates at creation time only
    delivery_date_id: Mapped[str] = mapped_column(String(64))
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    total_amount_cents: Mapped[int] = mapped_column(Integer)
    stripe_checkout_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
    items: Mapped[list["OrderItem"]] = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("qty > 0", name="ck_order_items_qty_positive"),)
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    # Product reference without FK so snapshots survive product removal
    product_id: Mapped[str] = mapped_column(String(64))
    product_name_snapshot: Mapped[str] = mapped_column(String(200))
    product_emoji_snapshot: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    unit_price_cents_snapshot: Mapped[int] = mapped_column(Integer)
    qty: Mapped[int] = mapped_column(Integer)
    line_total_cents: Mapped[int] = mapped_column(Integer)
    order: Mapped[Order] = relationship("Order", back_populates="items")

class Donation(Base):
    __tablename__ = "donations"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    donor_first_name: Mapped[str] = mapped_column(String(100))
    donor_last_name: Mapped[str] = mapped_column(String(100))
    donor_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    donor_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    church_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    section_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    amount_cents: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value, index=True)
    stripe_checkout_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
