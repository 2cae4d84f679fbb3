"""SQLAlchemy-backed datastore.

Keyed reads and writes commit one at a time. The ``confirm_*``,
``mark_payment_failed`` and ``mark_refunded`` procedures each run in a
single transaction with the target row locked, so concurrent redeliveries
and concurrent confirmations serialize on the database.
"""
from contextlib import contextmanager
from typing import Iterable, Optional
from sqlalchemy import select, update, delete, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from vokatra_checkout.application.errors import DatastoreError
from vokatra_checkout.application.schemas import LineSnapshot, ProcedureResult
from vokatra_checkout.domain.models import (
    DeliveryDate,
    Donation,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
)

class SqlDatastore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def _session(self):
        db: Session = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise DatastoreError(str(e)) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def ping(self) -> None:
        with self._session() as db:
            db.execute(text("SELECT 1"))

    # Reads

    def get_delivery_date(self, delivery_date_id: str) -> Optional[DeliveryDate]:
        with self._session() as db:
            return db.get(DeliveryDate, delivery_date_id)

    def get_products(self, product_ids: Iterable[str]) -> dict[str, Product]:
        ids = list(set(product_ids))
        with self._session() as db:
            rows = db.execute(select(Product).where(Product.id.in_(ids))).scalars().all()
            return {p.id: p for p in rows}

    def get_product(self, product_id: str) -> Optional[Product]:
        with self._session() as db:
            return db.get(Product, product_id)

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._session() as db:
            return db.get(Order, order_id)

    def get_order_items(self, order_id: str) -> list[OrderItem]:
        with self._session() as db:
            return list(db.execute(
                select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
            ).scalars().all())

    def get_donation(self, donation_id: str) -> Optional[Donation]:
        with self._session() as db:
            return db.get(Donation, donation_id)

    # Keyed writes

    def insert_order(self, fields: dict) -> Order:
        with self._session() as db:
            order = Order(**fields)
            db.add(order)
            db.flush()
            return order

    def insert_order_items(self, order_id: str, items: list[LineSnapshot]) -> None:
        with self._session() as db:
            db.add_all([OrderItem(order_id=order_id, **item.model_dump()) for item in items])

    def update_order(self, order_id: str, **fields) -> int:
        with self._session() as db:
            result = db.execute(update(Order).where(Order.id == order_id).values(**fields))
            return result.rowcount

    def delete_order(self, order_id: str) -> None:
        with self._session() as db:
            db.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
            db.execute(delete(Order).where(Order.id == order_id))

    def insert_donation(self, fields: dict) -> Donation:
        with self._session() as db:
            donation = Donation(**fields)
            db.add(donation)
            db.flush()
            return donation

    def update_donation(self, donation_id: str, **fields) -> int:
        with self._session() as db:
            result = db.execute(update(Donation).where(Donation.id == donation_id).values(**fields))
            return result.rowcount

    def delete_donation(self, donation_id: str) -> None:
        with self._session() as db:
            db.execute(delete(Donation).where(Donation.id == donation_id))

    # Atomic procedures

    def _locked(self, db: Session, model, column, value):
        return db.execute(select(model).where(column == value).with_for_update()).scalar_one_or_none()

    def confirm_order_payment(self, session_id: str, payment_intent_id: Optional[str]) -> ProcedureResult:
        """Guard, decrement stock for every line, then mark the order paid.

        Any line whose product lacks stock rolls the whole unit back.
        """
        if not session_id:
            return ProcedureResult(success=False, entity_type="order", reason="not_found")
        with self._session() as db:
            order = self._locked(db, Order, Order.stripe_checkout_session_id, session_id)
            if order is None:
                return ProcedureResult(success=False, entity_type="order", reason="not_found")
            if order.payment_status != PaymentStatus.PENDING.value:
                return ProcedureResult(success=False, entity_id=order.id, entity_type="order",
                                       reason="already_processed")
            order_id = order.id
            # Fixed lock order across concurrent confirmations
            items = db.execute(
                select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.product_id)
            ).scalars().all()
            for item in items:
                result = db.execute(
                    update(Product)
                    .where(Product.id == item.product_id, Product.stock_qty >= item.qty)
                    .values(stock_qty=Product.stock_qty - item.qty)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.rollback()
                    return ProcedureResult(success=False, entity_id=order_id, entity_type="order",
                                           reason="insufficient_stock")
            order.payment_status = PaymentStatus.PAID.value
            order.status = OrderStatus.CONFIRMED.value
            order.stripe_payment_intent_id = payment_intent_id
            return ProcedureResult(success=True, entity_id=order_id, entity_type="order")

    def confirm_donation_payment(self, session_id: str, payment_intent_id: Optional[str]) -> ProcedureResult:
        if not session_id:
            return ProcedureResult(success=False, entity_type="donation", reason="not_found")
        with self._session() as db:
            donation = self._locked(db, Donation, Donation.stripe_checkout_session_id, session_id)
            if donation is None:
                return ProcedureResult(success=False, entity_type="donation", reason="not_found")
            if donation.payment_status != PaymentStatus.PENDING.value:
                return ProcedureResult(success=False, entity_id=donation.id, entity_type="donation",
                                       reason="already_processed")
            donation.payment_status = PaymentStatus.PAID.value
            donation.stripe_payment_intent_id = payment_intent_id
            return ProcedureResult(success=True, entity_id=donation.id, entity_type="donation")

    def mark_payment_failed(self, session_id: str) -> ProcedureResult:
        """pending -> failed for whichever record holds the session.

        Paid and refunded records are never moved back.
        """
        if not session_id:
            return ProcedureResult(success=False, reason="not_found")
        with self._session() as db:
            order = self._locked(db, Order, Order.stripe_checkout_session_id, session_id)
            if order is not None:
                if order.payment_status != PaymentStatus.PENDING.value:
                    return ProcedureResult(success=False, entity_id=order.id, entity_type="order",
                                           reason="not_pending")
                order.payment_status = PaymentStatus.FAILED.value
                order.status = OrderStatus.CANCELLED.value
                return ProcedureResult(success=True, entity_id=order.id, entity_type="order")
            donation = self._locked(db, Donation, Donation.stripe_checkout_session_id, session_id)
            if donation is not None:
                if donation.payment_status != PaymentStatus.PENDING.value:
                    return ProcedureResult(success=False, entity_id=donation.id, entity_type="donation",
                                           reason="not_pending")
                donation.payment_status = PaymentStatus.FAILED.value
                return ProcedureResult(success=True, entity_id=donation.id, entity_type="donation")
            return ProcedureResult(success=False, reason="not_found")

    def mark_refunded(self, payment_intent_id: str) -> ProcedureResult:
        if not payment_intent_id:
            return ProcedureResult(success=False, reason="not_found")
        with self._session() as db:
            for model, entity_type in ((Order, "order"), (Donation, "donation")):
                record = self._locked(db, model, model.stripe_payment_intent_id, payment_intent_id)
                if record is None:
                    continue
                if record.payment_status != PaymentStatus.PAID.value:
                    return ProcedureResult(success=False, entity_id=record.id, entity_type=entity_type,
                                           reason="not_paid")
                record.payment_status = PaymentStatus.REFUNDED.value
                return ProcedureResult(success=True, entity_id=record.id, entity_type=entity_type)
            return ProcedureResult(success=False, reason="not_found")
