from typing import Callable, Optional
from vokatra_checkout.core.logging_config import get_logger, set_request_context
from .schemas import EventObject, PaymentEvent, ProcedureResult

logger = get_logger(__name__)

class PaymentReconciler:
    """Drives orders and donations to a terminal payment state from Stripe events.

    The state machine lives on the records: every transition is an
    idempotent datastore procedure, so redelivered or reordered events
    cannot confirm twice, decrement stock twice, or move a paid record
    back to failed.
    """

    def __init__(self, datastore, gateway):
        self.datastore = datastore
        self.gateway = gateway
        self._handlers: dict[str, Callable[[EventObject], Optional[ProcedureResult]]] = {
            "checkout.session.completed": self._on_session_completed,
            "checkout.session.expired": self._on_session_expired,
            "payment_intent.payment_failed": self._on_payment_failed,
            "charge.refunded": self._on_charge_refunded,
        }

    def authenticate(self, raw_payload: bytes, signature: Optional[str]) -> PaymentEvent:
        """Verify the origin of a notification; raises SignatureVerificationFailed."""
        event = self.gateway.verify_event(raw_payload, signature)
        set_request_context(event_id=event.id)
        logger.info(
            f"Stripe event received: {event.type}",
            extra={'extra_fields': {'event_id': event.id, 'event_type': event.type}}
        )
        return event

    def dispatch(self, event: PaymentEvent) -> Optional[ProcedureResult]:
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.info(f"Event ignored: {event.type}")
            return None
        return handler(event.data.object)

    def handle_notification(self, raw_payload: bytes, signature: Optional[str]) -> Optional[ProcedureResult]:
        return self.dispatch(self.authenticate(raw_payload, signature))

    def _on_session_completed(self, session: EventObject) -> Optional[ProcedureResult]:
        if not session.id:
            logger.warning("Completed session event without a session id")
            return None
        entity_type = (session.metadata or {}).get("type")
        logger.info(
            f"Payment completed - session: {session.id} - type: {entity_type}",
            extra={'extra_fields': {'session_id': session.id, 'payment_intent': session.payment_intent}}
        )
        if entity_type == "order":
            result = self.datastore.confirm_order_payment(session.id, session.payment_intent)
        elif entity_type == "donation":
            result = self.datastore.confirm_donation_payment(session.id, session.payment_intent)
        else:
            logger.warning(f"Unknown type in session metadata: {entity_type}")
            return None

        if result.success:
            logger.info(f"{entity_type.capitalize()} confirmed: {result.entity_id}")
        elif result.reason == "insufficient_stock":
            logger.error(
                f"Order {result.entity_id} paid but stock is insufficient, manual follow-up required",
                extra={'extra_fields': {'order_id': result.entity_id, 'session_id': session.id,
                                        'alert': 'oversell'}}
            )
        else:
            # Redelivery of an event already applied
            logger.warning(
                f"confirm_{entity_type}_payment returned success=false: {result.reason}",
                extra={'extra_fields': result.model_dump()}
            )
        return result

    def _mark_failed(self, session_id: str) -> ProcedureResult:
        result = self.datastore.mark_payment_failed(session_id)
        if result.success:
            logger.info(f"Payment status set to failed for session {session_id}")
        else:
            logger.info(
                f"mark_payment_failed left session {session_id} unchanged: {result.reason}",
                extra={'extra_fields': result.model_dump()}
            )
        return result

    def _on_session_expired(self, session: EventObject) -> Optional[ProcedureResult]:
        if not session.id:
            logger.warning("Expired session event without a session id")
            return None
        return self._mark_failed(session.id)

    def _on_payment_failed(self, intent: EventObject) -> Optional[ProcedureResult]:
        session_id = (intent.metadata or {}).get("session_id")
        if not session_id:
            logger.info(f"Payment intent {intent.id} failed without a session reference")
            return None
        return self._mark_failed(session_id)

    def _on_charge_refunded(self, charge: EventObject) -> Optional[ProcedureResult]:
        if not charge.payment_intent:
            return None
        result = self.datastore.mark_refunded(charge.payment_intent)
        if result.success:
            logger.info(f"Refund recorded for payment_intent: {charge.payment_intent}")
        else:
            logger.warning(
                f"Refund for payment_intent {charge.payment_intent} not applied: {result.reason}",
                extra={'extra_fields': result.model_dump()}
            )
        return result
