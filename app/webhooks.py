import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import InvalidTransitionError, SignatureError
from app.logger import get_logger
from app.models import Order, Payment, ProcessedEvent
from app.money import from_cents, round_money
from app.order_status import CANCELLED, PAID, transition
from app.stripe_service import construct_event

logger = get_logger(__name__)


def _field(obj, key, default=None):
    # Works for plain dicts and StripeObject alike.
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def verify_event(payload: bytes, signature):
    if not signature:
        raise SignatureError("No signature")

    try:
        return construct_event(payload, signature)
    except ValueError as e:
        logger.warning(f"Webhook payload could not be parsed: {e}")
        raise SignatureError("Invalid payload") from e
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise SignatureError("Invalid signature") from e


def _set_order_status(order: Order, status: str):
    try:
        transition(order, status)
    except InvalidTransitionError as e:
        logger.warning(f"Order {order.id}: {e}, leaving status unchanged")


def _checkout_completed(db: Session, session):
    order_id = _field(_field(session, "metadata", {}), "orderId")
    if not order_id:
        logger.info(f"Checkout session {_field(session, 'id')} has no orderId, skipping")
        return

    intent_id = _field(session, "payment_intent")
    order = db.get(Order, order_id)
    if not order:
        logger.warning(f"Checkout completed for unknown order {order_id}")
        return

    amount = from_cents(_field(session, "amount_total", 0))
    if amount != round_money(order.total):
        logger.warning(
            f"Order {order_id}: charged {amount} but order total is {order.total}, not marking paid"
        )
    else:
        _set_order_status(order, PAID)

    if not intent_id:
        logger.warning(f"Checkout session for order {order_id} carries no payment intent")
        return

    order.payment_intent_id = intent_id

    payment = db.query(Payment).filter_by(stripe_payment_intent_id=intent_id).first()
    if payment:
        payment.order_id = order_id
        payment.amount = amount
        payment.status = "succeeded"
    else:
        db.add(Payment(
            order_id=order_id,
            stripe_payment_intent_id=intent_id,
            amount=amount,
            status="succeeded",
        ))


def _intent_succeeded(db: Session, intent):
    db.query(Payment).filter_by(stripe_payment_intent_id=intent["id"]).update(
        {"status": "succeeded"}, synchronize_session=False
    )


def _intent_failed(db: Session, intent):
    intent_id = intent["id"]
    errors = []

    def mark_payment():
        db.query(Payment).filter_by(stripe_payment_intent_id=intent_id).update(
            {"status": "failed"}, synchronize_session=False
        )

    def cancel_orders():
        for order in db.query(Order).filter_by(payment_intent_id=intent_id).all():
            _set_order_status(order, CANCELLED)

    # Each update gets its own savepoint so one failing does not undo the other.
    for step in (mark_payment, cancel_orders):
        try:
            with db.begin_nested():
                step()
        except SQLAlchemyError as e:
            logger.error(f"Failed to apply payment failure for {intent_id}: {e}")
            errors.append(e)

    if errors:
        db.commit()
        raise errors[0]


HANDLERS = {
    "checkout.session.completed": _checkout_completed,
    "payment_intent.succeeded": _intent_succeeded,
    "payment_intent.payment_failed": _intent_failed,
}


def handle_event(db: Session, event) -> bool:
    """
    Apply a verified Stripe event.

    Returns False when the event was already processed. Anything raised here
    must reach the caller so Stripe redelivers.
    """
    event_id = _field(event, "id")
    event_type = event["type"]

    if event_id and db.get(ProcessedEvent, event_id):
        logger.info(f"Event {event_id} ({event_type}) already processed, skipping")
        return False

    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled event type: {event_type}")
    else:
        logger.info(f"Processing {event_type} event {event_id}")
        handler(db, event["data"]["object"])

    if event_id:
        db.add(ProcessedEvent(id=event_id, type=event_type))

    db.commit()
    return True
