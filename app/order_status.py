from app.errors import InvalidTransitionError, NotFoundError, ValidationError
from app.logger import get_logger
from app.models import Order

logger = get_logger(__name__)

PENDING = "pending"
PAID = "paid"
PREPARING = "preparing"
READY = "ready"
COMPLETED = "completed"
CANCELLED = "cancelled"

ORDER_STATUSES = (PENDING, PAID, PREPARING, READY, COMPLETED, CANCELLED)

PAYMENT_STATUSES = ("pending", "succeeded", "failed", "cancelled")

# Kitchen flow is linear; any order still in flight may be cancelled.
ALLOWED_TRANSITIONS = {
    PENDING: {PAID, CANCELLED},
    PAID: {PREPARING, CANCELLED},
    PREPARING: {READY, CANCELLED},
    READY: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}


def can_transition(current: str, new_status: str) -> bool:
    if current == new_status:
        return True
    return new_status in ALLOWED_TRANSITIONS.get(current, set())


def transition(order, new_status: str) -> bool:
    """
    Move ``order`` to ``new_status``.

    Returns True when the status changed, False when the order was already
    there. Raises InvalidTransitionError for moves outside the flow.
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status '{new_status}'")

    if order.status == new_status:
        return False

    if not can_transition(order.status, new_status):
        raise InvalidTransitionError(order.status, new_status)

    logger.info(f"Order {order.id}: {order.status} -> {new_status}")
    order.status = new_status
    return True


def set_order_status(db, order_id: str, new_status: str):
    """Manager-facing status change, committed on success."""
    order = db.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found")

    transition(order, new_status)
    db.commit()
    return order
