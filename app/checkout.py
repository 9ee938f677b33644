import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.cart import CartItem, CartStore
from app.errors import GatewayError, NotFoundError, PersistenceError, ValidationError
from app.logger import get_logger
from app.models import MenuItem, Order, OrderItem
from app.money import D, round_money
from app.order_status import PENDING
from app.stripe_service import create_checkout_session

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    order_id: str
    url: str


def _as_cart_item(item) -> CartItem:
    if isinstance(item, CartItem):
        return item
    if isinstance(item, dict):
        return CartItem.from_dict(item)
    return CartItem(
        id=str(item.id),
        name=item.name,
        price=item.price,
        quantity=item.quantity,
        image_url=getattr(item, "image_url", None),
    )


def price_lines(db: Session, items: Iterable) -> List[CartItem]:
    """
    Resolve cart lines against the catalog.

    The unit price always comes from ``menu_items``; the client-sent price
    is only used for display.
    """
    lines = []
    for raw in items:
        item = _as_cart_item(raw)
        if item.quantity < 1:
            raise ValidationError(f"Invalid quantity for item {item.id}")

        menu_item = db.get(MenuItem, item.id)
        if not menu_item or not menu_item.available:
            raise ValidationError(f"Item {item.id} is not available")

        lines.append(CartItem(
            id=menu_item.id,
            name=item.name or menu_item.name,
            price=round_money(menu_item.price),
            quantity=item.quantity,
            image_url=item.image_url or menu_item.image_url,
        ))
    return lines


def lines_total(lines: Iterable[CartItem]):
    return round_money(sum((D(line.price) * line.quantity for line in lines), D(0)))


def _start_session(db: Session, order: Order, lines: List[CartItem], customer_email: str):
    try:
        session = create_checkout_session(order.id, lines, customer_email)
    except Exception as e:
        db.rollback()
        logger.error(f"Stripe session creation failed for order {order.id}: {e}")
        raise GatewayError(str(e) or "Failed to create checkout session") from e

    order.stripe_session_id = session.id
    logger.info(f"Checkout session {session.id} created for order {order.id}")
    return session


def checkout(
    db: Session,
    items,
    customer_email: Optional[str],
    user_id: Optional[str] = None,
    client_total=None,
    cart: Optional[CartStore] = None,
) -> CheckoutResult:
    """
    Turn cart lines into a pending order and a hosted payment page.

    Order and items are flushed inside the session transaction and only
    committed once Stripe has returned a session, so a gateway failure
    leaves nothing behind.
    """
    items = list(items or [])
    if not items:
        raise ValidationError("Your cart is empty")
    if not customer_email:
        raise ValidationError("Please enter your email")

    lines = price_lines(db, items)
    total = lines_total(lines)

    if client_total is not None and round_money(client_total) != total:
        raise ValidationError(
            f"Order total {round_money(client_total)} does not match cart total {total}"
        )

    order = Order(
        id=str(uuid.uuid4()),
        user_id=user_id or str(uuid.uuid4()),
        customer_email=customer_email,
        total=total,
        status=PENDING,
    )
    order.items = [
        OrderItem(menu_item_id=line.id, quantity=line.quantity, price=line.price)
        for line in lines
    ]

    try:
        db.add(order)
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save order for {customer_email}: {e}")
        raise PersistenceError("Failed to save order") from e

    logger.info(f"Order {order.id} created with {len(lines)} items, total {total}")

    session = _start_session(db, order, lines, customer_email)

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to commit order {order.id}: {e}")
        raise PersistenceError("Failed to save order") from e

    if cart is not None:
        cart.clear_cart()

    return CheckoutResult(order_id=order.id, url=session.url)


def order_lines(order: Order) -> List[CartItem]:
    """Payment lines rebuilt from the order's persisted items."""
    return [
        CartItem(
            id=item.menu_item_id,
            name=item.menu_item.name if item.menu_item else item.menu_item_id,
            price=round_money(item.price),
            quantity=item.quantity,
            image_url=item.menu_item.image_url if item.menu_item else None,
        )
        for item in order.items
    ]


def create_session_for_order(db: Session, order_id: str, items, customer_email: str) -> str:
    """
    Start a payment session for an order that was created earlier.

    The charged lines come from the stored order items; ``items`` from the
    caller is only checked for presence.
    """
    if not order_id or not items or not customer_email:
        raise ValidationError("Missing required fields")

    order = db.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    if order.status != PENDING:
        raise ValidationError(f"Order {order_id} is already {order.status}")

    lines = order_lines(order)
    if not lines:
        raise ValidationError(f"Order {order_id} has no items")
    if lines_total(lines) != round_money(order.total):
        logger.warning(
            f"Order {order_id} total {order.total} does not match its items {lines_total(lines)}"
        )
        raise ValidationError(f"Order {order_id} total does not match its items")

    session = _start_session(db, order, lines, customer_email)

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Failed to save order") from e

    return session.url
