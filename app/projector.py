"""Read-side views over orders, their items and payments."""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.logger import get_logger
from app.models import Order, OrderItem, Payment, Profile
from app.money import D, round_money
from app.order_status import COMPLETED

logger = get_logger(__name__)

MAX_LIMIT = 100


@dataclass
class ProjectionResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _money(value) -> float:
    return float(round_money(value or 0))


def _iso(value):
    return value.isoformat() if value else None


def order_as_api(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "status": order.status,
        "total": _money(order.total),
        "customer_email": order.customer_email,
        "payment_intent_id": order.payment_intent_id,
        "created_at": _iso(order.created_at),
        "order_items": [
            {
                "quantity": item.quantity,
                "price": _money(item.price),
                "menu_items": {
                    "name": item.menu_item.name if item.menu_item else None,
                    "image_url": item.menu_item.image_url if item.menu_item else None,
                },
            }
            for item in order.items
        ],
    }


def _day_start(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def list_orders(
    db: Session,
    user_id: Optional[str] = None,
    customer_email: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    offset: int = 0,
    limit: int = 20,
) -> ProjectionResult:
    """
    Orders for one customer, newest first, with nested items.

    ``end`` is inclusive for the whole day when given as a date.
    """
    if not user_id and not customer_email:
        return ProjectionResult(error="A user or customer email is required")

    try:
        q = db.query(Order).options(
            selectinload(Order.items).selectinload(OrderItem.menu_item)
        )
        if user_id:
            q = q.filter(Order.user_id == user_id)
        if customer_email:
            q = q.filter(Order.customer_email == customer_email)
        if start:
            q = q.filter(Order.created_at >= _day_start(start))
        if end:
            if isinstance(end, datetime):
                q = q.filter(Order.created_at <= end)
            else:
                q = q.filter(Order.created_at < _day_start(end) + timedelta(days=1))

        limit = max(1, min(limit, MAX_LIMIT))
        q = q.order_by(Order.created_at.desc()).offset(max(offset, 0)).limit(limit)
        return ProjectionResult(items=[order_as_api(o) for o in q.all()])
    except SQLAlchemyError as e:
        logger.error(f"Failed to load orders: {e}")
        return ProjectionResult(error="Failed to load orders")


def order_queue(db: Session) -> ProjectionResult:
    """Every order the kitchen still has to finish, oldest first."""
    try:
        q = (
            db.query(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.menu_item))
            .filter(Order.status != COMPLETED)
            .order_by(Order.created_at.asc())
        )
        return ProjectionResult(items=[order_as_api(o) for o in q.all()])
    except SQLAlchemyError as e:
        logger.error(f"Failed to load order queue: {e}")
        return ProjectionResult(error="Failed to load orders")


def list_invoices(db: Session, customer_email: str) -> ProjectionResult:
    try:
        q = (
            db.query(Payment)
            .join(Order, Payment.order_id == Order.id)
            .filter(Order.customer_email == customer_email)
            .order_by(Payment.created_at.desc())
        )
        return ProjectionResult(items=[
            {
                "id": p.id,
                "order_id": p.order_id,
                "amount": _money(p.amount),
                "status": p.status,
                "receipt_url": p.receipt_url,
                "created_at": _iso(p.created_at),
                "orders": {
                    "id": p.order.id,
                    "total": _money(p.order.total),
                    "status": p.order.status,
                    "created_at": _iso(p.order.created_at),
                    "customer_email": p.order.customer_email,
                },
            }
            for p in q.all()
        ])
    except SQLAlchemyError as e:
        logger.error(f"Failed to load invoices for {customer_email}: {e}")
        return ProjectionResult(error="Failed to load invoices")


def dashboard_stats(db: Session, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or datetime.utcnow().date()
    today_start = _day_start(today)
    tomorrow = today_start + timedelta(days=1)

    total_orders = db.query(func.count(Order.id)).scalar() or 0
    today_orders = (
        db.query(func.count(Order.id))
        .filter(Order.created_at >= today_start, Order.created_at < tomorrow)
        .scalar()
        or 0
    )
    completed = db.query(Order.total, Order.created_at).filter(Order.status == COMPLETED).all()
    total_customers = (
        db.query(func.count(Profile.id)).filter(Profile.role == "customer").scalar() or 0
    )

    revenue = sum((D(t) for t, _ in completed), D(0))
    today_revenue = sum(
        (D(t) for t, created in completed if created and today_start <= created < tomorrow),
        D(0),
    )

    return {
        "total_orders": total_orders,
        "today_orders": today_orders,
        "total_revenue": _money(revenue),
        "today_revenue": _money(today_revenue),
        "total_customers": total_customers,
    }
