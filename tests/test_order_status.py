from types import SimpleNamespace

import pytest

from app.errors import InvalidTransitionError, NotFoundError, ValidationError
from app.models import Order
from app.order_status import can_transition, set_order_status, transition


def _order(status):
    return SimpleNamespace(id="o-1", status=status)


@pytest.mark.parametrize("current, new", [
    ("pending", "paid"),
    ("paid", "preparing"),
    ("preparing", "ready"),
    ("ready", "completed"),
    ("pending", "cancelled"),
    ("paid", "cancelled"),
    ("ready", "cancelled"),
])
def test_legal_transitions(current, new):
    order = _order(current)
    assert transition(order, new) is True
    assert order.status == new


@pytest.mark.parametrize("current, new", [
    ("pending", "preparing"),
    ("paid", "pending"),
    ("completed", "cancelled"),
    ("cancelled", "paid"),
    ("ready", "paid"),
])
def test_illegal_transitions_rejected(current, new):
    order = _order(current)
    with pytest.raises(InvalidTransitionError):
        transition(order, new)
    assert order.status == current


def test_same_status_is_noop():
    order = _order("paid")
    assert transition(order, "paid") is False
    assert can_transition("cancelled", "cancelled")


def test_unknown_status():
    with pytest.raises(ValidationError):
        transition(_order("pending"), "baked")


def test_set_order_status_commits(db):
    db.add(Order(id="o-1", user_id="u", customer_email="a@b.com", total=1, status="paid"))
    db.commit()

    set_order_status(db, "o-1", "preparing")

    db.expire_all()
    assert db.get(Order, "o-1").status == "preparing"


def test_set_order_status_unknown_order(db):
    with pytest.raises(NotFoundError):
        set_order_status(db, "nope", "paid")
