import json

import pytest

from app.cart import CART_KEY, CartItem, CartStore, FileStorage, MemoryStorage


CROISSANT = {"id": "croissant", "name": "Croissant", "price": 3.5}
BAGUETTE = {"id": "baguette", "name": "Baguette", "price": 2.25, "image_url": "b.jpg"}


@pytest.fixture
def store():
    return CartStore(MemoryStorage())


def test_empty_cart(store):
    assert store.get_cart() == []
    assert store.get_cart_total() == 0
    assert store.get_cart_item_count() == 0


def test_add_same_item_twice_increments_quantity(store):
    store.add_to_cart(CROISSANT)
    store.add_to_cart(CROISSANT)

    cart = store.get_cart()
    assert len(cart) == 1
    assert cart[0].quantity == 2


def test_add_with_quantity_and_ordering(store):
    store.add_to_cart(CROISSANT, quantity=3)
    store.add_to_cart(BAGUETTE)

    cart = store.get_cart()
    assert [i.id for i in cart] == ["croissant", "baguette"]
    assert cart[1].image_url == "b.jpg"
    assert store.get_cart_item_count() == 4
    assert store.get_cart_total() == pytest.approx(3.5 * 3 + 2.25)


def test_add_accepts_cart_item(store):
    store.add_to_cart(CartItem(id="croissant", name="Croissant", price=3.5), quantity=2)
    assert store.get_cart()[0].quantity == 2


@pytest.mark.parametrize("quantity", [0, -2])
def test_add_non_positive_quantity_of_new_item_is_ignored(store, quantity):
    store.add_to_cart(CROISSANT, quantity)

    assert store.get_cart() == []


@pytest.mark.parametrize("start, delta", [(1, -1), (1, -3), (2, -2)])
def test_add_driving_quantity_to_zero_or_below_removes_item(store, start, delta):
    store.add_to_cart(CROISSANT)
    store.add_to_cart(BAGUETTE, start)

    store.add_to_cart(BAGUETTE, delta)

    assert [(i.id, i.quantity) for i in store.get_cart()] == [("croissant", 1)]
    assert store.get_cart_total() == pytest.approx(3.5)


def test_update_overwrites_quantity(store):
    store.add_to_cart(CROISSANT)
    store.update_cart_item("croissant", 5)

    assert store.get_cart()[0].quantity == 5
    assert store.get_cart_total() == pytest.approx(17.5)


@pytest.mark.parametrize("quantity", [0, -1])
def test_update_to_non_positive_removes(store, quantity):
    store.add_to_cart(CROISSANT)
    store.add_to_cart(BAGUETTE)

    store.update_cart_item("croissant", quantity)

    assert [i.id for i in store.get_cart()] == ["baguette"]


def test_update_unknown_item_is_noop(store):
    calls = []
    store.add_to_cart(CROISSANT)
    store.subscribe(calls.append)

    store.update_cart_item("missing", 4)

    assert calls == []
    assert store.get_cart_item_count() == 1


def test_remove_notifies_even_without_match(store):
    calls = []
    store.subscribe(calls.append)

    store.remove_from_cart("missing")

    assert calls == [[]]


def test_clear_cart_deletes_key():
    storage = MemoryStorage()
    store = CartStore(storage)
    store.add_to_cart(CROISSANT)

    store.clear_cart()

    assert storage.get(CART_KEY) is None
    assert store.get_cart() == []


def test_every_mutation_notifies_with_new_cart(store):
    seen = []
    unsubscribe = store.subscribe(lambda cart: seen.append(sum(i.quantity for i in cart)))

    store.add_to_cart(CROISSANT)
    store.add_to_cart(CROISSANT)
    store.update_cart_item("croissant", 7)
    store.remove_from_cart("croissant")
    store.clear_cart()
    unsubscribe()
    store.add_to_cart(BAGUETTE)

    assert seen == [1, 2, 7, 0, 0]


def test_totals_follow_mixed_operations(store):
    store.add_to_cart(CROISSANT, 2)
    store.add_to_cart(BAGUETTE, 1)
    store.add_to_cart(BAGUETTE, 2)
    store.update_cart_item("croissant", 1)
    store.remove_from_cart("missing")

    cart = store.get_cart()
    assert store.get_cart_total() == pytest.approx(sum(i.price * i.quantity for i in cart))
    assert store.get_cart_item_count() == sum(i.quantity for i in cart) == 4


def test_stored_value_is_json_array():
    storage = MemoryStorage()
    CartStore(storage).add_to_cart(CROISSANT, 2)

    data = json.loads(storage.get(CART_KEY))
    assert data == [{"id": "croissant", "name": "Croissant", "price": 3.5,
                     "quantity": 2, "image_url": None}]


def test_corrupt_storage_reads_as_empty():
    storage = MemoryStorage()
    storage.set(CART_KEY, "{not json")
    assert CartStore(storage).get_cart() == []


def test_file_storage_persists_across_stores(tmp_path):
    CartStore(FileStorage(tmp_path)).add_to_cart(CROISSANT, 2)

    reopened = CartStore(FileStorage(tmp_path))
    assert reopened.get_cart_item_count() == 2

    reopened.clear_cart()
    assert not (tmp_path / f"{CART_KEY}.json").exists()
