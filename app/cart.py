"""
Shopper cart kept in a local key-value store.

The cart lives under a single key as a JSON array of items. Storage is
injected so the same store works over memory (tests, one-off scripts) or a
directory on disk. Every mutation is broadcast to subscribers.
"""
import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

from app.logger import get_logger

logger = get_logger(__name__)

CART_KEY = "bakery-cart"


@dataclass
class CartItem:
    id: str
    name: str
    price: float
    quantity: int = 1
    image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "CartItem":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            price=data.get("price", 0),
            quantity=int(data.get("quantity", 1)),
            image_url=data.get("image_url"),
        )


class CartStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileStorage:
    """One JSON file per key inside ``directory``."""

    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self._path(key).write_text(value, encoding="utf-8")

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


CartListener = Callable[[List[CartItem]], None]


class CartStore:
    def __init__(self, storage: Optional[CartStorage] = None, key: str = CART_KEY):
        self.storage = storage if storage is not None else MemoryStorage()
        self.key = key
        self._listeners: List[CartListener] = []

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self):
        cart = self.get_cart()
        for listener in list(self._listeners):
            listener(cart)

    def _save(self, cart: List[CartItem]):
        self.storage.set(self.key, json.dumps([asdict(i) for i in cart]))
        self._notify()

    def get_cart(self) -> List[CartItem]:
        raw = self.storage.get(self.key)
        if not raw:
            return []
        try:
            return [CartItem.from_dict(entry) for entry in json.loads(raw)]
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Discarding unreadable cart under '{self.key}': {e}")
            return []

    def add_to_cart(self, item, quantity: int = 1):
        data = asdict(item) if isinstance(item, CartItem) else dict(item)
        cart = self.get_cart()

        existing = next((c for c in cart if c.id == str(data["id"])), None)
        if existing:
            if existing.quantity + quantity <= 0:
                self.remove_from_cart(existing.id)
                return
            existing.quantity += quantity
        else:
            if quantity < 1:
                return
            data["quantity"] = quantity
            cart.append(CartItem.from_dict(data))

        self._save(cart)

    def update_cart_item(self, item_id: str, quantity: int):
        cart = self.get_cart()
        item = next((c for c in cart if c.id == item_id), None)
        if not item:
            return

        if quantity <= 0:
            self.remove_from_cart(item_id)
            return

        item.quantity = quantity
        self._save(cart)

    def remove_from_cart(self, item_id: str):
        self._save([c for c in self.get_cart() if c.id != item_id])

    def clear_cart(self):
        self.storage.remove(self.key)
        self._notify()

    def get_cart_total(self) -> float:
        return sum(i.price * i.quantity for i in self.get_cart())

    def get_cart_item_count(self) -> int:
        return sum(i.quantity for i in self.get_cart())
