import os
from pathlib import Path
from dotenv import load_dotenv
import stripe

from app.money import to_cents

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

stripe.api_key = os.getenv("STRIPE_SECRET_KEY")

SITE_URL = os.getenv("SITE_URL", "http://localhost:3000").rstrip("/")
CURRENCY = os.getenv("CURRENCY", "usd")


def build_line_items(items, currency: str = CURRENCY):
    return [
        {
            "price_data": {
                "currency": currency,
                "product_data": {
                    "name": item.name,
                    "images": [item.image_url] if item.image_url else [],
                },
                "unit_amount": to_cents(item.price),
            },
            "quantity": item.quantity,
        }
        for item in items
    ]


def create_checkout_session(order_id: str, items, customer_email: str):
    return stripe.checkout.Session.create(
        payment_method_types=["card"],
        line_items=build_line_items(items),
        mode="payment",
        customer_email=customer_email,
        success_url=f"{SITE_URL}/order/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{SITE_URL}/order/cart",
        metadata={"orderId": order_id},
        idempotency_key=f"checkout-{order_id}",
    )


def construct_event(payload: bytes, signature: str):
    return stripe.Webhook.construct_event(
        payload,
        signature,
        os.getenv("STRIPE_WEBHOOK_SECRET")
    )
