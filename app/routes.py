from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.auth import optional_user, require_manager, verify_token
from app.checkout import checkout, create_session_for_order
from app.database import SessionLocal
from app.errors import (
    GatewayError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    StorefrontError,
    ValidationError,
)
from app.models import MenuItem
from app.order_status import set_order_status
from app.projector import dashboard_stats, list_invoices, list_orders, order_as_api, order_queue

router = APIRouter()


class CartLine(BaseModel):
    id: str
    name: str = ""
    price: float = 0
    quantity: int = 1
    image_url: Optional[str] = None


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[CartLine] = []
    customer_email: Optional[str] = Field(None, alias="customerEmail")
    total: Optional[float] = None


class SessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: Optional[str] = Field(None, alias="orderId")
    items: Optional[List[CartLine]] = None
    customer_email: Optional[str] = Field(None, alias="customerEmail")


class StatusUpdate(BaseModel):
    status: str


def status_for(error: StorefrontError) -> int:
    if isinstance(error, InvalidTransitionError):
        return 409
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    return 500


def checkout_error(error: StorefrontError) -> JSONResponse:
    if isinstance(error, GatewayError):
        message = str(error) or "Failed to create checkout session"
    elif isinstance(error, PersistenceError):
        message = "Failed to save order"
    else:
        message = str(error)
    return JSONResponse(status_code=status_for(error), content={"error": message})


@router.get("/menu")
def list_menu():
    db = SessionLocal()
    try:
        items = (
            db.query(MenuItem)
            .filter(MenuItem.available.is_(True))
            .order_by(MenuItem.category, MenuItem.name)
            .all()
        )
        return [
            {
                "id": i.id,
                "name": i.name,
                "description": i.description,
                "price": float(i.price),
                "image_url": i.image_url,
                "category": i.category,
            }
            for i in items
        ]
    finally:
        db.close()


@router.post("/checkout")
def checkout_api(request: CheckoutRequest, claims=Depends(optional_user)):
    db = SessionLocal()
    try:
        result = checkout(
            db,
            request.items,
            request.customer_email,
            user_id=claims.get("sub") if claims else None,
            client_total=request.total,
        )
    except StorefrontError as e:
        return checkout_error(e)
    finally:
        db.close()

    return {"orderId": result.order_id, "url": result.url}


@router.post("/api/stripe/create-checkout-session")
def create_checkout_session_api(request: SessionRequest):
    if not request.order_id or not request.items or not request.customer_email:
        return JSONResponse(status_code=400, content={"error": "Missing required fields"})

    db = SessionLocal()
    try:
        url = create_session_for_order(db, request.order_id, request.items, request.customer_email)
    except StorefrontError as e:
        return checkout_error(e)
    finally:
        db.close()

    return {"url": url}


@router.get("/orders/me")
def my_orders(
    start: Optional[date] = None,
    end: Optional[date] = None,
    offset: int = 0,
    limit: int = 20,
    claims=Depends(verify_token),
):
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or missing token")

    db = SessionLocal()
    try:
        result = list_orders(
            db, user_id=user_id, start=start, end=end, offset=offset, limit=limit
        )
    finally:
        db.close()

    return {"orders": result.items, "error": result.error}


@router.get("/invoices")
def my_invoices(claims=Depends(verify_token)):
    email = claims.get("email")
    if not email:
        raise HTTPException(status_code=400, detail="Token carries no email")

    db = SessionLocal()
    try:
        result = list_invoices(db, email)
    finally:
        db.close()

    return {"invoices": result.items, "error": result.error}


@router.get("/orders/queue")
def kitchen_queue(claims=Depends(require_manager)):
    db = SessionLocal()
    try:
        result = order_queue(db)
    finally:
        db.close()

    return {"orders": result.items, "error": result.error}


@router.patch("/orders/{order_id}/status")
def update_status(order_id: str, request: StatusUpdate, claims=Depends(require_manager)):
    db = SessionLocal()
    try:
        order = set_order_status(db, order_id, request.status)
        return order_as_api(order)
    except StorefrontError as e:
        db.rollback()
        raise HTTPException(status_code=status_for(e), detail=str(e))
    finally:
        db.close()


@router.get("/dashboard/stats")
def stats(claims=Depends(require_manager)):
    db = SessionLocal()
    try:
        return dashboard_stats(db)
    finally:
        db.close()
