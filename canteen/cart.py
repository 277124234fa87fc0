from __future__ import annotations

from fastapi import Request, Response
from itsdangerous import BadSignature
from sqlmodel import Session

from .auth import serializer
from .errors import CartError
from .models import CartItem, MenuItem

CART_COOKIE_NAME = "canteen_cart"


class Cart:
    """Per-session mapping of menu item to quantity.

    Lines keep insertion order. A quantity of zero is never stored: setting
    one removes the line.
    """

    def __init__(self, lines: list[CartItem] | None = None):
        self.lines: list[CartItem] = list(lines or [])

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self):
        return iter(self.lines)

    def get(self, item_id: int) -> CartItem | None:
        for line in self.lines:
            if line.id == item_id:
                return line
        return None

    def add(self, item: MenuItem, quantity: int = 1) -> CartItem:
        if quantity < 1:
            raise CartError("Quantity must be at least 1")
        if not item.is_available:
            raise CartError(f"{item.name} is currently unavailable")
        existing = self.get(item.id)
        if existing:
            existing.quantity += quantity
            return existing
        line = CartItem.model_validate({**item.model_dump(), "quantity": quantity})
        self.lines.append(line)
        return line

    def set_quantity(self, item_id: int, quantity: int) -> None:
        if quantity <= 0:
            self.remove(item_id)
            return
        line = self.get(item_id)
        if line:
            line.quantity = quantity

    def remove(self, item_id: int) -> None:
        self.lines = [line for line in self.lines if line.id != item_id]

    def clear(self) -> None:
        self.lines = []

    def total(self) -> float:
        return sum(line.price * line.quantity for line in self.lines)

    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def snapshot(self) -> list[dict]:
        return [line.model_dump() for line in self.lines]

    # ---- cookie persistence ----

    def to_payload(self) -> list[dict]:
        return [{"id": line.id, "quantity": line.quantity} for line in self.lines]

    @classmethod
    def from_payload(cls, session: Session, payload: list[dict]) -> "Cart":
        cart = cls()
        for entry in payload:
            try:
                item_id = int(entry["id"])
                quantity = int(entry["quantity"])
            except (KeyError, TypeError, ValueError):
                continue
            item = session.get(MenuItem, item_id)
            if not item or not item.is_available or quantity < 1:
                continue
            cart.lines.append(CartItem.model_validate({**item.model_dump(), "quantity": quantity}))
        return cart


def load_cart(request: Request, session: Session) -> Cart:
    token = request.cookies.get(CART_COOKIE_NAME)
    if not token:
        return Cart()
    try:
        payload = serializer.loads(token, salt="cart")
    except BadSignature:
        return Cart()
    if not isinstance(payload, list):
        return Cart()
    return Cart.from_payload(session, payload)


def save_cart(response: Response, cart: Cart) -> None:
    if not cart.lines:
        response.delete_cookie(CART_COOKIE_NAME)
        return
    response.set_cookie(
        CART_COOKIE_NAME,
        serializer.dumps(cart.to_payload(), salt="cart"),
        httponly=True,
        samesite="lax",
        secure=False,  # set True behind HTTPS
    )
