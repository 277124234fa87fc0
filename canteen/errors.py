from __future__ import annotations


class CanteenError(Exception):
    """Base for failures a user can fix by retrying with different input."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CartError(CanteenError):
    pass


class MenuError(CanteenError):
    pass


class OrderError(CanteenError):
    pass


class IllegalTransition(OrderError):
    pass


class ReviewError(CanteenError):
    pass


class AuthError(CanteenError):
    pass
