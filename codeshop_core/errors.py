"""Exception hierarchy for Codeshop."""

from __future__ import annotations


class CodeshopError(Exception):
    """Base class for all Codeshop errors."""


class StoreError(CodeshopError):
    """Raised when a tenant store operation cannot be completed."""


class ProductExistsError(StoreError):
    """A product with the same code already exists in the tenant."""

    def __init__(self, code: str) -> None:
        super().__init__(f"Product with code {code!r} already exists")
        self.code = code


class CodeExistsError(StoreError):
    """The code is already stored in the tenant database."""

    def __init__(self, code: str) -> None:
        super().__init__("Code already exists in the database")
        self.code = code


class TargetGone(CodeshopError):
    """The channel or message behind a live display no longer exists."""

    def __init__(self, what: str, target_id: int) -> None:
        super().__init__(f"{what} {target_id} no longer exists")
        self.what = what
        self.target_id = target_id


class InsufficientStockError(StoreError):
    """Not enough unused codes to fulfil a request."""

    def __init__(self, product: str, requested: int, available: int) -> None:
        super().__init__(
            f"Product {product} has {available} code(s) left, {requested} requested"
        )
        self.product = product
        self.requested = requested
        self.available = available


class OrderStateError(StoreError):
    """The order is missing or no longer pending."""
