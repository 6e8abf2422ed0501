# marketplace/domain/errors.py
"""
Error taxonomy for the checkout pipeline.

Validation and conflict errors carry the offending fields/items/vendors so
routers can return them as structured details. Permission problems are
plain PermissionError, as everywhere else in the service.
"""


class CheckoutValidationError(ValueError):
    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class NotFoundError(LookupError):
    pass


class EmptyCartError(ValueError):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InsufficientStockError(RuntimeError):
    """Stock shortfall found while adding to the cart or starting checkout."""

    def __init__(self, items: list[dict], message: str = "Some products are out of stock"):
        super().__init__(message)
        self.items = items


class VendorsUnavailableError(RuntimeError):
    """One or more vendors cannot deliver to the destination."""

    def __init__(self, vendors: list[dict], message: str = "Some vendors cannot deliver to this address"):
        super().__init__(message)
        self.vendors = vendors


class StockConflictError(RuntimeError):
    """Settlement-time stock re-check failed; nothing was persisted."""

    def __init__(self, items: list[dict], message: str = "Stock changed before settlement"):
        super().__init__(message)
        self.items = items
        self.reconciliation_required = False


class SettlementInProgressError(RuntimeError):
    pass


class LockUnavailableError(RuntimeError):
    """The settlement lock store cannot be reached; nothing was charged or settled."""


class InvalidTransitionError(RuntimeError):
    pass


class PaymentDeclinedError(RuntimeError):
    def __init__(self, message: str, raw: dict | None = None):
        super().__init__(message)
        self.raw = raw


class GatewayError(RuntimeError):
    def __init__(self, message: str, raw=None):
        super().__init__(message)
        self.raw = raw


class TransientGatewayError(GatewayError):
    """Looks like a gateway 5xx (HTML page, dropped connection); safe to retry."""
