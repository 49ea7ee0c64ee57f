"""Order error types."""

class OrderError(Exception):
    """Base class for order-related errors."""
    pass

class OrderNotFoundError(OrderError):
    """Raised when an offer event arrives for an order that was never created."""
    pass

class ShopListingMissingError(OrderError):
    """Raised when an offer event arrives for a shop without a listing id."""
    pass

class MissingEncryptedDataError(OrderError):
    """Raised when an offer document has no encrypted payload."""
    def __init__(self, message: str = "No encrypted data found"):
        super().__init__(message)
