# errors.py


class StorefrontError(Exception):
    """Base class for all storefront errors."""


class InvalidQuantityError(StorefrontError, ValueError):
    """Quantity is not a positive integer."""


class UnknownVariantError(StorefrontError, ValueError):
    """Requested variant label does not belong to the product."""


class PersistenceError(StorefrontError):
    """Local storage could not be read or written."""


class ApiError(StorefrontError):
    """
    Remote API failure.
    status is the HTTP status, or None when the request never got a response.
    message is the server's message, passed through verbatim.
    """
    def __init__(self, status, message):
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self):
        if self.status is None:
            return self.message
        return f"{self.message} (HTTP {self.status})"


class CheckoutBlockedError(StorefrontError):
    """Order submission attempted without a cleared reconciliation."""
    def __init__(self, message, report=None):
        super().__init__(message)
        self.report = report


class OrderNotCancellableError(StorefrontError):
    """Order is already shipped, delivered or cancelled."""
