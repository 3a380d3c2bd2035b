class StorefrontError(Exception):
    """Base class for every error raised by the storefront"""


class BackendError(StorefrontError):
    """A read or write against the backend data store failed"""


class AuthError(StorefrontError):
    """The auth service rejected a sign-in or sign-out"""


class RateLimitExceeded(StorefrontError):
    pass


class CheckoutError(StorefrontError):
    """Checkout did not complete. ``user_message`` is safe to show to the shopper."""

    def __init__(self, user_message: str):
        super().__init__(user_message)
        self.user_message = user_message


class CheckoutValidationError(CheckoutError):
    pass


class CheckoutInProgress(CheckoutError):
    pass


class CheckoutFailed(CheckoutError):
    pass
