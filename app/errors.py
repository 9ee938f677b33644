class StorefrontError(Exception):
    """Base class for errors surfaced to storefront callers."""


class ValidationError(StorefrontError):
    pass


class InvalidTransitionError(ValidationError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move order from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class NotFoundError(StorefrontError):
    pass


class PersistenceError(StorefrontError):
    pass


class GatewayError(StorefrontError):
    pass


class SignatureError(StorefrontError):
    pass
