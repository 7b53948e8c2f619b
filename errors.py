"""Exceptions raised by the storefront services.

Routes never build error responses themselves; ``main.py`` maps each class
below to a status code.
"""


class StoreError(Exception):
    """Base exception for all storefront errors."""

    pass


class InvalidRequestError(StoreError):
    """Raised when a request has the wrong shape or misses a required field."""

    pass


class InvalidIdError(InvalidRequestError):
    """Raised when an id is not a 24-character hexadecimal string."""

    def __init__(self, value: str, kind: str = "product"):
        self.value = value
        self.kind = kind
        super().__init__(f"Invalid {kind} ID format")


class InvalidOrderError(InvalidRequestError):
    pass


class NotFoundError(StoreError):
    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind.capitalize()} not found")


class PayloadRejectedError(StoreError):
    """Raised when an upload is too large or is not an image."""

    pass


class InvalidImageFormatError(StoreError):
    pass


class ImageFetchError(StoreError):
    def __init__(self, url: str):
        self.url = url
        super().__init__("Failed to fetch image from URL")


class StoreUnavailableError(StoreError):
    def __init__(self):
        super().__init__("Database not available")
