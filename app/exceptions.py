"""
Error taxonomy for shop status evaluation and push delivery.
"""


class ShopServiceError(Exception):
    """Base class for errors raised by this service."""


class ConfigurationUnavailable(ShopServiceError):
    """The settings store could not be read while evaluating shop status.

    Callers fail open: the shop is reported as open.
    """


class InvalidSubscriptionData(ShopServiceError):
    """A subscribe/unsubscribe/verify request is missing its endpoint or keys."""


class StorageError(ShopServiceError):
    """A registry or delivery-log read/write failed."""


class PushSendError(ShopServiceError):
    """A single push delivery failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EndpointGone(PushSendError):
    """The push service reports the subscription no longer exists (404/410)."""


class TransientSendFailure(PushSendError):
    """Any other delivery failure, including timeouts. Not retried."""
