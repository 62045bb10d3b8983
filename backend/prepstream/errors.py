"""
Shared exception types.

UserFacingError carries a message that is safe to send to clients.
Any other exception is reported to clients with a generic message and
logged server-side.
"""
from typing import Optional


class UserFacingError(Exception):
    """Error whose message may be shown to the end user."""

    def __init__(self, public_message: str, detail: Optional[str] = None):
        self.public_message = public_message
        self.detail = detail
        super().__init__(detail or public_message)


class GenerationError(UserFacingError):
    """Model call finished without a usable result."""


class TierNotConfiguredError(UserFacingError):
    """No model is configured for the requested tier."""

    def __init__(self, tier: str, task: str):
        self.tier = tier
        self.task = task
        super().__init__(
            f'Model tier "{tier}" is not configured. '
            f"Please configure it before using {task}."
        )


class ProviderNotConfiguredError(UserFacingError):
    """The model provider is missing credentials."""


def public_message(error: BaseException, fallback: str) -> str:
    """Return a client-safe message for an exception."""
    if isinstance(error, UserFacingError):
        return error.public_message
    return fallback
