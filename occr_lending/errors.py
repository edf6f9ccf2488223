"""Typed rejections raised by the lending engine."""
from __future__ import annotations


class LendingError(Exception):
    """Base class for every rejected engine operation."""

    code = "lending_error"


class Unauthorized(LendingError):
    code = "unauthorized"


class IdentityNotVerified(LendingError):
    code = "identity_not_verified"


class ExceedsLTV(LendingError):
    code = "exceeds_ltv"


class InsufficientBalance(LendingError):
    code = "insufficient_balance"


class InvalidAmount(LendingError):
    """Zero, negative, or otherwise out-of-range amount."""

    code = "invalid_amount"


class NotUnderwater(LendingError):
    code = "not_underwater"


class StaleOrInvalidPrice(LendingError):
    code = "stale_or_invalid_price"


class AlreadyConfigured(LendingError):
    """A one-time wiring call was made a second time."""

    code = "already_configured"


class ReentrantCall(LendingError):
    """A pool operation was entered while another one was in flight."""

    code = "reentrant_call"
