"""
bantah.errors — Domain Error Taxonomy
======================================

Services raise these; ``bantah.api.main`` turns them into JSON responses of
the shape ``{"message": ..., "error": ...}`` with the class's status code.
"""

from __future__ import annotations


class BantahError(Exception):
    """Base class for every user-visible failure."""

    status_code: int = 400
    code: str = "bad_request"
    default_message: str = "Request could not be completed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "error": self.code}


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
class MissingCredential(BantahError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authorization header missing"


class InvalidToken(BantahError):
    status_code = 401
    code = "unauthorized"
    default_message = "Invalid token or user ID not found"


class UserResolutionFailure(BantahError):
    status_code = 500
    code = "internal_error"
    default_message = "Failed to create or retrieve user"


class PermissionDenied(BantahError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to do that"


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------
class InvalidAmount(BantahError):
    code = "invalid_amount"
    default_message = "Amount must be greater than zero"


class InsufficientFunds(BantahError):
    code = "insufficient_funds"
    default_message = "Insufficient balance"


# ---------------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------------
class ValidationFailed(BantahError):
    code = "validation_error"


class NotFound(BantahError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class AlreadyJoined(BantahError):
    status_code = 409
    code = "already_joined"
    default_message = "You have already joined this challenge"


class InvalidTransition(BantahError):
    status_code = 409
    code = "invalid_transition"
