"""
Errors raised by the signing and spending state machines.

State machines catch these and keep them as their warning; only the pure
helpers let them propagate.
"""

from __future__ import annotations

from revaultd_client.backend import DaemonError


class VaultError(Exception):
    """Base class of locally resolved errors."""

    message = "unexpected error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def __str__(self) -> str:
        return self.message


class DecodeError(VaultError):
    message = "Please enter valid PSBT"


class IdentityMismatch(VaultError):
    message = "PSBT is not the targeted transaction to sign"


class ValidationError(VaultError):
    message = "invalid input"


class EmptySelection(VaultError):
    message = "no vault selected"


class ChainOrderError(VaultError):
    message = "revocation transactions must be signed in order"


__all__ = [
    "ChainOrderError",
    "DaemonError",
    "DecodeError",
    "EmptySelection",
    "IdentityMismatch",
    "ValidationError",
    "VaultError",
]
