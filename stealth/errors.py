"""Revert conditions raised by the stealth ledger.

Each error carries the revert reason the deployed contract reports, so callers
can match on the message the same way they would against a chain receipt.
"""
from __future__ import annotations

from typing import Optional

REVERT_PREFIX = "StealthSwap: "

MSG_NOT_OWNER = "Ownable: caller is not the owner"
MSG_WRONG_FEE_MANAGER = REVERT_PREFIX + "Wrong Fee Manager"
MSG_BELOW_PROTOCOL_FEE = REVERT_PREFIX + "Must have value higher than the protocol fee"
MSG_BELOW_ETHER_TOLL = REVERT_PREFIX + "Must have value greater than or equal to ether protocol fee"
MSG_ADDRESS_REUSED = REVERT_PREFIX + "stealth address cannot be reused"
MSG_UNAVAILABLE = REVERT_PREFIX + "Unavailable tokens for withdrawal"
MSG_FEE_ALLOWANCE = REVERT_PREFIX + "You must provide allowance to pay the protocol fee"
MSG_TRANSFER_FAILED = REVERT_PREFIX + "Transfer failed"


class StealthError(Exception):
    """Base class for every ledger revert."""

    default_reason = "StealthSwap: reverted"
    status_code = 400

    def __init__(self, reason: Optional[str] = None, status_code: Optional[int] = None) -> None:
        self.reason = reason or self.default_reason
        super().__init__(self.reason)
        if status_code is not None:
            self.status_code = status_code


class AuthorizationError(StealthError):
    default_reason = MSG_NOT_OWNER
    status_code = 403


class ReuseError(StealthError):
    default_reason = MSG_ADDRESS_REUSED
    status_code = 409


class UnavailableError(StealthError):
    default_reason = MSG_UNAVAILABLE
    status_code = 404


class InsufficientPaymentError(StealthError):
    default_reason = MSG_BELOW_PROTOCOL_FEE
    status_code = 402


class InsufficientAllowanceError(StealthError):
    default_reason = MSG_FEE_ALLOWANCE
    status_code = 402


class AssetTransferError(StealthError):
    default_reason = MSG_TRANSFER_FAILED
    status_code = 422


__all__ = [
    "AssetTransferError",
    "AuthorizationError",
    "InsufficientAllowanceError",
    "InsufficientPaymentError",
    "MSG_ADDRESS_REUSED",
    "MSG_BELOW_ETHER_TOLL",
    "MSG_BELOW_PROTOCOL_FEE",
    "MSG_FEE_ALLOWANCE",
    "MSG_NOT_OWNER",
    "MSG_TRANSFER_FAILED",
    "MSG_UNAVAILABLE",
    "MSG_WRONG_FEE_MANAGER",
    "REVERT_PREFIX",
    "ReuseError",
    "StealthError",
    "UnavailableError",
]
