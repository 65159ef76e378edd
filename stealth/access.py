"""Role checks and meta-transaction sender resolution."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .addresses import ZERO_ADDRESS, normalize_address, same_address
from .errors import MSG_NOT_OWNER, MSG_WRONG_FEE_MANAGER, AuthorizationError

RELAY_RECIPIENT_VERSION = "2.0.0"


@dataclass(frozen=True)
class Call:
    """Raw invocation context: the immediate sender, attached value and calldata."""

    sender: str
    value: int = 0
    data: bytes = field(default=b"", repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", normalize_address(self.sender))
        if self.value < 0:
            raise ValueError("value must be non-negative")

    @classmethod
    def relayed(cls, forwarder: str, sender: str, data: bytes = b"", value: int = 0) -> "Call":
        """Build the call a trusted forwarder makes on behalf of ``sender``."""
        suffix = bytes.fromhex(normalize_address(sender)[2:])
        return cls(sender=forwarder, value=value, data=bytes(data) + suffix)


def resolve_sender(call: Call, trusted_forwarder: Optional[str]) -> str:
    """Return the effective caller of ``call``.

    Calls arriving from the trusted forwarder carry the original sender in the
    last 20 bytes of calldata; everything else is attributed to the immediate
    sender. Signature checks are the forwarder's job.
    """
    if trusted_forwarder and same_address(call.sender, trusted_forwarder) and len(call.data) >= 20:
        return normalize_address(call.data[-20:])
    return call.sender


class Roles:
    """Principals allowed to configure the ledger and sweep fees."""

    def __init__(
        self,
        owner: str,
        fee_manager: str,
        fee_taker: str,
        trusted_forwarder: Optional[str] = None,
    ) -> None:
        self.owner = normalize_address(owner)
        self.fee_manager = normalize_address(fee_manager)
        self.fee_taker = normalize_address(fee_taker)
        self.trusted_forwarder = (
            normalize_address(trusted_forwarder) if trusted_forwarder else None
        )

    def require_owner(self, caller: str) -> None:
        if not same_address(caller, self.owner):
            raise AuthorizationError(MSG_NOT_OWNER)

    def require_fee_manager(self, caller: str) -> None:
        if not same_address(caller, self.fee_manager):
            raise AuthorizationError(MSG_WRONG_FEE_MANAGER)

    def is_trusted_forwarder(self, address: str) -> bool:
        return same_address(address, self.trusted_forwarder)

    def set_forwarder(self, forwarder: Optional[str]) -> None:
        if not forwarder or same_address(forwarder, ZERO_ADDRESS):
            self.trusted_forwarder = None
        else:
            self.trusted_forwarder = normalize_address(forwarder)

    def snapshot(self) -> tuple:
        return self.owner, self.fee_manager, self.fee_taker, self.trusted_forwarder

    def restore(self, state: tuple) -> None:
        self.owner, self.fee_manager, self.fee_taker, self.trusted_forwarder = state
