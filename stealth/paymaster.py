"""Gas sponsorship policy for relayed withdrawals.

Only withdrawals from the ledger are sponsored, and only for senders that
currently hold tokens in custody; everything else is refused.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .addresses import normalize_address, same_address
from .errors import MSG_NOT_OWNER, AuthorizationError
from .forwarder import ForwarderError, ForwardRequest, decode_call
from .ledger import StealthLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SponsorDecision:
    accepted: bool
    reason: str = ""


class StealthPaymaster:
    def __init__(self, ledger: StealthLedger, owner: str, relay_hub: Optional[str] = None) -> None:
        self.ledger = ledger
        self.owner = normalize_address(owner)
        self.relay_hub = normalize_address(relay_hub) if relay_hub else None

    def set_relay_hub(self, caller: str, relay_hub: str) -> None:
        if not same_address(caller, self.owner):
            raise AuthorizationError(MSG_NOT_OWNER)
        self.relay_hub = normalize_address(relay_hub)
        logger.info("Paymaster relay hub set to %s", self.relay_hub)

    def pre_relayed_call(self, request: ForwardRequest) -> SponsorDecision:
        if self.relay_hub is None:
            return SponsorDecision(False, "Paymaster relay hub not configured")
        if not same_address(request.to, self.ledger.address):
            return SponsorDecision(False, "Paymaster only sponsors the stealth ledger")
        if request.value:
            return SponsorDecision(False, "Paymaster does not sponsor value transfers")
        try:
            method, _ = decode_call(request.data)
        except ForwarderError as exc:
            return SponsorDecision(False, str(exc))
        if method != "withdraw":
            return SponsorDecision(False, "Paymaster only sponsors withdrawals")
        if not self.ledger.has_withdrawable(request.from_):
            return SponsorDecision(False, "Nothing to withdraw for sender")
        return SponsorDecision(True)
