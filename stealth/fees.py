"""Protocol fee configuration and escrow."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from .access import Roles
from .chain import Chain
from .errors import AssetTransferError, InsufficientAllowanceError
from .tokens import ERC20, TokenError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Collection:
    fee_taker: str
    fee_amount: int
    toll_amount: int


class FeeAccount:
    """Holds the fee settings and the fees paid since the last collection.

    ``escrow`` counts fee tokens, ``toll_escrow`` counts native currency
    retained from token payments. Both are swept to the fee taker together.
    """

    def __init__(
        self,
        chain: Chain,
        holder: str,
        fee_token: ERC20,
        roles: Roles,
        protocol_fee: int,
        native_toll: int = 0,
    ) -> None:
        if protocol_fee < 0 or native_toll < 0:
            raise ValueError("fees must be non-negative")
        self.chain = chain
        self.holder = holder
        self.fee_token = fee_token
        self.roles = roles
        self.protocol_fee = int(protocol_fee)
        self.native_toll = int(native_toll)
        self.escrow = 0
        self.toll_escrow = 0

    def set_fee(self, caller: str, amount: int) -> None:
        self.roles.require_owner(caller)
        if amount < 0:
            raise ValueError("protocol fee must be non-negative")
        previous = self.protocol_fee
        self.protocol_fee = int(amount)
        logger.info("Protocol fee updated %s -> %s", previous, self.protocol_fee)

    def ensure_allowance(self, payer: str) -> None:
        allowed = self.fee_token.allowance(payer, self.holder)
        if allowed < self.protocol_fee:
            raise InsufficientAllowanceError()

    def charge_fee(self, payer: str) -> int:
        """Pull the current protocol fee from ``payer`` into escrow."""
        self.ensure_allowance(payer)
        fee = self.protocol_fee
        self.escrow += fee
        try:
            ok = self.fee_token.transfer_from(self.holder, payer, self.holder, fee)
        except TokenError as exc:
            raise AssetTransferError() from exc
        if ok is False:
            raise AssetTransferError()
        return fee

    def accrue_toll(self, amount: int) -> None:
        self.toll_escrow += int(amount)

    def collect(self, caller: str) -> Collection:
        self.roles.require_fee_manager(caller)
        fee_amount, toll_amount = self.escrow, self.toll_escrow
        self.escrow = 0
        self.toll_escrow = 0
        fee_taker = self.roles.fee_taker
        try:
            ok = self.fee_token.transfer(self.holder, fee_taker, fee_amount)
            if toll_amount:
                self.chain.send_native(self.holder, fee_taker, toll_amount)
        except TokenError as exc:
            raise AssetTransferError() from exc
        if ok is False:
            raise AssetTransferError()
        logger.info(
            "Collected fees to %s (fee_token=%s native=%s)", fee_taker, fee_amount, toll_amount
        )
        return Collection(fee_taker=fee_taker, fee_amount=fee_amount, toll_amount=toll_amount)

    def snapshot(self) -> Tuple[int, int, int, int]:
        return self.protocol_fee, self.native_toll, self.escrow, self.toll_escrow

    def restore(self, state: Tuple[int, int, int, int]) -> None:
        self.protocol_fee, self.native_toll, self.escrow, self.toll_escrow = state
