"""ERC20 interface consumed by the ledger plus an in-process token double."""
from __future__ import annotations

import logging
from typing import Any, Dict, Protocol, Tuple

from .addresses import normalize_address

logger = logging.getLogger(__name__)


class TokenError(RuntimeError):
    """Raised by a token when a transfer cannot be performed."""


class ERC20(Protocol):
    @property
    def address(self) -> str: ...

    def balance_of(self, owner: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def approve(self, owner: str, spender: str, amount: int) -> bool: ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool: ...

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool: ...

    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...


class LocalToken:
    """Minimal standard ERC20 kept in memory.

    The calling account is always passed explicitly (``sender``/``spender``),
    mirroring ``msg.sender`` for the token contract.
    """

    def __init__(self, address: str, name: str = "Token", symbol: str = "TKN", decimals: int = 18) -> None:
        self.address = normalize_address(address)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.total_supply = 0
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}

    def __repr__(self) -> str:
        return f"LocalToken({self.symbol} @ {self.address})"

    def balance_of(self, owner: str) -> int:
        return self._balances.get(normalize_address(owner), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((normalize_address(owner), normalize_address(spender)), 0)

    def mint(self, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        recipient = normalize_address(recipient)
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        self.total_supply += amount

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        self._allowances[(normalize_address(owner), normalize_address(spender))] = amount
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        self._move(normalize_address(sender), normalize_address(recipient), amount)
        return True

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        owner = normalize_address(owner)
        spender = normalize_address(spender)
        allowed = self._allowances.get((owner, spender), 0)
        if allowed < amount:
            raise TokenError(f"{self.symbol}: transfer amount exceeds allowance")
        self._move(owner, normalize_address(recipient), amount)
        self._allowances[(owner, spender)] = allowed - amount
        return True

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise TokenError(f"{self.symbol}: negative transfer amount")
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise TokenError(f"{self.symbol}: transfer amount exceeds balance")
        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        logger.debug("%s transfer %s -> %s amount=%s", self.symbol, sender, recipient, amount)

    def snapshot(self) -> Tuple[Dict[str, int], Dict[Tuple[str, str], int], int]:
        return dict(self._balances), dict(self._allowances), self.total_supply

    def restore(self, state: Tuple[Dict[str, int], Dict[Tuple[str, str], int], int]) -> None:
        balances, allowances, total_supply = state
        self._balances = dict(balances)
        self._allowances = dict(allowances)
        self.total_supply = total_supply
