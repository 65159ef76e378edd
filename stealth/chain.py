"""In-process execution environment: native balances, tokens and rollback.

Every ledger entry point runs inside ``Chain.transaction()``. The context
snapshots native balances, every registered token and every attached
participant (the ledger's own stores) and restores all of them if the call
raises, so a call either commits completely or leaves no trace.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Protocol

from .addresses import normalize_address
from .tokens import ERC20, TokenError

logger = logging.getLogger(__name__)


class Snapshottable(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...


class Chain:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._native: Dict[str, int] = {}
        self._tokens: Dict[str, ERC20] = {}
        self._participants: List[Snapshottable] = []
        self._depth = 0

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    def add_token(self, token: ERC20) -> ERC20:
        with self._lock:
            self._tokens[normalize_address(token.address)] = token
        return token

    def token(self, address: str) -> Optional[ERC20]:
        with self._lock:
            return self._tokens.get(normalize_address(address))

    def attach(self, participant: Snapshottable) -> None:
        with self._lock:
            if participant not in self._participants:
                self._participants.append(participant)

    # ------------------------------------------------------------------
    # Native currency
    # ------------------------------------------------------------------
    def native_balance(self, address: str) -> int:
        with self._lock:
            return self._native.get(normalize_address(address), 0)

    def fund(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        address = normalize_address(address)
        with self._lock:
            self._native[address] = self._native.get(address, 0) + amount

    def send_native(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise TokenError("native transfer amount must be non-negative")
        sender = normalize_address(sender)
        recipient = normalize_address(recipient)
        with self._lock:
            balance = self._native.get(sender, 0)
            if balance < amount:
                raise TokenError(f"insufficient native balance for {sender}")
            self._native[sender] = balance - amount
            self._native[recipient] = self._native.get(recipient, 0) + amount

    # ------------------------------------------------------------------
    # Atomicity
    # ------------------------------------------------------------------
    def _snapshot(self) -> Dict[str, Any]:
        return {
            "native": dict(self._native),
            "tokens": {address: token.snapshot() for address, token in self._tokens.items()},
            "participants": [participant.snapshot() for participant in self._participants],
        }

    def _restore(self, saved: Dict[str, Any]) -> None:
        self._native = dict(saved["native"])
        for address, state in saved["tokens"].items():
            self._tokens[address].restore(state)
        for participant, state in zip(self._participants, saved["participants"]):
            participant.restore(state)

    @contextmanager
    def transaction(self) -> Iterator["Chain"]:
        """Run a call atomically; nested calls revert only their own effects."""
        with self._lock:
            saved = self._snapshot()
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._restore(saved)
                logger.debug("Reverted call at depth %s", self._depth)
                raise
            finally:
                self._depth -= 1

    @property
    def depth(self) -> int:
        return self._depth
