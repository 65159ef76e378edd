"""Per-stealth-address custody records."""
from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from .addresses import normalize_address
from .errors import ReuseError, UnavailableError


@dataclass(frozen=True)
class StealthRecord:
    asset: str
    amount: int
    used: bool = True
    custodied: bool = False
    withdrawn: bool = False

    @property
    def withdrawable(self) -> bool:
        return self.used and self.custodied and not self.withdrawn


class CustodyLedger:
    """Stealth address -> record. Records are created once and never removed."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: Dict[str, StealthRecord] = {}

    def is_used(self, stealth_address: str) -> bool:
        with self._lock:
            record = self._records.get(normalize_address(stealth_address))
            return bool(record and record.used)

    def get(self, stealth_address: str) -> Optional[StealthRecord]:
        with self._lock:
            return self._records.get(normalize_address(stealth_address))

    def ensure_unused(self, stealth_address: str) -> None:
        if self.is_used(stealth_address):
            raise ReuseError()

    def record_payment(
        self,
        stealth_address: str,
        asset: str,
        amount: int,
        *,
        custodied: bool,
    ) -> StealthRecord:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        key = normalize_address(stealth_address)
        with self._lock:
            if key in self._records:
                raise ReuseError()
            record = StealthRecord(
                asset=normalize_address(asset),
                amount=int(amount),
                used=True,
                custodied=custodied,
            )
            self._records[key] = record
            return record

    def clear_payment(self, stealth_address: str) -> Tuple[str, int]:
        key = normalize_address(stealth_address)
        with self._lock:
            record = self._records.get(key)
            if record is None or not record.withdrawable:
                raise UnavailableError()
            # The address stays marked used so it can never be funded again.
            self._records[key] = replace(record, amount=0, withdrawn=True)
            return record.asset, record.amount

    def custodied_amount(self, stealth_address: str) -> int:
        record = self.get(stealth_address)
        if record is None or not record.withdrawable:
            return 0
        return record.amount

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def snapshot(self) -> Dict[str, StealthRecord]:
        with self._lock:
            return dict(self._records)

    def restore(self, state: Dict[str, StealthRecord]) -> None:
        with self._lock:
            self._records = dict(state)
