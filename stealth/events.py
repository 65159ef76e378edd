"""PaymentNote / Withdrawal events, their EVM log encoding and the event journal."""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import keccak

from .addresses import normalize_address
from .notes import Note, PackedNote, UnpackedNote, note_from_fields

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentNoteEvent:
    receiver: Union[bytes, str]
    token: str
    amount: int
    note: Note

    name = "PaymentNote"

    def abi_inputs(self) -> List[Tuple[str, str]]:
        receiver_type = "bytes32" if isinstance(self.receiver, (bytes, bytearray)) else "address"
        return [("receiver", receiver_type), ("token", "address"), ("amount", "uint256")] + self.note.abi_types()

    def args(self) -> Dict[str, Any]:
        return {
            "receiver": self.receiver,
            "token": self.token,
            "amount": self.amount,
            **self.note.event_fields(),
        }


@dataclass(frozen=True)
class WithdrawalEvent:
    receiver: str
    interim: str
    amount: int
    token: str

    name = "Withdrawal"

    @staticmethod
    def abi_inputs() -> List[Tuple[str, str]]:
        return [("receiver", "address"), ("interim", "address"), ("amount", "uint256"), ("token", "address")]

    def args(self) -> Dict[str, Any]:
        return {
            "receiver": self.receiver,
            "interim": self.interim,
            "amount": self.amount,
            "token": self.token,
        }


Event = Union[PaymentNoteEvent, WithdrawalEvent]


@dataclass(frozen=True)
class LogEntry:
    address: str
    topics: Tuple[bytes, ...]
    data: bytes


def event_signature(name: str, inputs: Sequence[Tuple[str, str]]) -> str:
    return f"{name}({','.join(abi_type for _, abi_type in inputs)})"


def event_topic(name: str, inputs: Sequence[Tuple[str, str]]) -> bytes:
    return keccak(text=event_signature(name, inputs))


def encode_log(event: Event, emitter: str) -> LogEntry:
    """Encode ``event`` the way the EVM logs a Solidity event with no indexed args."""
    inputs = event.abi_inputs()
    args = event.args()
    values = [args[name] for name, _ in inputs]
    return LogEntry(
        address=normalize_address(emitter),
        topics=(event_topic(event.name, inputs),),
        data=abi_encode([abi_type for _, abi_type in inputs], values),
    )


def _known_layouts() -> Dict[bytes, Tuple[str, List[Tuple[str, str]]]]:
    head = [("token", "address"), ("amount", "uint256")]
    layouts: Dict[bytes, Tuple[str, List[Tuple[str, str]]]] = {}
    for receiver_type in ("bytes32", "address"):
        for note_cls in (PackedNote, UnpackedNote):
            inputs = [("receiver", receiver_type)] + head + note_cls.abi_types()
            layouts[event_topic("PaymentNote", inputs)] = ("PaymentNote", inputs)
    withdrawal = WithdrawalEvent.abi_inputs()
    layouts[event_topic("Withdrawal", withdrawal)] = ("Withdrawal", withdrawal)
    return layouts


_LAYOUTS = _known_layouts()


def decode_log(entry: LogEntry) -> Event:
    if not entry.topics or entry.topics[0] not in _LAYOUTS:
        raise ValueError("Unknown event topic")
    name, inputs = _LAYOUTS[entry.topics[0]]
    values = abi_decode([abi_type for _, abi_type in inputs], entry.data)
    decoded: Dict[str, Any] = {}
    for (field_name, abi_type), value in zip(inputs, values):
        decoded[field_name] = normalize_address(value) if abi_type == "address" else value
    if name == "Withdrawal":
        return WithdrawalEvent(**decoded)
    receiver = decoded.pop("receiver")
    token = decoded.pop("token")
    amount = decoded.pop("amount")
    return PaymentNoteEvent(receiver=receiver, token=token, amount=amount, note=note_from_fields(decoded))


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


def event_to_dict(event: Event) -> Dict[str, Any]:
    return {"event": event.name, "args": {key: _jsonable(value) for key, value in event.args().items()}}


class EventLog:
    """Events emitted by committed calls, optionally mirrored to a JSONL journal."""

    def __init__(self, journal_path: Optional[Path] = None) -> None:
        self.journal_path = journal_path
        self._lock = threading.RLock()
        self._events: List[Event] = []
        self._journaled = 0

    def emit(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    def events(self, name: Optional[str] = None) -> List[Event]:
        with self._lock:
            if name is None:
                return list(self._events)
            return [event for event in self._events if event.name == name]

    def last(self) -> Optional[Event]:
        with self._lock:
            return self._events[-1] if self._events else None

    def snapshot(self) -> int:
        with self._lock:
            return len(self._events)

    def restore(self, state: int) -> None:
        with self._lock:
            del self._events[state:]
            self._journaled = min(self._journaled, state)

    def commit(self) -> None:
        """Append events not yet journaled. Called once the outermost call has committed."""
        with self._lock:
            pending = self._events[self._journaled:]
            self._journaled = len(self._events)
        if not pending or not self.journal_path:
            return
        try:
            self.journal_path.parent.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now(timezone.utc).isoformat()
            with self.journal_path.open("a", encoding="utf-8") as handle:
                for event in pending:
                    entry = {"timestamp": timestamp, **event_to_dict(event)}
                    json.dump(entry, handle, separators=(",", ":"))
                    handle.write("\n")
        except Exception as exc:
            # Journal logging is best-effort; avoid impacting ledger calls.
            logger.error("Failed to append event journal %s: %s", self.journal_path, exc)
