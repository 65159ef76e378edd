"""Minimal trusted forwarder for relayed (meta-transaction) ledger calls.

The forwarder checks an EIP-191 signature over the request, which names the
forwarder it was signed for, enforces one nonce per sender and then calls the
ledger with the sender appended to calldata, which is what
:func:`stealth.access.resolve_sender` reads back.
"""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple

from eth_abi import encode as abi_encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import keccak

from .access import Call
from .addresses import normalize_address, same_address
from .notes import note_from_fields

logger = logging.getLogger(__name__)

RELAYABLE_METHODS = frozenset(
    {
        "withdraw",
        "send_ether",
        "send_erc20",
        "set_protocol_fee",
        "collect_paid_fees",
        "set_forwarder",
        "transfer_ownership",
    }
)


class ForwarderError(RuntimeError):
    pass


def encode_call(method: str, params: Optional[Dict[str, Any]] = None) -> bytes:
    if method not in RELAYABLE_METHODS:
        raise ForwarderError(f"Method {method} cannot be relayed")
    payload = {"method": method, "params": params or {}}
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode_call(data: bytes) -> Tuple[str, Dict[str, Any]]:
    try:
        payload = json.loads(bytes(data).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ForwarderError("Request data is not a relayable call") from exc
    if not isinstance(payload, dict):
        raise ForwarderError("Request data is not a relayable call")
    method = str(payload.get("method") or "")
    params = payload.get("params") or {}
    if method not in RELAYABLE_METHODS or not isinstance(params, dict):
        raise ForwarderError(f"Method {method or '?'} cannot be relayed")
    return method, params


@dataclass(frozen=True)
class ForwardRequest:
    """A call signed by ``from_`` for one forwarder and one target."""

    from_: str
    to: str
    forwarder: str
    nonce: int
    data: bytes
    value: int = 0

    def request_hash(self) -> bytes:
        encoded = abi_encode(
            ["address", "address", "address", "uint256", "uint256", "bytes32"],
            [
                normalize_address(self.forwarder),
                normalize_address(self.from_),
                normalize_address(self.to),
                int(self.value),
                int(self.nonce),
                keccak(self.data),
            ],
        )
        return keccak(encoded)


def sign_request(request: ForwardRequest, private_key: Any) -> bytes:
    signed = Account.sign_message(encode_defunct(primitive=request.request_hash()), private_key)
    return bytes(signed.signature)


class Sponsor(Protocol):
    def pre_relayed_call(self, request: ForwardRequest) -> Any: ...


class Forwarder:
    def __init__(self, address: str) -> None:
        self.address = normalize_address(address)
        self._lock = threading.Lock()
        self._nonces: Dict[str, int] = {}

    def get_nonce(self, sender: str) -> int:
        with self._lock:
            return self._nonces.get(normalize_address(sender), 0)

    def verify(self, request: ForwardRequest, signature: bytes) -> bool:
        if not same_address(request.forwarder, self.address):
            return False
        if request.nonce != self.get_nonce(request.from_):
            return False
        try:
            recovered = Account.recover_message(
                encode_defunct(primitive=request.request_hash()),
                signature=signature,
            )
        except (ValueError, BadSignature, ValidationError):
            return False
        return same_address(recovered, request.from_)

    def execute(
        self,
        request: ForwardRequest,
        signature: bytes,
        target: Any,
        paymaster: Optional[Sponsor] = None,
    ) -> Any:
        """Verify ``request`` and invoke the decoded method on ``target``.

        The nonce is consumed before the target runs, so a reverted call still
        uses it up.
        """
        if not same_address(request.to, getattr(target, "address", None)):
            raise ForwarderError("Request target mismatch")
        if not self.verify(request, signature):
            raise ForwarderError("Signature does not match request")
        method, params = decode_call(request.data)
        if paymaster is not None:
            decision = paymaster.pre_relayed_call(request)
            if not getattr(decision, "accepted", False):
                raise ForwarderError(getattr(decision, "reason", "") or "Paymaster rejected relayed call")

        sender = normalize_address(request.from_)
        with self._lock:
            self._nonces[sender] = self._nonces.get(sender, 0) + 1

        if isinstance(params.get("note"), dict):
            params = dict(params)
            params["note"] = note_from_fields(params["note"])
        call = Call.relayed(self.address, sender, request.data, value=request.value)
        logger.info("Relaying %s for %s (nonce=%s)", method, sender, request.nonce)
        return getattr(target, method)(call, **params)
