"""The stealth payment ledger: payments, withdrawals and fee collection.

Entry points take a :class:`~stealth.access.Call` describing the raw
invocation (immediate sender, attached native value, calldata) and resolve the
effective caller through the trusted forwarder. Every entry point runs inside
``Chain.transaction()`` and orders its work as guards, then ledger writes,
then asset transfers.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Union

from .access import RELAY_RECIPIENT_VERSION, Call, Roles, resolve_sender
from .addresses import NATIVE_TOKEN, is_native, normalize_address, receiver_hash
from .chain import Chain
from .config import StealthSettings
from .custody import CustodyLedger
from .errors import (
    MSG_BELOW_ETHER_TOLL,
    MSG_BELOW_PROTOCOL_FEE,
    AssetTransferError,
    InsufficientPaymentError,
    StealthError,
)
from .events import EventLog, PaymentNoteEvent, WithdrawalEvent
from .fees import Collection, FeeAccount
from .notes import Note
from .tokens import ERC20, LocalToken, TokenError

logger = logging.getLogger(__name__)

MSG_NOT_PAYABLE = "StealthSwap: function is not payable"
MSG_UNKNOWN_TOKEN = "StealthSwap: token is not a contract"


class StealthLedger:
    def __init__(
        self,
        chain: Chain,
        *,
        address: str,
        fee_token: ERC20,
        protocol_fee: int,
        owner: str,
        fee_manager: str,
        fee_taker: str,
        trusted_forwarder: Optional[str] = None,
        native_toll: int = 0,
        hash_receiver: bool = True,
        events: Optional[EventLog] = None,
    ) -> None:
        self.chain = chain
        self.address = normalize_address(address)
        self.hash_receiver = hash_receiver
        if chain.token(fee_token.address) is None:
            chain.add_token(fee_token)
        self.roles = Roles(owner, fee_manager, fee_taker, trusted_forwarder)
        self.fees = FeeAccount(chain, self.address, fee_token, self.roles, protocol_fee, native_toll)
        self.custody = CustodyLedger()
        self.events = events if events is not None else EventLog()
        for participant in (self.roles, self.fees, self.custody, self.events):
            chain.attach(participant)

    @classmethod
    def from_settings(
        cls,
        chain: Chain,
        settings: StealthSettings,
        fee_token: Optional[ERC20] = None,
    ) -> "StealthLedger":
        if fee_token is None:
            fee_token = chain.token(settings.fee_token) or LocalToken(
                settings.fee_token, name="ProtocolToken", symbol="OWL"
            )
        return cls(
            chain,
            address=settings.contract_address,
            fee_token=fee_token,
            protocol_fee=settings.protocol_fee_wei,
            owner=settings.owner,
            fee_manager=settings.fee_manager,
            fee_taker=settings.fee_taker,
            trusted_forwarder=settings.trusted_forwarder,
            native_toll=settings.native_toll_wei,
            hash_receiver=settings.hash_receiver,
            events=EventLog(settings.event_journal_path),
        )

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------
    @property
    def owner(self) -> str:
        return self.roles.owner

    @property
    def fee_manager(self) -> str:
        return self.roles.fee_manager

    @property
    def fee_taker(self) -> str:
        return self.roles.fee_taker

    @property
    def protocol_fee(self) -> int:
        return self.fees.protocol_fee

    @property
    def native_toll(self) -> int:
        return self.fees.native_toll

    @property
    def fee_token(self) -> ERC20:
        return self.fees.fee_token

    @property
    def trusted_forwarder(self) -> Optional[str]:
        return self.roles.trusted_forwarder

    @property
    def fee_escrow(self) -> int:
        return self.fees.escrow

    @property
    def toll_escrow(self) -> int:
        return self.fees.toll_escrow

    def is_trusted_forwarder(self, address: str) -> bool:
        return self.roles.is_trusted_forwarder(address)

    def version_recipient(self) -> str:
        return RELAY_RECIPIENT_VERSION

    def has_withdrawable(self, stealth_address: str) -> bool:
        return self.custody.custodied_amount(stealth_address) > 0

    # ------------------------------------------------------------------
    # Call plumbing
    # ------------------------------------------------------------------
    def _msg_sender(self, call: Call) -> str:
        return resolve_sender(call, self.roles.trusted_forwarder)

    @contextmanager
    def _call(self, method: str) -> Iterator[None]:
        try:
            with self.chain.transaction():
                yield
        except StealthError as exc:
            logger.warning("%s reverted: %s", method, exc.reason)
            raise
        if self.chain.depth == 0:
            self.events.commit()

    def _receive_value(self, call: Call) -> None:
        if not call.value:
            return
        try:
            self.chain.send_native(call.sender, self.address, call.value)
        except TokenError as exc:
            raise AssetTransferError(str(exc)) from exc

    @staticmethod
    def _reject_value(call: Call) -> None:
        if call.value:
            raise StealthError(MSG_NOT_PAYABLE)

    def _receiver_id(self, receiver: str) -> Union[bytes, str]:
        return receiver_hash(receiver) if self.hash_receiver else receiver

    def _token(self, token_address: str) -> ERC20:
        token = None if is_native(token_address) else self.chain.token(token_address)
        if token is None:
            raise AssetTransferError(MSG_UNKNOWN_TOKEN)
        return token

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------
    def send_ether(self, call: Call, receiver: str, note: Note) -> PaymentNoteEvent:
        """Pay native currency straight to ``receiver``; the fee is charged in the fee token."""
        with self._call("sendEther"):
            payer = self._msg_sender(call)
            receiver = normalize_address(receiver)
            self._receive_value(call)

            if call.value <= self.fees.protocol_fee:
                raise InsufficientPaymentError(MSG_BELOW_PROTOCOL_FEE)
            self.fees.ensure_allowance(payer)
            self.custody.ensure_unused(receiver)

            self.custody.record_payment(receiver, NATIVE_TOKEN, call.value, custodied=False)

            self.fees.charge_fee(payer)
            try:
                self.chain.send_native(self.address, receiver, call.value)
            except TokenError as exc:
                raise AssetTransferError(str(exc)) from exc

            event = PaymentNoteEvent(
                receiver=self._receiver_id(receiver),
                token=NATIVE_TOKEN,
                amount=call.value,
                note=note,
            )
            self.events.emit(event)
        logger.info("Native payment of %s wei to stealth address %s", call.value, receiver)
        return event

    def send_erc20(
        self,
        call: Call,
        receiver: str,
        token: str,
        amount: int,
        note: Note,
    ) -> PaymentNoteEvent:
        """Take ``amount`` of ``token`` into custody for ``receiver``."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        with self._call("sendERC20"):
            payer = self._msg_sender(call)
            receiver = normalize_address(receiver)
            token_address = normalize_address(token)
            self._receive_value(call)

            # Reuse is reported ahead of an underpaid toll.
            self.custody.ensure_unused(receiver)
            if call.value < self.fees.native_toll:
                raise InsufficientPaymentError(MSG_BELOW_ETHER_TOLL)
            self.fees.ensure_allowance(payer)
            token_contract = self._token(token_address)

            self.custody.record_payment(receiver, token_address, amount, custodied=True)
            self.fees.accrue_toll(call.value)

            self.fees.charge_fee(payer)
            try:
                ok = token_contract.transfer_from(self.address, payer, self.address, amount)
            except TokenError as exc:
                raise AssetTransferError(str(exc)) from exc
            if ok is False:
                raise AssetTransferError()

            event = PaymentNoteEvent(
                receiver=self._receiver_id(receiver),
                token=token_address,
                amount=amount,
                note=note,
            )
            self.events.emit(event)
        logger.info(
            "Token payment of %s %s held for stealth address %s", amount, token_address, receiver
        )
        return event

    # ------------------------------------------------------------------
    # Withdrawal
    # ------------------------------------------------------------------
    def withdraw(self, call: Call, destination: str) -> WithdrawalEvent:
        """Release the caller's custodied tokens to ``destination``."""
        with self._call("withdraw"):
            receiver = self._msg_sender(call)
            destination = normalize_address(destination)
            self._reject_value(call)

            asset, amount = self.custody.clear_payment(receiver)

            token_contract = self._token(asset)
            try:
                ok = token_contract.transfer(self.address, destination, amount)
            except TokenError as exc:
                raise AssetTransferError(str(exc)) from exc
            if ok is False:
                raise AssetTransferError()

            event = WithdrawalEvent(receiver=receiver, interim=destination, amount=amount, token=asset)
            self.events.emit(event)
        logger.info("Stealth address %s withdrew %s %s to %s", receiver, amount, asset, destination)
        return event

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    def set_protocol_fee(self, call: Call, amount: int) -> None:
        with self._call("setProtocolFee"):
            self._reject_value(call)
            self.fees.set_fee(self._msg_sender(call), amount)

    def collect_paid_fees(self, call: Call) -> Collection:
        with self._call("collectPaidFees"):
            self._reject_value(call)
            collection = self.fees.collect(self._msg_sender(call))
        return collection

    def set_forwarder(self, call: Call, forwarder: Optional[str]) -> None:
        with self._call("setForwarder"):
            self._reject_value(call)
            self.roles.require_owner(self._msg_sender(call))
            self.roles.set_forwarder(forwarder)
        logger.info("Trusted forwarder set to %s", self.roles.trusted_forwarder)

    def transfer_ownership(self, call: Call, new_owner: str) -> None:
        with self._call("transferOwnership"):
            self._reject_value(call)
            self.roles.require_owner(self._msg_sender(call))
            previous = self.roles.owner
            self.roles.owner = normalize_address(new_owner)
        logger.info("Ownership transferred %s -> %s", previous, self.roles.owner)
