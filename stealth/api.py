"""HTTP API exposing the stealth ledger as a development node.

Accounts are named by the request body (``from``), the way an unlocked
development node accepts transactions. Mutating routes require the admin token
when one is configured.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .access import Call
from .config import StealthSettings
from .errors import StealthError
from .events import event_to_dict
from .ledger import StealthLedger
from .notes import Note, note_from_fields
from .tokens import LocalToken

HEX_ADDRESS = r"^0x[a-fA-F0-9]{40}$"
HEX_BYTES = r"^0x[a-fA-F0-9]*$"


class NotePayload(BaseModel):
    xCoord: str = Field(pattern=HEX_BYTES)
    yCoord: str = Field(pattern=HEX_BYTES)
    note: Optional[str] = Field(default=None, pattern=HEX_BYTES)
    iv: Optional[str] = Field(default=None, pattern=HEX_BYTES)
    ctBuf0: Optional[str] = Field(default=None, pattern=HEX_BYTES)
    ctBuf1: Optional[str] = Field(default=None, pattern=HEX_BYTES)
    ctBuf2: Optional[str] = Field(default=None, pattern=HEX_BYTES)
    mac: Optional[str] = Field(default=None, pattern=HEX_BYTES)

    @model_validator(mode="after")
    def validate_layout(self) -> "NotePayload":
        unpacked = (self.iv, self.ctBuf0, self.ctBuf1, self.ctBuf2, self.mac)
        if self.note is None and any(value is None for value in unpacked):
            raise ValueError("note requires either 'note' or iv/ctBuf0..2/mac")
        return self

    def to_note(self) -> Note:
        fields = {key: value for key, value in self.model_dump().items() if value is not None}
        return note_from_fields(fields)


class CallPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field(alias="from", pattern=HEX_ADDRESS)
    value: int = Field(default=0, ge=0)

    def to_call(self) -> Call:
        return Call(sender=self.sender, value=self.value)


class EtherPaymentPayload(CallPayload):
    receiver: str = Field(pattern=HEX_ADDRESS)
    note: NotePayload


class TokenPaymentPayload(CallPayload):
    receiver: str = Field(pattern=HEX_ADDRESS)
    token: str = Field(pattern=HEX_ADDRESS)
    amount: int = Field(ge=0)
    note: NotePayload


class WithdrawalPayload(CallPayload):
    destination: str = Field(pattern=HEX_ADDRESS)


class ProtocolFeePayload(CallPayload):
    amount: int = Field(ge=0)


class ForwarderPayload(CallPayload):
    forwarder: Optional[str] = Field(default=None, pattern=HEX_ADDRESS)


class FundPayload(BaseModel):
    address: str = Field(pattern=HEX_ADDRESS)
    amount: int = Field(ge=0)
    token: Optional[str] = Field(default=None, pattern=HEX_ADDRESS)


class TokenPayload(BaseModel):
    address: str = Field(pattern=HEX_ADDRESS)
    name: str = Field(default="Token", min_length=1, max_length=64)
    symbol: str = Field(default="TKN", min_length=1, max_length=16)


class ApprovalPayload(CallPayload):
    token: str = Field(pattern=HEX_ADDRESS)
    spender: str = Field(pattern=HEX_ADDRESS)
    amount: int = Field(ge=0)


class ConfigResponse(BaseModel):
    address: str
    owner: str
    fee_manager: str
    fee_taker: str
    fee_token: str
    protocol_fee: str
    native_toll: str
    trusted_forwarder: Optional[str]
    fee_escrow: str
    toll_escrow: str


class EventListResponse(BaseModel):
    events: List[Dict[str, Any]]


class AccountResponse(BaseModel):
    address: str
    native_balance: str
    token: Optional[str]
    token_balance: Optional[str]


def create_app(ledger: StealthLedger, settings: StealthSettings) -> FastAPI:
    app = FastAPI(title="Stealth Ledger", version="1.0.0")

    def _provided_token(request: Request) -> Optional[str]:
        return request.headers.get("X-Admin-Token")

    async def require_admin(request: Request) -> None:
        token = getattr(settings, "api_admin_token", None)
        if not token:
            return
        if _provided_token(request) != token:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin token required")

    @app.exception_handler(StealthError)
    async def stealth_error_handler(_: Request, exc: StealthError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.reason})

    @app.exception_handler(ValueError)
    async def value_error_handler(_: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.get("/api/config", response_model=ConfigResponse)
    async def get_config() -> ConfigResponse:
        return ConfigResponse(
            address=ledger.address,
            owner=ledger.owner,
            fee_manager=ledger.fee_manager,
            fee_taker=ledger.fee_taker,
            fee_token=ledger.fee_token.address,
            protocol_fee=str(ledger.protocol_fee),
            native_toll=str(ledger.native_toll),
            trusted_forwarder=ledger.trusted_forwarder,
            fee_escrow=str(ledger.fee_escrow),
            toll_escrow=str(ledger.toll_escrow),
        )

    @app.get("/api/events", response_model=EventListResponse)
    async def list_events(
        name: Optional[str] = Query(default=None),
        limit: int = Query(default=200, ge=1, le=5000),
    ) -> EventListResponse:
        events = ledger.events.events(name)[-limit:]
        return EventListResponse(events=[event_to_dict(event) for event in events])

    @app.get("/api/accounts/{address}", response_model=AccountResponse)
    async def get_account(address: str, token: Optional[str] = Query(default=None)) -> AccountResponse:
        token_balance = None
        if token:
            contract = ledger.chain.token(token)
            if contract is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown token")
            token_balance = str(contract.balance_of(address))
        return AccountResponse(
            address=address,
            native_balance=str(ledger.chain.native_balance(address)),
            token=token,
            token_balance=token_balance,
        )

    @app.post("/api/payments/ether", dependencies=[Depends(require_admin)])
    async def send_ether(payload: EtherPaymentPayload) -> Dict[str, Any]:
        event = ledger.send_ether(payload.to_call(), payload.receiver, payload.note.to_note())
        return event_to_dict(event)

    @app.post("/api/payments/erc20", dependencies=[Depends(require_admin)])
    async def send_erc20(payload: TokenPaymentPayload) -> Dict[str, Any]:
        event = ledger.send_erc20(
            payload.to_call(),
            payload.receiver,
            payload.token,
            payload.amount,
            payload.note.to_note(),
        )
        return event_to_dict(event)

    @app.post("/api/withdrawals", dependencies=[Depends(require_admin)])
    async def withdraw(payload: WithdrawalPayload) -> Dict[str, Any]:
        event = ledger.withdraw(payload.to_call(), payload.destination)
        return event_to_dict(event)

    @app.post("/api/admin/protocol-fee", dependencies=[Depends(require_admin)])
    async def set_protocol_fee(payload: ProtocolFeePayload) -> Dict[str, str]:
        ledger.set_protocol_fee(payload.to_call(), payload.amount)
        return {"protocol_fee": str(ledger.protocol_fee)}

    @app.post("/api/admin/collect", dependencies=[Depends(require_admin)])
    async def collect_paid_fees(payload: CallPayload) -> Dict[str, str]:
        collection = ledger.collect_paid_fees(payload.to_call())
        return {
            "fee_taker": collection.fee_taker,
            "fee_amount": str(collection.fee_amount),
            "toll_amount": str(collection.toll_amount),
        }

    @app.post("/api/admin/forwarder", dependencies=[Depends(require_admin)])
    async def set_forwarder(payload: ForwarderPayload) -> Dict[str, Optional[str]]:
        ledger.set_forwarder(payload.to_call(), payload.forwarder)
        return {"trusted_forwarder": ledger.trusted_forwarder}

    @app.post("/api/dev/tokens", dependencies=[Depends(require_admin)])
    async def register_token(payload: TokenPayload) -> Dict[str, str]:
        if ledger.chain.token(payload.address) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Token already registered")
        token = ledger.chain.add_token(LocalToken(payload.address, name=payload.name, symbol=payload.symbol))
        return {"address": token.address}

    @app.post("/api/dev/fund", dependencies=[Depends(require_admin)])
    async def fund(payload: FundPayload) -> AccountResponse:
        if payload.token is None:
            ledger.chain.fund(payload.address, payload.amount)
            return await get_account(payload.address, None)
        contract = ledger.chain.token(payload.token)
        if not isinstance(contract, LocalToken):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown token")
        contract.mint(payload.address, payload.amount)
        return await get_account(payload.address, payload.token)

    @app.post("/api/dev/approve", dependencies=[Depends(require_admin)])
    async def approve(payload: ApprovalPayload) -> Dict[str, str]:
        contract = ledger.chain.token(payload.token)
        if contract is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown token")
        contract.approve(payload.sender, payload.spender, payload.amount)
        return {"allowance": str(contract.allowance(payload.sender, payload.spender))}

    return app


def run_api(app: FastAPI, settings: StealthSettings) -> None:
    """Run the FastAPI app using uvicorn."""
    import uvicorn  # Imported lazily to avoid mandatory dependency in tests

    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
        root_path=settings.api_root_path,
    )
    server = uvicorn.Server(config)
    server.run()


__all__ = ["create_app", "run_api"]
