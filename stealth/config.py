"""Settings loader for the stealth ledger node."""
from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

WEI_PER_ETH = Decimal(10) ** 18

_ADDRESS_FIELDS = (
    "owner",
    "fee_manager",
    "fee_taker",
    "fee_token",
    "trusted_forwarder",
    "contract_address",
)


def to_wei(amount: Decimal) -> int:
    wei = Decimal(amount) * WEI_PER_ETH
    if wei != wei.to_integral_value():
        raise ValueError(f"{amount} is not representable in wei")
    return int(wei)


class StealthSettings(BaseSettings):
    owner: str = Field(default="0x" + "0" * 39 + "1", env="STEALTH_OWNER")
    fee_manager: str = Field(default="0x" + "0" * 39 + "2", env="STEALTH_FEE_MANAGER")
    fee_taker: str = Field(default="0x" + "0" * 39 + "3", env="STEALTH_FEE_TAKER")
    fee_token: str = Field(default="0x" + "0" * 39 + "4", env="STEALTH_FEE_TOKEN")
    contract_address: str = Field(default="0x" + "0" * 39 + "5", env="STEALTH_CONTRACT_ADDRESS")
    trusted_forwarder: Optional[str] = Field(default=None, env="STEALTH_TRUSTED_FORWARDER")

    # Fee token units (18 decimals) and ether, respectively.
    protocol_fee: Decimal = Field(default=Decimal("0.1"), env="STEALTH_PROTOCOL_FEE")
    native_toll: Decimal = Field(default=Decimal("0"), env="STEALTH_NATIVE_TOLL")

    hash_receiver: bool = Field(default=True, env="STEALTH_HASH_RECEIVER")
    event_journal_path: Optional[Path] = Field(default=None, env="STEALTH_EVENT_JOURNAL_PATH")

    api_host: str = Field(default="0.0.0.0", env="STEALTH_API_HOST")
    api_port: int = Field(default=8545, env="STEALTH_API_PORT")
    api_root_path: str = Field(default="", env="STEALTH_API_ROOT_PATH")
    api_admin_token: Optional[str] = Field(default=None, env="STEALTH_API_ADMIN_TOKEN")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STEALTH_",
        extra="ignore",
    )

    @field_validator(*_ADDRESS_FIELDS)
    @classmethod
    def validate_address(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value is None:
            return value
        candidate = value.strip()
        if not candidate:
            if info.field_name == "trusted_forwarder":
                return None
            raise ValueError(f"{info.field_name} must be set")
        if not candidate.startswith("0x") or len(candidate) != 42:
            raise ValueError("addresses must be 42-character hex strings")
        if not all(ch in "0123456789abcdef" for ch in candidate[2:].lower()):
            raise ValueError("addresses must be valid hex strings")
        return candidate

    @field_validator("protocol_fee", "native_toll", mode="before")
    @classmethod
    def coerce_decimal(cls, value):
        if isinstance(value, Decimal):
            return value
        try:
            return Decimal(str(value))
        except (ArithmeticError, ValueError) as exc:
            raise ValueError(f"Invalid decimal value: {value}") from exc

    @field_validator("protocol_fee", "native_toll")
    @classmethod
    def validate_non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("Value must be non-negative")
        to_wei(value)
        return value

    @field_validator("api_port")
    @classmethod
    def validate_positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @model_validator(mode="after")
    def validate_roles(self) -> "StealthSettings":
        lowered = self.contract_address.lower()
        for name in ("owner", "fee_manager", "fee_taker", "fee_token"):
            if getattr(self, name).lower() == lowered:
                raise ValueError(f"{name} must differ from STEALTH_CONTRACT_ADDRESS")
        return self

    @property
    def protocol_fee_wei(self) -> int:
        return to_wei(self.protocol_fee)

    @property
    def native_toll_wei(self) -> int:
        return to_wei(self.native_toll)


settings = StealthSettings()
