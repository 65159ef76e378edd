import os
import sys
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest
from eth_account import Account

os.environ.setdefault("STEALTH_PROTOCOL_FEE", "0.1")
os.environ.setdefault("STEALTH_NATIVE_TOLL", "0")
os.environ.setdefault("STEALTH_HASH_RECEIVER", "true")

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from stealth.chain import Chain  # noqa: E402
from stealth.ledger import StealthLedger  # noqa: E402
from stealth.tokens import LocalToken  # noqa: E402

ROLES = (
    "owner",
    "fee_manager",
    "fee_taker",
    "payer1",
    "receiver1",
    "payer2",
    "receiver2",
    "payer3",
    "receiver3",
    "payer4",
    "receiver4",
    "payer5",
    "receiver5",
    "out_receiver",
    "attacker",
    "forwarder",
)

LEDGER_ADDRESS = "0x" + "5e" * 20
TEST_TOKEN_ADDRESS = "0x" + "7a" * 20
PROTOCOL_TOKEN_ADDRESS = "0x" + "0f" * 20


def ether(amount: str) -> int:
    return int(Decimal(amount) * Decimal(10) ** 18)


def make_accounts():
    accounts = {}
    for index, role in enumerate(ROLES, start=1):
        account = Account.from_key("0x" + format(index, "064x"))
        accounts[role] = account.address
        accounts[f"{role}_key"] = account.key
    return SimpleNamespace(**accounts)


def deploy(accounts, *, protocol_fee=ether("0.1"), native_toll=0, hash_receiver=True, events=None):
    chain = Chain()
    protocol_token = chain.add_token(LocalToken(PROTOCOL_TOKEN_ADDRESS, name="ProtocolToken", symbol="OWL"))
    token = chain.add_token(LocalToken(TEST_TOKEN_ADDRESS, name="TestToken", symbol="TT"))
    ledger = StealthLedger(
        chain,
        address=LEDGER_ADDRESS,
        fee_token=protocol_token,
        protocol_fee=protocol_fee,
        owner=accounts.owner,
        fee_manager=accounts.fee_manager,
        fee_taker=accounts.fee_taker,
        trusted_forwarder=accounts.forwarder,
        native_toll=native_toll,
        hash_receiver=hash_receiver,
        events=events,
    )
    return SimpleNamespace(chain=chain, ledger=ledger, protocol_token=protocol_token, token=token)


@pytest.fixture()
def accounts():
    return make_accounts()


@pytest.fixture()
def deployment(accounts):
    """Fresh ledger with the balances and approvals payers start with."""
    env = deploy(accounts)
    token_amount = ether("100")
    fee_amount = ether("10")
    low_fee = ether("0.005")
    env.token.mint(accounts.payer2, token_amount)
    for payer in (accounts.payer1, accounts.payer2, accounts.payer3, accounts.payer4):
        env.protocol_token.mint(payer, fee_amount)
    env.protocol_token.mint(accounts.payer5, low_fee)
    for payer in (accounts.payer1, accounts.payer2, accounts.payer3):
        env.protocol_token.approve(payer, LEDGER_ADDRESS, token_amount)
    env.protocol_token.approve(accounts.payer5, LEDGER_ADDRESS, low_fee)
    for payer in (accounts.payer1, accounts.payer2, accounts.payer3, accounts.payer4, accounts.payer5):
        env.chain.fund(payer, ether("10"))
    return env
