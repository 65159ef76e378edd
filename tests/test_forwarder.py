import pytest

from conftest import LEDGER_ADDRESS, ether
from stealth.access import Call
from stealth.errors import AuthorizationError, UnavailableError
from stealth.forwarder import (
    ForwarderError,
    ForwardRequest,
    Forwarder,
    decode_call,
    encode_call,
    sign_request,
)
from stealth.notes import PackedNote
from stealth.paymaster import StealthPaymaster

TOKEN_AMOUNT = ether("100")
RELAY_HUB = "0x" + "4b" * 20
NOTE = PackedNote(x_coord=b"\x01" * 32, y_coord=b"\x02" * 32, note=b"\x03" * 32)


@pytest.fixture()
def relay(deployment, accounts):
    forwarder = Forwarder(accounts.forwarder)
    paymaster = StealthPaymaster(deployment.ledger, owner=accounts.owner)
    paymaster.set_relay_hub(accounts.owner, RELAY_HUB)
    deployment.token.approve(accounts.payer2, LEDGER_ADDRESS, TOKEN_AMOUNT)
    deployment.ledger.send_erc20(
        Call(sender=accounts.payer2), accounts.receiver2, deployment.token.address, TOKEN_AMOUNT, NOTE
    )
    return forwarder, paymaster


def signed(forwarder, sender, key, method, params, value=0):
    request = ForwardRequest(
        from_=sender,
        to=LEDGER_ADDRESS,
        forwarder=forwarder.address,
        nonce=forwarder.get_nonce(sender),
        data=encode_call(method, params),
        value=value,
    )
    return request, sign_request(request, key)


def test_encode_call_round_trip_and_unknown_method():
    method, params = decode_call(encode_call("withdraw", {"destination": LEDGER_ADDRESS}))
    assert method == "withdraw"
    assert params == {"destination": LEDGER_ADDRESS}
    with pytest.raises(ForwarderError):
        encode_call("mint", {})
    with pytest.raises(ForwarderError):
        decode_call(b"\xff\xfe")


def test_sponsored_withdrawal_is_attributed_to_signer(deployment, accounts, relay):
    forwarder, paymaster = relay
    request, signature = signed(
        forwarder, accounts.receiver2, accounts.receiver2_key, "withdraw", {"destination": accounts.out_receiver}
    )

    event = forwarder.execute(request, signature, deployment.ledger, paymaster=paymaster)

    assert event.receiver == accounts.receiver2
    assert deployment.token.balance_of(accounts.out_receiver) == TOKEN_AMOUNT
    assert forwarder.get_nonce(accounts.receiver2) == 1
    # The receiver never held native currency to pay for gas.
    assert deployment.chain.native_balance(accounts.receiver2) == 0


def test_signature_from_another_key_is_rejected(deployment, accounts, relay):
    forwarder, paymaster = relay
    request, _ = signed(
        forwarder, accounts.receiver2, accounts.receiver2_key, "withdraw", {"destination": accounts.attacker}
    )
    forged = sign_request(request, accounts.attacker_key)

    with pytest.raises(ForwarderError):
        forwarder.execute(request, forged, deployment.ledger, paymaster=paymaster)
    assert deployment.ledger.has_withdrawable(accounts.receiver2)
    assert forwarder.get_nonce(accounts.receiver2) == 0


def test_replayed_request_is_rejected(deployment, accounts, relay):
    forwarder, paymaster = relay
    request, signature = signed(
        forwarder, accounts.receiver2, accounts.receiver2_key, "withdraw", {"destination": accounts.out_receiver}
    )
    forwarder.execute(request, signature, deployment.ledger, paymaster=paymaster)

    with pytest.raises(ForwarderError):
        forwarder.execute(request, signature, deployment.ledger, paymaster=paymaster)


def test_paymaster_refuses_non_withdrawals(deployment, accounts, relay):
    forwarder, paymaster = relay
    request, signature = signed(
        forwarder, accounts.owner, accounts.owner_key, "set_protocol_fee", {"amount": 1}
    )

    decision = paymaster.pre_relayed_call(request)
    assert not decision.accepted
    with pytest.raises(ForwarderError):
        forwarder.execute(request, signature, deployment.ledger, paymaster=paymaster)
    assert deployment.ledger.protocol_fee == ether("0.1")

    # Without a sponsor the owner can still relay admin calls.
    forwarder.execute(request, signature, deployment.ledger)
    assert deployment.ledger.protocol_fee == 1


def test_paymaster_refuses_addresses_without_custody(deployment, accounts, relay):
    forwarder, paymaster = relay
    request, signature = signed(
        forwarder, accounts.receiver3, accounts.receiver3_key, "withdraw", {"destination": accounts.out_receiver}
    )
    assert not paymaster.pre_relayed_call(request).accepted

    with pytest.raises(UnavailableError):
        forwarder.execute(request, signature, deployment.ledger)
    assert forwarder.get_nonce(accounts.receiver3) == 1


def test_paymaster_requires_relay_hub(deployment, accounts):
    paymaster = StealthPaymaster(deployment.ledger, owner=accounts.owner)
    request = ForwardRequest(
        from_=accounts.receiver2,
        to=LEDGER_ADDRESS,
        forwarder=accounts.forwarder,
        nonce=0,
        data=encode_call("withdraw", {"destination": accounts.out_receiver}),
    )
    assert not paymaster.pre_relayed_call(request).accepted
    with pytest.raises(AuthorizationError):
        paymaster.set_relay_hub(accounts.attacker, RELAY_HUB)


def test_relayed_payment_carries_note_fields(deployment, accounts):
    forwarder = Forwarder(accounts.forwarder)
    note_fields = {key: "0x" + value.hex() for key, value in NOTE.event_fields().items()}
    request, signature = signed(
        forwarder,
        accounts.payer1,
        accounts.payer1_key,
        "send_ether",
        {"receiver": accounts.receiver1, "note": note_fields},
        value=ether("1"),
    )
    # The forwarder forwards the attached value from its own balance.
    deployment.chain.fund(accounts.forwarder, ether("1"))

    event = forwarder.execute(request, signature, deployment.ledger)

    assert event.note == NOTE
    assert deployment.chain.native_balance(accounts.receiver1) == ether("1")
    assert deployment.ledger.fee_escrow == ether("0.1")


def test_request_signed_for_another_forwarder_is_rejected(deployment, accounts):
    first = Forwarder(accounts.forwarder)
    request, signature = signed(first, accounts.owner, accounts.owner_key, "set_protocol_fee", {"amount": 5})
    first.execute(request, signature, deployment.ledger)
    assert deployment.ledger.protocol_fee == 5

    second = Forwarder("0x" + "fb" * 20)
    deployment.ledger.set_protocol_fee(Call(sender=accounts.owner), 7)
    deployment.ledger.set_forwarder(Call(sender=accounts.owner), second.address)

    with pytest.raises(ForwarderError):
        second.execute(request, signature, deployment.ledger)
    retargeted = ForwardRequest(
        from_=request.from_,
        to=request.to,
        forwarder=second.address,
        nonce=request.nonce,
        data=request.data,
    )
    with pytest.raises(ForwarderError):
        second.execute(retargeted, signature, deployment.ledger)

    assert deployment.ledger.protocol_fee == 7
    assert second.get_nonce(accounts.owner) == 0


def test_malformed_signature_is_rejected(deployment, accounts):
    forwarder = Forwarder(accounts.forwarder)
    request, _ = signed(forwarder, accounts.owner, accounts.owner_key, "set_protocol_fee", {"amount": 5})

    assert not forwarder.verify(request, b"\x01" * 10)
    with pytest.raises(ForwarderError):
        forwarder.execute(request, b"\x01" * 10, deployment.ledger)
    assert deployment.ledger.protocol_fee == ether("0.1")
