from decimal import Decimal

import pytest
from pydantic import ValidationError

from stealth.chain import Chain
from stealth.config import StealthSettings, to_wei
from stealth.ledger import StealthLedger


def test_settings_read_prefixed_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("STEALTH_OWNER", "0x" + "aa" * 20)
    monkeypatch.setenv("STEALTH_PROTOCOL_FEE", "0.25")
    monkeypatch.setenv("STEALTH_NATIVE_TOLL", "0.001")
    monkeypatch.setenv("STEALTH_TRUSTED_FORWARDER", "")
    monkeypatch.setenv("STEALTH_EVENT_JOURNAL_PATH", str(tmp_path / "events.jsonl"))

    settings = StealthSettings(_env_file=None)

    assert settings.owner == "0x" + "aa" * 20
    assert settings.protocol_fee == Decimal("0.25")
    assert settings.protocol_fee_wei == 25 * 10**16
    assert settings.native_toll_wei == 10**15
    assert settings.trusted_forwarder is None
    assert settings.event_journal_path == tmp_path / "events.jsonl"


@pytest.mark.parametrize(
    "overrides",
    [
        {"owner": "0x1234"},
        {"fee_taker": "0x" + "zz" * 20},
        {"owner": ""},
        {"protocol_fee": "-1"},
        {"protocol_fee": "0.0000000000000000001"},
        {"api_port": 0},
        {"fee_manager": "0x" + "0" * 39 + "5"},
    ],
)
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(ValidationError):
        StealthSettings(_env_file=None, **overrides)


def test_to_wei_requires_whole_wei():
    assert to_wei(Decimal("1.5")) == 15 * 10**17
    with pytest.raises(ValueError):
        to_wei(Decimal("1e-19"))


def test_ledger_from_settings(tmp_path):
    settings = StealthSettings(
        _env_file=None,
        protocol_fee="0.5",
        trusted_forwarder="0x" + "fa" * 20,
        hash_receiver=False,
        event_journal_path=tmp_path / "events.jsonl",
    )
    chain = Chain()

    ledger = StealthLedger.from_settings(chain, settings)

    assert ledger.protocol_fee == 5 * 10**17
    assert ledger.is_trusted_forwarder("0x" + "fa" * 20)
    assert ledger.hash_receiver is False
    assert ledger.events.journal_path == tmp_path / "events.jsonl"
    assert chain.token(settings.fee_token) is ledger.fee_token
    assert ledger.version_recipient() == "2.0.0"
