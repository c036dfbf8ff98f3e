import pytest

from chronostamp.config import Settings
from chronostamp.signer import Environment


def test_defaults(monkeypatch):
    for name in ("CHRONOSTAMP_ENV", "SIGNER_PRIVATE_KEY_DEV", "SIGNER_ADDRESS_DEV", "REDIS_URL", "RPC_URL"):
        monkeypatch.delenv(name, raising=False)

    s = Settings.from_env()
    assert s.environment is Environment.DEVELOPMENT
    assert s.signer_keys == {}
    assert s.redis_url is None
    assert s.rpc_url is None
    assert s.database_url.startswith("sqlite")


def test_production_pairs(monkeypatch):
    monkeypatch.setenv("CHRONOSTAMP_ENV", "Production")
    monkeypatch.setenv("SIGNER_PRIVATE_KEY_PROD", "0x" + "22" * 32)
    monkeypatch.setenv("SIGNER_ADDRESS_PROD", "0xabc")
    monkeypatch.setenv("SIGNER_PRIVATE_KEY_DEV", "  ")
    monkeypatch.setenv("AUTHORIZE_RATE_PER_MINUTE", "30")

    s = Settings.from_env()
    cfg = s.signer_config()
    assert cfg.is_production
    assert cfg.active_key == "0x" + "22" * 32
    assert cfg.expected_address == "0xabc"
    assert Environment.DEVELOPMENT not in s.signer_keys
    assert s.authorize_rate_per_minute == 30


def test_unknown_environment_is_rejected(monkeypatch):
    monkeypatch.setenv("CHRONOSTAMP_ENV", "staging")
    with pytest.raises(ValueError):
        Settings.from_env()
