from __future__ import annotations

import pytest

from config.loader import ConfigError, describe, load_config
from config.runtime_schema import MinerConfig
from integration import cli
from ledger.signing import (
    KeyLoadError,
    NoOpSigner,
    PRIVATE_KEY_ENV,
    is_valid_private_key,
    load_private_key,
    load_signer,
)


# Well-known development key of EOSIO test networks
DEV_KEY = "5KQwrPbwdL6PhXujxW37FSSQZ1JiwsST4cqQzDeyXtP79zkvFD3"


def test_defaults():
    config = MinerConfig(account="miner1234512")

    assert config.auto_batch_size
    assert config.n_min == 2 and config.n_max == 256
    assert config.adjust_period_sec == 30.0
    assert config.donation_enabled
    assert len(config.endpoints) == 4


@pytest.mark.parametrize("account", ["", "UPPERCASE", "waytoolongaccount", "bad_name"])
def test_invalid_account_rejected(account):
    with pytest.raises(ValueError):
        MinerConfig(account=account)


def test_range_validation():
    with pytest.raises(ValueError):
        MinerConfig(account="miner1234512", workers=0)
    with pytest.raises(ValueError):
        MinerConfig(account="miner1234512", n_min=10, n_max=5)
    with pytest.raises(ValueError):
        MinerConfig(account="miner1234512", cpu_rate_expectation=0.995)
    with pytest.raises(ValueError):
        MinerConfig(account="miner1234512", batch_size=True)


def test_load_nested_yaml(tmp_path):
    path = tmp_path / "miner.yaml"
    path.write_text(
        "account: miner1234512\n"
        "endpoints:\n"
        "  - https://eos.example\n"
        "batch:\n"
        "  size: 8\n"
        "schedule:\n"
        "  workers: 2\n"
        "donation:\n"
        "  enabled: false\n",
        encoding="utf-8",
    )

    config = load_config(str(path), environ={})

    assert config.account == "miner1234512"
    assert config.endpoints == ("https://eos.example",)
    assert config.batch_size == 8
    assert config.workers == 2
    assert not config.donation_enabled


def test_env_then_overrides_win(tmp_path):
    path = tmp_path / "miner.yaml"
    path.write_text("account: fromfile1234\nworkers: 2\n", encoding="utf-8")
    environ = {
        "EIDOS_MINER_ACCOUNT": "fromenv12345",
        "EIDOS_MINER_DONATION_ENABLED": "no",
        "EIDOS_MINER_ENDPOINTS": "https://a.example, https://b.example",
    }

    config = load_config(str(path), overrides={"workers": 3, "batch_size": None}, environ=environ)

    assert config.account == "fromenv12345"
    assert config.workers == 3
    assert config.batch_size == 0
    assert not config.donation_enabled
    assert config.endpoints == ("https://a.example", "https://b.example")


def test_unknown_key_rejected(tmp_path):
    path = tmp_path / "miner.yaml"
    path.write_text("account: miner1234512\nbatch:\n  turbo: 1\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(path), environ={})


def test_missing_file_rejected(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.yaml"), environ={})


def test_invalid_value_wrapped():
    with pytest.raises(ConfigError):
        load_config(environ={"EIDOS_MINER_ACCOUNT": "miner1234512", "EIDOS_MINER_WORKERS": "many"})
    with pytest.raises(ConfigError):
        load_config(environ={"EIDOS_MINER_ACCOUNT": "miner1234512", "EIDOS_MINER_N_MIN": "0"})


def test_describe_masks_private_key():
    config = MinerConfig(account="miner1234512", private_key=DEV_KEY)
    assert describe(config)["private_key"] == "***"
    assert DEV_KEY not in repr(config)


def test_private_key_validation():
    assert is_valid_private_key(DEV_KEY)
    assert not is_valid_private_key(DEV_KEY[:-1] + "4")
    assert not is_valid_private_key("not-a-key-0OIl")
    assert not is_valid_private_key("")


def test_private_key_from_environment(monkeypatch):
    monkeypatch.setenv(PRIVATE_KEY_ENV, DEV_KEY)
    assert load_private_key() == DEV_KEY


def test_invalid_private_key_rejected(monkeypatch):
    monkeypatch.delenv(PRIVATE_KEY_ENV, raising=False)
    with pytest.raises(KeyLoadError):
        load_private_key()
    with pytest.raises(KeyLoadError, match="private_key is invalid!"):
        load_private_key("5Kbogus")


def test_signer_factory_loading():
    assert isinstance(load_signer("", DEV_KEY), NoOpSigner)
    with pytest.raises(KeyLoadError):
        load_signer("no_such_module_xyz:factory", DEV_KEY)
    with pytest.raises(KeyLoadError):
        load_signer("missing-separator", DEV_KEY)
    with pytest.raises(KeyLoadError):
        # callable that does not return a TransactionSigner
        load_signer("builtins:str", DEV_KEY)


def test_cli_rejects_bad_config(monkeypatch):
    monkeypatch.delenv("EIDOS_MINER_ACCOUNT", raising=False)
    assert cli.main(["--account", "BAD_ACCOUNT", "--private-key", DEV_KEY]) == 2


def test_cli_rejects_missing_key(monkeypatch):
    monkeypatch.delenv(PRIVATE_KEY_ENV, raising=False)
    assert cli.main(["--account", "miner1234512"]) == 2


def test_cli_parser_flags():
    args = cli.build_parser().parse_args(
        ["--account", "miner1234512", "--no-donation", "--endpoint", "https://a", "--endpoint", "https://b"]
    )
    assert args.donation_enabled is False
    assert args.endpoints == ["https://a", "https://b"]
    assert args.batch_size is None
