"""Tests for configuration loading and engine assembly."""

from datetime import timedelta

import pytest
import yaml

from synthledger import (
    AssetConfig,
    EngineConfig,
    OracleConfig,
    LiquidationEngine,
    StaticPriceFeed,
    ConfigMismatch,
    build_engine,
    load_config,
)
from synthledger.config import _interpolate_env

from tests.conftest import T0
from tests.fakes import FakeToken, FakeDebtToken


@pytest.fixture
def config_file(tmp_path):
    config = {
        "engine_address": "engine",
        "debt_token": "DSC",
        "collateral": [
            {"address": "WETH", "price_feed": "ETH/USD"},
            {"address": "WBTC", "price_feed": "BTC/USD"},
        ],
        "oracle": {"timeout_seconds": 3600},
    }
    path = tmp_path / "engine.yaml"
    path.write_text(yaml.dump(config))
    return path


def write_config(tmp_path, config):
    path = tmp_path / "engine.yaml"
    path.write_text(yaml.dump(config))
    return path


def test_load_config(config_file):
    cfg = load_config(config_file)
    assert cfg.engine_address == "engine"
    assert cfg.debt_token == "DSC"
    assert cfg.collateral_addresses == ("WETH", "WBTC")
    assert cfg.price_feed_refs == ("ETH/USD", "BTC/USD")
    assert cfg.oracle.timeout == timedelta(hours=1)


def test_missing_config_file():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/engine.yaml")


def test_defaults(tmp_path):
    cfg = load_config(write_config(tmp_path, {"debt_token": "DSC"}))
    assert cfg.engine_address == "engine"
    assert cfg.collateral == ()
    assert cfg.oracle.timeout == timedelta(hours=3)


def test_env_interpolation(monkeypatch):
    monkeypatch.setenv("TEST_DEBT_TOKEN", "DSC")
    result = _interpolate_env({"debt_token": "${TEST_DEBT_TOKEN}", "list": ["${TEST_DEBT_TOKEN}", 1]})
    assert result == {"debt_token": "DSC", "list": ["DSC", 1]}


def test_env_interpolation_missing_var(monkeypatch):
    monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
    assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""


def test_env_interpolation_in_file(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_ENGINE_ADDRESS", "0xengine")
    path = write_config(tmp_path, {"engine_address": "${TEST_ENGINE_ADDRESS}", "debt_token": "DSC"})
    assert load_config(path).engine_address == "0xengine"


def test_validation_requires_debt_token(tmp_path):
    with pytest.raises(ValueError, match="debt token"):
        load_config(write_config(tmp_path, {"collateral": []}))


def test_validation_rejects_non_positive_timeout(tmp_path):
    path = write_config(tmp_path, {"debt_token": "DSC", "oracle": {"timeout_seconds": 0}})
    with pytest.raises(ValueError, match="timeout"):
        load_config(path)


def test_validation_rejects_missing_price_feed(tmp_path):
    path = write_config(tmp_path, {"debt_token": "DSC", "collateral": [{"address": "WETH"}]})
    with pytest.raises(ConfigMismatch):
        load_config(path)


def test_validation_rejects_duplicate_collateral(tmp_path):
    path = write_config(tmp_path, {
        "debt_token": "DSC",
        "collateral": [
            {"address": "WETH", "price_feed": "ETH/USD"},
            {"address": "WETH", "price_feed": "ETH/USD"},
        ],
    })
    with pytest.raises(ConfigMismatch):
        load_config(path)


def test_config_is_frozen():
    cfg = EngineConfig(debt_token="DSC", collateral=(AssetConfig("WETH", "ETH/USD"),))
    with pytest.raises(AttributeError):
        cfg.debt_token = "other"
    assert OracleConfig().timeout == timedelta(hours=3)


class TestBuildEngine:

    def collaborators(self):
        feed = StaticPriceFeed({"WETH": 2000 * 10**8, "WBTC": 1000 * 10**8}, updated_at=T0)
        tokens = {"WETH": FakeToken("WETH"), "WBTC": FakeToken("WBTC")}
        feeds = {"ETH/USD": feed, "BTC/USD": feed}
        return tokens, feeds, FakeDebtToken("DSC")

    def test_build_engine(self, config_file):
        tokens, feeds, dsc = self.collaborators()
        engine = build_engine(load_config(config_file), tokens, feeds, dsc, initial_time=T0)

        assert isinstance(engine, LiquidationEngine)
        assert engine.address == "engine"
        assert engine.get_collateral_tokens() == ["WETH", "WBTC"]
        assert engine.get_collateral_token_price_feed("WBTC") is feeds["BTC/USD"]
        assert engine.oracle.timeout == timedelta(hours=1)
        assert engine.current_time == T0

    def test_debt_token_mismatch(self, config_file):
        tokens, feeds, _ = self.collaborators()
        with pytest.raises(ConfigMismatch):
            build_engine(load_config(config_file), tokens, feeds, FakeDebtToken("USDX"))

    def test_missing_token(self, config_file):
        tokens, feeds, dsc = self.collaborators()
        del tokens["WBTC"]
        with pytest.raises(ConfigMismatch, match="WBTC"):
            build_engine(load_config(config_file), tokens, feeds, dsc)

    def test_missing_feed(self, config_file):
        tokens, feeds, dsc = self.collaborators()
        del feeds["ETH/USD"]
        with pytest.raises(ConfigMismatch, match="ETH/USD"):
            build_engine(load_config(config_file), tokens, feeds, dsc)
