"""Tests for env-based configuration."""

from __future__ import annotations

import pytest

from polycopy.config import (
    MIN_INTERVAL_SECONDS,
    ArbitrageConfig,
    BotConfig,
    ConfigError,
    RiskConfig,
    VenueConfig,
    WalletWatchConfig,
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove polycopy-related env vars so defaults apply."""
    import os

    prefixes = (
        "TARGET_WALLET_", "POLYCOPY_", "MIN_", "MAX_", "ENABLE", "INTERNAL_",
        "CROSS_", "OPPORTUNITY_", "WALLET_", "ARB_", "STATUS_", "POLYMARKET_",
        "LOG_LEVEL", "POLYGON_",
    )
    for key in list(os.environ):
        if key.startswith(prefixes):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestDefaults:
    def test_arbitrage_defaults(self):
        cfg = ArbitrageConfig()
        assert cfg.min_profit_pct == 0.01
        assert cfg.max_profit_pct == 0.05
        assert cfg.min_liquidity_usd == 1000.0
        assert cfg.internal_enabled is True
        assert cfg.cross_platform_enabled is False

    def test_risk_defaults(self):
        cfg = RiskConfig()
        assert cfg.max_total_exposure_usd == 10_000.0
        assert cfg.max_position_per_market_usd == 2_000.0
        assert cfg.max_daily_loss_usd == 500.0
        assert cfg.enable_auto_hedge is True

    def test_wallet_defaults(self):
        cfg = WalletWatchConfig(address="0xabc", name="w")
        assert cfg.position_size_multiplier == 0.01
        assert cfg.max_position_size_usd == 2000.0
        assert cfg.require_arb_signal is True
        assert cfg.allows_market("anything")

    def test_wallet_config_is_frozen(self):
        cfg = WalletWatchConfig(address="0xabc", name="w")
        with pytest.raises(Exception):
            cfg.name = "other"

    def test_interval_minimum_enforced(self):
        cfg = BotConfig(wallet_check_interval=0.01, arb_scan_interval=0.0)
        assert cfg.wallet_check_interval == MIN_INTERVAL_SECONDS
        assert cfg.arb_scan_interval == MIN_INTERVAL_SECONDS


class TestFromEnv:
    def test_wallets_loaded(self, clean_env):
        clean_env.setenv("TARGET_WALLET_1", "0xAAA")
        clean_env.setenv("TARGET_WALLET_1_NAME", "alpha")
        clean_env.setenv("TARGET_WALLET_1_MULTIPLIER", "0.05")
        clean_env.setenv("TARGET_WALLET_1_MARKETS", "0xm1, 0xm2")
        clean_env.setenv("TARGET_WALLET_1_REQUIRE_ARB", "false")
        clean_env.setenv("TARGET_WALLET_2", "0xBBB")

        cfg = BotConfig.from_env()
        assert len(cfg.wallets) == 2
        alpha = cfg.wallets[0]
        assert alpha.name == "alpha"
        assert alpha.position_size_multiplier == 0.05
        assert alpha.markets_filter == ("0xm1", "0xm2")
        assert alpha.require_arb_signal is False
        assert not alpha.allows_market("0xm3")
        assert cfg.wallets[1].name == "wallet_2"

    def test_dry_run_default_true(self, clean_env):
        assert BotConfig.from_env().dry_run is True

    def test_dry_run_disabled(self, clean_env):
        clean_env.setenv("POLYCOPY_DRY_RUN", "false")
        assert BotConfig.from_env().dry_run is False

    def test_thresholds_from_env(self, clean_env):
        clean_env.setenv("MIN_ARB_PROFIT_PCT", "0.02")
        clean_env.setenv("MAX_TOTAL_EXPOSURE_USD", "5000")
        clean_env.setenv("ARB_SCAN_INTERVAL_SECONDS", "0.05")
        cfg = BotConfig.from_env()
        assert cfg.arbitrage.min_profit_pct == 0.02
        assert cfg.risk.max_total_exposure_usd == 5000.0
        assert cfg.arb_scan_interval == MIN_INTERVAL_SECONDS

    def test_bad_number_raises(self, clean_env):
        clean_env.setenv("MAX_DAILY_LOSS_USD", "lots")
        with pytest.raises(ConfigError):
            BotConfig.from_env()

    def test_venue_credentials(self, clean_env):
        clean_env.setenv("POLYMARKET_API_KEY", "k")
        clean_env.setenv("POLYMARKET_API_SECRET", "s")
        cfg = VenueConfig.from_env()
        assert cfg.has_api_creds is False
        clean_env.setenv("POLYMARKET_API_PASSPHRASE", "p")
        assert VenueConfig.from_env().has_api_creds is True


class TestValidate:
    def test_no_wallets_is_fatal(self):
        with pytest.raises(ConfigError, match="No wallets"):
            BotConfig().validate()

    def test_disabled_wallets_do_not_count(self):
        cfg = BotConfig(wallets=[WalletWatchConfig(address="0x1", name="a", enabled=False)])
        with pytest.raises(ConfigError):
            cfg.validate()

    def test_live_requires_private_key(self):
        cfg = BotConfig(
            wallets=[WalletWatchConfig(address="0x1", name="a")],
            dry_run=False,
        )
        with pytest.raises(ConfigError, match="PRIVATE_KEY"):
            cfg.validate()

    def test_min_profit_above_max(self):
        cfg = BotConfig(
            wallets=[WalletWatchConfig(address="0x1", name="a")],
            arbitrage=ArbitrageConfig(min_profit_pct=0.1, max_profit_pct=0.05),
        )
        with pytest.raises(ConfigError):
            cfg.validate()

    def test_valid_dry_run(self):
        cfg = BotConfig(wallets=[WalletWatchConfig(address="0x1", name="a")])
        cfg.validate()
