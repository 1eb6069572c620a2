"""Bot configuration — wallets, arbitrage thresholds, risk ceilings, env-based config."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

# ---------------------------------------------------------------------------
# Venue endpoints
# ---------------------------------------------------------------------------

GAMMA_API_URL = "https://gamma-api.polymarket.com"
CLOB_API_URL = "https://clob.polymarket.com"
DATA_API_URL = "https://data-api.polymarket.com"
POLYGON_RPC_URL = "https://polygon-rpc.com"
POLYGON_CHAIN_ID = 137

# 최소 폴링 간격 강제 (초)
MIN_INTERVAL_SECONDS = 0.1

# 환경변수에서 읽는 대상 지갑 최대 개수 (TARGET_WALLET_1 .. TARGET_WALLET_N)
MAX_TARGET_WALLETS = 20


class ConfigError(ValueError):
    """Fatal configuration problem — halts startup."""


# ---------------------------------------------------------------------------
# Env helpers
# ---------------------------------------------------------------------------


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_float(name: str, default: float) -> float:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = _env_str(name)
    if value is None:
        return default
    return value.lower() not in ("false", "0", "no", "off")


def _env_list(name: str) -> Optional[tuple[str, ...]]:
    value = _env_str(name)
    if value is None:
        return None
    items = tuple(v.strip() for v in value.split(",") if v.strip())
    return items or None


# ---------------------------------------------------------------------------
# Config sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WalletWatchConfig:
    """모니터링 대상 지갑 설정. 로드 후 불변."""

    address: str
    name: str
    enabled: bool = True
    min_win_rate: float = 0.70              # 0.0 ~ 1.0
    max_position_size_usd: float = 2000.0
    position_size_multiplier: float = 0.01  # 0.0 ~ 1.0
    markets_filter: Optional[tuple[str, ...]] = None  # None = 모든 마켓
    require_arb_signal: bool = True

    def allows_market(self, market_id: str) -> bool:
        """Allow-list 체크. 필터가 없으면 항상 True."""
        return self.markets_filter is None or market_id in self.markets_filter

    @classmethod
    def from_env(cls, index: int) -> Optional[WalletWatchConfig]:
        """TARGET_WALLET_<index>[_*] 환경변수에서 로드. 주소가 없으면 None."""
        prefix = f"TARGET_WALLET_{index}"
        address = _env_str(prefix)
        if address is None:
            return None
        return cls(
            address=address,
            name=_env_str(f"{prefix}_NAME", f"wallet_{index}"),
            enabled=_env_bool(f"{prefix}_ENABLED", True),
            min_win_rate=_env_float(f"{prefix}_MIN_WIN_RATE", 0.70),
            max_position_size_usd=_env_float(f"{prefix}_MAX_POSITION_USD", 2000.0),
            position_size_multiplier=_env_float(f"{prefix}_MULTIPLIER", 0.01),
            markets_filter=_env_list(f"{prefix}_MARKETS"),
            require_arb_signal=_env_bool(f"{prefix}_REQUIRE_ARB", True),
        )


@dataclass
class ArbitrageConfig:
    """아비트라지 감지 임계값."""

    min_profit_pct: float = 0.01    # 최소 수익률 (fraction)
    max_profit_pct: float = 0.05    # 이보다 크면 stale/bad data로 간주
    min_liquidity_usd: float = 1000.0
    internal_enabled: bool = True
    cross_platform_enabled: bool = False
    opportunity_max_age_seconds: float = 5.0
    scan_concurrency: int = 10

    @classmethod
    def from_env(cls) -> ArbitrageConfig:
        return cls(
            min_profit_pct=_env_float("MIN_ARB_PROFIT_PCT", 0.01),
            max_profit_pct=_env_float("MAX_ARB_PROFIT_PCT", 0.05),
            min_liquidity_usd=_env_float("MIN_LIQUIDITY_USD", 1000.0),
            internal_enabled=_env_bool("INTERNAL_ARB_ENABLED", True),
            cross_platform_enabled=_env_bool("CROSS_PLATFORM_ENABLED", False),
            opportunity_max_age_seconds=_env_float("OPPORTUNITY_MAX_AGE_SECONDS", 5.0),
        )


@dataclass
class RiskConfig:
    """노출 한도 설정."""

    max_total_exposure_usd: float = 10_000.0
    max_position_per_market_usd: float = 2_000.0
    max_daily_loss_usd: float = 500.0
    enable_auto_hedge: bool = True

    @classmethod
    def from_env(cls) -> RiskConfig:
        return cls(
            max_total_exposure_usd=_env_float("MAX_TOTAL_EXPOSURE_USD", 10_000.0),
            max_position_per_market_usd=_env_float("MAX_POSITION_PER_MARKET_USD", 2_000.0),
            max_daily_loss_usd=_env_float("MAX_DAILY_LOSS_USD", 500.0),
            enable_auto_hedge=_env_bool("ENABLE_AUTO_HEDGE", True),
        )


@dataclass
class VenueConfig:
    """Polymarket API 엔드포인트와 인증 정보."""

    gamma_api_url: str = GAMMA_API_URL
    clob_api_url: str = CLOB_API_URL
    data_api_url: str = DATA_API_URL
    chain_id: int = POLYGON_CHAIN_ID
    rpc_url: Optional[str] = POLYGON_RPC_URL
    private_key: Optional[str] = None
    funder: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    api_passphrase: Optional[str] = None

    @property
    def has_api_creds(self) -> bool:
        return bool(self.api_key and self.api_secret and self.api_passphrase)

    @classmethod
    def from_env(cls) -> VenueConfig:
        return cls(
            rpc_url=_env_str("POLYGON_RPC_URL", POLYGON_RPC_URL),
            private_key=_env_str("POLYMARKET_PRIVATE_KEY"),
            funder=_env_str("POLYMARKET_FUNDER"),
            api_key=_env_str("POLYMARKET_API_KEY"),
            api_secret=_env_str("POLYMARKET_API_SECRET"),
            api_passphrase=_env_str("POLYMARKET_API_PASSPHRASE"),
        )


# ---------------------------------------------------------------------------
# BotConfig — 환경변수 기반 설정
# ---------------------------------------------------------------------------


@dataclass
class BotConfig:
    """봇 전체 설정. 환경변수 또는 기본값."""

    wallets: list[WalletWatchConfig] = field(default_factory=list)
    arbitrage: ArbitrageConfig = field(default_factory=ArbitrageConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    venue: VenueConfig = field(default_factory=VenueConfig)
    dry_run: bool = True
    enabled_markets: Optional[tuple[str, ...]] = None  # None = 모든 마켓
    min_market_volume_24h: float = 5000.0
    market_scan_limit: int = 100
    wallet_check_interval: float = 1.0   # seconds
    arb_scan_interval: float = 0.5       # seconds
    status_interval: float = 60.0        # seconds
    event_queue_size: int = 1000
    log_level: str = "INFO"

    def __post_init__(self):
        self.wallet_check_interval = max(self.wallet_check_interval, MIN_INTERVAL_SECONDS)
        self.arb_scan_interval = max(self.arb_scan_interval, MIN_INTERVAL_SECONDS)
        self.status_interval = max(self.status_interval, MIN_INTERVAL_SECONDS)

    @classmethod
    def from_env(cls) -> BotConfig:
        """환경변수에서 설정 로드. 없으면 안전한 기본값."""
        wallets = []
        for index in range(1, MAX_TARGET_WALLETS + 1):
            wallet = WalletWatchConfig.from_env(index)
            if wallet is not None:
                wallets.append(wallet)

        return cls(
            wallets=wallets,
            arbitrage=ArbitrageConfig.from_env(),
            risk=RiskConfig.from_env(),
            venue=VenueConfig.from_env(),
            dry_run=_env_bool("POLYCOPY_DRY_RUN", True),
            enabled_markets=_env_list("ENABLED_MARKETS"),
            min_market_volume_24h=_env_float("MIN_MARKET_VOLUME_24H", 5000.0),
            wallet_check_interval=_env_float("WALLET_CHECK_INTERVAL_SECONDS", 1.0),
            arb_scan_interval=_env_float("ARB_SCAN_INTERVAL_SECONDS", 0.5),
            status_interval=_env_float("STATUS_INTERVAL_SECONDS", 60.0),
            log_level=(_env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
        )

    def enabled_wallets(self) -> list[WalletWatchConfig]:
        """활성화된 지갑만 반환."""
        return [w for w in self.wallets if w.enabled]

    def validate(self) -> None:
        """Raise ConfigError for problems that must stop startup."""
        if not self.enabled_wallets():
            raise ConfigError(
                "No wallets configured! Set TARGET_WALLET_1 in the environment or .env"
            )
        if not self.dry_run and not self.venue.private_key:
            raise ConfigError(
                "Live trading requires POLYMARKET_PRIVATE_KEY"
            )
        if self.arbitrage.min_profit_pct > self.arbitrage.max_profit_pct:
            raise ConfigError(
                f"MIN_ARB_PROFIT_PCT ({self.arbitrage.min_profit_pct}) exceeds "
                f"MAX_ARB_PROFIT_PCT ({self.arbitrage.max_profit_pct})"
            )
        for wallet in self.wallets:
            if not 0.0 <= wallet.position_size_multiplier <= 1.0:
                raise ConfigError(
                    f"{wallet.name}: position size multiplier must be within [0, 1]"
                )
