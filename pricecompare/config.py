"""Configuration for API access and alignment defaults."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
_project_root = Path(__file__).parent.parent
load_dotenv(_project_root / ".env")


def _default_crypto_symbols() -> dict[str, str]:
    return {
        "BTC": "BTCUSDT",
        "ETH": "ETHUSDT",
        "SOL": "SOLUSDT",
    }


@dataclass
class CompareConfig:
    """Upstream endpoints, sampling and tolerance settings."""

    gamma_api_base: str = field(
        default_factory=lambda: os.environ.get("POLYMARKET_GAMMA_API", "https://gamma-api.polymarket.com")
    )
    clob_api_base: str = field(
        default_factory=lambda: os.environ.get("POLYMARKET_CLOB_API", "https://clob.polymarket.com")
    )
    binance_api_base: str = field(
        default_factory=lambda: os.environ.get("BINANCE_API", "https://api.binance.com/api/v3")
    )
    http_timeout: float = field(
        default_factory=lambda: float(os.environ.get("COMPARE_HTTP_TIMEOUT", "15.0"))
    )

    # Polymarket price history sampling (minutes)
    fidelity_minutes: int = 10

    # Binance klines
    kline_interval: str = "5m"
    kline_page_limit: int = 1000

    # Nearest-match windows (seconds)
    primary_tolerance_s: int = 270
    secondary_tolerance_s: int = 120

    # Drop a series from the store when it is deselected
    evict_on_deselect: bool = False

    crypto_symbols: dict[str, str] = field(default_factory=_default_crypto_symbols)

    def validate(self) -> None:
        """Raise if any setting is out of range."""
        if self.fidelity_minutes <= 0:
            raise ValueError(f"fidelity_minutes must be positive, got {self.fidelity_minutes}")
        if self.kline_page_limit <= 0:
            raise ValueError(f"kline_page_limit must be positive, got {self.kline_page_limit}")
        if self.primary_tolerance_s < 0 or self.secondary_tolerance_s < 0:
            raise ValueError("Tolerances must be non-negative")
        if self.http_timeout <= 0:
            raise ValueError(f"http_timeout must be positive, got {self.http_timeout}")

    def symbol_for_crypto(self, crypto: str) -> str:
        """Get the Binance symbol for a crypto option."""
        crypto = crypto.upper()
        if crypto not in self.crypto_symbols:
            raise ValueError(f"Unknown crypto: {crypto}")
        return self.crypto_symbols[crypto]


# Global default config (can be overridden)
_config: CompareConfig | None = None


def get_config() -> CompareConfig:
    """Get the global configuration."""
    global _config
    if _config is None:
        _config = CompareConfig()
    return _config


def set_config(config: CompareConfig) -> None:
    """Set the global configuration."""
    global _config
    config.validate()
    _config = config
