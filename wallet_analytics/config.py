"""Central configuration loader for wallet-analytics."""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Project root is the parent of the wallet_analytics/ directory
PROJECT_ROOT = Path(__file__).resolve().parent.parent

load_dotenv(PROJECT_ROOT / ".env")


def load_settings() -> dict:
    """Load settings from configs/settings.yaml (empty when the file is absent)."""
    settings_path = PROJECT_ROOT / "configs" / "settings.yaml"
    if not settings_path.exists():
        return {}
    with open(settings_path) as f:
        return yaml.safe_load(f) or {}


SETTINGS = load_settings()

LOG_LEVEL = os.getenv(
    "WALLET_ANALYTICS_LOG_LEVEL",
    SETTINGS.get("app", {}).get("log_level", "INFO"),
)


@dataclass(frozen=True)
class EngineConfig:
    """Thresholds and window sizes shared by every engine component."""

    # Optimizer
    min_optimizer_days: int = 3
    min_optimizer_items: int = 2
    max_optimizer_assets: int = 20
    frontier_points: int = 30
    diagnostic_top_items: int = 10

    # Risk
    portfolio_lookback_days: int = 180
    min_risk_sample_days: int = 5
    low_sample_days: int = 20
    min_var99_days: int = 30
    ewma_lambda: float = 0.94

    # ISK markets trade every calendar day
    annualization_days: int = 365


DEFAULT_CONFIG = EngineConfig()
