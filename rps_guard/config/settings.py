import os
from dataclasses import dataclass
from typing import FrozenSet
from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: str) -> str:
    # Strip any whitespace or trailing comments from environment variables
    return os.getenv(name, default).strip().split("#")[0].strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be numeric, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


# Addresses known for MEV activity against the game
DEFAULT_MEV_ADDRESSES = (
    "0x4206904396d558D6fA240E0F788d30C831D4a6E7",
    "0xC8F68Eccf2F05F32d29A8e949fDA3A222f6a9Bd7",
)


class Settings:
    NAME = "rps-guard"
    VERSION = "1.0.0"
    HOST = _env("HOST", "0.0.0.0")
    PORT = _env_int("PORT", 8000)
    LOG_LEVEL = _env("LOG_LEVEL", "info")

    # Rate limiting settings
    RATE_LIMIT_DETECT = _env("RATE_LIMIT_DETECT", "120/minute")

    # Detection thresholds
    FRONTRUN_GAS_PRICE_WEI = _env_int("FRONTRUN_GAS_PRICE_WEI", 30_000_000_000)
    FRONTRUN_TIME_DELTA_SECONDS = _env_float("FRONTRUN_TIME_DELTA_SECONDS", 2.0)
    SANDWICH_PRICE_IMPACT_PERCENT = _env_float("SANDWICH_PRICE_IMPACT_PERCENT", 1.0)
    REORG_DEPTH_THRESHOLD = _env_int("REORG_DEPTH_THRESHOLD", 2)
    JIT_DURATION_SECONDS = _env_float("JIT_DURATION_SECONDS", 30.0)
    ORACLE_CHANGE_PERCENT = _env_float("ORACLE_CHANGE_PERCENT", 10.0)
    ORACLE_VOLATILITY_MULTIPLIER = _env_float("ORACLE_VOLATILITY_MULTIPLIER", 3.0)
    ORACLE_CONFIDENCE_THRESHOLD = _env_float("ORACLE_CONFIDENCE_THRESHOLD", 0.8)
    OWNER_RISK_SCORE_THRESHOLD = _env_float("OWNER_RISK_SCORE_THRESHOLD", 75.0)

    KNOWN_MEV_ADDRESSES = tuple(
        address.strip()
        for address in _env("KNOWN_MEV_ADDRESSES", ",".join(DEFAULT_MEV_ADDRESSES)).split(",")
        if address.strip()
    )


settings = Settings()


@dataclass(frozen=True)
class DetectionPolicy:
    """Read-only thresholds and reference data shared by every detector."""
    frontrun_gas_price_wei: int = 30_000_000_000
    frontrun_time_delta_seconds: float = 2.0
    sandwich_price_impact_percent: float = 1.0
    reorg_depth_threshold: int = 2
    jit_duration_seconds: float = 30.0
    oracle_change_percent: float = 10.0
    oracle_volatility_multiplier: float = 3.0
    oracle_confidence_threshold: float = 0.8
    owner_risk_score_threshold: float = 75.0
    mev_addresses: FrozenSet[str] = frozenset(a.lower() for a in DEFAULT_MEV_ADDRESSES)

    @classmethod
    def from_settings(cls, source: Settings) -> "DetectionPolicy":
        return cls(
            frontrun_gas_price_wei=source.FRONTRUN_GAS_PRICE_WEI,
            frontrun_time_delta_seconds=source.FRONTRUN_TIME_DELTA_SECONDS,
            sandwich_price_impact_percent=source.SANDWICH_PRICE_IMPACT_PERCENT,
            reorg_depth_threshold=source.REORG_DEPTH_THRESHOLD,
            jit_duration_seconds=source.JIT_DURATION_SECONDS,
            oracle_change_percent=source.ORACLE_CHANGE_PERCENT,
            oracle_volatility_multiplier=source.ORACLE_VOLATILITY_MULTIPLIER,
            oracle_confidence_threshold=source.ORACLE_CONFIDENCE_THRESHOLD,
            owner_risk_score_threshold=source.OWNER_RISK_SCORE_THRESHOLD,
            mev_addresses=frozenset(a.lower() for a in source.KNOWN_MEV_ADDRESSES),
        )

    def is_high_risk(self, address) -> bool:
        return bool(address) and address.lower() in self.mev_addresses


policy = DetectionPolicy.from_settings(settings)
