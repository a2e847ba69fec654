"""
Ledger configuration parameters.

Defines the economic constants of the marketplace, the acquisition window
and storage locations. Amounts are in yocto units (1 NEAR = 10**24),
timestamps and windows in seconds.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from bidledger.utils.logger import get_logger

logger = get_logger("config")

ONE_NEAR = 10**24

ENV_PREFIX = "BIDLEDGER_"

DEFAULT_DATA_DIR = "~/.bidledger"
DEFAULT_LOG_DIR = "~/.bidledger/logs"


@dataclass
class LedgerConfig:
    """Economic parameters of the marketplace"""

    # Deposits and prices
    offer_deposit: int = 450 * ONE_NEAR // 1000  # 0.45 NEAR, kept as commission
    init_bet_price: int = 500 * ONE_NEAR // 1000  # 0.5 NEAR, price of the first bet

    # Distribution
    inv_commission: int = 20  # Commission is 1/20 of every bet
    inv_reward_decay_mult_100: int = 144  # Each prior bettor gets R // 144 * 100

    # Timing
    acquisition_time: int = 72 * 60 * 60  # Claim must survive 72 hours

    # Rewards
    min_reward_withdrawal: int = ONE_NEAR // 10  # Balance must exceed 0.1 NEAR

    def validate(self) -> None:
        """Reject parameter sets that break the pricing formulas."""
        # Below 5 the 6/5 step truncates back to the same price
        if self.init_bet_price < 5:
            raise ValueError(f"init_bet_price must be at least 5, got {self.init_bet_price}")
        if self.offer_deposit < 0:
            raise ValueError(f"offer_deposit cannot be negative, got {self.offer_deposit}")
        if self.inv_commission <= 0:
            raise ValueError(f"inv_commission must be positive, got {self.inv_commission}")
        if self.inv_reward_decay_mult_100 <= 100:
            raise ValueError(
                f"inv_reward_decay_mult_100 must exceed 100, got {self.inv_reward_decay_mult_100}"
            )
        if self.acquisition_time < 0:
            raise ValueError(f"acquisition_time cannot be negative, got {self.acquisition_time}")


@dataclass
class StorageConfig:
    """Filesystem locations"""

    data_dir: Path = Path(DEFAULT_DATA_DIR).expanduser()
    db_name: str = "ledger.db"
    log_dir: Path = Path(DEFAULT_LOG_DIR).expanduser()

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


@dataclass
class Config:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX + name} must be an integer, got {raw!r}")


def load_config(env_file: Optional[str] = None) -> Config:
    """
    Load configuration from the environment.

    Variables are named BIDLEDGER_<FIELD> (e.g. BIDLEDGER_ACQUISITION_TIME,
    BIDLEDGER_DATA_DIR). Missing variables keep their defaults.

    Args:
        env_file: Optional dotenv file loaded before reading the environment

    Returns:
        Config instance
    """
    if env_file:
        if not load_dotenv(env_file):
            logger.warning(f"Env file {env_file} not found or empty")

    defaults = LedgerConfig()
    ledger = LedgerConfig(
        offer_deposit=_env_int("OFFER_DEPOSIT", defaults.offer_deposit),
        init_bet_price=_env_int("INIT_BET_PRICE", defaults.init_bet_price),
        inv_commission=_env_int("INV_COMMISSION", defaults.inv_commission),
        inv_reward_decay_mult_100=_env_int(
            "INV_REWARD_DECAY_MULT_100", defaults.inv_reward_decay_mult_100
        ),
        acquisition_time=_env_int("ACQUISITION_TIME", defaults.acquisition_time),
        min_reward_withdrawal=_env_int("MIN_REWARD_WITHDRAWAL", defaults.min_reward_withdrawal),
    )
    ledger.validate()

    storage = StorageConfig(
        data_dir=Path(os.environ.get(ENV_PREFIX + "DATA_DIR", DEFAULT_DATA_DIR)).expanduser(),
        db_name=os.environ.get(ENV_PREFIX + "DB_NAME", "ledger.db"),
        log_dir=Path(os.environ.get(ENV_PREFIX + "LOG_DIR", DEFAULT_LOG_DIR)).expanduser(),
    )

    return Config(ledger=ledger, storage=storage)
