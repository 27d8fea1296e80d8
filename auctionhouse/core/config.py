"""
Engine configuration parameters for auctionhouse.

Defines operational limits, scheduler behaviour and storage locations.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import dotenv_values

ENV_PREFIX = "AUCTIONHOUSE_"


@dataclass
class EngineConfig:
    """Engine-wide configuration parameters"""

    # Auction limits
    max_duration_minutes: int = 7 * 24 * 60  # One week
    max_invitees: int = 256
    max_start_delay_minutes: int = 7 * 24 * 60  # How far ahead startAt may lie

    # Scheduler
    scheduler_retry_delay: float = 5.0  # Seconds before a failed job is retried
    scheduler_max_retries: int = 3

    # Storage
    persist: bool = False
    data_dir: Path = Path("data")
    db_name: str = "auctions.db"

    # Logging
    log_dir: Path = Path("logs")
    log_to_file: bool = False

    # HTTP
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name

    def ensure_dirs(self) -> None:
        """Create the directories this config points at."""
        if self.persist:
            self.data_dir.mkdir(exist_ok=True, parents=True)
        if self.log_to_file:
            self.log_dir.mkdir(exist_ok=True, parents=True)


def _coerce(value: str, current: Any) -> Any:
    """Convert a raw string setting to the type of the default."""
    if isinstance(current, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, Path):
        return Path(value).expanduser()
    return value


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Dict[str, str]] = None,
    **overrides: Any,
) -> EngineConfig:
    """
    Load configuration from a .env file and the environment.

    Precedence (highest first): keyword overrides, AUCTIONHOUSE_* environment
    variables, values from the .env file, dataclass defaults.

    Args:
        config_path: Optional path to a .env file
        environ: Environment mapping (defaults to os.environ)
        overrides: Explicit field values

    Returns:
        EngineConfig instance
    """
    raw: Dict[str, Optional[str]] = {}
    if config_path:
        raw.update(dotenv_values(config_path))

    env = os.environ if environ is None else environ
    raw.update({key: value for key, value in env.items() if key.startswith(ENV_PREFIX)})

    config = EngineConfig()
    for f in fields(EngineConfig):
        key = ENV_PREFIX + f.name.upper()
        value = raw.get(key)
        if value is not None and value != "":
            setattr(config, f.name, _coerce(value, getattr(config, f.name)))

    for name, value in overrides.items():
        if not hasattr(config, name):
            raise TypeError(f"Unknown config field: {name}")
        setattr(config, name, value)

    return config
