"""
Settings - User configuration persisted as settings.json.
"""

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SERVER_PORT = 9412
DEFAULT_INACTIVITY_TIMEOUT_SECONDS = 300
DEFAULT_SWEEP_INTERVAL_SECONDS = 5


@dataclass
class Settings:
    """Application settings with defaults for every field."""
    server_port: int = DEFAULT_SERVER_PORT
    allow_lan: bool = False
    # Abandon a pending request after this long without a decision (0 = never)
    inactivity_timeout_seconds: int = DEFAULT_INACTIVITY_TIMEOUT_SECONDS
    sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS
    chain_id: int = 84532
    rpc_url: str = ""
    # Argon2id costs for new password hashes and wallet records
    kdf_time_cost: int = 3
    kdf_memory_cost: int = 65536
    kdf_parallelism: int = 4
    log_retention_days: int = 0
    toast_enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Build from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def load(cls, path: Path) -> "Settings":
        """Load settings; missing or corrupt files give defaults."""
        if not path.exists():
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("settings must be a JSON object")
            return cls.from_dict(data)
        except (json.JSONDecodeError, OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to load settings from {path}: {e}")
            return cls()
