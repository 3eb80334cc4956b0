# BigO Board - configuration
# Defaults below; override via board.yaml, environment (or .env), then CLI args.

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

CONFIG_PATH = Path(__file__).parent.parent / "board.yaml"

# env var → (field, type)
ENV_OVERRIDES = {
    "BIGO_WEBHOOK_URL": ("webhook_url", str),
    "BIGO_API_KEY_NAME": ("api_key_name", str),
    "BIGO_API_KEY_VAL": ("api_key_val", str),
    "BIGO_WEBHOOK_SECRET": ("webhook_secret", str),
    "BIGO_TOPIC_ID": ("default_topic_id", str),
    "BIGO_USER_ID": ("default_user_id", str),
    "BIGO_DB": ("db_path", str),
    "BIGO_RELAY_TIMEOUT": ("relay_timeout", float),
    "BIGO_POLL_INTERVAL": ("poll_interval", float),
    "BIGO_POLL_MAX_ATTEMPTS": ("poll_max_attempts", int),
}

# YAML values for these are cast before validation
NUMERIC_FIELDS = {
    "relay_timeout": float,
    "poll_interval": float,
    "poll_max_attempts": int,
}


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class BoardConfig:
    """Runtime configuration for the board server and chat client."""

    # External AI service (outbound webhook)
    webhook_url: Optional[str] = None   # None = chat relay disabled
    api_key_name: str = ""
    api_key_val: str = ""
    relay_timeout: float = 10.0

    # Inbound webhook: X-API-Key required only when set
    webhook_secret: str = ""

    # Conversation defaults
    default_topic_id: str = "22"
    default_user_id: str = "1"

    # Client-side polling
    poll_interval: float = 2.0
    poll_max_attempts: int = 30

    # Card store
    db_path: str = "~/.local/share/bigo/board.db"
    seed_samples: bool = True

    def resolve(self):
        """Expand paths and validate numeric settings."""
        self.db_path = str(Path(self.db_path).expanduser())
        if self.relay_timeout <= 0:
            raise ConfigError(f"relay_timeout must be > 0, got {self.relay_timeout}")
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be > 0, got {self.poll_interval}")
        if self.poll_max_attempts < 1:
            raise ConfigError(
                f"poll_max_attempts must be >= 1, got {self.poll_max_attempts}"
            )

    def apply_env(self, environ=None):
        """Override fields from BIGO_* environment variables."""
        environ = os.environ if environ is None else environ
        for var, (name, cast) in ENV_OVERRIDES.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            try:
                setattr(self, name, cast(raw))
            except ValueError:
                raise ConfigError(f"Environment variable {var} is invalid: '{raw}'")

    @property
    def relay_enabled(self) -> bool:
        return bool(self.webhook_url)

    @classmethod
    def load(cls, path: Optional[str] = None, environ=None) -> "BoardConfig":
        """Load config from YAML + environment, falling back to defaults."""
        if environ is None:
            load_dotenv()
        cfg_path = Path(path) if path else CONFIG_PATH
        known = {f.name for f in fields(cls)}
        if cfg_path.exists():
            with open(cfg_path, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path}: expected a mapping at top level")
            values = {k: v for k, v in data.items() if k in known}
            for name, cast in NUMERIC_FIELDS.items():
                if name not in values:
                    continue
                try:
                    values[name] = cast(values[name])
                except (TypeError, ValueError):
                    raise ConfigError(f"{cfg_path}: {name} is invalid: {values[name]!r}")
            cfg = cls(**values)
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")
        else:
            cfg = cls()
        cfg.apply_env(environ)
        cfg.resolve()
        return cfg
