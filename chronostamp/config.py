import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from .signer import Environment, SignerConfig


def _optional(name: str) -> Optional[str]:
    val = os.environ.get(name, "").strip()
    return val or None


@dataclass
class Settings:
    environment: Environment = Environment.DEVELOPMENT
    signer_keys: Dict[Environment, str] = field(default_factory=dict)
    signer_addresses: Dict[Environment, str] = field(default_factory=dict)

    database_url: str = "sqlite:///./chronostamp.db"
    db_timeout_seconds: float = 5.0

    redis_url: Optional[str] = None

    rpc_url: Optional[str] = None
    chain_timeout_seconds: float = 5.0

    organizer_token_secret: str = "dev_secret_change_me"
    authorize_rate_per_minute: int = 10
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        env_name = os.environ.get("CHRONOSTAMP_ENV", "development").lower()
        try:
            environment = Environment(env_name)
        except ValueError:
            raise ValueError(
                f"CHRONOSTAMP_ENV must be 'development' or 'production', got {env_name!r}"
            )

        keys = {}
        addresses = {}
        for env, suffix in ((Environment.DEVELOPMENT, "DEV"), (Environment.PRODUCTION, "PROD")):
            key = _optional(f"SIGNER_PRIVATE_KEY_{suffix}")
            addr = _optional(f"SIGNER_ADDRESS_{suffix}")
            if key:
                keys[env] = key
            if addr:
                addresses[env] = addr

        return cls(
            environment=environment,
            signer_keys=keys,
            signer_addresses=addresses,
            database_url=os.environ.get("DATABASE_URL", cls.database_url),
            db_timeout_seconds=float(os.environ.get("DB_TIMEOUT_SECONDS", "5")),
            redis_url=_optional("REDIS_URL"),
            rpc_url=_optional("RPC_URL"),
            chain_timeout_seconds=float(os.environ.get("CHAIN_TIMEOUT_SECONDS", "5")),
            organizer_token_secret=os.environ.get("ORGANIZER_TOKEN_SECRET", "dev_secret_change_me"),
            authorize_rate_per_minute=int(os.environ.get("AUTHORIZE_RATE_PER_MINUTE", "10")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

    def signer_config(self) -> SignerConfig:
        return SignerConfig(
            environment=self.environment,
            keys=dict(self.signer_keys),
            expected_addresses=dict(self.signer_addresses),
        )
