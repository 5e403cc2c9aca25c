from __future__ import annotations
import os
from dataclasses import dataclass

from .errors import ConfigurationError

STORAGE_BACKENDS = ("r2", "local")


def _env(key: str, default: str = "") -> str:
    return (os.getenv(key) or default).strip()


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read once from the environment."""

    storage_backend: str = "r2"
    r2_access_key: str = ""
    r2_secret_key: str = ""
    r2_bucket: str = ""
    r2_endpoint: str = ""
    r2_public_base_url: str = ""
    local_storage_dir: str = "./data"
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"
    events_object_key: str = "json/events.json"
    presign_expires_seconds: int = 900
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        backend = _env("STORAGE_BACKEND", "r2").lower()
        if backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}, got {backend!r}"
            )
        try:
            expires = int(_env("PRESIGN_EXPIRES_SECONDS", "900"))
        except ValueError as e:
            raise ConfigurationError("PRESIGN_EXPIRES_SECONDS must be an integer") from e
        return cls(
            storage_backend=backend,
            r2_access_key=_env("R2_ACCESS_KEY"),
            r2_secret_key=_env("R2_SECRET_KEY"),
            r2_bucket=_env("R2_BUCKET"),
            r2_endpoint=_env("R2_ENDPOINT"),
            r2_public_base_url=_env("R2_PUBLIC_BASE_URL"),
            local_storage_dir=_env("LOCAL_STORAGE_DIR", "./data"),
            base_url=_env("BASE_URL", "http://localhost:8000"),
            secret_key=_env("SECRET_KEY", "change-me"),
            events_object_key=_env("EVENTS_OBJECT_KEY", "json/events.json"),
            presign_expires_seconds=expires,
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )

    def require(self, name: str) -> str:
        """Return a required setting or raise ConfigurationError naming its env var."""
        value = getattr(self, name)
        if not value:
            raise ConfigurationError(f"Missing environment variable: {name.upper()}")
        return value
