import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

# app/
BASE_DIR = Path(__file__).resolve().parents[2]


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    host: str = "0.0.0.0"
    port: int = 8080
    tick_period: float = Field(default=5.0, gt=0)
    send_timeout_sec: float = Field(default=1.5, gt=0)
    max_queue: int = 32
    ping_interval: float | None = 20
    ping_timeout: float | None = 20


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = "ws://localhost:8080"
    local_tick_period: float = Field(default=1.0, gt=0)
    reconnect_delay: float = Field(default=5.0, gt=0)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    events_file: str | None = None


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    server: ServerConfig = Field(default_factory=ServerConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: str | Path | None = None) -> AppConfig:
    if path is None:
        config_path = BASE_DIR / "config" / "config.json"
        if not config_path.exists():
            # installed without the source tree: built-in defaults
            return AppConfig()
    else:
        config_path = Path(path)
    with config_path.open(encoding="utf-8") as f:
        return AppConfig.model_validate(json.load(f))


def resolve_path(value: str | Path) -> Path:
    """Relative paths in the config are relative to ``app/``."""
    p = Path(value)
    return p if p.is_absolute() else BASE_DIR / p


def configure_logging(cfg: AppConfig) -> None:
    logging.basicConfig(level=cfg.logging.level.upper(), format=cfg.logging.format)
