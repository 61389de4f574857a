from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None


CONFIG_ENV = "SHOTSETS_CONFIG"
DEFAULT_CONFIG = Path.home() / ".config" / "shotsets" / "config.toml"
DEFAULT_PLATFORMS = ["aplite", "basalt", "chalk"]


@dataclass
class ApiConfig:
    host: str = "127.0.0.1"
    port: int = 8768

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass
class AppConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    project_id: str = "default"
    db_path: Optional[str] = None
    supported_platforms: List[str] = field(default_factory=lambda: list(DEFAULT_PLATFORMS))
    waiting_delay_ms: int = 500

    @property
    def waiting_delay(self) -> float:
        return self.waiting_delay_ms / 1000.0


def config_path() -> Path:
    p = os.environ.get(CONFIG_ENV)
    return Path(p).expanduser() if p else DEFAULT_CONFIG


def _str_list(v: object, default: List[str]) -> List[str]:
    if isinstance(v, str):
        items = [s.strip() for s in v.split(",")]
    elif isinstance(v, list):
        items = [str(s).strip() for s in v]
    else:
        return list(default)
    items = [s for s in items if s]
    return items or list(default)


def load_config() -> AppConfig:
    """Read the TOML config file, then apply SHOTSETS_* environment overrides."""
    data: dict = {}
    p = config_path()
    if p.exists() and tomllib is not None:
        data = tomllib.loads(p.read_text())

    api_tbl = data.get("api", {}) or {}
    api = ApiConfig(
        host=os.environ.get("SHOTSETS_API_HOST", api_tbl.get("host", "127.0.0.1")),
        port=int(os.environ.get("SHOTSETS_API_PORT", api_tbl.get("port", 8768))),
    )
    return AppConfig(
        api=api,
        project_id=str(os.environ.get("SHOTSETS_PROJECT", data.get("project_id", "default"))),
        db_path=os.environ.get("SHOTSETS_DB", data.get("db_path")),
        supported_platforms=_str_list(data.get("supported_platforms"), DEFAULT_PLATFORMS),
        waiting_delay_ms=int(data.get("waiting_delay_ms", 500)),
    )
