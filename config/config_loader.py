"""Load settings.yaml into typed dataclasses. Resolves the server URL from the environment."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ServerConfig:
    base_url: str
    request_timeout_sec: float
    stream_idle_timeout_sec: float
    base_url_env: str = "COUNCIL_API_URL"


@dataclass
class CouncilConfig:
    chairman: str
    members: list[str] = field(default_factory=list)


@dataclass
class DefaultsConfig:
    output_dir: Path


@dataclass
class AppConfig:
    server: ServerConfig
    council: CouncilConfig
    defaults: DefaultsConfig


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    The environment variable named by ``server.base_url_env`` overrides
    ``server.base_url`` when set.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    server_raw = raw["server"]
    base_url_env = str(server_raw.get("base_url_env", "COUNCIL_API_URL"))
    base_url = str(server_raw["base_url"])
    env_url = os.environ.get(base_url_env, "").strip()
    if env_url:
        logger.info("Server URL from %s: %s", base_url_env, env_url)
        base_url = env_url

    server = ServerConfig(
        base_url=base_url.rstrip("/"),
        request_timeout_sec=float(server_raw["request_timeout_sec"]),
        stream_idle_timeout_sec=float(server_raw["stream_idle_timeout_sec"]),
        base_url_env=base_url_env,
    )

    council_raw = raw.get("council", {})
    council = CouncilConfig(
        chairman=str(council_raw.get("chairman", "")),
        members=[str(m) for m in council_raw.get("members", [])],
    )

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(output_dir=Path(defaults_raw["output_dir"]))

    return AppConfig(server=server, council=council, defaults=defaults)
