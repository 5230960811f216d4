"""
Configuration Management for r3cent

Loads configuration from ~/.r3cent/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("r3cent.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".r3cent"
CONFIG_PATH = Path(os.getenv("R3CENT_CONFIG", str(CONFIG_DIR / "config.json"))).expanduser()
DATA_DIR = CONFIG_DIR / "data"
DEFAULT_DB_PATH = DATA_DIR / "items.db"
DEFAULT_SESSIONS_PATH = DATA_DIR / "ask_sessions.json"


@dataclass
class LLMConfig:
    """Answer generator provider configuration"""
    provider: str = "google"
    google_api_key: str = ""
    google_model: str = "gemini-2.5-flash"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    @property
    def model(self) -> str:
        """Model name for the selected provider"""
        return {
            "google": self.google_model,
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
        }.get(self.provider, "")


@dataclass
class AskConfig:
    """Ask pipeline configuration"""
    generator_timeout: float = 12.0
    max_tokens: int = 360
    temperature: float = 0.4
    timezone: str = "UTC"
    default_display_name: str = "there"


@dataclass
class StoreConfig:
    """Item store and session ledger locations"""
    db_path: str = str(DEFAULT_DB_PATH)
    sessions_path: str = str(DEFAULT_SESSIONS_PATH)
    timeout: float = 5.0


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8787


@dataclass
class R3centConfig:
    """Main r3cent configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    ask: AskConfig = field(default_factory=AskConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "google"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.5-flash"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
    )


def _parse_ask_config(data: dict) -> AskConfig:
    """Parse ask section from config dict"""
    ask_data = data.get("ask", {})
    return AskConfig(
        generator_timeout=float(ask_data.get("generator_timeout", 12.0)),
        max_tokens=int(ask_data.get("max_tokens", 360)),
        temperature=float(ask_data.get("temperature", 0.4)),
        timezone=ask_data.get("timezone", "UTC"),
        default_display_name=ask_data.get("default_display_name", "there"),
    )


def _parse_store_config(data: dict) -> StoreConfig:
    """Parse store section from config dict"""
    store_data = data.get("store", {})
    return StoreConfig(
        db_path=store_data.get("db_path", str(DEFAULT_DB_PATH)),
        sessions_path=store_data.get("sessions_path", str(DEFAULT_SESSIONS_PATH)),
        timeout=float(store_data.get("timeout", 5.0)),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 8787)),
    )


def load_config() -> R3centConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.r3cent/config.json)
    3. Default values
    """
    config = R3centConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.ask = _parse_ask_config(data)
            config.store = _parse_store_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # LLM env var overrides (track env-sourced keys so they are never saved)
    _env_llm_map = {
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "OPENAI_API_KEY": "openai_api_key",
        "R3CENT_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("R3CENT_LLM_MODEL"):
        model_attr = f"{config.llm.provider}_model"
        if hasattr(config.llm, model_attr):
            setattr(config.llm, model_attr, os.getenv("R3CENT_LLM_MODEL"))

    if os.getenv("R3CENT_DB_PATH"):
        config.store.db_path = os.getenv("R3CENT_DB_PATH")
    if os.getenv("R3CENT_SESSIONS_PATH"):
        config.store.sessions_path = os.getenv("R3CENT_SESSIONS_PATH")
    if os.getenv("R3CENT_TIMEZONE"):
        config.ask.timezone = os.getenv("R3CENT_TIMEZONE")
    if os.getenv("R3CENT_GENERATOR_TIMEOUT"):
        config.ask.generator_timeout = float(os.getenv("R3CENT_GENERATOR_TIMEOUT"))
    if os.getenv("R3CENT_PORT"):
        config.server.port = int(os.getenv("R3CENT_PORT"))

    return config


def save_config(config: R3centConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
    }
    for key in ("google_api_key", "anthropic_api_key", "openai_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "llm": llm_section,
        "ask": {
            "generator_timeout": config.ask.generator_timeout,
            "max_tokens": config.ask.max_tokens,
            "temperature": config.ask.temperature,
            "timezone": config.ask.timezone,
            "default_display_name": config.ask.default_display_name,
        },
        "store": {
            "db_path": config.store.db_path,
            "sessions_path": config.store.sessions_path,
            "timeout": config.store.timeout,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    DATA_DIR.mkdir(parents=True, exist_ok=True)
