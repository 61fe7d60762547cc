"""
Configuration Management for Steward

Loads configuration from ~/.steward/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict

logger = logging.getLogger("steward.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".steward"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
STORE_PATH = CONFIG_DIR / "suggestions.json"

DEFAULT_NOTION_API_BASE = "https://api.notion.com/v1"
DEFAULT_NOTION_VERSION = "2022-06-28"


@dataclass
class NotionConfig:
    """Canonical store (Notion) configuration"""
    api_key: str = ""
    api_base: str = DEFAULT_NOTION_API_BASE
    api_version: str = DEFAULT_NOTION_VERSION
    parent_page_id: str = ""  # where new pages are created
    timeout_seconds: float = 15.0


@dataclass
class ReviewConfig:
    """Review workflow configuration"""
    default_actor: str = "User"
    search_debounce_ms: int = 300
    store_path: str = str(STORE_PATH)
    persist: bool = True


@dataclass
class ServerConfig:
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 8090
    log_level: str = "INFO"


@dataclass
class StewardConfig:
    """Main Steward configuration"""
    notion: NotionConfig = field(default_factory=NotionConfig)
    review: ReviewConfig = field(default_factory=ReviewConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    # team_id -> plan tier name, seeds the in-memory subscription ledger
    teams: Dict[str, str] = field(default_factory=dict)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_notion_config(data: dict) -> NotionConfig:
    """Parse notion section from config dict"""
    notion_data = data.get("notion", {})
    return NotionConfig(
        api_key=notion_data.get("api_key", ""),
        api_base=notion_data.get("api_base", DEFAULT_NOTION_API_BASE),
        api_version=notion_data.get("api_version", DEFAULT_NOTION_VERSION),
        parent_page_id=notion_data.get("parent_page_id", ""),
        timeout_seconds=notion_data.get("timeout_seconds", 15.0),
    )


def _parse_review_config(data: dict) -> ReviewConfig:
    """Parse review section from config dict"""
    review_data = data.get("review", {})
    return ReviewConfig(
        default_actor=review_data.get("default_actor", "User"),
        search_debounce_ms=review_data.get("search_debounce_ms", 300),
        store_path=review_data.get("store_path", str(STORE_PATH)),
        persist=review_data.get("persist", True),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=server_data.get("port", 8090),
        log_level=server_data.get("log_level", "INFO"),
    )


def load_config() -> StewardConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.steward/config.json)
    3. Default values
    """
    config = StewardConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.notion = _parse_notion_config(data)
            config.review = _parse_review_config(data)
            config.server = _parse_server_config(data)
            config.teams = dict(data.get("teams", {}))
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Environment variable overrides
    if os.getenv("NOTION_API_KEY"):
        config.notion.api_key = os.getenv("NOTION_API_KEY")
        config._env_sourced_keys.add("api_key")
    if os.getenv("NOTION_PARENT_PAGE_ID"):
        config.notion.parent_page_id = os.getenv("NOTION_PARENT_PAGE_ID")
    if os.getenv("NOTION_API_BASE"):
        config.notion.api_base = os.getenv("NOTION_API_BASE")

    if os.getenv("STEWARD_DEFAULT_ACTOR"):
        config.review.default_actor = os.getenv("STEWARD_DEFAULT_ACTOR")
    if os.getenv("STEWARD_SEARCH_DEBOUNCE_MS"):
        config.review.search_debounce_ms = int(os.getenv("STEWARD_SEARCH_DEBOUNCE_MS"))
    if os.getenv("STEWARD_STORE_PATH"):
        config.review.store_path = os.getenv("STEWARD_STORE_PATH")

    if os.getenv("STEWARD_PORT"):
        config.server.port = int(os.getenv("STEWARD_PORT"))
    if os.getenv("STEWARD_LOG_LEVEL"):
        config.server.log_level = os.getenv("STEWARD_LOG_LEVEL")

    return config


def save_config(config: StewardConfig) -> None:
    """Save configuration to file.

    A Notion API key that came from the environment is written as an empty
    string so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    data = {
        "notion": {
            "api_key": "" if "api_key" in env_sourced else config.notion.api_key,
            "api_base": config.notion.api_base,
            "api_version": config.notion.api_version,
            "parent_page_id": config.notion.parent_page_id,
            "timeout_seconds": config.notion.timeout_seconds,
        },
        "review": {
            "default_actor": config.review.default_actor,
            "search_debounce_ms": config.review.search_debounce_ms,
            "store_path": config.review.store_path,
            "persist": config.review.persist,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
            "log_level": config.server.log_level,
        },
        "teams": config.teams,
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
