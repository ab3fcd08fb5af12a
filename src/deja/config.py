"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

CONFIG_DIR = Path.home() / ".deja"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_FILE = CONFIG_DIR / "deja.log"


@dataclass
class SourceConfig:
    projects_dir: str = "~/.claude/projects"
    extension: str = ".jsonl"


@dataclass
class StorageConfig:
    db_path: str = "~/.deja/history.db"
    fts: bool = True


@dataclass
class SearchConfig:
    default_limit: int = 20
    sort: str = "frecency"
    relevance: str = "auto"


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = "~/.deja/deja.log"


@dataclass
class AppConfig:
    source: SourceConfig = field(default_factory=SourceConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def sections(self) -> dict[str, object]:
        return {
            "source": self.source,
            "storage": self.storage,
            "search": self.search,
            "logging": self.logging,
        }


def ensure_config_dir() -> None:
    """Create config directory with secure permissions."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    os.chmod(CONFIG_DIR, 0o700)


def load_config() -> AppConfig:
    """Load configuration from TOML file with env var overrides."""
    config = AppConfig()

    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "rb") as f:
            data = tomllib.load(f)

        source = data.get("source", {})
        config.source.projects_dir = source.get("projects_dir", config.source.projects_dir)
        config.source.extension = source.get("extension", config.source.extension)

        storage = data.get("storage", {})
        config.storage.db_path = storage.get("db_path", config.storage.db_path)
        config.storage.fts = storage.get("fts", config.storage.fts)

        search = data.get("search", {})
        config.search.default_limit = search.get("default_limit", config.search.default_limit)
        config.search.sort = search.get("sort", config.search.sort)
        config.search.relevance = search.get("relevance", config.search.relevance)

        logging_cfg = data.get("logging", {})
        config.logging.level = logging_cfg.get("level", config.logging.level)
        config.logging.file = logging_cfg.get("file", config.logging.file)

    # Environment variable overrides
    if env_projects := os.environ.get("DEJA_PROJECTS_DIR"):
        config.source.projects_dir = env_projects
    if env_db := os.environ.get("DEJA_DB_PATH"):
        config.storage.db_path = env_db
    if env_limit := os.environ.get("DEJA_LIMIT"):
        try:
            config.search.default_limit = int(env_limit)
        except ValueError:
            raise ValueError(f"DEJA_LIMIT must be an integer, got {env_limit!r}") from None
    if env_sort := os.environ.get("DEJA_SORT"):
        config.search.sort = env_sort
    if env_relevance := os.environ.get("DEJA_RELEVANCE"):
        config.search.relevance = env_relevance
    if env_log_level := os.environ.get("DEJA_LOG_LEVEL"):
        config.logging.level = env_log_level
    if env_log_file := os.environ.get("DEJA_LOG_FILE"):
        config.logging.file = env_log_file

    return config


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML file."""
    ensure_config_dir()

    data = {
        "source": {
            "projects_dir": config.source.projects_dir,
            "extension": config.source.extension,
        },
        "storage": {
            "db_path": config.storage.db_path,
            "fts": config.storage.fts,
        },
        "search": {
            "default_limit": config.search.default_limit,
            "sort": config.search.sort,
            "relevance": config.search.relevance,
        },
        "logging": {
            "level": config.logging.level,
            "file": config.logging.file,
        },
    }

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)

    os.chmod(CONFIG_FILE, 0o600)
