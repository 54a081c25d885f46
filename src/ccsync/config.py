"""Configuration loading and management."""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import yaml


def _default_claude_data_dir() -> Path:
    env_dir = os.environ.get("CLAUDE_DATA_DIR")
    if env_dir:
        return expand_path(env_dir)
    return Path.home() / ".claude"


@dataclass
class StateConfig:
    state_dir: Path = field(default_factory=lambda: Path.home() / ".ccsync" / "sync-state")
    stale_lock_seconds: float = 30.0
    lock_attempts: int = 10


@dataclass
class TypesenseConfig:
    host: str = "localhost"
    port: int = 8108
    protocol: str = "http"
    api_key: str = "dev-api-key"
    records_collection: str = "interactions"
    threads_collection: str = "threads"


@dataclass
class Config:
    claude_data_dir: Path = field(default_factory=_default_claude_data_dir)
    project_name: str = "Claude Code"
    dump_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    state: StateConfig = field(default_factory=StateConfig)
    typesense: TypesenseConfig = field(default_factory=TypesenseConfig)


def expand_env_var(value: str) -> str:
    """Expand environment variables in string (e.g. ${VAR})."""
    if value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, value)
    return value


def expand_path(path_str: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expandvars(os.path.expanduser(path_str)))


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config in standard locations
        search_paths = [
            Path.cwd() / "ccsync.yaml",
            Path.home() / ".config" / "ccsync" / "config.yaml",
            Path("/etc/ccsync/config.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = path
                break

    if config_path is None or not config_path.exists():
        return Config()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    defaults = Config()

    state_data = data.get("state", {})
    state = StateConfig(
        state_dir=expand_path(state_data.get("state_dir", "~/.ccsync/sync-state")),
        stale_lock_seconds=float(state_data.get("stale_lock_seconds", 30.0)),
        lock_attempts=int(state_data.get("lock_attempts", 10)),
    )

    ts_data = data.get("typesense", {})
    typesense = TypesenseConfig(
        host=ts_data.get("host", "localhost"),
        port=ts_data.get("port", 8108),
        protocol=ts_data.get("protocol", "http"),
        api_key=expand_env_var(ts_data.get("api_key", "dev-api-key")),
        records_collection=ts_data.get("records_collection", "interactions"),
        threads_collection=ts_data.get("threads_collection", "threads"),
    )

    claude_data_dir = data.get("claude_data_dir")
    dump_dir = data.get("dump_dir")

    return Config(
        claude_data_dir=expand_path(claude_data_dir) if claude_data_dir else defaults.claude_data_dir,
        project_name=data.get("project_name", defaults.project_name),
        dump_dir=expand_path(dump_dir) if dump_dir else defaults.dump_dir,
        state=state,
        typesense=typesense,
    )
