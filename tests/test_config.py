"""Tests for configuration loading."""

from pathlib import Path

import pytest

from ccsync.config import Config, expand_env_var, expand_path, load_config


class TestExpandHelpers:
    """Tests for expand_env_var and expand_path."""

    def test_expand_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CCSYNC_TEST_KEY", "secret")
        assert expand_env_var("${CCSYNC_TEST_KEY}") == "secret"

    def test_unset_env_var_is_left_alone(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("CCSYNC_MISSING", raising=False)
        assert expand_env_var("${CCSYNC_MISSING}") == "${CCSYNC_MISSING}"

    def test_plain_value(self) -> None:
        assert expand_env_var("plain") == "plain"

    def test_expand_path_home(self) -> None:
        assert expand_path("~/x") == Path.home() / "x"


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "nope.yaml")

        assert config.project_name == "Claude Code"
        assert config.state.stale_lock_seconds == 30.0
        assert config.state.lock_attempts == 10
        assert config.typesense.records_collection == "interactions"

    def test_reads_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CCSYNC_TS_KEY", "from-env")
        config_file = tmp_path / "ccsync.yaml"
        config_file.write_text(
            f"""
claude_data_dir: {tmp_path}/claude
project_name: Work
dump_dir: {tmp_path}/dumps
state:
  state_dir: {tmp_path}/state
  stale_lock_seconds: 5
  lock_attempts: 3
typesense:
  host: search.internal
  port: 443
  protocol: https
  api_key: ${{CCSYNC_TS_KEY}}
  records_collection: turns
"""
        )

        config = load_config(config_file)

        assert config.claude_data_dir == tmp_path / "claude"
        assert config.project_name == "Work"
        assert config.dump_dir == tmp_path / "dumps"
        assert config.state.state_dir == tmp_path / "state"
        assert config.state.stale_lock_seconds == 5.0
        assert config.state.lock_attempts == 3
        assert config.typesense.host == "search.internal"
        assert config.typesense.port == 443
        assert config.typesense.protocol == "https"
        assert config.typesense.api_key == "from-env"
        assert config.typesense.records_collection == "turns"
        assert config.typesense.threads_collection == "threads"

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "ccsync.yaml"
        config_file.write_text("")

        config = load_config(config_file)

        assert config.project_name == "Claude Code"

    def test_claude_data_dir_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLAUDE_DATA_DIR", str(tmp_path / "alt"))
        assert Config().claude_data_dir == tmp_path / "alt"

    def test_searches_working_directory(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "ccsync.yaml").write_text("project_name: Local\n")
        monkeypatch.chdir(tmp_path)

        assert load_config().project_name == "Local"
