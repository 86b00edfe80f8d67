"""Tests for configuration loading."""

import pytest

from notemesh.config import Config, load_config

ENV_KEYS = [
    "REPLICA_NAME",
    "PORT",
    "NOTEMESH_REPLICA_NAME",
    "NOTEMESH_HOST",
    "NOTEMESH_PORT",
    "NOTEMESH_PEERS",
    "NOTEMESH_PULL_TIMEOUT",
    "NOTEMESH_PUSH_TIMEOUT",
    "NOTEMESH_LOG_LEVEL",
    "NOTEMESH_LOG_JSON",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove any replica settings from the environment."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestDefaults:
    """Tests for default configuration."""

    def test_defaults(self):
        """Test the configuration used without a file or environment."""
        config = load_config()

        assert config.replica.name == "replica-unknown"
        assert config.replica.port == 4001
        assert config.sync.pull_timeout_seconds == 2.0
        assert config.sync.push_timeout_seconds == 1.0
        assert config.sync.push_timeout_seconds < config.sync.pull_timeout_seconds
        assert set(config.peers.endpoints) == {"replica1", "replica2", "replica3"}

    def test_missing_file_uses_defaults(self, tmp_path):
        """Test that a nonexistent config path falls back to defaults."""
        config = load_config(tmp_path / "nope.yaml")

        assert config == Config()


class TestYamlLoading:
    """Tests for YAML configuration files."""

    def test_load_yaml(self, tmp_path):
        """Test loading every section from YAML."""
        path = tmp_path / "config.yaml"
        path.write_text(
            """
replica:
  name: replica2
  port: 4002
peers:
  replica1: http://localhost:4001
  replica2: http://localhost:4002
sync:
  pull_timeout_seconds: 3
  push_timeout_seconds: 0.5
logging:
  level: debug
  json: true
"""
        )

        config = load_config(path)

        assert config.replica.name == "replica2"
        assert config.replica.port == 4002
        assert config.replica.host == "0.0.0.0"
        assert config.peers.endpoints == {
            "replica1": "http://localhost:4001",
            "replica2": "http://localhost:4002",
        }
        assert config.sync.pull_timeout_seconds == 3.0
        assert config.sync.push_timeout_seconds == 0.5
        assert config.logging.level == "debug"
        assert config.logging.json is True

    def test_empty_yaml(self, tmp_path):
        """Test that an empty file yields defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(path) == Config()

    def test_peers_must_be_mapping(self, tmp_path):
        """Test that a list of peers is rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("peers:\n  - http://a\n")

        with pytest.raises(ValueError):
            load_config(path)


class TestEnvOverrides:
    """Tests for environment variable overrides."""

    def test_bare_container_variables(self, monkeypatch):
        """Test REPLICA_NAME and PORT as set by container deployments."""
        monkeypatch.setenv("REPLICA_NAME", "replica3")
        monkeypatch.setenv("PORT", "4003")

        config = load_config()

        assert config.replica.name == "replica3"
        assert config.replica.port == 4003

    def test_prefixed_variables_win(self, monkeypatch):
        """Test that NOTEMESH_ variables override the bare ones."""
        monkeypatch.setenv("REPLICA_NAME", "replica3")
        monkeypatch.setenv("NOTEMESH_REPLICA_NAME", "replica1")
        monkeypatch.setenv("NOTEMESH_PULL_TIMEOUT", "1.5")
        monkeypatch.setenv("NOTEMESH_LOG_JSON", "yes")

        config = load_config()

        assert config.replica.name == "replica1"
        assert config.sync.pull_timeout_seconds == 1.5
        assert config.logging.json is True

    def test_peer_table_from_env(self, monkeypatch):
        """Test parsing NOTEMESH_PEERS."""
        monkeypatch.setenv("NOTEMESH_PEERS", "a=http://a:1, b=http://b:2,")

        config = load_config()

        assert config.peers.endpoints == {"a": "http://a:1", "b": "http://b:2"}

    def test_invalid_peer_entry(self, monkeypatch):
        """Test that a peer entry without a URL is rejected."""
        monkeypatch.setenv("NOTEMESH_PEERS", "a")

        with pytest.raises(ValueError, match="expected name=url"):
            load_config()
