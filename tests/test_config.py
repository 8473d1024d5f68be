"""
Tests for configuration loading.
"""

import pytest
import yaml

from kernel_bridge.config import CONFIG_ENV_VAR, BridgeConfig, load_config
from kernel_bridge.errors import ConfigurationError


class TestBridgeConfig:
    """Tests for BridgeConfig."""

    def test_defaults(self):
        config = BridgeConfig()
        assert config.timing.startup_grace_s == 1.5
        assert config.timing.settle_delay_s == 0.05
        assert config.timing.execute_reply_timeout_s == 300.0
        assert config.timing.complete_timeout_s == 30.0
        assert config.timing.recv_backoff_s == 0.1
        assert config.protocol.verify_signatures is False
        assert config.paths.runtime_dir is None
        assert config.log_level == "INFO"

    def test_from_dict_ignores_unknown_fields(self):
        config = BridgeConfig.from_dict({
            "timing": {"startup_grace_s": 3.0, "bogus": 1},
            "protocol": {"username": "nb"},
            "paths": {"extra_kernel_dirs": ["/opt/kernels"]},
            "log_level": "DEBUG",
        })
        assert config.timing.startup_grace_s == 3.0
        assert config.timing.complete_timeout_s == 30.0
        assert config.protocol.username == "nb"
        assert config.paths.extra_kernel_dirs == ["/opt/kernels"]
        assert config.log_level == "DEBUG"

    def test_to_dict(self):
        data = BridgeConfig().to_dict()
        assert data["timing"]["kill_timeout_s"] == 5.0
        assert BridgeConfig.from_dict(data) == BridgeConfig()


class TestLoadConfig:
    """Tests for load_config."""

    def test_no_path(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert load_config() == BridgeConfig()

    def test_missing_file(self, tmp_path):
        assert load_config(str(tmp_path / "nope.yaml")) == BridgeConfig()

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "bridge.yaml"
        path.write_text(yaml.safe_dump({"timing": {"complete_timeout_s": 5}, "log_level": "WARNING"}))
        config = load_config(str(path))
        assert config.timing.complete_timeout_s == 5
        assert config.log_level == "WARNING"

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "bridge.yaml"
        path.write_text("protocol:\n  verify_signatures: true\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_config().protocol.verify_signatures is True

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == BridgeConfig()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("timing: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Failed to parse config"):
            load_config(str(path))
