"""Tests for runtime configuration."""

import copy

import pytest

from vscript import logging as vlog
from vscript.config import RuntimeConfig, load_config
from vscript.errors import ConfigError
from vscript.graph.executor import DEFAULT_MAX_DEPTH


@pytest.fixture
def restore_logging():
    saved = copy.deepcopy(vlog._config)
    yield
    vlog._config.clear()
    vlog._config.update(saved)


class TestFromEnv:
    """Tests for RuntimeConfig.from_env()."""

    def test_defaults(self):
        config = RuntimeConfig.from_env({})
        assert config.max_depth == DEFAULT_MAX_DEPTH
        assert config.strict_load is False

    def test_reads_variables(self):
        config = RuntimeConfig.from_env({
            'VSCRIPT_MAX_DEPTH': '12',
            'VSCRIPT_STRICT_LOAD': 'yes',
            'VSCRIPT_LOG_NODES': '1',
        })
        assert config.max_depth == 12
        assert config.strict_load is True
        assert config.trace_nodes is True

    @pytest.mark.parametrize("value", ["deep", "0", "-3"])
    def test_bad_max_depth(self, value):
        with pytest.raises(ConfigError):
            RuntimeConfig.from_env({'VSCRIPT_MAX_DEPTH': value})


class TestLoadConfig:
    """Tests for YAML config files."""

    def test_full_file(self, tmp_path):
        path = tmp_path / "vscript.yaml"
        path.write_text(
            "max_depth: 32\n"
            "strict_load: true\n"
            "trace_nodes: false\n"
            "logging:\n"
            "  level: DEBUG\n"
            "  modules:\n"
            "    executor: TRACE\n"
        )

        config = load_config(path)

        assert config.max_depth == 32
        assert config.strict_load is True
        assert config.log_level == "DEBUG"
        assert config.log_modules == {"executor": "TRACE"}

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == RuntimeConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "nope.yaml")
        assert exc_info.value.path == tmp_path / "nope.yaml"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("max_depth: [1, 2\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            load_config(path)

    @pytest.mark.parametrize("text", [
        "max_depth: 0\n",
        "max_depth: lots\n",
        "strict_load: maybe\n",
        "unknown_key: 1\n",
        "logging:\n  colour: red\n",
    ])
    def test_schema_violations(self, tmp_path, text):
        path = tmp_path / "bad.yaml"
        path.write_text(text)
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.errors


class TestApplyLogging:
    """apply_logging() pushes settings into vscript.logging."""

    def test_applies_levels(self, restore_logging):
        RuntimeConfig(log_level="WARNING", log_modules={"executor": "TRACE"}).apply_logging()

        assert vlog.get_logger('graph').level == vlog.LogLevel.WARNING
        assert vlog.get_logger('executor').level == vlog.LogLevel.TRACE

    def test_trace_nodes_keeps_level(self, restore_logging):
        before = vlog._config['default_level']
        RuntimeConfig(trace_nodes=True).apply_logging()

        assert vlog.node_tracing_enabled()
        assert vlog._config['default_level'] == before

    def test_defaults_change_nothing(self, restore_logging):
        before = copy.deepcopy(vlog._config)
        RuntimeConfig().apply_logging()
        assert vlog._config == before
