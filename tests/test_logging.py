"""Tests for vscript.logging."""

import copy
import json

import pytest

from vscript import logging as vlog
from vscript.graph.executor import Executor
from vscript.graph.types import ExecutionContext


@pytest.fixture(autouse=True)
def restore_logging():
    saved = copy.deepcopy(vlog._config)
    yield
    vlog.close_all_sinks()
    vlog._config.clear()
    vlog._config.update(saved)


class TestLevels:
    """Level filtering and message formatting."""

    def test_default_level(self, capsys):
        vlog.configure_logging(level='INFO')
        log = vlog.get_logger('levels')

        log.debug("hidden")
        log.info("shown %d", 1)

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "[levels] INFO: shown 1" in err

    def test_module_override(self, capsys):
        vlog.configure_logging(level='ERROR', modules={'chatty': 'DEBUG'})

        vlog.get_logger('chatty').debug("from chatty")
        vlog.get_logger('quiet').warning("from quiet")

        err = capsys.readouterr().err
        assert "[chatty] DEBUG: from chatty" in err
        assert "from quiet" not in err

    def test_bad_format_args_do_not_raise(self, capsys):
        vlog.configure_logging(level='INFO')
        vlog.get_logger('fmt').info("%d items", "many")
        assert "%d items" in capsys.readouterr().err

    def test_unknown_level_name_falls_back_to_info(self):
        vlog.configure_logging(level='LOUD')
        assert vlog.get_logger('any').level == vlog.LogLevel.INFO

    def test_disable_logging(self, capsys):
        vlog.disable_logging()
        vlog.get_logger('off').critical("nothing")
        assert capsys.readouterr().err == ""

    def test_loggers_are_cached(self):
        assert vlog.get_logger('same') is vlog.get_logger('same')

    def test_exception_includes_traceback(self, capsys):
        vlog.configure_logging(level='ERROR')
        try:
            raise KeyError("missing")
        except KeyError:
            vlog.get_logger('exc').exception("lookup failed")

        err = capsys.readouterr().err
        assert "[exc] ERROR: lookup failed" in err
        assert "KeyError" in err


class TestNodeTracing:
    """node_call() only logs with tracing enabled."""

    def test_disabled_by_default(self, capsys):
        vlog.configure_logging(level='DEBUG', trace_nodes=False)
        vlog.get_logger('executor').node_call("Add", "node_0_0")
        assert "NODE" not in capsys.readouterr().err

    def test_enabled(self, capsys):
        vlog.enable_all_logging()
        vlog.get_logger('executor').node_call("Add", "node_0_0", "Values")
        assert "[executor] NODE: Add<node_0_0> 'Values'" in capsys.readouterr().err

    def test_executor_traces_nodes(self, capsys, graph, registry):
        vlog.configure_logging(level='ERROR', modules={'executor': 'DEBUG'}, trace_nodes=True)
        graph.add_node("OnUpdate")

        Executor(registry).execute_graph(graph, ExecutionContext())

        assert "OnUpdate<node_0_0>" in capsys.readouterr().err


class TestSinks:
    """Structured record sinks."""

    def test_emit_without_sink(self):
        assert vlog.emit_record('nowhere', {'a': 1}) is False

    def test_file_sink_writes_jsonl(self, tmp_path):
        sink = vlog.FileSink(log_dir=str(tmp_path), session_name="run")
        vlog.register_sink('executor', sink)

        assert vlog.emit_record('executor', {'type': 'node', 'node': 'node_0_0'})
        path = sink.log_paths['executor']
        vlog.close_all_sinks()

        lines = [json.loads(line) for line in path.read_text().splitlines()]
        assert [line['type'] for line in lines] == ['header', 'node', 'footer']
        assert lines[1]['node'] == 'node_0_0'
        assert 'wall_time' in lines[1]
        assert path.name == "run_executor.jsonl"

    def test_file_sink_reprs_unserializable(self, tmp_path):
        with vlog.FileSink(log_dir=str(tmp_path), session_name="s") as sink:
            sink.emit('misc', {'value': object()})
        text = (tmp_path / "s_misc.jsonl").read_text()
        assert "object object" in text

    def test_default_sink(self):
        records = []

        class ListSink(vlog.NullSink):
            def emit(self, module, record):
                records.append((module, record))

        vlog.set_default_sink(ListSink())
        vlog.emit_record('anything', {'x': 1})

        assert records == [('anything', {'x': 1})]

    def test_executor_emits_records(self, graph, registry):
        records = []

        class ListSink(vlog.NullSink):
            def emit(self, module, record):
                records.append(record)

        vlog.register_sink('executor', ListSink())
        graph.add_node("OnUpdate")

        Executor(registry).execute_graph(graph, ExecutionContext())

        assert records == [{
            'type': 'node',
            'node': 'node_0_0',
            'node_type': 'OnUpdate',
            'result': 'Flow',
        }]

    def test_create_sink_respects_module_config(self, tmp_path):
        assert isinstance(vlog.create_sink('executor'), vlog.NullSink)

        vlog._config['modules']['executor'] = {'enabled': True, 'dir': str(tmp_path)}
        assert isinstance(vlog.create_sink('executor'), vlog.FileSink)


class TestEnvConfig:
    """Environment variables are read into the module config."""

    def test_load_env_config(self, monkeypatch, tmp_path):
        monkeypatch.setenv('VSCRIPT_LOG_LEVEL', 'WARNING')
        monkeypatch.setenv('VSCRIPT_LOG_SERIALIZER', 'TRACE')
        monkeypatch.setenv('VSCRIPT_LOG_DIR', str(tmp_path))
        monkeypatch.setenv('VSCRIPT_LOGGING_EXECUTOR_ENABLED', 'true')

        vlog._load_env_config()

        assert vlog.get_logger('graph').level == vlog.LogLevel.WARNING
        assert vlog.get_logger('serializer').level == vlog.LogLevel.TRACE
        assert vlog.get_log_dir() == str(tmp_path)
        assert vlog.get_module_config('executor') == {'enabled': True}
