"""
vscript Logging

Module-scoped console logging with per-module levels, plus structured
record sinks for execution traces.

Usage:
    from vscript.logging import get_logger

    log = get_logger('executor')
    log.debug("Dispatching %s", node_id)
    log.node_call("Add", node_id)   # Only when node tracing is enabled

    # Structured records (e.g. per-node execution traces)
    from vscript.logging import emit_record
    emit_record('executor', {'type': 'node', 'node': 'node_0_0'})

Configuration:
    Environment variables:
        VSCRIPT_LOG_LEVEL=DEBUG          # Global default level
        VSCRIPT_LOG_EXECUTOR=TRACE       # Module-specific level
        VSCRIPT_LOG_NODES=1              # Trace every node invocation
        VSCRIPT_LOG_DIR=/tmp/vscript     # Where FileSink writes

        # Module-specific structured logging
        VSCRIPT_LOGGING_EXECUTOR_ENABLED=true

    Or programmatically:
        from vscript.logging import configure_logging
        configure_logging(level='DEBUG', modules={'executor': 'TRACE'})
"""

import json
import os
import sys
import time
import traceback
from abc import ABC, abstractmethod
from enum import IntEnum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""
    TRACE = 5
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50
    OFF = 100


# =============================================================================
# Sink-Based Structured Logging
# =============================================================================

class LogSink(ABC):
    """
    Abstract base class for log record sinks.

    Sinks receive structured log records and write them to their destination.
    """

    @abstractmethod
    def emit(self, module: str, record: Dict[str, Any]) -> None:
        """
        Emit a structured log record.

        Args:
            module: Module name (e.g., 'executor')
            record: Structured data to log (must be JSON-serializable)
        """

    @abstractmethod
    def flush(self) -> None:
        """Flush any buffered records."""

    @abstractmethod
    def close(self) -> None:
        """Close the sink and release resources."""

    def __enter__(self) -> 'LogSink':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class FileSink(LogSink):
    """
    Writes structured log records to JSONL files, one file per module.

    Args:
        log_dir: Directory for log files (default: from get_log_dir())
        session_name: Session identifier for file naming (default: timestamp)
    """

    def __init__(
        self,
        log_dir: Optional[str] = None,
        session_name: Optional[str] = None,
    ):
        self._log_dir = Path(log_dir) if log_dir else None
        self._session_name = session_name or time.strftime("%Y%m%d_%H%M%S")
        self._files: Dict[str, Any] = {}

    def _ensure_dir(self) -> Path:
        if self._log_dir is None:
            self._log_dir = Path(get_log_dir())
        self._log_dir.mkdir(parents=True, exist_ok=True)
        return self._log_dir

    def _get_file(self, module: str):
        if module not in self._files:
            path = self._ensure_dir() / f"{self._session_name}_{module}.jsonl"
            self._files[module] = open(path, 'a')
            header = {
                "type": "header",
                "module": module,
                "session_name": self._session_name,
                "start_time": time.time(),
            }
            self._files[module].write(json.dumps(header) + "\n")
        return self._files[module]

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        """Write record to module's JSONL file."""
        f = self._get_file(module)
        if 'wall_time' not in record:
            record = {'wall_time': time.time(), **record}
        f.write(json.dumps(record, default=repr) + "\n")

    def flush(self) -> None:
        for f in self._files.values():
            f.flush()

    def close(self) -> None:
        for module, f in self._files.items():
            footer = {"type": "footer", "module": module, "end_time": time.time()}
            f.write(json.dumps(footer) + "\n")
            f.close()
        self._files.clear()

    @property
    def log_paths(self) -> Dict[str, Path]:
        """Get paths to all log files."""
        log_dir = self._ensure_dir()
        return {
            module: log_dir / f"{self._session_name}_{module}.jsonl"
            for module in self._files
        }


class NullSink(LogSink):
    """No-op sink when logging is disabled."""

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        pass

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


_sinks: Dict[str, LogSink] = {}
_default_sink: Optional[LogSink] = None


def register_sink(module: str, sink: LogSink) -> None:
    """Register a sink for a specific module."""
    _sinks[module] = sink


def set_default_sink(sink: Optional[LogSink]) -> None:
    """Set the default sink for modules without specific sinks."""
    global _default_sink
    _default_sink = sink


def get_sink(module: str) -> Optional[LogSink]:
    """Get the sink for a module, or default sink."""
    return _sinks.get(module, _default_sink)


def has_sink(module: str) -> bool:
    return get_sink(module) is not None


def emit_record(module: str, record: Dict[str, Any]) -> bool:
    """
    Emit a structured log record to the appropriate sink.

    Returns:
        True if record was emitted, False if no sink available
    """
    sink = get_sink(module)
    if sink:
        sink.emit(module, record)
        return True
    return False


def close_all_sinks() -> None:
    """Close all registered sinks."""
    global _default_sink
    for sink in _sinks.values():
        sink.close()
    _sinks.clear()
    if _default_sink:
        _default_sink.close()
        _default_sink = None


def create_sink(module: str, session_name: Optional[str] = None) -> LogSink:
    """
    Create the configured sink for a module.

    Returns a FileSink when VSCRIPT_LOGGING_<MODULE>_ENABLED is set,
    otherwise a NullSink.
    """
    config = get_module_config(module)
    if not config.get('enabled', False):
        return NullSink()
    return FileSink(log_dir=config.get('dir'), session_name=session_name)


# =============================================================================
# Global configuration
# =============================================================================

_config: Dict[str, Any] = {
    'default_level': LogLevel.INFO,
    'module_levels': {},
    'trace_nodes': False,    # Log every node invocation
    'log_dir': None,
    'modules': {},           # Per-module settings (hierarchical)
}


def get_log_dir() -> str:
    """Get the log directory.

    Priority:
    1. Configured log_dir
    2. VSCRIPT_LOG_DIR environment variable
    3. $XDG_DATA_HOME/vscript/logs (or ~/.local/share/vscript/logs)
    """
    if _config.get('log_dir'):
        return str(Path(_config['log_dir']).expanduser())

    env_dir = os.environ.get('VSCRIPT_LOG_DIR')
    if env_dir:
        return str(Path(env_dir).expanduser())

    xdg_data = os.environ.get('XDG_DATA_HOME', str(Path.home() / '.local' / 'share'))
    return str(Path(xdg_data) / 'vscript' / 'logs')


def get_module_config(module: str) -> Dict[str, Any]:
    """Get configuration for a specific module.

    VSCRIPT_LOGGING_EXECUTOR_ENABLED=true maps to {'enabled': True}
    under module 'executor'.
    """
    return _config.get('modules', {}).get(module.lower(), {})


def _set_nested(d: Dict, keys: list, value: Any) -> None:
    for key in keys[:-1]:
        d = d.setdefault(key, {})
    d[keys[-1]] = value


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    lower = value.lower()
    if lower in ('true', '1', 'yes', 'on'):
        return True
    if lower in ('false', '0', 'no', 'off'):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def _format_message(module: str, level: str, msg: str) -> str:
    return f"[{module}] {level}: {msg}"


def _level_from_string(level_str: str) -> LogLevel:
    mapping = {
        'TRACE': LogLevel.TRACE,
        'DEBUG': LogLevel.DEBUG,
        'INFO': LogLevel.INFO,
        'WARNING': LogLevel.WARNING,
        'WARN': LogLevel.WARNING,
        'ERROR': LogLevel.ERROR,
        'CRITICAL': LogLevel.CRITICAL,
        'OFF': LogLevel.OFF,
    }
    return mapping.get(level_str.upper(), LogLevel.INFO)


def configure_logging(
    level: Optional[str] = 'INFO',
    modules: Optional[Dict[str, str]] = None,
    trace_nodes: bool = False,
) -> None:
    """
    Configure the logging system.

    Args:
        level: Default log level for all modules (None keeps the current one)
        modules: Dict of module_name -> level for per-module configuration
        trace_nodes: Log every node invocation at DEBUG
    """
    if level is not None:
        _config['default_level'] = _level_from_string(level)

    if modules:
        for mod, mod_level in modules.items():
            _config['module_levels'][mod] = _level_from_string(mod_level)

    _config['trace_nodes'] = trace_nodes


def node_tracing_enabled() -> bool:
    return bool(_config['trace_nodes'])


def _load_env_config() -> None:
    """Load configuration from environment variables.

    Two prefixes:
    - VSCRIPT_LOG_*: Log levels (VSCRIPT_LOG_EXECUTOR=DEBUG)
    - VSCRIPT_LOGGING_*: Module settings (VSCRIPT_LOGGING_EXECUTOR_ENABLED=true)
    """
    if 'VSCRIPT_LOG_LEVEL' in os.environ:
        _config['default_level'] = _level_from_string(os.environ['VSCRIPT_LOG_LEVEL'])

    if 'VSCRIPT_LOG_DIR' in os.environ:
        _config['log_dir'] = os.environ['VSCRIPT_LOG_DIR']

    reserved = ('VSCRIPT_LOG_LEVEL', 'VSCRIPT_LOG_NODES', 'VSCRIPT_LOG_DIR')
    for key, value in os.environ.items():
        if key.startswith('VSCRIPT_LOG_') and key not in reserved:
            module_name = key[len('VSCRIPT_LOG_'):].lower()
            _config['module_levels'][module_name] = _level_from_string(value)

    _config['trace_nodes'] = os.environ.get('VSCRIPT_LOG_NODES', '').lower() in ('1', 'true', 'yes')

    for key, value in os.environ.items():
        if key.startswith('VSCRIPT_LOGGING_'):
            parts = key[len('VSCRIPT_LOGGING_'):].lower().split('_')
            if len(parts) >= 2:
                module = parts[0]
                module_settings = _config['modules'].setdefault(module, {})
                _set_nested(module_settings, parts[1:], _parse_env_value(value))


_load_env_config()


class ScriptLogger:
    """
    Logger for a specific module.

    Standard log levels plus node_call() for per-node execution tracing.
    """

    def __init__(self, module: str):
        self.module = module
        self._module_key = module.lower().replace('.', '_').replace('/', '_')

    @property
    def level(self) -> LogLevel:
        """Effective log level for this module."""
        if self._module_key in _config['module_levels']:
            return _config['module_levels'][self._module_key]
        return _config['default_level']

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= self.level

    def _log(self, level: LogLevel, level_name: str, msg: str, *args) -> None:
        if not self.is_enabled_for(level):
            return

        if args:
            try:
                msg = msg % args
            except (TypeError, ValueError):
                msg = f"{msg} {args}"

        print(_format_message(self.module, level_name, msg), file=sys.stderr)

    def trace(self, msg: str, *args) -> None:
        """Log at TRACE level (very verbose)."""
        self._log(LogLevel.TRACE, 'TRACE', msg, *args)

    def debug(self, msg: str, *args) -> None:
        self._log(LogLevel.DEBUG, 'DEBUG', msg, *args)

    def info(self, msg: str, *args) -> None:
        self._log(LogLevel.INFO, 'INFO', msg, *args)

    def warning(self, msg: str, *args) -> None:
        self._log(LogLevel.WARNING, 'WARN', msg, *args)

    def warn(self, msg: str, *args) -> None:
        """Alias for warning()."""
        self.warning(msg, *args)

    def error(self, msg: str, *args) -> None:
        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

    def critical(self, msg: str, *args) -> None:
        self._log(LogLevel.CRITICAL, 'CRIT', msg, *args)

    def exception(self, msg: str, *args, exc_info: bool = True) -> None:
        """
        Log an error with the current exception's traceback.

        Args:
            msg: Message describing what failed
            exc_info: If True, include current exception traceback
        """
        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

        if exc_info:
            tb = traceback.format_exc()
            if tb and tb.strip() != 'NoneType: None':
                for line in tb.strip().split('\n'):
                    self._log(LogLevel.ERROR, 'TRACE', line)

    def node_call(self, type_name: str, node_id: Any, *details) -> None:
        """
        Log a node invocation.

        Only logs if node tracing is enabled (VSCRIPT_LOG_NODES=1).
        """
        if not _config['trace_nodes']:
            return

        suffix = f" {' '.join(repr(d) for d in details)}" if details else ""
        self._log(LogLevel.DEBUG, 'NODE', f"{type_name}<{node_id}>{suffix}")


@lru_cache(maxsize=64)
def get_logger(module: str) -> ScriptLogger:
    """
    Get a logger for the specified module.

    Loggers are cached, so calling get_logger('foo') multiple times
    returns the same logger instance.
    """
    return ScriptLogger(module)


def enable_all_logging() -> None:
    """Enable DEBUG level for all modules and node tracing."""
    configure_logging(level='DEBUG', trace_nodes=True)


def disable_logging() -> None:
    """Disable all logging."""
    _config['default_level'] = LogLevel.OFF
    _config['trace_nodes'] = False
