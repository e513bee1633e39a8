"""
Runtime configuration for the script engine.

Sources, in order of use:
- RuntimeConfig() defaults
- RuntimeConfig.from_env(): VSCRIPT_MAX_DEPTH, VSCRIPT_STRICT_LOAD,
  VSCRIPT_LOG_NODES
- load_config(path): a YAML file validated against
  schemas/config.schema.json

Example YAML:
    max_depth: 32
    strict_load: false
    trace_nodes: true
    logging:
      level: DEBUG
      modules:
        executor: TRACE
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import jsonschema
import yaml

from vscript.errors import ConfigError
from vscript.graph.executor import DEFAULT_MAX_DEPTH
from vscript.logging import configure_logging, node_tracing_enabled

_SCHEMA_PATH = Path(__file__).parent / 'schemas' / 'config.schema.json'
_schema: Optional[Dict[str, Any]] = None

_TRUE = ('1', 'true', 'yes', 'on')


def _get_schema() -> Dict[str, Any]:
    """Lazy-load the config schema."""
    global _schema
    if _schema is None:
        _schema = json.loads(_SCHEMA_PATH.read_text())
    return _schema


@dataclass
class RuntimeConfig:
    """
    Settings for ScriptEngine and its executor.

    Attributes:
        max_depth: Maximum execution stack depth within one root dispatch
        strict_load: Raise DeserializationTypeMismatch instead of keeping
            placeholders for unregistered node types
        trace_nodes: Log every node invocation
        log_level: Default log level applied by apply_logging()
        log_modules: Per-module log levels applied by apply_logging()
    """
    max_depth: int = DEFAULT_MAX_DEPTH
    strict_load: bool = False
    trace_nodes: bool = False
    log_level: Optional[str] = None
    log_modules: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeConfig":
        env = os.environ if environ is None else environ
        config = cls(trace_nodes=node_tracing_enabled())

        if 'VSCRIPT_MAX_DEPTH' in env:
            try:
                config.max_depth = int(env['VSCRIPT_MAX_DEPTH'])
            except ValueError as e:
                raise ConfigError(f"VSCRIPT_MAX_DEPTH must be an integer: {env['VSCRIPT_MAX_DEPTH']!r}") from e
            if config.max_depth < 1:
                raise ConfigError("VSCRIPT_MAX_DEPTH must be >= 1")

        if 'VSCRIPT_STRICT_LOAD' in env:
            config.strict_load = env['VSCRIPT_STRICT_LOAD'].lower() in _TRUE
        if 'VSCRIPT_LOG_NODES' in env:
            config.trace_nodes = env['VSCRIPT_LOG_NODES'].lower() in _TRUE
        return config

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], source: Optional[Path] = None) -> "RuntimeConfig":
        """Build a config from parsed YAML/JSON data.

        Raises:
            ConfigError: data does not match the config schema
        """
        try:
            jsonschema.validate(dict(data), _get_schema())
        except jsonschema.ValidationError as e:
            where = f" in {source}" if source else ""
            location = '/'.join(str(p) for p in e.absolute_path)
            raise ConfigError(
                f"Config validation error{where}: {e.message} at {location or '<root>'}",
                errors=[str(e)],
                path=source,
            ) from e

        logging_section = data.get('logging', {})
        return cls(
            max_depth=data.get('max_depth', DEFAULT_MAX_DEPTH),
            strict_load=data.get('strict_load', False),
            trace_nodes=data.get('trace_nodes', False),
            log_level=logging_section.get('level'),
            log_modules=dict(logging_section.get('modules', {})),
        )

    def apply_logging(self) -> None:
        """Push logging-related settings into vscript.logging."""
        if self.log_level is None and not self.log_modules and not self.trace_nodes:
            return
        configure_logging(
            level=self.log_level,
            modules=self.log_modules,
            trace_nodes=self.trace_nodes,
        )


def load_config(path: Any) -> RuntimeConfig:
    """Load and validate a YAML config file.

    Raises:
        ConfigError: unreadable file, invalid YAML or schema violation
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}", path=path) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", path=path) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping", path=path)
    return RuntimeConfig.from_mapping(data, source=path)
