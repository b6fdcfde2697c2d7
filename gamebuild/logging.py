"""
gamebuild Logging

Console logging for the build tool, with per-module log levels, coloured
status lines and optional structured record sinks.

Structured Record Logging:
    Modules can emit structured records (pipeline runs, step timings) that
    are routed to a sink. The default sink for an enabled module is a
    FileSink writing JSONL to the log directory.

Usage:
    from gamebuild.logging import get_logger, green

    log = get_logger('bundler')
    log.debug("Resolving entry")
    log.info(green("Running production build..."))

    from gamebuild.logging import emit_record
    emit_record('pipeline', {'type': 'run', 'name': 'full_build', ...})

Configuration:
    Environment variables:
        GAMEBUILD_LOG_LEVEL=DEBUG             # Global default level
        GAMEBUILD_LOG_BUNDLER=DEBUG           # Module-specific level
        GAMEBUILD_LOG_DIR=~/logs              # Where FileSink writes
        GAMEBUILD_LOGGING_PIPELINE_ENABLED=true
        NO_COLOR=1                            # Plain output

    Or programmatically:
        from gamebuild.logging import configure_logging
        configure_logging(level='DEBUG', modules={'watcher': 'INFO'})
"""

import json
import os
import time
from abc import ABC, abstractmethod
from enum import IntEnum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50
    OFF = 100


# =============================================================================
# Colours
# =============================================================================

_ANSI = {
    'red': '\033[31m',
    'green': '\033[32m',
    'yellow': '\033[33m',
}
_RESET = '\033[39m'


def _color_enabled() -> bool:
    if not _config['color']:
        return False
    return 'NO_COLOR' not in os.environ


def colorize(text: str, color: str) -> str:
    """Wrap text in an ANSI foreground colour, if colour output is enabled."""
    if not _color_enabled():
        return text
    return f"{_ANSI[color]}{text}{_RESET}"


def green(text: str) -> str:
    return colorize(text, 'green')


def yellow(text: str) -> str:
    return colorize(text, 'yellow')


def red(text: str) -> str:
    return colorize(text, 'red')


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
            module: Module name (e.g., 'pipeline')
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
    Writes structured log records to JSONL files.

    Each module gets its own file in the log directory, one JSON object
    per line.

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
        f = self._get_file(module)
        if 'wall_time' not in record:
            record = {'wall_time': time.time(), **record}
        f.write(json.dumps(record) + "\n")

    def flush(self) -> None:
        for f in self._files.values():
            f.flush()

    def close(self) -> None:
        for module, f in self._files.items():
            footer = {
                "type": "footer",
                "module": module,
                "end_time": time.time(),
            }
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
    """No-op sink when structured logging is disabled."""

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        pass

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


_sinks: Dict[str, LogSink] = {}


def register_sink(module: str, sink: LogSink) -> None:
    """Register a sink for a specific module."""
    _sinks[module] = sink


def get_sink(module: str) -> Optional[LogSink]:
    """Get the sink for a module, creating one from env config on first use."""
    if module not in _sinks:
        _sinks[module] = create_sink_for_environment(module)
    return _sinks[module]


def emit_record(module: str, record: Dict[str, Any]) -> bool:
    """
    Emit a structured log record to the module's sink.

    Returns:
        True if the record reached a real sink, False if it was dropped
    """
    sink = get_sink(module)
    if sink is None or isinstance(sink, NullSink):
        return False
    sink.emit(module, record)
    sink.flush()
    return True


def close_all_sinks() -> None:
    """Close all registered sinks."""
    for sink in _sinks.values():
        sink.close()
    _sinks.clear()


def create_sink_for_environment(
    module: str,
    session_name: Optional[str] = None,
) -> LogSink:
    """
    Create the sink configured for a module.

    GAMEBUILD_LOGGING_<MODULE>_ENABLED=true selects a FileSink, optionally
    in GAMEBUILD_LOGGING_<MODULE>_DIR. Anything else gets a NullSink.
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
    'color': True,
    'log_dir': None,
    'modules': {},
}


def get_log_dir() -> str:
    """Get the log directory.

    Priority:
    1. Configured log_dir (GAMEBUILD_LOG_DIR)
    2. ./.gamebuild/logs under the current directory
    """
    if _config.get('log_dir'):
        return str(Path(_config['log_dir']).expanduser())
    return str(Path.cwd() / '.gamebuild' / 'logs')


def get_module_config(module: str) -> Dict[str, Any]:
    """Get structured-logging settings for a module.

        GAMEBUILD_LOGGING_PIPELINE_ENABLED=true

    Maps to:
        {'enabled': True}
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
    level: str = 'INFO',
    modules: Optional[Dict[str, str]] = None,
    color: Optional[bool] = None,
) -> None:
    """
    Configure the logging system.

    Args:
        level: Default log level for all modules
        modules: Dict of module_name -> level for per-module configuration
        color: Force colour output on or off (None leaves it unchanged)
    """
    _config['default_level'] = _level_from_string(level)

    if modules:
        for mod, mod_level in modules.items():
            _config['module_levels'][mod] = _level_from_string(mod_level)

    if color is not None:
        _config['color'] = color


def _load_env_config() -> None:
    """Load configuration from environment variables.

    Supports two prefixes:
    - GAMEBUILD_LOG_*: Log levels (GAMEBUILD_LOG_BUNDLER=DEBUG)
    - GAMEBUILD_LOGGING_*: Module settings (GAMEBUILD_LOGGING_PIPELINE_ENABLED=true)
    """
    if 'GAMEBUILD_LOG_LEVEL' in os.environ:
        _config['default_level'] = _level_from_string(os.environ['GAMEBUILD_LOG_LEVEL'])

    if 'GAMEBUILD_LOG_DIR' in os.environ:
        _config['log_dir'] = os.environ['GAMEBUILD_LOG_DIR']

    reserved = ('GAMEBUILD_LOG_LEVEL', 'GAMEBUILD_LOG_DIR')
    for key, value in os.environ.items():
        if key.startswith('GAMEBUILD_LOG_') and key not in reserved:
            module_name = key[len('GAMEBUILD_LOG_'):].lower()
            _config['module_levels'][module_name] = _level_from_string(value)

    for key, value in os.environ.items():
        if key.startswith('GAMEBUILD_LOGGING_'):
            parts = key[len('GAMEBUILD_LOGGING_'):].lower().split('_')
            if len(parts) >= 2:
                module = parts[0]
                _set_nested(
                    _config['modules'].setdefault(module, {}),
                    parts[1:],
                    _parse_env_value(value),
                )


def reload_env_config() -> None:
    """
    Re-read GAMEBUILD_LOG_* and GAMEBUILD_LOGGING_* after the environment
    changed, e.g. once a project .env has been loaded.

    Open sinks are closed first so the next record uses the new settings.
    """
    close_all_sinks()
    _config['modules'] = {}
    _load_env_config()


_load_env_config()


class BuildLogger:
    """Logger for a specific module."""

    def __init__(self, module: str):
        self.module = module
        self._module_key = module.lower().replace('.', '_').replace('/', '_')

    @property
    def level(self) -> LogLevel:
        """Get effective log level for this module."""
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

        print(_format_message(self.module, level_name, msg))

    def debug(self, msg: str, *args) -> None:
        self._log(LogLevel.DEBUG, 'DEBUG', msg, *args)

    def info(self, msg: str, *args) -> None:
        self._log(LogLevel.INFO, 'INFO', msg, *args)

    def warning(self, msg: str, *args) -> None:
        self._log(LogLevel.WARNING, 'WARN', msg, *args)

    def error(self, msg: str, *args) -> None:
        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

    def critical(self, msg: str, *args) -> None:
        self._log(LogLevel.CRITICAL, 'CRIT', msg, *args)

    def exception(self, msg: str, *args, exc: Optional[BaseException] = None) -> None:
        """
        Log an error followed by its traceback.

        Args:
            msg: Message describing what failed
            exc: Exception to format (uses the one being handled if None)
        """
        import traceback

        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

        if exc is not None:
            tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
        else:
            tb_lines = traceback.format_exc().split('\n')

        for line in ''.join(tb_lines).strip().split('\n'):
            if line.strip() and line.strip() != 'NoneType: None':
                self._log(LogLevel.ERROR, 'TRACE', line)


@lru_cache(maxsize=64)
def get_logger(module: str) -> BuildLogger:
    """
    Get a logger for the specified module.

    Loggers are cached, so calling get_logger('foo') multiple times
    returns the same logger instance.
    """
    return BuildLogger(module)