"""
Run Configuration
=================

Settings for a workspace run, layered from lowest to highest precedence:

1. Built-in defaults
2. YAML config file (.wsrun.yaml in the workspace root, or an explicit path)
3. Environment variables (WSRUN_*), with a workspace .env file loaded first
4. Command-line overrides
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
import logging
import os

import yaml
from dotenv import load_dotenv

from wsrun.errors import ConfigurationError
from wsrun.execution_plan import ExecutionMode

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".wsrun.yaml"

ENV_VARS = {
    "WSRUN_MODE": "mode",
    "WSRUN_CONCURRENCY": "concurrency",
    "WSRUN_FAST_EXIT": "fast_exit",
    "WSRUN_LOG_LEVEL": "log_level",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class RunConfig:
    """
    Configuration of one workspace run.

    Attributes:
        workspace: Workspace root directory
        mode: Execution mode
        concurrency: Worker pool size, None for unbounded
        fast_exit: Stop dispatching after the first failure
        condition_script: Script used as the per-package condition
        cascade: Propagate eligibility from dependencies to dependents
        packages: Root packages to run, empty for the whole workspace
        recursive: Include the dependencies of the root packages
        exclude: Packages removed from the run
        exclude_missing: Leave out packages that lack the script
        report: Print a per-package summary at the end
        prefix: Prefix package output with the package name
        log_level: Logging level name
    """
    workspace: str = "."
    mode: ExecutionMode = ExecutionMode.PARALLEL
    concurrency: Optional[int] = None
    fast_exit: bool = False
    condition_script: Optional[str] = None
    cascade: bool = False
    packages: List[str] = field(default_factory=list)
    recursive: bool = False
    exclude: List[str] = field(default_factory=list)
    exclude_missing: bool = False
    report: bool = False
    prefix: bool = True
    log_level: str = "WARNING"

    @property
    def condition_enabled(self) -> bool:
        return self.condition_script is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["mode"] = self.mode.value
        return data


def _to_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigurationError(f"Invalid boolean for {name}: {value!r}")


def _to_list(name: str, value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    raise ConfigurationError(f"Invalid list for {name}: {value!r}")


def _coerce(name: str, value: Any) -> Any:
    if name == "mode":
        try:
            return ExecutionMode(str(value).lower())
        except ValueError:
            valid = ", ".join(m.value for m in ExecutionMode)
            raise ConfigurationError(f"Invalid mode {value!r}, expected one of: {valid}")
    if name == "concurrency":
        if value is None or value == "":
            return None
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid concurrency: {value!r}")
        if number < 1:
            raise ConfigurationError(f"Concurrency must be at least 1, got {number}")
        return number
    if name in ("fast_exit", "cascade", "recursive", "exclude_missing", "report", "prefix"):
        return _to_bool(name, value)
    if name in ("packages", "exclude"):
        return _to_list(name, value)
    if name == "log_level":
        level = str(value).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ConfigurationError(f"Invalid log level: {value!r}")
        return level
    return None if value is None else str(value)


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a YAML config file.

    Keys may use dashes or underscores.

    Raises:
        ConfigurationError: If the file is not valid YAML or not a mapping
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    return {str(k).replace("-", "_"): v for k, v in data.items()}


def load_config(
    workspace: Union[str, Path] = ".",
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None
) -> RunConfig:
    """
    Build the run configuration from all layers.

    Args:
        workspace: Workspace root, also where .wsrun.yaml and .env are looked up
        config_path: Explicit config file, replaces the .wsrun.yaml lookup
        overrides: Highest-precedence values (None values are ignored)
        environ: Environment to read, defaults to os.environ after loading .env

    Returns:
        Validated RunConfig
    """
    workspace = Path(workspace)
    known = {f.name for f in fields(RunConfig)}
    values: Dict[str, Any] = {"workspace": str(workspace)}

    file_path = Path(config_path) if config_path else workspace / CONFIG_FILENAME
    if config_path or file_path.is_file():
        file_values = load_config_file(file_path)
        unknown = sorted(set(file_values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown config keys in {file_path}: {', '.join(unknown)}")
        values.update(file_values)
        logger.debug(f"Loaded config file {file_path}")

    if environ is None:
        load_dotenv(workspace / ".env", override=False)
        environ = os.environ
    for var, name in ENV_VARS.items():
        if var in environ:
            values[name] = environ[var]

    for name, value in (overrides or {}).items():
        if name not in known:
            raise ConfigurationError(f"Unknown config option: {name}")
        if value is not None:
            values[name] = value

    return RunConfig(**{name: _coerce(name, value) for name, value in values.items()})
