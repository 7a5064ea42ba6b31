"""
Calculator configuration, loaded from YAML.

    log_level: DEBUG
    trace: true
    globals:
      answer: 42
      primes: [2, 3, 5]
    codecs:
      int: 0
      str: 1
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from tcalc.tcalc_errors import ConfigError

_KNOWN_KEYS = ("log_level", "trace", "globals", "codecs")
_SCALARS = (int, float, str, bool, type(None))


@dataclass
class CalcConfig:
    log_level: Optional[str] = None
    trace: bool = False
    globals: Dict[str, Any] = field(default_factory=dict)
    codecs: Dict[str, int] = field(default_factory=dict)

    def apply_logging(self):
        if self.log_level is not None:
            logging.getLogger("tcalc").setLevel(self.log_level)


def _check_global(name: str, value: Any):
    if isinstance(value, _SCALARS):
        return
    if isinstance(value, list):
        for item in value:
            _check_global(name, item)
        return
    raise ConfigError(f"Global {name!r} must be a scalar or a list, got {type(value).__name__}")


def config_from_mapping(data: Mapping[str, Any]) -> CalcConfig:
    if not isinstance(data, Mapping):
        raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")
    unknown = [k for k in data if k not in _KNOWN_KEYS]
    if unknown:
        raise ConfigError(f"Unknown configuration key(s): {', '.join(map(str, unknown))}")

    config = CalcConfig()

    level = data.get("log_level")
    if level is not None:
        if not isinstance(level, str) or not isinstance(logging.getLevelName(level.upper()), int):
            raise ConfigError(f"Invalid log_level: {level!r}")
        config.log_level = level.upper()

    trace = data.get("trace", config.trace)
    if not isinstance(trace, bool):
        raise ConfigError(f"'trace' must be true or false, got {trace!r}")
    config.trace = trace

    globals_ = data.get("globals") or {}
    if not isinstance(globals_, Mapping):
        raise ConfigError("'globals' must be a mapping of name to value")
    for name, value in globals_.items():
        if not isinstance(name, str):
            raise ConfigError(f"Global names must be strings, got {name!r}")
        _check_global(name, value)
    config.globals = dict(globals_)

    codecs = data.get("codecs") or {}
    if not isinstance(codecs, Mapping):
        raise ConfigError("'codecs' must be a mapping of tag to id")
    config.codecs = dict(codecs)

    return config


def load_config(source: Union[str, os.PathLike, Mapping[str, Any], None]) -> CalcConfig:
    """
    Accepts a mapping, a path to a YAML file (str paths must end in .yaml or
    .yml), or YAML text. None gives the defaults.
    """
    if source is None:
        return CalcConfig()
    if isinstance(source, Mapping):
        return config_from_mapping(source)

    if isinstance(source, os.PathLike) or (isinstance(source, str) and source.endswith((".yaml", ".yml"))):
        path = Path(source)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Can't read configuration file {str(path)!r}: {e}") from e
    else:
        text = source

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML configuration: {e}") from e
    return config_from_mapping(data or {})
