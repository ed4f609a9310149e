from __future__ import annotations
from typing import Any, Dict
from pathlib import Path
import copy
import logging

import yaml

logger = logging.getLogger(__name__)

MIN_INTERVAL = 1
MAX_INTERVAL = 60
EXPORT_FORMATS = ("json", "csv", "yaml")

DEFAULT_CONFIG: Dict[str, Any] = {
    "interval": 2,
    "export_format": "json",
    "output_dir": ".",
    "command_timeout": 10.0,
    "lsof_path": "lsof",
    "log_file": None,
    "log_level": "WARNING",
}


def validate_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    interval = cfg.get("interval")
    if not isinstance(interval, (int, float)) or not MIN_INTERVAL <= interval <= MAX_INTERVAL:
        raise ValueError(f"Interval must be between {MIN_INTERVAL} and {MAX_INTERVAL} seconds")
    fmt = str(cfg.get("export_format", "")).lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {cfg.get('export_format')!r}")
    cfg["export_format"] = fmt
    timeout = cfg.get("command_timeout")
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ValueError("command_timeout must be a positive number or null")
    level = str(cfg.get("log_level", "WARNING")).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level: {cfg.get('log_level')!r}")
    cfg["log_level"] = level
    return cfg


def load_config(path: str | None) -> Dict[str, Any]:
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    if path:
        try:
            data = yaml.safe_load(Path(path).read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load config %s: %s", path, e)
        else:
            if not isinstance(data, dict):
                logger.warning("Ignoring config %s: top level must be a mapping", path)
            else:
                unknown = set(data) - set(DEFAULT_CONFIG)
                if unknown:
                    logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
                cfg.update({k: v for k, v in data.items() if k in DEFAULT_CONFIG})
                logger.info("Loaded config from %s", path)
    return validate_config(cfg)
