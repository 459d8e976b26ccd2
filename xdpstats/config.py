import json
import os
from dataclasses import dataclass, fields
from typing import Optional

from .exceptions import ConfigError

DEFAULT_PIN_DIR = "/sys/fs/bpf"
DEFAULT_MAP_NAME = "xdp_stats_map"


@dataclass
class DashboardConfig:
    pin_dir: str = DEFAULT_PIN_DIR
    map_name: str = DEFAULT_MAP_NAME
    interval: float = 1.0
    verbose: bool = False

    def __post_init__(self):
        for name in ("pin_dir", "map_name"):
            value = getattr(self, name)
            if not isinstance(value, str):
                raise ConfigError(f"{name} must be a string, got {value!r}")
        if not isinstance(self.verbose, bool):
            raise ConfigError(f"verbose must be true or false, got {self.verbose!r}")
        if isinstance(self.interval, bool) or not isinstance(self.interval, (int, float)):
            raise ConfigError(f"interval must be a number of seconds, got {self.interval!r}")
        if self.interval <= 0:
            raise ConfigError(f"interval must be greater than 0 seconds, got {self.interval}")

    @property
    def map_path(self) -> str:
        return os.path.join(self.pin_dir, self.map_name)


def load_config(path: Optional[str] = None) -> DashboardConfig:
    """
    Loads the dashboard settings from a JSON file. Unknown keys are ignored.

    Args:
        path (str, optional): The JSON file. Defaults are returned when omitted.

    Returns:
        DashboardConfig: The loaded settings.

    Raises:
        ConfigError: If the file cannot be read or parsed, or a value is invalid.
    """
    if path is None:
        return DashboardConfig()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot load config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must hold a JSON object")
    known = {f.name for f in fields(DashboardConfig)}
    try:
        return DashboardConfig(**{k: v for k, v in data.items() if k in known})
    except TypeError as e:
        raise ConfigError(f"invalid value in config file {path}: {e}") from e
