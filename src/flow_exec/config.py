"""Load run defaults from YAML into an ExecConfig."""

import os
from dataclasses import asdict, dataclass, field

import yaml

from flow_exec.drain import READERS

CONFIG_FILE = ".flow-exec.yml"
CONFIG_ENV = "FLOW_EXEC_CONFIG"
ENV_ERROR = "env: expected a mapping or list of KEY=value"


@dataclass
class ExecConfig:
    timeout: float | None = None
    kill_on_timeout: bool = True
    raise_on_timeout: bool = False
    kill_grace: float = 1.0
    poll_interval: float = 0.05
    encoding: str = "utf-8"
    reader: str = "auto"
    env: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def _as_bool(value, key: str) -> bool:
    """Accept YAML booleans as well as label-style strings."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "yes", "on", "1"):
        return True
    if text in ("false", "no", "off", "0"):
        return False
    raise RuntimeError(f"{key}: expected a boolean, got {value!r}")


def _as_float(value, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise RuntimeError(f"{key}: expected a number, got {value!r}") from None


def parse_config(config_dict: dict | None) -> ExecConfig:
    """Parse a config dict into an ExecConfig.

    Settings are read from the `x-exec` mapping when present, else from the
    top level. Unknown keys are ignored. timeout 0 means no timeout.
    """
    if config_dict is None:
        config_dict = {}
    if not isinstance(config_dict, dict):
        raise RuntimeError("config: expected a mapping")
    section = config_dict.get("x-exec", config_dict)
    if not isinstance(section, dict):
        raise RuntimeError("config: expected a mapping")

    cfg = ExecConfig()

    timeout = section.get("timeout")
    if timeout is not None:
        cfg.timeout = _as_float(timeout, "timeout") or None

    for key in ("kill_on_timeout", "raise_on_timeout"):
        if key in section:
            setattr(cfg, key, _as_bool(section[key], key))

    for key in ("kill_grace", "poll_interval"):
        if key in section:
            setattr(cfg, key, _as_float(section[key], key))

    if "encoding" in section:
        cfg.encoding = str(section["encoding"])
    if "reader" in section:
        cfg.reader = str(section["reader"])

    env = section.get("env") or {}
    if isinstance(env, list):
        # Convert list format ["KEY=value", ...] to dict
        parsed = {}
        for item in env:
            if not isinstance(item, str):
                raise RuntimeError(ENV_ERROR)
            k, _, v = item.partition("=")
            parsed[k] = v
        env = parsed
    elif not isinstance(env, dict):
        raise RuntimeError(ENV_ERROR)
    cfg.env = {str(k): str(v) for k, v in env.items()}

    return cfg


def _config_path(path: str | None) -> str | None:
    """Resolve the config file: explicit path → FLOW_EXEC_CONFIG → ./.flow-exec.yml."""
    if path:
        return path
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return env_path
    if os.path.isfile(CONFIG_FILE):
        return CONFIG_FILE
    return None


def load_config(path: str | None = None) -> ExecConfig:
    """Load and parse the config file, or return defaults when there is none."""
    resolved = _config_path(path)
    if resolved is None:
        return ExecConfig()
    try:
        with open(resolved) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise RuntimeError(f"config file not found: {resolved}") from None
    except yaml.YAMLError as e:
        raise RuntimeError(f"invalid YAML in {resolved}: {e}") from e
    return parse_config(data)


def validate_config(cfg: ExecConfig) -> list[str]:
    """Return a list of problems with the config (empty when valid)."""
    problems = []
    if cfg.timeout is not None and cfg.timeout < 0:
        problems.append(f"timeout must be non-negative, got {cfg.timeout}")
    if cfg.kill_grace < 0:
        problems.append(f"kill_grace must be non-negative, got {cfg.kill_grace}")
    if cfg.poll_interval <= 0:
        problems.append(f"poll_interval must be positive, got {cfg.poll_interval}")
    if cfg.reader not in READERS:
        problems.append(f"reader must be one of {', '.join(READERS)}, got {cfg.reader!r}")
    return problems
