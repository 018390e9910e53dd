"""
Replay settings from a YAML file, environment variables and CLI flags.

Precedence, highest first: CLI flag, environment, YAML file, defaults.

Example config:

    target: http://sandbox.internal:8080
    timeout: 10
    concurrent_ties: true
    max_retries: 2
"""

import os
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from logreplay.dispatcher import TargetConfig
from logreplay.runner import RunnerConfig


TARGET_KEYS = {"target": "base_url", "timeout": "timeout", "verify_tls": "verify_tls"}
RUNNER_KEYS = ("concurrent_ties", "max_concurrency", "max_retries", "retry_backoff")

# setting -> accepted YAML types
KEY_TYPES = {
    "target": (str,),
    "timeout": (int, float),
    "verify_tls": (bool,),
    "concurrent_ties": (bool,),
    "max_concurrency": (int,),
    "max_retries": (int,),
    "retry_backoff": (int, float),
}

# env var -> (setting, parser)
ENV_VARS = {
    "REPLAY_TARGET_URL": ("target", str),
    "REPLAY_TIMEOUT": ("timeout", float),
    "REPLAY_MAX_RETRIES": ("max_retries", int),
}


def load_yaml(filepath) -> Dict[str, Any]:
    """Load a YAML config file. An empty file is an empty config."""
    with open(filepath, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{filepath}: config must be a mapping")
    unknown = set(data) - set(TARGET_KEYS) - set(RUNNER_KEYS)
    if unknown:
        raise ValueError(f"{filepath}: unknown config keys: {', '.join(sorted(map(str, unknown)))}")
    for key, value in data.items():
        check_type(key, value, filepath)
    return data


def check_type(key: str, value: Any, source) -> None:
    allowed = KEY_TYPES[key]
    # bool is an int subclass; only accept it where a bool is expected
    if isinstance(value, bool) and bool not in allowed:
        ok = False
    else:
        ok = isinstance(value, allowed)
    if not ok:
        expected = " or ".join(t.__name__ for t in allowed)
        raise ValueError(f"{source}: {key} must be {expected}, got {value!r}")


def env_settings(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    settings = {}
    for var, (key, parse) in ENV_VARS.items():
        raw = environ.get(var, "").strip()
        if not raw:
            continue
        try:
            settings[key] = parse(raw)
        except ValueError:
            raise ValueError(f"{var} is not a valid {parse.__name__}: {raw!r}") from None
    return settings


def resolve_settings(
    config_path=None,
    cli: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Tuple[TargetConfig, RunnerConfig]:
    """
    Merge every settings source into the target and runner configs.

    Args:
        config_path: optional YAML file
        cli: flag values; None entries count as "not given"
        environ: environment mapping (defaults to os.environ)

    Returns:
        (TargetConfig, RunnerConfig)
    """
    merged: Dict[str, Any] = {}
    if config_path:
        merged.update(load_yaml(config_path))
    merged.update(env_settings(environ))
    merged.update({k: v for k, v in (cli or {}).items() if v is not None})

    target = TargetConfig(**{TARGET_KEYS[k]: merged[k] for k in TARGET_KEYS if k in merged})
    runner = RunnerConfig(**{k: merged[k] for k in RUNNER_KEYS if k in merged})
    return target, runner
