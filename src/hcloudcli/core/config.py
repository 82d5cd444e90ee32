from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError


DEFAULT_BASE_URL = "https://api.hetzner.cloud/v1"
DEFAULT_TOKEN_FILE = "~/.hcloudapitoken"


# ---------- Typed sections ----------

@dataclass
class ApiSection:
    base_url: str = DEFAULT_BASE_URL
    token: str = ""          # secret – never log in clear text
    token_file: str = DEFAULT_TOKEN_FILE
    timeout_sec: float = 9.0
    user_agent: str = "hcloudcli"


@dataclass
class PollSection:
    interval_sec: float = 1.0
    max_wait_sec: float = 30.0


@dataclass
class LoggingSection:
    console_level: str = "INFO"
    file_level: str = "DEBUG"
    base_dir: str = ""        # empty -> no file log
    debug: bool = False


@dataclass
class CliSection:
    default_format: str = "json"
    history_file: str = "~/.hcloudcli_history"


@dataclass
class AppConfig:
    """Typed configuration object built by `load_config`."""
    api: ApiSection = field(default_factory=ApiSection)
    poll: PollSection = field(default_factory=PollSection)
    logging: LoggingSection = field(default_factory=LoggingSection)
    cli: CliSection = field(default_factory=CliSection)


# ---------- Defaults ----------

DEFAULT_FILES: Tuple[str, ...] = (
    "./hcloud.yml",
    os.path.expanduser("~/.config/hcloud/config.yml"),
    "/etc/hcloud/config.yml",
)

_DEFAULTS: Dict[str, Any] = {
    "api": {
        "base_url": DEFAULT_BASE_URL,
        "token": "",
        "token_file": DEFAULT_TOKEN_FILE,
        "timeout_sec": 9.0,
        "user_agent": "hcloudcli",
    },
    "poll": {"interval_sec": 1.0, "max_wait_sec": 30.0},
    "logging": {"console_level": "INFO", "file_level": "DEBUG", "base_dir": "", "debug": False},
    "cli": {"default_format": "json", "history_file": "~/.hcloudcli_history"},
}

_BOOL_KEYS = {"debug"}
_FLOAT_KEYS = {"timeout_sec", "interval_sec", "max_wait_sec"}


# ---------- Utilities ----------

def _deep_merge(base: Dict[str, Any], ext: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge for dicts: maps merge recursively, lists/scalars override.
    `ext` wins over `base`. Returns a new dict.
    """
    if not ext:
        return dict(base)
    out: Dict[str, Any] = dict(base)
    for k, v in ext.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_yaml_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse YAML config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")
    return data


def _load_first_existing(files: Tuple[str, ...]) -> Dict[str, Any]:
    for p in files:
        if os.path.exists(p):
            return _read_yaml_file(p)
    return {}


def _env_to_dict(prefix: str = "HCLOUD_") -> Dict[str, Any]:
    """
    Convert HCLOUD_FOO__BAR=val to {"foo": {"bar": "val"}} (lowercased keys).
    Variables without a section separator are ignored.
    """
    out: Dict[str, Any] = {}
    plen = len(prefix)
    for key, val in os.environ.items():
        if not key.startswith(prefix) or "__" not in key[plen:]:
            continue
        path = key[plen:].lower().split("__")
        cursor = out
        for part in path[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[path[-1]] = val
    return out


def _legacy_env() -> Dict[str, Any]:
    # HCLOUDDEBUG=1 predates the sectioned variables
    val = os.environ.get("HCLOUDDEBUG")
    if val is None:
        return {}
    return {"logging": {"debug": val}}


def _interpolate_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values like "${VAR}" with os.environ["VAR"] when present.
    """
    def repl(v: Any) -> Any:
        if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
            return os.environ.get(v[2:-1], "")
        return v

    def walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: walk(repl(v)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(x) for x in obj]
        return repl(obj)

    return walk(cfg)


def _coerce_types(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Minimal type coercion for booleans and numbers in known keys.
    """
    def to_bool(x: Any) -> bool:
        return str(x).strip().lower() in {"1", "true", "yes", "y", "on"}

    def walk(obj: Any, key: str = "") -> Any:
        if isinstance(obj, dict):
            return {k: walk(v, k) for k, v in obj.items()}
        if key in _BOOL_KEYS:
            return to_bool(obj)
        if key in _FLOAT_KEYS:
            try:
                return float(obj)
            except (TypeError, ValueError):
                raise ConfigError(f"'{key}' must be a number, got {obj!r}") from None
        return obj

    return walk(cfg)


def _section(cls, data: Dict[str, Any], name: str):
    known = set(cls.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{name}' section: {', '.join(unknown)}")
    return cls(**data)


# ---------- Public API ----------

def read_token_file(path: str) -> str:
    """Return the first line of the token file, stripped ('' if absent)."""
    p = Path(os.path.expanduser(path))
    if not p.is_file():
        return ""
    lines = p.read_text(encoding="utf-8").splitlines()
    return lines[0].strip() if lines else ""


def resolve_token(cfg: AppConfig) -> str:
    """
    Return the API token: `api.token` when set, else the token file.

    Raises:
        ConfigError: If neither source yields a token.
    """
    if cfg.api.token:
        return cfg.api.token
    token = read_token_file(cfg.api.token_file)
    if not token:
        raise ConfigError(
            f"No API token: set api.token, HCLOUD_API__TOKEN or create {cfg.api.token_file}"
        )
    cfg.api.token = token
    return token


def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = DEFAULT_FILES,
    env_prefix: str = "HCLOUD_",
    *,
    use_dotenv: bool = True,
) -> AppConfig:
    """
    Build an AppConfig from (in precedence order):
      1) CLI overrides
      2) Environment variables (prefix HCLOUD_, nested via __; HCLOUDDEBUG)
      3) YAML file (first existing)
      4) Built-in defaults

    A `.env` file found from the working directory is loaded into the
    environment first. Also performs ${ENV_VAR} interpolation and basic type
    coercion. The token is not read here; see `resolve_token`.
    """
    if use_dotenv:
        env_path = find_dotenv(usecwd=True) or ""
        if env_path:
            load_dotenv(env_path, override=False)

    file_cfg = _load_first_existing(files)

    merged = _deep_merge(_DEFAULTS, file_cfg)
    merged = _deep_merge(merged, _legacy_env())
    merged = _deep_merge(merged, _env_to_dict(env_prefix))
    merged = _deep_merge(merged, cli_overrides or {})

    merged = _interpolate_env(merged)
    merged = _coerce_types(merged)

    return AppConfig(
        api=_section(ApiSection, merged.get("api", {}), "api"),
        poll=_section(PollSection, merged.get("poll", {}), "poll"),
        logging=_section(LoggingSection, merged.get("logging", {}), "logging"),
        cli=_section(CliSection, merged.get("cli", {}), "cli"),
    )
