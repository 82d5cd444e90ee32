"""
Output rendering for shell results.

Formats: json (default), raw, csv (tab separated), shell (KEY="value" lines)
and yaml. Single-letter abbreviations c/j/r/s/y are accepted.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List

import yaml

from .errors import UnsupportedOperation

ABBREVIATIONS = {"c": "csv", "j": "json", "r": "raw", "s": "shell", "y": "yaml"}


def flatten(obj: Any) -> Any:
    """Collapse nested objects that carry an ``id`` to that id (copy, recursive on lists)."""
    if isinstance(obj, (list, tuple)):
        return [flatten(x) for x in obj]
    if isinstance(obj, dict):
        return {
            k: (v["id"] if isinstance(v, dict) and v.get("id") else v)
            for k, v in obj.items()
        }
    return obj


def _cell(v: Any) -> str:
    if v is None or v is False or (isinstance(v, (str, list, dict)) and not v):
        return ""
    if isinstance(v, (dict, list)):
        return json.dumps(v, sort_keys=True)
    return str(v)


def _row_values(obj: Dict[str, Any]) -> List[str]:
    flat = flatten(obj)
    return [_cell(flat[k]) for k in sorted(flat)]


def render_json(value: Any) -> str:
    return json.dumps(value, indent=3, sort_keys=True, ensure_ascii=False, default=str) + "\n"


def render_raw(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value) + "\n"
    return f"{value}\n"


def render_csv(value: Any) -> str:
    """Tab separated rows; cells are written verbatim, without quoting."""
    if isinstance(value, (list, tuple)):
        rows: List[Any] = list(value)
        if not rows or not isinstance(rows[0], (dict, list, tuple)):
            rows = [rows]
    else:
        rows = [value]

    lines = []
    for row in rows:
        if isinstance(row, dict):
            cells = _row_values(row)
        elif isinstance(row, (list, tuple)):
            cells = [_cell(v) for v in row]
        else:
            cells = [_cell(row)]
        lines.append("\t".join(cells) + "\n")
    return "".join(lines)


def _shell_quote(v: Any) -> str:
    text = _cell(v)
    return text.replace("\\", "\\\\").replace('"', '\\"')


def render_shell(value: Any) -> str:
    obj = value[0] if isinstance(value, (list, tuple)) and value else value
    if not isinstance(obj, dict):
        raise UnsupportedOperation("shell output needs an object (or a list of objects)")
    flat = flatten(obj)
    return "".join(f'{k}="{_shell_quote(flat[k])}"\n' for k in sorted(flat))


def render_yaml(value: Any) -> str:
    if isinstance(value, tuple):
        value = list(value)
    return yaml.safe_dump(value, default_flow_style=False, sort_keys=True, explicit_start=True)


_RENDERERS: Dict[str, Callable[[Any], str]] = {
    "json": render_json,
    "raw": render_raw,
    "csv": render_csv,
    "shell": render_shell,
    "yaml": render_yaml,
}


def resolve_format(name: str) -> str:
    """Expand abbreviations and validate the format name."""
    fmt = ABBREVIATIONS.get(name, name)
    if fmt not in _RENDERERS:
        raise UnsupportedOperation(
            f"unknown output format '{name}'", details={"allowed": sorted(_RENDERERS)}
        )
    return fmt


def render(value: Any, fmt: str = "json") -> str:
    fmt = resolve_format(fmt)
    try:
        return _RENDERERS[fmt](value)
    except (TypeError, ValueError, yaml.YAMLError) as exc:
        raise UnsupportedOperation(f"cannot render {type(value).__name__} as {fmt}: {exc}") from exc
