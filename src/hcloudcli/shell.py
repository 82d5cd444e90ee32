"""
Expression shell: evaluate one line against the generated API namespace.

A line is a Python expression (or statement) such as::

    get_images({'name': 'debian-9'})[0]['id']
    .raw get_image(1)['name']
    .csv get('images', 'id', 'name')

A leading ``.<format>`` selects the output format for that line only.
"""

from __future__ import annotations

import builtins
import os
import re
import sys
from typing import Any, Callable, Dict, List, Optional, TextIO

from .core.errors import HcloudError
from .core.formatters import render, resolve_format
from .core.hcloud_client import HcloudClient
from .core.logging_setup import get_logger
from .core.poller import poll_until
from .core.resources import ResourceApi, build_namespace, get_family

log = get_logger(__name__)

_FORMAT_PREFIX = re.compile(r"^\.(\w+)\s+")

_SAFE_BUILTINS = (
    "abs", "all", "any", "bool", "dict", "enumerate", "filter", "float", "int",
    "len", "list", "map", "max", "min", "print", "range", "repr", "reversed",
    "round", "set", "sorted", "str", "sum", "tuple", "zip",
)


class EvaluationError(HcloudError):
    """The expression itself failed (syntax, name, type or lookup error)."""


class Shell:
    """Evaluate expressions against the API namespace and render the results."""

    def __init__(
        self,
        client: HcloudClient,
        *,
        default_format: str = "json",
        out: Optional[TextIO] = None,
    ) -> None:
        self.client = client
        self.api = ResourceApi(client)
        self.default_format = resolve_format(default_format)
        self.out = out or sys.stdout
        self.namespace = self._build_namespace()

    # ---------------- namespace ----------------
    def _build_namespace(self) -> Dict[str, Any]:
        ns: Dict[str, Any] = {"__builtins__": {n: getattr(builtins, n) for n in _SAFE_BUILTINS}}
        ns.update(build_namespace(self.api))
        ns.update({
            "get": self.get,
            "help": self.help,
            "quit": self.quit,
            "wait_for": self.wait_for,
            "wait_for_action": self.wait_for_action,
        })
        return ns

    def completion_words(self) -> List[str]:
        return sorted(k for k in self.namespace if not k.startswith("_"))

    def get(self, kind: str, *args: Any) -> Any:
        """get(kind, ...)

         get('images', 'id', 'name') -> [[id, name], ...]
         get('image', 1, 'name', 'type') -> [name, type]
         get('image', 1) -> the image object
        """
        fam = get_family(kind)
        if kind == fam.plural:
            objs = self.api.list(kind)
            if args:
                if not isinstance(objs, list):
                    raise EvaluationError(
                        f"get('{kind}', ...) cannot select fields: '{kind}' is a single "
                        f"{type(objs).__name__}, not a list"
                    )
                return [[o.get(f) for f in args] for o in objs]
            return objs
        if not args:
            raise EvaluationError(f"get('{kind}', id, ...) needs an id")
        obj = self.api.get(kind, args[0])
        if len(args) > 1:
            return [obj.get(f) for f in args[1:]]
        return obj

    def wait_for(self, max_attempts: int, delay_sec: float, probe: Callable[[], Any]) -> Any:
        """wait_for(max_attempts, delay_sec, probe)

         Call probe() until it returns something truthy
        """
        return poll_until(max_attempts, delay_sec, probe)

    def wait_for_action(self, action_id: Any, max_wait_sec: Optional[float] = None) -> Any:
        """wait_for_action(id, max_wait_sec=30)

         Wait until the action is no longer running and return it
        """
        if isinstance(action_id, dict):
            action_id = action_id.get("id")
        return self.client.wait_for_action(action_id, max_wait_sec)

    def help(self, search: str = "") -> None:
        """help(name='')

         Print the usage of all functions, or of those matching name
        """
        names = [n for n in self.completion_words() if search in n]
        for name in names:
            doc = getattr(self.namespace[name], "__doc__", None) or name
            lines = [ln.strip() for ln in doc.strip().splitlines()]
            self.out.write("\n ".join(lines) + "\n\n")

    @staticmethod
    def quit() -> None:
        """quit()

         Leave the shell
        """
        raise SystemExit(0)

    # ---------------- evaluation ----------------
    def evaluate(self, expr: str) -> Any:
        """Evaluate *expr*; statements are executed and yield None."""
        try:
            try:
                code = compile(expr, "<hcloud>", "eval")
            except SyntaxError:
                code = compile(expr, "<hcloud>", "exec")
                exec(code, self.namespace)  # noqa: S102
                return None
            return eval(code, self.namespace)  # noqa: S307
        except HcloudError:
            raise
        except Exception as exc:
            raise EvaluationError(f"{type(exc).__name__}: {exc}") from exc

    def run_line(self, line: str) -> Optional[str]:
        """Evaluate one line and return the rendered output (None when empty)."""
        line = line.strip()
        if not line:
            return None
        fmt = self.default_format
        m = _FORMAT_PREFIX.match(line)
        if m:
            fmt = resolve_format(m.group(1))
            line = line[m.end():]
        log.debug("eval[%s]: %s", fmt, line)
        value = self.evaluate(line)
        if value is None:
            return None
        return render(value, fmt)

    def execute(self, line: str) -> None:
        text = self.run_line(line)
        if text:
            self.out.write(text)
            self.out.flush()

    # ---------------- interactive ----------------
    def interactive(self, history_file: Optional[str] = None, prompt: str = "> ") -> int:
        """Read-eval-print loop; history is kept only when the file already exists."""
        hist = os.path.expanduser(history_file) if history_file else None
        rl = _setup_readline(self.completion_words(), hist)
        while True:
            try:
                line = input(prompt)
            except EOFError:
                self.out.write("exit\n")
                return 0
            except KeyboardInterrupt:
                self.out.write("\n")
                continue
            try:
                self.execute(line)
            except HcloudError as exc:
                log.warning("%s", exc)
            if rl is not None and hist and os.path.exists(hist):
                try:
                    rl.append_history_file(1, hist)
                except OSError as exc:
                    log.debug("cannot append history %s: %s", hist, exc)


def _setup_readline(words: List[str], history_file: Optional[str]) -> Any:
    try:
        import readline
    except ImportError:  # pragma: no cover - not available on all platforms
        return None

    def complete(text: str, state: int) -> Optional[str]:
        matches = [w for w in words if w.startswith(text)]
        return matches[state] if state < len(matches) else None

    readline.set_completer(complete)
    readline.parse_and_bind("tab: complete")
    if history_file and os.path.exists(history_file):
        try:
            readline.read_history_file(history_file)
        except OSError as exc:
            log.debug("cannot read history %s: %s", history_file, exc)
    return readline
