"""
Command-line interface for hcloudcli.

Usage (examples):
  hcloudcli 'get_images()'
  hcloudcli "get_images({'name': 'debian-9'})"
  hcloudcli 'get_images({"name": "debian-9"})[0]["id"]'
  hcloudcli "update_ssh_key(1234, {'name': 'foo'})"
  hcloudcli '.raw get_image(1)["name"]'
  hcloudcli -f raw 'get_image(1)["name"]'
  hcloudcli ".c get('image', 1, 'name', 'type')"
  hcloudcli ".csv get('images', 'id', 'name')"
  hcloudcli ".shell get('image', 1)"
  hcloudcli ".yaml get_image(1)"
  hcloudcli                      # interactive mode

Files:
  ~/.hcloudapitoken     API token (first line), unless api.token is configured
  ~/.hcloudcli_history  read on start-up; appended to only when it exists
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any, Dict, Iterable, Optional

from .core.config import AppConfig, load_config, resolve_token
from .core.errors import (
    ConfigError,
    DecodingError,
    HcloudError,
    MissingIdentifier,
    PollTimeout,
    ProtocolViolation,
    TransportError,
    UnsupportedOperation,
)
from .core.hcloud_client import ClientOptions, HcloudClient
from .core.logging_setup import get_logger, setup_logging
from .shell import EvaluationError, Shell

EXIT_OK = 0
EXIT_GENERIC_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_PROTOCOL_ERROR = 3
EXIT_NETWORK_ERROR = 4
EXIT_POLL_TIMEOUT = 5

log = get_logger(__name__)


def exit_code_for(exc: BaseException) -> int:
    if isinstance(exc, ConfigError):
        return EXIT_CONFIG_ERROR
    if isinstance(exc, (TransportError, DecodingError)):
        return EXIT_NETWORK_ERROR
    if isinstance(exc, PollTimeout):
        return EXIT_POLL_TIMEOUT
    if isinstance(exc, (ProtocolViolation, MissingIdentifier, UnsupportedOperation, EvaluationError)):
        return EXIT_PROTOCOL_ERROR
    return EXIT_GENERIC_ERROR


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="hcloudcli",
        description="Hetzner Cloud command line interface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    p.add_argument("-f", "--format", default=None,
                   help="Output format: json (default), csv, shell, yaml, raw (or c/j/r/s/y)")
    p.add_argument("--config", default=None, help="YAML config file (default: hcloud.yml search path)")
    p.add_argument("--base-url", default=None, help="API base URL")
    p.add_argument("--token-file", default=None, help="File holding the API token")
    p.add_argument("--timeout-sec", type=float, default=None, help="HTTP timeout seconds")
    p.add_argument("--debug", action="store_true", help="Trace HTTP requests and responses")
    p.add_argument("--logs-dir", default=None, help="Write a rotating log file under this directory")
    p.add_argument("expressions", nargs="*", metavar="EXPR",
                   help="Expression to evaluate; interactive mode when none is given")
    return p


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    api: Dict[str, Any] = {}
    if args.base_url:
        api["base_url"] = args.base_url
    if args.token_file:
        api["token_file"] = args.token_file
    if args.timeout_sec is not None:
        api["timeout_sec"] = args.timeout_sec

    overrides: Dict[str, Any] = {"api": api}
    if args.debug:
        overrides["logging"] = {"debug": True}
    if args.logs_dir:
        overrides.setdefault("logging", {})["base_dir"] = args.logs_dir
    if args.format:
        overrides["cli"] = {"default_format": args.format}
    return overrides


def build_client(cfg: AppConfig) -> HcloudClient:
    """Create the client from resolved configuration (reads the token once)."""
    return HcloudClient(ClientOptions(
        base_url=cfg.api.base_url,
        token=resolve_token(cfg),
        timeout_sec=float(cfg.api.timeout_sec),
        user_agent=cfg.api.user_agent,
        debug=bool(cfg.logging.debug),
        poll_interval_sec=float(cfg.poll.interval_sec),
        poll_max_wait_sec=float(cfg.poll.max_wait_sec),
    ))


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        if args.config:
            if not os.path.isfile(args.config):
                raise ConfigError(f"Config file not found: {args.config}")
            cfg = load_config(_cli_overrides(args), files=(args.config,))
        else:
            cfg = load_config(_cli_overrides(args))
    except ConfigError as exc:
        setup_logging()
        log.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    setup_logging(
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
        base_dir=cfg.logging.base_dir or None,
        debug=cfg.logging.debug,
    )
    try:
        shell = Shell(build_client(cfg), default_format=cfg.cli.default_format)
    except (ConfigError, UnsupportedOperation) as exc:
        log.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    if not args.expressions:
        return shell.interactive(cfg.cli.history_file)

    worst = EXIT_OK
    for expr in args.expressions:
        try:
            shell.execute(expr)
        except ProtocolViolation as exc:
            log.error("%s\n%s", exc, exc.pretty_envelope())
            worst = max(worst, exit_code_for(exc))
        except HcloudError as exc:
            log.error("%s", exc)
            worst = max(worst, exit_code_for(exc))
    return worst


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
