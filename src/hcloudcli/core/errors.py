"""
Error taxonomy for the Hetzner Cloud client.

Every failure the library raises derives from :class:`HcloudError` so callers
(and the CLI) can catch the whole family at once. Nothing here is retried
automatically; each error propagates to the immediate caller.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional


class HcloudError(Exception):
    """Base class for all client-side failures."""


class ConfigError(HcloudError):
    """Raised when runtime configuration cannot be resolved."""


class TransportError(HcloudError):
    """Network, timeout or connection failure."""

    def __init__(self, method: str, url: str, message: str) -> None:
        super().__init__(f"{method} {url} failed: {message}")
        self.method = method
        self.url = url


class DecodingError(HcloudError):
    """The response body is not valid JSON."""

    def __init__(self, url: str, status: int, body: str, message: str = "") -> None:
        super().__init__(f"invalid JSON from {url} (status={status}): {message}")
        self.url = url
        self.status = status
        self.body = body


class ProtocolViolation(HcloudError):
    """Expected envelope key missing from an otherwise well-formed reply."""

    def __init__(self, envelope: Any, key: str) -> None:
        self.envelope = envelope
        self.key = key
        super().__init__(self._describe())

    def _describe(self) -> str:
        base = f"bad/unexpected API reply: missing '{self.key}'"
        err = self.envelope.get("error") if isinstance(self.envelope, dict) else None
        if isinstance(err, dict):
            code = err.get("code")
            msg = err.get("message")
            if code or msg:
                base += f" ({code}: {msg})"
        return base

    def pretty_envelope(self) -> str:
        """Canonical pretty JSON of the raw reply, for diagnostics."""
        return json.dumps(self.envelope, indent=3, sort_keys=True, default=str)


class MissingIdentifier(HcloudError):
    """A required identifier was empty or zero; no request was made."""

    def __init__(self, family: str, value: Optional[Any] = None) -> None:
        super().__init__(f"missing id for {family} (got {value!r})")
        self.family = family
        self.value = value


class PollTimeout(HcloudError):
    """A bounded poll exhausted its attempt budget."""

    def __init__(self, attempts: int, last: Any = None, what: str = "condition") -> None:
        super().__init__(f"timeout waiting for {what} after {attempts} attempts")
        self.attempts = attempts
        self.last = last


class UnsupportedOperation(HcloudError):
    """Resource family, operation or action name not known to the registry."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details = details or {}
