"""
HcloudClient: JSON-first HTTP client for the Hetzner Cloud API.

This module provides a single, reusable HTTP client with:
  * One transport primitive (`request`) returning the decoded JSON body
  * Envelope unwrapping (`unwrap`) with a small whitelist of auxiliary keys
  * **Generic resource helpers** (list/get/create/update/delete/action) so the
    resource table and the shell do not duplicate HTTP plumbing
  * Action waiting through the bounded poller

Design goals:
  * Hide HTTP details from callers
  * Explicit error reporting (see :mod:`hcloudcli.core.errors`)
  * No retries: every failure surfaces to the immediate caller

Example:
    client = HcloudClient(ClientOptions(token="..."))
    servers = client.list_resources("servers", {"name": "web1"})
    action = client.perform_action("server", servers[0]["id"], "reboot")
    client.wait_for_action(action["id"])
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import quote

import requests

from .errors import DecodingError, MissingIdentifier, ProtocolViolation, TransportError
from .logging_setup import get_logger
from .poller import await_action

log = get_logger(__name__)

JSON = Union[Dict[str, Any], List[Any]]

# Envelope siblings that logically belong to the unwrapped resource:
# the async action, a generated root password, the console password and
# the console websocket URL.
AUX_KEYS = ("action", "root_password", "password", "wss_url")

_DEBUG_HEADERS = ("Content-Type", "RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset")
_LOG_PREVIEW = 600


def _short_json(obj: Any, limit: int = _LOG_PREVIEW) -> str:
    try:
        if isinstance(obj, (dict, list)):
            s = json.dumps(obj, ensure_ascii=False)
        else:
            s = str(obj)
        return s[:limit]
    except (TypeError, ValueError):
        return f"<unserializable:{type(obj).__name__}>"


def canonical_query_string(params: Mapping[str, Any]) -> str:
    """Encode *params* as ``k=v&k2=v2`` with keys sorted and values percent-encoded.

    >>> canonical_query_string({"sort": "name:asc", "name": "my server"})
    'name=my%20server&sort=name%3Aasc'
    """
    return "&".join(f"{k}={quote(str(params[k]), safe='')}" for k in sorted(params))


def unwrap(envelope: Any, key: str) -> Any:
    """Return ``envelope[key]``, merged with the auxiliary siblings it lacks.

    Auxiliary keys (:data:`AUX_KEYS`) are copied only when the value is a
    mapping and *key* is not itself auxiliary. The envelope is not mutated.

    Raises:
        ProtocolViolation: If *key* is absent or JSON ``null``.
    """
    if not isinstance(envelope, dict) or envelope.get(key) is None:
        raise ProtocolViolation(envelope, key)
    value = envelope[key]
    if isinstance(value, dict) and key not in AUX_KEYS:
        extras = {k: envelope[k] for k in AUX_KEYS if k in envelope and k not in value}
        if extras:
            value = {**value, **extras}
    return value


def _require_id(family: str, resource_id: Any) -> None:
    if resource_id is None or resource_id == "" or resource_id == 0:
        raise MissingIdentifier(family, resource_id)


def _plural(family: str) -> str:
    return f"{family}s"


@dataclass
class ClientOptions:
    """Runtime options for :class:`HcloudClient`.

    Attributes:
        base_url: API root every request path is relative to.
        token: Bearer token sent with every request.
        timeout_sec: Per-request timeout (seconds).
        user_agent: ``User-Agent`` header value.
        debug: Trace every request/response at DEBUG level.
        poll_interval_sec: Delay between action status polls (seconds).
        poll_max_wait_sec: Default budget for :meth:`HcloudClient.wait_for_action`.
    """
    base_url: str = "https://api.hetzner.cloud/v1"
    token: str = ""
    timeout_sec: float = 9.0
    user_agent: str = "hcloudcli"
    debug: bool = False
    poll_interval_sec: float = 1.0
    poll_max_wait_sec: float = 30.0


class HcloudClient:
    """High-level HTTP client for the Hetzner Cloud API.

    Args:
        options: :class:`ClientOptions`; built once at start-up.
        session: Optional pre-built ``requests.Session`` (tests, proxies).
    """

    def __init__(self, options: ClientOptions, *, session: Optional[requests.Session] = None) -> None:
        if not options.base_url:
            raise ValueError("base_url is required")
        self.options = options
        self.base_url = options.base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {options.token}",
            "Accept": "application/json",
            "User-Agent": options.user_agent,
        })

    # ---------------- transport ----------------
    def _url(self, path: str) -> str:
        """Resolve an absolute URL from a relative *path*."""
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self, method: str, path: str, body: Optional[Any] = None) -> JSON:
        """Perform one HTTP request and return the decoded JSON body.

        An empty body yields ``{}``. HTTP error statuses are not raised here:
        the API reports them inside the JSON body, which the envelope
        unwrapper then rejects.

        Raises:
            TransportError: On connection-level failures and timeouts.
            DecodingError: When the body is not valid JSON.
        """
        method = method.upper()
        url = self._url(path)
        start = time.time()
        try:
            resp = self.session.request(
                method=method,
                url=url,
                json=body,
                timeout=self.options.timeout_sec,
                allow_redirects=False,
            )
        except requests.RequestException as exc:
            log.debug("HTTP %s %s failed: %s", method, url, exc)
            raise TransportError(method, url, str(exc)) from exc

        elapsed = (time.time() - start) * 1000
        log.debug("%s %s -> %s in %.1fms", method, path, resp.status_code, elapsed)
        if self.options.debug:
            self._trace(method, url, resp)

        text = resp.text
        if not text.strip():
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            log.debug("Non-JSON response from %s %s (status=%s)", method, url, resp.status_code)
            raise DecodingError(url, resp.status_code, text[:_LOG_PREVIEW], str(exc)) from exc

    def _trace(self, method: str, url: str, resp: requests.Response) -> None:
        log.debug("Request: %s %s", method, url)
        log.debug("status: %s %s", resp.status_code, resp.reason)
        for h in _DEBUG_HEADERS:
            log.debug("%s: %s", h, resp.headers.get(h, ""))
        log.debug("body: %s", resp.text)

    # ---------------- envelope requests ----------------
    def request_resource(
        self,
        method: str,
        segment: str,
        extra: Optional[Union[Mapping[str, Any], str]] = None,
        target_key: Optional[str] = None,
        body: Optional[Any] = None,
    ) -> Any:
        """Request ``segment`` (+ query string or raw suffix) and unwrap the reply.

        Args:
            method: HTTP method.
            segment: Resource path, e.g. ``servers`` or ``servers/42/actions``.
            extra: Mapping -> ``?k=v`` canonical query string; string -> verbatim
                path suffix (cursor continuation).
            target_key: Envelope key to extract; defaults to *segment*.
            body: Optional JSON body.
        """
        suffix = ""
        if isinstance(extra, Mapping):
            if extra:
                suffix = "?" + canonical_query_string(extra)
        elif extra:
            suffix = str(extra)
        envelope = self.request(method, f"{segment}{suffix}", body)
        key = target_key or segment
        try:
            return unwrap(envelope, key)
        except ProtocolViolation:
            log.debug("bad reply for %s %s%s: %s", method, segment, suffix, _short_json(envelope))
            raise

    def list_resources(self, family: str, filters: Optional[Union[Mapping[str, Any], str]] = None) -> Any:
        """GET a collection, e.g. ``list_resources("servers", {"name": "x"})``."""
        return self.request_resource("GET", family, filters, family)

    def get_resource(self, family: str, resource_id: Any, filters: Optional[Mapping[str, Any]] = None) -> Any:
        """GET one object, e.g. ``get_resource("server", 42)``."""
        _require_id(family, resource_id)
        return self.request_resource("GET", f"{_plural(family)}/{resource_id}", filters, family)

    def create_resource(self, family: str, body: Mapping[str, Any]) -> Any:
        """POST a new object; auxiliary siblings (``action``, ...) are merged in."""
        return self.request_resource("POST", _plural(family), None, family, dict(body))

    def update_resource(self, family: str, resource_id: Any, body: Mapping[str, Any]) -> Any:
        """PUT changes to one object and return the updated object."""
        _require_id(family, resource_id)
        return self.request_resource("PUT", f"{_plural(family)}/{resource_id}", None, family, dict(body))

    def delete_resource(self, family: str, resource_id: Any) -> JSON:
        """DELETE one object. The (usually empty) body is returned as-is."""
        _require_id(family, resource_id)
        log.info("DELETE %s %s", family, resource_id)
        return self.request("DELETE", f"{_plural(family)}/{resource_id}")

    def perform_action(
        self,
        family: str,
        resource_id: Any,
        action: str,
        args: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """POST ``<family>s/<id>/actions/<action>`` and return the action object."""
        _require_id(family, resource_id)
        log.info("ACTION %s %s %s", family, resource_id, action)
        body = dict(args) if args is not None else None
        return self.request_resource(
            "POST", f"{_plural(family)}/{resource_id}/actions/{action}", None, "action", body
        )

    def list_sub_resources(
        self,
        family: str,
        resource_id: Any,
        sub: str,
        filters: Optional[Union[Mapping[str, Any], str]] = None,
    ) -> Any:
        """GET ``<family>s/<id>/<sub>``, e.g. a server's actions or metrics."""
        _require_id(family, resource_id)
        return self.request_resource("GET", f"{_plural(family)}/{resource_id}/{sub}", filters, sub)

    # ---------------- actions ----------------
    def wait_for_action(self, action_id: Any, max_wait_sec: Optional[float] = None) -> Dict[str, Any]:
        """Block until the action leaves ``running``; see :func:`await_action`."""
        budget = self.options.poll_max_wait_sec if max_wait_sec is None else max_wait_sec
        return await_action(self, action_id, budget, interval_sec=self.options.poll_interval_sec)
