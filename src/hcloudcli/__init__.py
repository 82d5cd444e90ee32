"""Hetzner Cloud API client library and expression shell."""

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
from .core.hcloud_client import ClientOptions, HcloudClient, canonical_query_string, unwrap
from .core.poller import await_action, poll_until
from .core.resources import ResourceApi, build_namespace, get_family

__version__ = "0.3.0"

__all__ = [
    "ClientOptions",
    "ConfigError",
    "DecodingError",
    "HcloudClient",
    "HcloudError",
    "MissingIdentifier",
    "PollTimeout",
    "ProtocolViolation",
    "ResourceApi",
    "TransportError",
    "UnsupportedOperation",
    "await_action",
    "build_namespace",
    "canonical_query_string",
    "get_family",
    "poll_until",
    "unwrap",
]
