"""Resource family registry for hcloudcli.

Each Hetzner Cloud resource family declares itself here once. `ResourceApi`
consumes the table with one generic implementation per operation kind, and
`build_namespace` exposes it to the shell as named callables
(``get_servers``, ``get_server``, ``add_server``, ``do_server_action``, ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from .errors import UnsupportedOperation
from .hcloud_client import HcloudClient
from .logging_setup import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ResourceFamily:
    plural: str                          # collection path and list envelope key
    singular: Optional[str] = None       # one-object envelope key (None: list only)
    writable: bool = False               # update_* / del_*
    creatable: bool = False              # add_*
    create_fields: Tuple[str, ...] = ()  # positional arguments of add_*
    create_defaults: Mapping[str, Any] = field(default_factory=dict)
    actions: FrozenSet[str] = frozenset()
    sub_collections: Tuple[str, ...] = ()
    help: str = ""


def _family(plural: str, singular: Optional[str] = None, **kw: Any) -> ResourceFamily:
    if "actions" in kw:
        kw["actions"] = frozenset(kw["actions"].split())
    return ResourceFamily(plural=plural, singular=singular, **kw)


_FAMILIES: Dict[str, ResourceFamily] = {
    f.plural: f
    for f in (
        _family("actions", "action", help="Asynchronous operations"),
        _family(
            "servers", "server",
            writable=True, creatable=True,
            create_fields=("name", "server_type", "image"),
            actions=(
                "poweron reboot reset shutdown poweroff reset_password "
                "enable_rescue disable_rescue create_image rebuild change_type "
                "enable_backup disable_backup attach_iso detach_iso change_dns_ptr "
                "change_protection request_console attach_to_network "
                "detach_from_network change_alias_ips"
            ),
            sub_collections=("actions", "metrics"),
            help="Cloud servers",
        ),
        _family(
            "floating_ips", "floating_ip",
            writable=True, creatable=True,
            create_defaults={"type": "ipv4"},
            actions="assign unassign change_dns_ptr change_protection",
            sub_collections=("actions",),
            help="Floating IPs",
        ),
        _family(
            "ssh_keys", "ssh_key",
            writable=True, creatable=True,
            create_fields=("name", "public_key"),
            help="SSH public keys",
        ),
        _family(
            "images", "image",
            writable=True,
            actions="change_protection",
            sub_collections=("actions",),
            help="Images, snapshots and backups",
        ),
        _family(
            "volumes", "volume",
            writable=True, creatable=True,
            create_fields=("name", "size"),
            actions="attach detach resize change_protection",
            sub_collections=("actions",),
            help="Block storage volumes",
        ),
        _family(
            "networks", "network",
            writable=True, creatable=True,
            create_fields=("name", "ip_range"),
            actions=(
                "add_subnet delete_subnet add_route delete_route "
                "change_ip_range change_protection"
            ),
            sub_collections=("actions",),
            help="Private networks",
        ),
        _family("locations", "location", help="Locations"),
        _family("datacenters", "datacenter", help="Datacenters"),
        _family("isos", "iso", help="ISO images"),
        _family("server_types", "server_type", help="Server types"),
        _family("pricing", help="Prices of all resources"),
    )
}

_BY_SINGULAR: Dict[str, ResourceFamily] = {f.singular: f for f in _FAMILIES.values() if f.singular}


def get_family(name: str) -> ResourceFamily:
    """Look up a family by plural or singular name."""
    fam = _FAMILIES.get(name) or _BY_SINGULAR.get(name)
    if fam is None:
        raise UnsupportedOperation(f"unknown resource family '{name}'")
    return fam


def iter_families() -> Iterable[ResourceFamily]:
    return _FAMILIES.values()


class ResourceApi:
    """Table-driven operations over :class:`HcloudClient`.

    Every method validates the request against the registry before any
    network call and raises :class:`UnsupportedOperation` otherwise.
    """

    def __init__(self, client: HcloudClient) -> None:
        self.client = client

    @staticmethod
    def _one(name: str, what: str) -> ResourceFamily:
        fam = get_family(name)
        if not fam.singular:
            raise UnsupportedOperation(f"'{fam.plural}' has no single-object {what}")
        return fam

    def list(self, family: str, filters: Any = None) -> Any:
        fam = get_family(family)
        return self.client.list_resources(fam.plural, filters)

    def get(self, family: str, resource_id: Any, filters: Optional[Mapping[str, Any]] = None) -> Any:
        fam = self._one(family, "get")
        return self.client.get_resource(fam.singular, resource_id, filters)

    def create(self, family: str, *args: Any, **fields: Any) -> Any:
        """Create an object from positional `create_fields` plus keyword fields.

        A trailing mapping positional argument carries optional fields, so
        ``create("server", "web1", "cx11", "debian-9", {"ssh_keys": [1]})``
        works like the keyword form.
        """
        fam = get_family(family)
        if not fam.creatable:
            raise UnsupportedOperation(f"'{fam.plural}' cannot be created directly")
        positional = list(args)
        optional: Dict[str, Any] = {}
        if positional and isinstance(positional[-1], Mapping):
            optional = dict(positional.pop())
        if len(positional) > len(fam.create_fields):
            raise UnsupportedOperation(
                f"add_{fam.singular} takes at most {len(fam.create_fields)} positional "
                f"argument(s): {', '.join(fam.create_fields) or 'none'}"
            )
        body: Dict[str, Any] = dict(fam.create_defaults)
        body.update(zip(fam.create_fields, positional))
        body.update(optional)
        body.update(fields)
        missing = [f for f in fam.create_fields if f not in body]
        if missing:
            raise UnsupportedOperation(f"add_{fam.singular}: missing {', '.join(missing)}")
        return self.client.create_resource(fam.singular, body)

    def update(self, family: str, resource_id: Any, changes: Optional[Mapping[str, Any]] = None, **fields: Any) -> Any:
        fam = self._one(family, "update")
        if not fam.writable:
            raise UnsupportedOperation(f"'{fam.plural}' is read-only")
        body = dict(changes or {})
        body.update(fields)
        return self.client.update_resource(fam.singular, resource_id, body)

    def delete(self, family: str, resource_id: Any) -> Any:
        fam = self._one(family, "delete")
        if not fam.writable:
            raise UnsupportedOperation(f"'{fam.plural}' is read-only")
        return self.client.delete_resource(fam.singular, resource_id)

    def action(self, family: str, resource_id: Any, action: str, args: Optional[Mapping[str, Any]] = None, **fields: Any) -> Any:
        fam = self._one(family, "action")
        if action not in fam.actions:
            raise UnsupportedOperation(
                f"unknown {fam.singular} action '{action}'",
                details={"allowed": sorted(fam.actions)},
            )
        body: Optional[Dict[str, Any]] = None
        if args is not None or fields:
            body = dict(args or {})
            body.update(fields)
        return self.client.perform_action(fam.singular, resource_id, action, body)

    def sub_list(self, family: str, resource_id: Any, sub: str, filters: Any = None) -> Any:
        fam = self._one(family, "sub-collection")
        if sub not in fam.sub_collections:
            raise UnsupportedOperation(f"'{fam.plural}' has no '{sub}' collection")
        return self.client.list_sub_resources(fam.singular, resource_id, sub, filters)


# ---------------- shell namespace ----------------

def _named(name: str, doc: str, fn: Callable[..., Any]) -> Callable[..., Any]:
    fn.__name__ = name
    fn.__qualname__ = name
    fn.__doc__ = doc
    return fn


def _accessors(api: ResourceApi, fam: ResourceFamily) -> Dict[str, Callable[..., Any]]:
    out: Dict[str, Callable[..., Any]] = {}
    plural, one = fam.plural, fam.singular

    out[f"get_{plural}"] = _named(
        f"get_{plural}",
        f"get_{plural}(filters=None)\n\n List {fam.help or plural}, e.g. get_{plural}({{'name': 'foo'}})",
        lambda filters=None: api.list(plural, filters),
    )
    if not one:
        return out

    out[f"get_{one}"] = _named(
        f"get_{one}",
        f"get_{one}(id)\n\n Get one {one}",
        lambda resource_id, filters=None: api.get(one, resource_id, filters),
    )
    if fam.writable:
        out[f"update_{one}"] = _named(
            f"update_{one}",
            f"update_{one}(id, {{'name': newname}})\n\n Change fields of a {one}; returns the new object",
            lambda resource_id, changes=None, **fields: api.update(one, resource_id, changes, **fields),
        )
        out[f"del_{one}"] = _named(
            f"del_{one}",
            f"del_{one}(id)\n\n Delete the {one}",
            lambda resource_id: api.delete(one, resource_id),
        )
    if fam.creatable:
        sig = ", ".join(fam.create_fields + ("{optional}",))
        out[f"add_{one}"] = _named(
            f"add_{one}",
            f"add_{one}({sig})\n\n Create a new {one}",
            lambda *args, **fields: api.create(one, *args, **fields),
        )
    if fam.actions:
        out[f"do_{one}_action"] = _named(
            f"do_{one}_action",
            f"do_{one}_action(id, action, {{'arg': 'value'}})\n\n"
            f" Possible actions are\n {' '.join(sorted(fam.actions))}",
            lambda resource_id, action, args=None, **fields: api.action(one, resource_id, action, args, **fields),
        )
    for sub in fam.sub_collections:
        out[f"get_{one}_{sub}"] = _named(
            f"get_{one}_{sub}",
            f"get_{one}_{sub}(id, filters=None)\n\n List {sub} of a {one}",
            lambda resource_id, filters=None, _sub=sub: api.sub_list(one, resource_id, _sub, filters),
        )
    return out


def build_namespace(api: ResourceApi) -> Dict[str, Callable[..., Any]]:
    """Return every generated accessor keyed by its public name."""
    ns: Dict[str, Callable[..., Any]] = {}
    for fam in iter_families():
        ns.update(_accessors(api, fam))
    return ns
