from __future__ import annotations

import re
from typing import Any, Mapping, Optional

# Only simple ``{name}`` tokens; RFC 6570 operators like ``{/id}`` or ``{?q}``
# are left for the client to expand.
_TOKEN = re.compile(r"\{(\w+)\}")


def uri_append(left: Optional[str], right: Optional[str]) -> str:
    """Join two URI fragments with exactly one ``/`` between them."""
    uri = left or ""
    if not right:
        return uri
    if right == "/":
        return uri if uri.endswith("/") else uri + "/"
    if uri.endswith("/") and right.startswith("/"):
        return uri + right[1:]
    if uri and not uri.endswith("/") and not right.startswith("/"):
        uri += "/"
    return uri + right


def path_of(mount_point) -> str:
    """Base URI of a mount point joined with its resource name."""
    return uri_append(mount_point.uri, mount_point.resource_name)


def ancestor_chain_uri(endpoint) -> str:
    """Full templated collection URI of an endpoint.

    Each ancestor contributes its own path followed by its ``{id_name}``
    placeholder, outermost ancestor first.
    """
    uri = endpoint.path
    current = endpoint.parent
    while current is not None:
        prefix = current.path
        if current.id_name:
            prefix = uri_append(prefix, "{%s}" % current.id_name)
        uri = uri_append(prefix, uri)
        current = current.parent
    return uri


def expand(template: str, values: Optional[Mapping[str, Any]]) -> str:
    """Substitute ``{name}`` tokens found in ``values``; unknown tokens stay."""
    if not values:
        return template

    def _replace(match: re.Match) -> str:
        value = values.get(match.group(1))
        if value is None or value == "":
            return match.group(0)
        return str(value)

    return _TOKEN.sub(_replace, template)
