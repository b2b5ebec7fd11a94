from __future__ import annotations

import json
import logging
import types
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence
from urllib.parse import urljoin

import httpx
from uritemplate import expand as expand_template

from utils.hateoas import HAL_JSON
from utils.inflection import InflectPluralizer, Pluralizer

logger = logging.getLogger(__name__)


class ClientError(Exception):
    """Raised for a misused client: disabled action, missing argument, broken link."""


class ClientResult(NamedTuple):
    response: httpx.Response
    resource: dict


def _json(response: Optional[httpx.Response]) -> dict:
    if response is None or not response.content:
        return {}
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


@dataclass(frozen=True)
class Actions:
    find: bool = True
    create: bool = True
    update: bool = True
    patch: bool = True
    delete: bool = True
    find_by_id: bool = True
    delete_by_id: bool = True
    find_by_named_query: bool = True

    def without(self, action: str) -> "Actions":
        return replace(self, **{action: False})

    @classmethod
    def none(cls) -> "Actions":
        return cls(**{f.name: False for f in fields(cls)})


# -----------------------------------------------------------------------------
# HAL client
# -----------------------------------------------------------------------------
class HalClient:
    """Async client that walks HAL ``_links`` from an entry URI."""

    def __init__(self, pluralizer: Optional[Pluralizer] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 headers: Optional[Dict[str, str]] = None):
        self._uri: Optional[str] = None
        self._http: Optional[httpx.AsyncClient] = None
        self._transport = transport
        self._headers = {"Accept": HAL_JSON, "Content-Type": "application/json"}
        self._headers.update(headers or {})
        self._pluralizer = pluralizer or InflectPluralizer()

    def from_uri(self, uri: str) -> "HalClient":
        self._uri = uri
        self._http = httpx.AsyncClient(
            transport=self._transport,
            headers=self._headers,
            follow_redirects=True,
        )
        return self

    @property
    def uri(self) -> Optional[str]:
        return self._uri

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            raise ClientError("Call from_uri() before issuing requests.")
        return self._http

    @property
    def pluralizer(self) -> Pluralizer:
        return self._pluralizer

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()

    async def __aenter__(self) -> "HalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def root(self) -> ClientResult:
        response = await self.http.get(self._uri)
        return ClientResult(response, _json(response))

    async def resource_at(self, href: str, params: Optional[Dict[str, Any]] = None) -> ClientResult:
        target = urljoin(self._uri, expand_template(href, params or {}))
        response = await self.http.get(target)
        return ClientResult(response, _json(response))

    async def follow(self, names: Sequence[str], params: Dict[str, Any]) -> str:
        """Resolve the href reached by following ``names`` from the entry URI."""
        href = self._uri
        for name in names:
            response = await self.http.get(href)
            response.raise_for_status()
            link = _json(response).get("_links", {}).get(name)
            if isinstance(link, list):
                link = link[0] if link else None
            if not link or "href" not in link:
                raise ClientError(f"The resource at {response.url} has no '{name}' link.")
            target = link["href"]
            if link.get("templated"):
                target = expand_template(target, params)
            href = urljoin(str(response.url), target)
            logger.debug(f"Followed '{name}' to {href}")
        return href

    async def send(self, method: str, names: Sequence[str], template_params: Dict[str, Any],
                   collection: bool = False, **options) -> ClientResult:
        """Follow ``names``, then issue ``method``; ``options`` go to httpx as is."""
        href = await self.follow(names, template_params)
        if collection and not href.endswith("/") and "?" not in href:
            href += "/"
        response = await self.http.request(method, href, **options)
        return ClientResult(response, _json(response))


# -----------------------------------------------------------------------------
# Resource proxies
# -----------------------------------------------------------------------------
def add_child_accessors(client: HalClient, parent: Any, children: Sequence["ClientResourceBuilder"]) -> None:
    """Attach ``parent.<plural>()`` and ``parent.<singular>(id)`` for each child."""
    for child in children:
        singular = client.pluralizer.singular(child.name)

        def collection(*args, _child=child, _singular=singular):
            if args:
                raise ClientError(
                    f"The access method {_child.name}() does not accept parameters. "
                    f"Did you mean to invoke {_singular}(id) instead?")
            proxy = ResourceProxy(client, _child.name, parent, _child.actions, _child.methods)
            add_child_accessors(client, proxy, _child.children)
            return proxy

        def instance(id, _child=child):
            if id is None or id == "":
                raise ClientError("The 'id' parameter is required.")
            proxy = ResourceProxy(client, _child.name, parent, _child.actions, _child.methods, parent_id=id)
            add_child_accessors(client, proxy, _child.children)
            return proxy

        if singular == child.name:
            # uncountable names share one accessor: health() and health(id)
            def either(*args, _name=child.name, _collection=collection, _instance=instance):
                if not args:
                    return _collection()
                if len(args) > 1:
                    raise ClientError(f"The access method {_name}() takes at most one id.")
                return _instance(args[0])

            setattr(parent, child.name, either)
        else:
            setattr(parent, child.name, collection)
            setattr(parent, singular, instance)


class ResourceProxy:
    """One position in the resource tree, addressed by following HAL links."""

    def __init__(self, client: HalClient, name: str, parent: Any = None,
                 actions: Optional[Actions] = None,
                 methods: Sequence[tuple] = (), parent_id: Any = None):
        self._client = client
        self._name = name
        self._parent = parent
        self._actions = actions or Actions()
        self._parent_id = parent_id
        self._singular_name = client.pluralizer.singular(name)
        self._id_name = f"{self._singular_name}_id"

        self._follow_names: List[str] = []
        self._template_params: Dict[str, Any] = {}
        current = self
        while isinstance(current, ResourceProxy):
            self._follow_names.insert(0, current.name)
            if current.parent_id is not None:
                self._template_params[current.id_name] = current.parent_id
            current = current.parent

        for method_name, func in methods:
            setattr(self, method_name, types.MethodType(func, self))

    @property
    def name(self) -> str:
        return self._name

    @property
    def client(self) -> HalClient:
        return self._client

    @property
    def parent(self) -> Any:
        return self._parent

    @property
    def parent_id(self) -> Any:
        return self._parent_id

    @property
    def id_name(self) -> str:
        return self._id_name

    @property
    def singular_name(self) -> str:
        return self._singular_name

    @property
    def follow_names(self) -> List[str]:
        return list(self._follow_names)

    @property
    def template_params(self) -> Dict[str, Any]:
        return dict(self._template_params)

    def _throw_if_disabled(self, action: str) -> None:
        if not getattr(self._actions, action):
            raise ClientError(f"This resource does not permit '{action}'.")

    def _with_id(self, id: Any) -> Dict[str, Any]:
        if id is None or id == "":
            raise ClientError("The 'id' parameter is required.")
        params = self.template_params
        params[self._id_name] = id
        return params

    async def find(self, params: Optional[Dict[str, Any]] = None, **options) -> ClientResult:
        self._throw_if_disabled("find")
        query = {
            k: ",".join(str(x) for x in v) if isinstance(v, (list, tuple)) else v
            for k, v in (params or {}).items()
        }
        return await self._client.send("GET", self._follow_names, template_params=self.template_params,
                                       collection=self._parent_id is None, params=query, **options)

    async def create(self, data: Dict[str, Any], **options) -> ClientResult:
        self._throw_if_disabled("create")
        if not data:
            raise ClientError("The 'data' parameter is required.")
        return await self._client.send("POST", self._follow_names, template_params=self.template_params,
                                       collection=True, json=data, **options)

    async def find_by_id(self, id: Any, **options) -> ClientResult:
        self._throw_if_disabled("find_by_id")
        return await self._client.send("GET", self._follow_names, template_params=self._with_id(id), **options)

    async def update(self, id: Any, data: Dict[str, Any], **options) -> ClientResult:
        self._throw_if_disabled("update")
        params = self._with_id(id)
        if not data:
            raise ClientError("The 'data' parameter is required.")
        return await self._client.send("PUT", self._follow_names, template_params=params, json=data, **options)

    async def patch(self, id: Any, data, **options) -> ClientResult:
        self._throw_if_disabled("patch")
        params = self._with_id(id)
        if not data:
            raise ClientError("The 'data' parameter is required.")
        return await self._client.send("PATCH", self._follow_names, template_params=params, json=data, **options)

    async def delete(self, filters: Optional[Dict[str, Any]] = None, **options) -> ClientResult:
        self._throw_if_disabled("delete")
        return await self._client.send("DELETE", self._follow_names, template_params=self.template_params,
                                       collection=True, params=filters or {}, **options)

    async def delete_by_id(self, id: Any, **options) -> ClientResult:
        self._throw_if_disabled("delete_by_id")
        return await self._client.send("DELETE", self._follow_names, template_params=self._with_id(id), **options)

    async def find_by_named_query(self, name: str, **options) -> ClientResult:
        self._throw_if_disabled("find_by_named_query")
        if not name:
            raise ClientError("The 'name' parameter is required.")
        params = self.template_params
        params[self._id_name] = name
        return await self._client.send("GET", self._follow_names, template_params=params, **options)


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------
class ClientResourceBuilder:
    def __init__(self, name: str, parent: Any = None):
        self._name = name
        self._parent = parent
        self._actions = Actions()
        self._methods: List[tuple] = []
        self._children: List["ClientResourceBuilder"] = []
        self._description: Optional[str] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def parent(self) -> Any:
        return self._parent

    @property
    def actions(self) -> Actions:
        return self._actions

    @property
    def methods(self) -> List[tuple]:
        return self._methods

    @property
    def children(self) -> List["ClientResourceBuilder"]:
        return self._children

    def method(self, name: str, func: Callable) -> "ClientResourceBuilder":
        self._methods.append((name, func))
        return self

    def resource(self, name: str) -> "ClientResourceBuilder":
        builder = ClientResourceBuilder(name, self)
        self._children.append(builder)
        return builder

    def description(self, description: str) -> "ClientResourceBuilder":
        self._description = description
        return self

    def disable_all(self) -> "ClientResourceBuilder":
        self._actions = Actions.none()
        return self

    def disable_find(self) -> "ClientResourceBuilder":
        self._actions = self._actions.without("find")
        return self

    def disable_create(self) -> "ClientResourceBuilder":
        self._actions = self._actions.without("create")
        return self

    def disable_update(self) -> "ClientResourceBuilder":
        self._actions = self._actions.without("update")
        return self

    def disable_patch(self) -> "ClientResourceBuilder":
        self._actions = self._actions.without("patch")
        return self

    def disable_delete(self) -> "ClientResourceBuilder":
        self._actions = self._actions.without("delete")
        return self

    def disable_find_by_id(self) -> "ClientResourceBuilder":
        self._actions = self._actions.without("find_by_id")
        return self

    def disable_delete_by_id(self) -> "ClientResourceBuilder":
        self._actions = self._actions.without("delete_by_id")
        return self

    def disable_find_by_named_query(self) -> "ClientResourceBuilder":
        self._actions = self._actions.without("find_by_named_query")
        return self


class RootResourceBuilder:
    def __init__(self, pluralizer: Optional[Pluralizer] = None):
        self._children: List[ClientResourceBuilder] = []
        self._pluralizer = pluralizer

    @property
    def children(self) -> List[ClientResourceBuilder]:
        return self._children

    def resource(self, name: str) -> ClientResourceBuilder:
        builder = ClientResourceBuilder(name, self)
        self._children.append(builder)
        return builder

    def hal(self, transport: Optional[httpx.AsyncBaseTransport] = None,
            headers: Optional[Dict[str, str]] = None) -> HalClient:
        client = HalClient(self._pluralizer, transport=transport, headers=headers)
        add_child_accessors(client, client, self._children)
        return client


class RestClientBuilder:
    def __init__(self, pluralizer: Optional[Pluralizer] = None):
        self._pluralizer = pluralizer

    def root(self) -> RootResourceBuilder:
        return RootResourceBuilder(self._pluralizer)
