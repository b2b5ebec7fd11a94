from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import jsonpatch
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from sqlalchemy import and_, column, delete, func, insert, literal_column, select, table, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import quoted_name
from sqlalchemy.types import TypeEngine

from config.settings import settings
from models.hateoas import HALLink
from services.database import get_db, reflect_column_types
from utils.errors import (
    FluentRestError,
    MissingParameter,
    ResourceNotFound,
    UnmappedDatabaseError,
    VerbNotSupported,
    map_database_error,
)
from utils.hateoas import Formatter, FluentResult, hal_formatter, run_formatters
from utils.inflection import InflectPluralizer, Pluralizer
from utils.pagination import paginate
from utils.query_params import (
    ALL_FIELDS,
    RESERVED,
    Direction,
    coerce_value,
    get_filters,
    parse_page,
    parse_page_count,
    parse_sorts,
    select_fields,
)
from utils.uri import ancestor_chain_uri, expand, uri_append

logger = logging.getLogger(__name__)

Router = Union[APIRouter, FastAPI]


# -----------------------------------------------------------------------------
# Small value types
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Verbs:
    """Which HTTP verbs an entity resource answers."""
    get: bool = True
    put: bool = True
    patch: bool = True
    post: bool = True
    delete: bool = True

    def allows(self, method: str) -> bool:
        return bool(getattr(self, method.lower(), False))

    def without(self, verb: str) -> "Verbs":
        return replace(self, **{verb: False})


@dataclass(frozen=True)
class LiteralTable:
    name: str

    def resolve(self, operation: str, request: Optional[Request] = None, id: Any = None) -> str:
        return self.name


@dataclass(frozen=True)
class ResolvedTable:
    """Table chosen per request by ``fn(operation, request, id)``."""
    fn: Callable[[str, Optional[Request], Any], str]

    def resolve(self, operation: str, request: Optional[Request] = None, id: Any = None) -> str:
        return self.fn(operation, request, id)


TableRef = Union[LiteralTable, ResolvedTable]


def table_ref(entity: Union[str, TableRef, Callable]) -> TableRef:
    if isinstance(entity, (LiteralTable, ResolvedTable)):
        return entity
    if isinstance(entity, str):
        return LiteralTable(entity)
    if callable(entity):
        return ResolvedTable(entity)
    raise TypeError(f"entity must be a table name or a resolver, got {entity!r}")


def is_db_function(name: Optional[str]) -> bool:
    return bool(name) and "(" in name and ")" in name


def from_clause(name: str, *columns):
    """Lightweight table construct; function calls are rendered verbatim."""
    if is_db_function(name):
        return table(quoted_name(name, quote=False), *columns)
    schema, _, table_name = name.rpartition(".")
    return table(table_name, *columns, schema=schema or None)


def projection(fields) -> list:
    if fields == ALL_FIELDS:
        return [literal_column("*")]
    return [column(f) for f in fields]


# -----------------------------------------------------------------------------
# Endpoint
# -----------------------------------------------------------------------------
class Endpoint:
    """A finalized resource: its path, id parameter and outbound links.

    ``links`` is append-only and only grows while the tree is being built.
    """

    def __init__(self, name: Optional[str], path: str, id_name: Optional[str],
                 router: Router, parent: Optional["Endpoint"] = None,
                 description: Optional[str] = None):
        self._name = name
        self._path = path
        self._id_name = id_name
        self._router = router
        self._parent = parent
        self._description = description
        self._links: List[HALLink] = []

    @property
    def name(self) -> Optional[str]:
        return self._name

    @property
    def path(self) -> str:
        return self._path

    @property
    def id_name(self) -> Optional[str]:
        return self._id_name

    @property
    def router(self) -> Router:
        return self._router

    @property
    def parent(self) -> Optional["Endpoint"]:
        return self._parent

    @property
    def description(self) -> Optional[str]:
        return self._description

    @property
    def links(self) -> List[HALLink]:
        return self._links

    @property
    def uri(self) -> str:
        return ancestor_chain_uri(self)

    @property
    def link_template(self) -> str:
        if self._id_name:
            return f"{self.uri}{{/{self._id_name}}}"
        return uri_append(self.uri, "/")

    def __repr__(self) -> str:
        return f"Endpoint({self._name!r}, {self.uri!r})"


# -----------------------------------------------------------------------------
# Entity builder
# -----------------------------------------------------------------------------
class ConstraintBuilder:
    def __init__(self, name: str, entity: "EntityBuilder"):
        self._name = name
        self._entity = entity
        self._error: Optional[str] = None
        self._status_code = 409

    @property
    def name(self) -> str:
        return self._name

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def entity(self) -> "EntityBuilder":
        return self._entity

    def throws_error(self, error: str, status_code: int = 409) -> "EntityBuilder":
        self._error = error
        self._status_code = status_code
        return self._entity


class FullTextBuilder:
    def __init__(self, name: str, entity: "EntityBuilder"):
        self._name = name
        self._entity = entity
        self._field = "document"

    @property
    def name(self) -> str:
        return self._name

    @property
    def field(self) -> str:
        return self._field

    @property
    def entity(self) -> "EntityBuilder":
        return self._entity

    def use_field(self, field: str) -> "EntityBuilder":
        self._field = field
        return self._entity


class EntityBuilder:
    """CRUD routes over one table (or view, or set-returning function)."""

    def __init__(self, resource: "ResourceBuilder", entity, db: Callable = get_db):
        self._resource = resource
        self._table = table_ref(entity)
        self._db = db
        self._verbs = Verbs()
        self._primary_key = "id"
        self._foreign_key: Optional[str] = None
        self._reserved = set(RESERVED)
        self._constraints: Dict[str, ConstraintBuilder] = {}
        self._full_text: Optional[FullTextBuilder] = None
        self._column_types: Dict[str, Dict[str, TypeEngine]] = {}

        # set by endpoint()
        self._endpoint: Optional[Endpoint] = None
        self._fk: Optional[str] = None
        self._fk_param: Optional[str] = None

    @property
    def resource(self) -> "ResourceBuilder":
        return self._resource

    @property
    def verbs(self) -> Verbs:
        return self._verbs

    def disable_get(self) -> "EntityBuilder":
        self._verbs = self._verbs.without("get")
        return self

    def disable_put(self) -> "EntityBuilder":
        self._verbs = self._verbs.without("put")
        return self

    def disable_patch(self) -> "EntityBuilder":
        self._verbs = self._verbs.without("patch")
        return self

    def disable_post(self) -> "EntityBuilder":
        self._verbs = self._verbs.without("post")
        return self

    def disable_delete(self) -> "EntityBuilder":
        self._verbs = self._verbs.without("delete")
        return self

    def primary_key(self, pk: str) -> "EntityBuilder":
        self._primary_key = pk
        return self

    def foreign_key(self, fk: str) -> "EntityBuilder":
        self._foreign_key = fk
        return self

    def reserve(self, name: str) -> "EntityBuilder":
        self._reserved.add(name)
        return self

    def for_constraint(self, name: str) -> ConstraintBuilder:
        builder = ConstraintBuilder(name, self)
        self._constraints[name] = builder
        return builder

    def for_full_text(self, name: str) -> FullTextBuilder:
        self._full_text = FullTextBuilder(name, self)
        return self._full_text

    def entity(self, operation: str, request: Optional[Request] = None, id: Any = None) -> str:
        return self._table.resolve(operation, request, id)

    # -------------------------------------------------------------------------
    # URIs
    # -------------------------------------------------------------------------
    def _collection_uri(self, request: Request) -> str:
        return uri_append(expand(self._endpoint.uri, request.path_params), "/")

    def _item_uri(self, request: Request, id: Any) -> str:
        return uri_append(uri_append(expand(self._endpoint.uri, request.path_params), str(id)), "/")

    # -------------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------------
    async def _types(self, db: AsyncSession, entity_name: str) -> Dict[str, TypeEngine]:
        """Reflected column types of ``entity_name``, looked up once per name."""
        if is_db_function(entity_name):
            return {}
        types = self._column_types.get(entity_name)
        if types is None:
            types = await reflect_column_types(db, entity_name)
            self._column_types[entity_name] = types
        return types

    @staticmethod
    def _equals(name: str, value: Any, types: Dict[str, TypeEngine]):
        type_ = types.get(name)
        return column(name, type_) == coerce_value(name, value, type_)

    @staticmethod
    def _coerce_row(values: dict, types: Dict[str, TypeEngine]) -> dict:
        return {k: coerce_value(k, v, types.get(k)) for k, v in values.items()}

    def _parent_conditions(self, request: Request, types: Dict[str, TypeEngine]) -> list:
        if not self._fk:
            return []
        return [self._equals(self._fk, request.path_params.get(self._fk_param), types)]

    def _key_conditions(self, request: Request, id: Any, types: Dict[str, TypeEngine]) -> list:
        return [self._equals(self._primary_key, id, types)] + self._parent_conditions(request, types)

    async def _find_by_id(self, request: Request, db: AsyncSession, id: Any, fields=None) -> dict:
        if fields is None:
            fields = select_fields(request.query_params.get("fields"))
        entity_name = self.entity("get-id", request, id)
        types = await self._types(db, entity_name)
        query = (
            select(*projection(fields))
            .select_from(from_clause(entity_name))
            .where(and_(*self._key_conditions(request, id, types)))
        )
        logger.debug(f"{self._endpoint.name}: {query}")
        rows = (await db.execute(query)).mappings().all()
        if not rows:
            raise ResourceNotFound(f"No resource exists at {self._item_uri(request, id)}.")
        if len(rows) > 1:
            raise ResourceNotFound(
                f"More than one resource exists at {self._item_uri(request, id)} "
                f"where only one should exist.")
        return dict(rows[0])

    async def _update(self, request: Request, db: AsyncSession, id: Any, values: dict, operation: str) -> dict:
        entity_name = self.entity(operation, request, id)
        types = await self._types(db, entity_name)
        fields = select_fields(request.query_params.get("fields"))
        conditions = and_(*self._key_conditions(request, id, types))
        if is_db_function(entity_name):
            statement = select(*projection(fields)).select_from(from_clause(entity_name)).where(conditions)
        else:
            if not values:
                raise FluentRestError("The request body must not be empty.", 400)
            values = self._coerce_row(values, types)
            statement = (
                update(from_clause(entity_name, *[column(k, types.get(k)) for k in values]))
                .where(conditions)
                .values(**values)
                .returning(*projection(fields))
            )
        logger.debug(f"{self._endpoint.name}: {statement}")
        row = (await db.execute(statement)).mappings().first()
        await db.commit()
        if row is None:
            raise ResourceNotFound(
                f"No resource exists at {self._item_uri(request, id)} "
                f"or the optimistic lock value did not match.")
        return dict(row)

    @staticmethod
    async def _json_body(request: Request, allowed=(dict,)):
        try:
            body = await request.json()
        except ValueError:
            raise FluentRestError("The request body is not valid JSON.", 400)
        if not isinstance(body, allowed):
            raise FluentRestError("The request body has an unsupported shape.", 400)
        return body

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------
    async def _get_collection(self, request: Request, db: AsyncSession,
                              named_query: Optional[str] = None) -> FluentResult:
        mp = self.resource.mount_point
        query_params = dict(request.query_params)
        if named_query is not None:
            query_params.update(self.resource.named_queries[named_query])

        fields = select_fields(query_params.get("fields"))
        conditions = []
        q = query_params.get("q")
        if self._full_text and q:
            source_name = self._full_text.name
            conditions.append(column(self._full_text.field).match(q))
        else:
            source_name = self.entity("get", request)
        source = from_clause(source_name)
        types = await self._types(db, source_name)

        filters = get_filters(query_params, self._reserved)
        conditions.extend(self._equals(k, v, types) for k, v in filters.items())
        conditions.extend(self._parent_conditions(request, types))

        query = select(*projection(fields)).select_from(source)
        count_query = select(func.count().label("c")).select_from(source)
        if conditions:
            query = query.where(and_(*conditions))
            count_query = count_query.where(and_(*conditions))

        for key in parse_sorts(query_params.get("sort")):
            col = column(key.column)
            query = query.order_by(col.desc() if key.direction is Direction.DESC else col.asc())

        page_count = parse_page_count(query_params.get("page_count"), self.resource.page_count)
        page = parse_page(query_params.get("page"))
        query = query.offset(page * page_count).limit(page_count)

        uri = self._item_uri(request, named_query) if named_query else self._collection_uri(request)
        result = FluentResult(name=mp.resource_name, uri=uri, collection=True)

        if not self.resource.pagination:
            logger.debug(f"{self._endpoint.name}: {query}")
            result.rows = [dict(r) for r in (await db.execute(query)).mappings().all()]
            result.links = list(self._endpoint.links)
            return result

        total_count = (await db.execute(count_query)).scalar_one() or 0
        page_links, pagination = paginate(uri, total_count, page, page_count)
        logger.debug(f"{self._endpoint.name}: {query}")
        result.rows = [dict(r) for r in (await db.execute(query)).mappings().all()]
        result.links = page_links + list(self._endpoint.links)
        result.pagination = pagination
        result.headers["X-Total-Count"] = str(total_count)
        return result

    async def _get(self, request: Request, db: AsyncSession) -> FluentResult:
        id = request.path_params.get(self._endpoint.id_name)
        if id is None:
            return await self._get_collection(request, db)
        if id in self.resource.named_queries:
            return await self._get_collection(request, db, named_query=id)
        row = await self._find_by_id(request, db, id)
        return FluentResult(
            rows=[row],
            name=self.resource.mount_point.resource_name,
            links=list(self._endpoint.links),
            uri=self._item_uri(request, id),
        )

    async def _put(self, request: Request, db: AsyncSession) -> FluentResult:
        id = self._required_id(request)
        body = await self._json_body(request)
        row = await self._update(request, db, id, body, "put")
        return FluentResult(
            rows=[row],
            name=self.resource.mount_point.resource_name,
            uri=self._item_uri(request, id),
        )

    async def _patch(self, request: Request, db: AsyncSession) -> FluentResult:
        id = self._required_id(request)
        body = await self._json_body(request, allowed=(dict, list))
        if isinstance(body, list):
            current = await self._find_by_id(request, db, id, fields=ALL_FIELDS)
            try:
                patched = jsonpatch.apply_patch(current, body)
            except (jsonpatch.JsonPatchException, jsonpatch.JsonPointerException) as e:
                raise FluentRestError(f"The JSON patch could not be applied: {e}", 400)
            patched.pop(self._primary_key, None)
            body = patched
        row = await self._update(request, db, id, body, "patch")
        return FluentResult(
            rows=[row],
            name=self.resource.mount_point.resource_name,
            uri=self._item_uri(request, id),
        )

    async def _post(self, request: Request, db: AsyncSession) -> FluentResult:
        body = await self._json_body(request)
        if self._fk:
            body[self._fk] = request.path_params.get(self._fk_param)

        entity_name = self.entity("post", request)
        types = await self._types(db, entity_name)
        fields = select_fields(request.query_params.get("fields"))
        if is_db_function(entity_name):
            statement = select(*projection(fields)).select_from(from_clause(entity_name))
        else:
            body = self._coerce_row(body, types)
            statement = insert(from_clause(entity_name, *[column(k, types.get(k)) for k in body]))
            if body:
                statement = statement.values(**body)
            statement = statement.returning(*projection(fields))
        logger.debug(f"{self._endpoint.name}: {statement}")
        row = (await db.execute(statement)).mappings().first()
        await db.commit()

        row = dict(row) if row is not None else {}
        id = row.get(self._primary_key)
        return FluentResult(
            rows=[row],
            name=self.resource.mount_point.resource_name,
            status_code=201,
            uri=self._item_uri(request, id) if id is not None else self._collection_uri(request),
        )

    async def _delete(self, request: Request, db: AsyncSession) -> FluentResult:
        id = request.path_params.get(self._endpoint.id_name)
        entity_name = self.entity("delete", request, id)
        types = await self._types(db, entity_name)
        if id is None:
            filters = get_filters(request.query_params, self._reserved)
            conditions = [self._equals(k, v, types) for k, v in filters.items()]
            conditions.extend(self._parent_conditions(request, types))
            uri = self._collection_uri(request)
        else:
            conditions = self._key_conditions(request, id, types)
            uri = self._item_uri(request, id)

        statement = delete(from_clause(entity_name))
        if conditions:
            statement = statement.where(and_(*conditions))
        logger.debug(f"{self._endpoint.name}: {statement}")
        await db.execute(statement)
        await db.commit()
        return FluentResult(name=self.resource.mount_point.resource_name, status_code=204, uri=uri)

    def _required_id(self, request: Request) -> str:
        id = request.path_params.get(self._endpoint.id_name)
        if not id:
            raise MissingParameter(self._endpoint.id_name)
        return id

    async def _dispatch(self, request: Request, db: AsyncSession,
                        action: Callable[[Request, AsyncSession], Awaitable[FluentResult]]) -> Response:
        name = self.resource.mount_point.resource_name
        if not self._verbs.allows(request.method):
            result = FluentResult(error=VerbNotSupported(request.method), name=name,
                                  uri=self._collection_uri(request))
        else:
            try:
                result = await action(request, db)
            except FluentRestError as e:
                result = FluentResult(error=e, name=name, links=list(self._endpoint.links),
                                      uri=self._collection_uri(request))
            except SQLAlchemyError as e:
                await db.rollback()
                error = map_database_error(e, self._constraints)
                if isinstance(error, UnmappedDatabaseError):
                    logger.error(f"{request.method} {request.url.path} failed: {e}", exc_info=True)
                else:
                    logger.warning(f"{request.method} {request.url.path}: {error.message}")
                result = FluentResult(error=error, name=name, uri=self._collection_uri(request))
        return self.resource.mount_point.rest_service.respond(request, result)

    # -------------------------------------------------------------------------
    # Finalize
    # -------------------------------------------------------------------------
    def endpoint(self) -> Endpoint:
        mp = self.resource.mount_point
        id_name = f"{mp.singular_resource_name}_id"
        ep = self.resource.make_endpoint(id_name)
        self._endpoint = ep

        if mp.parent is not None and mp.parent.id_name:
            self._fk = self._foreign_key or mp.parent.id_name
            self._fk_param = mp.parent.id_name

        if self._full_text is not None:
            ep.links.append(HALLink(
                name=f"{mp.singular_resource_name}_search",
                href=f"{ep.uri}/{{?q}}",
                templated=True,
            ))

        db_dependency = self._db

        async def get_handler(request: Request, db: AsyncSession = Depends(db_dependency)):
            return await self._dispatch(request, db, self._get)

        async def put_handler(request: Request, db: AsyncSession = Depends(db_dependency)):
            return await self._dispatch(request, db, self._put)

        async def patch_handler(request: Request, db: AsyncSession = Depends(db_dependency)):
            return await self._dispatch(request, db, self._patch)

        async def post_handler(request: Request, db: AsyncSession = Depends(db_dependency)):
            return await self._dispatch(request, db, self._post)

        async def delete_handler(request: Request, db: AsyncSession = Depends(db_dependency)):
            return await self._dispatch(request, db, self._delete)

        collection_path = uri_append(ep.uri, "/")
        item_path = f"{ep.uri}/{{{id_name}}}"
        routes = [
            (collection_path, get_handler, "GET", f"list_{mp.resource_name}"),
            (item_path, get_handler, "GET", f"get_{mp.singular_resource_name}"),
            (item_path, put_handler, "PUT", f"update_{mp.singular_resource_name}"),
            (collection_path, put_handler, "PUT", None),
            (item_path, patch_handler, "PATCH", f"patch_{mp.singular_resource_name}"),
            (collection_path, patch_handler, "PATCH", None),
            (collection_path, post_handler, "POST", f"create_{mp.singular_resource_name}"),
            (collection_path, delete_handler, "DELETE", f"delete_{mp.resource_name}"),
            (item_path, delete_handler, "DELETE", f"delete_{mp.singular_resource_name}"),
        ]
        for path, handler, method, route_name in routes:
            mp.router.add_api_route(
                path,
                handler,
                methods=[method],
                name=route_name,
                include_in_schema=route_name is not None,
                tags=[mp.resource_name],
            )
            logger.debug(f"Registered {method} {path}")

        self.resource.register_with_parent(ep, f"{ep.uri}{{/{id_name}}}")
        return ep


# -----------------------------------------------------------------------------
# Verbs, endpoint listings
# -----------------------------------------------------------------------------
class VerbsBuilder:
    """Mounts caller-supplied FastAPI handlers at the resource's URI."""

    def __init__(self, resource: "ResourceBuilder"):
        self._resource = resource
        self._handlers: Dict[str, Callable] = {}
        self._links: List[HALLink] = []

    @property
    def resource(self) -> "ResourceBuilder":
        return self._resource

    def on_get(self, handler: Callable) -> "VerbsBuilder":
        self._handlers["GET"] = handler
        return self

    def on_put(self, handler: Callable) -> "VerbsBuilder":
        self._handlers["PUT"] = handler
        return self

    def on_patch(self, handler: Callable) -> "VerbsBuilder":
        self._handlers["PATCH"] = handler
        return self

    def on_post(self, handler: Callable) -> "VerbsBuilder":
        self._handlers["POST"] = handler
        return self

    def on_delete(self, handler: Callable) -> "VerbsBuilder":
        self._handlers["DELETE"] = handler
        return self

    def links(self, links: Sequence[HALLink]) -> "VerbsBuilder":
        self._links = list(links)
        return self

    def endpoint(self) -> Endpoint:
        mp = self.resource.mount_point
        ep = self.resource.make_endpoint(None)
        ep.links.extend(self._links)

        path = uri_append(ep.uri, "/")
        for method, handler in self._handlers.items():
            mp.router.add_api_route(path, handler, methods=[method])
            logger.debug(f"Registered {method} {path}")

        self.resource.register_with_parent(ep, path)
        return ep


class EndpointsBuilder:
    """A navigation resource whose only content is links to other endpoints."""

    def __init__(self, endpoints: Sequence[Endpoint], resource: "ResourceBuilder"):
        self._endpoints = list(endpoints)
        self._resource = resource

    @property
    def resource(self) -> "ResourceBuilder":
        return self._resource

    @property
    def endpoints(self) -> List[Endpoint]:
        return self._endpoints

    def endpoint(self) -> Endpoint:
        mp = self.resource.mount_point
        ep = self.resource.make_endpoint(None)
        path = uri_append(ep.uri, "/")

        async def list_endpoints(request: Request):
            links = [
                HALLink(name=x.name, href=x.link_template, templated=True, title=x.description)
                for x in self._endpoints
            ]
            result = FluentResult(
                name=mp.resource_name,
                links=links + list(ep.links),
                uri=uri_append(expand(ep.uri, request.path_params), "/"),
            )
            return mp.rest_service.respond(request, result)

        mp.router.add_api_route(path, list_endpoints, methods=["GET"], name=f"list_{mp.resource_name}")
        logger.debug(f"Registered GET {path}")

        self.resource.register_with_parent(ep, path)
        return ep


# -----------------------------------------------------------------------------
# Resource / mount point / service
# -----------------------------------------------------------------------------
class ResourceBuilder:
    def __init__(self, mount_point: "MountPointBuilder"):
        self._mount_point = mount_point
        self._page_size = settings.DEFAULT_PAGE_SIZE
        self._description: Optional[str] = None
        self._named_queries: Dict[str, Dict[str, str]] = {}
        self._supports_pagination = True

    @property
    def mount_point(self) -> "MountPointBuilder":
        return self._mount_point

    @property
    def pagination(self) -> bool:
        return self._supports_pagination

    @property
    def page_count(self) -> int:
        return self._page_size

    @property
    def named_queries(self) -> Dict[str, Dict[str, str]]:
        return self._named_queries

    def get_description(self) -> Optional[str]:
        return self._description

    def page_size(self, size: int) -> "ResourceBuilder":
        if size < 1:
            raise ValueError("page size must be at least 1")
        self._page_size = size
        return self

    def named_query(self, name: str, params: Dict[str, Any]) -> "ResourceBuilder":
        self._named_queries[name] = {k: str(v) for k, v in params.items()}
        return self

    def description(self, description: str) -> "ResourceBuilder":
        self._description = description
        return self

    def supports_pagination(self, flag: bool) -> "ResourceBuilder":
        self._supports_pagination = flag
        return self

    def for_entity(self, entity, db: Callable = get_db) -> EntityBuilder:
        return EntityBuilder(self, entity, db)

    def for_verbs(self) -> VerbsBuilder:
        return VerbsBuilder(self)

    def for_endpoints(self, endpoints: Sequence[Endpoint]) -> EndpointsBuilder:
        self._supports_pagination = False
        return EndpointsBuilder(endpoints, self)

    def for_router(self, router: APIRouter) -> Endpoint:
        self._supports_pagination = False
        mp = self.mount_point
        ep = self.make_endpoint(None)
        mp.router.include_router(router, prefix=ep.uri)
        logger.debug(f"Included router at {ep.uri}")
        self.register_with_parent(ep, uri_append(ep.uri, "/"))
        return ep

    def make_endpoint(self, id_name: Optional[str]) -> Endpoint:
        mp = self.mount_point
        return Endpoint(
            mp.resource_name,
            mp.path,
            id_name,
            mp.router,
            parent=mp.parent,
            description=self._description,
        )

    def register_with_parent(self, ep: Endpoint, href: str) -> None:
        if ep.parent is None:
            return
        ep.parent.links.append(HALLink(
            name=ep.name,
            href=href,
            templated="{" in href,
            title=ep.description,
        ))
        logger.debug(f"Linked {ep.name} from {ep.parent.name}: {href}")


class MountPointBuilder:
    def __init__(self, router: Router, uri: Optional[str], rest_service: "RestServiceBuilder",
                 parent: Optional[Endpoint] = None):
        self._router = router
        self._uri = uri or "/"
        self._rest_service = rest_service
        self._parent = parent
        self._resource_name: Optional[str] = None

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def router(self) -> Router:
        return self._router

    @property
    def parent(self) -> Optional[Endpoint]:
        return self._parent

    @property
    def rest_service(self) -> "RestServiceBuilder":
        return self._rest_service

    @property
    def resource_name(self) -> Optional[str]:
        return self._resource_name

    @property
    def singular_resource_name(self) -> str:
        return self._rest_service.pluralizer.singular(self._resource_name)

    @property
    def path(self) -> str:
        return uri_append(self._uri, self._resource_name)

    def chain_uri(self) -> str:
        """Templated URI the resource will be served at, parents included."""
        return ancestor_chain_uri(self)

    def resource(self, name: str) -> ResourceBuilder:
        self._resource_name = name
        return ResourceBuilder(self)


class RestServiceBuilder:
    """Entry point of the DSL; holds the formatter chain and pluralizer."""

    def __init__(self, pluralizer: Optional[Pluralizer] = None):
        self._formatters: List[Formatter] = []
        self._pluralizer = pluralizer or InflectPluralizer()
        self._version = settings.API_VERSION
        self._version_header = settings.API_VERSION_HEADER

    @property
    def formatters(self) -> List[Formatter]:
        return self._formatters

    @property
    def pluralizer(self) -> Pluralizer:
        return self._pluralizer

    def use(self, formatter: Formatter) -> "RestServiceBuilder":
        self._formatters.append(formatter)
        return self

    def version(self, version: str) -> "RestServiceBuilder":
        self._version = version
        return self

    def version_header(self, name: str) -> "RestServiceBuilder":
        self._version_header = name
        return self

    def add_plural_rule(self, rule, result: str) -> "RestServiceBuilder":
        self._pluralizer.add_plural_rule(rule, result)
        return self

    def add_singular_rule(self, rule, result: str) -> "RestServiceBuilder":
        self._pluralizer.add_singular_rule(rule, result)
        return self

    def add_irregular_rule(self, singular: str, plural: str) -> "RestServiceBuilder":
        self._pluralizer.add_irregular_rule(singular, plural)
        return self

    def add_uncountable_rule(self, word: str) -> "RestServiceBuilder":
        self._pluralizer.add_uncountable_rule(word)
        return self

    def mount_at(self, target: Union[Router, Endpoint], uri: str = "/") -> MountPointBuilder:
        """Mount under a router, or nest under an already finalized endpoint."""
        if isinstance(target, Endpoint):
            return MountPointBuilder(target.router, uri, self, parent=target)
        return MountPointBuilder(target, uri, self)

    def respond(self, request: Request, result: FluentResult) -> Response:
        formatters = self._formatters or [hal_formatter]
        return run_formatters(formatters, request, result, self._version_header, self._version)
