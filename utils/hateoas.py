from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence
from xml.sax.saxutils import escape

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from models.hateoas import HALLink, Pagination
from utils.errors import FluentRestError
from utils.uri import expand

logger = logging.getLogger(__name__)

HAL_JSON = "application/hal+json"
HAL_XML = "application/hal+xml"

_JSON_TYPES = (HAL_JSON, "application/json", "*/*", "application/*")
_XML_TYPES = (HAL_XML, "application/xml")


# -----------------------------------------------------------------------------
# Per-request result
# -----------------------------------------------------------------------------
@dataclass
class FluentResult:
    """What a resource handler produced, before formatting."""
    rows: List[dict] = field(default_factory=list)
    error: Optional[FluentRestError] = None
    links: List[HALLink] = field(default_factory=list)
    name: Optional[str] = None
    uri: Optional[str] = None
    pagination: Optional[Pagination] = None
    status_code: Optional[int] = None
    collection: bool = False
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def effective_status(self) -> int:
        if self.error is not None:
            return self.error.status_code or 500
        return self.status_code or 200


Formatter = Callable[[Request, FluentResult, Optional[Response]], Optional[Response]]


# -----------------------------------------------------------------------------
# Link helpers
# -----------------------------------------------------------------------------
def resolve_links(links: Sequence[HALLink], params) -> List[HALLink]:
    """Copies of ``links`` with ``{param}`` tokens expanded; originals untouched.

    A link stays templated only while some token is left in its href.
    """
    resolved = []
    for link in links:
        href = expand(link.href, params)
        resolved.append(link.model_copy(update={"href": href, "templated": link.templated and "{" in href}))
    return resolved


def group_links(links: Sequence[HALLink]) -> Dict[str, Any]:
    grouped: Dict[str, Any] = {}
    for link in links:
        existing = grouped.get(link.name)
        if existing is None:
            grouped[link.name] = link.to_hal()
        elif isinstance(existing, list):
            existing.append(link.to_hal())
        else:
            grouped[link.name] = [existing, link.to_hal()]
    return grouped


# -----------------------------------------------------------------------------
# HAL+JSON
# -----------------------------------------------------------------------------
def _properties(result: FluentResult) -> dict:
    if result.error is not None:
        return result.error.to_response()
    if result.collection:
        props = {}
        if result.pagination is not None:
            props.update(result.pagination.model_dump())
        return props
    return dict(result.rows[0]) if result.rows else {}


def to_hal_json(result: FluentResult, links: Sequence[HALLink]) -> dict:
    body: Dict[str, Any] = {"_links": {}}
    if result.uri:
        body["_links"]["self"] = {"href": result.uri}
    body["_links"].update(group_links(links))
    body.update(_properties(result))
    if result.error is None and result.collection:
        body["_embedded"] = {result.name or "items": list(result.rows)}
    return jsonable_encoder(body)


# -----------------------------------------------------------------------------
# HAL+XML
# -----------------------------------------------------------------------------
def escape_xml(value: Any) -> str:
    return escape(str(value), {"'": "&apos;", '"': "&quot;"})


def _xml_value(tag: str, value: Any) -> str:
    if isinstance(value, list):
        return "".join(_xml_value(tag, x) for x in value)
    if isinstance(value, dict):
        inner = "".join(_xml_value(k, v) for k, v in value.items())
        return f"<{tag}>{inner}</{tag}>"
    if value is None:
        return f"<{tag}/>"
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f"<{tag}>{escape_xml(value)}</{tag}>"


def _xml_link(link: HALLink) -> str:
    attrs = f'rel="{escape_xml(link.name)}" href="{escape_xml(link.href)}"'
    if link.templated:
        attrs += ' templated="true"'
    return f"<link {attrs}/>"


def to_hal_xml(result: FluentResult, links: Sequence[HALLink]) -> str:
    href = f' href="{escape_xml(result.uri)}"' if result.uri else ""
    parts = [f"<resource{href}>"]
    parts.extend(_xml_link(link) for link in links)
    for key, value in jsonable_encoder(_properties(result)).items():
        parts.append(_xml_value(key, value))
    if result.error is None and result.collection:
        rel = escape_xml(result.name or "items")
        for row in jsonable_encoder(result.rows):
            inner = "".join(_xml_value(k, v) for k, v in row.items())
            parts.append(f'<resource rel="{rel}">{inner}</resource>')
    parts.append("</resource>")
    return '<?xml version="1.0" encoding="UTF-8"?>' + "".join(parts)


# -----------------------------------------------------------------------------
# Formatters
# -----------------------------------------------------------------------------
def _accepted_types(request: Request) -> List[str]:
    accept = request.headers.get("accept")
    if not accept:
        return [HAL_JSON]
    weighted = []
    for position, item in enumerate(accept.split(",")):
        media, _, params = item.strip().partition(";")
        q = 1.0
        for param in params.split(";"):
            key, _, value = param.strip().partition("=")
            if key == "q":
                try:
                    q = float(value)
                except ValueError:
                    q = 0.0
        if q > 0:
            weighted.append((-q, position, media.strip().lower()))
    return [media for _, _, media in sorted(weighted)]


def hal_formatter(request: Request, result: FluentResult, response: Optional[Response]) -> Optional[Response]:
    """Serialize the result as HAL+JSON or HAL+XML depending on ``Accept``."""
    if response is not None:
        return response
    links = resolve_links(result.links, request.path_params)
    for media in _accepted_types(request):
        if media in _XML_TYPES:
            return Response(
                content=to_hal_xml(result, links),
                status_code=result.effective_status,
                media_type=HAL_XML,
            )
        if media in _JSON_TYPES:
            return JSONResponse(
                content=to_hal_json(result, links),
                status_code=result.effective_status,
                media_type=HAL_JSON,
            )
    return None


def links_header_formatter(request: Request, result: FluentResult, response: Optional[Response]) -> Optional[Response]:
    """RFC 8288 ``Link`` header with the result's resolved links."""
    links = resolve_links(result.links, request.path_params)
    if links:
        result.headers["Link"] = ", ".join(
            f'<{link.href}>; rel="{link.name}"' for link in links
        )
    return response


def run_formatters(formatters: Sequence[Formatter], request: Request, result: FluentResult,
                   version_header: Optional[str] = None, version: Optional[str] = None) -> Response:
    response: Optional[Response] = None
    for formatter in formatters:
        response = formatter(request, result, response)

    if response is None:
        logger.debug(f"No formatter accepted '{request.headers.get('accept')}' for {request.url.path}")
        response = Response(status_code=406)

    # 204 must not carry a body
    if result.effective_status == 204:
        response = Response(status_code=204)

    for name, value in result.headers.items():
        response.headers[name] = value
    if version_header and version:
        response.headers[version_header] = version
    return response
