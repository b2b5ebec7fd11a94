import json

from fastapi import Request

from models.hateoas import HALLink, Pagination
from utils.errors import ResourceNotFound
from utils.hateoas import (
    HAL_JSON,
    HAL_XML,
    FluentResult,
    escape_xml,
    group_links,
    hal_formatter,
    links_header_formatter,
    run_formatters,
)


def make_request(accept=None, path_params=None, path="/api/accounts/42"):
    headers = [(b"accept", accept.encode())] if accept else []
    return Request({
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "server": ("test", 80),
        "root_path": "",
        "path": path,
        "query_string": b"",
        "headers": headers,
        "path_params": path_params or {},
    })


ADDRESSES = HALLink(
    name="addresses",
    href="/api/accounts/{account_id}/addresses{/address_id}",
    templated=True,
)


def single_row():
    return FluentResult(
        rows=[{"id": 42, "name": "Alice", "city": None}],
        name="accounts",
        uri="/api/accounts/42/",
        links=[ADDRESSES],
    )


def collection():
    return FluentResult(
        rows=[{"id": 1}, {"id": 2}],
        name="accounts",
        uri="/x/",
        collection=True,
        links=[HALLink(name="next", href="/x/?page=1&page_count=2")],
        pagination=Pagination(total_count=3, number_of_pages=2, page=0, page_count=2),
    )


def test_single_row_becomes_resource_properties():
    request = make_request(path_params={"account_id": "42"})
    response = hal_formatter(request, single_row(), None)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith(HAL_JSON)
    assert json.loads(response.body) == {
        "_links": {
            "self": {"href": "/api/accounts/42/"},
            "addresses": {"href": "/api/accounts/42/addresses{/address_id}", "templated": True},
        },
        "id": 42,
        "name": "Alice",
        "city": None,
    }


def test_link_expansion_does_not_touch_the_originals():
    result = single_row()
    hal_formatter(make_request(path_params={"account_id": "42"}), result, None)
    assert result.links[0].href == "/api/accounts/{account_id}/addresses{/address_id}"


def test_fully_expanded_link_is_no_longer_templated():
    summary = HALLink(name="summary", href="/api/accounts/{account_id}/summary/", templated=True)
    result = FluentResult(rows=[{"id": 42}], name="accounts", uri="/api/accounts/42/", links=[summary, ADDRESSES])
    body = json.loads(hal_formatter(make_request(path_params={"account_id": "42"}), result, None).body)
    assert body["_links"]["summary"] == {"href": "/api/accounts/42/summary/"}
    assert body["_links"]["addresses"]["templated"] is True

    body = json.loads(hal_formatter(make_request(), result, None).body)
    assert body["_links"]["summary"] == {"href": "/api/accounts/{account_id}/summary/", "templated": True}


def test_collection_embeds_rows_and_pagination():
    body = json.loads(hal_formatter(make_request(), collection(), None).body)
    assert body["_embedded"] == {"accounts": [{"id": 1}, {"id": 2}]}
    assert body["total_count"] == 3
    assert body["number_of_pages"] == 2
    assert body["_links"]["next"] == {"href": "/x/?page=1&page_count=2"}


def test_error_body_and_status():
    result = FluentResult(error=ResourceNotFound("No resource exists."), name="accounts", uri="/api/accounts/")
    response = hal_formatter(make_request(), result, None)
    assert response.status_code == 404
    body = json.loads(response.body)
    assert body["message"] == "No resource exists."
    assert body["status_code"] == 404
    assert "_embedded" not in body


def test_xml_is_chosen_for_xml_accept():
    request = make_request(accept=HAL_XML, path_params={"account_id": "42"})
    response = hal_formatter(request, single_row(), None)
    assert response.media_type == HAL_XML
    text = response.body.decode()
    assert text.startswith('<?xml version="1.0" encoding="UTF-8"?><resource href="/api/accounts/42/">')
    assert '<link rel="addresses" href="/api/accounts/42/addresses{/address_id}" templated="true"/>' in text
    assert "<name>Alice</name>" in text
    assert "<city/>" in text
    assert text.endswith("</resource>")


def test_xml_collection_escapes_hrefs_and_embeds_rows():
    text = hal_formatter(make_request(accept="application/xml"), collection(), None).body.decode()
    assert '<link rel="next" href="/x/?page=1&amp;page_count=2"/>' in text
    assert '<resource rel="accounts"><id>1</id></resource>' in text
    assert "<total_count>3</total_count>" in text


def test_escape_xml_handles_all_five_characters():
    assert escape_xml("<a href=\"x\">'&'</a>") == "&lt;a href=&quot;x&quot;&gt;&apos;&amp;&apos;&lt;/a&gt;"


def test_quality_values_order_preferences():
    request = make_request(accept="application/xml;q=0.5, application/hal+json")
    assert hal_formatter(request, single_row(), None).media_type == HAL_JSON


def test_unknown_accept_passes_through_and_chain_answers_406():
    request = make_request(accept="text/html")
    assert hal_formatter(request, single_row(), None) is None
    response = run_formatters([hal_formatter], request, single_row())
    assert response.status_code == 406


def test_existing_response_is_kept():
    first = hal_formatter(make_request(), single_row(), None)
    assert hal_formatter(make_request(accept=HAL_XML), single_row(), first) is first


def test_no_content_has_no_body():
    result = FluentResult(name="accounts", status_code=204, uri="/api/accounts/42/")
    response = run_formatters([hal_formatter], make_request(), result)
    assert response.status_code == 204
    assert response.body == b""


def test_version_and_result_headers_are_applied():
    result = single_row()
    result.headers["X-Total-Count"] = "1"
    response = run_formatters([hal_formatter], make_request(), result, "API-Version", "2.1")
    assert response.headers["API-Version"] == "2.1"
    assert response.headers["X-Total-Count"] == "1"


def test_link_header():
    request = make_request(path_params={"account_id": "42"})
    result = single_row()
    response = run_formatters([links_header_formatter, hal_formatter], request, result)
    assert response.headers["Link"] == '</api/accounts/42/addresses{/address_id}>; rel="addresses"'


def test_repeated_relations_become_a_list():
    grouped = group_links([
        HALLink(name="pages", href="/x/?page=0&page_count=1"),
        HALLink(name="pages", href="/x/?page=1&page_count=1"),
        HALLink(name="health", href="/api/health/", title="Service health"),
    ])
    assert grouped == {
        "pages": [
            {"href": "/x/?page=0&page_count=1"},
            {"href": "/x/?page=1&page_count=1"},
        ],
        "health": {"href": "/api/health/", "title": "Service health"},
    }
