from __future__ import annotations

import math
from typing import List, Tuple

from models.hateoas import HALLink, Pagination


def number_of_pages(total_count: int, page_size: int) -> int:
    if total_count <= 0 or page_size <= 0:
        return 0
    return math.ceil(total_count / page_size)


def page_href(uri: str, page: int, page_size: int) -> str:
    return f"{uri}?page={page}&page_count={page_size}"


def paginate(uri: str, total_count: int, page: int, page_size: int) -> Tuple[List[HALLink], Pagination]:
    """Navigation links and descriptor for one page of a collection.

    ``page`` is zero-based. Links are ordered next, prev, then every page.
    """
    pages = number_of_pages(total_count, page_size)
    links: List[HALLink] = []

    if page < pages - 1:
        links.append(HALLink(name="next", href=page_href(uri, page + 1, page_size)))

    if page > 0:
        links.append(HALLink(name="prev", href=page_href(uri, page - 1, page_size)))

    for i in range(pages):
        links.append(HALLink(name="pages", href=page_href(uri, i, page_size)))

    return links, Pagination(
        total_count=total_count,
        number_of_pages=pages,
        page=page,
        page_count=page_size,
    )
