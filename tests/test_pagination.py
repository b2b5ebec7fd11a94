from utils.pagination import number_of_pages, paginate


def names(links):
    return [link.name for link in links]


def test_number_of_pages_rounds_up():
    assert number_of_pages(25, 10) == 3
    assert number_of_pages(30, 10) == 3
    assert number_of_pages(1, 10) == 1
    assert number_of_pages(0, 10) == 0


def test_pages_links_cover_every_page_in_order():
    links, pagination = paginate("/api/accounts/", 25, 0, 10)
    assert pagination.number_of_pages == 3
    pages = [link.href for link in links if link.name == "pages"]
    assert pages == [
        "/api/accounts/?page=0&page_count=10",
        "/api/accounts/?page=1&page_count=10",
        "/api/accounts/?page=2&page_count=10",
    ]


def test_first_page_has_next_but_no_prev():
    links, _ = paginate("/x/", 25, 0, 10)
    assert "next" in names(links)
    assert "prev" not in names(links)


def test_middle_page_has_next_and_prev():
    links, _ = paginate("/x/", 25, 1, 10)
    by_name = {link.name: link.href for link in links if link.name != "pages"}
    assert by_name == {
        "next": "/x/?page=2&page_count=10",
        "prev": "/x/?page=0&page_count=10",
    }


def test_last_page_has_prev_but_no_next():
    links, _ = paginate("/x/", 25, 2, 10)
    assert "next" not in names(links)
    assert "prev" in names(links)


def test_next_and_prev_come_before_pages():
    links, _ = paginate("/x/", 25, 1, 10)
    assert names(links) == ["next", "prev", "pages", "pages", "pages"]


def test_empty_collection_emits_no_links():
    links, pagination = paginate("/x/", 0, 0, 10)
    assert links == []
    assert pagination.number_of_pages == 0
    assert pagination.total_count == 0


def test_descriptor_echoes_request():
    _, pagination = paginate("/x/", 12, 1, 5)
    assert pagination.model_dump() == {
        "total_count": 12,
        "number_of_pages": 3,
        "page": 1,
        "page_count": 5,
    }
