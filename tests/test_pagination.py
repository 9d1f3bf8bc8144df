"""Page/limit parsing and the list envelope."""

import pytest

from specforge.core.exceptions import BadRequestError
from specforge.utils.pagination import PageParams, build_page, parse_page_params


def test_defaults():
    params = parse_page_params()
    assert params == PageParams(page=1, limit=20)
    assert params.offset == 0


def test_string_values_are_parsed():
    params = parse_page_params("3", "10")
    assert (params.page, params.limit, params.offset) == (3, 10, 20)


@pytest.mark.parametrize("page, limit", [
    ("0", None),
    (None, "0"),
    (None, "101"),
    ("abc", None),
    (None, "1.5"),
])
def test_invalid_values_raise(page, limit):
    with pytest.raises(BadRequestError):
        parse_page_params(page, limit, max_limit=100)


def test_max_limit_comes_from_app_config(app):
    with app.app_context():
        assert parse_page_params(limit="100").limit == 100


def test_build_page_meta():
    page = build_page(["a", "b"], total=5, params=PageParams(page=2, limit=2))
    assert page["data"] == ["a", "b"]
    assert page["meta"] == {
        "page": 2, "limit": 2, "total": 5, "totalPages": 3,
        "hasNextPage": True, "hasPreviousPage": True,
    }


def test_build_page_empty():
    meta = build_page([], total=0, params=PageParams())["meta"]
    assert meta["totalPages"] == 0
    assert meta["hasNextPage"] is False


def test_list_endpoint_rejects_bad_limit(client, project, owner_user, auth_headers):
    res = client.get(f"/api/v1/projects/{project['id']}/requirements?limit=0",
                     headers=auth_headers(owner_user))
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
