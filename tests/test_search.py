import logging

import pytest

import resourcepy

from conftest import Search


def titles(response):
    return [item["title"] for item in response.json]


def test_default_limit(client, search):
    response = client.get("/test/search")
    assert response.status_code == 206
    assert response.headers["Content-Range"] == "0-9/26"
    assert response.headers["Accept-Ranges"] == "items"
    assert response.headers["Range-Unit"] == "items"
    assert len(response.json) == 10
    assert titles(response)[0] == "Search 0"


def test_limit_and_skip(client, search):
    response = client.get("/test/search?limit=5&skip=4")
    assert response.status_code == 206
    assert response.headers["Content-Range"] == "4-8/26"
    assert [item["age"] for item in response.json] == [4, 5, 6, 7, 8]
    link = response.headers["Link"]
    assert '</test/search?limit=5&skip=4>; rel="next"; items="9-13"' in link
    assert 'rel="prev"; items="0-4"' in link


def test_all_items(client, search):
    response = client.get("/test/search?limit=30")
    assert response.status_code == 200
    assert response.headers["Content-Range"] == "0-25/26"
    assert len(response.json) == 26


def test_range_header(client, search):
    response = client.get("/test/search", headers={"Range": "0-4", "Range-Unit": "items"})
    assert response.status_code == 206
    assert response.headers["Content-Range"] == "0-4/26"
    assert len(response.json) == 5


def test_skip_out_of_range(client, search):
    response = client.get("/test/search?skip=30")
    assert response.status_code == 416
    assert response.headers["Content-Range"] == "*/26"
    assert response.json == []


@pytest.mark.parametrize("limit", ["-5", "abc"])
def test_invalid_limit(client, search, limit):
    response = client.get("/test/search", query_string={"limit": limit})
    assert response.headers["Content-Range"] == "0-9/26"


def test_equality_filter(client, search):
    response = client.get("/test/search", query_string={"title": "Search 5"})
    assert response.status_code == 200
    assert titles(response) == ["Search 5"]


def test_null_string_equality(client, search):
    response = client.get("/test/search?title=null")
    assert titles(response) == ["null"]


def test_eq_null(client, search):
    response = client.get("/test/search?title__eq=null")
    assert response.status_code == 200
    assert response.json == []


def test_repeated_equality(client, search):
    response = client.get("/test/search?age=1&age=2&age=3")
    assert [item["age"] for item in response.json] == [1, 2, 3]


def test_range_filters(client, search):
    response = client.get("/test/search?age__gte=5")
    assert response.headers["Content-Range"] == "0-9/20"

    response = client.get("/test/search?age__gt=5&age__lte=8")
    assert [item["age"] for item in response.json] == [6, 7, 8]


def test_ne_includes_missing_values(client, search):
    response = client.get("/test/search?age__ne=5&limit=30")
    assert len(response.json) == 25
    assert "null" in titles(response)


def test_in_and_nin(client, search):
    response = client.get("/test/search?age__in=1,2,3")
    assert [item["age"] for item in response.json] == [1, 2, 3]

    response = client.get("/test/search", query_string=[("age__in[]", "4"), ("age__in[]", "5")])
    assert [item["age"] for item in response.json] == [4, 5]

    response = client.get("/test/search?age__nin=1,2&limit=30")
    assert len(response.json) == 24
    assert "null" in titles(response)


def test_exists(client, search):
    response = client.get("/test/search?age__exists=false")
    assert titles(response) == ["null"]

    response = client.get("/test/search?age__exists=true")
    assert response.headers["Content-Range"] == "0-9/25"


def test_boolean_filter(client, search):
    response = client.get("/test/search?married=true")
    assert response.headers["Content-Range"] == "0-9/13"
    assert all(item["married"] for item in response.json)


def test_regex(client, search):
    response = client.get("/test/search", query_string={"title__regex": "/^Search 1/"})
    assert response.headers["Content-Range"] == "0-9/11"

    response = client.get("/test/search", query_string={"title__regex": "/^search 1/"})
    assert response.headers["Content-Range"] == "0-9/11"

    response = client.get("/test/search", query_string={"title__regex": "/24$/"})
    assert titles(response) == ["Search 24"]


def test_regex_alternatives(client, search):
    response = client.get("/test/search", query_string=[("title__regex", "/^Search 3$/"), ("title__regex", "/^Search 4$/")])
    assert titles(response) == ["Search 3", "Search 4"]


def test_unknown_field_filter(client, search):
    response = client.get("/test/search?unknown=1")
    assert response.status_code == 200
    assert response.json == []


def test_sort(client, search):
    response = client.get("/test/search?sort=-age&limit=3")
    assert [item["age"] for item in response.json] == [24, 23, 22]

    response = client.get("/test/search?sort=married,-age&limit=2")
    assert [item["age"] for item in response.json] == [23, 21]


def test_select(client, search):
    response = client.get("/test/search?select=title&limit=1")
    assert response.json == [{"id": 1, "title": "Search 0"}]

    response = client.get("/test/search?select=-description,-name&limit=1")
    assert set(response.json[0]) == {"id", "title", "age", "married"}


def test_mixed_select(client, search):
    response = client.get("/test/search", query_string={"select": "title -age"})
    assert response.status_code == 400
    assert response.json == {"status": 400, "message": "Projection cannot have a mix of inclusion and exclusion."}


def test_filter_with_pagination(client, search):
    response = client.get("/test/search?age__gte=10&limit=5&skip=5")
    assert response.headers["Content-Range"] == "5-9/15"
    assert [item["age"] for item in response.json] == [15, 16, 17, 18, 19]


@pytest.mark.parametrize(
    "query, expected",
    [
        ({"title": "null"}, ["null"]),
        ({"description": "false"}, ["null"]),
        ({"description": "true"}, []),
        ({"title__eq": "null"}, []),
        ({"title__eq": '"null"'}, ["null"]),
        ({"description__eq": "false"}, ["null"]),
        ({"description__eq": '"false"'}, ["null"]),
        ({"married__eq": "true"}, ["null"]),
        ({"married__eq": '"true"'}, ["null"]),
        ({"married": "true"}, ["null"]),
    ],
)
def test_native_data_formats(client, api, query, expected):
    api.expose_object(Search, "/test")
    response = client.post("/test/search", json={"title": "null", "description": "false", "married": True})
    assert response.json["description"] == "false"
    client.post("/test/search", json={"title": "other", "description": "other", "married": False})

    response = client.get("/test/search", query_string=query)
    assert response.status_code == 200
    assert titles(response) == expected


def test_invalid_regex(client, search, monkeypatch):
    response = client.get("/test/search", query_string={"title__regex": "/[/"})
    assert response.status_code == 400
    assert "SELECT" not in response.json["message"]
    assert "Search" not in response.json["message"]

    # debug logging shows the failed statement
    monkeypatch.setattr(resourcepy.log, "level", logging.DEBUG)
    response = client.get("/test/search", query_string={"title__regex": "/[/"})
    assert response.status_code == 400
    assert "SELECT" in response.json["message"]
