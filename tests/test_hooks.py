import json

import pytest

from resourcepy import compose

from conftest import Resource1


def recorder(calls, name):
    def hook(ctx, next):
        calls.append(f"{name}:before")
        next()
        calls.append(f"{name}:after")

    return hook


def test_compose_order():
    calls = []
    composed = compose([recorder(calls, "one"), recorder(calls, "two")])
    composed({}, lambda: calls.append("last"))
    assert calls == ["one:before", "two:before", "last", "two:after", "one:after"]


def test_compose_nested():
    calls = []
    composed = compose([recorder(calls, "outer"), compose([]), compose([recorder(calls, "inner")]), recorder(calls, "last")])
    composed({})
    assert calls == ["outer:before", "inner:before", "last:before", "last:after", "inner:after", "outer:after"]


def test_compose_next_called_twice():
    def twice(ctx, next):
        next()
        next()

    with pytest.raises(RuntimeError, match=r"next\(\) called multiple times"):
        compose([twice])({})


def test_hook_order(client, api):
    calls = []
    api.expose_object(
        Resource1,
        "/test",
        before=recorder(calls, "before"),
        after=recorder(calls, "after"),
        hooks={"index": {"before": recorder(calls, "hook_before"), "after": recorder(calls, "hook_after")}},
    )
    response = client.get("/test/resource1")
    assert response.status_code == 200
    assert calls == [
        "before:before",
        "hook_before:before",
        "hook_after:before",
        "after:before",
        "after:after",
        "hook_after:after",
        "hook_before:after",
        "before:after",
    ]


def test_method_hooks(client, api):
    calls = []
    api.expose_object(Resource1, "/test", before_post=recorder(calls, "before_post"), after_get=recorder(calls, "after_get"))
    response = client.post("/test/resource1", json={"title": "hooked"})
    assert response.status_code == 201
    assert calls == ["before_post:before", "before_post:after"]
    client.get("/test/resource1")
    assert len(calls) == 2
    client.get(f"/test/resource1/{response.json['id']}")
    assert calls[2:] == ["after_get:before", "after_get:after"]


def test_hook_changes_payload(client, api):
    def before_post(ctx, next):
        ctx.payload["name"] = "set by hook"
        return next()

    api.expose_object(Resource1, "/test", before_post=before_post)
    response = client.post("/test/resource1", json={"title": "hooked"})
    assert response.json["name"] == "set by hook"


def test_hook_short_circuit(client, api):
    def forbidden(ctx, next):
        ctx.status = 403
        ctx.body = {"message": "Forbidden"}

    api.expose_object(Resource1, "/test", before_delete=forbidden)
    response = client.post("/test/resource1", json={"title": "kept"})
    response = client.delete(f"/test/resource1/{response.json['id']}")
    assert response.status_code == 403
    assert response.json == {"message": "Forbidden"}
    assert Resource1._s_query.count() == 1


def test_after_hook_changes_body(client, api):
    def after(ctx, next):
        next()
        ctx.body = {"wrapped": ctx.body}

    api.expose_object(Resource1, "/test", after_post=after)
    response = client.post("/test/resource1", json={"title": "wrapped"})
    assert response.status_code == 201
    assert response.json["wrapped"]["title"] == "wrapped"


def test_hook_exception(client, api):
    def failing(ctx, next):
        raise ValueError("hook failed")

    api.expose_object(Resource1, "/test", before_index=failing)
    response = client.get("/test/resource1")
    assert response.status_code == 400
    assert response.json == {"message": "hook failed"}


def test_stack(api):
    resource = api.expose_object(Resource1, "/test")
    response = resource.stack["post"]({"title": "stacked"})
    assert response.status_code == 201
    item = json.loads(response.get_data())
    assert item["title"] == "stacked"

    response = resource.stack["patch"]([{"op": "replace", "path": "/title", "value": "patched"}], {"resource1Id": item["id"]})
    assert response.status_code == 200
    assert json.loads(response.get_data())["title"] == "patched"

    response = resource.stack["get"](params={"resource1Id": item["id"]}, query={"select": "title"})
    assert json.loads(response.get_data()) == {"id": item["id"], "title": "patched"}

    response = resource.stack["index"]()
    assert response.headers["Content-Range"] == "0-0/1"
