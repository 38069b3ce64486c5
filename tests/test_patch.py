import pytest

from resourcepy.patch import PatchEngine, apply_operation, are_equal, get_value
from resourcepy.errors import JsonPatchError


@pytest.fixture
def document():
    return {"title": "test", "age": 3, "list": [{"label": "a", "data": ["x"]}], "meta": {"count": 1}}


def failure(document, patch):
    result = PatchEngine().apply(document, patch)
    assert not result.ok
    assert result.document is document
    return result.failure


def test_operations(document):
    patch = [
        {"op": "replace", "path": "/title", "value": "patched"},
        {"op": "add", "path": "/list/-", "value": {"label": "b", "data": []}},
        {"op": "remove", "path": "/age"},
        {"op": "copy", "from": "/meta/count", "path": "/meta/copy"},
        {"op": "move", "from": "/list/0", "path": "/first"},
        {"op": "test", "path": "/meta/count", "value": 1},
    ]
    result = PatchEngine().apply(document, patch)
    assert result.ok
    assert result.document == {
        "title": "patched",
        "list": [{"label": "b", "data": []}],
        "meta": {"count": 1, "copy": 1},
        "first": {"label": "a", "data": ["x"]},
    }
    # the original document is untouched
    assert document["title"] == "test"
    assert len(document["list"]) == 1


def test_single_operation(document):
    result = PatchEngine().apply(document, {"op": "replace", "path": "/age", "value": 4})
    assert result.document["age"] == 4


def test_not_normalized(document):
    result = PatchEngine().apply(document, {"op": "replace", "path": "/age", "value": 4}, normalize=False)
    assert result.failure.kind == "SEQUENCE_NOT_AN_ARRAY"


def test_failed_test_operation(document):
    patch = [{"op": "replace", "path": "/title", "value": "x"}, {"op": "test", "path": "/title", "value": "x"}]
    result = failure(document, patch)
    # tests are evaluated against the unmodified document
    assert result.kind == "TEST_OPERATION_FAILED"
    assert result.precondition
    assert result.operation == {"op": "test", "path": "/title", "value": "x"}
    assert result.index == 1


def test_test_operation_has_precedence(document):
    patch = [{"op": "replace", "path": "/nothere", "value": 1}, {"op": "test", "path": "/age", "value": 4}]
    assert failure(document, patch).kind == "TEST_OPERATION_FAILED"


@pytest.mark.parametrize(
    "operation, name",
    [
        ({"op": "invalid", "path": "/title", "value": 1}, "OPERATION_OP_INVALID"),
        ("replace", "OPERATION_NOT_AN_OBJECT"),
        ({"op": "replace", "path": 5, "value": 1}, "OPERATION_PATH_INVALID"),
        ({"op": "replace", "path": "title", "value": 1}, "OPERATION_PATH_INVALID"),
        ({"op": "replace", "path": "/title"}, "OPERATION_VALUE_REQUIRED"),
        ({"op": "move", "path": "/title"}, "OPERATION_FROM_REQUIRED"),
        ({"op": "add", "path": "/nested/a/b", "value": 1}, "OPERATION_PATH_CANNOT_ADD"),
        ({"op": "replace", "path": "/nothere", "value": 1}, "OPERATION_PATH_UNRESOLVABLE"),
        ({"op": "remove", "path": "/list/5"}, "OPERATION_PATH_UNRESOLVABLE"),
        ({"op": "move", "from": "/nothere", "path": "/title"}, "OPERATION_FROM_UNRESOLVABLE"),
        ({"op": "add", "path": "/list/9999", "value": 1}, "OPERATION_VALUE_OUT_OF_BOUNDS"),
        ({"op": "add", "path": "/list/x", "value": 1}, "OPERATION_PATH_ILLEGAL_ARRAY_INDEX"),
    ],
)
def test_errors(document, operation, name):
    result = failure(document, [operation])
    assert result.kind == name
    assert not result.precondition
    error = result.to_error()
    assert error.name == name
    assert error.errors == [{"name": name, "message": str(error)}]


def test_get_value(document):
    assert get_value(document, "/list/0/data/0") == "x"
    with pytest.raises(JsonPatchError) as exc:
        get_value(document, "/list/3")
    assert exc.value.name == "OPERATION_PATH_UNRESOLVABLE"


def test_root_operations(document):
    assert apply_operation(document, {"op": "replace", "path": "", "value": {"a": 1}})[0] == {"a": 1}
    with pytest.raises(JsonPatchError):
        apply_operation(document, {"op": "test", "path": "", "value": {}})


def test_are_equal():
    assert are_equal({"a": [1, 2.0]}, {"a": [1, 2]})
    assert not are_equal(1, True)
    assert not are_equal({"a": 1}, {"a": 1, "b": 2})
    assert not are_equal("1", 1)
