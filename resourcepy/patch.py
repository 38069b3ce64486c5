"""
JSON-Patch (RFC 6902) engine

The patch is applied all-or-nothing: the operations are applied to a deep copy of the document
and the original document is returned untouched when any operation fails. `test` operations
are evaluated against the unmodified document before anything else, so a failing precondition
is reported as such (412) even when other operations would fail too.

Failures are reported with the error names of the fast-json-patch javascript library,
clients rely on these names.
"""
import copy
from dataclasses import dataclass
from typing import Any, Optional
from .errors import JsonPatchError

OPERATIONS = ("add", "remove", "replace", "move", "copy", "test")

PATCH_ERRORS = {
    "SEQUENCE_NOT_AN_ARRAY": "Patch sequence must be an array",
    "OPERATION_NOT_AN_OBJECT": "Operation is not an object",
    "OPERATION_OP_INVALID": "Operation `op` property is not one of operations defined in RFC-6902",
    "OPERATION_PATH_INVALID": "Operation `path` property is not a string",
    "OPERATION_FROM_REQUIRED": "Operation `from` property is not present (applicable in `move` and `copy` operations)",
    "OPERATION_VALUE_REQUIRED": "Operation `value` property is not present (applicable in `add`, `replace` and `test` operations)",
    "OPERATION_VALUE_CANNOT_CONTAIN_UNDEFINED": "Operation `value` property cannot contain undefined values",
    "OPERATION_PATH_CANNOT_ADD": "Cannot perform an `add` operation at the desired path",
    "OPERATION_PATH_UNRESOLVABLE": "Cannot perform the operation at a path that does not exist",
    "OPERATION_FROM_UNRESOLVABLE": "Cannot perform the operation from a path that does not exist",
    "OPERATION_PATH_ILLEGAL_ARRAY_INDEX": "Expected an unsigned base-10 integer value, making the new referenced value the array element with the zero-based index",
    "OPERATION_VALUE_OUT_OF_BOUNDS": "The specified index MUST NOT be greater than the number of elements in the array",
    "TEST_OPERATION_FAILED": "Test operation failed",
}

_MISSING = object()


def _error(name: str, index: Optional[int] = None, operation: Any = None, message: Optional[str] = None) -> JsonPatchError:
    return JsonPatchError(message or PATCH_ERRORS[name], name, index, operation)


@dataclass
class PatchFailure:
    kind: str
    message: str
    operation: Any = None
    index: Optional[int] = None

    @property
    def precondition(self) -> bool:
        return self.kind == "TEST_OPERATION_FAILED"

    def to_error(self) -> JsonPatchError:
        return JsonPatchError(self.message, self.kind, self.index, self.operation)


@dataclass
class PatchResult:
    document: Any
    failure: Optional[PatchFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def unescape(component: str) -> str:
    return component.replace("~1", "/").replace("~0", "~")


def is_integer(key: str) -> bool:
    return all("0" <= char <= "9" for char in key)


def _is_json(value: Any) -> bool:
    if value is None or isinstance(value, (bool, int, float, str)):
        return True
    if isinstance(value, list):
        return all(_is_json(item) for item in value)
    if isinstance(value, dict):
        return all(isinstance(key, str) and _is_json(item) for key, item in value.items())
    return False


def are_equal(left: Any, right: Any) -> bool:
    """
    Deep equality of two json values, booleans never equal numbers
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(are_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(are_equal(left[key], right[key]) for key in left)
    return type(left) is type(right) and left == right


def _has(container: Any, key: str) -> bool:
    if isinstance(container, dict):
        return key in container
    if isinstance(container, list):
        return key.isdigit() and str(int(key)) == key and int(key) < len(container)
    return False


def _child(container: Any, key: Any) -> Any:
    if isinstance(container, dict):
        return container.get(key, _MISSING)
    if isinstance(container, list) and isinstance(key, int) and 0 <= key < len(container):
        return container[key]
    return _MISSING


def validate_operation(operation: Any, index: int = 0, internal: bool = False) -> None:
    """
    Structural validation of an operation
    :raises JsonPatchError:
    """
    if not isinstance(operation, dict):
        raise _error("OPERATION_NOT_AN_OBJECT", index, operation)
    op = operation.get("op")
    if op not in OPERATIONS and not (internal and op == "_get"):
        raise _error("OPERATION_OP_INVALID", index, operation)
    path = operation.get("path")
    if not isinstance(path, str):
        raise _error("OPERATION_PATH_INVALID", index, operation)
    if path and not path.startswith("/"):
        raise _error("OPERATION_PATH_INVALID", index, operation, 'Operation `path` property must start with "/"')
    if op in ("move", "copy") and not isinstance(operation.get("from"), str):
        raise _error("OPERATION_FROM_REQUIRED", index, operation)
    if op in ("add", "replace", "test"):
        if "value" not in operation:
            raise _error("OPERATION_VALUE_REQUIRED", index, operation)
        if not _is_json(operation["value"]):
            raise _error("OPERATION_VALUE_CANNOT_CONTAIN_UNDEFINED", index, operation)


def _validate_against(document: Any, operation: dict, index: int, existing: str) -> None:
    """
    Validate an operation against the part of its path that exists in the document
    """
    op = operation["op"]
    if op == "add":
        path_length = len(operation["path"].split("/"))
        existing_length = len(existing.split("/"))
        if path_length not in (existing_length, existing_length + 1):
            raise _error("OPERATION_PATH_CANNOT_ADD", index, operation)
    elif op in ("replace", "remove", "_get"):
        if operation["path"] != existing:
            raise _error("OPERATION_PATH_UNRESOLVABLE", index, operation)
    elif op in ("move", "copy"):
        try:
            get_value(document, operation["from"])
        except JsonPatchError as exc:
            if exc.name == "OPERATION_PATH_UNRESOLVABLE":
                raise _error("OPERATION_FROM_UNRESOLVABLE", index, operation)


def get_value(document: Any, pointer: str) -> Any:
    """
    :return: the value at the json pointer
    :raises JsonPatchError: OPERATION_PATH_UNRESOLVABLE when nothing exists at the pointer
    """
    operation = {"op": "_get", "path": pointer}
    return apply_operation(document, operation, internal=True)[1]


def apply_operation(document: Any, operation: Any, index: int = 0, internal: bool = False):
    """
    Apply a single operation, the document is modified in place

    :return: (new document, removed or read value)
    :raises JsonPatchError:
    """
    validate_operation(operation, index, internal)
    op = operation["op"]
    path = operation["path"]

    if path == "":
        return _apply_root(document, operation, index)

    keys = path.split("/")
    container = document
    length = len(keys)
    existing = None
    position = 1
    while True:
        key = unescape(keys[position])
        if existing is None:
            if not _has(container, key):
                existing = "/".join(keys[:position])
            elif position == length - 1:
                existing = path
            if existing is not None:
                _validate_against(document, operation, index, existing)
        position += 1

        if isinstance(container, list):
            if key == "-":
                key = len(container)
            elif not is_integer(key):
                raise _error("OPERATION_PATH_ILLEGAL_ARRAY_INDEX", index, operation)
            else:
                key = int(key or 0)
            if position >= length:
                if op == "add" and key > len(container):
                    raise _error("OPERATION_VALUE_OUT_OF_BOUNDS", index, operation)
                return _apply_leaf(document, container, key, operation, index)
        elif position >= length:
            return _apply_leaf(document, container, key, operation, index)

        container = _child(container, key)
        if position < length and not isinstance(container, (dict, list)):
            raise _error("OPERATION_PATH_UNRESOLVABLE", index, operation, "Cannot perform operation at the desired path")


def _apply_root(document: Any, operation: dict, index: int):
    op = operation["op"]
    if op in ("add", "replace"):
        return operation["value"], document
    if op in ("move", "copy"):
        return get_value(document, operation["from"]), document
    if op == "test":
        if not are_equal(document, operation["value"]):
            raise _error("TEST_OPERATION_FAILED", index, operation)
        return document, None
    if op == "remove":
        return None, document
    return document, document


def _apply_leaf(document: Any, container: Any, key: Any, operation: dict, index: int):
    op = operation["op"]
    if op == "test":
        current = _child(container, key)
        if current is _MISSING or not are_equal(current, operation["value"]):
            raise _error("TEST_OPERATION_FAILED", index, operation)
        return document, None
    if op == "_get":
        current = _child(container, key)
        return document, None if current is _MISSING else current
    if op == "move":
        removed = _child(container, key)
        removed = None if removed is _MISSING else copy.deepcopy(removed)
        _, value = apply_operation(document, {"op": "remove", "path": operation["from"]}, index)
        apply_operation(document, {"op": "add", "path": operation["path"], "value": value}, index)
        return document, removed
    if op == "copy":
        value = get_value(document, operation["from"])
        apply_operation(document, {"op": "add", "path": operation["path"], "value": copy.deepcopy(value)}, index)
        return document, None

    if isinstance(container, list):
        if op == "add":
            container.insert(key, operation["value"])
            return document, None
        if op == "remove":
            return document, container.pop(key)
        removed = container[key]
        container[key] = operation["value"]
        return document, removed

    removed = container.get(key)
    if op == "remove":
        container.pop(key, None)
    else:
        container[key] = operation["value"]
    return document, removed


class PatchEngine:
    """
    Applies a JSON-Patch to a (json compatible) document
    """

    def apply(self, document: Any, patch: Any, normalize: bool = True) -> PatchResult:
        """
        :param document: the current document, it is never modified
        :param patch: a list of operations, or a single operation when normalize is set
        :param normalize: accept a single operation
        :return: PatchResult with the patched document, or the original document and the failure
        """
        if normalize and not isinstance(patch, list):
            patch = [patch]
        try:
            if not isinstance(patch, list):
                raise _error("SEQUENCE_NOT_AN_ARRAY")
            # preconditions first, against the unmodified document
            for index, operation in enumerate(patch):
                if isinstance(operation, dict) and operation.get("op") == "test":
                    apply_operation(document, operation, index)
            working = copy.deepcopy(document)
            for index, operation in enumerate(patch):
                working, _ = apply_operation(working, copy.deepcopy(operation), index)
        except JsonPatchError as exc:
            return PatchResult(document, PatchFailure(exc.name, exc.message, exc.operation, exc.index))
        return PatchResult(working)
