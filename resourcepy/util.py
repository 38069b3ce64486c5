#
import datetime
import json
import math
import re
from typing import Any, Callable, List, Optional

TOKEN_RE = re.compile(r"[^, ]+")


class ClassPropertyDescriptor:
    """
    Read-only property evaluated on the class
    """

    def __init__(self, fget: classmethod) -> None:
        self.fget = fget

    def __get__(self, obj, klass=None):
        if klass is None:
            klass = type(obj)
        return self.fget.__get__(obj, klass)()

    def __set__(self, obj, value):
        raise AttributeError("can't set attribute")


def classproperty(func: Callable) -> ClassPropertyDescriptor:
    if not isinstance(func, (classmethod, staticmethod)):
        func = classmethod(func)
    return ClassPropertyDescriptor(func)


def unique_tokens(value: Any) -> Optional[List[str]]:
    """
    Split a query parameter value into its unique tokens, keeping the first occurrence
    Repeated parameters (lists) are joined with a comma first, tokens are separated by commas or spaces
    :param value: query parameter value
    :return: list of tokens or None when there are none
    """
    if value is None or value == "":
        return None
    if isinstance(value, (list, tuple)):
        value = ",".join(str(item) for item in value)
    tokens = list(dict.fromkeys(TOKEN_RE.findall(str(value))))
    return tokens or None


def js_string(value: Any) -> str:
    """
    String conversion of a (json) value the way javascript's String() renders it
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def js_type(value: Any) -> str:
    """
    Name of the javascript type of a (json) value, used in cast error messages
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "Array"
    if isinstance(value, dict):
        return "Object"
    if isinstance(value, datetime.datetime):
        return "Date"
    return getattr(value, "js_type", type(value).__name__)


def js_quote(value: Any) -> str:
    """
    Double quoted rendering of a value, as shown in cast error messages
    """
    return f'"{js_string(value)}"'
