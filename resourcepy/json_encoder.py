# resourcepy to json encoding

import datetime
import decimal
import json
from flask import make_response
from flask.json.provider import DefaultJSONProvider
from uuid import UUID
import resourcepy
from .base import ResourceBase
from .coerce import InvalidDate
from typing import Any


def isoformat(value: datetime.datetime) -> str:
    """
    ISO-8601 UTC representation with millisecond precision, eg. 2020-01-01T10:00:00.000Z
    naive datetimes are stored in UTC
    """
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


class _ResourceJSONEncoder:
    """
    JSON encoding for resourcepy objects (ResourceBase instances and common types)
    """

    # pylint: disable=too-many-return-statements,arguments-differ,method-hidden
    def default(self, obj, **kwargs):
        """
        override the default json encoding
        :param obj: object to be encoded
        :return: encoded/serialized object
        """
        if obj is None:
            return None
        if isinstance(obj, ResourceBase):
            return obj.to_dict()
        if isinstance(obj, datetime.datetime):
            return isoformat(obj)
        if isinstance(obj, (datetime.date, datetime.time)):
            return obj.isoformat()
        if isinstance(obj, datetime.timedelta):
            return str(obj)
        if isinstance(obj, InvalidDate):
            return None
        if isinstance(obj, set):
            return list(obj)
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, decimal.Decimal):
            return float(obj)
        if isinstance(obj, bytes):  # pragma: no cover
            resourcepy.log.debug("ResourceJSONEncoder: serializing bytes obj")
            return obj.hex()

        resourcepy.log.warning(f'JSON Encoding Error: Unknown object type "{type(obj)}" for {obj}')
        return str(obj)


class ResourceJSONProvider(_ResourceJSONEncoder, DefaultJSONProvider):
    """
    Flask JSON encoding
    """

    sort_keys = False


class ResourceJSONEncoder(_ResourceJSONEncoder, json.JSONEncoder):
    """
    Common JSON encoding
    """

    pass


def to_json_compatible(obj: Any) -> Any:
    """
    :return: obj converted to plain json types (dict, list, str, int, float, bool, None)
    """
    return json.loads(json.dumps(obj, cls=ResourceJSONEncoder))


def output_json(data, code, headers=None):
    """
    flask_restful representation for application/json
    """
    dumped = json.dumps(data, cls=ResourceJSONEncoder) + "\n"
    resp = make_response(dumped, code)
    resp.headers.extend(headers or {})
    return resp
