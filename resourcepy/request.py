"""
Request parsing

Query string:
- repeated keys become lists: ?select=title&select=age => {"select": ["title", "age"]}
- bracket keys become mappings: ?populate[path]=author => {"populate": {"path": "author"}}
- empty brackets become lists: ?age__in[]=1&age__in[]=2 => {"age__in": ["1", "2"]}

Payload: the json body, an empty (or non-json) body is parsed as {}
"""
import re
from typing import Any, Dict
from flask import Request
from werkzeug.utils import cached_property
import resourcepy

BRACKET_RE = re.compile(r"^([^\[\]]+)\[([^\[\]]*)\]$")


# pylint: disable=too-many-ancestors
class ResourceRequest(Request):
    """
    Flask request class installed by RESOURCEPY.init_app
    """

    @cached_property
    def query_params(self) -> Dict[str, Any]:
        return parse_query(self.args)

    def get_payload(self) -> Any:
        """
        :return: request json payload, {} when there is none
        """
        if not self.get_data(cache=True):
            return {}
        result = self.get_json(force=True, silent=True)
        if result is None:
            resourcepy.log.warning(f'Invalid JSON payload for "{self.content_type}" request')
            return {}
        return result

    @property
    def lower_headers(self) -> Dict[str, str]:
        return {name.lower(): value for name, value in self.headers.items()}

    @property
    def path_with_query(self) -> str:
        """
        :return: the request path and query string (used in the Link header)
        """
        return self.full_path.rstrip("?")


def parse_query(args) -> Dict[str, Any]:
    """
    :param args: werkzeug MultiDict with the query string arguments
    :return: dict with the parsed query parameters
    """
    result: Dict[str, Any] = {}
    for key in args.keys():
        values = args.getlist(key)
        value = values[0] if len(values) == 1 else values
        match = BRACKET_RE.match(key)
        if match is None:
            result[key] = value
            continue
        name, sub_key = match.groups()
        if sub_key == "":
            current = result.get(name)
            current = current if isinstance(current, list) else ([] if current is None else [current])
            result[name] = current + list(values)
            continue
        current = result.get(name)
        if not isinstance(current, dict):
            current = {}
        current[sub_key] = value
        result[name] = current
    return result
