"""
Range based pagination, cfr. https://github.com/begriffs/clean_pagination

The client requests a range of items with the `Range: <from>-<to>` and `Range-Unit: items` headers
(or with the skip and limit query parameters), the response carries the `Content-Range`,
`Accept-Ranges`, `Range-Unit` and `Link` headers.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union
from .config import get_config
from .coerce import int_or_default

RANGE_RE = re.compile(r"^(\d+)-(\d*)$")
Number = Union[int, float]


@dataclass
class PageResult:
    """
    :param status: 200 (all items), 206 (partial content), 204 (no content) or 416 (range not satisfiable)
    :param headers: response headers
    :param limit: number of items to return, None when the range can't be satisfied
    :param skip: zero based position of the first item to return
    """

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    limit: Optional[int] = None
    skip: Optional[int] = None

    @property
    def satisfiable(self) -> bool:
        return self.limit is not None


def parse_range(header: Optional[str]) -> Optional[Tuple[int, Number]]:
    """
    :param header: Range header value, eg. "0-9" or "10-"
    :return: (from, to) tuple, to is infinite for open ranges
    """
    match = RANGE_RE.match(header or "")
    if match is None:
        return None
    start, end = match.groups()
    return int(start), int(end) if end else math.inf


def _fmt(number: Number) -> str:
    return str(int(number)) if number < math.inf else ""


def paginate(total: Number, max_range_size: Number, range_header: Optional[str] = None, range_unit: Optional[str] = None, url: str = "") -> PageResult:
    """
    Compute the page window and the response headers of a listing

    :param total: total number of items available, can be math.inf
    :param max_range_size: maximum number of items in a page (the requested limit)
    :param range_header: value of the Range request header
    :param range_unit: value of the Range-Unit request header, the range header is ignored unless this is "items"
    :param url: request url, used in the Link header
    :return: PageResult
    """
    headers = {
        "Accept-Ranges": "items",
        "Range-Unit": "items",
        "Access-Control-Expose-Headers": "Content-Range, Accept-Ranges, Range-Unit",
    }

    start, end = 0, total - 1
    if range_unit == "items":
        start, end = parse_range(range_header) or (start, end)

    if start > end or (start > 0 and start >= total):
        status = 416 if total > 0 or start != 0 else 204
        headers["Content-Range"] = f"*/{_fmt(total) or 'Infinity'}"
        return PageResult(status, headers)

    if total < math.inf:
        available_to = min(end, total - 1, start + max_range_size - 1)
        report_total = _fmt(total)
    else:
        available_to = min(end, start + max_range_size - 1)
        report_total = "*"

    headers["Content-Range"] = f"{_fmt(start)}-{_fmt(available_to)}/{report_total}"
    available_limit = available_to - start + 1

    if available_limit == 0:
        headers["Content-Range"] = "*/0"
        return PageResult(204, headers)

    status = 206 if available_limit < total else 200

    def link(rel, items_from, items_to):
        return f'<{url}>; rel="{rel}"; items="{_fmt(items_from)}-{_fmt(items_to)}"'

    requested_limit = end - start + 1
    links = []
    if available_to < total - 1:
        links.append(link("next", available_to + 1, available_to + requested_limit))
        if total < math.inf:
            last_start = math.floor((total - 1) / available_limit) * available_limit
            links.append(link("last", last_start, last_start + requested_limit - 1))

    if start > 0:
        previous_from = max(0, start - min(requested_limit, max_range_size))
        links.append(link("prev", previous_from, previous_from + requested_limit - 1))
        links.append(link("first", 0, requested_limit - 1))

    headers["Link"] = ", ".join(links)
    return PageResult(status, headers, limit=int(available_limit), skip=int(start))


class Paginator:
    """
    Derives the page window of an index request from the limit/skip query parameters and the range headers
    """

    def __init__(self, default_limit: Optional[int] = None, default_skip: Optional[int] = None, max_range_size: Optional[int] = None):
        self.default_limit = get_config("DEFAULT_LIMIT") if default_limit is None else default_limit
        self.default_skip = get_config("DEFAULT_SKIP") if default_skip is None else default_skip
        self.max_range_size = get_config("MAX_RANGE_SIZE") if max_range_size is None else max_range_size

    def requested(self, query: Dict) -> Tuple[int, int]:
        """
        :return: (limit, skip) requested in the query string
        """
        limit = int_or_default(query.get("limit"), self.default_limit)
        skip = int_or_default(query.get("skip"), self.default_skip)
        return min(limit, self.max_range_size), skip

    def paginate(self, total: Number, query: Dict, headers: Dict[str, str], url: str = "") -> PageResult:
        """
        :param total: number of items matching the filters
        :param query: parsed query string
        :param headers: request headers with lowercase names, a skip adds the equivalent range headers
        :param url: request url
        :return: PageResult, limit and skip fall back to the requested values when the range can't be satisfied
        """
        limit, skip = self.requested(query)
        if skip > 0 and headers.get("range") is None:
            headers["range-unit"] = "items"
            headers["range"] = f"{skip}-{skip + limit - 1}"

        result = paginate(total, limit, headers.get("range"), headers.get("range-unit"), url)
        if not result.satisfiable:
            result.limit, result.skip = limit, skip
        return result
