"""
ValueCoercer: converts raw query-string values to the type of the field they filter on

The rules mirror the way a javascript client encodes values: numbers are parsed like parseInt,
dates like the ISO / epoch-millisecond / free-form date parsers and a few literal strings
(null, true, false) are recognised for (in)equality filters.
"""
import datetime
import email.utils
import json
import math
import re
import uuid
from typing import Any, Mapping, Optional
import resourcepy
from .fields import FieldDescriptor

NaN = math.nan
DEFAULT_ID_PATTERN = re.compile(r"(^|[._])id$")

# Literal strings recognised by the eq/ne selectors (and by boolean fields)
LITERALS = {
    "null": None,
    '"null"': "null",
    "true": True,
    '"true"': "true",
    "false": False,
    '"false"': "false",
}

INT_PREFIX_RE = re.compile(r"\s*([+-]?\d+)")
NUMBER_RE = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*$")
ISO_RE = re.compile(
    r"^(?P<year>\d{4}|[+-]\d{6})(?:-(?P<month>\d{2})(?:-(?P<day>\d{2}))?)?"
    r"(?:T(?P<hour>\d{2})(?::(?P<minute>\d{2})(?::(?P<second>\d{2})(?:[.,](?P<fraction>\d{1,9}))?)?)?"
    r"(?P<tz>Z|[+-]\d{2}(?::?\d{2})?)?)?$"
)
# free-form dates accepted after the ISO and epoch attempts, interpreted as UTC
FALLBACK_DATE_FORMATS = (
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d, %Y %H:%M:%S",
    "%b %d, %Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
)


class InvalidDate:
    """
    The result of parsing a string that isn't a date, renders as "Invalid Date"
    """

    js_type = "Date"

    def __str__(self):
        return "Invalid Date"

    def __repr__(self):
        return "InvalidDate()"

    def __eq__(self, other):
        return isinstance(other, InvalidDate)

    def __hash__(self):
        return hash(InvalidDate)


INVALID_DATE = InvalidDate()


def parse_int(value: Any) -> Any:
    """
    parseInt(value, 10): the leading integer of the string representation of value, NaN if there is none
    """
    if isinstance(value, bool):
        return NaN
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return NaN if math.isnan(value) or math.isinf(value) else int(value)
    if isinstance(value, (list, tuple)):
        value = ",".join(str(item) for item in value)
    match = INT_PREFIX_RE.match(str(value))
    return int(match.group(1)) if match else NaN


def int_or_default(value: Any, default: int) -> int:
    """
    :return: the integer value of a query parameter, or default when it's absent, not a number or negative
    """
    parsed = parse_int("" if value is None else value)
    if isinstance(parsed, float) or parsed < 0:
        return default
    return parsed


def _parse_iso(text: str) -> Optional[datetime.datetime]:
    match = ISO_RE.match(text)
    if not match:
        return None
    parts = match.groupdict()
    fraction = (parts["fraction"] or "0")[:6].ljust(6, "0")
    tzinfo = datetime.timezone.utc
    if parts["tz"] and parts["tz"] != "Z":
        sign = -1 if parts["tz"][0] == "-" else 1
        offset = parts["tz"][1:].replace(":", "")
        hours, minutes = int(offset[:2]), int(offset[2:] or 0)
        tzinfo = datetime.timezone(sign * datetime.timedelta(hours=hours, minutes=minutes))
    try:
        result = datetime.datetime(
            int(parts["year"]),
            int(parts["month"] or 1),
            int(parts["day"] or 1),
            int(parts["hour"] or 0),
            int(parts["minute"] or 0),
            int(parts["second"] or 0),
            int(fraction),
            tzinfo=tzinfo,
        )
    except ValueError:
        return None
    return result.astimezone(datetime.timezone.utc)


def _parse_millis(text: str) -> Optional[datetime.datetime]:
    if text.strip() == "":
        millis = 0.0
    elif NUMBER_RE.match(text):
        millis = float(text)
    else:
        return None
    try:
        return datetime.datetime.fromtimestamp(millis / 1000, tz=datetime.timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_free_form(text: str) -> Optional[datetime.datetime]:
    try:
        result = email.utils.parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        result = None
    if result is not None:
        if result.tzinfo is None:
            result = result.replace(tzinfo=datetime.timezone.utc)
        return result.astimezone(datetime.timezone.utc)
    for fmt in FALLBACK_DATE_FORMATS:
        try:
            return datetime.datetime.strptime(text.strip(), fmt).replace(tzinfo=datetime.timezone.utc)
        except ValueError:
            continue
    return None


def parse_date(value: Any) -> Any:
    """
    Parse a date: ISO-8601 first, then milliseconds since the epoch, then common free-form formats
    :return: timezone aware (UTC) datetime or INVALID_DATE
    """
    if isinstance(value, (datetime.datetime, InvalidDate)):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime(value.year, value.month, value.day, tzinfo=datetime.timezone.utc)
    if isinstance(value, bool):
        return INVALID_DATE
    if isinstance(value, (int, float)):
        value = repr(value) if isinstance(value, float) else str(value)
        return _parse_millis(value) or INVALID_DATE
    text = str(value)
    return _parse_iso(text) or _parse_millis(text) or _parse_free_form(text) or INVALID_DATE


def id_pattern(convert_ids: Any) -> Optional[re.Pattern]:
    """
    :param convert_ids: True for the default pattern, a regex (string) matching the field names to convert
    """
    if not convert_ids:
        return None
    if convert_ids is True:
        return DEFAULT_ID_PATTERN
    if isinstance(convert_ids, str):
        return re.compile(convert_ids)
    return convert_ids


def convert_id(field: FieldDescriptor, value: Any) -> Any:
    """
    Convert an id string to the primary key representation of the field
    :raises ValueError: the value isn't a valid id
    """
    if field.python_type is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if not re.fullmatch(r"\s*[+-]?\d+\s*", str(value)):
            raise ValueError(f"invalid integer id {value!r}")
        return int(value)
    if field.python_type is uuid.UUID:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    return value


class ValueCoercer:
    """
    Converts the raw query string values to the type of the field they filter on
    """

    def __init__(self, options: Optional[Mapping] = None):
        options = options or {}
        self.id_pattern = id_pattern(options.get("convert_ids"))

    def coerce(self, name: str, value: Any, field: FieldDescriptor, selector: Optional[str] = None) -> Any:
        """
        :param name: filter name, as used in the query string (may be a dotted path)
        :param value: raw query string value
        :param field: descriptor of the field the filter applies to
        :param selector: the filter selector (eq, ne, gt, ...), None or "" for plain equality
        :return: coerced value
        """
        if value is None:
            return value

        if isinstance(value, str) and (field.type == "boolean" or selector in ("eq", "ne")):
            lowered = value.lower()
            if lowered in LITERALS:
                return LITERALS[lowered]

        if field.type == "number":
            return parse_int(value)

        if field.type == "date":
            return parse_date(value)

        if self.id_pattern is not None and field.is_id and isinstance(value, str) and self.id_pattern.search(name):
            try:
                value = convert_id(field, value)
            except ValueError:
                resourcepy.log.warning(f"Invalid id: {json.dumps(value)}")

        return value
