"""
Casting of values to the type of the field they are stored in, and the field validators

The casting rules are those of a document store: strings accept booleans and numbers,
numbers accept numeric strings, booleans accept the usual spellings, dates accept anything
`parse_date` understands. Dates are stored as naive UTC datetimes.
"""
import datetime
import math
from typing import Any, Dict, Optional
import resourcepy
from .coerce import NUMBER_RE, InvalidDate, convert_id, parse_date
from .errors import CastError, ValidatorError
from .fields import FieldDescriptor
from .util import js_string

TRUE_VALUES = (True, "true", 1, "1", "yes")
FALSE_VALUES = (False, "false", 0, "0", "no")


def _cast_string(field, value, model):
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        return js_string(value)
    raise CastError("string", value, field.name, model)


def _cast_number(field, value, model):
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            raise CastError("Number", value, field.name, model)
        return value
    if isinstance(value, str):
        if value.strip() == "":
            return None
        if NUMBER_RE.match(value):
            number = float(value)
            return int(number) if number.is_integer() and "." not in value and "e" not in value.lower() else number
    raise CastError("Number", value, field.name, model)


def _cast_boolean(field, value, model):
    for candidate in TRUE_VALUES:
        if value == candidate and type(value) is type(candidate):
            return True
    for candidate in FALSE_VALUES:
        if value == candidate and type(value) is type(candidate):
            return False
    raise CastError("Boolean", value, field.name, model)


def _cast_date(field, value, model):
    if isinstance(value, bool) or isinstance(value, (list, dict)):
        raise CastError("date", value, field.name, model)
    parsed = parse_date(value)
    if isinstance(parsed, InvalidDate):
        raise CastError("date", value, field.name, model)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return parsed


def _cast_id(field, value, model):
    if isinstance(value, (bool, list, dict)):
        raise CastError(_id_kind(field), value, field.name, model)
    try:
        value = convert_id(field, value)
    except ValueError:
        raise CastError(_id_kind(field), value, field.name, model)
    return str(value) if field.python_type is str else value


def _id_kind(field):
    if field.python_type is int:
        return "Number"
    if field.python_type is str:
        return "string"
    return field.python_type.__name__


def _cast_array(field, value, model):
    if not isinstance(value, list):
        value = [value]
    if field.items is None or field.items.type in ("embedded", "mixed", "array"):
        return value
    return [cast_value(field.items, item) for item in value]


def _cast_embedded(field, value, model):
    if not isinstance(value, dict):
        raise CastError("Embedded", value, field.name, model)
    return value


CASTERS = {
    "string": _cast_string,
    "number": _cast_number,
    "boolean": _cast_boolean,
    "date": _cast_date,
    "id": _cast_id,
    "reference": _cast_id,
    "array": _cast_array,
    "embedded": _cast_embedded,
}


def cast_value(field: FieldDescriptor, value: Any, model: Optional[str] = None) -> Any:
    """
    Parse the supplied `value` so it can be saved in (or compared with) the column of `field`

    :param field: FieldDescriptor
    :param value: the value to cast
    :param model: model name, added to the error message when casting filter values
    :return: processed value
    :raises CastError: the value can't be represented in the field type
    """
    if value is None:
        return value
    caster = CASTERS.get(field.type)
    if caster is None:
        # mixed: anything goes
        return value
    return caster(field, value, model)


def _is_empty(field, value):
    if value is None:
        return True
    return field.type == "string" and value == ""


def validate_value(field: FieldDescriptor, value: Any) -> Optional[ValidatorError]:
    """
    Run the validators of the field
    :return: the first failing validator or None
    """
    path = field.name
    if _is_empty(field, value):
        if field.required:
            return ValidatorError(f"Path `{path}` is required.", path, "required", value)
        return None
    if field.enum is not None and value not in field.enum:
        return ValidatorError(f"`{js_string(value)}` is not a valid enum value for path `{path}`.", path, "enum", value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if field.minimum is not None and value < field.minimum:
            message = f"Path `{path}` ({js_string(value)}) is less than minimum allowed value ({js_string(field.minimum)})."
            return ValidatorError(message, path, "min", value)
        if field.maximum is not None and value > field.maximum:
            message = f"Path `{path}` ({js_string(value)}) is more than maximum allowed value ({js_string(field.maximum)})."
            return ValidatorError(message, path, "max", value)
    return None


def validate_values(fields: Dict[str, FieldDescriptor], values: Dict[str, Any], cast_errors=None) -> Dict[str, Exception]:
    """
    :return: mapping of path to error, in field order, cast errors take precedence over validators
    """
    cast_errors = cast_errors or {}
    errors = {}
    for name, field in fields.items():
        if field.primary_key:
            continue
        if name in cast_errors:
            errors[name] = cast_errors[name]
            continue
        error = validate_value(field, values.get(name))
        if error is not None:
            resourcepy.log.debug(f"{name}: {error.message}")
            errors[name] = error
    return errors
