"""
Query string filters

FilterTranslator turns the query parameters of a listing request into a FilterExpression,
a mapping of field name to a typed filter node:

    ?age__gte=5&age__lt=10&title__regex=/^test/i&name=john

    {"age": Conditions((Compare("gte", 5), Compare("lt", 10))),
     "title": RegexMatch((("^test", "i"),)),
     "name": Equals("john")}

compile_filter turns the expression into SQLAlchemy criteria for a model.
"""
import operator
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from sqlalchemy import and_, false, or_, true
import resourcepy
from .attr_parse import cast_value
from .coerce import ValueCoercer
from .errors import ValidationError
from .fields import FieldDescriptor

RESERVED_PARAMS = ("limit", "skip", "select", "sort", "populate")
COMPARE_SELECTORS = ("eq", "ne", "lt", "lte", "gt", "gte")
MEMBERSHIP_SELECTORS = ("in", "nin")
REGEX_LITERAL_RE = re.compile(r"/?([^/]+)/?([^/]+)?")
TEXT_FIELD_TYPES = ("string", "id", "reference", "mixed", "array", "embedded")
RANGE_OPERATORS = {"lt": operator.lt, "lte": operator.le, "gt": operator.gt, "gte": operator.ge}


@dataclass(frozen=True)
class Equals:
    value: Any


@dataclass(frozen=True)
class Compare:
    op: str
    value: Any


@dataclass(frozen=True)
class Membership:
    op: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class Exists:
    flag: bool


@dataclass(frozen=True)
class RegexMatch:
    patterns: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class Operator:
    """Any selector the translator doesn't know, left to the store to accept or reject"""

    selector: str
    value: Any


@dataclass(frozen=True)
class Conditions:
    clauses: Tuple[Any, ...]


class FilterExpression(dict):
    """
    Mapping of field name (possibly a dotted path) to a filter node
    """

    def add_clause(self, name: str, clause: Any) -> None:
        current = self.get(name)
        if isinstance(current, Conditions):
            self[name] = Conditions(current.clauses + (clause,))
        elif current is None:
            self[name] = Conditions((clause,))
        # a plain equality or regex on the same field is kept


def parse_exists(value: Any) -> bool:
    if value in ("true", "1"):
        return True
    if value in ("false", "0"):
        return False
    return bool(value)


class FilterTranslator:
    """
    Translate the query string parameters to a FilterExpression

    :param fields: the field descriptors of the model, by name
    :param options: resource options, `query_filter` and `convert_ids` are used
    """

    def __init__(self, fields: Mapping[str, FieldDescriptor], options: Optional[Mapping] = None) -> None:
        self.fields = fields
        self.options = options or {}
        self.coercer = ValueCoercer(self.options)

    def translate(self, query: Mapping[str, Any], existing_keys: Iterable[str] = ()) -> FilterExpression:
        """
        :param query: parsed query string parameters
        :param existing_keys: filter keys set by the caller, these are never overwritten
        :return: FilterExpression
        """
        existing_keys = set(existing_keys)
        expression = FilterExpression()

        for key, value in query.items():
            if key in RESERVED_PARAMS:
                continue
            parts = key.split("__")
            name = parts[0]
            selector = parts[1] if len(parts) > 1 else ""
            if name in existing_keys:
                continue

            field = self.fields.get(name.split(".")[0])
            if field is not None and value is not None:
                if selector == "regex":
                    self._add_regex(expression, name, value)
                elif selector:
                    self._add_selector(expression, name, selector, value, field)
                elif isinstance(value, list):
                    # repeated parameter
                    expression[name] = Equals([self.coercer.coerce(name, item, field) for item in value])
                else:
                    expression[name] = Equals(self.coercer.coerce(name, value, field))
                continue

            if self.options.get("query_filter") is None:
                # unknown fields are passed through as plain equalities
                expression[name] = Equals(value)

        return expression

    def _add_regex(self, expression: FilterExpression, name: str, value: Any) -> None:
        values = value if isinstance(value, list) else [value]
        patterns = []
        for item in values:
            if not isinstance(item, str):
                continue
            match = REGEX_LITERAL_RE.search(item)
            if match:
                pattern, flags = match.groups()
                patterns.append((pattern, flags or "i"))
        if patterns:
            expression[name] = RegexMatch(tuple(patterns))

    def _add_selector(self, expression: FilterExpression, name: str, selector: str, value: Any, field: FieldDescriptor) -> None:
        if selector == "exists":
            clause = Exists(parse_exists(value))
        elif selector in MEMBERSHIP_SELECTORS:
            if isinstance(value, str):
                value = value.split(",")
            if not isinstance(value, (list, tuple)):
                value = [value]
            clause = Membership(selector, tuple(self.coercer.coerce(name, item, field, selector) for item in value))
        elif selector in COMPARE_SELECTORS:
            clause = Compare(selector, self.coercer.coerce(name, value, field, selector))
        else:
            clause = Operator(selector, self.coercer.coerce(name, value, field, selector))
        expression.add_clause(name, clause)


def translate(query: Mapping[str, Any], fields: Mapping[str, FieldDescriptor], existing_keys: Iterable[str] = (), options=None) -> FilterExpression:
    return FilterTranslator(fields, options).translate(query, existing_keys)


#
# SQL compilation
#
def _inline_flags(pattern: str, flags: str) -> str:
    """
    Prefix the pattern with its flags, eg. (?i)^test, sqlite doesn't take separate regex flags
    """
    # javascript flags without a python regex equivalent (g, u, y) are dropped
    result = "".join(flag for flag in dict.fromkeys(flags or "") if flag in "ims")
    return f"(?{result}){pattern}" if result else pattern


def _regex_criterion(column, patterns):
    return or_(*[column.regexp_match(_inline_flags(pattern, flags)) for pattern, flags in patterns])


def _json_value(column, value):
    if isinstance(value, bool):
        return column.as_boolean()
    if isinstance(value, int):
        return column.as_integer()
    if isinstance(value, float):
        return column.as_float()
    return column.as_string()


def _equals(column, value):
    if value is None:
        return column.is_(None)
    return column == value


def _not_equals(column, value):
    if value is None:
        return column.isnot(None)
    # missing values don't equal anything
    return or_(column != value, column.is_(None))


class FilterCompiler:
    """
    Compile a FilterExpression to SQLAlchemy criteria for `model`
    """

    def __init__(self, model, model_name: Optional[str] = None) -> None:
        self.model = model
        self.model_name = model_name or model._s_collection_name
        self.fields = model._s_fields

    def compile(self, expression: Mapping[str, Any]) -> List[Any]:
        criteria = []
        for name, node in expression.items():
            base, _, path = name.partition(".")
            field = self.fields.get(base)
            if field is None or (path and field.type not in ("array", "embedded", "mixed")):
                resourcepy.log.debug(f'Filter on unknown field "{name}"')
                criteria.append(self._unknown(node))
                continue
            column = getattr(self.model, base)
            if path:
                json_path = tuple(int(part) if part.isdigit() else part for part in path.split("."))
                criteria.append(self._compile_json(column[json_path], node))
            else:
                criteria.append(self._compile_node(column, field, node))
        return criteria

    @staticmethod
    def _unknown(node):
        if isinstance(node, Equals) and node.value is None:
            return true()
        return false()

    def _cast(self, field, value):
        return cast_value(field, value, self.model_name)

    def _compile_node(self, column, field, node):
        if isinstance(node, Equals):
            if isinstance(node.value, list) and field.type != "array":
                # repeated parameters match any of the values
                return self._compile_clause(column, field, Membership("in", tuple(node.value)))
            return _equals(column, self._cast(field, node.value))
        if isinstance(node, RegexMatch):
            if field.type not in TEXT_FIELD_TYPES:
                return false()
            return _regex_criterion(column, node.patterns)
        if isinstance(node, Conditions):
            return and_(*[self._compile_clause(column, field, clause) for clause in node.clauses])
        raise ValidationError(f"Invalid filter {node!r}")

    def _compile_clause(self, column, field, clause):
        if isinstance(clause, Exists):
            return column.isnot(None) if clause.flag else column.is_(None)
        if isinstance(clause, Membership):
            values = [self._cast(field, value) for value in clause.values]
            non_null = [value for value in values if value is not None]
            if clause.op == "in":
                criterion = column.in_(non_null)
                return or_(criterion, column.is_(None)) if None in values else criterion
            if None in values:
                return and_(column.notin_(non_null), column.isnot(None))
            return or_(column.notin_(non_null), column.is_(None))
        if isinstance(clause, Compare):
            value = self._cast(field, clause.value)
            if clause.op == "eq":
                return _equals(column, value)
            if clause.op == "ne":
                return _not_equals(column, value)
            if value is None:
                return false()
            return RANGE_OPERATORS[clause.op](column, value)
        raise ValidationError(f"unknown operator: ${clause.selector}")

    def _compile_json(self, element, node):
        # dotted paths into JSON columns: no field type to cast to
        if isinstance(node, Equals):
            if node.value is None:
                return element.as_string().is_(None)
            return _json_value(element, node.value) == node.value
        if isinstance(node, RegexMatch):
            text = element.as_string()
            return _regex_criterion(text, node.patterns)
        criteria = []
        for clause in node.clauses:
            if isinstance(clause, Exists):
                text = element.as_string()
                criteria.append(text.isnot(None) if clause.flag else text.is_(None))
            elif isinstance(clause, Membership):
                sample = next((value for value in clause.values if value is not None), "")
                target = _json_value(element, sample)
                criterion = target.in_([value for value in clause.values if value is not None])
                criteria.append(criterion if clause.op == "in" else or_(~criterion, target.is_(None)))
            elif isinstance(clause, Compare):
                target = _json_value(element, clause.value)
                if clause.op == "eq":
                    criteria.append(_equals(target, clause.value))
                elif clause.op == "ne":
                    criteria.append(_not_equals(target, clause.value))
                elif clause.value is None:
                    criteria.append(false())
                else:
                    criteria.append(RANGE_OPERATORS[clause.op](target, clause.value))
            else:
                raise ValidationError(f"unknown operator: ${clause.selector}")
        return and_(*criteria)


def compile_filter(expression: Mapping[str, Any], model, model_name: Optional[str] = None) -> List[Any]:
    return FilterCompiler(model, model_name).compile(expression)
