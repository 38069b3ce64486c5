"""
Field descriptors: the type and validation rules of every persisted attribute of a model

Descriptors are derived from the SQLAlchemy columns, the column `info` dict can refine them:

    title = db.Column(db.String, nullable=False, info={"description": "The title", "example": "Bonjour"})
    age = db.Column(db.Integer, info={"min": 0, "max": 150})
    list2 = db.Column(db.JSON, info={"items": "string"})
    list = db.Column(db.JSON, info={"items": {"label": "string", "data": ["string"]}})
    meta = db.Column(db.JSON, info={"schema": {"label": "string", "count": "number"}})
"""
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple
import uuid
from sqlalchemy.sql import sqltypes

FIELD_TYPES = ("string", "number", "date", "boolean", "reference", "id", "array", "embedded", "mixed")


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    type: str
    nullable: bool = True
    required: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    description: Optional[str] = None
    example: Any = None
    ref: Optional[str] = None
    items: Optional["FieldDescriptor"] = None
    schema: Optional[Mapping[str, "FieldDescriptor"]] = None
    primary_key: bool = False
    python_type: Optional[type] = field(default=None, compare=False)

    @property
    def is_id(self) -> bool:
        return self.type in ("id", "reference")


def describe(name: str, spec: Any) -> FieldDescriptor:
    """
    Create a descriptor from a sub-schema specification:
    a type name, a list holding the item specification or a mapping of sub-fields
    """
    if isinstance(spec, FieldDescriptor):
        return spec
    if isinstance(spec, (list, tuple)):
        return FieldDescriptor(name, "array", items=describe(name, spec[0]) if spec else None)
    if isinstance(spec, Mapping):
        return FieldDescriptor(name, "embedded", schema={key: describe(key, value) for key, value in spec.items()})
    if spec not in FIELD_TYPES:
        raise ValueError(f'Unknown field type "{spec}" for "{name}"')
    return FieldDescriptor(name, spec)


def _column_type(column, info) -> str:
    col_type = column.type
    if column.primary_key:
        return "id"
    if column.foreign_keys:
        return "reference"
    if isinstance(col_type, sqltypes.Boolean):
        return "boolean"
    if isinstance(col_type, (sqltypes.DateTime, sqltypes.Date)):
        return "date"
    if isinstance(col_type, (sqltypes.Integer, sqltypes.Numeric)):
        return "number"
    if isinstance(col_type, sqltypes.String):
        # Enum and Text are String subclasses
        return "string"
    if isinstance(col_type, sqltypes.JSON):
        if "items" in info:
            return "array"
        if "schema" in info:
            return "embedded"
    return "mixed"


def _python_type(column) -> Optional[type]:
    try:
        return column.type.python_type
    except NotImplementedError:
        # custom column types
        return None


def describe_column(name: str, column) -> FieldDescriptor:
    """
    :param name: the mapped attribute name of the column
    :param column: SQLAlchemy column
    :return: FieldDescriptor
    """
    info = dict(column.info or {})
    field_type = info.get("type") or _column_type(column, info)
    enum = info.get("enum")
    if enum is None and isinstance(column.type, sqltypes.Enum) and column.type.enums:
        enum = column.type.enums
    required = info.get(
        "required",
        not column.nullable and column.default is None and column.server_default is None and not column.primary_key,
    )
    ref = None
    if column.foreign_keys:
        ref = next(iter(column.foreign_keys)).column.table.name
    python_type = _python_type(column)
    if field_type in ("id", "reference") and python_type not in (int, uuid.UUID):
        python_type = str

    return FieldDescriptor(
        name=name,
        type=field_type,
        nullable=bool(column.nullable),
        required=bool(required),
        enum=tuple(enum) if enum is not None else None,
        minimum=info.get("min"),
        maximum=info.get("max"),
        description=info.get("description", column.doc),
        example=info.get("example"),
        ref=ref,
        items=describe(name, info["items"]) if "items" in info else None,
        schema={key: describe(key, value) for key, value in info["schema"].items()} if "schema" in info else None,
        primary_key=bool(column.primary_key),
        python_type=python_type,
    )
