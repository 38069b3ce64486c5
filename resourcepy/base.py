"""
ResourceBase class customizable attributes and methods, override these to customize the behavior
of the ResourceBase class.

_s_pipeline:
Type: tuple of callables
Description: custom aggregation stages, each stage takes a Select statement and returns the transformed
statement. When stages are declared, listings without population use the pipeline strategy.

_s_pre_save(self, **write_options):
Description: called before the instance is validated and saved, with the write options set by the
request hooks in `ctx.state.write_options`. Raise an exception to abort the save.

_s_pre_remove(self, **write_options):
Description: called before the instance is deleted, with the write options of the request.
"""
import copy
from functools import lru_cache
from typing import Any, Dict, List, Optional
from flask_sqlalchemy.model import Model
import resourcepy
from .attr_parse import cast_value, validate_values
from .errors import CastError, ValidationError
from .fields import FieldDescriptor, describe_column
from .util import classproperty


class ResourceBase(Model):
    """This SQLAlchemy mixin exposes models as REST resources

    Serialization is performed by the ``to_dict`` method, the field descriptors derived from
    the columns drive casting, validation, filtering and the OpenAPI schema.

    The model attributes should not match column names or sqla attribute names,
    this is why the methods & properties have the `_s_` prefix
    """

    _s_pipeline = ()

    def __init__(self, *args, **kwargs):
        """
        :param kwargs: model attributes, cast to the field types
        """
        self._s_cast_errors = {}
        if kwargs:
            self._s_set(kwargs)

    @classproperty
    @lru_cache(maxsize=64)
    def _s_fields(cls) -> Dict[str, FieldDescriptor]:
        """
        :return: field descriptors of the mapped columns, by attribute name
        """
        if not hasattr(cls, "__mapper__"):
            return {}
        return {prop.key: describe_column(prop.key, prop.columns[0]) for prop in cls.__mapper__.column_attrs}

    @classmethod
    def _s_field(cls, name: str) -> Optional[FieldDescriptor]:
        return cls._s_fields.get(name)

    @classproperty
    def _s_pk(cls) -> FieldDescriptor:
        """
        :return: descriptor of the (first) primary key
        """
        for field in cls._s_fields.values():
            if field.primary_key:
                return field
        raise ValidationError(f"{cls.__name__} has no primary key")

    @classproperty
    def _s_relationships(cls) -> dict:
        """
        :return: the relationships that can be populated
        """
        return {rel.key: rel for rel in cls.__mapper__.relationships}

    @classproperty
    def _s_query(cls):
        """
        :return: sqla query object
        """
        return resourcepy.DB.session.query(cls)

    @classproperty
    def _s_collection_name(cls) -> str:
        """
        :return: the name of the collection, used as model name in messages
        """
        return getattr(cls, "__tablename__", cls.__name__)

    @classproperty
    def _s_class_name(cls) -> str:
        return cls.__name__

    @classmethod
    def _s_check_populate(cls, paths: List[str], model_name: Optional[str] = None) -> None:
        """
        :raises CastError: a path isn't a relationship
        """
        for path in paths:
            if path not in cls._s_relationships:
                raise CastError("ObjectId", path, path, model_name or cls._s_collection_name)

    @classmethod
    def get_instance(cls, item_id: Any, query=None, model_name: Optional[str] = None):
        """
        :param item_id: primary key value, cast to the key type
        :param query: query to search, defaults to the model query
        :return: Instance or None
        :raises CastError: invalid id
        """
        pk = cls._s_pk
        value = cast_value(pk, item_id, model_name or cls._s_collection_name)
        query = cls._s_query if query is None else query
        return query.filter(getattr(cls, pk.name) == value).first()

    def to_dict(self, populate: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Create a dictionary with all the instance attributes,
        called by the json encoder to serialize instances

        :param populate: relationship names, the related instances are serialized under the relationship name
        :return: dictionary
        """
        result = {}
        for name in self._s_fields:
            value = getattr(self, name)
            result[name] = copy.deepcopy(value) if isinstance(value, (list, dict)) else value
        for rel_name in populate or ():
            related = getattr(self, rel_name)
            if related is None:
                result[rel_name] = None
            elif isinstance(related, ResourceBase):
                result[rel_name] = related.to_dict()
            else:
                result[rel_name] = [item.to_dict() for item in related]
        return result

    def _s_set(self, body: Dict[str, Any]) -> "ResourceBase":
        """
        Set the attributes in body, cast to the field types
        Unknown attributes and the primary key are ignored, cast errors are kept for `_s_validate`

        :param body: dict with attribute values
        """
        if not isinstance(body, dict):
            raise ValidationError(f'Parameter "obj" to Document() must be an object, got {body}')
        errors = getattr(self, "_s_cast_errors", None)
        if errors is None:
            errors = self._s_cast_errors = {}
        for name, value in body.items():
            field = self._s_fields.get(name)
            if field is None or field.primary_key:
                continue
            try:
                value = cast_value(field, value)
            except CastError as exc:
                errors[name] = exc
                continue
            errors.pop(name, None)
            setattr(self, name, value)
        return self

    def _s_validate(self, model_name: Optional[str] = None) -> None:
        """
        :raises ValidationError: with the cast errors and the failed validators, by path
        """
        values = {name: getattr(self, name) for name in self._s_fields}
        errors = validate_values(self._s_fields, values, getattr(self, "_s_cast_errors", None))
        if errors:
            raise ValidationError.from_errors(model_name or self._s_collection_name, errors)

    def _s_pre_save(self, **write_options) -> None:
        pass

    def _s_pre_remove(self, **write_options) -> None:
        pass

    def _s_save(self, session=None, write_options: Optional[Dict[str, Any]] = None, commit: bool = True, model_name: Optional[str] = None):
        """
        Validate and save the instance

        :param session: sqla session, defaults to the db session
        :param write_options: options handed to `_s_pre_save`
        :param commit: commit the transaction, only flush otherwise
        """
        session = resourcepy.DB.session if session is None else session
        self._s_pre_save(**(write_options or {}))
        self._s_validate(model_name)
        session.add(self)
        if commit:
            session.commit()
        else:
            session.flush()
        resourcepy.log.debug(f"Saved {self}")
        return self

    def _s_remove(self, session=None, write_options: Optional[Dict[str, Any]] = None, commit: bool = True) -> None:
        session = resourcepy.DB.session if session is None else session
        self._s_pre_remove(**(write_options or {}))
        session.delete(self)
        if commit:
            session.commit()

    def __repr__(self):
        pk = self._s_pk.name
        return f"<{self._s_class_name} {getattr(self, pk, None)}>"
