# Listing of resources:
# filter -> count -> sort -> skip/limit -> project (-> populate)
#
# Two strategies are available:
# - DirectStrategy: ORM query on the model (or on the caller supplied model query), supports populate
# - PipelineStrategy: a Select statement passed through the custom stages declared by the model
#   or the request (`ctx.state.pipeline`), only used when nothing needs to be populated
#
import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from sqlalchemy import Select, func, select
from sqlalchemy.orm import selectinload
import resourcepy
from .errors import CastError, ValidationError
from .filters import compile_filter
from .util import unique_tokens

Stage = Callable[[Select], Select]


def get_param_query(query: Dict[str, Any], name: str) -> Any:
    """
    :return: the select/sort/populate query parameter as a space separated string of unique tokens,
             a populate mapping (populate[path]=...) is returned as is
    """
    value = query.get(name)
    if name == "populate" and isinstance(value, dict):
        return value
    tokens = unique_tokens(value)
    return " ".join(tokens) if tokens else None


def parse_sort(sort: Optional[str]) -> List[Tuple[str, bool]]:
    """
    :param sort: space separated field names, a "-" prefix sorts descending
    :return: list of (field name, descending) tuples
    """
    result = []
    for token in (sort or "").split():
        descending = token.startswith("-")
        result.append((token.lstrip("-+"), descending))
    return result


def parse_select(select_spec: Optional[str]) -> Tuple[List[str], bool]:
    """
    :param select_spec: space separated field names, all prefixed with "-" to exclude them instead
    :return: (field names, exclude)
    """
    tokens = (select_spec or "").split()
    excluded = [token for token in tokens if token.startswith("-")]
    if excluded and len(excluded) != len(tokens):
        raise ValidationError("Projection cannot have a mix of inclusion and exclusion.")
    if excluded:
        return [token[1:] for token in excluded], True
    return tokens, False


def populate_paths(populate: Any) -> List[str]:
    """
    :param populate: populate query value: a space separated string or a mapping with a "path" key
    """
    if populate is None:
        return []
    if isinstance(populate, dict):
        populate = populate.get("path", "")
    return unique_tokens(populate) or []


def project(item: Dict[str, Any], select_spec: Optional[str], pk_name: str) -> Dict[str, Any]:
    """
    Keep the selected keys of item, the primary key is always kept
    """
    names, exclude = parse_select(select_spec)
    if not names:
        return item
    if exclude:
        return {key: value for key, value in item.items() if key not in names or key == pk_name}
    return {key: value for key, value in item.items() if key in names or key == pk_name}


class DirectStrategy:
    """
    List model instances with an ORM query, the instances are serialized with to_dict
    """

    def __init__(self, model, source=None, count_source=None, model_name: Optional[str] = None) -> None:
        self.model = model
        self.model_name = model_name or model._s_collection_name
        self.source = source if source is not None else model._s_query
        self.count_source = count_source if count_source is not None else self.source

    def count(self, criteria: Sequence[Any]) -> int:
        return self.count_source.filter(*criteria).order_by(None).count()

    def fetch(self, criteria, sort=None, select_spec=None, populate=None, skip=0, limit=None) -> List[Dict[str, Any]]:
        paths = populate_paths(populate)
        self.model._s_check_populate(paths, self.model_name)
        query = self.source.filter(*criteria).order_by(None)
        query = query.order_by(*self._order(sort))
        for path in paths:
            query = query.options(selectinload(getattr(self.model, path)))
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        pk_name = self.model._s_pk.name
        return [project(instance.to_dict(populate=paths), select_spec, pk_name) for instance in query]

    def _order(self, sort):
        fields = self.model._s_fields
        result = []
        for name, descending in parse_sort(sort):
            if name not in fields:
                resourcepy.log.warning(f"{self.model_name} has no attribute {name} to sort on")
                continue
            column = getattr(self.model, name)
            result.append(column.desc() if descending else column.asc())
        # ties keep insertion order
        result.append(getattr(self.model, self.model._s_pk.name).asc())
        return result


class PipelineStrategy:
    """
    List the rows of a Select statement built from the model columns and passed through the pipeline stages:

        match (filters) -> custom stages -> sort -> skip -> limit -> project

    A stage is a callable taking the statement and returning the transformed statement
    """

    def __init__(self, model, pipeline: Iterable[Stage], source=None, model_name: Optional[str] = None) -> None:
        self.model = model
        self.model_name = model_name or model._s_collection_name
        self.pipeline = list(pipeline)
        # the where clause of a caller supplied model query is part of the match stage
        self.source_criteria = getattr(source, "whereclause", None) if source is not None else None

    @property
    def session(self):
        return resourcepy.DB.session

    def statement(self, criteria: Sequence[Any]) -> Select:
        stmt = select(*[getattr(self.model, name) for name in self.model._s_fields])
        if self.source_criteria is not None:
            stmt = stmt.where(self.source_criteria)
        if criteria:
            stmt = stmt.where(*criteria)
        for stage in self.pipeline:
            stmt = stage(stmt)
        return stmt

    def count(self, criteria: Sequence[Any]) -> int:
        stmt = self.statement(criteria)
        return self.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

    def fetch(self, criteria, sort=None, select_spec=None, populate=None, skip=0, limit=None) -> List[Dict[str, Any]]:
        stmt = self.statement(criteria)
        columns = {column.key: column for column in stmt.selected_columns}
        order = []
        for name, descending in parse_sort(sort):
            if name not in columns:
                resourcepy.log.warning(f"{self.model_name} pipeline has no column {name} to sort on")
                continue
            order.append(columns[name].desc() if descending else columns[name].asc())
        pk_name = self.model._s_pk.name
        if pk_name in columns:
            order.append(columns[pk_name].asc())
        if order:
            stmt = stmt.order_by(*order)
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        names, exclude = parse_select(select_spec)
        if names:
            keep = [
                column
                for key, column in columns.items()
                if key == pk_name or ((key in names) != exclude)
            ]
            stmt = stmt.with_only_columns(*keep)
        return [dict(row) for row in self.session.execute(stmt).mappings()]


class ListingExecutor:
    """
    Runs the count and the page query of a listing with the right strategy

    :param model: ResourceBase model
    :param source: query replacing the model as query source (ctx.state.model_query)
    :param count_source: query used to count (ctx.state.count_query)
    :param pipeline: custom aggregation stages, the pipeline strategy is used when there are any
    """

    def __init__(self, model, source=None, count_source=None, pipeline: Optional[Iterable[Stage]] = None, model_name: Optional[str] = None):
        self.model = model
        self.model_name = model_name or model._s_collection_name
        self.pipeline = list(pipeline or ())
        self.direct = DirectStrategy(model, source, count_source, self.model_name)
        self.aggregate = PipelineStrategy(model, self.pipeline, source, self.model_name) if self.pipeline else None

    def strategy(self, populate: Any = None):
        if self.aggregate is not None and populate is None:
            return self.aggregate
        return self.direct

    def criteria(self, expression) -> List[Any]:
        return compile_filter(expression, self.model, self.model_name)

    def count(self, expression) -> int:
        return self.strategy().count(self.criteria(expression))

    def fetch(self, expression, sort=None, select_spec=None, populate=None, skip=0, limit=None) -> List[Dict[str, Any]]:
        strategy = self.strategy(populate)
        try:
            return strategy.fetch(self.criteria(expression), sort, select_spec, populate, skip, limit)
        except CastError as exc:
            if populate is not None:
                exc.message = f'Cannot populate "{json.dumps(populate)}" as it is not a reference in this resource'
                resourcepy.log.warning(exc.message)
            raise

    def list(self, expression, sort=None, select_spec=None, populate=None, skip=0, limit=None) -> Tuple[List[Dict[str, Any]], int]:
        """
        :return: (items, total count), the total is computed first
        """
        total = self.count(expression)
        return self.fetch(expression, sort, select_spec, populate, skip, limit), total
