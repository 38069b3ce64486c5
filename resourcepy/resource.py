#
# Resource route handlers
#
# Every route method (index, get, virtual, post, put, patch, delete) is a chain of hooks:
#
#   error -> before -> before_query -> hooks[method].before -> query -> hooks[method].after
#         -> after_query -> after -> respond
#
# The query stages capture the data layer errors in ctx.state.resource and jump to the `after`
# hooks, `respond` turns ctx.state.resource into the response status and body.
#
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from flask import Response, request
from flask_restful import Resource as FRSResource
from sqlalchemy import Select
from sqlalchemy.exc import SQLAlchemyError, StatementError
import resourcepy
from .config import is_debug
from .errors import CastError, DatabaseError, ResourceError, error_summary
from .filters import Equals, FilterTranslator
from .hooks import MethodOptions, compose, get_method_options
from .json_encoder import to_json_compatible
from .listing import ListingExecutor, get_param_query, populate_paths
from .pagination import Paginator
from .patch import PatchEngine

DATA_ERRORS = (ResourceError, SQLAlchemyError)
HTTP_METHODS = {"index": "GET", "get": "GET", "virtual": "GET", "post": "POST", "put": "PUT", "patch": "PATCH", "delete": "DELETE"}
PRECONDITION_FAILED = "Precondition Failed"
PRECONDITION_MESSAGE = "A json-patch test op has failed. No changes have been applied to the document"
PATH_PARAM_RE = re.compile(r"<(?:[^:<>]+:)?([^<>]+)>")


@dataclass
class ResourceResult:
    """
    The outcome of a route method, rendered by Resource.respond
    """

    status: Optional[int] = None
    item: Any = None
    error: Any = None
    name: Optional[str] = None
    message: Optional[str] = None
    patch: Any = None
    deleted: bool = False


@dataclass
class ResourceState:
    """
    Request state shared by the hooks of a route

    Hooks may set:
    - skip_resource: don't touch the data, the request answers 404
    - model: model class used instead of the exposed model
    - model_query: sqla query replacing the model as query source
    - count_query: sqla query used to count the listed items
    - conditions: equality filters that always apply and can't be overridden from the query string
    - write_options: options handed to the `_s_pre_save` and `_s_pre_remove` methods
    - skip_delete: answer a delete request without removing the item
    - pipeline: aggregation stages replacing the stages of the model
    """

    skip_resource: bool = False
    model: Any = None
    model_query: Any = None
    count_query: Any = None
    conditions: Dict[str, Any] = field(default_factory=dict)
    write_options: Dict[str, Any] = field(default_factory=dict)
    skip_delete: bool = False
    pipeline: Any = None
    resource: Optional[ResourceResult] = None
    item: Any = None
    instance: Any = None
    populate: Any = None
    many: bool = False
    method: Optional[str] = None
    query: Any = None
    find_query: Any = None
    listing: Optional[ListingExecutor] = None
    page: Any = None


class ResourceContext:
    """
    The request as seen by the hooks

    :param params: path parameters, eg. {"resource1Id": "1"}
    :param query: parsed query string
    :param headers: request headers, lowercase names
    :param payload: request json body
    :param url: request path with query string
    """

    def __init__(self, params=None, query=None, headers=None, payload=None, url=""):
        self.params = dict(params or {})
        self.query = dict(query or {})
        self.headers = {name.lower(): value for name, value in (headers or {}).items()}
        self.payload = {} if payload is None else payload
        self.url = url
        self.state = ResourceState()
        self.status: Optional[int] = None
        self.body: Any = None
        self.response_headers: Dict[str, str] = {}

    @classmethod
    def from_request(cls, view_args=None) -> "ResourceContext":
        return cls(
            params=view_args,
            query=request.query_params,
            headers=request.lower_headers,
            payload=request.get_payload(),
            url=request.path_with_query,
        )


def render(ctx: ResourceContext):
    """
    :return: the response of a processed context, a text 404 when nothing handled the request
    """
    if ctx.status is None and ctx.body is None:
        return Response("Not Found", status=404, mimetype="text/plain")
    return ctx.body, ctx.status or 200, ctx.response_headers


def _error_message(error):
    if isinstance(error, ResourceError):
        return error.message
    if isinstance(error, StatementError) and error.orig is not None and not is_debug():
        # the driver message, without the statement and its parameters
        return str(error.orig)
    if isinstance(error, Exception):
        return str(error)
    return None


def _reduce_errors(errors):
    if isinstance(errors, dict):
        return {path: error_summary(error) for path, error in errors.items()}
    if isinstance(errors, list):
        return [error_summary(error) for error in errors]
    return errors


def _fetch_virtual(query):
    """
    :param query: sqla Query, Select or callable returning the result
    """
    if callable(query) and not isinstance(query, Select):
        return query()
    if isinstance(query, Select):
        return [dict(row) for row in resourcepy.DB.session.execute(query).mappings()]
    return [row._asdict() if hasattr(row, "_asdict") else row for row in query.all()]


# pylint: disable=too-many-instance-attributes,too-many-statements
class Resource:
    """
    REST interface of a ResourceBase model

    :param api: ResourceAPI the routes are registered with
    :param route: url prefix, eg. "/test" or "/test/<parentId>" for nested resources
    :param model_name: resource name, the route is `{route}/{model_name.lower()}`
    :param model: ResourceBase subclass
    :param options: resource options (convert_ids, query_filter, version, hooks ...)
    """

    def __init__(self, api, route: str, model_name: str, model, options: Optional[Dict[str, Any]] = None) -> None:
        self.api = api
        self.options = dict(options or {})
        self.version = self.options.get("version", "1.0.0")
        self.name = model_name.lower()
        self.model = model
        self.model_name = model_name
        self.route = f"{route}/{self.name}"
        self.methods: List[str] = []
        self.stack: Dict[str, Callable] = {}
        self._openapi = None

    @property
    def id_param(self) -> str:
        return f"{self.name}Id"

    @property
    def instance_route(self) -> str:
        return f"{self.route}/<{self.id_param}>"

    def _method_options(self, method: str, options) -> MethodOptions:
        if options is None:
            options = self.options
        elif not isinstance(options, MethodOptions):
            options = {**self.options, **options}
        return get_method_options(method, options)

    def _model(self, ctx):
        return ctx.state.model if ctx.state.model is not None else self.model

    def _source(self, ctx):
        return ctx.state.model_query if ctx.state.model_query is not None else self._model(ctx)._s_query

    @staticmethod
    def _fail(ctx, error, status=400, **kwargs) -> None:
        resourcepy.log.debug(f"{ctx.state.method}: {error!r}")
        # drop the pending changes of the failed request
        resourcepy.DB.session.rollback()
        ctx.state.resource = ResourceResult(status, error=error, **kwargs)

    def _find(self, ctx, after, next):
        """
        Look up the instance of the id path parameter, the 400/404 results are rendered by `after`
        :return: the instance or None
        """
        item_id = ctx.params.get(self.id_param)
        ctx.state.query = self._source(ctx)
        try:
            instance = self._model(ctx).get_instance(item_id, ctx.state.query, self.model_name)
        except DATA_ERRORS as exc:
            self._fail(ctx, exc)
            after(ctx, next)
            return None
        if instance is None:
            resourcepy.log.debug(f"No {self.name} found with {self.id_param}: {json.dumps(item_id)}")
            ctx.state.resource = ResourceResult(404, error="")
            after(ctx, next)
        return instance

    def _register(self, method: str, path: str, before_query, query, after_query, after, options: MethodOptions) -> None:
        """
        Compose the route chain and register it with the api
        """

        def error(ctx, next):
            try:
                return next()
            except Exception as exc:  # pylint: disable=broad-except
                resourcepy.log.exception(exc)
                resourcepy.DB.session.rollback()
                resource = ctx.state.resource
                ctx.status = (resource.status if resource is not None else None) or ctx.status or 400
                ctx.body = {"message": str(exc)}
                return None

        chain = compose([error, compose(options.before), before_query, options.hook_before, query, options.hook_after, after_query, after])
        http_method = HTTP_METHODS[method.split("/")[0]]
        self.api.registry.register(path, method, self, chain)
        self.api.add_route(path, method, http_method)
        self.stack[method] = self._stack_processor(http_method, path, chain)
        if method not in self.methods:
            self.methods.append(method)

    def _stack_processor(self, http_method: str, path: str, chain):
        """
        Run the chain of a route without a client request

            response = resource.stack["patch"]([{"op": "replace", "path": "/title", "value": "x"}], {"resource1Id": 1})
        """

        def process(body=None, params=None, query=None):
            app = self.api.app
            params = params or {}
            url = PATH_PARAM_RE.sub(lambda match: str(params.get(match.group(1), "")), path)
            with app.test_request_context(url, method=http_method, headers={"content-type": "application/json"}):
                ctx = ResourceContext(params=params, query=query, payload=body, url=url)
                chain(ctx)
                result = render(ctx)
                if isinstance(result, Response):
                    return result
                return self.api.make_response(*result)

        return process

    def _after(self, options: MethodOptions):
        return compose(options.after + [self.respond])

    @staticmethod
    def respond(ctx: ResourceContext, next=None) -> None:
        """
        Set the response status and body from ctx.state.resource
        """
        resource = ctx.state.resource
        if resource is None:
            return
        if resource.status == 404:
            ctx.status = 404
            ctx.body = {"status": 404, "errors": ["Resource not found"]}
        elif resource.status in (400, 500):
            body = {"status": resource.status}
            message = _error_message(resource.error)
            if message is not None:
                body["message"] = message
            errors = _reduce_errors(getattr(resource.error, "errors", None))
            if errors is not None:
                body["errors"] = errors
            ctx.status = resource.status
            ctx.body = body
        elif resource.status == 204:
            # keep the empty result set
            resourcepy.log.debug(f"respond: 204 -> {ctx.state.method}")
            ctx.status = 200
            if ctx.body is None:
                ctx.body = [] if ctx.state.method == "index" else {}
        elif resource.status == 412:
            ctx.status = 412
            ctx.body = {
                "status": 412,
                "name": resource.name,
                "message": resource.message,
                "item": resource.item,
                "patch": resource.patch,
            }
        else:
            ctx.status = resource.status
            ctx.body = resource.item

    def rest(self, options=None) -> "Resource":
        """
        Register all the route methods
        """
        return self.index(options).get(options).virtual(options).put(options).patch(options).post(options).delete(options)

    def index(self, options=None) -> "Resource":
        method_options = self._method_options("index", options)
        after = self._after(method_options)

        def before_query(ctx, next):
            resourcepy.log.debug("index: beforeQuery")
            ctx.state.method = "index"
            if ctx.state.skip_resource:
                resourcepy.log.debug("index: skipping resource")
                return after(ctx, next)

            model = self._model(ctx)
            pipeline = ctx.state.pipeline if ctx.state.pipeline is not None else model._s_pipeline
            ctx.state.query = ctx.state.model_query
            ctx.state.listing = ListingExecutor(model, ctx.state.model_query, ctx.state.count_query, pipeline, self.model_name)

            conditions = ctx.state.conditions or {}
            translator = FilterTranslator(model._s_fields, method_options.settings)
            ctx.state.find_query = translator.translate(ctx.query, conditions.keys())
            for name, value in conditions.items():
                ctx.state.find_query[name] = Equals(value)

            try:
                total = ctx.state.listing.count(ctx.state.find_query)
            except DATA_ERRORS as exc:
                self._fail(ctx, exc)
                return after(ctx, next)

            ctx.state.page = Paginator().paginate(total, ctx.query, ctx.headers, ctx.url)
            ctx.status = ctx.state.page.status
            ctx.response_headers.update(ctx.state.page.headers)

            ctx.state.populate = get_param_query(ctx.query, "populate")
            if ctx.state.populate is not None:
                resourcepy.log.debug(f"index: populate {json.dumps(ctx.state.populate)}")
            return next()

        def query(ctx, next):
            resourcepy.log.debug("index: query")
            page = ctx.state.page
            try:
                ctx.state.item = ctx.state.listing.fetch(
                    ctx.state.find_query,
                    sort=get_param_query(ctx.query, "sort"),
                    select_spec=get_param_query(ctx.query, "select"),
                    populate=ctx.state.populate,
                    skip=page.skip,
                    limit=page.limit,
                )
            except DATA_ERRORS as exc:
                self._fail(ctx, exc)
                return after(ctx, next)
            return next()

        def after_query(ctx, next):
            resourcepy.log.debug("index: afterQuery")
            ctx.state.resource = ResourceResult(ctx.status, item=ctx.state.item)
            return next()

        self._register("index", self.route, before_query, query, after_query, after, method_options)
        return self

    def get(self, options=None) -> "Resource":
        method_options = self._method_options("get", options)
        after = self._after(method_options)

        def before_query(ctx, next):
            resourcepy.log.debug("get: beforeQuery")
            ctx.state.method = "get"
            if ctx.state.skip_resource:
                resourcepy.log.debug("get: skipping resource")
                return after(ctx, next)
            ctx.state.query = self._source(ctx)
            ctx.state.populate = get_param_query(ctx.query, "populate")
            if ctx.state.populate is not None:
                resourcepy.log.debug(f"get: populate {json.dumps(ctx.state.populate)}")
            return next()

        def query(ctx, next):
            resourcepy.log.debug("get: query")
            model = self._model(ctx)
            paths = populate_paths(ctx.state.populate)
            try:
                model._s_check_populate(paths, self.model_name)
                instance = model.get_instance(ctx.params.get(self.id_param), ctx.state.query, self.model_name)
            except CastError as exc:
                if ctx.state.populate is not None:
                    exc.message = f'Cannot populate "{json.dumps(ctx.state.populate)}" as it is not a reference in this resource'
                self._fail(ctx, exc)
                return after(ctx, next)
            except DATA_ERRORS as exc:
                self._fail(ctx, exc)
                return after(ctx, next)
            if instance is None:
                ctx.state.resource = ResourceResult(404)
                return after(ctx, next)
            ctx.state.instance = instance
            ctx.state.item = instance.to_dict(populate=paths)
            return next()

        def after_query(ctx, next):
            resourcepy.log.debug("get: afterQuery (select)")
            select_spec = get_param_query(ctx.query, "select")
            if select_spec is not None:
                item = ctx.state.item
                pk_name = self._model(ctx)._s_pk.name
                selected = {}
                # the id is always returned
                if item.get(pk_name) is not None:
                    selected[pk_name] = item[pk_name]
                for key in select_spec.split(" "):
                    if key in item:
                        selected[key] = item[key]
                ctx.state.item = selected
            ctx.state.resource = ResourceResult(200, item=ctx.state.item)
            return next()

        self._register("get", self.instance_route, before_query, query, after_query, after, method_options)
        return self

    def virtual(self, options=None) -> "Resource":
        """
        Register a GET route returning the result of the `model_query` set by the before hooks,
        options must contain the `path` of the route and the `before` hooks
        """
        if not options or not options.get("path") or options.get("before") is None:
            return self
        path = options["path"]
        method = f"virtual/{path}"
        method_options = self._method_options("virtual", options)
        after = self._after(method_options)

        def before_query(ctx, next):
            resourcepy.log.debug("virtual: beforeQuery")
            ctx.state.method = "virtual"
            if ctx.state.skip_resource:
                resourcepy.log.debug("virtual: skipping resource")
                return after(ctx, next)
            ctx.state.query = ctx.state.model_query
            if ctx.state.query is None:
                ctx.state.resource = ResourceResult(404)
                return after(ctx, next)
            return next()

        def query(ctx, next):
            resourcepy.log.debug("virtual: query")
            try:
                ctx.state.item = _fetch_virtual(ctx.state.query)
            except DATA_ERRORS as exc:
                self._fail(ctx, exc)
                return after(ctx, next)
            if ctx.state.item is None:
                ctx.state.resource = ResourceResult(404)
                return after(ctx, next)
            return next()

        def after_query(ctx, next):
            resourcepy.log.debug("virtual: afterQuery")
            ctx.state.resource = ResourceResult(200, item=ctx.state.item)
            return next()

        self._register(method, f"{self.route}/virtual/{path}", before_query, query, after_query, after, method_options)
        return self

    def post(self, options=None) -> "Resource":
        method_options = self._method_options("post", options)
        after = self._after(method_options)

        def before_query(ctx, next):
            resourcepy.log.debug("post: beforeQuery")
            ctx.state.method = "post"
            if ctx.state.skip_resource:
                resourcepy.log.debug("post: skipping resource")
                return after(ctx, next)

            model = self._model(ctx)
            payload = ctx.payload
            try:
                if isinstance(payload, list) and payload:
                    ctx.state.many = True
                    ctx.state.item = [model()._s_set(body) for body in payload]
                else:
                    ctx.state.item = model()._s_set(payload if payload != [] else {})
            except DATA_ERRORS as exc:
                self._fail(ctx, exc)
                return after(ctx, next)
            return next()

        def query(ctx, next):
            resourcepy.log.debug("post: query")
            write_options = ctx.state.write_options or {}
            try:
                if ctx.state.many:
                    self._save_many(ctx.state.item, write_options)
                else:
                    ctx.state.item._s_save(write_options=write_options, model_name=self.model_name)
            except DATA_ERRORS as exc:
                self._fail(ctx, exc)
                return after(ctx, next)
            resourcepy.log.debug(f"post: {ctx.state.item}")
            return next()

        def after_query(ctx, next):
            resourcepy.log.debug("post: afterQuery")
            ctx.state.resource = ResourceResult(201, item=ctx.state.item)
            return next()

        self._register("post", self.route, before_query, query, after_query, after, method_options)
        return self

    def _save_many(self, items, write_options) -> None:
        """
        Save all items in a single transaction
        :raises DatabaseError: any item failed, nothing has been saved
        """
        session = resourcepy.DB.session
        try:
            for item in items:
                item._s_save(session, write_options, commit=False, model_name=self.model_name)
            session.commit()
        except DATA_ERRORS as exc:
            session.rollback()
            session.close()
            raise DatabaseError() from exc

    def put(self, options=None) -> "Resource":
        method_options = self._method_options("put", options)
        after = self._after(method_options)

        def before_query(ctx, next):
            resourcepy.log.debug("put: beforeQuery")
            ctx.state.method = "put"
            if ctx.state.skip_resource:
                resourcepy.log.debug("put: skipping resource")
                return after(ctx, next)

            payload = ctx.payload
            if isinstance(payload, dict):
                # version key of the document store
                payload = {key: value for key, value in payload.items() if key != "__v"}
            instance = self._find(ctx, after, next)
            if instance is None:
                return None
            try:
                instance._s_set(payload)
            except DATA_ERRORS as exc:
                self._fail(ctx, exc)
                return after(ctx, next)
            ctx.state.item = ctx.state.instance = instance
            return next()

        def query(ctx, next):
            resourcepy.log.debug("put: query")
            try:
                ctx.state.item._s_save(write_options=ctx.state.write_options or {}, model_name=self.model_name)
            except DATA_ERRORS as exc:
                self._fail(ctx, exc)
                return after(ctx, next)
            resourcepy.log.debug(f"put: {ctx.state.item}")
            return next()

        def after_query(ctx, next):
            resourcepy.log.debug("put: afterQuery")
            ctx.state.resource = ResourceResult(200, item=ctx.state.item)
            return next()

        self._register("put", self.instance_route, before_query, query, after_query, after, method_options)
        return self

    def patch(self, options=None) -> "Resource":
        method_options = self._method_options("patch", options)
        after = self._after(method_options)

        def before_query(ctx, next):
            resourcepy.log.debug("patch: beforeQuery")
            ctx.state.method = "patch"
            if ctx.state.skip_resource:
                resourcepy.log.debug("patch: skipping resource")
                return after(ctx, next)

            instance = self._find(ctx, after, next)
            if instance is None:
                return None
            document = to_json_compatible(instance.to_dict())
            result = PatchEngine().apply(document, ctx.payload)
            if not result.ok:
                failure = result.failure
                resourcepy.log.debug(f"patch: {failure.kind} {failure.message}")
                if failure.precondition:
                    ctx.state.resource = ResourceResult(
                        412, name=PRECONDITION_FAILED, message=PRECONDITION_MESSAGE, item=document, patch=failure.operation
                    )
                else:
                    ctx.state.resource = ResourceResult(400, item=document, error=failure.to_error())
                return after(ctx, next)

            patched = result.document
            if isinstance(patched, dict):
                # removed members are cleared
                patched = {name: patched.get(name) for name in self._model(ctx)._s_fields}
            try:
                instance._s_set(patched)
            except DATA_ERRORS as exc:
                self._fail(ctx, exc, item=document)
                return after(ctx, next)
            ctx.state.item = ctx.state.instance = instance
            return next()

        def query(ctx, next):
            resourcepy.log.debug("patch: query")
            try:
                ctx.state.item._s_save(write_options=ctx.state.write_options or {}, model_name=self.model_name)
            except DATA_ERRORS as exc:
                self._fail(ctx, exc)
                return after(ctx, next)
            return next()

        def after_query(ctx, next):
            resourcepy.log.debug("patch: afterQuery")
            ctx.state.resource = ResourceResult(200, item=ctx.state.item)
            return next()

        self._register("patch", self.instance_route, before_query, query, after_query, after, method_options)
        return self

    def delete(self, options=None) -> "Resource":
        method_options = self._method_options("delete", options)
        after = self._after(method_options)

        def before_query(ctx, next):
            resourcepy.log.debug("delete: beforeQuery")
            ctx.state.method = "delete"
            if ctx.state.skip_resource:
                resourcepy.log.debug("delete: skipping resource")
                return after(ctx, next)

            instance = self._find(ctx, after, next)
            if instance is None:
                return None
            ctx.state.instance = instance
            ctx.state.item = instance.to_dict()
            if ctx.state.skip_delete:
                ctx.state.resource = ResourceResult(204, item=ctx.state.item, deleted=True)
                return after(ctx, next)
            return next()

        def query(ctx, next):
            resourcepy.log.debug("delete: query")
            try:
                ctx.state.instance._s_remove(write_options=ctx.state.write_options or {})
            except DATA_ERRORS as exc:
                self._fail(ctx, exc)
                return after(ctx, next)
            return next()

        def after_query(ctx, next):
            resourcepy.log.debug("delete: afterQuery")
            ctx.state.resource = ResourceResult(204, item=ctx.state.item, deleted=True)
            return next()

        self._register("delete", self.instance_route, before_query, query, after_query, after, method_options)
        return self

    def openapi(self, reset_cache: bool = False) -> Dict[str, Any]:
        """
        :return: the OpenAPI document of this resource
        """
        from .openapi import resource_document

        if self._openapi is None or reset_cache:
            self._openapi = resource_document(self)
        return self._openapi


class ResourceView(FRSResource):
    """
    flask_restful view running the chain registered for `path` and `method_name`,
    subclasses are created for every route by ResourceAPI.add_route
    """

    registry = None
    path = ""
    method_name = ""

    def _handle(self, **kwargs):
        chain = self.registry.chain(self.path, self.method_name)
        ctx = ResourceContext.from_request(kwargs)
        chain(ctx)
        return render(ctx)

    def get(self, **kwargs):
        return self._handle(**kwargs)

    post = put = patch = delete = get


def endpoint_name(path: str, method: str) -> str:
    return re.sub(r"\W", "_", f"{path}_{method}").strip("_")
