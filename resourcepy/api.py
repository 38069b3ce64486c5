# flask_restful API subclass
from typing import Any, Dict, List, Optional
import yaml
from flask import Response, request
from flask.app import Flask
from flask_restful import Api, Resource as FRSResource
from flask_restful.utils import OrderedDict
import resourcepy
from .__about__ import __version__
from .config import get_config
from .hooks import HookRegistry
from .json_encoder import ResourceJSONProvider, output_json
from .openapi import merge_documents
from .resource import Resource, ResourceView, endpoint_name

DEFAULT_REPRESENTATIONS = [("application/json", output_json)]


class OpenAPIView(FRSResource):
    """
    Serves the OpenAPI document of all exposed resources, `?yaml=1` returns it as yaml
    """

    resource_api = None

    def get(self):
        document = self.resource_api.openapi()
        if request.args.get("yaml"):
            return Response(yaml.dump(document, sort_keys=False), content_type="text/yaml")
        return document


class ResourceAPI(Api):
    """
    Subclass of the flask_restful API class where we add the expose_object method,
    this method registers the REST routes of a ResourceBase model and its OpenAPI documentation
    """

    def __init__(
        self,
        app: Flask,
        prefix: str = "",
        title: str = "resourcepy",
        version: str = __version__,
        swaggerui_blueprint: bool = True,
        **kwargs,
    ) -> None:
        """
        :param app: Flask application
        :param prefix: url prefix of the api
        :param title: title of the OpenAPI document
        :param version: version of the OpenAPI document
        :param swaggerui_blueprint: serve the swagger ui
        :param kwargs: custom_openapi (document merged into the generated document), app_db and RESOURCEPY settings
        """
        self._custom_openapi = kwargs.pop("custom_openapi", {})
        app_db = kwargs.pop("app_db", None)
        resourcepy.RESOURCEPY(app, app_db=app_db, prefix=prefix, swaggerui_blueprint=swaggerui_blueprint, **kwargs)
        super().__init__(app, prefix=prefix)
        app.json = ResourceJSONProvider(app)
        self.representations = OrderedDict(DEFAULT_REPRESENTATIONS)
        self.title = title
        self.version = version
        self.registry = HookRegistry()
        self.resources: List[Resource] = []

        openapi_view = type("OpenAPIView_API", (OpenAPIView,), {"resource_api": self})
        self.add_resource(openapi_view, get_config("OPENAPI_URL"), endpoint="openapi")

    def resource(self, model, route: str = "", model_name: Optional[str] = None, **options) -> Resource:
        """
        Create a Resource for model without registering any route,
        the routes are registered by calling the route methods (index, get, post, ...) of the resource

        :param model: ResourceBase subclass
        :param route: url prefix of the resource
        :param model_name: resource name, defaults to the table name
        :param options: resource options
        """
        model_name = model_name or model._s_collection_name
        resource = Resource(self, route, model_name, model, options)
        self.resources.append(resource)
        return resource

    def expose_object(self, model, route: str = "", model_name: Optional[str] = None, **options) -> Resource:
        """This method registers all REST routes of a model
        :param model: ResourceBase subclass that we would like to expose
        :param route: url prefix, eg. "/api" or "/api/parent/<parentId>" for nested resources
        :param model_name: resource name, defaults to the table name
        :param options: resource options: hooks (before, after, before_<method>, after_<method>, hooks),
                        convert_ids, query_filter, version

        the routes are `{route}/{name}` and `{route}/{name}/<{name}Id>` with name = model_name.lower()
        """
        resource = self.resource(model, route, model_name, **options)
        resourcepy.log.info(f"Exposing {resource.model_name} on {resource.route}")
        return resource.rest()

    def add_route(self, path: str, method: str, http_method: str) -> None:
        """
        Add the flask_restful view of a registered resource method
        """
        endpoint = endpoint_name(path, method)
        properties = {"registry": self.registry, "path": path, "method_name": method}
        view = type(f"{ResourceView.__name__}_{endpoint}", (ResourceView,), properties)
        resourcepy.log.debug(f"Adding {http_method} {path}, endpoint: {endpoint}")
        self.add_resource(view, path, endpoint=endpoint, methods=[http_method])

    def openapi(self, reset_cache: bool = False) -> Dict[str, Any]:
        """
        :return: the OpenAPI document of all resources with the custom document merged in
        """
        if reset_cache:
            for resource in self.resources:
                resource.openapi(reset_cache=True)
        return merge_documents(self.resources, self.title, self.version, self._custom_openapi)
