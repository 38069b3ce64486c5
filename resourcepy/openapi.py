"""
OpenAPI 3.1 documents of the exposed resources

The component schemas are generated from the field descriptors of the model, the yaml block of the
model docstring (before the "---" delimiter) is merged into the component of the model:

    class Book(ResourceBase, db.Model):
        '''
        description: A book of the library
        ---
        Implementation notes not shown in the documentation
        '''
"""
import copy
import inspect
import uuid
from typing import Any, Dict, List, Mapping
import yaml
import resourcepy
from .fields import FieldDescriptor
from .resource import PATH_PARAM_RE
from .resource_init import dict_merge

DOC_DELIMITER = "---"
OPENAPI_VERSION = "3.1"


def parse_object_doc(obj) -> Dict[str, Any]:
    """
    Parse the yaml description from the docstring of obj
    """
    api_doc = {}
    # only the docstring of the class itself, not the inherited one
    obj_doc = inspect.cleandoc(obj.__dict__.get("__doc__") or "")
    if not obj_doc:
        return api_doc
    raw_doc = obj_doc.split(DOC_DELIMITER)[0]
    try:
        yaml_doc = yaml.safe_load(raw_doc)
    except yaml.YAMLError as exc:
        resourcepy.log.error(f"Failed to parse documentation {raw_doc} ({exc})")
        yaml_doc = {"description": raw_doc}

    if isinstance(yaml_doc, dict):
        api_doc.update(yaml_doc)
    return api_doc


def openapi_path(route: str) -> str:
    """
    :return: the werkzeug route with OpenAPI path parameters, eg. /parent/<int:parentId>/child -> /parent/{parentId}/child
    """
    return PATH_PARAM_RE.sub(r"{\1}", route)


def nested_parameters(resource) -> List[Dict[str, Any]]:
    """
    :return: the path parameters of the parent resources of a nested route
    """
    parameters = []
    parent = ""
    for part in resource.route.split("/"):
        match = PATH_PARAM_RE.fullmatch(part)
        if match is None:
            parent = part or parent
            continue
        parameters.append(
            {
                "in": "path",
                "name": match.group(1),
                "description": f"The parent model of {resource.model_name}: {parent}",
                "required": True,
                "schema": {"type": "string"},
            }
        )
    return parameters


def _id_schema(field: FieldDescriptor) -> Dict[str, Any]:
    if field.python_type is int:
        return {"type": "integer", "format": "int64"}
    if field.python_type is uuid.UUID:
        return {"type": "string", "format": "uuid"}
    return {"type": "string"}


def _set_constraints(prop: Dict[str, Any], field: FieldDescriptor) -> None:
    if field.description is not None:
        prop["description"] = field.description
    if field.example is not None:
        prop["example"] = field.example
    if field.enum:
        prop["enum"] = list(field.enum)
    if field.minimum is not None:
        prop["minimum"] = field.minimum
    if field.maximum is not None:
        prop["maximum"] = field.maximum


def field_property(field: FieldDescriptor, schemas: Dict[str, Any]) -> Dict[str, Any]:
    """
    :param field: FieldDescriptor
    :param schemas: the component schemas, sub-schemas of arrays and embedded fields are added
    :return: the OpenAPI property of the field
    """
    if field.type == "embedded" and field.schema is not None:
        schemas.update(component_schemas(field.name, field.schema))
        return {"$ref": f"#/components/schemas/{field.name}"}
    if field.type == "array":
        items = field.items
        if items is not None and items.type == "embedded" and items.schema is not None:
            schemas.update(component_schemas(field.name, items.schema))
            return {"type": "array", "title": field.name, "items": {"$ref": f"#/components/schemas/{field.name}"}}
        return {"type": "array", "items": {"type": "string"}}
    if field.type == "id":
        prop = _id_schema(field)
        prop["description"] = "Primary key"
    elif field.type == "reference":
        prop = _id_schema(field)
        prop["description"] = f"Reference to {field.ref}"
    elif field.type == "number":
        prop = {"type": "integer", "format": "int64"}
    elif field.type == "date":
        prop = {"type": "string", "format": "date"}
    elif field.type == "boolean":
        prop = {"type": "boolean"}
    elif field.type == "mixed":
        prop = {"type": "object"}
    else:
        prop = {"type": "string"}
    _set_constraints(prop, field)
    return prop


def component_schemas(name: str, fields: Mapping[str, FieldDescriptor]) -> Dict[str, Any]:
    """
    :return: the schema `name` with the fields as properties, followed by the sub-schemas it references
    """
    schemas: Dict[str, Any] = {}
    model: Dict[str, Any] = {"title": name}
    for field_name, field in fields.items():
        if field_name.startswith("__"):
            continue
        prop = field_property(field, schemas)
        if "$ref" not in prop and field.required:
            model.setdefault("required", []).append(field_name)
        model.setdefault("properties", {})[field_name] = prop
    schemas[name] = model
    return schemas


def _json_content(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {"application/json": {"schema": schema}}


def _id_parameter(resource, action: str) -> Dict[str, Any]:
    return {
        "name": resource.id_param,
        "in": "path",
        "description": f"The ID of the {resource.name} that will be {action}.",
        "required": True,
        "schema": _id_schema(resource.model._s_pk),
    }


def _list_parameters() -> List[Dict[str, Any]]:
    return [
        {
            "name": "skip",
            "in": "query",
            "description": "How many records to skip when listing. Used for pagination.",
            "required": False,
            "schema": {"type": "integer", "default": 0},
        },
        {
            "name": "limit",
            "in": "query",
            "description": "How many records to limit the output.",
            "required": False,
            "schema": {"type": "integer", "default": 10},
        },
        {
            "name": "sort",
            "in": "query",
            "description": "Which fields to sort the records on.",
            "required": False,
            "schema": {"type": "string", "default": ""},
        },
        {
            "name": "select",
            "in": "query",
            "description": "Select which fields will be returned by the query.",
            "required": False,
            "schema": {"type": "string", "default": ""},
        },
        {
            "name": "populate",
            "in": "query",
            "description": "Select which fields will be fully populated with the reference.",
            "required": False,
            "schema": {"type": "string", "default": ""},
        },
    ]


# pylint: disable=too-many-locals
def resource_paths(resource) -> Dict[str, Any]:
    """
    :return: the OpenAPI path items of the registered methods of the resource
    """
    paths: Dict[str, Any] = {}
    methods = resource.methods
    name, model_name = resource.name, resource.model_name
    ref = {"$ref": f"#/components/schemas/{model_name}"}
    list_path = openapi_path(resource.route)

    path_item: Dict[str, Any] = {}
    if "index" in methods:
        path_item["get"] = {
            "tags": [name],
            "summary": f"List multiple {model_name} resources.",
            "description": f"This operation allows you to list and search for {model_name} resources provided query arguments.",
            "operationId": f"get{model_name}s",
            "responses": {
                "401": {"description": "Unauthorized."},
                "200": {
                    "description": "Resource(s) found.  Returned as array.",
                    "content": _json_content({"type": "array", "items": ref}),
                },
            },
            "parameters": _list_parameters() + nested_parameters(resource),
        }
    if "post" in methods:
        path_item["post"] = {
            "tags": [name],
            "summary": f"Create a new {model_name}",
            "description": f"Create a new {model_name}",
            "operationId": f"create{model_name}",
            "responses": {
                "401": {"description": "Unauthorized.  Note that anonymous submissions are *enabled* by default."},
                "400": {"description": "An error has occured trying to create the resource."},
                "201": {"description": "The resource has been created."},
            },
            "requestBody": {
                "description": f"Data used to create a new {model_name}",
                "required": True,
                "content": _json_content(ref),
            },
            "parameters": nested_parameters(resource),
        }
    if path_item:
        paths[list_path] = path_item

    errors = {
        "500": {"description": "An error has occurred."},
        "404": {"description": "Resource not found"},
        "401": {"description": "Unauthorized."},
    }
    path_item = {}
    if "get" in methods:
        path_item["get"] = {
            "tags": [name],
            "summary": f"Return a specific {name} instance.",
            "description": f"Return a specific {name} instance.",
            "operationId": f"get{model_name}",
            "responses": {**errors, "200": {"description": "Resource found", "content": _json_content(ref)}},
            "parameters": [_id_parameter(resource, "retrieved")] + nested_parameters(resource),
        }
    if "put" in methods:
        path_item["put"] = {
            "tags": [name],
            "summary": f"Update a specific {name} instance.",
            "description": f"Update a specific {name} instance.",
            "operationId": f"update{model_name}",
            "responses": {
                **errors,
                "400": {"description": "Resource could not be updated."},
                "200": {"description": "Resource updated", "content": _json_content(ref)},
            },
            "requestBody": {"description": f"Data used to update {model_name}", "required": True, "content": _json_content(ref)},
            "parameters": [_id_parameter(resource, "updated")] + nested_parameters(resource),
        }
    if "patch" in methods:
        path_item["patch"] = {
            "tags": [name],
            "summary": f"Partially update a specific {name} instance.",
            "description": f"Apply a JSON-Patch to a specific {name} instance.",
            "operationId": f"patch{model_name}",
            "responses": {
                **errors,
                "412": {"description": "A json-patch test operation failed, no changes have been applied."},
                "400": {"description": "Invalid json-patch or resource could not be updated."},
                "200": {"description": "Resource updated", "content": _json_content(ref)},
            },
            "requestBody": {
                "description": "JSON-Patch operation(s)",
                "required": True,
                "content": _json_content({"type": "array", "items": {"type": "object"}}),
            },
            "parameters": [_id_parameter(resource, "patched")] + nested_parameters(resource),
        }
    if "delete" in methods:
        path_item["delete"] = {
            "tags": [name],
            "summary": f"Delete a specific {name}",
            "description": f"Delete a specific {name}",
            "operationId": f"delete{model_name}",
            "responses": {
                **errors,
                "400": {"description": "Resource could not be deleted."},
                "204": {"description": "Resource was deleted"},
            },
            "parameters": [_id_parameter(resource, "deleted")] + nested_parameters(resource),
        }
    if path_item:
        paths[f"{list_path}/{{{resource.id_param}}}"] = path_item

    for method in methods:
        if not method.startswith("virtual/"):
            continue
        virtual_name = method.split("/", 1)[1]
        paths[f"{list_path}/{method}"] = {
            "get": {
                "tags": [name, "virtual"],
                "summary": f"Virtual resource for {name} named {virtual_name}",
                "description": f"get {model_name} {virtual_name}",
                "operationId": f"get{model_name}{virtual_name.title().replace('/', '')}",
                "responses": {**errors, "200": {"description": "Resource found"}},
                "parameters": nested_parameters(resource),
            }
        }
    return paths


def resource_document(resource) -> Dict[str, Any]:
    """
    :param resource: Resource
    :return: the OpenAPI document of the resource
    """
    schemas = component_schemas(resource.model_name, resource.model._s_fields)
    object_doc = parse_object_doc(resource.model)
    if object_doc:
        dict_merge(schemas[resource.model_name], object_doc)
    return {
        "info": {"title": f"OpenAPI v3.1 for {resource.model_name}", "version": resource.version},
        "components": {"schemas": schemas},
        "paths": resource_paths(resource),
        "openapi": OPENAPI_VERSION,
    }


def merge_documents(resources, title: str, version: str, custom: Mapping[str, Any] = None) -> Dict[str, Any]:
    """
    Merge the documents of all resources into a single api document
    :param custom: document merged on top of the generated one
    """
    result: Dict[str, Any] = {
        "info": {"title": title, "version": version},
        "components": {"schemas": {}},
        "paths": {},
        "openapi": OPENAPI_VERSION,
    }
    for resource in resources:
        document = resource.openapi()
        result["components"]["schemas"].update(copy.deepcopy(document["components"]["schemas"]))
        result["paths"].update(copy.deepcopy(document["paths"]))
    if custom:
        dict_merge(result, copy.deepcopy(custom))
    return result
