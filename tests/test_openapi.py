import yaml

from resourcepy.openapi import nested_parameters, openapi_path, parse_object_doc

from conftest import Book, Resource1, Search


def test_component_schemas(api, resource1):
    schemas = api.openapi()["components"]["schemas"]
    resource = schemas["resource1"]
    assert resource["title"] == "resource1"
    assert resource["required"] == ["title"]
    assert resource["description"] == "A resource with a required title"
    properties = resource["properties"]
    assert properties["id"] == {"type": "integer", "format": "int64", "description": "Primary key"}
    assert properties["title"] == {"type": "string"}
    assert properties["age"] == {"type": "integer", "format": "int64"}
    assert properties["list"] == {"type": "array", "title": "list", "items": {"$ref": "#/components/schemas/list"}}
    assert properties["list2"] == {"type": "array", "items": {"type": "string"}}
    assert schemas["list"] == {
        "title": "list",
        "properties": {"label": {"type": "string"}, "data": {"type": "array", "items": {"type": "string"}}},
    }


def test_field_constraints(api, books):
    properties = api.openapi()["components"]["schemas"]["book"]["properties"]
    assert properties["title"] == {"type": "string", "description": "The title", "example": "Dune"}
    assert properties["status"] == {"type": "string", "enum": ["draft", "published"]}
    assert properties["pages"] == {"type": "integer", "format": "int64", "minimum": 1, "maximum": 5000}
    assert properties["author_id"] == {"type": "integer", "format": "int64", "description": "Reference to author"}


def test_paths(api, resource1):
    paths = api.openapi()["paths"]
    assert set(paths) == {"/test/resource1", "/test/resource1/{resource1Id}"}
    operations = {method: operation["operationId"] for path in paths.values() for method, operation in path.items()}
    assert operations == {
        "get": "getresource1",
        "post": "createresource1",
        "put": "updateresource1",
        "patch": "patchresource1",
        "delete": "deleteresource1",
    }
    assert paths["/test/resource1"]["get"]["operationId"] == "getresource1s"
    parameter = paths["/test/resource1/{resource1Id}"]["get"]["parameters"][0]
    assert parameter["name"] == "resource1Id"
    assert parameter["in"] == "path"
    assert parameter["schema"] == {"type": "integer", "format": "int64"}
    names = [parameter["name"] for parameter in paths["/test/resource1"]["get"]["parameters"]]
    assert names == ["skip", "limit", "sort", "select", "populate"]
    assert "412" in paths["/test/resource1/{resource1Id}"]["patch"]["responses"]


def test_virtual_path(api, search):
    api.resource(Search, "/test").virtual({"path": "young", "before": lambda ctx, next: next()})
    paths = api.openapi()["paths"]
    operation = paths["/test/search/virtual/young"]["get"]
    assert operation["operationId"] == "getsearchYoung"
    assert operation["tags"] == ["search", "virtual"]


def test_nested_route(api):
    resource = api.resource(Book, "/test/author/<int:authorId>")
    resource.index()
    assert openapi_path(resource.route) == "/test/author/{authorId}/book"
    parameters = nested_parameters(resource)
    assert parameters == [
        {
            "in": "path",
            "name": "authorId",
            "description": "The parent model of book: author",
            "required": True,
            "schema": {"type": "string"},
        }
    ]
    assert "/test/author/{authorId}/book" in api.openapi()["paths"]


def test_custom_document(app):
    from resourcepy import ResourceAPI

    api = ResourceAPI(app, title="custom", version="2.0.0", swaggerui_blueprint=False, custom_openapi={"info": {"description": "merged"}})
    document = api.openapi()
    assert document["info"] == {"title": "custom", "version": "2.0.0", "description": "merged"}
    assert document["openapi"] == "3.1"


def test_openapi_endpoint(client, resource1):
    response = client.get("/openapi.json")
    assert response.status_code == 200
    assert "resource1" in response.json["components"]["schemas"]

    response = client.get("/openapi.json?yaml=1")
    assert response.status_code == 200
    assert response.content_type.startswith("text/yaml")
    assert "/test/resource1" in yaml.safe_load(response.get_data(as_text=True))["paths"]


def test_parse_object_doc():
    class Documented:
        """
        description: documented
        x-custom: 1
        ---
        not part of the documentation
        """

    class Undocumented(Documented):
        pass

    class Plain:
        """A plain docstring"""

    assert parse_object_doc(Documented) == {"description": "documented", "x-custom": 1}
    assert parse_object_doc(Undocumented) == {}
    assert parse_object_doc(Plain) == {}
    assert parse_object_doc(Resource1) == {"description": "A resource with a required title"}
