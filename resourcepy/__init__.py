# flake8: noqa: F401
#
# REST resources with filtering, range pagination, JSON-Patch and OpenAPI documentation
# for Flask-SQLAlchemy models
#
from .resource_init import DB, log, RESOURCEPY, dict_merge
from .errors import ResourceError, ValidationError, CastError, DatabaseError, JsonPatchError
from .base import ResourceBase
from .json_encoder import ResourceJSONProvider, ResourceJSONEncoder
from .hooks import compose, HookRegistry
from .patch import PatchEngine
from .resource import Resource, ResourceContext
from .api import ResourceAPI
from .__about__ import __version__, __description__

__all__ = (
    "__version__",
    "__description__",
    #
    "ResourceAPI",
    "Resource",
    "ResourceContext",
    "RESOURCEPY",
    # db:
    "DB",
    "ResourceBase",
    # encoding:
    "ResourceJSONProvider",
    "ResourceJSONEncoder",
    # hooks:
    "compose",
    "HookRegistry",
    "PatchEngine",
    # Errors:
    "ResourceError",
    "ValidationError",
    "CastError",
    "DatabaseError",
    "JsonPatchError",
)
