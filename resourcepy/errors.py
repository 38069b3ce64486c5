# Exception Handlers
#
# The application loglevel determines the level of detail shown to the user.
# If set to debug, too much sensitive info might be shown !
#
# Errors raised by the data layer are captured by the route handlers and rendered, for example:
# {
#      "status": 400,
#      "message": "resource1 validation failed: title: Path `title` is required.",
#      "errors": {"title": {"path": "title", "name": "ValidatorError", "message": "Path `title` is required."}}
# }
#
import resourcepy
from sqlalchemy.exc import DontWrapMixin
from http import HTTPStatus
from .util import js_quote, js_string, js_type


class ResourceError(Exception, DontWrapMixin):
    """
    Base class of the errors raised by resourcepy
    """

    status_code = HTTPStatus.BAD_REQUEST.value
    name = "Error"
    message = ""
    errors = None

    def __init__(self, message="", status_code=None):
        Exception.__init__(self, message)
        if status_code is not None:
            self.status_code = status_code
        self.message = message

    def __str__(self):
        return self.message


class ValidationError(ResourceError):
    """
    This exception is raised when invalid input has been detected (client side input)
    Always send back the message to the client in the response
    :param errors: mapping of path to the error of that path
    """

    status_code = HTTPStatus.BAD_REQUEST.value
    name = "ValidationError"

    def __init__(self, message="", status_code=HTTPStatus.BAD_REQUEST.value, errors=None):
        ResourceError.__init__(self, message, status_code)
        self.errors = errors
        resourcepy.log.warning("ValidationError: %s", message)

    @classmethod
    def from_errors(cls, model_name, errors):
        details = ", ".join(f"{path}: {error.message}" for path, error in errors.items())
        return cls(f"{model_name} validation failed: {details}", errors=errors)


class ValidatorError(ResourceError):
    """
    A single failed validator (required, enum, min, max) of a field
    """

    name = "ValidatorError"

    def __init__(self, message, path, kind, value=None):
        ResourceError.__init__(self, message)
        self.path = path
        self.kind = kind
        self.value = value


class CastError(ResourceError):
    """
    A value could not be cast to the type of the field at `path`
    """

    name = "CastError"

    def __init__(self, kind, value, path, model=None, value_type=None):
        self.kind = kind
        self.value = value
        self.path = path
        self.model = model
        message = f'Cast to {kind} failed for value {js_quote(value)} (type {value_type or js_type(value)}) at path "{path}"'
        if model:
            message += f' for model "{model}"'
        ResourceError.__init__(self, message)
        resourcepy.log.debug(message)


class DatabaseError(ResourceError):
    """
    Wraps the error that aborted a (bulk) write transaction, the original is kept in __cause__
    """

    name = "DatabaseError"

    def __init__(self, message="Error occured while trying to save document into database"):
        ResourceError.__init__(self, message)
        resourcepy.log.error(message)


class JsonPatchError(ResourceError):
    """
    A JSON-Patch operation failed, `name` is one of the error names of patch.PATCH_ERRORS
    """

    def __init__(self, message, name, index=None, operation=None):
        ResourceError.__init__(self, message)
        self.name = name
        self.index = index
        self.operation = operation
        self.errors = [{"name": name, "message": str(self)}]
        if name == "TEST_OPERATION_FAILED":
            self.status_code = HTTPStatus.PRECONDITION_FAILED.value

    def __str__(self):
        return f"{self.name}: {self.message}"


def error_summary(error):
    """
    Reduce an error (object or mapping) to the path, name and message shown to the client
    """
    result = {}
    for key in ("path", "name", "message"):
        value = error.get(key) if isinstance(error, dict) else getattr(error, key, None)
        if value is not None:
            result[key] = value if isinstance(value, str) else js_string(value)
    return result
