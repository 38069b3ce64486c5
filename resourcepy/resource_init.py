import logging
import os
import sys
from flask_swagger_ui import get_swaggerui_blueprint
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from .config import get_config
from .request import ResourceRequest
import resourcepy
import flask.app
from typing import Any, Dict


class RESOURCEPY:
    """This class configures the Flask application to serve ResourceBase models
    :param app: a Flask application.
    :param prefix: URL prefix where the OpenAPI document and swagger UI are hosted
    :param LOGLEVEL: loglevel configuration variable, values from logging module (0: trace, .. 50: critical)
    """

    # Configuration settings are stored as class variables
    DEFAULT_LIMIT = 10
    DEFAULT_SKIP = 0
    MAX_RANGE_SIZE = 100000  # ceiling on top of the limit requested by the client
    LOGLEVEL = logging.WARNING
    CONVERT_IDS = None
    OPENAPI_URL = "/openapi.json"
    SWAGGER_UI_URL = "/docs"
    #
    config = {}

    def __init__(self, app: flask.app.Flask, *args, **kwargs) -> None:
        self.app = app
        if app is not None:
            self.init_app(app, *args, **kwargs)

    def init_app(
        self,
        app: flask.app.Flask,
        prefix: str = "",
        app_db: SQLAlchemy = None,
        swaggerui_blueprint: bool = True,
        **kwargs,
    ) -> None:
        """
        Application initialization: request class, db handle, swagger ui and configuration
        """
        if not isinstance(app, Flask):  # pragma: no cover
            raise TypeError("'app' should be Flask.")

        if app_db is None:
            app_db = app.extensions["sqlalchemy"]

        resourcepy.DB = self.db = app_db

        app.request_class = ResourceRequest
        app.url_map.strict_slashes = False

        if app.config.get("DEBUG", False):
            log.setLevel(logging.DEBUG)

        for conf_name, conf_val in kwargs.items():
            setattr(RESOURCEPY, conf_name, conf_val)

        for conf_name, conf_val in app.config.items():
            setattr(RESOURCEPY, conf_name, conf_val)
        get_config.cache_clear()

        if swaggerui_blueprint is True:
            swaggerui_blueprint = get_swaggerui_blueprint(
                f"{prefix}{RESOURCEPY.SWAGGER_UI_URL}",
                f"{prefix}{RESOURCEPY.OPENAPI_URL}",
                config={"docExpansion": "none", "defaultModelsExpandDepth": -1},
            )
            app.register_blueprint(swaggerui_blueprint)

        # pylint: disable=unused-argument,unused-variable
        @app.teardown_appcontext
        def shutdown_session(exception=None):
            """cfr. http://flask.pocoo.org/docs/patterns/sqlalchemy/"""
            self.db.session.remove()

    @staticmethod
    def init_logging(loglevel: int = logging.WARNING) -> logging.Logger:
        """
        Specify the log format used in the webserver logs
        """
        log = logging.getLogger(__name__)
        if log.level == logging.NOTSET:
            handler = logging.StreamHandler(sys.stderr)
            formatter = logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s")
            handler.setFormatter(formatter)
            log.setLevel(loglevel)
            log.addHandler(handler)
        return log


def dict_merge(dct: Dict[str, Any], merge_dct: Dict[Any, Any]) -> None:
    """Recursive dict merge used for assembling the OpenAPI document.
    Inspired by :meth:``dict.update()``, instead of updating only
    top-level keys, dict_merge recurses down into dicts nested
    to an arbitrary depth, updating keys. The ``merge_dct`` is merged into ``dct``.
    :param dct: dict onto which the merge is executed
    :param merge_dct: dct merged into dct
    :return: None
    """
    for k in merge_dct:
        if k in dct and isinstance(dct[k], dict) and isinstance(merge_dct[k], dict):
            dict_merge(dct[k], merge_dct[k])
        else:
            # convert to string, for ex. http return codes
            dct[str(k)] = merge_dct[k]


#
# DB and logging initialization
#
DB = SQLAlchemy()

try:
    DEBUG = os.getenv("DEBUG", logging.WARNING)
    LOGLEVEL = int(DEBUG)
except ValueError:  # pragma: no cover
    print(f'Invalid LogLevel in DEBUG Environment Variable! "{DEBUG}"')
    LOGLEVEL = logging.INFO

log = RESOURCEPY.init_logging(LOGLEVEL)
