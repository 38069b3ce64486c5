__version__ = "1.0.0"
__description__ = "resourcepy : SQLAlchemy Flask-Restful resources with OpenAPI 3.1"
