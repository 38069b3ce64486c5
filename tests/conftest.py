import datetime

import pytest
from flask import Flask

from resourcepy import DB as db, ResourceAPI, ResourceBase


class Resource1(ResourceBase, db.Model):
    """
    description: A resource with a required title
    """

    __tablename__ = "resource1"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String, nullable=False)
    name = db.Column(db.String)
    age = db.Column(db.Integer)
    description = db.Column(db.String)
    list = db.Column(db.JSON, info={"items": {"label": "string", "data": ["string"]}})
    list2 = db.Column(db.JSON, info={"items": "string"})


class Search(ResourceBase, db.Model):
    __tablename__ = "search"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String)
    name = db.Column(db.String)
    age = db.Column(db.Integer)
    married = db.Column(db.Boolean, default=False)
    description = db.Column(db.String)


class DateModel(ResourceBase, db.Model):
    __tablename__ = "datemodel"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String)
    date = db.Column(db.DateTime)


class Author(ResourceBase, db.Model):
    __tablename__ = "author"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String, nullable=False)
    books = db.relationship("Book", back_populates="author")


class Book(ResourceBase, db.Model):
    __tablename__ = "book"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String, nullable=False, info={"description": "The title", "example": "Dune"})
    status = db.Column(db.Enum("draft", "published", name="book_status"), default="draft")
    pages = db.Column(db.Integer, info={"min": 1, "max": 5000})
    author_id = db.Column(db.Integer, db.ForeignKey("author.id"))
    author = db.relationship("Author", back_populates="books")


def double_age(stmt):
    return stmt.add_columns((stmt.selected_columns.age * 2).label("double_age"))


class Pipeline(ResourceBase, db.Model):
    __tablename__ = "pipeline"
    _s_pipeline = (double_age,)
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String)
    age = db.Column(db.Integer)


class WriteOption(ResourceBase, db.Model):
    __tablename__ = "writeoption"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String)

    saved = []
    removed = []

    def _s_pre_save(self, **write_options):
        WriteOption.saved.append(write_options)

    def _s_pre_remove(self, **write_options):
        WriteOption.removed.append(write_options)


@pytest.fixture
def app():
    app = Flask("resourcepy-test")
    app.config.update(SQLALCHEMY_DATABASE_URI="sqlite://", TESTING=True)
    db.init_app(app)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def api(app):
    return ResourceAPI(app, swaggerui_blueprint=False)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def resource1(api):
    return api.expose_object(Resource1, "/test")


@pytest.fixture
def search(api, search_items):
    return api.expose_object(Search, "/test")


@pytest.fixture
def search_items(app):
    """
    26 items: "Search 0" .. "Search 24" with age 0 .. 24 and an item titled "null" without age
    """
    for age in range(25):
        db.session.add(Search(title=f"Search {age}", name=f"name{age}", age=age, married=age % 2 == 0, description=f"Description {age}"))
    db.session.add(Search(title="null", married=False))
    db.session.commit()


@pytest.fixture
def books(api):
    api.expose_object(Author, "/test")
    api.expose_object(Book, "/test")
    author = Author(name="Frank")
    db.session.add(author)
    db.session.flush()
    for title in ("Dune", "Children of Dune"):
        db.session.add(Book(title=title, status="published", pages=400, author_id=author.id))
    db.session.commit()
    return author


@pytest.fixture
def dates(api):
    api.expose_object(DateModel, "/test")
    for day in (1, 2, 3):
        db.session.add(DateModel(name=f"day{day}", date=datetime.datetime(2020, 1, day, 10, 0, 0)))
    db.session.commit()
