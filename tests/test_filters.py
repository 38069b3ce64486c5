import pytest

from resourcepy.filters import (
    Compare,
    Conditions,
    Equals,
    Exists,
    FilterTranslator,
    Membership,
    Operator,
    RegexMatch,
    compile_filter,
    translate,
)
from resourcepy.errors import ValidationError
from resourcepy.fields import FieldDescriptor

from conftest import Search

FIELDS = {
    "title": FieldDescriptor("title", "string"),
    "age": FieldDescriptor("age", "number"),
    "married": FieldDescriptor("married", "boolean"),
    "meta": FieldDescriptor("meta", "mixed"),
}


def test_equality_and_reserved_params():
    expression = translate({"title": "john", "limit": "5", "skip": "1", "sort": "age", "select": "title", "populate": "x"}, FIELDS)
    assert expression == {"title": Equals("john")}


def test_selectors_are_combined():
    expression = translate({"age__gte": "5", "age__lt": "10"}, FIELDS)
    assert expression == {"age": Conditions((Compare("gte", 5), Compare("lt", 10)))}


def test_membership_and_exists():
    expression = translate({"age__in": "1,2", "title__nin": ["a", "b"], "married__exists": "false"}, FIELDS)
    assert expression["age"] == Conditions((Membership("in", (1, 2)),))
    assert expression["title"] == Conditions((Membership("nin", ("a", "b")),))
    assert expression["married"] == Conditions((Exists(False),))


def test_regex_defaults_to_case_insensitive():
    assert translate({"title__regex": "/^test/"}, FIELDS) == {"title": RegexMatch((("^test", "i"),))}
    assert translate({"title__regex": "/^test/m"}, FIELDS) == {"title": RegexMatch((("^test", "m"),))}
    assert translate({"title__regex": ["/^a/", "/^b/"]}, FIELDS) == {"title": RegexMatch((("^a", "i"), ("^b", "i")))}


def test_eq_literals():
    assert translate({"title__eq": "null"}, FIELDS) == {"title": Conditions((Compare("eq", None),))}
    assert translate({"title__ne": '"null"'}, FIELDS) == {"title": Conditions((Compare("ne", "null"),))}


def test_unknown_selector_is_kept():
    assert translate({"age__mod": "2"}, FIELDS) == {"age": Conditions((Operator("mod", 2),))}


def test_existing_keys_are_not_overwritten():
    assert translate({"title": "john", "age": "5"}, FIELDS, existing_keys=["title"]) == {"age": Equals(5)}


def test_unknown_fields():
    assert translate({"unknown": "x"}, FIELDS) == {"unknown": Equals("x")}
    assert FilterTranslator(FIELDS, {"query_filter": True}).translate({"unknown": "x"}) == {}


def test_dotted_paths():
    assert translate({"meta.label": "x", "meta.count__gt": "2"}, FIELDS) == {
        "meta.label": Equals("x"),
        "meta.count": Conditions((Compare("gt", "2"),)),
    }


def test_compile_unknown_operator(app):
    with pytest.raises(ValidationError):
        compile_filter({"age": Conditions((Operator("mod", 2),))}, Search)


def test_compile_criteria(app, search_items):
    def count(query):
        criteria = compile_filter(translate(query, Search._s_fields), Search)
        return Search._s_query.filter(*criteria).count()

    assert count({"age__gte": "20"}) == 5
    assert count({"age__gt": "20", "age__lte": "22"}) == 2
    assert count({"title__regex": "/^search 2/"}) == 6
    assert count({"title__regex": "/^search 2/g"}) == 0
    assert count({"age": ["1", "2", "3"]}) == 3
    assert count({"age__ne": "null"}) == 25
    assert count({"age__eq": "null"}) == 1
    assert count({"married": "false"}) == 13
    assert count({"unknown": "x"}) == 0


def test_repeated_equality(app):
    assert translate({"age": ["1", "2"]}, FIELDS) == {"age": Equals([1, 2])}
