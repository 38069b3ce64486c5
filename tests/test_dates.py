import datetime

from resourcepy import DB as db

from conftest import DateModel


def test_iso_output(client, dates):
    response = client.get("/test/datemodel/1")
    assert response.json["date"] == "2020-01-01T10:00:00.000Z"


def test_post_date(client, dates):
    response = client.post("/test/datemodel", json={"name": "post", "date": "2021-06-01T12:30:00+02:00"})
    assert response.status_code == 201
    assert response.json["date"] == "2021-06-01T10:30:00.000Z"
    assert db.session.get(DateModel, response.json["id"]).date == datetime.datetime(2021, 6, 1, 10, 30)


def test_post_epoch_millis(client, dates):
    response = client.post("/test/datemodel", json={"name": "millis", "date": 1577872800000})
    assert response.json["date"] == "2020-01-01T10:00:00.000Z"


def test_invalid_date(client, dates):
    response = client.post("/test/datemodel", json={"name": "invalid", "date": "not a date"})
    assert response.status_code == 400
    message = 'Cast to date failed for value "not a date" (type string) at path "date"'
    assert response.json["message"] == f"datemodel validation failed: date: {message}"


def test_date_filters(client, dates):
    response = client.get("/test/datemodel?date__gte=2020-01-02")
    assert [item["name"] for item in response.json] == ["day2", "day3"]

    response = client.get("/test/datemodel?date__lte=1577872800000")
    assert [item["name"] for item in response.json] == ["day1"]

    response = client.get("/test/datemodel", query_string={"date__lt": "2020-01-03T10:00:00Z", "date__gt": "2020/01/01"})
    assert [item["name"] for item in response.json] == ["day1", "day2"]


def test_date_equality(client, dates):
    response = client.get("/test/datemodel", query_string={"date": "2020-01-02T10:00:00.000Z"})
    assert [item["name"] for item in response.json] == ["day2"]
