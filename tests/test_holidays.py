"""Tests for the holiday calendar and the holiday endpoints."""
from __future__ import annotations

from datetime import date

from salonbook.extensions import db
from salonbook.holidays import HolidayCalendar, HolidayInfo
from salonbook.models import Holiday


def test_national_entry_wins_over_regional_on_same_date() -> None:
    day = date(2025, 1, 25)
    calendar = HolidayCalendar([
        HolidayInfo(day, "Aniversário de São Paulo", "regional"),
        HolidayInfo(day, "Feriado Nacional", "national"),
    ])

    assert len(calendar) == 1
    assert calendar.lookup(day).name == "Feriado Nacional"
    assert calendar.is_full_closure(day)


def test_regional_holiday_is_not_a_full_closure() -> None:
    day = date(2025, 7, 9)
    calendar = HolidayCalendar([HolidayInfo(day, "Revolução Constitucionalista", "regional")])

    assert calendar.lookup(day) is not None
    assert not calendar.is_full_closure(day)
    assert calendar.lookup(date(2025, 7, 10)) is None


def test_from_db_loads_range(app) -> None:
    db.session.add_all([
        Holiday(holiday_date=date(2025, 4, 18), name="Sexta-feira Santa", scope="national"),
        Holiday(holiday_date=date(2025, 4, 21), name="Tiradentes", scope="national"),
        Holiday(holiday_date=date(2025, 5, 1), name="Dia do Trabalho", scope="national"),
    ])
    db.session.commit()

    calendar = HolidayCalendar.from_db(date(2025, 4, 1), date(2025, 4, 30))

    assert len(calendar) == 2
    assert calendar.lookup(date(2025, 5, 1)) is None


def test_create_list_and_delete_holiday(client) -> None:
    response = client.post(
        "/schedule/holidays",
        json={"date": "2025-11-20", "name": "Consciência Negra"},
    )
    assert response.status_code == 201
    assert response.get_json()["holiday"]["scope"] == "national"

    listing = client.get("/schedule/holidays?start=2025-11-01&end=2025-11-30").get_json()["holidays"]
    assert [h["date"] for h in listing] == ["2025-11-20"]

    response = client.delete("/schedule/holidays/2025-11-20")
    assert response.status_code == 200
    assert client.get("/schedule/holidays").get_json()["holidays"] == []


def test_duplicate_holiday_date_conflicts(client) -> None:
    payload = {"date": "2025-12-25", "name": "Natal"}
    assert client.post("/schedule/holidays", json=payload).status_code == 201

    response = client.post("/schedule/holidays", json=payload)

    assert response.status_code == 409
    assert response.get_json()["error"] == "duplicate"


def test_create_holiday_validates_payload(client) -> None:
    assert client.post("/schedule/holidays", json={"name": "Sem data"}).status_code == 400
    response = client.post(
        "/schedule/holidays",
        json={"date": "2025-01-25", "name": "Aniversário", "scope": "municipal"},
    )
    assert response.status_code == 400


def test_delete_unknown_holiday(client) -> None:
    assert client.delete("/schedule/holidays/2025-08-15").status_code == 404
