from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from calendar_events import (
    BADGE_LIMITS,
    EVENT_COLORS,
    EVENT_TYPES,
    MISSING,
    build_events,
    calendar_view,
    cell_badges,
    day_grid,
    day_key,
    events_for_day,
    events_in_period,
    filter_by_type,
    group_by_day,
    period_bounds,
    shift_anchor,
)

CAMIONS = [{"id": "c1", "matricule": "A1234-56"}]
CHAUFFEURS = [{"id": "d1", "prenom": "Ahmed", "nom": "Alami"}]


def _events(**overrides: list) -> list[dict]:
    sources = {
        "missions": [],
        "visites": [],
        "assurances": [],
        "entretiens": [],
        "absences": [],
        "camions": CAMIONS,
        "chauffeurs": CHAUFFEURS,
    }
    sources.update(overrides)
    return build_events(**sources)


def test_mission_in_march_view_end_to_end() -> None:
    mission = {
        "id": "m1",
        "depart": "Casablanca",
        "destination": "Rabat",
        "dateDebut": datetime(2025, 3, 10, 8, 0),
        "statut": "termine",
        "camionId": "c1",
        "chauffeurId": "d1",
    }

    view = calendar_view(_events(missions=[mission]), "all", "month", date(2025, 3, 1))

    assert len(view["events"]) == 1
    event = view["events"][0]
    assert event["type"] == "mission"
    assert event["title"] == "Casablanca → Rabat - Ahmed Alami / A1234-56"
    assert event["color"] == EVENT_COLORS["mission"]
    assert [e["id"] for e in view["by_day"]["2025-03-10"]] == ["mission-m1"]


def test_mission_without_end_date_defaults_to_start() -> None:
    start = datetime(2025, 3, 10)
    events = _events(missions=[{"id": "m1", "dateDebut": start, "camionId": "c1", "chauffeurId": "d1"}])

    assert events[0]["data"]["dateFin"] == start
    assert events[0]["data"]["camion"] == CAMIONS[0]


def test_unknown_references_render_as_missing() -> None:
    events = _events(
        missions=[{"id": "m1", "depart": "Fès", "destination": "Meknès", "dateDebut": date(2025, 3, 10),
                   "camionId": "ghost", "chauffeurId": "ghost"}],
        camions=[],
        chauffeurs=[],
    )

    assert events[0]["title"] == f"Fès → Meknès - {MISSING} / {MISSING}"


def test_records_without_date_are_skipped() -> None:
    events = _events(
        missions=[{"id": "m1"}],
        visites=[{"id": "v1", "camionId": "c1"}],
        entretiens=[{"id": "e1", "camionId": "c1"}],
    )

    assert events == []


def test_absence_produces_one_event_per_day() -> None:
    absence = {
        "id": "a1",
        "chauffeurId": "d1",
        "type": "conge",
        "dateDebut": date(2025, 3, 30),
        "dateFin": date(2025, 4, 2),
    }

    events = _events(absences=[absence])

    assert [e["date"] for e in events] == [
        date(2025, 3, 30), date(2025, 3, 31), date(2025, 4, 1), date(2025, 4, 2),
    ]
    assert {e["chauffeurId"] for e in events} == {"d1"}
    assert len({e["id"] for e in events}) == 4
    assert events[0]["title"] == "Congé - Ahmed Alami"


def test_absence_without_end_covers_one_day() -> None:
    events = _events(absences=[{"id": "a1", "chauffeurId": "d1", "type": "maladie", "dateDebut": date(2025, 3, 3)}])

    assert len(events) == 1
    assert events[0]["title"] == "Maladie - Ahmed Alami"


def test_absence_ending_before_start_is_skipped() -> None:
    events = _events(absences=[
        {"id": "a1", "chauffeurId": "d1", "dateDebut": date(2025, 3, 5), "dateFin": date(2025, 3, 1)},
    ])

    assert events == []


def test_insurance_is_dated_at_expiry() -> None:
    assurance = {
        "id": "i1",
        "camionId": "c1",
        "dateDebut": date(2024, 6, 1),
        "dateFin": datetime(2025, 5, 31, 23, 0, tzinfo=timezone.utc),
    }

    events = _events(assurances=[assurance])

    # 23h UTC le 31 mai correspond au 1er juin à Casablanca (UTC+1)
    assert events[0]["date"] == date(2025, 6, 1)
    assert events[0]["title"] == "Assurance expire - A1234-56"


def test_maintenance_titles_use_type_label() -> None:
    events = _events(entretiens=[
        {"id": "e1", "camionId": "c1", "type": "vidange", "date": date(2025, 3, 4)},
        {"id": "e2", "camionId": "c1", "type": "autre", "date": date(2025, 3, 4)},
    ])

    assert [e["title"] for e in events] == ["Vidange - A1234-56", "Entretien - A1234-56"]


def test_inspection_event() -> None:
    events = _events(visites=[{"id": "v1", "camionId": "c1", "date": "2025-03-12"}])

    assert events[0]["id"] == "inspection-v1"
    assert events[0]["date"] == date(2025, 3, 12)
    assert events[0]["title"] == "Visite technique - A1234-56"


def test_filter_by_type() -> None:
    events = _events(
        visites=[{"id": "v1", "camionId": "c1", "date": date(2025, 3, 12)}],
        entretiens=[{"id": "e1", "camionId": "c1", "type": "vidange", "date": date(2025, 3, 4)}],
    )

    assert filter_by_type(events, "all") == events
    for event_type in EVENT_TYPES:
        assert all(e["type"] == event_type for e in filter_by_type(events, event_type))
    assert [e["id"] for e in filter_by_type(events, "maintenance")] == ["maintenance-e1"]


@pytest.mark.parametrize("anchor", [date(2025, 2, 14), date(2025, 3, 1), date(2024, 12, 31), date(2026, 6, 15)])
def test_month_grid_is_whole_weeks_covering_the_month(anchor: date) -> None:
    days = day_grid("month", anchor)

    assert len(days) % 7 == 0
    assert days[0].weekday() == 0
    assert days[-1].weekday() == 6
    assert anchor.replace(day=1) in days
    assert {d for d in days if d.month == anchor.month} >= {anchor.replace(day=1), anchor}


def test_week_bounds_are_monday_to_sunday() -> None:
    assert period_bounds("week", date(2025, 3, 12)) == (date(2025, 3, 10), date(2025, 3, 16))


def test_unknown_view_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        period_bounds("day", date(2025, 3, 12))


def test_month_window_includes_adjacent_grid_days() -> None:
    events = _events(visites=[
        {"id": "before", "camionId": "c1", "date": date(2025, 2, 24)},
        {"id": "outside", "camionId": "c1", "date": date(2025, 2, 23)},
    ])

    # Mars 2025 commence un samedi : la grille démarre le lundi 24 février
    assert [e["id"] for e in events_in_period(events, "month", date(2025, 3, 15))] == ["inspection-before"]


def test_shift_anchor() -> None:
    assert shift_anchor("month", date(2025, 1, 31), 1) == date(2025, 2, 1)
    assert shift_anchor("month", date(2025, 1, 15), -1) == date(2024, 12, 1)
    assert shift_anchor("week", date(2025, 3, 12), -1) == date(2025, 3, 5)


def test_group_by_day_and_badges() -> None:
    events = _events(entretiens=[
        {"id": f"e{i}", "camionId": "c1", "type": "vidange", "date": date(2025, 3, 4)} for i in range(4)
    ])

    grouped = group_by_day(events)
    assert list(grouped) == [day_key(date(2025, 3, 4))]

    visible, hidden = cell_badges(grouped["2025-03-04"], "month")
    assert len(visible) == BADGE_LIMITS["month"]
    assert hidden == 2

    visible, hidden = cell_badges(grouped["2025-03-04"], "week")
    assert len(visible) == 4
    assert hidden == 0


def test_events_for_day_defaults_to_today(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("calendar_events.today", lambda: date(2025, 3, 4))
    grouped = {"2025-03-04": [{"id": "x"}]}

    assert events_for_day(grouped) == [{"id": "x"}]
    assert events_for_day(grouped, date(2025, 3, 5)) == []


def test_selected_day_outside_window_keeps_its_events() -> None:
    entretien = {"id": "e1", "camionId": "c1", "type": "vidange", "date": date(2025, 5, 20)}
    mission = {"id": "m1", "depart": "Fès", "destination": "Tanger", "dateDebut": date(2025, 5, 20)}
    events = _events(entretiens=[entretien], missions=[mission])

    view = calendar_view(events, "maintenance", "month", date(2025, 3, 1))

    assert events_for_day(view["by_day"], date(2025, 5, 20)) == []
    assert [e["id"] for e in events_for_day(view["all_by_day"], date(2025, 5, 20))] == ["maintenance-e1"]
