from __future__ import annotations

from datetime import date, datetime

import pytest

from finance import (
    expenses_by_type,
    finance_totals,
    format_currency,
    invoice_totals,
    mission_cost,
    mission_profit,
    monthly_summary,
    next_invoice_number,
    overdue_days,
    payment_status,
    period_report,
    profit_by_camion,
    profit_by_chauffeur,
    receivables,
    report_period_bounds,
    trailing_months,
)


def test_format_currency() -> None:
    assert format_currency(12345.5) == "12 345,50 MAD"
    assert format_currency(None) == "0,00 MAD"


def test_mission_cost_and_profit() -> None:
    mission = {"coutEstime": {"carburant": 1200, "peage": "150", "repas": None}, "recette": 3000}

    assert mission_cost(mission) == 1350
    assert mission_profit(mission) == 1650
    assert mission_profit({"coutEstime": {}}) is None


def test_invoice_totals_apply_discount_then_vat() -> None:
    totals = invoice_totals([
        {"description": "A", "quantite": 3, "prixUnitaire": 100, "tva": 20, "remise": 0},
        {"description": "B", "quantite": 1, "prixUnitaire": 200, "tva": 10, "remise": 50},
    ])

    assert totals["totalHT"] == 400
    assert totals["totalTVA"] == 70
    assert totals["totalTTC"] == 470
    assert [l["total"] for l in totals["lignes"]] == [300, 100]


def test_payment_status() -> None:
    assert payment_status(1000, 0, "envoyee") == "envoyee"
    assert payment_status(1000, 400) == "partiellement_payee"
    assert payment_status(1000, 1000) == "payee"


def test_next_invoice_number_per_year() -> None:
    existing = ["FACT-2025-001", "FACT-2025-009", "FACT-2024-120", "AVOIR-2025-050", None]

    assert next_invoice_number(existing, 2025) == "FACT-2025-010"
    assert next_invoice_number(existing, 2026) == "FACT-2026-001"


def test_overdue_days() -> None:
    ref = date(2025, 3, 10)

    assert overdue_days({"dateEcheance": date(2025, 3, 1), "montantRestant": 50}, ref) == 9
    assert overdue_days({"dateEcheance": date(2025, 3, 1), "montantRestant": 0}, ref) is None
    assert overdue_days({"dateEcheance": date(2025, 3, 20), "montantRestant": 50}, ref) is None
    assert overdue_days({"montantRestant": 50}, ref) is None


def test_finance_totals() -> None:
    totals = finance_totals([{"montant": 300}, {"montant": "200"}], [{"montant": 1000}])

    assert totals == {"depenses": 500, "recettes": 1000, "profit": 500}


def test_monthly_summary_keeps_twelve_months() -> None:
    depenses = [{"date": date(2025, 1, 5), "montant": 100}, {"date": date(2024, 1, 5), "montant": 999}]
    recettes = [{"date": date(2025, 1, 20), "montant": 400}, {"date": date(2025, 3, 1), "montant": 50}]

    summary = monthly_summary(depenses, recettes, 2025)

    assert len(summary) == 12
    assert summary.loc[0, "depenses"] == 100
    assert summary.loc[0, "profit"] == 300
    assert summary.loc[2, "recettes"] == 50
    assert summary.loc[11, "profit"] == 0


def test_expenses_by_type_sorted_desc() -> None:
    depenses = [
        {"date": date(2025, 1, 1), "montant": 50, "type": "peage"},
        {"date": date(2025, 1, 2), "montant": 500, "type": "carburant"},
        {"date": date(2025, 1, 3), "montant": 60, "type": "peage"},
    ]

    assert list(expenses_by_type(depenses).items()) == [("carburant", 500.0), ("peage", 110.0)]
    assert expenses_by_type([]) == {}


@pytest.mark.parametrize(
    ("period", "anchor", "expected"),
    [
        ("month", date(2025, 2, 14), (date(2025, 2, 1), date(2025, 2, 28))),
        ("quarter", date(2025, 5, 10), (date(2025, 4, 1), date(2025, 6, 30))),
        ("quarter", date(2025, 11, 30), (date(2025, 10, 1), date(2025, 12, 31))),
        ("year", date(2024, 7, 1), (date(2024, 1, 1), date(2024, 12, 31))),
    ],
)
def test_report_period_bounds(period: str, anchor: date, expected: tuple[date, date]) -> None:
    assert report_period_bounds(period, anchor) == expected


def test_report_period_bounds_rejects_unknown_period() -> None:
    with pytest.raises(ValueError):
        report_period_bounds("decade", date(2025, 1, 1))


def test_receivables_ignore_paid_and_cancelled_invoices() -> None:
    factures = [
        {"montantRestant": 500, "statut": "envoyee"},
        {"montantRestant": 200, "statut": "partiellement_payee"},
        {"montantRestant": 100, "statut": "annulee"},
        {"montantRestant": 0, "statut": "envoyee"},
        {"montantRestant": 50, "statut": "payee"},
    ]

    assert receivables(factures) == {"montant": 700, "nombre": 2}


def test_period_report() -> None:
    depenses = [{"date": date(2025, 3, 5), "montant": 400}, {"date": date(2025, 2, 28), "montant": 1000}]
    recettes = [{"date": "2025-03-20", "montant": 1000}]
    missions = [
        {"dateDebut": datetime(2025, 3, 10, 8), "coutEstime": {"carburant": 300, "peage": 100}},
        {"dateDebut": date(2025, 3, 12), "coutEstime": {"repas": 200}},
        {"dateDebut": date(2025, 4, 1), "coutEstime": {"carburant": 9000}},
    ]
    camions = [{"etat": "actif"}, {"etat": "actif"}, {"etat": "en_maintenance"}]

    report = period_report(depenses, recettes, missions, camions, date(2025, 3, 1), date(2025, 3, 31))

    assert report["recettes"] == 1000
    assert report["depenses"] == 400
    assert report["profit"] == 600
    assert report["marge"] == pytest.approx(60.0)
    assert report["nbMissions"] == 2
    assert report["coutParMission"] == pytest.approx(300.0)
    assert report["tauxUtilisation"] == pytest.approx(100 / 31)


def test_period_report_without_activity() -> None:
    report = period_report([], [], [], [], date(2025, 3, 1), date(2025, 3, 31))

    assert report["marge"] == 0
    assert report["coutParMission"] == 0
    assert report["tauxUtilisation"] == 0


def test_trailing_months_cross_year_boundary() -> None:
    recettes = [{"date": date(2024, 12, 10), "montant": 100}, {"date": date(2025, 2, 1), "montant": 300}]
    depenses = [{"date": date(2025, 1, 31), "montant": 50}]

    df = trailing_months(depenses, recettes, date(2025, 2, 15), count=3)

    assert df["mois"].tolist() == ["Déc 2024", "Jan 2025", "Fév 2025"]
    assert df["recettes"].tolist() == [100, 0, 300]
    assert df["depenses"].tolist() == [0, 50, 0]
    assert df["profit"].tolist() == [100, -50, 300]


def test_profit_by_camion_and_chauffeur() -> None:
    camions = [{"id": "c1", "matricule": "A-1"}, {"id": "c2", "matricule": "B-2"}, {"id": "c3", "matricule": "C-3"}]
    chauffeurs = [{"id": "d1", "prenom": "Ahmed", "nom": "Alami"}]
    missions = [
        {"camionId": "c1", "chauffeurId": "d1", "recette": 3000, "coutEstime": {"carburant": 1000}},
        {"camionId": "c1", "chauffeurId": "d1", "coutEstime": {"peage": 200}},
        {"camionId": "c2", "recette": 5000, "coutEstime": {"carburant": 500}},
    ]

    top = profit_by_camion(missions, camions, limit=2)
    assert top["nom"].tolist() == ["B-2", "A-1"]
    assert top["nbMissions"].tolist() == [1, 2]
    assert top["profit"].tolist() == [4500, 1800]
    assert len(profit_by_camion(missions, camions, limit=None)) == 3

    drivers = profit_by_chauffeur(missions, chauffeurs)
    assert drivers.to_dict("records") == [
        {"nom": "Ahmed Alami", "nbMissions": 2, "recettes": 3000, "couts": 1200, "profit": 1800}
    ]
