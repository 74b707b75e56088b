from __future__ import annotations

from datetime import date, timedelta

from alerts import build_alerts, count_by_level, is_low_stock, stock_alerts
from firebase_config import StockManager
from schemas import AlertConfig

REF = date(2025, 3, 10)


def test_low_stock_includes_equal_threshold() -> None:
    items = [
        {"id": "s1", "quantite": 5, "seuilAlerte": 10},
        {"id": "s2", "quantite": 10, "seuilAlerte": 10},
        {"id": "s3", "quantite": 11, "seuilAlerte": 10},
        {"id": "s4"},
    ]

    assert [i["id"] for i in stock_alerts(items)] == ["s1", "s2", "s4"]
    assert not is_low_stock({"quantite": "12", "seuilAlerte": "10"})


def test_insurance_window_levels() -> None:
    assurances = [
        {"id": "soon", "numero": "P-1", "camionId": "c1", "dateFin": REF + timedelta(days=3)},
        {"id": "later", "numero": "P-2", "camionId": "c1", "dateFin": REF + timedelta(days=20)},
        {"id": "far", "numero": "P-3", "camionId": "c1", "dateFin": REF + timedelta(days=90)},
        {"id": "gone", "numero": "P-4", "camionId": "c1", "dateFin": REF - timedelta(days=2)},
    ]

    alerts = build_alerts(assurances, [], [], [], [], reference=REF)
    by_id = {a["id"]: a for a in alerts}

    assert set(by_id) == {"assurance-soon", "assurance-later", "assurance-exp-gone"}
    assert by_id["assurance-soon"]["niveau"] == "critique"
    assert by_id["assurance-later"]["niveau"] == "important"
    assert by_id["assurance-exp-gone"]["niveau"] == "critique"
    assert by_id["assurance-exp-gone"]["description"] == "L'assurance P-4 a expiré il y a 2 jours"


def test_visit_and_maintenance_alerts() -> None:
    visites = [{"id": "v1", "camionId": "c1", "prochaineDate": REF + timedelta(days=1)}]
    camions = [{"id": "c1", "matricule": "A1", "etat": "en_maintenance"}, {"id": "c2", "etat": "actif"}]

    alerts = build_alerts([], visites, camions, [], [], reference=REF)

    assert [a["id"] for a in alerts] == ["visite-v1", "maintenance-c1"]
    assert alerts[0]["description"] == "Visite technique prévue dans 1 jour"
    assert alerts[1]["date"] == REF


def test_stock_levels_follow_config() -> None:
    stock = [
        {"id": "empty", "nom": "Filtre", "quantite": 0, "seuilAlerte": 10},
        {"id": "few", "nom": "Huile", "quantite": 8, "seuilAlerte": 10},
        {"id": "ok", "nom": "Pneu", "quantite": 30, "seuilAlerte": 10},
    ]
    config = AlertConfig(seuilStockCritique=0, seuilStockImportant=5)

    levels = {a["id"]: a["niveau"] for a in build_alerts([], [], [], stock, [], config, reference=REF)}

    assert levels == {"stock-empty": "critique", "stock-few": "info"}


def test_overdue_invoices() -> None:
    factures = [
        {"id": "f1", "numero": "FACT-2025-001", "dateEcheance": REF - timedelta(days=45), "montantRestant": 100},
        {"id": "f2", "numero": "FACT-2025-002", "dateEcheance": REF - timedelta(days=5), "montantRestant": 100},
        {"id": "f3", "numero": "FACT-2025-003", "dateEcheance": REF - timedelta(days=5), "montantRestant": 0},
    ]

    alerts = build_alerts([], [], [], [], factures, reference=REF)

    assert [(a["id"], a["niveau"]) for a in alerts] == [("facture-f1", "critique"), ("facture-f2", "important")]


def test_disabled_categories_are_skipped() -> None:
    config = AlertConfig(alerteStock=False, alerteMaintenance=False)

    alerts = build_alerts(
        [], [], [{"id": "c1", "etat": "en_maintenance"}], [{"id": "s1", "quantite": 0, "seuilAlerte": 1}], [],
        config, reference=REF,
    )

    assert alerts == []


def test_sorted_by_level_then_date_and_counted() -> None:
    assurances = [
        {"id": "a", "numero": "P", "dateFin": REF + timedelta(days=25)},
        {"id": "b", "numero": "P", "dateFin": REF + timedelta(days=2)},
        {"id": "c", "numero": "P", "dateFin": REF + timedelta(days=1)},
    ]

    alerts = build_alerts(assurances, [], [], [], [], reference=REF)

    assert [a["id"] for a in alerts] == ["assurance-c", "assurance-b", "assurance-a"]
    assert count_by_level(alerts) == {"critique": 2, "important": 1, "info": 0}


def test_deleted_stock_item_leaves_list_and_alerts(db) -> None:
    manager = StockManager(db)
    low_id = manager.create({"nom": "Filtre", "quantite": 2, "seuilAlerte": 10})
    manager.create({"nom": "Pneu", "quantite": 40, "seuilAlerte": 10})
    assert [i["id"] for i in manager.low_stock()] == [low_id]

    manager.delete(low_id)

    assert low_id not in [i["id"] for i in manager.get_all()]
    assert manager.low_stock() == []
    assert build_alerts([], [], [], manager.get_all(), [], reference=REF) == []
