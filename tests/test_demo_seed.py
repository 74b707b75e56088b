from __future__ import annotations

from datetime import date

import pytest

from demo_seed import CAMIONS, CHAUFFEURS, CLIENTS, DEMO_COLLECTIONS, STOCK, clear_collections, seed_demo_data

REF = date(2025, 3, 10)


def test_seed_creates_consistent_dataset(db) -> None:
    counts = seed_demo_data(db, seed=42, reference=REF, max_workers=4)

    assert counts["echecs"] == 0
    assert counts["camions"] == len(CAMIONS)
    assert counts["chauffeurs"] == len(CHAUFFEURS)
    assert counts["clients"] == len(CLIENTS)
    assert counts["stock"] == len(STOCK)
    assert counts["missions"] == 12

    camion_ids = set(db.data("camions"))
    chauffeur_ids = set(db.data("chauffeurs"))
    for mission in db.data("missions").values():
        assert mission["camionId"] in camion_ids
        assert mission["chauffeurId"] in chauffeur_ids
    assert sum(1 for c in db.data("camions").values() if c["etat"] == "en_maintenance") == 1


def test_completed_missions_have_revenue(db) -> None:
    seed_demo_data(db, seed=7, reference=REF)

    termine = [m for m in db.data("missions").values() if m["statut"] == "termine"]
    assert len(db.data("recettes")) == len(termine)


def test_same_seed_gives_same_data(db, make_db) -> None:
    other = make_db()
    seed_demo_data(db, seed=3, reference=REF)
    seed_demo_data(other, seed=3, reference=REF)

    def matricules(store) -> list[str]:
        return sorted(c["matricule"] for c in store.data("camions").values())

    assert matricules(db) == matricules(other)


def test_clear_collections(db) -> None:
    seed_demo_data(db, seed=1, reference=REF)
    db.seed("users", "admin", {"role": "admin"})

    deleted = clear_collections(db)

    assert set(deleted) == set(DEMO_COLLECTIONS)
    assert deleted["camions"] == len(CAMIONS)
    assert all(db.data(name) == {} for name in DEMO_COLLECTIONS)
    assert db.data("users") == {"admin": {"role": "admin"}}


def test_failed_writes_are_counted_and_skipped(db, monkeypatch: pytest.MonkeyPatch) -> None:
    original = db.collection("clients").add
    calls = {"n": 0}

    def flaky_add(data):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("quota")
        return original(data)

    monkeypatch.setattr(db.collection("clients"), "add", flaky_add)

    counts = seed_demo_data(db, seed=5, reference=REF, max_workers=1)

    assert counts["echecs"] == 1
    assert counts["clients"] == len(CLIENTS) - 1
    assert len(db.data("clients")) == len(CLIENTS) - 1
