from __future__ import annotations

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from dates import APP_TIMEZONE
from schemas import (
    AlertConfig,
    CamionIn,
    ClientIn,
    FactureIn,
    MissionIn,
    MouvementStockIn,
    UserUpdate,
    clean_string,
    firestore_value,
    validation_message,
)


def test_clean_string_strips_control_characters() -> None:
    assert clean_string("\ufeff  Casa\u200bblanca\x00 ") == "Casablanca"


def test_document_drops_unset_fields_and_converts_dates() -> None:
    doc = CamionIn(matricule=" A1234-56 ", dateAchat=date(2023, 5, 1), unknown="ignored").to_document()

    assert doc["matricule"] == "A1234-56"
    assert "imageUrl" not in doc
    assert "unknown" not in doc
    assert doc["dateAchat"] == datetime(2023, 5, 1, tzinfo=APP_TIMEZONE)


def test_firestore_value_is_recursive() -> None:
    value = firestore_value({"a": None, "b": [date(2025, 1, 1)], "c": {"d": None, "e": 1}})

    assert value == {"b": [datetime(2025, 1, 1, tzinfo=APP_TIMEZONE)], "c": {"e": 1}}


def test_mission_requires_end_after_start() -> None:
    with pytest.raises(ValidationError) as exc_info:
        MissionIn(
            depart="Rabat", destination="Fès", dateDebut=date(2025, 3, 10), dateFin=date(2025, 3, 9),
            camionId="c1", chauffeurId="d1",
        )

    assert "La date de fin doit suivre la date de début" in validation_message(exc_info.value)


def test_mission_cost_defaults_to_zero() -> None:
    doc = MissionIn(depart="Rabat", destination="Fès", dateDebut=date(2025, 3, 10),
                    camionId="c1", chauffeurId="d1").to_document()

    assert doc["coutEstime"] == {"carburant": 0, "peage": 0, "repas": 0, "autre": 0}
    assert doc["statut"] == "planifie"


def test_rejects_nan_and_negative_amounts() -> None:
    with pytest.raises(ValidationError):
        CamionIn(matricule="A1", kilometrageActuel=float("nan"))
    with pytest.raises(ValidationError):
        MouvementStockIn(type="sortie", quantite=0)


def test_validation_message_names_the_field() -> None:
    with pytest.raises(ValidationError) as exc_info:
        ClientIn(nom="")

    assert validation_message(exc_info.value).startswith("nom: ")


def test_invoice_document_carries_totals() -> None:
    facture = FactureIn(
        numero="FACT-2025-001",
        clientId="cl1",
        dateEmission=date(2025, 3, 1),
        lignes=[{"description": "Transport", "quantite": 2, "prixUnitaire": 1000, "tva": 20, "remise": 10}],
        montantPaye=500,
    )

    doc = facture.to_document()

    assert doc["totalHT"] == 1800
    assert doc["totalTVA"] == 360
    assert doc["totalTTC"] == 2160
    assert doc["montantRestant"] == 1660
    assert doc["lignes"][0]["total"] == 1800


def test_invoice_needs_at_least_one_line() -> None:
    with pytest.raises(ValidationError):
        FactureIn(numero="F", clientId="cl1", dateEmission=date(2025, 3, 1), lignes=[])


def test_user_update_splits_auth_and_profile_changes() -> None:
    update = UserUpdate(userId="u1", name="Sara", role="comptable", password="secret1")

    assert update.auth_changes() == {"password": "secret1"}
    assert update.profile_changes() == {"name": "Sara", "role": "comptable"}


def test_alert_config_from_document_falls_back_on_bad_values() -> None:
    config = AlertConfig.from_document({"joursAlerteAssurance": "15", "joursAlerteVisite": "abc",
                                        "seuilStockImportant": -3, "alerteStock": 0})

    assert config.joursAlerteAssurance == 15
    assert config.joursAlerteVisite == 30
    assert config.seuilStockImportant == 10
    assert config.alerteStock is False
    assert AlertConfig.from_document(None) == AlertConfig()
