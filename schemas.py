"""
Schémas d'écriture (DTO) pour les collections Firestore

Chaque écriture passe par un modèle explicite : seuls les champs définis
et autorisés par le schéma sont envoyés au store.
"""

import re
from datetime import date, datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from dates import as_firestore_datetime, to_datetime, today
from finance import invoice_totals

DateLike = Union[datetime, date]

CAMION_ETATS = ("actif", "en_maintenance", "hors_service")
MISSION_STATUSES = ("planifie", "en_cours", "termine", "annule")
MISSION_STATUS_LABELS = {
    "planifie": "Planifié",
    "en_cours": "En cours",
    "termine": "Terminé",
    "annule": "Annulé",
}
FACTURE_STATUSES = ("brouillon", "envoyee", "payee", "partiellement_payee", "en_retard", "annulee")

_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F-\x9F\u200B\uFEFF]")


def clean_string(value: str) -> str:
    """Supprime les caractères de contrôle, zero-width spaces et BOM"""
    return _CONTROL_CHARS.sub("", value).strip()


def validation_message(exc: ValidationError) -> str:
    """Message lisible à partir des erreurs pydantic (champ: erreur)"""
    parts = []
    for error in exc.errors():
        field = ".".join(str(p) for p in error.get("loc", ()) if p != "__root__")
        message = str(error.get("msg", "")).replace("Value error, ", "")
        parts.append(f"{field}: {message}" if field else message)
    return "; ".join(parts) or "Données invalides"


def firestore_value(value):
    """Prépare une valeur pour Firestore (dates -> datetime, None retirés)"""
    if isinstance(value, dict):
        return {k: firestore_value(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [firestore_value(v) for v in value]
    return as_firestore_datetime(value)


class DocumentModel(BaseModel):
    """Base des DTO : nettoie les chaînes, refuse NaN/inf, ignore les champs inconnus"""

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    @field_validator("*", mode="before")
    @classmethod
    def _clean_strings(cls, v):
        if isinstance(v, str):
            return clean_string(v)
        return v

    def to_document(self) -> Dict:
        """Sérialise vers un document Firestore (sans les champs non renseignés)"""
        return firestore_value(self.model_dump(exclude_none=True))


def _check_order(start, end, message):
    if start is not None and end is not None and to_datetime(end) < to_datetime(start):
        raise ValueError(message)


# ==========================================
# FLOTTE
# ==========================================

class CamionIn(DocumentModel):
    matricule: str = Field(..., min_length=1)
    marque: str = ""
    modele: str = ""
    dateAchat: Optional[DateLike] = None
    etat: Literal["actif", "en_maintenance", "hors_service"] = "actif"
    kilometrageActuel: float = Field(0, ge=0)
    imageUrl: Optional[str] = None
    couleur: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")


class ChauffeurIn(DocumentModel):
    prenom: str = Field(..., min_length=1)
    nom: str = Field(..., min_length=1)
    email: Optional[str] = None
    telephone: Optional[str] = None
    permis: Optional[str] = None
    dateObtentionPermis: Optional[DateLike] = None
    typeContrat: Literal["cdi", "cdd", "interim"] = "cdi"
    salaire: float = Field(0, ge=0)
    dateEmbauche: Optional[DateLike] = None
    soldAnnuelConge: Optional[int] = Field(None, ge=0)
    actif: bool = True


class ClientIn(DocumentModel):
    nom: str = Field(..., min_length=1)
    type: Literal["particulier", "entreprise"] = "entreprise"
    email: Optional[str] = None
    telephone: Optional[str] = None
    adresse: Optional[str] = None
    ville: Optional[str] = None
    codePostal: Optional[str] = None
    pays: Optional[str] = None
    numeroTVA: Optional[str] = None
    notes: Optional[str] = None
    solde: float = 0


class CoutEstime(DocumentModel):
    carburant: float = Field(0, ge=0)
    peage: float = Field(0, ge=0)
    repas: float = Field(0, ge=0)
    autre: float = Field(0, ge=0)


class MissionIn(DocumentModel):
    depart: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)
    dateDebut: DateLike
    dateFin: Optional[DateLike] = None
    camionId: str = Field(..., min_length=1)
    chauffeurId: str = Field(..., min_length=1)
    statut: Literal["planifie", "en_cours", "termine", "annule"] = "planifie"
    coutEstime: CoutEstime = Field(default_factory=CoutEstime)
    recette: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def _dates_in_order(self):
        _check_order(self.dateDebut, self.dateFin, "La date de fin doit suivre la date de début")
        return self


class VisiteTechniqueIn(DocumentModel):
    camionId: str = Field(..., min_length=1)
    date: DateLike
    prochaineDate: DateLike
    resultat: Literal["valide", "non_valide"] = "valide"

    @model_validator(mode="after")
    def _dates_in_order(self):
        _check_order(self.date, self.prochaineDate, "La prochaine visite doit suivre la visite")
        return self


class AssuranceIn(DocumentModel):
    camionId: str = Field(..., min_length=1)
    numero: str = Field(..., min_length=1)
    compagnie: str = ""
    dateDebut: DateLike
    dateFin: DateLike
    montant: float = Field(0, ge=0)

    @model_validator(mode="after")
    def _dates_in_order(self):
        _check_order(self.dateDebut, self.dateFin, "La fin de couverture doit suivre le début")
        return self


class EntretienIn(DocumentModel):
    camionId: str = Field(..., min_length=1)
    type: Literal["vidange", "reparation", "autre"] = "vidange"
    date: DateLike
    description: str = ""
    cout: float = Field(0, ge=0)


class AbsenceIn(DocumentModel):
    chauffeurId: str = Field(..., min_length=1)
    type: Literal["conge", "maladie", "accident", "autre"] = "conge"
    dateDebut: DateLike
    dateFin: DateLike
    description: Optional[str] = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        _check_order(self.dateDebut, self.dateFin, "La date de fin doit suivre la date de début")
        return self


# ==========================================
# STOCK
# ==========================================

class StockIn(DocumentModel):
    nom: str = Field(..., min_length=1)
    type: str = ""
    quantite: float = Field(0, ge=0)
    seuilAlerte: float = Field(10, ge=0)
    prixUnitaire: float = Field(0, ge=0)


class MouvementStockIn(DocumentModel):
    type: Literal["entree", "sortie"]
    quantite: float = Field(..., gt=0)
    date: DateLike = Field(default_factory=today)
    raison: str = ""


# ==========================================
# FINANCE
# ==========================================

class DepenseIn(DocumentModel):
    type: str = Field("autre", min_length=1)
    date: DateLike
    montant: float = Field(..., ge=0)
    description: str = ""
    camionId: Optional[str] = None
    chauffeurId: Optional[str] = None
    fournisseurId: Optional[str] = None


class RecetteIn(DocumentModel):
    date: DateLike
    montant: float = Field(..., ge=0)
    description: str = ""
    clientId: Optional[str] = None
    missionId: Optional[str] = None
    factureId: Optional[str] = None


class LigneFacture(DocumentModel):
    description: str = Field(..., min_length=1)
    quantite: float = Field(1, gt=0)
    prixUnitaire: float = Field(..., gt=0)
    tva: float = Field(20, ge=0, le=100)
    remise: float = Field(0, ge=0, le=100)


class FactureIn(DocumentModel):
    numero: str = Field(..., min_length=1)
    clientId: str = Field(..., min_length=1)
    dateEmission: DateLike
    dateEcheance: Optional[DateLike] = None
    statut: Literal["brouillon", "envoyee", "payee", "partiellement_payee", "en_retard", "annulee"] = "brouillon"
    type: Literal["facture", "avoir", "proforma"] = "facture"
    lignes: List[LigneFacture] = Field(..., min_length=1)
    montantPaye: float = Field(0, ge=0)
    notes: Optional[str] = None
    conditionsPaiement: Optional[str] = None
    missionId: Optional[str] = None

    def to_document(self) -> Dict:
        doc = super().to_document()
        totals = invoice_totals(doc["lignes"])
        doc.update(totals)
        doc["montantRestant"] = round(totals["totalTTC"] - self.montantPaye, 2)
        return doc


# ==========================================
# UTILISATEURS & PARAMÈTRES
# ==========================================

UserRole = Literal["admin", "comptable", "magasinier", "chauffeur"]


class UserCreate(DocumentModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    role: UserRole


class UserUpdate(DocumentModel):
    userId: str = Field(..., min_length=1)
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[UserRole] = None
    password: Optional[str] = None

    def auth_changes(self) -> Dict:
        """Champs à propager vers Firebase Auth"""
        return {k: v for k, v in (("email", self.email), ("password", self.password)) if v}

    def profile_changes(self) -> Dict:
        """Champs du document users (jamais le mot de passe)"""
        return {k: v for k, v in (("name", self.name), ("role", self.role), ("email", self.email)) if v}


class AlertConfig(DocumentModel):
    joursAlerteAssurance: int = Field(30, ge=0)
    joursAlerteVisite: int = Field(30, ge=0)
    joursCritiqueAssurance: int = Field(7, ge=0)
    joursCritiqueVisite: int = Field(7, ge=0)
    joursCritiqueFacture: int = Field(30, ge=0)
    alerteAssurance: bool = True
    alerteVisite: bool = True
    alerteEntretien: bool = True
    alerteStock: bool = True
    alerteFacture: bool = True
    alerteMaintenance: bool = True
    seuilStockCritique: float = Field(0, ge=0)
    seuilStockImportant: float = Field(10, ge=0)

    @classmethod
    def from_document(cls, data: Optional[Dict]) -> "AlertConfig":
        """Lit la configuration stockée ; les valeurs invalides reprennent le défaut"""
        values = {}
        for name, field in cls.model_fields.items():
            raw = (data or {}).get(name)
            if raw is None:
                continue
            try:
                values[name] = field.annotation(raw) if field.annotation is not bool else bool(raw)
            except (TypeError, ValueError):
                continue
        return cls(**{k: v for k, v in values.items() if not isinstance(v, (int, float)) or v >= 0})
